"""Bounded retry policy shared by every probe call site."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from ..config import RetryConfig


def fixed_backoff(seconds: float) -> Callable[[int], float]:
    def _backoff(_attempt: int) -> float:
        return seconds

    return _backoff


@dataclass(slots=True)
class RetryPolicy:
    """Maximum attempts plus the delay to wait after a failed attempt."""

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: fixed_backoff(0.5))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            backoff=fixed_backoff(config.backoff_seconds),
        )

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return max(0.0, self.backoff(attempt))


__all__ = ["RetryPolicy", "fixed_backoff"]
