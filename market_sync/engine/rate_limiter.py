"""Sliding-window rate limiter with minimum spacing and FIFO admission."""

from __future__ import annotations

import time
from collections import deque
from threading import Condition
from typing import Callable, Protocol, TypeVar

import structlog

T = TypeVar("T")


class Clock(Protocol):
    """Time source used by the limiter and retry backoff."""

    def monotonic(self) -> float:
        """Return a monotonically increasing timestamp in seconds."""

    def sleep(self, seconds: float) -> None:
        """Suspend the calling thread."""


class SystemClock:
    """Wall clock backed by :mod:`time`."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class RateLimiter:
    """Admit at most ``max_per_second`` operation starts per trailing window.

    Waiters queue in FIFO order. Only the queue head computes delays and
    sleeps, so there is a single drain loop however many worker threads
    submit at once. The wrapped operation runs outside the admission lock and
    its exceptions propagate unchanged.
    """

    def __init__(
        self,
        max_per_second: int = 10,
        min_interval: float = 0.1,
        window: float = 1.0,
        clock: Clock | None = None,
    ) -> None:
        if max_per_second < 1:
            raise ValueError("max_per_second must be >= 1")
        self.max_per_second = max_per_second
        self.min_interval = max(0.0, min_interval)
        self.window = window
        self.clock = clock or SystemClock()
        self.logger = structlog.get_logger("market_sync.rate_limiter")
        self._starts: deque[float] = deque()
        self._last_start: float | None = None
        self._waiters: deque[object] = deque()
        self._cond = Condition()
        self.admitted = 0

    def execute(self, operation: Callable[[], T]) -> T:
        self.acquire()
        return operation()

    def acquire(self) -> None:
        ticket = object()
        with self._cond:
            self._waiters.append(ticket)
            while self._waiters[0] is not ticket:
                self._cond.wait()
        try:
            self._drain_until_admitted()
        finally:
            with self._cond:
                self._waiters.popleft()
                self._cond.notify_all()

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._waiters)

    def _drain_until_admitted(self) -> None:
        while True:
            delay = self._next_delay(self.clock.monotonic())
            if delay <= 0:
                break
            self.clock.sleep(delay)
        now = self.clock.monotonic()
        self._starts.append(now)
        self._last_start = now
        self.admitted += 1

    def _next_delay(self, now: float) -> float:
        cutoff = now - self.window
        while self._starts and self._starts[0] <= cutoff:
            self._starts.popleft()
        delay = 0.0
        if len(self._starts) >= self.max_per_second:
            delay = self._starts[0] + self.window - now
        if self._last_start is not None and self.min_interval:
            delay = max(delay, self._last_start + self.min_interval - now)
        return delay


__all__ = ["Clock", "RateLimiter", "SystemClock"]
