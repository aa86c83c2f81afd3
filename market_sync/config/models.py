"""Pydantic models describing engine settings."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class ScheduleType(str, Enum):
    """Scheduler modes for background jobs."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class ScheduleConfig(BaseModel):
    """When a background job should run."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default=3600,
        description="Cron expression, interval seconds or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class RemoteConfig(BaseModel):
    """Lookup endpoint settings."""

    lookup_url: str = "https://api.uexcorp.space/2.0/marketplace_listings"
    timeout: float = 10.0
    api_token: str | None = None
    user_agent: str = "market-sync/0.1"

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be > 0")
        return value


class RateLimitConfig(BaseModel):
    """Outbound lookup throttle."""

    max_per_second: int = 10
    min_interval: float = 0.1

    @model_validator(mode="after")
    def _validate_rate(self) -> "RateLimitConfig":
        if self.max_per_second < 1:
            raise ValueError("max_per_second must be >= 1")
        if self.min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        return self


class RetryConfig(BaseModel):
    """Bounded retry applied to every probe."""

    max_attempts: int = 3
    backoff_seconds: float = 0.5

    @model_validator(mode="after")
    def _validate_retry(self) -> "RetryConfig":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")
        return self


class ScanConfig(BaseModel):
    """Range scanning policy. Discovery constants are tunable heuristics."""

    chunk_size: int = 100
    batch_size: int = 2000
    discovery_step: int = 10
    empty_run_limit: int = 500
    discovery_ceiling: int = 1_000_000
    refinement_margin: int = 10
    incremental_window: int = 30_000
    incremental_batch: int = 2000

    @model_validator(mode="after")
    def _validate_sizes(self) -> "ScanConfig":
        for name in (
            "chunk_size",
            "batch_size",
            "discovery_step",
            "empty_run_limit",
            "discovery_ceiling",
            "incremental_window",
            "incremental_batch",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.refinement_margin < 0:
            raise ValueError("refinement_margin must be >= 0")
        return self


class RefreshConfig(BaseModel):
    """Low-stock refresh settings."""

    low_stock_threshold: int = 2

    @field_validator("low_stock_threshold")
    @classmethod
    def _positive_threshold(cls, value: int) -> int:
        if value < 1:
            raise ValueError("low_stock_threshold must be >= 1")
        return value


class StorageConfig(BaseModel):
    """Locations of the persisted catalog and staging log."""

    catalog_path: Path = Field(default=Path("data/marketplace_data.json"))
    staging_path: Path = Field(default=Path("data/staging.jsonl"))

    @field_validator("catalog_path", "staging_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolve(self, base_dir: Path) -> "StorageConfig":
        """Return a copy with relative paths anchored at ``base_dir``."""

        def _anchor(path: Path) -> Path:
            return path if path.is_absolute() else (base_dir / path).resolve()

        return StorageConfig(
            catalog_path=_anchor(self.catalog_path),
            staging_path=_anchor(self.staging_path),
        )


class JobsConfig(BaseModel):
    """Background job schedules."""

    incremental: ScheduleConfig = Field(default_factory=ScheduleConfig)
    refresh: ScheduleConfig = Field(
        default_factory=lambda: ScheduleConfig(type=ScheduleType.INTERVAL, value=900)
    )


class SyncConfig(BaseModel):
    """Top-level settings shared by every engine component."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    enable_progress_bar: bool = True


__all__ = [
    "JobsConfig",
    "RateLimitConfig",
    "RefreshConfig",
    "RemoteConfig",
    "RetryConfig",
    "ScanConfig",
    "ScheduleConfig",
    "ScheduleType",
    "StorageConfig",
    "SyncConfig",
]
