"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    JobsConfig,
    RateLimitConfig,
    RefreshConfig,
    RemoteConfig,
    RetryConfig,
    ScanConfig,
    ScheduleConfig,
    ScheduleType,
    StorageConfig,
    SyncConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
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
