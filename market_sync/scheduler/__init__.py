"""Background scheduling of engine operations."""

from .apsched_adapter import APSchedulerAdapter

__all__ = ["APSchedulerAdapter"]
