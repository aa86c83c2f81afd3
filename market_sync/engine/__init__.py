"""Engine components orchestrating probe → stage → merge → catalog."""

from .merger import CatalogMerger, MergeCounts, consolidate
from .probe import ItemProbe, ProbeOutcome, ProbeResult, classify_response
from .rate_limiter import Clock, RateLimiter, SystemClock
from .refresh import RefreshSummary, RefreshSweeper, low_stock
from .retry import RetryPolicy, fixed_backoff
from .scanner import RangeScanner, ScanSummary, expand_ranges, split_range
from .staging import StagingStore
from .thread_pool import ThreadPoolManager

__all__ = [
    "CatalogMerger",
    "Clock",
    "ItemProbe",
    "MergeCounts",
    "ProbeOutcome",
    "ProbeResult",
    "RangeScanner",
    "RateLimiter",
    "RefreshSummary",
    "RefreshSweeper",
    "RetryPolicy",
    "ScanSummary",
    "StagingStore",
    "SystemClock",
    "ThreadPoolManager",
    "classify_response",
    "consolidate",
    "expand_ranges",
    "fixed_backoff",
    "low_stock",
    "split_range",
]
