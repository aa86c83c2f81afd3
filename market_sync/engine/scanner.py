"""Range scanning strategies: full sweep, sparse discovery, incremental."""

from __future__ import annotations

from concurrent.futures import Future, as_completed
from dataclasses import dataclass, field
from threading import Event
from typing import Callable, Iterator, Protocol

import structlog

from ..config import ScanConfig
from ..errors import ConfigurationError, PersistenceError
from .merger import CatalogMerger
from .probe import ProbeOutcome, ProbeResult
from .staging import StagingStore
from .thread_pool import ThreadPoolManager


class Prober(Protocol):
    def probe(self, item_id: int) -> ProbeResult:
        """Look up one identifier."""


@dataclass(slots=True)
class ScanSummary:
    """Counters reported back to the caller after a sweep."""

    checked: int = 0
    found: int = 0
    failed: int = 0
    batches: int = 0
    added: int = 0
    cancelled: bool = False
    error: str | None = None
    ranges: list[tuple[int, int]] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "checked": self.checked,
            "found": self.found,
            "failed": self.failed,
            "batches": self.batches,
            "added": self.added,
            "cancelled": self.cancelled,
            "error": self.error,
            "ranges": [list(pair) for pair in self.ranges],
        }


def split_range(start: int, end: int, size: int) -> Iterator[tuple[int, int]]:
    """Yield consecutive inclusive ``(lo, hi)`` windows covering ``[start, end]``."""

    lo = start
    while lo <= end:
        hi = min(lo + size - 1, end)
        yield lo, hi
        lo = hi + 1


def expand_ranges(
    ranges: list[tuple[int, int]], margin: int, floor: int = 1
) -> list[tuple[int, int]]:
    """Widen each range by ``margin`` and coalesce the ones that overlap."""

    widened = sorted((max(floor, lo - margin), hi + margin) for lo, hi in ranges)
    merged: list[tuple[int, int]] = []
    for lo, hi in widened:
        if merged and lo <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], hi))
        else:
            merged.append((lo, hi))
    return merged


class RangeScanner:
    """Drive probes over identifier intervals and merge batch by batch.

    Batches run strictly one after another: a batch is probed in
    ``chunk_size`` wide concurrent chunks, its active records are staged as
    they arrive, and the staging log is merged once the whole batch is done.
    Cancellation is honoured between batches.
    """

    def __init__(
        self,
        prober: Prober,
        staging: StagingStore,
        merger: CatalogMerger,
        thread_pool: ThreadPoolManager,
        config: ScanConfig,
        cancel_event: Event | None = None,
        on_probe: Callable[[ProbeResult], None] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.prober = prober
        self.staging = staging
        self.merger = merger
        self.thread_pool = thread_pool
        self.config = config
        self.cancel_event = cancel_event or Event()
        self.on_probe = on_probe
        self.logger = logger or structlog.get_logger("market_sync.scanner")

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------
    def full_sweep(
        self,
        start: int,
        end: int,
        batch_size: int | None = None,
        summary: ScanSummary | None = None,
    ) -> ScanSummary:
        if start < 1 or end < start:
            raise ConfigurationError(f"Invalid scan range [{start}, {end}]")
        size = batch_size if batch_size is not None else self.config.batch_size
        if size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        summary = summary or ScanSummary()
        self.logger.info("sweep_started", start=start, end=end, batch_size=size)
        for lo, hi in split_range(start, end, size):
            if self.cancelled:
                summary.cancelled = True
                self.logger.info("sweep_cancelled", next_batch=lo)
                break
            if not self._scan_batch(lo, hi, summary):
                break
        self.logger.info("sweep_finished", **summary.as_dict())
        return summary

    def incremental(
        self, cursor: int, window: int | None = None, batch_size: int | None = None
    ) -> ScanSummary:
        if window is None:
            window = self.config.incremental_window
        if batch_size is None:
            batch_size = self.config.incremental_batch
        if cursor < 0 or window < 1:
            raise ConfigurationError("Incremental scan needs cursor >= 0 and window >= 1")
        return self.full_sweep(cursor + 1, cursor + window, batch_size)

    def discover(
        self,
        start: int = 1,
        ceiling: int | None = None,
        step: int | None = None,
        empty_run_limit: int | None = None,
        batch_size: int | None = None,
    ) -> ScanSummary:
        if ceiling is None:
            ceiling = self.config.discovery_ceiling
        if step is None:
            step = self.config.discovery_step
        if empty_run_limit is None:
            empty_run_limit = self.config.empty_run_limit
        if start < 1 or ceiling < start or step < 1 or empty_run_limit < 1:
            raise ConfigurationError(
                f"Invalid discovery bounds [{start}, {ceiling}] step {step} "
                f"empty_run_limit {empty_run_limit}"
            )

        summary = ScanSummary()
        raw_ranges = self._sample_ranges(start, ceiling, step, empty_run_limit, summary)
        summary.ranges = expand_ranges(raw_ranges, self.config.refinement_margin)
        self.logger.info("discovery_ranges", ranges=summary.ranges, sampled=summary.checked)
        for lo, hi in summary.ranges:
            if self.cancelled or summary.error:
                summary.cancelled = summary.cancelled or self.cancelled
                break
            self.full_sweep(lo, hi, batch_size, summary)
        return summary

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _sample_ranges(
        self,
        start: int,
        ceiling: int,
        step: int,
        empty_run_limit: int,
        summary: ScanSummary,
    ) -> list[tuple[int, int]]:
        samples = list(range(start, ceiling + 1, step))
        ranges: list[tuple[int, int]] = []
        run_start: int | None = None
        run_end = 0
        empty_run = 0
        for offset in range(0, len(samples), self.config.chunk_size):
            if self.cancelled:
                summary.cancelled = True
                break
            chunk = samples[offset : offset + self.config.chunk_size]
            results = self._probe_chunk(chunk)
            summary.checked += len(chunk)
            for item_id in chunk:
                result = results[item_id]
                if result.failed:
                    summary.failed += 1
                if result.found:
                    if run_start is None:
                        run_start = item_id
                    run_end = item_id
                    empty_run = 0
                    continue
                if run_start is not None:
                    ranges.append((run_start, run_end))
                    run_start = None
                empty_run += 1
                if empty_run >= empty_run_limit:
                    self.logger.info("discovery_stopped", at=item_id, empty_run=empty_run)
                    return ranges
        if run_start is not None:
            ranges.append((run_start, run_end))
        return ranges

    def _scan_batch(self, lo: int, hi: int, summary: ScanSummary) -> bool:
        batch_log = self.logger.bind(batch_start=lo, batch_end=hi)
        # Anything staged now belongs to an interrupted batch.
        try:
            self.staging.clear()
        except PersistenceError as exc:
            batch_log.error("batch_staging_reset_failed", error=str(exc))
            summary.error = str(exc)
            return False
        ids = list(range(lo, hi + 1))
        for offset in range(0, len(ids), self.config.chunk_size):
            chunk = ids[offset : offset + self.config.chunk_size]
            for result in self._probe_chunk(chunk).values():
                summary.checked += 1
                if result.failed:
                    summary.failed += 1
                if result.outcome is ProbeOutcome.ACTIVE and result.record is not None:
                    summary.found += 1
                    self.staging.append(result.record)
        try:
            counts = self.merger.merge()
        except PersistenceError as exc:
            batch_log.error("batch_merge_failed", error=str(exc))
            summary.error = str(exc)
            return False
        summary.batches += 1
        summary.added += counts.added
        batch_log.info("batch_merged", **counts.as_dict())
        return True

    def _probe_chunk(self, chunk: list[int]) -> dict[int, ProbeResult]:
        executor = self.thread_pool.get("probe", max_workers=self.config.chunk_size)
        futures: dict[Future[ProbeResult], int] = {
            executor.submit(self.prober.probe, item_id): item_id for item_id in chunk
        }
        results: dict[int, ProbeResult] = {}
        for future in as_completed(futures):
            item_id = futures[future]
            try:
                result = future.result()
            except Exception as exc:  # noqa: BLE001
                self.logger.error("probe_crashed", item_id=item_id, error=str(exc))
                result = ProbeResult(item_id, ProbeOutcome.NOT_FOUND, error=str(exc))
            if self.on_probe is not None:
                self.on_probe(result)
            results[item_id] = result
        return results


__all__ = ["Prober", "RangeScanner", "ScanSummary", "expand_ranges", "split_range"]
