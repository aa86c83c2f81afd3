"""Synchronisation engine wiring limiter, probe, scanner, merger and refresh."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Event, Lock
from typing import Callable, Iterator, Mapping

from .catalog import Catalog, CatalogStats
from .config import SyncConfig
from .engine import (
    CatalogMerger,
    Clock,
    ItemProbe,
    MergeCounts,
    ProbeResult,
    RangeScanner,
    RateLimiter,
    RefreshSummary,
    RefreshSweeper,
    RetryPolicy,
    ScanSummary,
    StagingStore,
    ThreadPoolManager,
    low_stock,
)
from .engine.scanner import Prober
from .errors import ConfigurationError
from .infra import SnapshotFile
from .logging_conf import configure_logging
from .models import ListingRecord

ProbeListener = Callable[[ProbeResult], None]


class SyncEngine:
    """Own the catalog and expose the scan/refresh operations.

    One mutating operation runs at a time; a second caller gets a
    :class:`ConfigurationError` instead of racing on the catalog files.
    """

    def __init__(
        self,
        settings: SyncConfig,
        prober: Prober | None = None,
        limiter: RateLimiter | None = None,
        clock: Clock | None = None,
        thread_pool: ThreadPoolManager | None = None,
    ) -> None:
        self.settings = settings
        self.logger = configure_logging().bind(component="engine")
        self.catalog = Catalog(SnapshotFile(settings.storage.catalog_path))
        self.catalog.reload()
        self.staging = StagingStore(settings.storage.staging_path)
        self.merger = CatalogMerger(self.catalog, self.staging)
        self.limiter = limiter or RateLimiter(
            max_per_second=settings.rate_limit.max_per_second,
            min_interval=settings.rate_limit.min_interval,
            clock=clock,
        )
        self.prober: Prober = prober or ItemProbe(
            settings.remote,
            self.limiter,
            RetryPolicy.from_config(settings.retry),
            clock=clock,
        )
        self.thread_pool = thread_pool or ThreadPoolManager(settings.scan.chunk_size)
        self._cancel = Event()
        self._busy = Lock()

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------
    def full_rescan(
        self,
        start_id: int,
        end_id: int,
        batch_size: int | None = None,
        on_probe: ProbeListener | None = None,
    ) -> ScanSummary:
        with self._exclusive("full_rescan"):
            return self._scanner(on_probe).full_sweep(start_id, end_id, batch_size)

    def discover(
        self,
        start_id: int = 1,
        ceiling: int | None = None,
        batch_size: int | None = None,
        on_probe: ProbeListener | None = None,
    ) -> ScanSummary:
        with self._exclusive("discover"):
            return self._scanner(on_probe).discover(start_id, ceiling, batch_size=batch_size)

    def incremental_update(
        self,
        window_size: int | None = None,
        batch_size: int | None = None,
        on_probe: ProbeListener | None = None,
    ) -> ScanSummary:
        with self._exclusive("incremental_update"):
            if len(self.catalog) == 0:
                raise ConfigurationError("Catalog is empty; run a full or discovery scan first")
            cursor = self.catalog.cursor
            self.logger.info("incremental_from_cursor", cursor=cursor)
            return self._scanner(on_probe).incremental(cursor, window_size, batch_size)

    def refresh_low_stock(
        self, threshold: int | None = None, on_probe: ProbeListener | None = None
    ) -> RefreshSummary:
        if threshold is None:
            threshold = self.settings.refresh.low_stock_threshold
        if threshold < 1:
            raise ConfigurationError(f"low-stock threshold must be >= 1, got {threshold}")
        with self._exclusive("refresh_low_stock"):
            sweeper = RefreshSweeper(self.catalog, self.prober, self._cancel, on_probe)
            return sweeper.refresh(low_stock(threshold))

    def dedupe(self) -> MergeCounts:
        with self._exclusive("dedupe"):
            return self.merger.dedupe()

    def cancel(self) -> None:
        """Ask the running operation to stop after its current unit."""

        self._cancel.set()
        self.logger.info("cancel_requested")

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------
    def current_catalog(self) -> Mapping[int, ListingRecord]:
        return self.catalog.view()

    def search(self, query: str) -> list[ListingRecord]:
        return self.catalog.search(query)

    def stats(self) -> CatalogStats:
        return self.catalog.stats()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def close(self) -> None:
        self.thread_pool.shutdown()
        close = getattr(self.prober, "close", None)
        if callable(close):
            close()

    # ------------------------------------------------------------------
    def _scanner(self, on_probe: ProbeListener | None) -> RangeScanner:
        return RangeScanner(
            self.prober,
            self.staging,
            self.merger,
            self.thread_pool,
            self.settings.scan,
            cancel_event=self._cancel,
            on_probe=on_probe,
        )

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise ConfigurationError(f"Cannot start {operation}: another operation is running")
        self._cancel.clear()
        log = self.logger.bind(operation=operation)
        log.info("operation_started")
        try:
            yield
        finally:
            self._busy.release()
            log.info("operation_finished")


__all__ = ["ProbeListener", "SyncEngine"]
