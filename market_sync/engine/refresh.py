"""Re-probe known low-stock listings and confirm or evict them."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Event
from typing import Callable

import structlog

from ..catalog import Catalog
from ..errors import ConfigurationError, PersistenceError
from ..models import ListingRecord
from .probe import ProbeResult
from .scanner import Prober

RecordPredicate = Callable[[ListingRecord], bool]


@dataclass(slots=True)
class RefreshSummary:
    checked: int = 0
    updated: int = 0
    removed: int = 0
    failed: int = 0
    cancelled: bool = False
    error: str | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "checked": self.checked,
            "updated": self.updated,
            "removed": self.removed,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "error": self.error,
        }


def low_stock(threshold: int) -> RecordPredicate:
    """Sell listings with fewer than ``threshold`` units left."""

    def _predicate(record: ListingRecord) -> bool:
        return not record.is_buy_order and record.in_stock < threshold

    return _predicate


class RefreshSweeper:
    """Point-update known catalog entries one at a time.

    Each outcome is persisted before the next item is probed, so an
    interruption loses at most the item in flight. Identifiers are never
    added, only confirmed or removed.
    """

    def __init__(
        self,
        catalog: Catalog,
        prober: Prober,
        cancel_event: Event | None = None,
        on_probe: Callable[[ProbeResult], None] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.catalog = catalog
        self.prober = prober
        self.cancel_event = cancel_event or Event()
        self.on_probe = on_probe
        self.logger = logger or structlog.get_logger("market_sync.refresh")

    def refresh(self, predicate: RecordPredicate) -> RefreshSummary:
        if len(self.catalog) == 0:
            raise ConfigurationError("Catalog is empty; run a scan before refreshing")
        targets = self.catalog.select(predicate)
        summary = RefreshSummary()
        self.logger.info("refresh_started", targets=len(targets))
        for record in targets:
            if self.cancel_event.is_set():
                summary.cancelled = True
                self.logger.info("refresh_cancelled", next_item=record.id)
                break
            result = self.prober.probe(record.id)
            if self.on_probe is not None:
                self.on_probe(result)
            summary.checked += 1
            if result.failed:
                summary.failed += 1
            try:
                if result.active and result.record is not None:
                    fresh = result.record
                    if fresh.id != record.id:
                        fresh = fresh.model_copy(update={"id": record.id})
                    self.catalog.upsert(fresh)
                    summary.updated += 1
                    self.logger.debug("refresh_updated", item_id=record.id, in_stock=fresh.in_stock)
                else:
                    self.catalog.remove(record.id)
                    summary.removed += 1
                    self.logger.info(
                        "refresh_removed", item_id=record.id, outcome=result.outcome.value
                    )
            except PersistenceError as exc:
                summary.error = str(exc)
                self.logger.error("refresh_persist_failed", item_id=record.id, error=str(exc))
                break
        self.logger.info("refresh_finished", **summary.as_dict())
        return summary


__all__ = ["RefreshSummary", "RefreshSweeper", "RecordPredicate", "low_stock"]
