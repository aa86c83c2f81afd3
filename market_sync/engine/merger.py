"""Fold staged records into the persisted catalog snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import structlog

from ..catalog import Catalog, records_from_entries
from ..models import ListingRecord
from .staging import StagingStore


@dataclass(slots=True)
class MergeCounts:
    before: int
    added: int
    after: int
    staged: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "before": self.before,
            "added": self.added,
            "after": self.after,
            "staged": self.staged,
        }


def consolidate(
    entries: Iterable[Mapping[str, Any]], logger: structlog.BoundLogger | None = None
) -> list[ListingRecord]:
    """Validate, keep active records, and de-duplicate by id.

    Later entries win over earlier ones with the same id. The result is
    ordered by id so the snapshot does not depend on arrival order.
    """

    merged: dict[int, ListingRecord] = {}
    for record in records_from_entries(entries, logger):
        if not record.is_active:
            continue
        merged[record.id] = record
    return [merged[key] for key in sorted(merged)]


class CatalogMerger:
    """Combine the staging log with the persisted catalog in one replace."""

    def __init__(
        self,
        catalog: Catalog,
        staging: StagingStore,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.catalog = catalog
        self.staging = staging
        self.logger = logger or structlog.get_logger("market_sync.merger")

    def merge(self) -> MergeCounts:
        existing = self.catalog.snapshot.read()
        staged = self.staging.drain()
        records = consolidate([*existing, *staged], self.logger)
        # Wholesale replace; a PersistenceError leaves old snapshot and staging intact.
        self.catalog.snapshot.write([record.to_json() for record in records])
        # Memory follows disk even if truncating staging fails below.
        self.catalog.reload()
        self.staging.clear()
        counts = MergeCounts(
            before=len(existing),
            added=len(records) - len(existing),
            after=len(records),
            staged=len(staged),
        )
        self.logger.info("catalog_merged", **counts.as_dict())
        return counts

    def dedupe(self) -> MergeCounts:
        """Rewrite the catalog with unique, active records only.

        Leftovers in the staging log belong to an interrupted batch and are
        discarded rather than merged.
        """

        leftovers = self.staging.drain()
        if leftovers:
            self.logger.warning("staging_leftovers_discarded", entries=len(leftovers))
            self.staging.clear()
        return self.merge()


__all__ = ["CatalogMerger", "MergeCounts", "consolidate"]
