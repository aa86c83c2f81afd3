"""In-memory catalog snapshot and its read-only query helpers."""

from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Sequence

import structlog
from pydantic import ValidationError

from .infra import SnapshotFile
from .models import BUY, ListingRecord

ITEMS_PER_PAGE = 5


@dataclass(slots=True)
class CatalogStats:
    total: int
    in_stock: int
    total_value: float

    def as_dict(self) -> dict[str, float | int]:
        return {"total": self.total, "in_stock": self.in_stock, "total_value": self.total_value}


@dataclass(slots=True)
class Page:
    items: list[ListingRecord]
    index: int
    total_pages: int
    total_items: int


def records_from_entries(
    entries: Iterable[Mapping], logger: structlog.BoundLogger | None = None
) -> list[ListingRecord]:
    """Validate raw JSON entries, skipping the ones that do not parse."""

    records: list[ListingRecord] = []
    for entry in entries:
        try:
            records.append(ListingRecord.model_validate(dict(entry)))
        except ValidationError as exc:
            if logger is not None:
                logger.warning("record_invalid", entry_id=entry.get("id"), error=str(exc))
    return records


class Catalog:
    """Identifier → record mapping backed by a :class:`SnapshotFile`.

    Callers get read-only views; only the merger and the refresh sweeper
    mutate it, and every mutation is written to disk before it becomes
    visible in memory.
    """

    def __init__(self, snapshot: SnapshotFile) -> None:
        self.snapshot = snapshot
        self.logger = structlog.get_logger("market_sync.catalog")
        self._lock = RLock()
        self._records: dict[int, ListingRecord] = {}

    def reload(self) -> int:
        records = records_from_entries(self.snapshot.read(), self.logger)
        with self._lock:
            self._records = {record.id: record for record in records}
            count = len(self._records)
        self.logger.info("catalog_loaded", records=count)
        return count

    # ------------------------------------------------------------------
    # Read-only access
    # ------------------------------------------------------------------
    def view(self) -> Mapping[int, ListingRecord]:
        with self._lock:
            return MappingProxyType(dict(self._records))

    def get(self, item_id: int) -> ListingRecord | None:
        with self._lock:
            return self._records.get(item_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._records

    @property
    def cursor(self) -> int:
        """Highest identifier already catalogued (0 when empty)."""

        with self._lock:
            return max(self._records, default=0)

    def select(self, predicate: Callable[[ListingRecord], bool]) -> list[ListingRecord]:
        with self._lock:
            records = list(self._records.values())
        return sorted((record for record in records if predicate(record)), key=lambda r: r.id)

    def search(self, query: str) -> list[ListingRecord]:
        """Sell listings in stock whose title, name or slug contain ``query``.

        Results are ordered by ascending price.
        """

        needle = query.strip().lower()
        if not needle:
            return []

        def _matches(record: ListingRecord) -> bool:
            haystacks = (record.title, record.name, record.slug)
            if not any(text and needle in text.lower() for text in haystacks):
                return False
            return (
                record.operation != BUY
                and not record.is_sold_out
                and record.in_stock >= 1
                and record.price_amount is not None
            )

        return sorted(self.select(_matches), key=lambda r: (r.price_amount, r.id))

    def stats(self) -> CatalogStats:
        with self._lock:
            records = list(self._records.values())
        return CatalogStats(
            total=len(records),
            in_stock=sum(1 for record in records if record.in_stock > 0),
            total_value=sum(record.price_amount or 0.0 for record in records),
        )

    @staticmethod
    def page(
        results: Sequence[ListingRecord], index: int, per_page: int = ITEMS_PER_PAGE
    ) -> Page:
        total_pages = max(1, -(-len(results) // per_page))
        index = min(max(index, 0), total_pages - 1)
        start = index * per_page
        return Page(
            items=list(results[start : start + per_page]),
            index=index,
            total_pages=total_pages,
            total_items=len(results),
        )

    # ------------------------------------------------------------------
    # Mutation (engine internal)
    # ------------------------------------------------------------------
    def upsert(self, record: ListingRecord) -> None:
        with self._lock:
            updated = dict(self._records)
            updated[record.id] = record
            self._commit(updated)

    def remove(self, item_id: int) -> bool:
        with self._lock:
            if item_id not in self._records:
                return False
            updated = dict(self._records)
            del updated[item_id]
            self._commit(updated)
            return True

    def _commit(self, records: dict[int, ListingRecord]) -> None:
        ordered = [records[key].to_json() for key in sorted(records)]
        # Raises PersistenceError before memory is touched.
        self.snapshot.write(ordered)
        self._records = records


__all__ = ["Catalog", "CatalogStats", "ITEMS_PER_PAGE", "Page", "records_from_entries"]
