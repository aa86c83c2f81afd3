"""Append-only JSONL log of records discovered during one scan unit."""

from __future__ import annotations

import json
import os
from pathlib import Path
from threading import Lock
from typing import Any

import structlog

from ..errors import PersistenceError
from ..models import ListingRecord


class StagingStore:
    """Batch-scoped staging log, drained by the merger and then cleared."""

    def __init__(self, path: Path, logger: structlog.BoundLogger | None = None) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logger or structlog.get_logger("market_sync.staging")
        self._lock = Lock()

    def append(self, record: ListingRecord) -> bool:
        """Durably append one record. Failures are logged, never raised."""

        line = json.dumps(record.to_json(), ensure_ascii=False)
        with self._lock:
            try:
                with self.path.open("a", encoding="utf-8") as stream:
                    stream.write(line)
                    stream.write("\n")
                    stream.flush()
                    os.fsync(stream.fileno())
            except OSError as exc:
                self.logger.error("staging_append_failed", item_id=record.id, error=str(exc))
                return False
        return True

    def drain(self) -> list[dict[str, Any]]:
        """Return every staged entry in append order, skipping broken lines."""

        if not self.path.exists():
            return []
        entries: list[dict[str, Any]] = []
        with self._lock:
            with self.path.open("r", encoding="utf-8", errors="replace") as stream:
                for line_no, line in enumerate(stream, start=1):
                    text = line.strip()
                    if not text:
                        continue
                    try:
                        entry = json.loads(text)
                    except ValueError:
                        self.logger.warning("staging_line_unreadable", line=line_no)
                        continue
                    if isinstance(entry, dict):
                        entries.append(entry)
        return entries

    def clear(self) -> None:
        with self._lock:
            try:
                with self.path.open("w", encoding="utf-8"):
                    pass
            except OSError as exc:
                self.logger.error("staging_clear_failed", error=str(exc))
                raise PersistenceError(f"Could not truncate {self.path}: {exc}") from exc


__all__ = ["StagingStore"]
