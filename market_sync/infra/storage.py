"""File storage helpers for the persisted catalog snapshot."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any

import structlog

from ..errors import PersistenceError


class SnapshotFile:
    """A JSON array on disk that is only ever replaced wholesale.

    Writes go to a temporary sibling, are fsynced and then moved over the
    target with :func:`os.replace`, so readers see either the previous or the
    new complete snapshot.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = Lock()
        self.logger = structlog.get_logger("market_sync.storage").bind(path=str(path))

    def read(self) -> list[dict[str, Any]]:
        """Return stored entries; a missing or corrupt file reads as empty."""

        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.logger.error("snapshot_unreadable", error=str(exc))
            return []
        if not isinstance(payload, list):
            self.logger.error("snapshot_not_array", kind=type(payload).__name__)
            return []
        return [entry for entry in payload if isinstance(entry, dict)]

    def write(self, entries: list[dict[str, Any]]) -> None:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as stream:
                        json.dump(entries, stream, ensure_ascii=False, indent=2)
                        stream.flush()
                        os.fsync(stream.fileno())
                    os.replace(tmp_name, self.path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as exc:
                self.logger.error("snapshot_write_failed", error=str(exc))
                raise PersistenceError(f"Could not write {self.path}: {exc}") from exc
        self.logger.debug("snapshot_written", entries=len(entries))


__all__ = ["SnapshotFile"]
