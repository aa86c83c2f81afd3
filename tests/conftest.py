"""Shared fixtures: virtual clock, stub prober, temp settings and catalogs."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable

import pytest

# Keep log files out of the working tree for the whole session.
os.environ.setdefault("MARKET_SYNC_HOME", tempfile.mkdtemp(prefix="market-sync-tests-"))

from market_sync.catalog import Catalog
from market_sync.config import (
    ConfigLocator,
    ConfigRepository,
    RateLimitConfig,
    ScanConfig,
    StorageConfig,
    SyncConfig,
)
from market_sync.engine import (
    CatalogMerger,
    ProbeOutcome,
    ProbeResult,
    StagingStore,
    ThreadPoolManager,
)
from market_sync.infra import SnapshotFile
from market_sync.models import ListingRecord


class FakeClock:
    """Virtual clock: ``sleep`` advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self._lock = Lock()

    def monotonic(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            if seconds > 0:
                self.now += seconds


class StubProber:
    """Answer probes from a table of payload dicts keyed by id.

    Missing ids are NOT_FOUND. Every probed id is recorded in call order.
    """

    def __init__(self, listings: dict[int, dict[str, Any]] | None = None) -> None:
        self.listings = dict(listings or {})
        self.calls: list[int] = []
        self._lock = Lock()
        self.hook: Callable[[int], None] | None = None

    def probe(self, item_id: int) -> ProbeResult:
        with self._lock:
            self.calls.append(item_id)
        if self.hook is not None:
            self.hook(item_id)
        payload = self.listings.get(item_id)
        if payload is None:
            return ProbeResult(item_id, ProbeOutcome.NOT_FOUND)
        record = ListingRecord.model_validate({"id": item_id, **payload})
        outcome = ProbeOutcome.ACTIVE if record.is_active else ProbeOutcome.INACTIVE
        return ProbeResult(item_id, outcome, record=record)


def listing(item_id: int, **overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {
        "id": item_id,
        "title": f"Item {item_id}",
        "slug": f"item-{item_id}",
        "price": 1000 + item_id,
        "in_stock": 5,
        "is_sold_out": 0,
        "operation": "sell",
        "user_name": "trader",
    }
    base.update(overrides)
    return base


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_listing() -> Callable[..., dict[str, Any]]:
    return listing


@pytest.fixture
def stub_prober() -> Callable[..., StubProber]:
    def _builder(listings: Iterable[dict[str, Any]] = ()) -> StubProber:
        return StubProber({entry["id"]: entry for entry in listings})

    return _builder


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(
        catalog_path=tmp_path / "marketplace_data.json",
        staging_path=tmp_path / "staging.jsonl",
    )


@pytest.fixture
def sync_settings(storage_config: StorageConfig) -> SyncConfig:
    return SyncConfig(
        storage=storage_config,
        rate_limit=RateLimitConfig(max_per_second=1000, min_interval=0.0),
        scan=ScanConfig(
            chunk_size=4,
            batch_size=10,
            discovery_step=10,
            empty_run_limit=3,
            discovery_ceiling=1000,
            refinement_margin=10,
            incremental_window=30,
            incremental_batch=10,
        ),
        enable_progress_bar=False,
    )


@pytest.fixture
def catalog(storage_config: StorageConfig) -> Catalog:
    cat = Catalog(SnapshotFile(storage_config.catalog_path))
    cat.reload()
    return cat


@pytest.fixture
def staging(storage_config: StorageConfig) -> StagingStore:
    return StagingStore(storage_config.staging_path)


@pytest.fixture
def merger(catalog: Catalog, staging: StagingStore) -> CatalogMerger:
    return CatalogMerger(catalog, staging)


@pytest.fixture
def thread_pool() -> Iterable[ThreadPoolManager]:
    manager = ThreadPoolManager(default_workers=4)
    yield manager
    manager.shutdown()


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("MARKET_SYNC_HOME", str(tmp_path))
    monkeypatch.delenv("MARKET_SYNC_API_TOKEN", raising=False)
    return ConfigRepository(ConfigLocator(project_root=tmp_path))
