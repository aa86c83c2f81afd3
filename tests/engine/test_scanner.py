from __future__ import annotations

from threading import Event

import pytest

from market_sync.engine import RangeScanner, expand_ranges, split_range
from market_sync.errors import ConfigurationError, PersistenceError


class RecordingMerger:
    """Wrap the real merger and remember which ids were probed before each merge."""

    def __init__(self, merger, prober) -> None:
        self.merger = merger
        self.prober = prober
        self.snapshots: list[list[int]] = []

    def merge(self):
        self.snapshots.append(sorted(self.prober.calls))
        return self.merger.merge()


def build_scanner(prober, staging, merger, thread_pool, sync_settings, **kwargs) -> RangeScanner:
    return RangeScanner(prober, staging, merger, thread_pool, sync_settings.scan, **kwargs)


def test_split_range_covers_interval() -> None:
    assert list(split_range(101, 400, 100)) == [(101, 200), (201, 300), (301, 400)]
    assert list(split_range(1, 5, 2)) == [(1, 2), (3, 4), (5, 5)]


def test_expand_ranges_coalesces_and_clamps() -> None:
    assert expand_ranges([(5, 20), (40, 40), (100, 120)], 10) == [(1, 50), (90, 130)]
    assert expand_ranges([], 10) == []


def test_incremental_scans_windows_in_order(
    stub_prober, staging, merger, thread_pool, sync_settings
) -> None:
    prober = stub_prober()
    recording = RecordingMerger(merger, prober)
    scanner = build_scanner(prober, staging, recording, thread_pool, sync_settings)

    summary = scanner.incremental(cursor=100, window=300, batch_size=100)

    assert summary.batches == 3
    assert summary.checked == 300
    assert recording.snapshots[0] == list(range(101, 201))
    assert recording.snapshots[1] == list(range(101, 301))
    assert recording.snapshots[2] == list(range(101, 401))


def test_full_sweep_stages_active_and_merges(
    stub_prober, make_listing, staging, merger, catalog, thread_pool, sync_settings
) -> None:
    prober = stub_prober(
        [
            make_listing(3),
            make_listing(4, in_stock=0),
            make_listing(12, operation="buy", in_stock=0),
            make_listing(18, is_sold_out=1),
        ]
    )
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)

    summary = scanner.full_sweep(1, 20, batch_size=10)

    assert sorted(catalog.view()) == [3, 12]
    assert summary.found == 2
    assert summary.checked == 20
    assert summary.batches == 2
    assert summary.added == 2
    assert staging.drain() == []


def test_interrupted_sweep_keeps_completed_batches(
    stub_prober, make_listing, staging, merger, catalog, thread_pool, sync_settings
) -> None:
    prober = stub_prober([make_listing(i) for i in (2, 15, 25)])

    def crash(item_id: int) -> None:
        if item_id == 21:
            raise KeyboardInterrupt

    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)
    prober.hook = crash
    with pytest.raises(KeyboardInterrupt):
        scanner.full_sweep(1, 30, batch_size=10)

    assert sorted(catalog.view()) == [2, 15]

    # The next run discards the partial batch before probing again.
    prober.hook = None
    scanner.full_sweep(21, 30, batch_size=10)
    assert sorted(catalog.view()) == [2, 15, 25]


def test_cancel_between_batches(
    stub_prober, make_listing, staging, merger, catalog, thread_pool, sync_settings
) -> None:
    prober = stub_prober([make_listing(i) for i in (1, 11, 21)])
    cancel = Event()
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings, cancel_event=cancel)

    def stop_after_first_batch(item_id: int) -> None:
        if item_id == 10:
            cancel.set()

    prober.hook = stop_after_first_batch
    summary = scanner.full_sweep(1, 30, batch_size=10)

    assert summary.cancelled
    assert summary.batches == 1
    assert max(prober.calls) == 10
    assert sorted(catalog.view()) == [1]


def test_probe_crash_counts_as_failed(
    stub_prober, make_listing, staging, merger, catalog, thread_pool, sync_settings
) -> None:
    prober = stub_prober([make_listing(1), make_listing(2)])

    def flaky(item_id: int) -> None:
        if item_id == 2:
            raise RuntimeError("parser bug")

    prober.hook = flaky
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)
    summary = scanner.full_sweep(1, 4, batch_size=4)

    assert summary.failed == 1
    assert sorted(catalog.view()) == [1]


def test_merge_failure_stops_sweep(
    stub_prober, make_listing, staging, merger, thread_pool, sync_settings, monkeypatch
) -> None:
    prober = stub_prober([make_listing(1), make_listing(15)])

    def failing_merge():
        raise PersistenceError("disk full")

    monkeypatch.setattr(merger, "merge", failing_merge)
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)
    summary = scanner.full_sweep(1, 30, batch_size=10)

    assert summary.error == "disk full"
    assert summary.batches == 0
    assert max(prober.calls) == 10


def test_invalid_ranges_rejected(stub_prober, staging, merger, thread_pool, sync_settings) -> None:
    scanner = build_scanner(stub_prober(), staging, merger, thread_pool, sync_settings)
    with pytest.raises(ConfigurationError):
        scanner.full_sweep(0, 10)
    with pytest.raises(ConfigurationError):
        scanner.full_sweep(10, 5)
    with pytest.raises(ConfigurationError):
        scanner.discover(start=5, ceiling=1)


def test_discovery_finds_ranges_and_refines(
    stub_prober, make_listing, staging, merger, catalog, thread_pool, sync_settings
) -> None:
    dense = [make_listing(i) for i in range(30, 56)] + [make_listing(i) for i in range(95, 103)]
    dense.append(make_listing(41, in_stock=0))
    prober = stub_prober(dense)
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)

    summary = scanner.discover(start=1, ceiling=1000, step=10, empty_run_limit=5)

    # Samples 1..21 are empty, 31..51 found, 61..91 empty, 101 found, then
    # five empties in a row end the discovery pass at 151.
    sampled = [item_id for item_id in prober.calls if item_id % 10 == 1]
    assert max(sampled) == 151
    assert summary.ranges == [(21, 61), (91, 111)]
    expected = set(range(30, 56)) - {41} | set(range(95, 103))
    assert set(catalog.view()) == expected


def test_discovery_without_hits_probes_nothing_else(
    stub_prober, staging, merger, catalog, thread_pool, sync_settings
) -> None:
    prober = stub_prober()
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)
    summary = scanner.discover(start=1, ceiling=500, step=10, empty_run_limit=3)
    assert summary.ranges == []
    # Samples go out one chunk (4 wide) at a time.
    assert sorted(prober.calls) == [1, 11, 21, 31]
    assert len(catalog) == 0


def test_staging_reset_failure_recorded_in_summary(
    stub_prober, make_listing, staging, merger, thread_pool, sync_settings, monkeypatch
) -> None:
    prober = stub_prober([make_listing(1)])

    def failing_clear():
        raise PersistenceError("staging is read-only")

    monkeypatch.setattr(staging, "clear", failing_clear)
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)
    summary = scanner.full_sweep(1, 30, batch_size=10)

    assert summary.error == "staging is read-only"
    assert summary.batches == 0
    assert prober.calls == []


def test_explicit_zero_sizes_are_rejected(
    stub_prober, staging, merger, thread_pool, sync_settings
) -> None:
    prober = stub_prober()
    scanner = build_scanner(prober, staging, merger, thread_pool, sync_settings)
    with pytest.raises(ConfigurationError):
        scanner.full_sweep(1, 10, batch_size=0)
    with pytest.raises(ConfigurationError):
        scanner.incremental(5, window=0)
    with pytest.raises(ConfigurationError):
        scanner.incremental(5, window=10, batch_size=0)
    with pytest.raises(ConfigurationError):
        scanner.discover(start=1, ceiling=100, step=0)
    with pytest.raises(ConfigurationError):
        scanner.discover(start=1, ceiling=100, empty_run_limit=0)
    with pytest.raises(ConfigurationError):
        scanner.discover(start=1, ceiling=0)
    assert prober.calls == []
