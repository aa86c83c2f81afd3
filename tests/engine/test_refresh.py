from __future__ import annotations

from threading import Event

import httpx
import pytest

from market_sync.config import RemoteConfig
from market_sync.engine import ItemProbe, RateLimiter, RefreshSweeper, RetryPolicy, low_stock
from market_sync.errors import ConfigurationError, PersistenceError
from market_sync.models import ListingRecord


def seed(catalog, entries) -> None:
    for entry in entries:
        catalog.upsert(ListingRecord.model_validate(entry))


def test_not_found_removes_record(catalog, stub_prober, make_listing) -> None:
    seed(catalog, [make_listing(1, in_stock=5, is_sold_out=0)])
    sweeper = RefreshSweeper(catalog, stub_prober())

    summary = sweeper.refresh(lambda record: True)

    assert len(catalog) == 0
    assert (summary.checked, summary.updated, summary.removed) == (1, 0, 1)
    assert catalog.snapshot.read() == []


def test_low_stock_refresh_updates_and_evicts(catalog, stub_prober, make_listing) -> None:
    seed(
        catalog,
        [
            make_listing(1, in_stock=1),
            make_listing(2, in_stock=1),
            make_listing(3, in_stock=9),
            make_listing(4, in_stock=0, operation="buy"),
        ],
    )
    prober = stub_prober(
        [
            make_listing(1, in_stock=4, title="Restocked"),
            make_listing(2, in_stock=0),
            make_listing(3, in_stock=0),
        ]
    )
    summary = RefreshSweeper(catalog, prober).refresh(low_stock(2))

    assert sorted(prober.calls) == [1, 2]
    assert (summary.checked, summary.updated, summary.removed) == (2, 1, 1)
    view = catalog.view()
    assert sorted(view) == [1, 3, 4]
    assert view[1].in_stock == 4 and view[1].title == "Restocked"
    persisted = {entry["id"]: entry for entry in catalog.snapshot.read()}
    assert persisted[1]["in_stock"] == 4
    assert 2 not in persisted


def test_refresh_never_adds_identifiers(catalog, stub_prober, make_listing) -> None:
    seed(catalog, [make_listing(10, in_stock=1)])

    class WrongIdProber:
        def probe(self, item_id):
            result = stub_prober([make_listing(99)]).probe(99)
            result.item_id = item_id
            return result

    RefreshSweeper(catalog, WrongIdProber()).refresh(lambda record: True)
    assert sorted(catalog.view()) == [10]


def test_refresh_requires_catalog(catalog, stub_prober) -> None:
    prober = stub_prober()
    with pytest.raises(ConfigurationError):
        RefreshSweeper(catalog, prober).refresh(lambda record: True)
    assert prober.calls == []


def test_each_item_persisted_before_next(catalog, stub_prober, make_listing) -> None:
    seed(catalog, [make_listing(i, in_stock=1) for i in (1, 2, 3)])
    prober = stub_prober()

    def crash_on_third(item_id: int) -> None:
        if item_id == 3:
            raise KeyboardInterrupt

    prober.hook = crash_on_third
    with pytest.raises(KeyboardInterrupt):
        RefreshSweeper(catalog, prober).refresh(lambda record: True)

    assert [entry["id"] for entry in catalog.snapshot.read()] == [3]


def test_cancel_stops_between_items(catalog, stub_prober, make_listing) -> None:
    seed(catalog, [make_listing(i, in_stock=1) for i in (1, 2, 3)])
    cancel = Event()
    prober = stub_prober([make_listing(i, in_stock=1) for i in (1, 2, 3)])
    prober.hook = lambda item_id: cancel.set()

    summary = RefreshSweeper(catalog, prober, cancel_event=cancel).refresh(lambda r: True)

    assert summary.cancelled
    assert summary.checked == 1
    assert prober.calls == [1]


def test_persist_failure_aborts_sweep(catalog, stub_prober, make_listing, monkeypatch) -> None:
    seed(catalog, [make_listing(i, in_stock=1) for i in (1, 2)])

    def failing_write(entries):
        raise PersistenceError("read-only filesystem")

    monkeypatch.setattr(catalog.snapshot, "write", failing_write)
    prober = stub_prober()
    summary = RefreshSweeper(catalog, prober).refresh(lambda record: True)

    assert summary.error == "read-only filesystem"
    assert prober.calls == [1]
    assert sorted(catalog.view()) == [1, 2]


def test_low_stock_predicate(make_listing) -> None:
    predicate = low_stock(2)
    assert predicate(ListingRecord.model_validate(make_listing(1, in_stock=1)))
    assert not predicate(ListingRecord.model_validate(make_listing(1, in_stock=2)))
    assert not predicate(ListingRecord.model_validate(make_listing(1, in_stock=0, operation="buy")))


def test_unreadable_remote_stock_evicts_instead_of_aborting(
    catalog, make_listing, fake_clock
) -> None:
    seed(catalog, [make_listing(1, in_stock=1), make_listing(2, in_stock=1)])

    def handler(request: httpx.Request) -> httpx.Response:
        item_id = int(request.url.params["id"])
        stock = {"n": 1} if item_id == 1 else 3
        return httpx.Response(200, json={"status": "ok", "data": {"id": item_id, "in_stock": stock}})

    prober = ItemProbe(
        RemoteConfig(lookup_url="https://api.example.test/listing"),
        RateLimiter(max_per_second=100, min_interval=0.0, clock=fake_clock),
        RetryPolicy(max_attempts=1),
        clock=fake_clock,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    summary = RefreshSweeper(catalog, prober).refresh(lambda record: True)

    assert (summary.checked, summary.updated, summary.removed, summary.failed) == (2, 1, 1, 1)
    assert sorted(catalog.view()) == [2]
    assert catalog.view()[2].in_stock == 3
