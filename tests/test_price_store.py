"""Tests for the in-memory price store."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import T0, minute_series
from papertrader.market_data.price_store import PriceStore
from papertrader.types import PricePoint, PriceUpdate


def test_apply_update_sets_price_and_history():
    store = PriceStore(["BTC"])
    assert store.apply_update("BTC", Decimal("50000"), Decimal("2.5"), timestamp=T0) is True

    snap = store.snapshot("BTC")
    assert snap.price == Decimal("50000")
    assert snap.change_24h == Decimal("2.5")
    assert len(snap.series) == 1
    assert store.is_tradable("BTC")


def test_same_bucket_update_replaces_last_point():
    store = PriceStore(["BTC"])
    store.apply_update("BTC", Decimal("100"), timestamp=T0)
    store.apply_update("BTC", Decimal("101"), timestamp=T0 + timedelta(seconds=30))

    snap = store.snapshot("BTC")
    assert len(snap.series) == 1
    assert snap.series[0].price == Decimal("101")
    assert snap.series[0].timestamp == T0 + timedelta(seconds=30)


def test_new_bucket_appends():
    store = PriceStore(["BTC"])
    store.apply_update("BTC", Decimal("100"), timestamp=T0)
    store.apply_update("BTC", Decimal("102"), timestamp=T0 + timedelta(minutes=1))

    assert store.snapshot("BTC").closes == [Decimal("100"), Decimal("102")]


def test_history_is_capped_and_time_ordered():
    store = PriceStore(["BTC"], history_limit=50)
    for i in range(60):
        store.apply_update("BTC", Decimal(1000 + i), timestamp=T0 + timedelta(minutes=i))

    series = store.snapshot("BTC").series
    assert len(series) == 50
    assert series[0].timestamp == T0 + timedelta(minutes=10)
    assert series[-1].price == Decimal("1059")
    timestamps = [p.timestamp for p in series]
    assert timestamps == sorted(timestamps)


def test_tick_from_earlier_bucket_is_dropped():
    store = PriceStore(["BTC"])
    store.apply_update("BTC", Decimal("51000"), timestamp=T0 + timedelta(minutes=5))

    assert store.apply_update("BTC", Decimal("40000"), timestamp=T0 + timedelta(minutes=1)) is False

    snap = store.snapshot("BTC")
    assert snap.price == Decimal("51000")
    assert len(snap.series) == 1
    assert snap.series[0].timestamp == T0 + timedelta(minutes=5)
    assert snap.series[0].price == Decimal("51000")


def test_earlier_tick_in_same_bucket_keeps_later_timestamp():
    store = PriceStore(["BTC"])
    store.apply_update("BTC", Decimal("100"), timestamp=T0 + timedelta(seconds=40))
    store.apply_update("BTC", Decimal("99"), timestamp=T0 + timedelta(seconds=10))

    snap = store.snapshot("BTC")
    assert snap.price == Decimal("99")
    assert snap.series == (PricePoint(timestamp=T0 + timedelta(seconds=40), price=Decimal("99")),)


@pytest.mark.parametrize("bad_price", [Decimal("0"), Decimal("-5"), "nan", "abc", None])
def test_invalid_ticks_are_dropped(bad_price):
    store = PriceStore(["BTC"])
    store.apply_update("BTC", Decimal("100"), timestamp=T0)

    assert store.apply_update("BTC", bad_price, timestamp=T0 + timedelta(minutes=1)) is False
    snap = store.snapshot("BTC")
    assert snap.price == Decimal("100")
    assert len(snap.series) == 1


def test_unknown_symbol_tick_is_dropped():
    store = PriceStore(["BTC"])
    assert store.apply_update("XRP", Decimal("1"), timestamp=T0) is False
    assert store.prices() == {"BTC": Decimal("0")}


def test_apply_normalized_update():
    store = PriceStore(["ETH"])
    assert store.apply(PriceUpdate(symbol="ETH", price=Decimal("3000"), change_24h=Decimal("-1"), timestamp=T0))
    assert store.price("ETH") == Decimal("3000")


def test_snapshot_is_isolated_from_later_updates():
    store = PriceStore(["BTC"])
    store.apply_update("BTC", Decimal("100"), timestamp=T0)
    before = store.snapshot("BTC")

    store.apply_update("BTC", Decimal("200"), timestamp=T0 + timedelta(minutes=1))

    assert len(before.series) == 1
    assert before.price == Decimal("100")
    assert len(store.snapshot("BTC").series) == 2


def test_snapshot_unknown_symbol_raises():
    store = PriceStore(["BTC"])
    with pytest.raises(ValueError):
        store.snapshot("XRP")


class TestSeedHistory:
    def test_seed_loads_points_and_price(self) -> None:
        store = PriceStore(["BTC"])
        assert store.seed_history("BTC", minute_series(["10", "11", "12"])) is True

        snap = store.snapshot("BTC")
        assert snap.closes == [Decimal("10"), Decimal("11"), Decimal("12")]
        assert snap.price == Decimal("12")

    def test_seed_happens_once(self) -> None:
        store = PriceStore(["BTC"])
        store.seed_history("BTC", minute_series(["10"]))
        assert store.seed_history("BTC", minute_series(["20", "21"])) is False
        assert store.snapshot("BTC").closes == [Decimal("10")]

    def test_unavailable_history_leaves_price_unknown(self) -> None:
        store = PriceStore(["BTC", "ETH"])
        assert store.seed_history("BTC", None) is False
        assert store.seed_history("ETH", []) is False

        assert store.price("BTC") == Decimal("0")
        assert not store.is_tradable("BTC")
        assert store.snapshot("ETH").series == ()

    def test_seed_is_capped(self) -> None:
        store = PriceStore(["BTC"], history_limit=50)
        store.seed_history("BTC", minute_series([str(100 + i) for i in range(60)]))
        assert len(store.snapshot("BTC").series) == 50

    def test_seed_keeps_live_ticks(self) -> None:
        store = PriceStore(["BTC"])
        store.apply_update("BTC", Decimal("99"), timestamp=T0 + timedelta(minutes=5))

        store.seed_history("BTC", minute_series([str(10 + i) for i in range(10)]))

        snap = store.snapshot("BTC")
        assert snap.price == Decimal("99")
        assert snap.closes == [Decimal("10"), Decimal("11"), Decimal("12"), Decimal("13"), Decimal("14"), Decimal("99")]

    def test_seed_unknown_symbol_raises(self) -> None:
        store = PriceStore(["BTC"])
        with pytest.raises(ValueError):
            store.seed_history("XRP", minute_series(["1"]))
