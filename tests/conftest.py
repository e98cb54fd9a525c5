"""Shared test fixtures for pytest.

Provides a small two-symbol market (BTC, ETH) with known prices, a fresh
ledger and order book, and a controllable fake broker.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from papertrader.execution.engine import ExecutionEngine
from papertrader.execution.order_book import OrderBook
from papertrader.market_data.price_store import PriceStore
from papertrader.portfolio.ledger import Ledger
from papertrader.types import AiDecision, ExecutionResult, PricePoint

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
SYMBOLS = ("BTC", "ETH")


class FakeBroker:
    """Broker double: records calls, optional latency, failure or status override."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Decimal]] = []
        self.latency = 0.0
        self.error: Optional[Exception] = None
        self.status = "FILLED"

    async def submit(self, symbol: str, side: str, quantity: Decimal) -> ExecutionResult:
        self.calls.append((symbol, side, quantity))
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.error is not None:
            raise self.error
        return ExecutionResult(order_id=str(len(self.calls)), status=self.status, executed_qty=quantity)


class StaticPolicy:
    """Decision policy double returning a fixed decision and recording calls."""

    def __init__(self, decision: AiDecision) -> None:
        self.decision = decision
        self.calls: list[tuple[str, Decimal, list[Decimal], Decimal]] = []

    async def decide(self, symbol, price, recent_prices, cash_balance):
        self.calls.append((symbol, price, list(recent_prices), cash_balance))
        return self.decision


def minute_series(prices: list[str], start: datetime = T0) -> list[PricePoint]:
    """One PricePoint per minute starting at `start`."""
    return [PricePoint(timestamp=start + timedelta(minutes=i), price=Decimal(p)) for i, p in enumerate(prices)]


@pytest.fixture
def price_store() -> PriceStore:
    """Price store with BTC at 50000 and ETH at 3000."""
    store = PriceStore(SYMBOLS)
    store.apply_update("BTC", Decimal("50000"), Decimal("1.5"), timestamp=T0)
    store.apply_update("ETH", Decimal("3000"), Decimal("-0.5"), timestamp=T0)
    return store


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(SYMBOLS, initial_cash=Decimal("100000"))


@pytest.fixture
def order_book() -> OrderBook:
    return OrderBook()


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def engine(ledger: Ledger, order_book: OrderBook, price_store: PriceStore, fake_broker: FakeBroker) -> ExecutionEngine:
    counter = iter(range(1, 1_000_000))
    return ExecutionEngine(
        ledger=ledger,
        order_book=order_book,
        price_store=price_store,
        broker=fake_broker,
        broker_timeout_seconds=1.0,
        id_factory=lambda: f"order-{next(counter)}",
        clock=lambda: T0,
    )
