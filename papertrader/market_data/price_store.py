"""In-memory price store.

Holds the latest quote, 24h change and a bounded price history per symbol.
Ticks that land in the same time bucket as the last history point replace it,
so the history has at most one point per bucket.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence

from papertrader.types import PricePoint, PriceSnapshot, PriceUpdate, utc_now

logger = logging.getLogger(__name__)


@dataclass
class _SymbolState:
    price: Decimal = Decimal("0")
    change_24h: Decimal = Decimal("0")
    series: list[PricePoint] = field(default_factory=list)
    seeded: bool = False


def _to_decimal(value: object) -> Optional[Decimal]:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


class PriceStore:
    """Latest price and bounded price history per symbol.

    Not thread-safe; all calls are expected from the session's event loop.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        *,
        history_limit: int = 50,
        bucket_seconds: int = 60,
    ) -> None:
        """Initialize the store.

        Args:
            symbols: Supported symbols (fixed for the session)
            history_limit: Maximum number of history points per symbol
            bucket_seconds: Width of the time bucket used to merge ticks
        """
        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        if bucket_seconds < 1:
            raise ValueError("bucket_seconds must be >= 1")
        self._history_limit = history_limit
        self._bucket_seconds = bucket_seconds
        self._state: dict[str, _SymbolState] = {symbol: _SymbolState() for symbol in symbols}

    @property
    def symbols(self) -> tuple[str, ...]:
        return tuple(self._state)

    def _bucket(self, timestamp: datetime) -> int:
        return int(timestamp.timestamp()) // self._bucket_seconds

    def apply_update(
        self,
        symbol: str,
        price: object,
        change_24h: object = Decimal("0"),
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Merge a price tick into the symbol's history.

        Invalid ticks (unknown symbol, non-positive or non-numeric price) are
        dropped, as are ticks from a bucket earlier than the last point's.

        Returns:
            True if the tick was applied
        """
        state = self._state.get(symbol)
        if state is None:
            logger.debug("Dropping tick for unsupported symbol %s", symbol)
            return False

        parsed_price = _to_decimal(price)
        if parsed_price is None or parsed_price <= 0:
            logger.debug("Dropping invalid tick for %s: price=%r", symbol, price)
            return False
        parsed_change = _to_decimal(change_24h)

        if not self._merge_point(state, PricePoint(timestamp=timestamp or utc_now(), price=parsed_price)):
            logger.debug("Dropping late tick for %s at %s", symbol, timestamp)
            return False
        state.price = parsed_price
        if parsed_change is not None:
            state.change_24h = parsed_change
        return True

    def apply(self, update: PriceUpdate) -> bool:
        """Apply a normalized feed event."""
        return self.apply_update(update.symbol, update.price, update.change_24h, update.timestamp)

    def _merge_point(self, state: _SymbolState, point: PricePoint) -> bool:
        """Append or replace the last point; False if the point is from an earlier bucket."""
        series = state.series
        if series:
            last = series[-1]
            bucket, last_bucket = self._bucket(point.timestamp), self._bucket(last.timestamp)
            if bucket < last_bucket:
                return False
            if bucket == last_bucket:
                series[-1] = PricePoint(timestamp=max(last.timestamp, point.timestamp), price=point.price)
                return True
        series.append(point)
        if len(series) > self._history_limit:
            del series[: len(series) - self._history_limit]
        return True

    def seed_history(self, symbol: str, series: Optional[Sequence[PricePoint]]) -> bool:
        """Bulk-load history for a symbol, once.

        An unavailable history (None or empty) leaves the symbol with price 0,
        which disables trading on it until a tick arrives.

        Returns:
            True if points were loaded
        """
        state = self._state.get(symbol)
        if state is None:
            raise ValueError(f"Unsupported symbol: {symbol}")
        if state.seeded:
            logger.warning("History for %s already seeded; ignoring", symbol)
            return False
        state.seeded = True

        if not series:
            logger.info("No history available for %s; price unknown until first tick", symbol)
            return False

        valid = sorted((p for p in series if p.price > 0), key=lambda p: p.timestamp)
        if not valid:
            return False

        live = state.series
        state.series = []
        for point in valid:
            if live and point.timestamp >= live[0].timestamp:
                break
            self._merge_point(state, point)
        for point in live:
            self._merge_point(state, point)

        if not live:
            state.price = valid[-1].price
        logger.info("Seeded %d history points for %s", len(state.series), symbol)
        return True

    def snapshot(self, symbol: str) -> PriceSnapshot:
        """Return an immutable copy of the symbol's current state."""
        state = self._state.get(symbol)
        if state is None:
            raise ValueError(f"Unsupported symbol: {symbol}")
        return PriceSnapshot(
            symbol=symbol,
            price=state.price,
            change_24h=state.change_24h,
            series=tuple(state.series),
        )

    def price(self, symbol: str) -> Decimal:
        return self.snapshot(symbol).price

    def prices(self) -> dict[str, Decimal]:
        """Current quote for every symbol (0 when unknown)."""
        return {symbol: state.price for symbol, state in self._state.items()}

    def is_tradable(self, symbol: str) -> bool:
        state = self._state.get(symbol)
        return state is not None and state.price > 0
