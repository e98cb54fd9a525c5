from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from papertrader.types import ConnectionStatus, PricePoint, PriceUpdate

UpdateCallback = Callable[[PriceUpdate], Awaitable[None]]
StatusCallback = Callable[[ConnectionStatus], Awaitable[None]]


class MarketDataFeed(Protocol):
    """Historical snapshot + streaming ticker source."""

    async def fetch_history(self, symbol: str, limit: int = 60) -> Optional[Sequence[PricePoint]]:
        """Return recent price points, or None when unavailable."""

    async def stream_tickers(
        self,
        *,
        symbols: Sequence[str],
        on_update: UpdateCallback,
        on_status: StatusCallback,
        stop_event: asyncio.Event,
    ) -> None:
        """Stream ticker events until `stop_event` is set, reconnecting on failure."""
