"""Binance market data collaborator.

- REST: 1m klines for the startup history snapshot
- WebSocket: combined ``@miniTicker`` stream for live prices and 24h change

Only public endpoints are used; no credentials are required.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Collection, Mapping, Optional, Sequence

import requests
import websockets

from papertrader.errors import PermanentError, classify_http_error
from papertrader.market_data.interfaces import StatusCallback, UpdateCallback
from papertrader.types import PricePoint, PriceUpdate

logger = logging.getLogger(__name__)


def to_binance_symbol(symbol: str, quote: str = "USDT") -> str:
    """Map a base asset (e.g. 'btc') to the Binance pair (e.g. 'BTCUSDT')."""
    s = symbol.strip().upper()
    if not s:
        raise ValueError("symbol is required")
    return s if s.endswith(quote) else f"{s}{quote}"


def _decimal(value: object) -> Optional[Decimal]:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def parse_mini_ticker(
    payload: object,
    symbols: Collection[str],
    quote: str = "USDT",
) -> Optional[PriceUpdate]:
    """Parse a combined-stream miniTicker message into a PriceUpdate.

    Message shape: ``{"stream": "btcusdt@miniTicker", "data": {"s": "BTCUSDT",
    "c": "65000.1", "o": "64000", "E": 1700000000000, ...}}``. The 24h change
    uses ``P`` when the event carries it (full ticker), otherwise it is derived
    from the open and close prices.

    Returns:
        PriceUpdate, or None for malformed or unrelated messages
    """
    if not isinstance(payload, Mapping):
        return None
    data = payload.get("data", payload)
    if not isinstance(data, Mapping):
        return None

    pair = data.get("s")
    if not isinstance(pair, str) or not pair.endswith(quote):
        return None
    symbol = pair[: -len(quote)]
    if symbol not in symbols:
        return None

    price = _decimal(data.get("c"))
    if price is None or price <= 0:
        return None

    change = _decimal(data["P"]) if "P" in data else None
    if change is None:
        open_price = _decimal(data.get("o"))
        if open_price is not None and open_price > 0:
            change = (price - open_price) / open_price * Decimal("100")
        else:
            change = Decimal("0")

    event_time = data.get("E")
    timestamp = None
    if isinstance(event_time, (int, float)) and not isinstance(event_time, bool):
        timestamp = datetime.fromtimestamp(event_time / 1000, tz=timezone.utc)

    return PriceUpdate(symbol=symbol, price=price, change_24h=change, timestamp=timestamp)


class BinanceMarketData:
    """Binance REST history + WebSocket ticker client."""

    rest_url = "https://api.binance.com/api/v3"
    stream_url = "wss://stream.binance.com:9443/stream"

    def __init__(
        self,
        *,
        quote: str = "USDT",
        timeout_s: int = 10,
        max_retries: int = 3,
        initial_backoff_s: float = 1.0,
        max_backoff_s: float = 30.0,
    ) -> None:
        self.quote = quote
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.initial_backoff_s = initial_backoff_s
        self.max_backoff_s = max_backoff_s

    # ------------------------------------------------------------------
    # History snapshot
    # ------------------------------------------------------------------

    def _fetch_klines(self, symbol: str, limit: int) -> list[list[object]]:
        """Fetch 1m klines (blocking).

        Response format: [[open_time, open, high, low, close, volume, close_time, ...], ...]

        Raises:
            PermanentError: On a 4xx other than 429 (not retried)
            RuntimeError: When every attempt failed
        """
        params = {
            "symbol": to_binance_symbol(symbol, self.quote),
            "interval": "1m",
            "limit": str(limit),
        }

        backoff = 0.5
        last_err: Exception | None = None

        for _ in range(self.max_retries):
            try:
                resp = requests.get(f"{self.rest_url}/klines", params=params, timeout=self.timeout_s)
                if resp.status_code == 429:
                    time.sleep(backoff)
                    backoff = min(8.0, backoff * 2)
                    continue
                if 400 <= resp.status_code < 500:
                    raise classify_http_error(resp.status_code, f"GET klines for {symbol} failed: {resp.text[:200]}")
                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, list):
                    raise RuntimeError(f"Unexpected response type: {type(data)}")
                return data
            except PermanentError:
                raise
            except Exception as exc:
                last_err = exc
                time.sleep(backoff)
                backoff = min(8.0, backoff * 2)

        raise RuntimeError(f"Binance kline fetch failed for {symbol}") from last_err

    async def fetch_history(self, symbol: str, limit: int = 60) -> Optional[Sequence[PricePoint]]:
        """Fetch the last `limit` one-minute closes for a symbol.

        Returns:
            Price points oldest first, or None when the history is unavailable
        """
        loop = asyncio.get_running_loop()
        try:
            rows = await loop.run_in_executor(None, self._fetch_klines, symbol, limit)
        except Exception as exc:
            logger.warning("Failed to fetch history for %s: %s", symbol, exc)
            return None

        points: list[PricePoint] = []
        for row in rows:
            try:
                open_time = datetime.fromtimestamp(int(row[0]) / 1000, tz=timezone.utc)
                close = Decimal(str(row[4]))
            except (IndexError, TypeError, ValueError, InvalidOperation):
                logger.debug("Skipping malformed kline for %s: %r", symbol, row)
                continue
            points.append(PricePoint(timestamp=open_time, price=close))
        return points or None

    # ------------------------------------------------------------------
    # Live stream
    # ------------------------------------------------------------------

    def stream_url_for(self, symbols: Sequence[str]) -> str:
        streams = "/".join(f"{to_binance_symbol(s, self.quote).lower()}@miniTicker" for s in sorted(symbols))
        return f"{self.stream_url}?streams={streams}"

    async def stream_tickers(
        self,
        *,
        symbols: Sequence[str],
        on_update: UpdateCallback,
        on_status: StatusCallback,
        stop_event: asyncio.Event,
    ) -> None:
        """Stream miniTicker updates until `stop_event` is set.

        Reconnects with exponential backoff; every (re)connect reports
        ``connecting`` then ``connected``, every drop ``disconnected``.
        Malformed messages are dropped.
        """
        if not symbols:
            return

        wanted = set(symbols)
        url = self.stream_url_for(symbols)

        backoff = self.initial_backoff_s
        while not stop_event.is_set():
            try:
                await on_status("connecting")
                async with websockets.connect(url, ping_interval=20, ping_timeout=20) as ws:
                    await on_status("connected")
                    backoff = self.initial_backoff_s
                    async for message in ws:
                        if stop_event.is_set():
                            break
                        try:
                            payload = json.loads(message)
                        except (TypeError, ValueError):
                            logger.debug("Dropping non-JSON ticker message")
                            continue
                        update = parse_mini_ticker(payload, wanted, self.quote)
                        if update is not None:
                            await on_update(update)
                await on_status("disconnected")
            except Exception as exc:
                logger.warning("Binance WebSocket error: %s", exc)
                await on_status("disconnected")
            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=backoff)
            except asyncio.TimeoutError:
                logger.debug("Binance WebSocket backoff expired; reconnecting")
            backoff = min(backoff * 2, self.max_backoff_s)
