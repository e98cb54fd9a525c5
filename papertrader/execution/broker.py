"""Simulated broker.

Stands in for an exchange order endpoint: waits a short latency, then confirms
the market order as filled for the full quantity. Nothing is ever sent to a
real exchange.
"""

from __future__ import annotations

import asyncio
import logging
import random
from decimal import Decimal
from typing import Optional

from papertrader.errors import ExternalCallError
from papertrader.types import ExecutionResult, OrderSide, utc_now

logger = logging.getLogger(__name__)


class SimulatedBroker:
    """Fire-and-confirm broker for paper trading."""

    def __init__(self, *, latency_seconds: float = 0.5, quote: str = "USDT") -> None:
        """Initialize the broker.

        Args:
            latency_seconds: Simulated round-trip time per order
            quote: Quote currency appended to symbols in the confirmation
        """
        self.latency_seconds = latency_seconds
        self.quote = quote
        self.submitted: list[tuple[str, OrderSide, Decimal]] = []
        self._pending_failure: Optional[Exception] = None

    def fail_next(self, error: Optional[Exception] = None) -> None:
        """Make the next submission fail (fault injection)."""
        self._pending_failure = error or ExternalCallError("Simulated broker failure")

    async def submit(self, symbol: str, side: OrderSide, quantity: Decimal) -> ExecutionResult:
        logger.info("[broker] Executing %s %s %s%s", side, quantity, symbol, self.quote)
        self.submitted.append((symbol, side, quantity))
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

        if self._pending_failure is not None:
            error, self._pending_failure = self._pending_failure, None
            raise error

        order_id = str(random.randint(1, 999_999))
        return ExecutionResult(
            order_id=order_id,
            status="FILLED",
            executed_qty=quantity,
            raw={
                "symbol": f"{symbol}{self.quote}",
                "orderId": order_id,
                "status": "FILLED",
                "transactTime": int(utc_now().timestamp() * 1000),
                "price": "MARKET",
                "origQty": str(quantity),
                "executedQty": str(quantity),
                "side": side,
                "type": "MARKET",
            },
        )
