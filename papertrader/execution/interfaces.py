from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from papertrader.types import ExecutionResult, OrderSide


class OrderExecutor(Protocol):
    """Execution collaborator (simulated or real broker)."""

    async def submit(self, symbol: str, side: OrderSide, quantity: Decimal) -> ExecutionResult:
        """Submit a market order and return the broker confirmation.

        The result confirms the order; it is not used as a source of fill price.
        Implementations raise on failure.
        """
