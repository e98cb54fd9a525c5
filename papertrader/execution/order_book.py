from __future__ import annotations

from typing import Optional

from papertrader.errors import InternalConsistencyError
from papertrader.types import Order


class OrderBook:
    """Append-only history of filled orders.

    Orders are stored in fill order; reads for presentation return the newest
    first. The history is never truncated so it stays complete for audit.
    """

    def __init__(self) -> None:
        self._orders: list[Order] = []
        self._by_id: dict[str, Order] = {}

    def __len__(self) -> int:
        return len(self._orders)

    def append(self, order: Order) -> None:
        """Append a filled order.

        Raises:
            InternalConsistencyError: If an order with the same id was already recorded
        """
        if order.id in self._by_id:
            raise InternalConsistencyError(f"Duplicate order id: {order.id}")
        self._orders.append(order)
        self._by_id[order.id] = order

    def get(self, order_id: str) -> Optional[Order]:
        """Get order by ID.

        Args:
            order_id: Order ID

        Returns:
            Order if found, None otherwise
        """
        return self._by_id.get(order_id)

    def newest_first(self, limit: Optional[int] = None) -> list[Order]:
        """Orders newest first, optionally limited to the most recent `limit`."""
        ordered = self._orders[::-1]
        return ordered if limit is None else ordered[:limit]

    def for_symbol(self, symbol: str) -> list[Order]:
        """Orders for one symbol, newest first."""
        return [order for order in reversed(self._orders) if order.symbol == symbol]

    def to_json_list(self) -> list[dict[str, object]]:
        """Export all orders (newest first) as JSON-serializable dicts."""
        return [order.to_dict() for order in reversed(self._orders)]
