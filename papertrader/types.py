from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Mapping, Optional

OrderSide = Literal["BUY", "SELL"]
DecisionAction = Literal["BUY", "SELL", "HOLD"]
OrderStatus = Literal["PENDING", "FILLED", "CANCELLED"]
ConnectionStatus = Literal["connecting", "connected", "disconnected"]


def utc_now() -> datetime:
    """Return a timezone-aware timestamp in UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PricePoint:
    timestamp: datetime
    price: Decimal


@dataclass(frozen=True)
class PriceUpdate:
    """Normalized ticker event coming from a market data feed."""

    symbol: str
    price: Decimal
    change_24h: Decimal
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PriceSnapshot:
    """Read-only view of one symbol in the price store.

    A price of 0 means the price is unknown and the symbol is not tradable.
    """

    symbol: str
    price: Decimal
    change_24h: Decimal
    series: tuple[PricePoint, ...] = ()

    @property
    def closes(self) -> list[Decimal]:
        return [point.price for point in self.series]


@dataclass(frozen=True)
class Asset:
    symbol: str
    balance: Decimal = Decimal("0")
    average_entry_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class Portfolio:
    cash_balance: Decimal
    assets: Mapping[str, Asset]

    def balance_of(self, symbol: str) -> Decimal:
        return self.assets[symbol].balance


@dataclass(frozen=True)
class OrderIntent:
    symbol: str
    side: OrderSide
    amount: Decimal
    price: Decimal
    is_automated: bool = False
    reason: Optional[str] = None

    @property
    def notional(self) -> Decimal:
        return self.amount * self.price


@dataclass(frozen=True)
class Order:
    """Immutable record of a filled order.

    Price and amount are the requested values; the broker result is only a
    confirmation.
    """

    id: str
    symbol: str
    side: OrderSide
    price: Decimal
    amount: Decimal
    total: Decimal
    timestamp: datetime
    status: OrderStatus = "FILLED"
    is_automated: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side,
            "price": str(self.price),
            "amount": str(self.amount),
            "total": str(self.total),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "is_automated": self.is_automated,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Confirmation returned by an execution collaborator (broker)."""

    order_id: str
    status: str
    executed_qty: Decimal
    raw: Optional[Mapping[str, object]] = None


@dataclass(frozen=True)
class AiDecision:
    action: DecisionAction
    confidence: float  # 0-100
    reason: str
    suggested_amount: Optional[Decimal] = None

    @classmethod
    def hold(cls, reason: str) -> AiDecision:
        return cls(action="HOLD", confidence=0.0, reason=reason)
