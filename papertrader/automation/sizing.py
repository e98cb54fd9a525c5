"""Fixed-fraction position sizing for automated signals.

- BUY: spend a fixed fraction of available cash
- SELL: sell a fixed fraction of the current holding

Sizing is not risk-adjusted; signals whose notional falls at or below the
minimum are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from papertrader.config import SimulatorConfig
from papertrader.types import OrderSide, Portfolio


@dataclass(frozen=True)
class SizingResult:
    """Sized order amount, or the reason the signal was ignored."""

    amount: Decimal
    notional: Decimal
    ignored_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.ignored_reason is None


def size_order(
    side: OrderSide,
    portfolio: Portfolio,
    symbol: str,
    price: Decimal,
    config: SimulatorConfig,
) -> SizingResult:
    """Size an automated order.

    Args:
        side: BUY or SELL
        portfolio: Portfolio snapshot taken for this cycle
        symbol: Base asset being traded
        price: Current quote used for the order
        config: Provides the cash/holding fractions and minimum notional

    Returns:
        SizingResult with `ignored_reason` set when the notional is too small

    Raises:
        ValueError: If side is unknown or price is not positive
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")

    if side == "BUY":
        amount = portfolio.cash_balance * config.buy_cash_fraction / price
    elif side == "SELL":
        amount = portfolio.balance_of(symbol) * config.sell_holding_fraction
    else:
        raise ValueError(f"Unknown side: {side}")

    notional = amount * price
    if notional <= config.min_notional:
        return SizingResult(
            amount=amount,
            notional=notional,
            ignored_reason=f"below minimum size (${notional:.2f} <= ${config.min_notional})",
        )
    return SizingResult(amount=amount, notional=notional)
