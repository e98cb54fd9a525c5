"""Cash and asset ledger.

Owns the cash balance and one Asset per supported symbol. Validation
(`reserve_check`) and mutation (`commit`) are separate steps; the execution
engine runs both under one lock so nothing interleaves between them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from papertrader.errors import InsufficientAsset, InsufficientFunds, ValidationError
from papertrader.types import Asset, OrderSide, Portfolio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReserveResult:
    ok: bool
    reason: str
    error: Optional[ValidationError] = None


class Ledger:
    """Cash/asset balances with volume-weighted average entry price.

    Invariants: cash and every asset balance stay >= 0 at every committed
    state. The average entry price only changes on BUY and is kept as-is when
    the balance drops back to zero.

    Thread-safety: Not thread-safe. Mutations go through the execution engine.
    """

    def __init__(self, symbols: Iterable[str], initial_cash: Decimal = Decimal("100000")) -> None:
        """Initialize the ledger.

        Args:
            symbols: Supported symbols; each gets a zero-balance Asset
            initial_cash: Starting cash balance
        """
        if initial_cash < 0:
            raise ValueError("initial_cash must be >= 0")
        self._initial_cash = initial_cash
        self._cash = initial_cash
        self._assets: dict[str, Asset] = {symbol: Asset(symbol=symbol) for symbol in symbols}
        if not self._assets:
            raise ValueError("at least one symbol is required")

    @property
    def initial_cash(self) -> Decimal:
        return self._initial_cash

    @property
    def cash_balance(self) -> Decimal:
        return self._cash

    def get_asset(self, symbol: str) -> Asset:
        """Get the asset entry for a symbol.

        Raises:
            ValueError: If the symbol is not supported
        """
        asset = self._assets.get(symbol)
        if asset is None:
            raise ValueError(f"Unsupported symbol: {symbol}")
        return asset

    def snapshot(self) -> Portfolio:
        """Return an immutable copy of the current state."""
        return Portfolio(cash_balance=self._cash, assets=MappingProxyType(dict(self._assets)))

    # ========== Validation ==========

    def reserve_check(self, side: OrderSide, symbol: str, amount: Decimal, price: Decimal) -> ReserveResult:
        """Check whether a fill could be applied. Never mutates.

        BUY requires amount * price <= cash; SELL requires amount <= balance.
        """
        asset = self.get_asset(symbol)
        if side == "BUY":
            cost = amount * price
            if cost > self._cash:
                error = InsufficientFunds(
                    f"Insufficient funds for {symbol}: need {cost}, have {self._cash}",
                    symbol=symbol,
                )
                return ReserveResult(ok=False, reason=str(error), error=error)
        elif side == "SELL":
            if amount > asset.balance:
                error = InsufficientAsset(
                    f"Insufficient {symbol} balance: need {amount}, have {asset.balance}",
                    symbol=symbol,
                )
                return ReserveResult(ok=False, reason=str(error), error=error)
        else:
            raise ValueError(f"Unknown side: {side}")
        return ReserveResult(ok=True, reason="ok")

    # ========== Mutation ==========

    def commit(self, side: OrderSide, symbol: str, amount: Decimal, price: Decimal) -> Portfolio:
        """Apply a fill. The caller must have validated it with `reserve_check`.

        Returns:
            Updated portfolio snapshot
        """
        asset = self.get_asset(symbol)
        notional = amount * price

        if side == "BUY":
            new_cash = self._cash - notional
            new_balance = asset.balance + amount
            if new_balance > 0:
                new_avg = (asset.balance * asset.average_entry_price + notional) / new_balance
            else:
                new_avg = asset.average_entry_price
            new_asset = Asset(symbol=symbol, balance=new_balance, average_entry_price=new_avg)
        elif side == "SELL":
            new_cash = self._cash + notional
            new_asset = Asset(
                symbol=symbol,
                balance=asset.balance - amount,
                average_entry_price=asset.average_entry_price,
            )
        else:
            raise ValueError(f"Unknown side: {side}")

        # Both fields are computed before either is assigned
        self._cash = new_cash
        self._assets[symbol] = new_asset
        logger.debug("Ledger %s %s %s @ %s -> cash=%s", side, amount, symbol, price, new_cash)
        return self.snapshot()

    def restore(self, portfolio: Portfolio) -> None:
        """Reset balances to a previous snapshot (used to undo a failed commit)."""
        self._cash = portfolio.cash_balance
        self._assets = dict(portfolio.assets)

    # ========== Valuation ==========

    def value_of(self, prices: Mapping[str, Decimal]) -> Decimal:
        """Cash plus the market value of all holdings.

        Symbols without a price contribute nothing.
        """
        total = self._cash
        for symbol, asset in self._assets.items():
            price = prices.get(symbol)
            if price:
                total += asset.balance * price
        return total

    def pnl(self, prices: Mapping[str, Decimal]) -> Decimal:
        """Total P&L against the starting cash."""
        return self.value_of(prices) - self._initial_cash

    def pnl_percent(self, prices: Mapping[str, Decimal]) -> Decimal:
        """Total P&L as a percentage of the starting cash (e.g. 5 = 5%)."""
        if self._initial_cash == 0:
            return Decimal("0")
        return self.pnl(prices) / self._initial_cash * Decimal("100")
