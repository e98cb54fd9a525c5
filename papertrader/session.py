"""Trading session: wires market data, ledger, execution and automation.

Typical use::

    session = TradingSession(SimulatorConfig())
    await session.start()
    await session.quick_buy()
    session.enable_automation()
    ...
    await session.stop()

Run from the command line with ``python -m papertrader.session``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from papertrader.ai.gemini import GeminiPolicy
from papertrader.ai.policy import DecisionPolicy, MomentumPolicy
from papertrader.automation.audit import AdvisoryLog
from papertrader.automation.loop import AutomationLoop
from papertrader.config import SimulatorConfig
from papertrader.errors import InsufficientAsset, PriceUnavailable
from papertrader.execution.broker import SimulatedBroker
from papertrader.execution.engine import ExecutionEngine, FillListener
from papertrader.execution.interfaces import OrderExecutor
from papertrader.execution.order_book import OrderBook
from papertrader.market_data.binance import BinanceMarketData
from papertrader.market_data.interfaces import MarketDataFeed
from papertrader.market_data.price_store import PriceStore
from papertrader.portfolio.ledger import Ledger
from papertrader.types import ConnectionStatus, Order, OrderIntent, OrderSide, PriceUpdate

logger = logging.getLogger(__name__)


class TradingSession:
    """One paper-trading session over a fixed set of symbols."""

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        *,
        feed: Optional[MarketDataFeed] = None,
        broker: Optional[OrderExecutor] = None,
        policy: Optional[DecisionPolicy] = None,
        advisory_log: Optional[AdvisoryLog] = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Session configuration (defaults to SimulatorConfig())
            feed: Market data source (defaults to Binance public endpoints)
            broker: Execution collaborator (defaults to SimulatedBroker)
            policy: Decision policy for automation (defaults to MomentumPolicy)
            advisory_log: Automation log (defaults to a new capped log)
        """
        self.config = config or SimulatorConfig()
        cfg = self.config

        self.feed = feed or BinanceMarketData(quote=cfg.quote_currency)
        self.broker = broker or SimulatedBroker(latency_seconds=cfg.broker_latency_seconds, quote=cfg.quote_currency)
        self.policy = policy or MomentumPolicy()

        self.price_store = PriceStore(cfg.symbols, history_limit=cfg.history_limit, bucket_seconds=cfg.bucket_seconds)
        self.ledger = Ledger(cfg.symbols, initial_cash=cfg.initial_cash)
        self.order_book = OrderBook()
        self.engine = ExecutionEngine(
            ledger=self.ledger,
            order_book=self.order_book,
            price_store=self.price_store,
            broker=self.broker,
            broker_timeout_seconds=cfg.broker_timeout_seconds,
        )
        self.advisory_log = advisory_log or AdvisoryLog(cfg.advisory_log_limit)
        self.automation = AutomationLoop(
            engine=self.engine,
            price_store=self.price_store,
            ledger=self.ledger,
            policy=self.policy,
            config=cfg,
            advisory_log=self.advisory_log,
            symbol_provider=lambda: self._active_symbol,
            on_fatal=self._on_automation_fatal,
        )

        self._active_symbol = cfg.symbols[0]
        self._connection_status: ConnectionStatus = "disconnected"
        self._stop_event: Optional[asyncio.Event] = None
        self._feed_task: Optional[asyncio.Task] = None
        self._failed = asyncio.Event()

    # ========== Lifecycle ==========

    @property
    def running(self) -> bool:
        return self._feed_task is not None

    async def start(self) -> None:
        """Seed price history for every symbol, then start the live feed."""
        if self._feed_task is not None:
            return
        logger.info(f"Starting session: symbols={list(self.config.symbols)}, cash={self.config.initial_cash}")
        await self._seed_history()

        self._stop_event = asyncio.Event()
        self._feed_task = asyncio.create_task(
            self.feed.stream_tickers(
                symbols=list(self.config.symbols),
                on_update=self._on_update,
                on_status=self._on_status,
                stop_event=self._stop_event,
            )
        )

    async def _seed_history(self) -> None:
        symbols = self.config.symbols
        results = await asyncio.gather(
            *(self.feed.fetch_history(symbol, self.config.seed_history_limit) for symbol in symbols),
            return_exceptions=True,
        )
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                logger.warning(f"History unavailable for {symbol}: {result}")
                result = None
            self.price_store.seed_history(symbol, result)

    async def wait_failed(self) -> BaseException:
        """Block until automation stops on an unrecoverable error and return it."""
        await self._failed.wait()
        assert self.automation.fatal_error is not None
        return self.automation.fatal_error

    async def stop(self) -> None:
        """Disable automation, let in-flight orders land and stop the feed.

        Raises:
            InternalConsistencyError: If automation stopped on one; raised
                after the feed and policy are shut down
        """
        self.automation.disable()
        await self.automation.drain()

        if self._feed_task is not None:
            if self._stop_event is not None:
                self._stop_event.set()
            task, self._feed_task = self._feed_task, None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("Market data feed exited with an error", exc_info=True)
        self._connection_status = "disconnected"

        close = getattr(self.policy, "close", None)
        if close is not None:
            await close()
        logger.info("Session stopped")

        if self.automation.fatal_error is not None:
            raise self.automation.fatal_error

    def _on_automation_fatal(self, error: BaseException) -> None:
        logger.critical(f"Session halted by automation failure: {error}")
        self._failed.set()

    async def _on_update(self, update: PriceUpdate) -> None:
        self.price_store.apply(update)

    async def _on_status(self, status: ConnectionStatus) -> None:
        if status == self._connection_status:
            return
        if status == "disconnected":
            logger.warning("Market data disconnected")
        else:
            logger.info(f"Market data {status}")
        self._connection_status = status

    # ========== State ==========

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    @property
    def active_symbol(self) -> str:
        return self._active_symbol

    def set_active_symbol(self, symbol: str) -> None:
        """Select the symbol used by manual shortcuts and automation.

        Raises:
            ValueError: If the symbol is not supported
        """
        normalized = symbol.strip().upper()
        if normalized not in self.config.symbols:
            raise ValueError(f"Unsupported symbol: {symbol}")
        self._active_symbol = normalized

    def add_fill_listener(self, listener: FillListener) -> None:
        self.engine.add_listener(listener)

    def orders(self, limit: Optional[int] = None) -> list[Order]:
        """Filled orders, newest first."""
        return self.order_book.newest_first(limit)

    # ========== Manual trading ==========

    async def place_order(
        self,
        side: OrderSide,
        amount: Decimal | float | str,
        symbol: Optional[str] = None,
        price: Optional[Decimal] = None,
    ) -> Order:
        """Place a manual order at the current quote (or `price` if given).

        Raises:
            ValidationError: If the order was rejected
            ExternalCallError: If the broker failed
            InternalConsistencyError: If the ledger and order book diverged
        """
        symbol = (symbol or self._active_symbol).strip().upper()
        if price is None:
            price = self.price_store.prices().get(symbol, Decimal("0"))
        intent = OrderIntent(
            symbol=symbol,
            side=side,
            amount=Decimal(str(amount)),
            price=price,
            is_automated=False,
        )
        outcome = await self.engine.submit(intent)
        outcome.raise_for_error()
        assert outcome.order is not None
        return outcome.order

    async def quick_buy(self) -> Order:
        """Buy the active symbol with the configured fraction of cash."""
        symbol = self._active_symbol
        price = self.price_store.price(symbol)
        if price <= 0:
            raise PriceUnavailable(f"Price for {symbol} is unknown; trading disabled", symbol=symbol)
        amount = self.ledger.cash_balance * self.config.buy_cash_fraction / price
        return await self.place_order("BUY", amount, symbol=symbol, price=price)

    async def quick_sell(self) -> Order:
        """Sell the configured fraction of the active symbol's holding."""
        symbol = self._active_symbol
        balance = self.ledger.get_asset(symbol).balance
        if balance <= 0:
            raise InsufficientAsset(f"No {symbol} to sell", symbol=symbol)
        amount = balance * self.config.sell_holding_fraction
        return await self.place_order("SELL", amount, symbol=symbol)

    # ========== Automation ==========

    def enable_automation(self) -> None:
        self.automation.enable()

    def disable_automation(self) -> None:
        self.automation.disable()

    # ========== Reporting ==========

    def summary(self) -> dict:
        """Get session summary.

        Returns:
            Dict with portfolio value, P&L and per-asset state
        """
        prices = self.price_store.prices()
        portfolio = self.ledger.snapshot()
        fatal = self.automation.fatal_error

        assets = []
        for symbol, asset in portfolio.assets.items():
            price = prices.get(symbol, Decimal("0"))
            holding = asset.balance > 0 and price > 0
            assets.append(
                {
                    "symbol": symbol,
                    "balance": float(asset.balance),
                    "avg_entry_price": float(asset.average_entry_price),
                    "price": float(price),
                    "market_value": float(asset.balance * price),
                    "unrealized_pnl": float(asset.balance * (price - asset.average_entry_price)) if holding else 0.0,
                }
            )

        return {
            "quote_currency": self.config.quote_currency,
            "active_symbol": self._active_symbol,
            "connection_status": self._connection_status,
            "automation": self.automation.state.value,
            "automation_error": str(fatal) if fatal is not None else None,
            "cash_balance": float(portfolio.cash_balance),
            "portfolio_value": float(self.ledger.value_of(prices)),
            "pnl": float(self.ledger.pnl(prices)),
            "pnl_percent": float(self.ledger.pnl_percent(prices)),
            "order_count": len(self.order_book),
            "assets": assets,
        }


# ========== CLI Entry Point ==========


async def main(argv: Optional[list[str]] = None):
    """Run a paper-trading session from the command line."""
    import argparse

    parser = argparse.ArgumentParser(description="Run a paper-trading session against live Binance prices")
    parser.add_argument("--symbols", nargs="+", help="Symbols to trade (default: BTC ETH SOL DOGE)")
    parser.add_argument("--cash", type=float, help="Starting cash (default: 100000)")
    parser.add_argument("--policy", choices=["momentum", "gemini"], default="momentum", help="Decision policy")
    parser.add_argument("--auto", action="store_true", help="Enable auto-trading on start")
    parser.add_argument("--duration", type=float, help="Stop after N seconds (default: run until interrupted)")
    parser.add_argument("--interval", type=float, help="Automation interval in seconds (default: 6)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Build config
    config = SimulatorConfig.from_env()
    overrides: dict[str, object] = {}
    if args.symbols:
        overrides["symbols"] = tuple(s.upper() for s in args.symbols)
    if args.cash is not None:
        overrides["initial_cash"] = Decimal(str(args.cash))
    if args.interval is not None:
        overrides["automation_interval_seconds"] = args.interval
    if overrides:
        config = replace(config, **overrides)

    # Build policy
    if args.policy == "gemini":
        policy: DecisionPolicy = GeminiPolicy(window=config.policy_window)
    else:
        policy = MomentumPolicy()

    session = TradingSession(config, policy=policy)
    await session.start()
    if args.auto:
        session.enable_automation()

    try:
        if args.duration:
            try:
                await asyncio.wait_for(session.wait_failed(), timeout=args.duration)
            except asyncio.TimeoutError:
                pass
        else:
            await session.wait_failed()
    finally:
        try:
            await session.stop()
        finally:
            print(json.dumps(session.summary(), indent=2))


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    asyncio.run(main())
