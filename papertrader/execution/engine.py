"""Order execution engine.

Each submitted intent moves through:

    VALIDATING -> SUBMITTING -> COMMITTING -> FILLED
         |             |
         v             v
      REJECTED       FAILED

All submissions are serialized by a single lock held from validation through
commit, so no other fill can change the ledger between the balance check and
the balance mutation. Price ticks never take this lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from uuid import uuid4

from papertrader.errors import (
    ExternalCallError,
    InternalConsistencyError,
    InvalidOrder,
    PaperTraderError,
    PriceUnavailable,
    TransientError,
    ValidationError,
)
from papertrader.execution.interfaces import OrderExecutor
from papertrader.execution.order_book import OrderBook
from papertrader.market_data.price_store import PriceStore
from papertrader.portfolio.ledger import Ledger
from papertrader.types import Order, OrderIntent, Portfolio, utc_now

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    VALIDATING = "VALIDATING"
    SUBMITTING = "SUBMITTING"
    COMMITTING = "COMMITTING"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal result of one submission."""

    intent: OrderIntent
    state: ExecutionState
    order: Optional[Order] = None
    portfolio: Optional[Portfolio] = None
    error: Optional[PaperTraderError] = None
    transitions: tuple[ExecutionState, ...] = ()

    @property
    def filled(self) -> bool:
        return self.state == ExecutionState.FILLED

    @property
    def reason(self) -> str:
        return str(self.error) if self.error is not None else self.state.value

    def raise_for_error(self) -> None:
        """Raise the rejection/failure error, if any."""
        if self.error is not None:
            raise self.error


FillListener = Callable[[Order, Portfolio], None]


class ExecutionEngine:
    """Validates intents, calls the broker and commits fills atomically.

    The ledger and order book are only mutated here: either both reflect a
    fill or neither does.
    """

    def __init__(
        self,
        *,
        ledger: Ledger,
        order_book: OrderBook,
        price_store: PriceStore,
        broker: OrderExecutor,
        broker_timeout_seconds: float = 10.0,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            ledger: Cash/asset ledger (exclusively mutated by this engine)
            order_book: Fill history (exclusively appended by this engine)
            price_store: Used to refuse trading on symbols with unknown price
            broker: Execution collaborator
            broker_timeout_seconds: Upper bound for one broker call
            id_factory: Order id generator (defaults to uuid4 hex)
            clock: Timestamp source for new orders (defaults to UTC now)
        """
        self._ledger = ledger
        self._order_book = order_book
        self._price_store = price_store
        self._broker = broker
        self._broker_timeout_seconds = broker_timeout_seconds
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._clock = clock or utc_now
        self._lock = asyncio.Lock()
        self._listeners: list[FillListener] = []

    def add_listener(self, listener: FillListener) -> None:
        """Register a callback receiving (order, portfolio) after every fill."""
        self._listeners.append(listener)

    def remove_listener(self, listener: FillListener) -> None:
        self._listeners.remove(listener)

    @property
    def busy(self) -> bool:
        """True while a submission holds the engine."""
        return self._lock.locked()

    async def submit(self, intent: OrderIntent) -> ExecutionOutcome:
        """Run one intent through the execution state machine.

        Rejections and broker failures are returned in the outcome (nothing is
        mutated). An internal consistency failure is raised.

        Raises:
            InternalConsistencyError: If the ledger and order book diverged
        """
        async with self._lock:
            return await self._execute(intent)

    async def _execute(self, intent: OrderIntent) -> ExecutionOutcome:
        transitions = [ExecutionState.VALIDATING]
        self._log_transition(intent, ExecutionState.VALIDATING)

        error = self._validate(intent)
        if error is not None:
            return self._finish(intent, ExecutionState.REJECTED, transitions, error=error)

        transitions.append(ExecutionState.SUBMITTING)
        self._log_transition(intent, ExecutionState.SUBMITTING)
        try:
            await self._call_broker(intent)
        except ExternalCallError as exc:
            return self._finish(intent, ExecutionState.FAILED, transitions, error=exc)

        transitions.append(ExecutionState.COMMITTING)
        self._log_transition(intent, ExecutionState.COMMITTING)
        order, portfolio = self._commit(intent)

        outcome = self._finish(intent, ExecutionState.FILLED, transitions, order=order, portfolio=portfolio)
        self._notify(order, portfolio)
        return outcome

    def _validate(self, intent: OrderIntent) -> Optional[ValidationError]:
        if intent.side not in ("BUY", "SELL"):
            return InvalidOrder(f"Unknown side: {intent.side}", symbol=intent.symbol)
        if not intent.amount.is_finite() or intent.amount <= 0:
            return InvalidOrder(f"Amount must be positive, got {intent.amount}", symbol=intent.symbol)
        if not intent.price.is_finite() or intent.price <= 0:
            return InvalidOrder(f"Price must be positive, got {intent.price}", symbol=intent.symbol)
        if intent.symbol not in self._price_store.symbols:
            return InvalidOrder(f"Unsupported symbol: {intent.symbol}", symbol=intent.symbol)
        if not self._price_store.is_tradable(intent.symbol):
            return PriceUnavailable(f"Price for {intent.symbol} is unknown; trading disabled", symbol=intent.symbol)

        check = self._ledger.reserve_check(intent.side, intent.symbol, intent.amount, intent.price)
        return None if check.ok else check.error

    async def _call_broker(self, intent: OrderIntent) -> None:
        try:
            result = await asyncio.wait_for(
                self._broker.submit(intent.symbol, intent.side, intent.amount),
                timeout=self._broker_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TransientError(
                f"Broker timed out after {self._broker_timeout_seconds}s for {intent.side} {intent.symbol}"
            ) from exc
        except ExternalCallError:
            raise
        except Exception as exc:
            raise ExternalCallError(f"Broker call failed: {exc}") from exc

        if result.status != "FILLED":
            raise ExternalCallError(f"Broker returned status {result.status} for order {result.order_id}")
        logger.debug("Broker confirmed order %s (%s)", result.order_id, result.executed_qty)

    def _commit(self, intent: OrderIntent) -> tuple[Order, Portfolio]:
        order = Order(
            id=self._id_factory(),
            symbol=intent.symbol,
            side=intent.side,
            price=intent.price,
            amount=intent.amount,
            total=intent.amount * intent.price,
            timestamp=self._clock(),
            status="FILLED",
            is_automated=intent.is_automated,
            reason=intent.reason,
        )

        checkpoint = self._ledger.snapshot()
        try:
            portfolio = self._ledger.commit(intent.side, intent.symbol, intent.amount, intent.price)
        except Exception as exc:
            self._ledger.restore(checkpoint)
            raise InternalConsistencyError(f"Ledger commit failed for order {order.id}: {exc}") from exc

        try:
            self._order_book.append(order)
        except Exception as exc:
            self._ledger.restore(checkpoint)
            raise InternalConsistencyError(f"Order book append failed for order {order.id}: {exc}") from exc

        return order, portfolio

    def _finish(
        self,
        intent: OrderIntent,
        state: ExecutionState,
        transitions: list[ExecutionState],
        *,
        order: Optional[Order] = None,
        portfolio: Optional[Portfolio] = None,
        error: Optional[PaperTraderError] = None,
    ) -> ExecutionOutcome:
        transitions.append(state)
        self._log_transition(intent, state)
        origin = "automated" if intent.is_automated else "manual"

        if state == ExecutionState.FILLED:
            logger.info(f"Filled {origin} {intent.side} {intent.amount} {intent.symbol} @ {intent.price}")
        elif state == ExecutionState.REJECTED:
            logger.warning(f"Rejected {origin} {intent.side} {intent.symbol}: {error}")
        else:
            logger.warning(f"Failed {origin} {intent.side} {intent.symbol}: {error}")

        return ExecutionOutcome(
            intent=intent,
            state=state,
            order=order,
            portfolio=portfolio,
            error=error,
            transitions=tuple(transitions),
        )

    def _log_transition(self, intent: OrderIntent, state: ExecutionState) -> None:
        logger.debug("%s %s %s -> %s", intent.side, intent.amount, intent.symbol, state.value)

    def _notify(self, order: Order, portfolio: Portfolio) -> None:
        for listener in list(self._listeners):
            try:
                listener(order, portfolio)
            except Exception:
                logger.warning("Fill listener failed for order %s", order.id, exc_info=True)
