"""Automation loop.

Periodically asks a decision policy what to do with the active symbol, sizes
the signal and submits it through the execution engine:

    DISABLED --enable()--> ARMED --disable()--> DISABLED

While ARMED, one cycle runs immediately and then every
`automation_interval_seconds`. Disabling cancels the timer task only; an
engine submission already in flight is shielded and completes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Sequence

from papertrader.ai.policy import DecisionPolicy, parse_decision
from papertrader.automation.audit import AdvisoryLog
from papertrader.automation.sizing import size_order
from papertrader.config import SimulatorConfig
from papertrader.errors import InternalConsistencyError
from papertrader.execution.engine import ExecutionEngine, ExecutionOutcome
from papertrader.market_data.price_store import PriceStore
from papertrader.portfolio.ledger import Ledger
from papertrader.types import AiDecision, OrderIntent

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    DISABLED = "DISABLED"
    ARMED = "ARMED"


@dataclass(frozen=True)
class CycleResult:
    """What one automation cycle did."""

    symbol: str
    decision: Optional[AiDecision] = None
    intent: Optional[OrderIntent] = None
    outcome: Optional[ExecutionOutcome] = None
    skipped_reason: Optional[str] = None

    @property
    def submitted(self) -> bool:
        return self.outcome is not None


class AutomationLoop:
    """Timer-driven policy -> sizing -> execution loop."""

    def __init__(
        self,
        *,
        engine: ExecutionEngine,
        price_store: PriceStore,
        ledger: Ledger,
        policy: DecisionPolicy,
        config: Optional[SimulatorConfig] = None,
        advisory_log: Optional[AdvisoryLog] = None,
        symbol_provider: Optional[Callable[[], str]] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        """Initialize the loop.

        Args:
            engine: Single entry point for order submission
            price_store: Source of the active symbol's quote and history
            ledger: Read only; used for portfolio snapshots
            policy: Decision policy consulted every cycle
            config: Cadence, threshold, sizing and timeout settings
            advisory_log: Receives decision rationale and outcomes
            symbol_provider: Returns the symbol to trade this cycle
                (defaults to the first supported symbol)
            on_fatal: Called once if the loop stops on an unrecoverable error
        """
        self.config = config or SimulatorConfig()
        self.advisory_log = advisory_log or AdvisoryLog(self.config.advisory_log_limit)
        self._engine = engine
        self._price_store = price_store
        self._ledger = ledger
        self._policy = policy
        self._symbol_provider = symbol_provider or (lambda: price_store.symbols[0])
        self._state = LoopState.DISABLED
        self._task: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Future] = set()
        self._cycles = 0
        self._on_fatal = on_fatal
        self._fatal_error: Optional[BaseException] = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._state == LoopState.ARMED

    @property
    def cycles(self) -> int:
        """Number of cycles started since construction."""
        return self._cycles

    @property
    def fatal_error(self) -> Optional[BaseException]:
        """The error that stopped the loop for good, if any."""
        return self._fatal_error

    # ========== Lifecycle ==========

    def enable(self) -> None:
        """Arm the loop. Must be called from a running event loop.

        Raises:
            RuntimeError: If no event loop is running
            InternalConsistencyError: If the loop already stopped on one
        """
        if self._fatal_error is not None:
            raise self._fatal_error
        if self._state == LoopState.ARMED:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._on_task_done)
        self._state = LoopState.ARMED
        self.advisory_log.log_status("Auto-trading enabled")
        logger.info(f"Automation enabled (interval={self.config.automation_interval_seconds}s)")

    def disable(self) -> None:
        """Disarm the loop. No cycle starts after this returns."""
        if self._state == LoopState.DISABLED:
            return
        self._state = LoopState.DISABLED
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.advisory_log.log_status("Auto-trading disabled")
        logger.info("Automation disabled")

    async def drain(self) -> None:
        """Wait for shielded submissions that outlived a disable()."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _run(self) -> None:
        try:
            while True:
                try:
                    await self.run_cycle()
                except InternalConsistencyError as e:
                    logger.critical(f"Automation stopped: {e}")
                    self.advisory_log.log_error(f"Automation stopped: {e}")
                    self._state = LoopState.DISABLED
                    self._task = None
                    raise
                except Exception as e:
                    logger.exception(f"Automation cycle failed: {e}")
                    self.advisory_log.log_error(f"Automation cycle failed: {e}")

                logger.debug(f"Sleeping {self.config.automation_interval_seconds}s until next cycle")
                await asyncio.sleep(self.config.automation_interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Automation task cancelled")
            raise

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        self._fatal_error = error
        self._state = LoopState.DISABLED
        if self._task is task:
            self._task = None
        if self._on_fatal is not None:
            self._on_fatal(error)

    # ========== Cycle ==========

    async def run_cycle(self) -> CycleResult:
        """Run one decision cycle against the active symbol.

        Raises:
            InternalConsistencyError: If the engine reports ledger/order book divergence
        """
        self._cycles += 1
        symbol = self._symbol_provider()
        snapshot = self._price_store.snapshot(symbol)
        if not snapshot.series or snapshot.price <= 0:
            return CycleResult(symbol=symbol, skipped_reason="No price history")

        portfolio = self._ledger.snapshot()
        recent = snapshot.closes[-self.config.policy_window :]
        decision = await self._decide(symbol, snapshot.price, recent, portfolio.cash_balance)

        if decision.action == "HOLD" or decision.confidence <= self.config.confidence_threshold:
            logger.debug(f"{symbol}: {decision.action} ({decision.confidence:.0f}%) not actionable")
            self.advisory_log.log_decision(symbol, decision.action, decision.confidence, decision.reason)
            reason = "HOLD" if decision.action == "HOLD" else "Confidence below threshold"
            return CycleResult(symbol=symbol, decision=decision, skipped_reason=reason)

        sizing = size_order(decision.action, portfolio, symbol, snapshot.price, self.config)
        if not sizing.ok:
            logger.info(f"{symbol}: {decision.action} signal ignored, {sizing.ignored_reason}")
            self.advisory_log.log_signal_ignored(
                symbol,
                decision.action,
                sizing.ignored_reason or "",
                context={"confidence": decision.confidence, "amount": str(sizing.amount)},
            )
            return CycleResult(symbol=symbol, decision=decision, skipped_reason=sizing.ignored_reason)

        intent = OrderIntent(
            symbol=symbol,
            side=decision.action,
            amount=sizing.amount,
            price=snapshot.price,
            is_automated=True,
            reason=decision.reason,
        )
        outcome = await self._submit(intent)
        self._record_outcome(outcome, decision.confidence)
        return CycleResult(symbol=symbol, decision=decision, intent=intent, outcome=outcome)

    async def _decide(
        self,
        symbol: str,
        price: Decimal,
        recent_prices: Sequence[Decimal],
        cash_balance: Decimal,
    ) -> AiDecision:
        """Ask the policy, degrading any failure to HOLD with confidence 0."""
        try:
            result = await asyncio.wait_for(
                self._policy.decide(symbol, price, recent_prices, cash_balance),
                timeout=self.config.policy_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Policy timed out for {symbol}")
            return AiDecision.hold(f"Policy error: timed out after {self.config.policy_timeout_seconds}s")
        except Exception as e:
            logger.warning(f"Policy failed for {symbol}: {e}")
            return AiDecision.hold(f"Policy error: {e}")

        if isinstance(result, AiDecision):
            return result
        decision = parse_decision(result)
        if decision is None:
            return AiDecision.hold("Policy error: malformed decision")
        return decision

    async def _submit(self, intent: OrderIntent) -> ExecutionOutcome:
        submission = asyncio.ensure_future(self._engine.submit(intent))
        self._in_flight.add(submission)
        submission.add_done_callback(self._in_flight.discard)
        try:
            return await asyncio.shield(submission)
        except asyncio.CancelledError:
            # The engine call keeps running; record its outcome when it lands
            submission.add_done_callback(self._record_detached)
            raise

    def _record_detached(self, submission: asyncio.Future) -> None:
        if submission.cancelled():
            return
        error = submission.exception()
        if error is not None:
            logger.error(f"Detached automated submission failed: {error}")
            self.advisory_log.log_error(f"Automated submission failed: {error}")
            return
        self._record_outcome(submission.result(), None)

    def _record_outcome(self, outcome: ExecutionOutcome, confidence: Optional[float]) -> None:
        intent = outcome.intent
        context = {"amount": str(intent.amount), "state": outcome.state.value}
        if confidence is not None:
            context["confidence"] = confidence
        if outcome.filled and outcome.order is not None:
            context["order_id"] = outcome.order.id
            self.advisory_log.log_trade_executed(intent.symbol, intent.side, intent.price, context=context)
        else:
            self.advisory_log.log_trade_rejected(intent.symbol, outcome.reason, context=context)
