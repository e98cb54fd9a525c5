"""Order execution: fill history, broker collaborators and the execution engine.

Paper trading only; the bundled broker never contacts an exchange.
"""

from papertrader.execution.broker import SimulatedBroker
from papertrader.execution.engine import ExecutionEngine, ExecutionOutcome, ExecutionState
from papertrader.execution.interfaces import OrderExecutor
from papertrader.execution.order_book import OrderBook

__all__ = [
    "ExecutionEngine",
    "ExecutionOutcome",
    "ExecutionState",
    "OrderBook",
    "OrderExecutor",
    "SimulatedBroker",
]
