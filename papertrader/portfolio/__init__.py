"""Portfolio ledger: cash and per-symbol asset balances."""

from .ledger import Ledger, ReserveResult

__all__ = [
    "Ledger",
    "ReserveResult",
]
