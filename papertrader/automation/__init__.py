"""Automated trading loop, sizing and advisory log."""

from papertrader.automation.audit import AdvisoryEvent, AdvisoryLog
from papertrader.automation.loop import AutomationLoop, CycleResult, LoopState
from papertrader.automation.sizing import SizingResult, size_order

__all__ = [
    "AdvisoryEvent",
    "AdvisoryLog",
    "AutomationLoop",
    "CycleResult",
    "LoopState",
    "SizingResult",
    "size_order",
]
