"""Advisory log for the automation loop.

Records what the loop decided and why: decisions, ignored signals, rejected
and executed trades, errors. Unlike the order book this is advisory only and
keeps a bounded number of entries.

All timestamps use timezone-aware UTC datetimes.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from papertrader.types import utc_now

EventType = Literal[
    "status",
    "decision",
    "signal_ignored",
    "trade_executed",
    "trade_rejected",
    "error",
]

Severity = Literal["debug", "info", "warning", "error"]
Sentiment = Literal["neutral", "positive", "negative"]


@dataclass
class AdvisoryEvent:
    """Structured advisory event."""

    event_type: EventType
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    severity: Severity = "info"
    sentiment: Sentiment = "neutral"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        result["context"] = {k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v) for k, v in self.context.items()}
        return result


class AdvisoryLog:
    """Bounded, newest-first log of automation events."""

    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._events: deque[AdvisoryEvent] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> list[AdvisoryEvent]:
        """Events newest first."""
        return list(self._events)

    def log(self, event: AdvisoryEvent) -> None:
        self._events.appendleft(event)

    def log_status(self, message: str) -> None:
        self.log(AdvisoryEvent(event_type="status", message=message))

    def log_decision(
        self,
        symbol: str,
        action: str,
        confidence: float,
        reason: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a policy decision that did not lead to an order."""
        self.log(
            AdvisoryEvent(
                event_type="decision",
                message=f"Holding {symbol}. {reason}" if action == "HOLD" else f"{action} {symbol} ({confidence:.0f}%) below threshold. {reason}",
                context={"symbol": symbol, "action": action, "confidence": confidence, "reason": reason, **(context or {})},
            )
        )

    def log_signal_ignored(self, symbol: str, action: str, reason: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AdvisoryEvent(
                event_type="signal_ignored",
                message=f"Signal {action} {symbol} ignored: {reason}",
                context={"symbol": symbol, "action": action, "reason": reason, **(context or {})},
            )
        )

    def log_trade_executed(
        self,
        symbol: str,
        side: str,
        price: object,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        self.log(
            AdvisoryEvent(
                event_type="trade_executed",
                message=f"{side} {symbol} @ ${float(price):.2f}",
                sentiment="positive" if side == "BUY" else "negative",
                context={"symbol": symbol, "side": side, "price": str(price), **(context or {})},
            )
        )

    def log_trade_rejected(self, symbol: str, reason: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AdvisoryEvent(
                event_type="trade_rejected",
                message=f"Trade rejected for {symbol}: {reason}",
                severity="warning",
                context={"symbol": symbol, "reason": reason, **(context or {})},
            )
        )

    def log_error(self, error_message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log(
            AdvisoryEvent(
                event_type="error",
                message=error_message,
                severity="error",
                context=context or {},
            )
        )

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        symbol: Optional[str] = None,
    ) -> list[AdvisoryEvent]:
        """Get filtered events, newest first."""
        return [
            e
            for e in self._events
            if (event_type is None or e.event_type == event_type)
            and (symbol is None or e.context.get("symbol") == symbol)
        ]

    def clear(self) -> None:
        self._events.clear()

    def to_json_list(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self._events]
