"""Decision policy contract and response parsing.

Policies propose BUY/SELL/HOLD with a 0-100 confidence. Payloads coming from a
model are duck-typed JSON; they are validated here and anything malformed is
treated as no decision.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol, Sequence

from papertrader.types import AiDecision

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```")


class DecisionPolicy(Protocol):
    """External decision policy (rule-based or model-driven)."""

    async def decide(
        self,
        symbol: str,
        price: Decimal,
        recent_prices: Sequence[Decimal],
        cash_balance: Decimal,
    ) -> AiDecision:
        """Return a decision for the symbol. Should degrade to HOLD rather than raise."""


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences models sometimes wrap JSON in."""
    return _CODE_FENCE.sub("", text).strip()


def parse_decision(payload: Any) -> Optional[AiDecision]:
    """Validate a raw policy payload into an AiDecision.

    Args:
        payload: JSON text (optionally fenced) or an already-decoded mapping

    Returns:
        AiDecision, or None if the payload is malformed
    """
    if isinstance(payload, str):
        text = strip_code_fences(payload)
        if not text:
            return None
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse policy response: %s", e)
            return None

    if not isinstance(payload, dict):
        return None

    action = payload.get("action")
    if not isinstance(action, str) or action.strip().upper() not in ("BUY", "SELL", "HOLD"):
        logger.warning("Policy response has invalid action: %r", action)
        return None

    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        logger.warning("Policy response has invalid confidence: %r", confidence)
        return None
    if not 0 <= confidence <= 100:
        logger.warning("Policy confidence out of range: %r", confidence)
        return None

    reason = payload.get("reason", "")
    if not isinstance(reason, str):
        reason = str(reason)

    suggested: Optional[Decimal] = None
    raw_amount = payload.get("suggestedAmount", payload.get("suggested_amount"))
    if raw_amount is not None and not isinstance(raw_amount, bool):
        try:
            suggested = Decimal(str(raw_amount))
        except InvalidOperation:
            suggested = None
        if suggested is not None and (not suggested.is_finite() or suggested < 0):
            suggested = None

    return AiDecision(
        action=action.strip().upper(),  # type: ignore[arg-type]
        confidence=float(confidence),
        reason=reason.strip(),
        suggested_amount=suggested,
    )


@dataclass(frozen=True)
class MomentumPolicy:
    """Rule-based policy comparing the last price with the window mean.

    BUY when price is above the mean by at least `threshold_pct`, SELL when
    below by the same margin, HOLD otherwise. Confidence grows with the
    deviation and is capped at 100.
    """

    threshold_pct: Decimal = Decimal("0.05")
    confidence_per_pct: Decimal = Decimal("400")
    min_points: int = 5

    async def decide(
        self,
        symbol: str,
        price: Decimal,
        recent_prices: Sequence[Decimal],
        cash_balance: Decimal,
    ) -> AiDecision:
        if len(recent_prices) < self.min_points or price <= 0:
            return AiDecision.hold(f"Not enough data for {symbol}: {len(recent_prices)} points")

        mean = sum(recent_prices, Decimal("0")) / len(recent_prices)
        if mean <= 0:
            return AiDecision.hold("Invalid price window")

        deviation_pct = (price - mean) / mean * Decimal("100")
        confidence = float(min(Decimal("100"), abs(deviation_pct) * self.confidence_per_pct))

        if deviation_pct >= self.threshold_pct:
            return AiDecision(
                action="BUY",
                confidence=confidence,
                reason=f"Price {deviation_pct:.3f}% above {len(recent_prices)}-tick mean",
            )
        if deviation_pct <= -self.threshold_pct:
            return AiDecision(
                action="SELL",
                confidence=confidence,
                reason=f"Price {abs(deviation_pct):.3f}% below {len(recent_prices)}-tick mean",
            )
        return AiDecision(action="HOLD", confidence=confidence, reason="Ranging near mean")
