"""Tests for decision payload parsing and the momentum policy."""

from __future__ import annotations

from decimal import Decimal

import pytest

from papertrader.ai.policy import MomentumPolicy, parse_decision, strip_code_fences


class TestParseDecision:
    def test_parses_json_text(self) -> None:
        decision = parse_decision('{"action": "BUY", "confidence": 82, "reason": "Pumping", "suggestedAmount": 0.01}')

        assert decision.action == "BUY"
        assert decision.confidence == 82.0
        assert decision.reason == "Pumping"
        assert decision.suggested_amount == Decimal("0.01")

    def test_strips_code_fences(self) -> None:
        text = '```json\n{"action": "sell", "confidence": 70, "reason": "Dumping"}\n```'
        assert strip_code_fences(text) == '{"action": "sell", "confidence": 70, "reason": "Dumping"}'

        decision = parse_decision(text)
        assert decision.action == "SELL"

    def test_accepts_mapping(self) -> None:
        decision = parse_decision({"action": "HOLD", "confidence": 10, "reason": "flat", "suggested_amount": "2"})
        assert decision.action == "HOLD"
        assert decision.suggested_amount == Decimal("2")

    @pytest.mark.parametrize(
        "payload",
        [
            "",
            "not json",
            "[1, 2]",
            {"confidence": 50},
            {"action": "YOLO", "confidence": 50},
            {"action": "BUY"},
            {"action": "BUY", "confidence": "high"},
            {"action": "BUY", "confidence": True},
            {"action": "BUY", "confidence": 101},
            {"action": "BUY", "confidence": -1},
            42,
            None,
        ],
    )
    def test_malformed_payloads(self, payload) -> None:
        assert parse_decision(payload) is None

    def test_bad_suggested_amount_is_dropped(self) -> None:
        decision = parse_decision({"action": "BUY", "confidence": 70, "reason": "x", "suggestedAmount": -3})
        assert decision is not None
        assert decision.suggested_amount is None

    def test_missing_reason_defaults_to_empty(self) -> None:
        decision = parse_decision({"action": "HOLD", "confidence": 0})
        assert decision.reason == ""


class TestMomentumPolicy:
    @pytest.mark.asyncio
    async def test_not_enough_data_holds(self) -> None:
        policy = MomentumPolicy(min_points=5)
        decision = await policy.decide("BTC", Decimal("100"), [Decimal("100")] * 3, Decimal("1000"))

        assert decision.action == "HOLD"
        assert decision.confidence == 0.0

    @pytest.mark.asyncio
    async def test_price_above_mean_buys(self) -> None:
        policy = MomentumPolicy()
        window = [Decimal("100")] * 9 + [Decimal("101")]

        decision = await policy.decide("BTC", Decimal("101"), window, Decimal("1000"))

        assert decision.action == "BUY"
        assert decision.confidence == 100.0

    @pytest.mark.asyncio
    async def test_price_below_mean_sells(self) -> None:
        policy = MomentumPolicy()
        window = [Decimal("100")] * 9 + [Decimal("99.9")]

        decision = await policy.decide("BTC", Decimal("99.9"), window, Decimal("1000"))

        assert decision.action == "SELL"
        assert 0 < decision.confidence <= 100

    @pytest.mark.asyncio
    async def test_flat_market_holds(self) -> None:
        policy = MomentumPolicy()
        window = [Decimal("100")] * 10

        decision = await policy.decide("BTC", Decimal("100"), window, Decimal("1000"))

        assert decision.action == "HOLD"
        assert decision.reason == "Ranging near mean"
