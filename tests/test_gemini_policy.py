"""Tests for the Gemini decision policy with mocked HTTP responses."""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from papertrader.ai.gemini import GeminiPolicy, build_prompt
from papertrader.config import GeminiConfig
from papertrader.errors import PermanentError, TransientError, classify_http_error

PRICES = [Decimal("100") + i for i in range(30)]


def _response(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def _policy(handler) -> GeminiPolicy:
    client = httpx.AsyncClient(
        base_url="https://generativelanguage.googleapis.com",
        transport=httpx.MockTransport(handler),
    )
    return GeminiPolicy(GeminiConfig(), client=client)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    return "test-key"


def test_classify_http_error():
    assert isinstance(classify_http_error(429, "Rate limited"), TransientError)
    assert isinstance(classify_http_error(503, "down"), TransientError)
    assert isinstance(classify_http_error(401, "Bad API key"), PermanentError)
    assert not classify_http_error(400, "bad").is_transient


def test_build_prompt_uses_last_window_prices():
    prompt = build_prompt("BTC", Decimal("129"), PRICES, Decimal("1000"), window=20)

    assert "Current Market for BTC" in prompt
    assert "110.0000" in prompt
    assert "109.0000" not in prompt
    assert "Available Cash: 1000" in prompt


@pytest.mark.asyncio
async def test_missing_api_key_holds(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    policy = GeminiPolicy()

    with patch.object(policy, "_generate", new_callable=AsyncMock) as mock_generate:
        decision = await policy.decide("BTC", Decimal("100"), PRICES, Decimal("1000"))

    assert decision.action == "HOLD"
    assert decision.confidence == 0.0
    assert decision.reason == "API key missing"
    mock_generate.assert_not_called()


@pytest.mark.asyncio
async def test_successful_decision(api_key):
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        payload = json.dumps({"action": "BUY", "confidence": 84, "reason": "Higher lows", "suggestedAmount": 0.01})
        return httpx.Response(200, json=_response(payload))

    policy = _policy(handler)
    decision = await policy.decide("BTC", Decimal("129"), PRICES, Decimal("1000"))
    await policy.close()

    assert decision.action == "BUY"
    assert decision.confidence == 84.0
    assert decision.suggested_amount == Decimal("0.01")
    assert seen["url"].endswith("/v1beta/models/gemini-2.5-flash:generateContent")
    assert seen["key"] == api_key
    generation = seen["body"]["generationConfig"]
    assert generation["responseMimeType"] == "application/json"
    assert "BTC" in seen["body"]["contents"][0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_fenced_response_is_parsed(api_key):
    def handler(request: httpx.Request) -> httpx.Response:
        text = '```json\n{"action": "SELL", "confidence": 71, "reason": "Lower highs"}\n```'
        return httpx.Response(200, json=_response(text))

    decision = await _policy(handler).decide("ETH", Decimal("3000"), PRICES, Decimal("1000"))

    assert decision.action == "SELL"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 429, 500])
async def test_http_errors_degrade_to_hold(api_key, status):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="nope")

    decision = await _policy(handler).decide("BTC", Decimal("100"), PRICES, Decimal("1000"))

    assert decision.action == "HOLD"
    assert decision.confidence == 0.0
    assert decision.reason.startswith("Analysis error:")


@pytest.mark.asyncio
async def test_network_error_degrades_to_hold(api_key):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    decision = await _policy(handler).decide("BTC", Decimal("100"), PRICES, Decimal("1000"))

    assert decision.action == "HOLD"
    assert "network error" in decision.reason


@pytest.mark.asyncio
async def test_empty_response_holds(api_key):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": []})

    decision = await _policy(handler).decide("BTC", Decimal("100"), PRICES, Decimal("1000"))

    assert decision.reason == "No response from AI"


@pytest.mark.asyncio
async def test_malformed_response_holds(api_key):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_response('{"action": "MOON", "confidence": 99}'))

    decision = await _policy(handler).decide("BTC", Decimal("100"), PRICES, Decimal("1000"))

    assert decision.action == "HOLD"
    assert decision.reason == "Malformed AI response"


@pytest.mark.asyncio
async def test_non_json_body_is_permanent_error(api_key):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    policy = _policy(handler)
    with pytest.raises(PermanentError):
        await policy._generate("prompt", api_key)


@pytest.mark.asyncio
async def test_other_httpx_errors_are_transient(api_key):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("redirect loop", request=request)

    with pytest.raises(TransientError):
        await _policy(handler)._generate("prompt", api_key)

    decision = await _policy(handler).decide("BTC", Decimal("100"), PRICES, Decimal("1000"))
    assert decision.action == "HOLD"
    assert decision.confidence == 0.0
    assert "redirect loop" in decision.reason
