"""Gemini decision policy (Google Generative Language REST API)."""

from __future__ import annotations

import logging
import os
import time
from decimal import Decimal
from typing import Any, Sequence

import httpx

from papertrader.ai.policy import parse_decision
from papertrader.config import GeminiConfig
from papertrader.errors import ExternalCallError, PermanentError, TransientError, classify_http_error
from papertrader.types import AiDecision

logger = logging.getLogger(__name__)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "action": {"type": "STRING", "enum": ["BUY", "SELL", "HOLD"]},
        "confidence": {"type": "NUMBER", "description": "0 to 100"},
        "reason": {"type": "STRING", "description": "Short technical analysis (max 15 words)"},
        "suggestedAmount": {"type": "NUMBER", "description": "Amount of coin to buy/sell"},
    },
    "required": ["action", "confidence", "reason"],
}


def build_prompt(
    symbol: str,
    price: Decimal,
    recent_prices: Sequence[Decimal],
    cash_balance: Decimal,
    window: int = 20,
) -> str:
    history = ", ".join(f"{p:.4f}" for p in list(recent_prices)[-window:])
    return (
        "You are an expert high-frequency crypto trading bot.\n"
        f"Current Market for {symbol}:\n"
        f"- Price: {price}\n"
        f"- Recent Price History (last {window} ticks): [{history}]\n"
        f"- Available Cash: {cash_balance}\n\n"
        "Analyze the micro-trend. Is it pumping, dumping, or ranging?\n"
        "Decide IMMEDIATE action: BUY, SELL, or HOLD.\n\n"
        "If BUY, suggest a conservative amount based on available cash (max 5% of cash).\n"
        "If SELL, assume we have holdings.\n\n"
        "Output strict JSON."
    )


class GeminiPolicy:
    """Model-driven policy.

    Never raises into the caller: a missing API key, HTTP failure or malformed
    response all degrade to a HOLD decision with confidence 0.
    """

    def __init__(
        self,
        config: GeminiConfig | None = None,
        *,
        window: int = 20,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or GeminiConfig()
        self.window = window
        self._client = client

    @property
    def api_key(self) -> str:
        return os.environ.get(self.config.api_key_env, "").strip()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.config.timeout_seconds),
            )
        return self._client

    async def close(self) -> None:
        """Close any open HTTP connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _generate(self, prompt: str, api_key: str) -> dict[str, Any]:
        """Call generateContent.

        Raises:
            TransientError: For retry-able errors
            PermanentError: For non-retry-able errors
        """
        client = await self._get_client()
        url = f"/v1beta/models/{self.config.model}:generateContent"
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }
        try:
            resp = await client.post(url, json=body, headers={"x-goog-api-key": api_key})
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise classify_http_error(
                e.response.status_code,
                f"POST {url} failed: {e.response.text[:200]}",
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"POST {url} timed out: {e}")
        except httpx.TransportError as e:
            raise TransientError(f"POST {url} network error: {e}")
        except ValueError as e:
            raise PermanentError(f"POST {url} returned invalid JSON: {e}")
        except httpx.HTTPError as e:
            raise TransientError(f"POST {url} failed: {e}")

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    async def decide(
        self,
        symbol: str,
        price: Decimal,
        recent_prices: Sequence[Decimal],
        cash_balance: Decimal,
    ) -> AiDecision:
        api_key = self.api_key
        if not api_key:
            logger.warning("API key missing for Gemini (%s)", self.config.api_key_env)
            return AiDecision.hold("API key missing")

        prompt = build_prompt(symbol, price, recent_prices, cash_balance, self.window)
        start = time.monotonic()
        try:
            data = await self._generate(prompt, api_key)
        except ExternalCallError as exc:
            logger.error("Gemini analysis failed: %s", exc)
            return AiDecision.hold(f"Analysis error: {exc}")

        latency_ms = round((time.monotonic() - start) * 1000, 2)
        text = self._extract_text(data)
        if not text:
            return AiDecision.hold("No response from AI")

        decision = parse_decision(text)
        if decision is None:
            return AiDecision.hold("Malformed AI response")

        logger.debug("Gemini decision for %s in %.0fms: %s", symbol, latency_ms, decision)
        return decision
