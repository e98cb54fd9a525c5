"""Simulator configuration.

Defaults describe a small paper-trading session: four USDT-quoted coins,
100k starting cash, a 6 second automation cadence and fixed-fraction sizing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

DEFAULT_SYMBOLS: tuple[str, ...] = ("BTC", "ETH", "SOL", "DOGE")

ENV_PREFIX = "PAPERTRADER_"


@dataclass(frozen=True)
class SimulatorConfig:
    """Configuration for one trading session."""

    # Tradable symbols (base assets, quoted in `quote_currency`)
    symbols: tuple[str, ...] = DEFAULT_SYMBOLS
    quote_currency: str = "USDT"
    initial_cash: Decimal = Decimal("100000")

    # Price history
    history_limit: int = 50
    bucket_seconds: int = 60
    seed_history_limit: int = 60

    # Automation
    automation_interval_seconds: float = 6.0
    confidence_threshold: float = 65.0
    buy_cash_fraction: Decimal = Decimal("0.10")
    sell_holding_fraction: Decimal = Decimal("0.50")
    min_notional: Decimal = Decimal("5")
    policy_window: int = 20
    advisory_log_limit: int = 50

    # Collaborator timeouts
    broker_timeout_seconds: float = 10.0
    policy_timeout_seconds: float = 30.0
    broker_latency_seconds: float = 0.5

    def __post_init__(self) -> None:
        if not self.symbols:
            raise ValueError("at least one symbol is required")
        if len(set(self.symbols)) != len(self.symbols):
            raise ValueError(f"duplicate symbols: {self.symbols}")
        if self.initial_cash < 0:
            raise ValueError("initial_cash must be >= 0")
        if self.history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        if self.bucket_seconds < 1:
            raise ValueError("bucket_seconds must be >= 1")
        if self.automation_interval_seconds <= 0:
            raise ValueError("automation_interval_seconds must be positive")
        if not 0 <= self.confidence_threshold <= 100:
            raise ValueError("confidence_threshold must be within [0, 100]")
        for name in ("buy_cash_fraction", "sell_holding_fraction"):
            value = getattr(self, name)
            if not Decimal("0") < value <= Decimal("1"):
                raise ValueError(f"{name} must be within (0, 1]")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> SimulatorConfig:
        """Build a config from PAPERTRADER_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: If a variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        raw_symbols = env.get(f"{ENV_PREFIX}SYMBOLS", "").strip()
        if raw_symbols:
            kwargs["symbols"] = tuple(s.strip().upper() for s in raw_symbols.split(",") if s.strip())

        for name, parser in _ENV_FIELDS.items():
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            try:
                kwargs[name] = parser(raw.strip())
            except (ValueError, InvalidOperation) as exc:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from exc

        return cls(**kwargs)


_ENV_FIELDS = {
    "quote_currency": str,
    "initial_cash": Decimal,
    "history_limit": int,
    "bucket_seconds": int,
    "seed_history_limit": int,
    "automation_interval_seconds": float,
    "confidence_threshold": float,
    "buy_cash_fraction": Decimal,
    "sell_holding_fraction": Decimal,
    "min_notional": Decimal,
    "policy_window": int,
    "advisory_log_limit": int,
    "broker_timeout_seconds": float,
    "policy_timeout_seconds": float,
    "broker_latency_seconds": float,
}


@dataclass(frozen=True)
class GeminiConfig:
    """Configuration for the Gemini decision policy."""

    api_key_env: str = "GEMINI_API_KEY"
    base_url: str = "https://generativelanguage.googleapis.com"
    model: str = "gemini-2.5-flash"
    timeout_seconds: int = 30
    temperature: float = 0.2
