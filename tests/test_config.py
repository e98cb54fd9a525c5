"""Tests for simulator configuration."""

from __future__ import annotations

from decimal import Decimal

import pytest

from papertrader.config import DEFAULT_SYMBOLS, GeminiConfig, SimulatorConfig


def test_defaults():
    config = SimulatorConfig()

    assert config.symbols == ("BTC", "ETH", "SOL", "DOGE")
    assert config.initial_cash == Decimal("100000")
    assert config.history_limit == 50
    assert config.automation_interval_seconds == 6.0
    assert config.confidence_threshold == 65.0
    assert config.buy_cash_fraction == Decimal("0.10")
    assert config.sell_holding_fraction == Decimal("0.50")
    assert config.min_notional == Decimal("5")
    assert config.policy_window == 20
    assert config.advisory_log_limit == 50


def test_from_env_overrides():
    env = {
        "PAPERTRADER_SYMBOLS": "btc, eth",
        "PAPERTRADER_INITIAL_CASH": "2500.50",
        "PAPERTRADER_AUTOMATION_INTERVAL_SECONDS": "1.5",
        "PAPERTRADER_CONFIDENCE_THRESHOLD": "80",
        "PAPERTRADER_HISTORY_LIMIT": "",
    }

    config = SimulatorConfig.from_env(env)

    assert config.symbols == ("BTC", "ETH")
    assert config.initial_cash == Decimal("2500.50")
    assert config.automation_interval_seconds == 1.5
    assert config.confidence_threshold == 80.0
    assert config.history_limit == 50


def test_from_env_empty_keeps_defaults():
    assert SimulatorConfig.from_env({}) == SimulatorConfig()


@pytest.mark.parametrize(
    "env",
    [
        {"PAPERTRADER_INITIAL_CASH": "lots"},
        {"PAPERTRADER_HISTORY_LIMIT": "1.5"},
        {"PAPERTRADER_CONFIDENCE_THRESHOLD": "150"},
        {"PAPERTRADER_BUY_CASH_FRACTION": "0"},
    ],
)
def test_from_env_invalid_values_raise(env):
    with pytest.raises(ValueError):
        SimulatorConfig.from_env(env)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"symbols": ()},
        {"symbols": ("BTC", "BTC")},
        {"initial_cash": Decimal("-1")},
        {"history_limit": 0},
        {"automation_interval_seconds": 0},
        {"sell_holding_fraction": Decimal("1.5")},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        SimulatorConfig(**kwargs)


def test_gemini_defaults():
    config = GeminiConfig()
    assert config.api_key_env == "GEMINI_API_KEY"
    assert config.model == "gemini-2.5-flash"
    assert DEFAULT_SYMBOLS[0] == "BTC"
