"""Pytest configuration and shared fixtures."""

import json
import tempfile
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from tradeguard.config import BotSettings, ConfigManager
from tradeguard.models import (
    OrderKind,
    OrderRef,
    OrderStatus,
    PortfolioSnapshot,
    Side,
    Signal,
    Trade,
)


OPENED_AT = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def valid_settings_data():
    """Return valid settings data as stored in bot_settings.json."""
    return {
        "total_capital": 10000,
        "risk_percentage": 2,
        "initial_order_percentage": 25,
        "max_active_trades": 5,
        "market_type": "spot",
        "leverage": 1,
        "dca_levels": 3,
        "dca_drop_percentage": 2,
        "take_profit_percentage": 3,
        "stop_loss_percentage": 5,
        "stop_loss_calculation_method": "average_position",
        "risk_reward_ratio": 2,
        "use_risk_reward_ratio": False,
        "partial_tp_levels": [
            {"price_pct": 2, "percentage": 50},
            {"price_pct": 4, "percentage": 50},
        ],
        "max_drawdown_pct": 15,
        "sizing_mode": "risk_based",
    }


@pytest.fixture
def config_file(temp_config_dir, valid_settings_data):
    """Create a temporary settings file with valid data."""
    config_path = temp_config_dir / "bot_settings.json"
    with open(config_path, "w") as f:
        json.dump(valid_settings_data, f)
    return config_path


@pytest.fixture
def config_manager(config_file):
    """Create a ConfigManager with valid settings, ignoring the environment."""
    return ConfigManager(config_path=config_file, load_env=False)


@pytest.fixture
def settings():
    return BotSettings(total_capital=10000.0)


@pytest.fixture
def portfolio():
    """Healthy account with room for new trades."""
    return PortfolioSnapshot(
        total_balance=10000.0,
        usd_balance=10000.0,
        equity=10000.0,
        active_trades_count=1,
        total_exposure=1000.0,
        peak_equity=10000.0,
    )


@pytest.fixture
def signal():
    return Signal(symbol="BTC/USDT", side=Side.BUY, entry_price=100.0, confidence=80.0)


@pytest.fixture
def trade():
    return Trade(
        id="t-1",
        symbol="BTC/USDT",
        side=Side.BUY,
        entry_price=100.0,
        quantity=2.0,
        total_invested=200.0,
        stop_loss_price=95.0,
        take_profit_price=110.0,
    )


@pytest.fixture
def entry_order():
    return OrderRef(
        id="o-entry",
        symbol="BTC/USDT",
        side=Side.BUY,
        kind=OrderKind.ENTRY,
        status=OrderStatus.FILLED,
        price=100.0,
        quantity=2.0,
        filled_quantity=2.0,
        avg_price=100.0,
        created_at=OPENED_AT,
        filled_at=OPENED_AT,
    )


@pytest.fixture
def ohlcv():
    """Calm 5-minute candles around 100."""
    rng = np.random.default_rng(7)
    close = 100 + np.cumsum(rng.normal(0, 0.1, 120))
    return pd.DataFrame({
        "open": close,
        "high": close + 0.2,
        "low": close - 0.2,
        "close": close,
        "volume": np.full(120, 1000.0),
    })
