"""Configuration management module for tradeguard.

BotSettings is built once at the load boundary and handed to the engines as
an immutable, validated value. RiskLimits is the single table of default
thresholds used whenever an optional limit is absent from the settings.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from .models import MarketType, SizingMode, StopLossMethod, VolatilityLevel


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SUPPORTED_SCHEMA_VERSIONS = (1,)


@dataclass(frozen=True)
class BotSettings:
    """Strategy configuration consumed read-only by the engines."""
    total_capital: float = 1000.0
    risk_percentage: float = 2.0
    initial_order_percentage: float = 25.0
    max_active_trades: int = 5
    market_type: MarketType = MarketType.SPOT
    leverage: float = 1.0

    # DCA
    dca_levels: int = 5
    dca_drop_percentage: float = 2.0  # price drop per level

    # Take profit / stop loss
    take_profit_percentage: float = 3.0
    stop_loss_percentage: float = 5.0
    stop_loss_calculation_method: StopLossMethod = StopLossMethod.INITIAL_ENTRY
    risk_reward_ratio: float = 2.0
    use_risk_reward_ratio: bool = False

    # (price move %, share of position %) per partial take-profit rung
    partial_tp_levels: tuple[tuple[float, float], ...] = (
        (2.0, 25.0),
        (4.0, 25.0),
        (6.0, 25.0),
        (10.0, 25.0),
    )
    trailing_stop_distance: float = 2.0
    trailing_stop_activation: float = 3.0

    # Optional limits; None falls back to RiskLimits
    max_daily_loss_usd: Optional[float] = None
    max_daily_loss_pct: Optional[float] = None
    max_drawdown_pct: Optional[float] = None
    max_exposure_pct_per_symbol: Optional[float] = None
    max_exposure_pct_total: Optional[float] = None

    volatility_guard_enabled: bool = True
    volatility_guard_atr_multiplier: float = 3.0
    kill_switch_enabled: bool = True
    kill_switch_cooldown_minutes: int = 60

    sizing_mode: SizingMode = SizingMode.RISK_BASED
    schema_version: int = SCHEMA_VERSION

    @property
    def risk_fraction(self) -> float:
        """risk_percentage as a fraction."""
        return self.risk_percentage / 100

    @property
    def required_balance(self) -> float:
        """Balance needed to fund one trade at the configured risk."""
        return self.total_capital * self.risk_fraction


@dataclass(frozen=True)
class RiskLimits:
    """Default risk thresholds.

    Every optional limit that BotSettings leaves unset resolves here, so the
    engines never carry their own fallback values.
    """
    max_daily_loss_usd: Optional[float] = None
    max_daily_loss_pct: float = 5.0
    max_drawdown_pct: float = 20.0
    max_exposure_pct_per_symbol: float = 30.0
    max_exposure_pct_total: float = 80.0
    min_balance_usd: float = 10.0
    max_allocation_pct: float = 95.0
    min_position_pct_of_capital: float = 1.0
    max_position_buffer: float = 1.2
    dca_stop_clamp: float = 0.99
    risk_limit_tolerance: float = 0.01

    volatility_factors: tuple[tuple[VolatilityLevel, float], ...] = (
        (VolatilityLevel.EXTREME, 0.5),
        (VolatilityLevel.HIGH, 0.7),
        (VolatilityLevel.MEDIUM, 0.9),
        (VolatilityLevel.LOW, 1.0),
    )
    # Levels at which the risk gate shrinks capital instead of passing through
    guard_levels: tuple[VolatilityLevel, ...] = (
        VolatilityLevel.HIGH,
        VolatilityLevel.EXTREME,
    )

    def volatility_factor(self, level: VolatilityLevel) -> float:
        for candidate, factor in self.volatility_factors:
            if candidate is level:
                return factor
        return 1.0

    def resolve(self, settings: BotSettings) -> "RiskLimits":
        """Return a copy with every limit present in settings applied."""
        overrides = {}
        for name in (
            "max_daily_loss_usd",
            "max_daily_loss_pct",
            "max_drawdown_pct",
            "max_exposure_pct_per_symbol",
            "max_exposure_pct_total",
        ):
            value = getattr(settings, name)
            if value is not None:
                overrides[name] = value
        return replace(self, **overrides) if overrides else self


DEFAULT_LIMITS = RiskLimits()
DEFAULT_SETTINGS = BotSettings()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


_ENUM_FIELDS = {
    "market_type": MarketType,
    "stop_loss_calculation_method": StopLossMethod,
    "sizing_mode": SizingMode,
}

_ENV_OVERRIDES = {
    "TRADEGUARD_TOTAL_CAPITAL": ("total_capital", float),
    "TRADEGUARD_RISK_PERCENTAGE": ("risk_percentage", float),
    "TRADEGUARD_LEVERAGE": ("leverage", float),
    "TRADEGUARD_MAX_ACTIVE_TRADES": ("max_active_trades", int),
    "TRADEGUARD_DCA_LEVELS": ("dca_levels", int),
    "TRADEGUARD_MAX_DRAWDOWN_PCT": ("max_drawdown_pct", float),
    "TRADEGUARD_MAX_DAILY_LOSS_USD": ("max_daily_loss_usd", float),
    "TRADEGUARD_SIZING_MODE": ("sizing_mode", str),
    "TRADEGUARD_KILL_SWITCH_ENABLED": ("kill_switch_enabled", bool),
    "TRADEGUARD_VOLATILITY_GUARD_ENABLED": ("volatility_guard_enabled", bool),
}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def validate_settings(settings: BotSettings) -> list[str]:
    """Return a list of problems with settings (empty when valid)."""
    problems = []

    if settings.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        problems.append(f"schema_version {settings.schema_version} is not supported")
    if settings.total_capital <= 0:
        problems.append("total_capital (must be > 0)")
    if not 0 < settings.risk_percentage <= 100:
        problems.append("risk_percentage (must be in (0, 100])")
    if not 0 <= settings.initial_order_percentage <= 100:
        problems.append("initial_order_percentage (must be in [0, 100])")
    if settings.max_active_trades <= 0:
        problems.append("max_active_trades (must be > 0)")
    if settings.leverage <= 0:
        problems.append("leverage (must be > 0)")
    if settings.dca_levels < 0:
        problems.append("dca_levels (must be >= 0)")
    if settings.dca_drop_percentage <= 0:
        problems.append("dca_drop_percentage (must be > 0)")
    elif settings.dca_levels and settings.dca_drop_percentage * settings.dca_levels >= 100:
        problems.append("dca_drop_percentage * dca_levels (must be < 100)")
    if settings.take_profit_percentage <= 0:
        problems.append("take_profit_percentage (must be > 0)")
    if not 0 < settings.stop_loss_percentage < 100:
        problems.append("stop_loss_percentage (must be in (0, 100))")
    if settings.risk_reward_ratio <= 0:
        problems.append("risk_reward_ratio (must be > 0)")
    if settings.trailing_stop_distance < 0 or settings.trailing_stop_activation < 0:
        problems.append("trailing stop distance/activation (must be >= 0)")

    share_total = 0.0
    for move_pct, share_pct in settings.partial_tp_levels:
        if move_pct <= 0 or share_pct < 0:
            problems.append(f"partial_tp_levels entry ({move_pct}, {share_pct}) is invalid")
        share_total += share_pct
    if share_total > 100:
        problems.append("partial_tp_levels shares (must sum to <= 100)")

    for name in (
        "max_daily_loss_usd",
        "max_daily_loss_pct",
        "max_drawdown_pct",
        "max_exposure_pct_per_symbol",
        "max_exposure_pct_total",
    ):
        value = getattr(settings, name)
        if value is not None and value <= 0:
            problems.append(f"{name} (must be > 0 when set)")

    return problems


class ConfigManager:
    """Loads BotSettings from a JSON file and environment variables."""

    def __init__(self, config_path: str | Path | None = None, load_env: bool = True):
        """Initialize configuration manager.

        Args:
            config_path: Path to the settings JSON file. If None, uses config/bot_settings.json.
            load_env: Whether to load .env and apply TRADEGUARD_* overrides. Set to False for testing.
        """
        self.config_path = Path(config_path) if config_path else Path("config/bot_settings.json")
        self._settings: BotSettings | None = None
        self._load_env = load_env
        if load_env:
            load_dotenv()

    def load(self) -> BotSettings:
        """Load settings from file and environment variables.

        Returns:
            Validated BotSettings.

        Raises:
            ConfigValidationError: If any field is missing or invalid.
        """
        data = self._load_json()
        if self._load_env:
            data = self._override_from_env(data)
        self._settings = self.from_dict(data)
        return self._settings

    @staticmethod
    def from_dict(data: dict[str, Any]) -> BotSettings:
        """Build and validate BotSettings from a plain mapping.

        Raises:
            ConfigValidationError: If a value cannot be parsed or fails validation.
        """
        known = {f.name for f in fields(BotSettings)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown settings keys: {', '.join(unknown)}")

        kwargs: dict[str, Any] = {}
        problems = []
        for name in known & set(data):
            value = data[name]
            if value is None and name not in _OPTIONAL_FIELDS:
                continue
            try:
                kwargs[name] = _coerce(name, value)
            except (TypeError, ValueError, KeyError) as e:
                problems.append(f"{name}: {e}")

        if problems:
            raise ConfigValidationError(
                f"Missing or invalid required configuration fields: {', '.join(problems)}"
            )

        settings = BotSettings(**kwargs)
        problems = validate_settings(settings)
        if problems:
            raise ConfigValidationError(
                f"Missing or invalid required configuration fields: {', '.join(problems)}"
            )
        return settings

    def _load_json(self) -> dict[str, Any]:
        """Load JSON configuration file."""
        if not self.config_path.exists():
            logger.info(f"No settings file at {self.config_path}, using defaults")
            return {}

        with open(self.config_path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ConfigValidationError(f"{self.config_path} must contain a JSON object")
        return data

    def _override_from_env(self, data: dict[str, Any]) -> dict[str, Any]:
        """Apply TRADEGUARD_* environment variables on top of file values."""
        data = dict(data)
        for env_name, (field_name, caster) in _ENV_OVERRIDES.items():
            if raw := os.getenv(env_name):
                if caster is bool:
                    data[field_name] = _parse_bool(raw)
                else:
                    try:
                        data[field_name] = caster(raw)
                    except ValueError as e:
                        raise ConfigValidationError(f"{env_name}={raw!r}: {e}") from e
        return data

    @property
    def settings(self) -> BotSettings:
        """Get loaded settings."""
        if not self._settings:
            raise ConfigValidationError("Configuration not loaded. Call load() first.")
        return self._settings


_OPTIONAL_FIELDS = {
    "max_daily_loss_usd",
    "max_daily_loss_pct",
    "max_drawdown_pct",
    "max_exposure_pct_per_symbol",
    "max_exposure_pct_total",
}

_INT_FIELDS = {"max_active_trades", "dca_levels", "kill_switch_cooldown_minutes", "schema_version"}
_BOOL_FIELDS = {
    "use_risk_reward_ratio",
    "volatility_guard_enabled",
    "kill_switch_enabled",
}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw JSON/env value into the BotSettings field type."""
    if value is None:
        return None
    if name in _ENUM_FIELDS:
        return _ENUM_FIELDS[name](value)
    if name in _BOOL_FIELDS:
        return _parse_bool(value)
    if name in _INT_FIELDS:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    if name == "partial_tp_levels":
        levels = []
        for item in value:
            if isinstance(item, dict):
                levels.append((float(item["price_pct"]), float(item["percentage"])))
            else:
                move_pct, share_pct = item
                levels.append((float(move_pct), float(share_pct)))
        return tuple(levels)
    return float(value)
