"""
tradeguard - Risk & Position Computation Engine

Pure, deterministic sizing, exit, DCA, risk gating, PnL and position
lifecycle calculations for an automated crypto-trading bot.
"""

__version__ = "1.0.0"

from .config import BotSettings, ConfigManager, ConfigValidationError, RiskLimits
from .errors import InvalidParameterError, InvalidTransitionError
from .models import (
    Direction,
    Indicators,
    OrderRef,
    OrderStatus,
    PortfolioSnapshot,
    Position,
    PositionStatus,
    RiskEvaluationResult,
    RiskFlag,
    RiskLevel,
    Side,
    Signal,
    Trade,
)
from .planner import TradePlan, TradePlanner

__all__ = [
    "BotSettings",
    "ConfigManager",
    "ConfigValidationError",
    "RiskLimits",
    "InvalidParameterError",
    "InvalidTransitionError",
    "Direction",
    "Indicators",
    "OrderRef",
    "OrderStatus",
    "PortfolioSnapshot",
    "Position",
    "PositionStatus",
    "RiskEvaluationResult",
    "RiskFlag",
    "RiskLevel",
    "Side",
    "Signal",
    "Trade",
    "TradePlan",
    "TradePlanner",
]
