"""Pure computation engines for sizing, exits, PnL, DCA, risk and positions."""

from .sizing import SizingEngine, SizingResult
from .tpsl import TPSLEngine, TPSLLevels
from .pnl import PnLEngine, PnLResult
from .dca import DCAEngine, DCALadder, DCALevel
from .dynamic_sizing import (
    DrawdownStats,
    DynamicSizingContext,
    DynamicSizingEngine,
    DynamicSizingResult,
    PerformanceStats,
    drawdown_proximity,
)
from .risk import RiskContext, RiskEngine
from .position import PositionEngine
from .exits import ExitRuleEngine

__all__ = [
    "SizingEngine",
    "SizingResult",
    "TPSLEngine",
    "TPSLLevels",
    "PnLEngine",
    "PnLResult",
    "DCAEngine",
    "DCALadder",
    "DCALevel",
    "DrawdownStats",
    "DynamicSizingContext",
    "DynamicSizingEngine",
    "DynamicSizingResult",
    "PerformanceStats",
    "drawdown_proximity",
    "RiskContext",
    "RiskEngine",
    "PositionEngine",
    "ExitRuleEngine",
]
