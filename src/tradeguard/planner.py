"""Trade planning pipeline.

Wires the engines in the order a new trade goes through them:
risk gate -> dynamic sizing -> base sizing -> DCA ladder -> exit levels.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_LIMITS, RiskLimits
from .engines.dca import DCAEngine, DCALadder
from .engines.dynamic_sizing import (
    DrawdownStats,
    DynamicSizingContext,
    DynamicSizingEngine,
    DynamicSizingResult,
    PerformanceStats,
)
from .engines.risk import RiskContext, RiskEngine
from .engines.sizing import SizingEngine, SizingResult
from .engines.tpsl import TPSLEngine, TPSLLevels
from .models import PortfolioSnapshot, RiskEvaluationResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradePlan:
    """Everything needed to place a trade.

    Only evaluation is set when the risk gate denies the trade.
    """
    evaluation: RiskEvaluationResult
    sizing: Optional[SizingResult] = None
    ladder: Optional[DCALadder] = None
    levels: Optional[TPSLLevels] = None
    dynamic: Optional[DynamicSizingResult] = None

    @property
    def approved(self) -> bool:
        return self.evaluation.allowed


class TradePlanner:
    """Unified entry point running every engine for a signal."""

    def __init__(self, limits: RiskLimits = DEFAULT_LIMITS):
        self.limits = limits
        self.risk = RiskEngine(limits)
        self.dynamic_sizing = DynamicSizingEngine(limits)
        self.sizing = SizingEngine(limits)
        self.dca = DCAEngine(limits)
        self.tpsl = TPSLEngine()

    def plan(
        self,
        ctx: RiskContext,
        entry_price: Optional[float] = None,
        loss_pct: Optional[float] = None,
        performance: Optional[PerformanceStats] = None,
    ) -> TradePlan:
        """Plan a trade for ctx.signal.

        Capital flows forward through both adjustment steps: the volatility
        guard's capital is the base for dynamic sizing, and volatility is not
        applied a second time when the guard already shrank it. Base sizing
        risks exactly the clamped dynamic size, capped by the free USD balance.

        Args:
            ctx: Risk context for the signal
            entry_price: Planned entry; defaults to the signal's price
            loss_pct: Expected adverse move for sizing; defaults to stop_loss_percentage
            performance: Recent trading performance for risk-based sizing

        Returns:
            TradePlan
        """
        evaluation = self.risk.evaluate(ctx)
        if not evaluation.allowed:
            return TradePlan(evaluation=evaluation)

        settings = ctx.settings
        signal = ctx.signal
        limits = self.limits.resolve(settings)
        portfolio = ctx.portfolio or PortfolioSnapshot.neutral(
            settings.total_capital, active_trades_count=len(ctx.open_trades)
        )
        guard_adjusted = evaluation.adjusted_capital is not None
        base_capital = evaluation.adjusted_capital if guard_adjusted else settings.total_capital

        dynamic = self.dynamic_sizing.adjust(DynamicSizingContext(
            base_capital=base_capital,
            settings=settings,
            volatility=None if guard_adjusted else ctx.indicators,
            performance=performance,
            drawdown=DrawdownStats.from_portfolio(portfolio, limits.max_drawdown_pct),
        ))

        entry_price = entry_price if entry_price is not None else signal.entry_price
        # capital whose risk amount is the clamped dynamic size
        if settings.risk_percentage > 0:
            sizing_capital = dynamic.position_size * 100 / settings.risk_percentage
        else:
            sizing_capital = dynamic.adjusted_capital
        balance = min(sizing_capital, portfolio.usd_balance)
        sizing = self.sizing.size_from_settings(settings, balance, entry_price, loss_pct)

        ladder = None
        if settings.dca_levels > 0:
            ladder = self.dca.levels_from_settings(settings, entry_price, sizing, signal.direction)

        levels = self.tpsl.compute_from_settings(settings, entry_price, signal.direction)

        logger.info(
            f"Planned {signal.symbol} {signal.side.value}: size {sizing.position_size:.2f} "
            f"@ {entry_price}, SL {levels.stop_loss_price:.6f}, TP {levels.take_profit_price:.6f}"
        )
        return TradePlan(
            evaluation=evaluation,
            sizing=sizing,
            ladder=ladder,
            levels=levels,
            dynamic=dynamic,
        )
