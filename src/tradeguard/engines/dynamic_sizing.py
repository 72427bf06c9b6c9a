"""Dynamic position sizing.

Shrinks (or slightly grows) the base position under stress:
- volatility_adjusted mode: scale by the volatility factor table
- risk_based mode: scale by recent performance, then by drawdown proximity
- fixed mode: no adjustment

The final size is clamped to [1% of base capital, 120% of base size].
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..config import BotSettings, DEFAULT_LIMITS, RiskLimits
from ..errors import require_non_negative, require_positive
from ..models import Indicators, PortfolioSnapshot, RiskLevel, SizingMode, StreakType, VolatilityLevel


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceStats:
    """Recent trading performance.

    Attributes:
        win_rate: Overall win rate (0-100)
        recent_streak: Direction of the current streak
        streak_count: Length of the current streak
        recent_win_rate: Win rate over the recent window (0-100)
    """
    win_rate: float
    recent_streak: StreakType
    streak_count: int
    recent_win_rate: float

    @classmethod
    def from_trades(cls, pnls: Sequence[float], recent_window: int = 10) -> "PerformanceStats":
        """Derive stats from realized trade results, oldest first."""
        if not pnls:
            return cls(win_rate=0.0, recent_streak=StreakType.NEUTRAL, streak_count=0, recent_win_rate=0.0)

        wins = sum(1 for p in pnls if p > 0)
        recent = pnls[-recent_window:]
        recent_wins = sum(1 for p in recent if p > 0)

        last = pnls[-1]
        if last > 0:
            streak = StreakType.WINNING
        elif last < 0:
            streak = StreakType.LOSING
        else:
            streak = StreakType.NEUTRAL

        count = 0
        for p in reversed(pnls):
            if streak is StreakType.WINNING and p > 0:
                count += 1
            elif streak is StreakType.LOSING and p < 0:
                count += 1
            else:
                break

        return cls(
            win_rate=wins / len(pnls) * 100,
            recent_streak=streak,
            streak_count=count,
            recent_win_rate=recent_wins / len(recent) * 100,
        )


@dataclass(frozen=True)
class DrawdownStats:
    """Drawdown state relative to the configured maximum.

    Attributes:
        current_drawdown_pct: Current drawdown (percent)
        max_drawdown_pct: Maximum allowed drawdown (percent)
        proximity_to_max: current / max, capped to [0, 1]
        current_drawdown: Current drawdown in USD
    """
    current_drawdown_pct: float
    max_drawdown_pct: float
    proximity_to_max: float
    current_drawdown: float = 0.0

    @classmethod
    def from_portfolio(cls, portfolio: PortfolioSnapshot, max_drawdown_pct: float) -> "DrawdownStats":
        return cls(
            current_drawdown_pct=portfolio.current_drawdown,
            max_drawdown_pct=max_drawdown_pct,
            proximity_to_max=drawdown_proximity(portfolio.current_drawdown, max_drawdown_pct),
            current_drawdown=max(0.0, portfolio.peak_equity - portfolio.equity),
        )


@dataclass(frozen=True)
class DynamicSizingContext:
    base_capital: float
    settings: BotSettings
    volatility: Optional[Indicators] = None
    performance: Optional[PerformanceStats] = None
    drawdown: Optional[DrawdownStats] = None


@dataclass(frozen=True)
class DynamicSizingResult:
    """Result of dynamic sizing.

    adjusted_capital is base capital times the combined reduction factor;
    position_size is the clamped size actually to be used.
    """
    adjusted_capital: float
    position_size: float
    reduction_factor: float
    reasons: tuple[str, ...]
    risk_level: RiskLevel


@dataclass(frozen=True)
class _Adjustment:
    factor: float = 1.0
    reason: Optional[str] = None


def drawdown_proximity(current_drawdown: float, max_drawdown: float) -> float:
    """How close current drawdown is to the maximum, in [0, 1]."""
    if max_drawdown <= 0:
        return 0.0
    return max(0.0, min(1.0, current_drawdown / max_drawdown))


class DynamicSizingEngine:
    """Adjusts position size for volatility, performance and drawdown."""

    def __init__(self, limits: RiskLimits = DEFAULT_LIMITS):
        self.limits = limits

    def adjust(self, ctx: DynamicSizingContext) -> DynamicSizingResult:
        """Calculate the dynamically adjusted position size.

        Raises:
            InvalidParameterError: If base capital is negative or risk percentage is not positive
        """
        base_capital = require_non_negative("base_capital", ctx.base_capital)
        risk_pct = require_positive("risk_percentage", ctx.settings.risk_percentage)
        base_position_size = base_capital * risk_pct / 100
        mode = ctx.settings.sizing_mode

        if mode is SizingMode.FIXED:
            return DynamicSizingResult(
                adjusted_capital=base_capital,
                position_size=base_position_size,
                reduction_factor=1.0,
                reasons=(),
                risk_level=RiskLevel.LOW,
            )

        reduction_factor = 1.0
        reasons: list[str] = []
        risk_level = RiskLevel.LOW

        if mode is SizingMode.VOLATILITY_ADJUSTED and ctx.volatility is not None:
            adj = self._adjust_for_volatility(ctx.volatility)
            reduction_factor *= adj.factor
            if adj.factor < 1.0:
                reasons.append(adj.reason)
                if adj.factor < 0.5:
                    risk_level = risk_level.escalate(RiskLevel.HIGH)
                elif adj.factor < 0.7:
                    risk_level = risk_level.escalate(RiskLevel.MEDIUM)

        if mode is SizingMode.RISK_BASED and ctx.performance is not None:
            adj = self._adjust_for_performance(ctx.performance)
            reduction_factor *= adj.factor
            if adj.factor < 1.0:
                reasons.append(adj.reason)
                risk_level = risk_level.escalate(RiskLevel.HIGH if adj.factor < 0.7 else RiskLevel.MEDIUM)
            elif adj.factor > 1.0:
                reasons.append(adj.reason)

        if mode is SizingMode.RISK_BASED and ctx.drawdown is not None:
            adj = self._adjust_for_drawdown(ctx.drawdown)
            reduction_factor *= adj.factor
            if adj.factor < 1.0:
                reasons.append(adj.reason)
                if adj.factor < 0.6:
                    risk_level = risk_level.escalate(RiskLevel.CRITICAL)
                elif adj.factor < 0.8:
                    risk_level = risk_level.escalate(RiskLevel.HIGH)

        adjusted_capital = base_capital * reduction_factor
        raw_size = adjusted_capital * risk_pct / 100

        lower = base_capital * self.limits.min_position_pct_of_capital / 100
        upper = base_position_size * self.limits.max_position_buffer
        position_size = min(max(raw_size, lower), upper)
        if position_size != raw_size:
            logger.debug(f"Dynamic size {raw_size:.2f} clamped to {position_size:.2f} [{lower:.2f}, {upper:.2f}]")

        if reasons:
            logger.info(
                f"Dynamic sizing ({mode.value}): factor {reduction_factor:.2f}, "
                f"size {position_size:.2f}, risk {risk_level.value}"
            )

        return DynamicSizingResult(
            adjusted_capital=adjusted_capital,
            position_size=position_size,
            reduction_factor=reduction_factor,
            reasons=tuple(reasons),
            risk_level=risk_level,
        )

    def _adjust_for_volatility(self, volatility: Indicators) -> _Adjustment:
        level = volatility.volatility_level
        factor = self.limits.volatility_factor(level)
        if factor >= 1.0:
            return _Adjustment()

        cut = (1 - factor) * 100
        if level is VolatilityLevel.MEDIUM:
            reason = f"Moderate volatility detected. Position size reduced by {cut:.0f}%."
        else:
            label = "Extreme" if level is VolatilityLevel.EXTREME else "High"
            reason = (
                f"{label} volatility detected (ATR: {volatility.atr_percent:.2f}%). "
                f"Position size reduced by {cut:.0f}%."
            )
        return _Adjustment(factor, reason)

    def _adjust_for_performance(self, performance: PerformanceStats) -> _Adjustment:
        streak = performance.recent_streak
        count = performance.streak_count
        recent_win_rate = performance.recent_win_rate

        if streak is StreakType.LOSING:
            if count >= 5:
                return _Adjustment(0.5, f"Losing streak detected ({count} losses). Position size reduced by 50%.")
            if count >= 3:
                return _Adjustment(0.7, f"Losing streak detected ({count} losses). Position size reduced by 30%.")

        if recent_win_rate < 30:
            return _Adjustment(
                0.6, f"Low win rate detected ({recent_win_rate:.1f}%). Position size reduced by 40%."
            )

        if streak is StreakType.WINNING and count >= 5 and recent_win_rate > 70:
            return _Adjustment(1.1, f"Winning streak detected ({count} wins). Position size increased by 10%.")

        return _Adjustment()

    def _adjust_for_drawdown(self, drawdown: DrawdownStats) -> _Adjustment:
        current = drawdown.current_drawdown_pct
        max_dd = drawdown.max_drawdown_pct
        proximity = drawdown.proximity_to_max

        if proximity > 0.9:
            return _Adjustment(0.4, f"Near max drawdown ({current:.2f}% / {max_dd}%). Position size reduced by 60%.")
        if proximity > 0.8:
            return _Adjustment(0.6, f"Close to max drawdown ({current:.2f}% / {max_dd}%). Position size reduced by 40%.")
        if proximity > 0.7:
            return _Adjustment(0.8, f"Approaching max drawdown ({current:.2f}% / {max_dd}%). Position size reduced by 20%.")
        if current > max_dd * 0.5:
            return _Adjustment(0.9, f"Moderate drawdown ({current:.2f}%). Position size reduced by 10%.")

        return _Adjustment()
