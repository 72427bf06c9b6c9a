"""Pre-trade risk gate.

Runs an ordered chain of checks against a candidate signal. Every check but
the volatility guard denies on failure and stops the chain; the volatility
guard only shrinks capital and lets evaluation continue.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config import BotSettings, DEFAULT_LIMITS, RiskLimits
from ..models import (
    Indicators,
    PortfolioSnapshot,
    RiskEvaluationResult,
    RiskFlag,
    RiskLevel,
    Signal,
    Trade,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskContext:
    """Everything the risk gate looks at for one signal.

    Attributes:
        signal: Trade candidate
        settings: Bot settings
        portfolio: Account snapshot; None means a neutral snapshot built from total_capital
        open_trades: Trades currently held (for per-symbol exposure)
        indicators: Volatility view for the signal's symbol
        alerts: Alerts carried by the last risk snapshot
    """
    signal: Signal
    settings: BotSettings
    portfolio: Optional[PortfolioSnapshot] = None
    open_trades: tuple[Trade, ...] = ()
    indicators: Optional[Indicators] = None
    alerts: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class _Check:
    passed: bool
    flag: Optional[RiskFlag] = None
    reason: Optional[str] = None
    adjusted_capital: Optional[float] = None


_PASS = _Check(passed=True)


def _pct_of(amount: float, base: float) -> float:
    return amount / base * 100 if base > 0 else 0.0


class RiskEngine:
    """Evaluates whether a new trade may be opened."""

    def __init__(self, limits: RiskLimits = DEFAULT_LIMITS):
        self.limits = limits

    def evaluate(self, ctx: RiskContext) -> RiskEvaluationResult:
        """Run the risk chain for ctx.signal.

        Order: kill switch, daily loss, drawdown, exposure, max trades,
        volatility guard, balance. Denials are returned, never raised.
        """
        limits = self.limits.resolve(ctx.settings)
        portfolio = ctx.portfolio or PortfolioSnapshot.neutral(
            ctx.settings.total_capital, active_trades_count=len(ctx.open_trades)
        )
        symbol = ctx.signal.symbol

        flags: list[RiskFlag] = []
        reasons: list[str] = []

        blocking = (
            (self._check_kill_switch, RiskLevel.CRITICAL),
            (self._check_daily_loss, RiskLevel.CRITICAL),
            (self._check_drawdown, RiskLevel.CRITICAL),
            (self._check_exposure, RiskLevel.HIGH),
            (self._check_max_trades, RiskLevel.HIGH),
        )
        for check, level in blocking:
            result = check(ctx, portfolio, limits)
            if not result.passed:
                return self._deny(symbol, result, level, flags, reasons)

        adjusted_capital = None
        guard = self._check_volatility(ctx, limits)
        if guard.flag is not None:
            flags.append(guard.flag)
            reasons.append(guard.reason)
            adjusted_capital = guard.adjusted_capital
            logger.info(f"Risk gate {symbol}: {guard.reason}")

        balance = self._check_balance(ctx, portfolio, limits)
        if not balance.passed:
            return self._deny(symbol, balance, RiskLevel.HIGH, flags, reasons)

        risk_level = RiskLevel.MEDIUM if adjusted_capital is not None else RiskLevel.LOW
        logger.debug(f"Risk gate {symbol}: allowed ({risk_level.value})")
        return RiskEvaluationResult(
            allowed=True,
            risk_level=risk_level,
            reason="; ".join(reasons) if reasons else None,
            adjusted_capital=adjusted_capital,
            flags=tuple(flags),
        )

    def _deny(
        self,
        symbol: str,
        check: _Check,
        level: RiskLevel,
        flags: list[RiskFlag],
        reasons: list[str],
    ) -> RiskEvaluationResult:
        flags.append(check.flag)
        reasons.append(check.reason)
        reason = "; ".join(reasons)
        logger.info(f"Risk gate {symbol}: denied ({level.value}) - {reason}")
        return RiskEvaluationResult(
            allowed=False,
            risk_level=level,
            reason=reason,
            flags=tuple(flags),
        )

    def _check_kill_switch(self, ctx: RiskContext, portfolio: PortfolioSnapshot, limits: RiskLimits) -> _Check:
        if not ctx.settings.kill_switch_enabled:
            return _PASS
        alerts = ctx.alerts or portfolio.alerts
        if any("kill" in alert.lower() for alert in alerts):
            return _Check(
                passed=False,
                flag=RiskFlag.KILL_SWITCH_ACTIVE,
                reason="Kill switch is active. Trading is temporarily disabled.",
            )
        return _PASS

    def _check_daily_loss(self, ctx: RiskContext, portfolio: PortfolioSnapshot, limits: RiskLimits) -> _Check:
        daily_loss = abs(min(0.0, portfolio.daily_pnl))
        daily_loss_pct = _pct_of(daily_loss, portfolio.equity)

        if limits.max_daily_loss_usd is not None and daily_loss >= limits.max_daily_loss_usd:
            return _Check(
                passed=False,
                flag=RiskFlag.DAILY_LOSS_LIMIT_HIT,
                reason=f"Daily loss limit exceeded: ${daily_loss:.2f} >= ${limits.max_daily_loss_usd:.2f}",
            )
        if daily_loss_pct >= limits.max_daily_loss_pct:
            return _Check(
                passed=False,
                flag=RiskFlag.DAILY_LOSS_LIMIT_HIT,
                reason=f"Daily loss percentage exceeded: {daily_loss_pct:.2f}% >= {limits.max_daily_loss_pct}%",
            )
        return _PASS

    def _check_drawdown(self, ctx: RiskContext, portfolio: PortfolioSnapshot, limits: RiskLimits) -> _Check:
        if portfolio.current_drawdown >= limits.max_drawdown_pct:
            return _Check(
                passed=False,
                flag=RiskFlag.MAX_DRAWDOWN_EXCEEDED,
                reason=f"Max drawdown exceeded: {portfolio.current_drawdown:.2f}% >= {limits.max_drawdown_pct}%",
            )
        return _PASS

    def _check_exposure(self, ctx: RiskContext, portfolio: PortfolioSnapshot, limits: RiskLimits) -> _Check:
        symbol = ctx.signal.symbol
        symbol_exposure = sum(
            t.total_invested or 0.0
            for t in ctx.open_trades
            if t.symbol == symbol and t.is_active
        )
        symbol_pct = _pct_of(symbol_exposure, portfolio.equity)
        if symbol_pct >= limits.max_exposure_pct_per_symbol:
            return _Check(
                passed=False,
                flag=RiskFlag.EXPOSURE_PER_SYMBOL_EXCEEDED,
                reason=(
                    f"Exposure per symbol exceeded: {symbol_pct:.2f}% >= "
                    f"{limits.max_exposure_pct_per_symbol}% for {symbol}"
                ),
            )

        total_pct = _pct_of(portfolio.total_exposure, portfolio.equity)
        if total_pct >= limits.max_exposure_pct_total:
            return _Check(
                passed=False,
                flag=RiskFlag.TOTAL_EXPOSURE_EXCEEDED,
                reason=f"Total exposure exceeded: {total_pct:.2f}% >= {limits.max_exposure_pct_total}%",
            )
        return _PASS

    def _check_max_trades(self, ctx: RiskContext, portfolio: PortfolioSnapshot, limits: RiskLimits) -> _Check:
        max_trades = ctx.settings.max_active_trades
        if portfolio.active_trades_count >= max_trades:
            return _Check(
                passed=False,
                flag=RiskFlag.MAX_TRADES_REACHED,
                reason=f"Max active trades reached: {portfolio.active_trades_count} >= {max_trades}",
            )
        return _PASS

    def _check_volatility(self, ctx: RiskContext, limits: RiskLimits) -> _Check:
        """Shrink capital on HIGH/EXTREME volatility. Never denies."""
        if not ctx.settings.volatility_guard_enabled or ctx.indicators is None:
            return _PASS

        level = ctx.indicators.volatility_level
        if level not in limits.guard_levels:
            return _PASS

        factor = limits.volatility_factor(level)
        return _Check(
            passed=True,
            flag=RiskFlag.VOLATILITY_TOO_HIGH,
            reason=(
                f"High volatility detected ({level.value}). "
                f"Position size reduced by {(1 - factor) * 100:.0f}%."
            ),
            adjusted_capital=ctx.settings.total_capital * factor,
        )

    def _check_balance(self, ctx: RiskContext, portfolio: PortfolioSnapshot, limits: RiskLimits) -> _Check:
        required = ctx.settings.required_balance
        if portfolio.usd_balance < limits.min_balance_usd:
            return _Check(
                passed=False,
                flag=RiskFlag.INSUFFICIENT_BALANCE,
                reason=f"Insufficient balance: ${portfolio.usd_balance:.2f} < ${limits.min_balance_usd:.0f}",
            )
        if portfolio.usd_balance < required:
            return _Check(
                passed=False,
                flag=RiskFlag.INSUFFICIENT_BALANCE,
                reason=f"Insufficient balance for trade: ${portfolio.usd_balance:.2f} < ${required:.2f}",
            )
        return _PASS
