"""DCA (dollar-cost averaging) ladder builder.

Expands a position into N averaging entries against the initial entry:
- level i sits drop_pct * i percent below the entry price (above it for shorts)
- the amount left after the initial order is split evenly across levels
- each level reports the running average entry and, optionally, a stop-loss
  that keeps the total loss within the allowed budget
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import BotSettings, DEFAULT_LIMITS, RiskLimits
from ..errors import (
    InvalidParameterError,
    require_finite,
    require_non_negative,
    require_positive,
)
from ..models import Direction, StopLossMethod
from .sizing import SizingResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DCALevel:
    """One rung of the averaging ladder.

    Attributes:
        level: 1-based level number
        drop_pct: Price drop from the initial entry (percent)
        entry_price: Price at which this level buys
        amount: USD invested at this level
        cumulative_amount: USD invested up to and including this level
        cumulative_quantity: Quantity held up to and including this level
        average_entry: Average entry price after this level fills
        stop_loss_price: Stop keeping loss within budget (None when not requested)
        actual_loss_amount: Loss if the stop is hit after this level (None when not requested)
    """
    level: int
    drop_pct: float
    entry_price: float
    amount: float
    cumulative_amount: float
    cumulative_quantity: float
    average_entry: float
    stop_loss_price: Optional[float] = None
    actual_loss_amount: Optional[float] = None


@dataclass(frozen=True)
class DCALadder:
    """A full ladder plus aggregates taken from its last level."""
    levels: tuple[DCALevel, ...]
    per_level_amount: float
    total_invested: float
    total_quantity: float
    final_average_entry: float

    @property
    def final_stop_loss(self) -> Optional[float]:
        return self.levels[-1].stop_loss_price if self.levels else None


class DCAEngine:
    """Builds DCA entry ladders."""

    def __init__(self, limits: RiskLimits = DEFAULT_LIMITS):
        self.limits = limits

    def levels(
        self,
        entry_price: float,
        total_amount: float,
        initial_amount: float,
        n: int,
        drop_pct: float,
        sl_method: Optional[StopLossMethod] = None,
        sl_pct: Optional[float] = None,
        max_allowed_loss: Optional[float] = None,
        direction: Direction = Direction.LONG,
    ) -> DCALadder:
        """Build an n-level ladder below entry_price (above it for shorts).

        Args:
            entry_price: Price of the initial order
            total_amount: Whole position size in USD (initial + DCA)
            initial_amount: USD placed by the initial order
            n: Number of DCA levels (>= 1)
            drop_pct: Price drop per level in percent (> 0)
            sl_method: Reference for per-level stop-loss; None disables it
            sl_pct: Stop-loss percent of total_amount, used as the loss budget
                when max_allowed_loss is not given
            max_allowed_loss: Loss budget in USD for per-level stops
            direction: Side of the trade; shorts average up

        Returns:
            DCALadder

        Raises:
            InvalidParameterError: On n < 1, drop_pct <= 0, a ladder reaching a
                non-positive price, initial_amount > total_amount, or non-finite input
        """
        entry_price = require_positive("entry_price", entry_price)
        total_amount = require_non_negative("total_amount", total_amount)
        initial_amount = require_non_negative("initial_amount", initial_amount)
        drop_pct = require_positive("drop_pct", drop_pct)
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise InvalidParameterError(f"n (dca levels) must be an integer >= 1, got {n!r}")
        if drop_pct * n >= 100:
            raise InvalidParameterError(
                f"drop_pct * n must be < 100 to keep prices positive, got {drop_pct} * {n}"
            )
        if initial_amount > total_amount:
            raise InvalidParameterError(
                f"initial_amount ({initial_amount}) exceeds total_amount ({total_amount})"
            )

        loss_budget = self._loss_budget(sl_method, sl_pct, max_allowed_loss, total_amount)

        sign = direction.sign
        per_level_amount = (total_amount - initial_amount) / n
        cumulative_amount = initial_amount
        cumulative_quantity = initial_amount / entry_price

        ladder = []
        for i in range(1, n + 1):
            level_drop = drop_pct * i
            level_entry = entry_price * (1 - sign * level_drop / 100)

            cumulative_amount += per_level_amount
            cumulative_quantity += per_level_amount / level_entry
            average_entry = (
                cumulative_amount / cumulative_quantity if cumulative_quantity > 0 else level_entry
            )

            stop_loss_price = None
            actual_loss = None
            if loss_budget is not None:
                stop_loss_price, actual_loss = self._level_stop(
                    sl_method, entry_price, average_entry, cumulative_quantity, loss_budget, sign
                )

            ladder.append(DCALevel(
                level=i,
                drop_pct=level_drop,
                entry_price=level_entry,
                amount=per_level_amount,
                cumulative_amount=cumulative_amount,
                cumulative_quantity=cumulative_quantity,
                average_entry=average_entry,
                stop_loss_price=stop_loss_price,
                actual_loss_amount=actual_loss,
            ))

        last = ladder[-1]
        logger.debug(
            f"DCA ladder: {n} levels from {entry_price} every {drop_pct}%, "
            f"invested {last.cumulative_amount:.2f}, avg entry {last.average_entry:.6f}"
        )

        return DCALadder(
            levels=tuple(ladder),
            per_level_amount=per_level_amount,
            total_invested=last.cumulative_amount,
            total_quantity=last.cumulative_quantity,
            final_average_entry=last.average_entry,
        )

    def levels_from_settings(
        self,
        settings: BotSettings,
        entry_price: float,
        sizing: SizingResult,
        direction: Direction = Direction.LONG,
    ) -> DCALadder:
        """Build the ladder described by settings for an already-sized trade."""
        return self.levels(
            entry_price=entry_price,
            total_amount=sizing.position_size,
            initial_amount=sizing.initial_amount,
            n=settings.dca_levels,
            drop_pct=settings.dca_drop_percentage,
            sl_method=settings.stop_loss_calculation_method,
            max_allowed_loss=sizing.max_loss_amount,
            direction=direction,
        )

    def is_within_risk_limits(
        self,
        ladder: DCALadder,
        max_allowed_loss: float,
        tolerance: Optional[float] = None,
    ) -> bool:
        """Check the loss at the final stop stays within budget (plus tolerance)."""
        tolerance = tolerance if tolerance is not None else self.limits.risk_limit_tolerance
        final = ladder.levels[-1]
        if final.stop_loss_price is None:
            return True
        final_loss = abs(final.average_entry - final.stop_loss_price) * final.cumulative_quantity
        return final_loss <= max_allowed_loss * (1 + tolerance)

    def _loss_budget(
        self,
        sl_method: Optional[StopLossMethod],
        sl_pct: Optional[float],
        max_allowed_loss: Optional[float],
        total_amount: float,
    ) -> Optional[float]:
        if sl_method is None:
            return None
        if max_allowed_loss is not None:
            return require_non_negative("max_allowed_loss", max_allowed_loss)
        if sl_pct is not None:
            return total_amount * require_non_negative("sl_pct", sl_pct) / 100
        raise InvalidParameterError("sl_method requires max_allowed_loss or sl_pct")

    def _level_stop(
        self,
        sl_method: StopLossMethod,
        entry_price: float,
        average_entry: float,
        cumulative_quantity: float,
        loss_budget: float,
        sign: int = 1,
    ) -> tuple[float, float]:
        """Stop price and resulting loss for one level.

        A stop that lands on the profit side of the average entry is pulled
        back to 1% beyond it.
        """
        clamped = average_entry * (1 - sign * (1 - self.limits.dca_stop_clamp))
        if cumulative_quantity <= 0:
            return clamped, 0.0

        reference = average_entry if sl_method is StopLossMethod.AVERAGE_POSITION else entry_price
        stop = reference - sign * loss_budget / cumulative_quantity

        if sign * (stop - average_entry) >= 0:
            stop = clamped
        require_finite("stop_loss_price", stop)

        actual_loss = min(sign * (average_entry - stop) * cumulative_quantity, loss_budget)
        return stop, actual_loss
