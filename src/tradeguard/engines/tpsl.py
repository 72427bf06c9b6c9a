"""Take-profit / stop-loss level calculation.

Levels come either from fixed percentages or from a risk:reward ratio
applied to the stop distance.
"""

from dataclasses import dataclass
from typing import Optional

from ..config import BotSettings
from ..models import Direction
from ..errors import require_non_negative, require_positive


@dataclass(frozen=True)
class TPSLLevels:
    """Exit levels for a trade.

    risk_amount and reward_amount are absolute price distances from entry.
    """
    take_profit_price: float
    stop_loss_price: float
    risk_amount: float
    reward_amount: float
    actual_rrr: float
    tp_pct: float
    sl_pct: float


class TPSLEngine:
    """Derives stop-loss and take-profit prices."""

    def compute(
        self,
        entry_price: float,
        direction: Direction,
        tp_pct: float = 3.0,
        sl_pct: float = 5.0,
        rrr: float = 2.0,
        use_rrr: bool = False,
    ) -> TPSLLevels:
        """Compute exit levels.

        Stop: entry * (1 - sl%) for long, entry * (1 + sl%) for short.
        Take profit: entry +/- risk * rrr when use_rrr, else entry * (1 +/- tp%).

        Raises:
            InvalidParameterError: If entry_price is not positive or a percentage is negative
        """
        entry_price = require_positive("entry_price", entry_price)
        tp_pct = require_non_negative("tp_pct", tp_pct)
        sl_pct = require_non_negative("sl_pct", sl_pct)
        rrr = require_non_negative("rrr", rrr)
        sign = direction.sign

        stop_loss_price = entry_price * (1 - sign * sl_pct / 100)
        risk_amount = abs(entry_price - stop_loss_price)

        if use_rrr:
            reward_amount = risk_amount * rrr
            take_profit_price = entry_price + sign * reward_amount
        else:
            take_profit_price = entry_price * (1 + sign * tp_pct / 100)
            reward_amount = abs(take_profit_price - entry_price)

        actual_rrr = reward_amount / risk_amount if risk_amount > 0 else 0.0

        return TPSLLevels(
            take_profit_price=take_profit_price,
            stop_loss_price=stop_loss_price,
            risk_amount=risk_amount,
            reward_amount=reward_amount,
            actual_rrr=actual_rrr,
            tp_pct=reward_amount / entry_price * 100 if use_rrr else tp_pct,
            sl_pct=sl_pct,
        )

    def compute_from_settings(self, settings: BotSettings, entry_price: float, direction: Direction) -> TPSLLevels:
        """Compute exit levels with the percentages and ratio configured in BotSettings."""
        return self.compute(
            entry_price,
            direction,
            tp_pct=settings.take_profit_percentage,
            sl_pct=settings.stop_loss_percentage,
            rrr=settings.risk_reward_ratio,
            use_rrr=settings.use_risk_reward_ratio,
        )

    @staticmethod
    def validate(
        entry_price: float,
        stop_loss_price: float,
        take_profit_price: float,
        direction: Direction,
    ) -> bool:
        """Check the stop is on the loss side and the target on the profit side."""
        if direction is Direction.LONG:
            return stop_loss_price < entry_price < take_profit_price
        return stop_loss_price > entry_price > take_profit_price

    @staticmethod
    def from_prices(
        entry_price: float,
        stop_loss_price: Optional[float],
        take_profit_price: Optional[float],
        direction: Direction,
    ) -> Optional[TPSLLevels]:
        """Derive percentages and ratio from given prices.

        Returns:
            TPSLLevels, or None if either price is missing or entry is not positive
        """
        if not stop_loss_price or not take_profit_price or not entry_price or entry_price <= 0:
            return None

        sign = direction.sign
        sl_pct = sign * (entry_price - stop_loss_price) / entry_price * 100
        tp_pct = sign * (take_profit_price - entry_price) / entry_price * 100
        risk_amount = abs(entry_price - stop_loss_price)
        reward_amount = abs(take_profit_price - entry_price)

        return TPSLLevels(
            take_profit_price=take_profit_price,
            stop_loss_price=stop_loss_price,
            risk_amount=risk_amount,
            reward_amount=reward_amount,
            actual_rrr=reward_amount / risk_amount if risk_amount > 0 else 0.0,
            tp_pct=tp_pct,
            sl_pct=sl_pct,
        )
