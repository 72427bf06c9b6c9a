"""Exit rule evaluation.

Decides when stop-loss, take-profit and DCA levels trigger against a last
price, and moves stops for trailing and break-even rules. Stops only ever
move in the position's favour.
"""

import logging
from dataclasses import replace
from typing import Optional

from ..config import BotSettings
from ..models import (
    BreakEven,
    Direction,
    Position,
    Side,
    TakeProfitLevel,
    TrailingStop,
)


logger = logging.getLogger(__name__)


def _tighter(side: Side, current: float, candidate: float) -> float:
    """The more protective of two stop prices."""
    return max(current, candidate) if side is Side.BUY else min(current, candidate)


class ExitRuleEngine:
    """Evaluates stop-loss, take-profit, DCA, trailing and break-even rules."""

    def should_trigger_stop_loss(self, position: Position, price: float) -> bool:
        """Check if price has crossed the position's stop.

        A missing or non-positive stop never triggers.
        """
        stop = position.risk_state.stop_loss_price
        if not stop or stop <= 0:
            return False
        if position.side is Side.BUY:
            return price <= stop
        return price >= stop

    def should_execute_tp_level(self, level: TakeProfitLevel, price: float, side: Side) -> bool:
        if level.executed:
            return False
        if side is Side.BUY:
            return price >= level.price
        return price <= level.price

    def should_execute_dca_level(self, target_price: float, price: float, side: Side) -> bool:
        if side is Side.BUY:
            return price <= target_price
        return price >= target_price

    def tp_close_quantity(self, position: Position, level: TakeProfitLevel) -> float:
        """Quantity a take-profit level closes, never more than is held."""
        return min(position.position_qty, position.position_qty * level.percentage / 100)

    def mark_tp_executed(self, position: Position, index: int) -> Position:
        """Return position with partial take-profit level index flagged executed."""
        levels = list(position.risk_state.partial_tp)
        levels[index] = replace(levels[index], executed=True)
        return replace(position, risk_state=replace(position.risk_state, partial_tp=tuple(levels)))

    def update_trailing_stop(self, position: Position, price: float, extreme_price: float) -> Position:
        """Trail the stop behind the best price seen since entry.

        Args:
            position: Position with a trailing configuration
            price: Last price
            extreme_price: Highest price seen (long) or lowest price seen (short)

        Returns:
            The same position when nothing moves, otherwise a copy whose
            trailing stop and stop-loss are tightened
        """
        trailing = position.risk_state.trailing
        if trailing is None or not trailing.enabled:
            return position

        if position.side is Side.BUY:
            if price < trailing.activation_price:
                return position
            candidate = extreme_price * (1 - trailing.distance_pct / 100)
        else:
            if price > trailing.activation_price:
                return position
            candidate = extreme_price * (1 + trailing.distance_pct / 100)

        new_trailing_stop = _tighter(position.side, trailing.current_stop_price, candidate)
        if new_trailing_stop == trailing.current_stop_price:
            return position

        new_stop = _tighter(position.side, position.risk_state.stop_loss_price, new_trailing_stop)
        logger.debug(f"Position {position.id}: trailing stop {trailing.current_stop_price} -> {new_trailing_stop}")
        risk_state = replace(
            position.risk_state,
            stop_loss_price=new_stop,
            trailing=replace(trailing, current_stop_price=new_trailing_stop),
        )
        return replace(position, risk_state=risk_state)

    def update_break_even(self, position: Position, price: float) -> Position:
        """Move the stop to the average entry once the trigger price is reached."""
        break_even = position.risk_state.break_even
        if break_even is None or not break_even.enabled or break_even.activated:
            return position

        if position.side is Side.BUY:
            triggered = price >= break_even.trigger_price
        else:
            triggered = price <= break_even.trigger_price
        if not triggered:
            return position

        new_stop = _tighter(position.side, position.risk_state.stop_loss_price, position.avg_entry_price)
        logger.info(f"Position {position.id}: break-even reached at {price}, stop -> {new_stop}")
        risk_state = replace(
            position.risk_state,
            stop_loss_price=new_stop,
            break_even=replace(break_even, activated=True),
        )
        return replace(position, risk_state=risk_state)

    def partial_tp_ladder(
        self,
        settings: BotSettings,
        entry_price: float,
        direction: Direction,
    ) -> tuple[TakeProfitLevel, ...]:
        """Partial take-profit levels from settings.partial_tp_levels."""
        sign = direction.sign
        return tuple(
            TakeProfitLevel(price=entry_price * (1 + sign * move_pct / 100), percentage=share_pct)
            for move_pct, share_pct in settings.partial_tp_levels
            if share_pct > 0
        )

    def trailing_from_settings(
        self,
        settings: BotSettings,
        entry_price: float,
        direction: Direction,
        stop_price: float,
    ) -> Optional[TrailingStop]:
        """Trailing configuration from settings; None when distance is zero."""
        if settings.trailing_stop_distance <= 0:
            return None
        return TrailingStop(
            enabled=True,
            activation_price=entry_price * (1 + direction.sign * settings.trailing_stop_activation / 100),
            distance_pct=settings.trailing_stop_distance,
            current_stop_price=stop_price,
        )

    def break_even_at(self, entry_price: float, direction: Direction, trigger_pct: float) -> BreakEven:
        """Break-even rule that fires trigger_pct percent into profit."""
        return BreakEven(enabled=True, trigger_price=entry_price * (1 + direction.sign * trigger_pct / 100))
