"""Position lifecycle management.

Builds positions from filled entry orders and folds later fills into them:
- entry and DCA fills move the weighted average entry and add quantity
- take-profit and stop-loss fills book realized PnL and reduce quantity
- a position whose quantity reaches zero is closed

Positions are frozen; every operation returns a new Position.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ..errors import InvalidParameterError, InvalidTransitionError, require_finite
from ..models import (
    ACTIVE_ORDER_STATUSES,
    FILLED_ORDER_STATUSES,
    OrderKind,
    OrderRef,
    OrderStatus,
    Position,
    PositionStatus,
    RiskState,
    Side,
    Trade,
)
from .pnl import PnLEngine


logger = logging.getLogger(__name__)

_ORDER_LISTS = {
    OrderKind.ENTRY: "entry_orders",
    OrderKind.DCA: "dca_orders",
    OrderKind.TAKE_PROFIT: "tp_orders",
    OrderKind.STOP_LOSS: "sl_orders",
}


class PositionEngine:
    """Applies order fills and status changes to positions."""

    def __init__(self, pnl_engine: Optional[PnLEngine] = None):
        self.pnl = pnl_engine or PnLEngine()

    def create_from_trade(self, trade: Trade, entry_order: OrderRef) -> Position:
        """Open a position from a trade and its filled entry order.

        Quantity and average price come from the order fill, falling back to
        the trade when the order carries none.

        Raises:
            InvalidParameterError: If the trade has no stop-loss, or the stop is
                not on the loss side of the entry price
        """
        qty = entry_order.filled_quantity if entry_order.filled_quantity > 0 else trade.quantity
        avg_entry = entry_order.fill_price if entry_order.fill_price > 0 else trade.entry_price
        require_finite("position_qty", qty)
        require_finite("avg_entry_price", avg_entry)

        if trade.stop_loss_price is None:
            raise InvalidParameterError(f"Trade {trade.id} has no stop_loss_price")
        stop = require_finite("stop_loss_price", trade.stop_loss_price)
        on_loss_side = stop < avg_entry if trade.side is Side.BUY else stop > avg_entry
        if not on_loss_side:
            raise InvalidParameterError(
                f"Stop-loss {stop} is not on the loss side of entry {avg_entry} for a {trade.side.value} position"
            )

        opened_at = entry_order.filled_at or entry_order.created_at
        position = Position(
            id=trade.id,
            user_id=trade.user_id,
            exchange=trade.exchange,
            market_type=trade.market_type,
            symbol=trade.symbol,
            side=trade.side,
            status=PositionStatus.OPEN,
            entry_orders=(entry_order,),
            avg_entry_price=avg_entry,
            position_qty=max(0.0, qty),
            leverage=trade.leverage or 1.0,
            risk_state=RiskState(
                stop_loss_price=stop,
                take_profit_price=trade.take_profit_price,
            ),
            opened_at=opened_at,
            updated_at=opened_at,
        )
        logger.info(
            f"Opened position {position.id} {position.symbol} {position.side.value} "
            f"qty={position.position_qty} @ {position.avg_entry_price}"
        )
        return position

    def update_avg_entry_after_dca(self, position: Position, dca_order: OrderRef) -> float:
        """Weighted average entry after a DCA fill; unchanged when nothing filled."""
        filled = dca_order.filled_quantity
        if filled <= 0:
            return position.avg_entry_price

        total_qty = position.position_qty + filled
        if total_qty <= 0:
            return position.avg_entry_price
        return (position.avg_entry_price * position.position_qty + dca_order.fill_price * filled) / total_qty

    def update_quantity(self, position: Position, order: OrderRef, is_entry: bool) -> float:
        """Quantity after a fill. Exits never take it below zero."""
        if is_entry:
            return position.position_qty + order.filled_quantity
        return max(0.0, position.position_qty - order.filled_quantity)

    def should_close(self, position: Position) -> bool:
        return position.position_qty <= 0 or position.status in (PositionStatus.CLOSED, PositionStatus.CLOSING)

    def active_orders(self, position: Position) -> tuple[OrderRef, ...]:
        return tuple(o for o in position.all_orders if o.status in ACTIVE_ORDER_STATUSES)

    def filled_orders(self, position: Position) -> tuple[OrderRef, ...]:
        return tuple(o for o in position.all_orders if o.status in FILLED_ORDER_STATUSES)

    def transition(self, position: Position, status: PositionStatus, at: Optional[datetime] = None) -> Position:
        """Move position to status.

        Raises:
            InvalidTransitionError: If the move is not allowed from the current status
        """
        if not position.status.can_transition(status):
            raise InvalidTransitionError(
                f"Position {position.id}: cannot move from {position.status.value} to {status.value}"
            )
        if status is position.status:
            return position

        changes = {"status": status, "updated_at": at or position.updated_at}
        if status is PositionStatus.CLOSED:
            changes["closed_at"] = at
            changes["unrealized_pnl_usd"] = 0.0
        logger.info(f"Position {position.id}: {position.status.value} -> {status.value}")
        return replace(position, **changes)

    def mark_closing(self, position: Position, at: Optional[datetime] = None) -> Position:
        return self.transition(position, PositionStatus.CLOSING, at)

    def mark_failed(self, position: Position, reason: str, at: Optional[datetime] = None) -> Position:
        logger.warning(f"Position {position.id} failed: {reason}")
        return self.transition(position, PositionStatus.FAILED, at)

    def revalue(self, position: Position, last_price: float) -> Position:
        """Refresh unrealized PnL at last_price."""
        return replace(position, unrealized_pnl_usd=self.pnl.unrealized(position, last_price))

    def cancel_pending_orders(self, position: Position, at: Optional[datetime] = None) -> Position:
        """Mark every still-active order of the position as canceled."""
        changes = {}
        for kind, attr in _ORDER_LISTS.items():
            orders = getattr(position, attr)
            if any(o.status.is_active for o in orders):
                changes[attr] = tuple(
                    o.with_status(OrderStatus.CANCELED) if o.status.is_active else o
                    for o in orders
                )
        if not changes:
            return position
        return replace(position, updated_at=at or position.updated_at, **changes)

    def apply_fill(self, position: Position, order: OrderRef, last_price: Optional[float] = None) -> Position:
        """Fold an order update into the position.

        Only the quantity filled since the last known state of the same order
        is applied, so repeated partial-fill updates are not double counted.

        Raises:
            InvalidTransitionError: If the position is closed or failed, or the
                order update moves its status illegally
        """
        if position.status.is_terminal:
            raise InvalidTransitionError(
                f"Position {position.id} is {position.status.value}; cannot apply order {order.id}"
            )

        attr = _ORDER_LISTS[order.kind]
        orders = getattr(position, attr)
        previous = next((o for o in orders if o.id == order.id), None)
        if previous is not None and not previous.status.can_transition(order.status):
            raise InvalidTransitionError(
                f"Order {order.id}: cannot move from {previous.status.value} to {order.status.value}"
            )

        prev_filled = previous.filled_quantity if previous else 0.0
        prev_commission = previous.commission if previous else 0.0
        delta = order.filled_quantity - prev_filled

        if previous is None:
            updated_orders = orders + (order,)
        else:
            updated_orders = tuple(order if o.id == order.id else o for o in orders)

        changes = {attr: updated_orders, "updated_at": order.filled_at or position.updated_at}

        if delta > 0:
            slice_price = self._slice_price(order, previous, delta)
            increment = replace(order, filled_quantity=delta, avg_price=slice_price)
            if order.kind.is_entry:
                changes["avg_entry_price"] = self.update_avg_entry_after_dca(position, increment)
                changes["position_qty"] = self.update_quantity(position, increment, is_entry=True)
            else:
                close_qty = min(delta, position.position_qty)
                fee = max(0.0, order.commission - prev_commission)
                realized = self.pnl.realized_from_exit(position, slice_price, close_qty, fee)
                changes["realized_pnl_usd"] = position.realized_pnl_usd + realized
                changes["position_qty"] = self.update_quantity(position, increment, is_entry=False)
                logger.info(
                    f"Position {position.id}: {order.kind.value} fill {close_qty} @ {slice_price}, "
                    f"realized {realized:.2f}"
                )

        updated = replace(position, **changes)

        if not order.kind.is_entry and updated.position_qty <= 0:
            return self.transition(updated, PositionStatus.CLOSED, order.filled_at)

        if last_price is not None:
            updated = self.revalue(updated, last_price)
        return updated

    def _slice_price(self, order: OrderRef, previous: Optional[OrderRef], delta: float) -> float:
        """Price of the quantity filled since previous, from the two cumulative averages."""
        if previous is None or previous.filled_quantity <= 0:
            return order.fill_price
        price = (order.fill_price * order.filled_quantity - previous.fill_price * previous.filled_quantity) / delta
        if price <= 0:
            logger.warning(f"Order {order.id}: inconsistent fill averages, pricing slice at {order.fill_price}")
            return order.fill_price
        return price
