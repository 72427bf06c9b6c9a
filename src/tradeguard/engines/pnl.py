"""Profit and loss calculation for positions, trades and fills."""

import logging
from dataclasses import dataclass
from typing import Iterable

from ..models import Fill, MarketType, Position, Side, Trade


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PnLResult:
    """Live valuation of a position."""
    unrealized: float
    realized: float
    total: float
    entry_cost: float
    current_value: float
    pct: float


def _signed_move(side: Side, entry_price: float, exit_price: float, quantity: float) -> float:
    diff = exit_price - entry_price
    return diff * quantity if side is Side.BUY else -diff * quantity


def _position_leverage(position: Position) -> float:
    """Leverage multiplier applied to a position's PnL (futures only)."""
    if position.market_type is MarketType.FUTURES and position.leverage and position.leverage > 0:
        return position.leverage
    return 1.0


class PnLEngine:
    """Computes unrealized and realized PnL.

    Degenerate inputs (no quantity, no entry price, no last price) value to 0
    instead of producing NaN.
    """

    def unrealized(self, position: Position, last_price: float) -> float:
        """Unrealized PnL of the open quantity at last_price.

        Leverage is applied only to futures positions.
        """
        if last_price <= 0 or position.avg_entry_price <= 0 or position.position_qty <= 0:
            return 0.0

        base = _signed_move(position.side, position.avg_entry_price, last_price, position.position_qty)
        return base * _position_leverage(position)

    def realized(self, fills: Iterable[Fill], side: Side) -> float:
        """Sum of realized PnL over fills, net of fees.

        Each fill contributes (exit - entry) * qty, signed by side, multiplied
        by its leverage when leverage > 1, minus its fees.
        """
        total = 0.0
        for fill in fills:
            base = _signed_move(side, fill.entry_price, fill.exit_price, fill.quantity)
            pnl = base * fill.leverage if fill.leverage > 1 else base
            total += pnl - fill.fees
        return total

    def position_pnl(self, position: Position, last_price: float) -> PnLResult:
        """Full valuation of a position at last_price."""
        leverage = position.leverage if position.leverage and position.leverage > 0 else 1.0
        unrealized = self.unrealized(position, last_price)
        realized = position.realized_pnl_usd
        total = unrealized + realized
        entry_cost = position.avg_entry_price * position.position_qty * leverage
        current_value = last_price * position.position_qty * leverage
        pct = total / entry_cost * 100 if entry_cost > 0 else 0.0

        return PnLResult(
            unrealized=unrealized,
            realized=realized,
            total=total,
            entry_cost=entry_cost,
            current_value=current_value,
            pct=pct,
        )

    def realized_from_trade(self, trade: Trade, exit_price: float) -> float:
        """Realized PnL of closing a whole trade at exit_price, net of fees and commission."""
        leverage = trade.leverage or 1.0
        fill = Fill(
            entry_price=trade.entry_price,
            exit_price=exit_price,
            quantity=trade.quantity,
            fees=trade.fees or 0.0,
            leverage=leverage,
        )
        return self.realized([fill], trade.side) - (trade.commission or 0.0)

    def realized_from_exit(
        self,
        position: Position,
        exit_price: float,
        quantity: float,
        fee: float = 0.0,
    ) -> float:
        """Realized PnL of closing quantity of a position at exit_price.

        Uses the same leverage rule as unrealized(), so closing the whole
        position books exactly its unrealized PnL (minus fee).
        """
        if quantity <= 0 or position.avg_entry_price <= 0 or exit_price <= 0:
            logger.warning(
                f"Degenerate exit for position {position.id}: qty={quantity}, "
                f"avg_entry={position.avg_entry_price}, exit={exit_price}"
            )
            return -fee

        base = _signed_move(position.side, position.avg_entry_price, exit_price, quantity)
        return base * _position_leverage(position) - fee
