"""Conversion between Position and the legacy position row shape.

The stored rows use snake_case legacy names (average_entry_price,
total_quantity, realized_pnl, ...). This adapter is the only place those
names exist; the rest of the package works on Position.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from ..models import (
    BreakEven,
    Exchange,
    MarketType,
    OrderKind,
    OrderRef,
    OrderStatus,
    Position,
    PositionStatus,
    RiskState,
    Side,
    TakeProfitLevel,
    TrailingStop,
)


logger = logging.getLogger(__name__)

_ORDER_LISTS = (
    ("entry_orders", OrderKind.ENTRY),
    ("dca_orders", OrderKind.DCA),
    ("tp_orders", OrderKind.TAKE_PROFIT),
    ("sl_orders", OrderKind.STOP_LOSS),
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class PositionRecordAdapter:
    """Maps Position to and from persistence records."""

    def to_record(self, position: Position) -> dict[str, Any]:
        """Convert a position to a legacy row.

        Args:
            position: Position to store

        Returns:
            JSON-serializable dict
        """
        risk = position.risk_state
        filled_dca = sum(1 for o in position.dca_orders if o.status is OrderStatus.FILLED)

        record = {
            "id": position.id,
            "user_id": position.user_id,
            "platform": position.exchange.value,
            "trade_type": position.market_type.value,
            "symbol": position.symbol,
            "side": position.side.value,
            "status": position.status.value,
            "average_entry_price": position.avg_entry_price,
            "total_quantity": position.position_qty,
            "total_invested": position.avg_entry_price * position.position_qty,
            "leverage": position.leverage,
            "stop_loss_price": risk.stop_loss_price,
            "take_profit_price": risk.take_profit_price,
            "dca_level": filled_dca,
            "max_dca_level": len(position.dca_orders),
            "realized_pnl": position.realized_pnl_usd,
            "unrealized_pnl": position.unrealized_pnl_usd,
            "strategy_id": position.strategy_id,
            "signal_id": position.signal_id,
            "opened_at": _iso(position.opened_at),
            "closed_at": _iso(position.closed_at),
            "updated_at": _iso(position.updated_at),
            "risk_state": self._risk_extras_to_dict(risk),
        }
        for attr, _ in _ORDER_LISTS:
            record[attr] = [o.to_dict() for o in getattr(position, attr)]
        return record

    def from_record(self, record: dict[str, Any]) -> Position:
        """Rebuild a position from a legacy row.

        Rows written before order tracking carry no order lists; those load
        with empty lists. Orders stored under the wrong list are re-filed by
        their kind.

        Raises:
            KeyError: If id, symbol or side is missing
            ValueError: If an enum value is unknown
        """
        orders: dict[str, list[OrderRef]] = {attr: [] for attr, _ in _ORDER_LISTS}
        by_kind = {kind: attr for attr, kind in _ORDER_LISTS}
        for attr, _ in _ORDER_LISTS:
            for raw in record.get(attr) or ():
                order = OrderRef.from_dict(raw)
                target = by_kind[order.kind]
                if target != attr:
                    logger.warning(f"Order {order.id} stored under {attr}, moving to {target}")
                orders[target].append(order)

        extras = record.get("risk_state") or {}
        risk_state = RiskState(
            stop_loss_price=record.get("stop_loss_price") or 0.0,
            take_profit_price=record.get("take_profit_price"),
            trailing=self._trailing_from_dict(extras.get("trailing")),
            partial_tp=tuple(
                TakeProfitLevel(
                    price=level["price"],
                    percentage=level["percentage"],
                    executed=level.get("executed", False),
                )
                for level in extras.get("partial_tp") or ()
            ),
            break_even=self._break_even_from_dict(extras.get("break_even")),
        )

        return Position(
            id=record["id"],
            user_id=record.get("user_id") or "",
            exchange=Exchange(record.get("platform") or Exchange.BINANCE.value),
            market_type=MarketType(record.get("trade_type") or MarketType.SPOT.value),
            symbol=record["symbol"],
            side=Side(record["side"]),
            status=PositionStatus(record.get("status") or PositionStatus.OPEN.value),
            entry_orders=tuple(orders["entry_orders"]),
            dca_orders=tuple(orders["dca_orders"]),
            tp_orders=tuple(orders["tp_orders"]),
            sl_orders=tuple(orders["sl_orders"]),
            avg_entry_price=record.get("average_entry_price") or 0.0,
            position_qty=record.get("total_quantity") or 0.0,
            leverage=record.get("leverage") or 1.0,
            realized_pnl_usd=record.get("realized_pnl") or 0.0,
            unrealized_pnl_usd=record.get("unrealized_pnl") or 0.0,
            risk_state=risk_state,
            strategy_id=record.get("strategy_id") or "main",
            signal_id=record.get("signal_id"),
            opened_at=_parse_dt(record.get("opened_at")),
            closed_at=_parse_dt(record.get("closed_at")),
            updated_at=_parse_dt(record.get("updated_at")),
        )

    def _risk_extras_to_dict(self, risk: RiskState) -> dict[str, Any]:
        extras: dict[str, Any] = {
            "partial_tp": [
                {"price": l.price, "percentage": l.percentage, "executed": l.executed}
                for l in risk.partial_tp
            ],
        }
        if risk.trailing is not None:
            extras["trailing"] = {
                "enabled": risk.trailing.enabled,
                "activation_price": risk.trailing.activation_price,
                "distance": risk.trailing.distance_pct,
                "current_stop_price": risk.trailing.current_stop_price,
            }
        if risk.break_even is not None:
            extras["break_even"] = {
                "enabled": risk.break_even.enabled,
                "trigger_price": risk.break_even.trigger_price,
                "activated": risk.break_even.activated,
            }
        return extras

    def _trailing_from_dict(self, data: Optional[dict]) -> Optional[TrailingStop]:
        if not data:
            return None
        return TrailingStop(
            enabled=data.get("enabled", False),
            activation_price=data["activation_price"],
            distance_pct=data["distance"],
            current_stop_price=data["current_stop_price"],
        )

    def _break_even_from_dict(self, data: Optional[dict]) -> Optional[BreakEven]:
        if not data:
            return None
        return BreakEven(
            enabled=data.get("enabled", False),
            trigger_price=data["trigger_price"],
            activated=data.get("activated", False),
        )
