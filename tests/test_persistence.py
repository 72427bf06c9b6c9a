"""Tests for the position record adapter.

**Feature: tradeguard, Property 17: Stored Positions Load Back Unchanged**
"""

import json
from dataclasses import replace
from datetime import datetime

from hypothesis import given, strategies as st, settings
import pytest

from tradeguard.engines.position import PositionEngine
from tradeguard.models import (
    BreakEven,
    Exchange,
    MarketType,
    OrderKind,
    OrderRef,
    OrderStatus,
    PositionStatus,
    Side,
    TakeProfitLevel,
    Trade,
    TrailingStop,
)
from tradeguard.persistence import PositionRecordAdapter


# Plain objects for hypothesis tests, which cannot take function-scoped fixtures
TRADE = Trade(
    id="t-rt",
    symbol="BTC/USDT",
    side=Side.BUY,
    entry_price=100.0,
    quantity=2.0,
    total_invested=200.0,
    stop_loss_price=95.0,
)

ENTRY = OrderRef(
    id="o-rt",
    symbol="BTC/USDT",
    side=Side.BUY,
    kind=OrderKind.ENTRY,
    status=OrderStatus.FILLED,
    price=100.0,
    quantity=2.0,
    filled_quantity=2.0,
    avg_price=100.0,
    filled_at=datetime(2024, 3, 1, 12, 0),
)


@pytest.fixture
def adapter():
    return PositionRecordAdapter()


@pytest.fixture
def position(trade, entry_order):
    position = PositionEngine().create_from_trade(trade, entry_order)
    risk_state = replace(
        position.risk_state,
        trailing=TrailingStop(enabled=True, activation_price=103.0, distance_pct=2.0, current_stop_price=95.0),
        partial_tp=(TakeProfitLevel(102.0, 50.0, executed=True), TakeProfitLevel(104.0, 50.0)),
        break_even=BreakEven(enabled=True, trigger_price=101.5),
    )
    dca = OrderRef(
        id="o-dca-1",
        symbol="BTC/USDT",
        side=Side.BUY,
        kind=OrderKind.DCA,
        status=OrderStatus.NEW,
        price=98.0,
        quantity=2.0,
        created_at=datetime(2024, 3, 1, 12, 0, 5),
    )
    return replace(position, risk_state=risk_state, dca_orders=(dca,), updated_at=datetime(2024, 3, 1, 12, 5))


class TestToRecord:

    def test_legacy_field_names(self, adapter, position):
        record = adapter.to_record(position)

        assert record["platform"] == "binance"
        assert record["trade_type"] == "spot"
        assert record["average_entry_price"] == 100.0
        assert record["total_quantity"] == 2.0
        assert record["total_invested"] == pytest.approx(200.0)
        assert record["stop_loss_price"] == 95.0
        assert record["take_profit_price"] == 110.0
        assert record["realized_pnl"] == 0.0
        assert record["opened_at"] == "2024-03-01T12:00:00"
        assert record["closed_at"] is None

    def test_dca_level_counts_filled_orders(self, adapter, position):
        record = adapter.to_record(position)
        assert record["dca_level"] == 0
        assert record["max_dca_level"] == 1

    def test_record_is_json_serializable(self, adapter, position):
        text = json.dumps(adapter.to_record(position))
        assert '"distance": 2.0' in text


class TestFromRecord:

    # **Feature: tradeguard, Property 17: Stored Positions Load Back Unchanged**
    def test_round_trip(self, adapter, position):
        record = json.loads(json.dumps(adapter.to_record(position)))
        assert adapter.from_record(record) == position

    @given(
        qty=st.floats(min_value=0, max_value=1e6, allow_nan=False),
        realized=st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
        status=st.sampled_from(list(PositionStatus)),
        market=st.sampled_from(list(MarketType)),
        exchange=st.sampled_from(list(Exchange)),
    )
    @settings(max_examples=100)
    def test_round_trip_scalars(self, qty, realized, status, market, exchange):
        adapter = PositionRecordAdapter()
        position = replace(
            PositionEngine().create_from_trade(TRADE, ENTRY),
            position_qty=qty,
            realized_pnl_usd=realized,
            status=status,
            market_type=market,
            exchange=exchange,
        )
        assert adapter.from_record(adapter.to_record(position)) == position

    def test_legacy_row_without_orders(self, adapter):
        row = {
            "id": "legacy-1",
            "symbol": "ETH/USDT",
            "side": "sell",
            "average_entry_price": 2000.0,
            "total_quantity": 0.5,
            "stop_loss_price": 2100.0,
            "realized_pnl": None,
        }
        position = adapter.from_record(row)

        assert position.side is Side.SELL
        assert position.status is PositionStatus.OPEN
        assert position.exchange is Exchange.BINANCE
        assert position.all_orders == ()
        assert position.realized_pnl_usd == 0.0
        assert position.risk_state.trailing is None
        assert position.risk_state.partial_tp == ()

    def test_misfiled_orders_are_moved(self, adapter, position):
        record = adapter.to_record(position)
        record["tp_orders"] = record.pop("dca_orders")

        restored = adapter.from_record(record)

        assert restored.tp_orders == ()
        assert [o.id for o in restored.dca_orders] == ["o-dca-1"]

    def test_missing_id_raises(self, adapter):
        with pytest.raises(KeyError):
            adapter.from_record({"symbol": "BTC/USDT", "side": "buy"})

    def test_unknown_side_raises(self, adapter):
        with pytest.raises(ValueError):
            adapter.from_record({"id": "x", "symbol": "BTC/USDT", "side": "hold"})

