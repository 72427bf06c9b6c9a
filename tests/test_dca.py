"""Property-based tests for the DCA ladder.

Tests validate:
- Property 7: Ladder Prices Move Monotonically Against the Trade
- Property 8: Ladder Amounts Sum to the Position Size
"""

from hypothesis import given, assume, strategies as st, settings
import pytest

from tradeguard.config import BotSettings
from tradeguard.engines.dca import DCAEngine
from tradeguard.engines.sizing import SizingEngine
from tradeguard.errors import InvalidParameterError
from tradeguard.models import Direction, StopLossMethod


@st.composite
def ladder_inputs(draw):
    n = draw(st.integers(min_value=1, max_value=10))
    drop = draw(st.floats(min_value=0.1, max_value=99.0 / n, allow_nan=False))
    total = draw(st.floats(min_value=1, max_value=1e6, allow_nan=False))
    initial = draw(st.floats(min_value=0, max_value=1, allow_nan=False)) * total
    entry = draw(st.floats(min_value=0.01, max_value=1e5, allow_nan=False))
    return entry, total, initial, n, drop


class TestDCAScenario:

    def test_three_level_ladder(self):
        """entry 100, total 1000, initial 250, 3 levels every 2%."""
        ladder = DCAEngine().levels(entry_price=100, total_amount=1000, initial_amount=250, n=3, drop_pct=2)

        assert [lvl.entry_price for lvl in ladder.levels] == pytest.approx([98, 96, 94])
        assert [lvl.drop_pct for lvl in ladder.levels] == pytest.approx([2, 4, 6])
        assert ladder.per_level_amount == pytest.approx(250)
        assert ladder.total_invested == pytest.approx(1000)
        assert ladder.final_stop_loss is None

    def test_average_entry_falls_with_each_level(self):
        ladder = DCAEngine().levels(entry_price=100, total_amount=1000, initial_amount=250, n=3, drop_pct=2)
        averages = [lvl.average_entry for lvl in ladder.levels]

        assert averages == sorted(averages, reverse=True)
        assert ladder.final_average_entry == pytest.approx(1000 / ladder.total_quantity)

    def test_short_ladder_averages_up(self):
        ladder = DCAEngine().levels(
            entry_price=100, total_amount=1000, initial_amount=250, n=3, drop_pct=2, direction=Direction.SHORT
        )
        assert [lvl.entry_price for lvl in ladder.levels] == pytest.approx([102, 104, 106])


class TestDCAStops:

    def test_average_position_stop_keeps_loss_in_budget(self):
        engine = DCAEngine()
        ladder = engine.levels(
            entry_price=100, total_amount=1000, initial_amount=250, n=3, drop_pct=2,
            sl_method=StopLossMethod.AVERAGE_POSITION, max_allowed_loss=50,
        )
        for lvl in ladder.levels:
            assert lvl.stop_loss_price < lvl.average_entry
            assert lvl.actual_loss_amount == pytest.approx(50)
        assert engine.is_within_risk_limits(ladder, 50)

    def test_initial_entry_stop_is_clamped_below_average(self):
        """A budget wider than the drawdown to the average is clamped to 1% below it."""
        ladder = DCAEngine().levels(
            entry_price=100, total_amount=1000, initial_amount=250, n=3, drop_pct=10,
            sl_method=StopLossMethod.INITIAL_ENTRY, max_allowed_loss=1,
        )
        last = ladder.levels[-1]
        assert last.stop_loss_price == pytest.approx(last.average_entry * 0.99)

    def test_sl_pct_budget(self):
        ladder = DCAEngine().levels(
            entry_price=100, total_amount=1000, initial_amount=250, n=2, drop_pct=2,
            sl_method=StopLossMethod.AVERAGE_POSITION, sl_pct=5,
        )
        assert ladder.levels[-1].actual_loss_amount == pytest.approx(50)

    def test_stop_without_budget_raises(self):
        with pytest.raises(InvalidParameterError):
            DCAEngine().levels(100, 1000, 250, 3, 2, sl_method=StopLossMethod.AVERAGE_POSITION)

    def test_risk_limit_exceeded(self):
        engine = DCAEngine()
        ladder = engine.levels(
            100, 1000, 250, 3, 2, sl_method=StopLossMethod.AVERAGE_POSITION, max_allowed_loss=100,
        )
        assert not engine.is_within_risk_limits(ladder, 50)

    def test_from_settings(self):
        settings_ = BotSettings(dca_levels=4, dca_drop_percentage=1.5)
        sizing = SizingEngine().size_from_settings(settings_, balance=10000, entry_price=100)
        ladder = DCAEngine().levels_from_settings(settings_, 100, sizing)

        assert len(ladder.levels) == 4
        assert ladder.total_invested == pytest.approx(sizing.position_size)
        assert ladder.levels[-1].actual_loss_amount <= sizing.max_loss_amount + 1e-9


class TestDCAValidation:

    @pytest.mark.parametrize("kwargs", [
        {"n": 0},
        {"n": 2.5},
        {"n": True},
        {"drop_pct": 0},
        {"drop_pct": 50, "n": 2},
        {"initial_amount": 2000},
        {"entry_price": float("inf")},
    ])
    def test_invalid_ladders_raise(self, kwargs):
        args = dict(entry_price=100, total_amount=1000, initial_amount=250, n=3, drop_pct=2)
        args.update(kwargs)
        with pytest.raises(InvalidParameterError):
            DCAEngine().levels(**args)


class TestDCAProperties:

    # **Feature: tradeguard, Property 7: Ladder Prices Move Monotonically Against the Trade**
    @given(inputs=ladder_inputs())
    @settings(max_examples=100)
    def test_long_prices_strictly_decrease(self, inputs):
        entry, total, initial, n, drop = inputs
        ladder = DCAEngine().levels(entry, total, initial, n, drop)
        prices = [entry] + [lvl.entry_price for lvl in ladder.levels]

        assert all(a > b for a, b in zip(prices, prices[1:]))
        assert all(p > 0 for p in prices)

    # **Feature: tradeguard, Property 8: Ladder Amounts Sum to the Position Size**
    @given(inputs=ladder_inputs())
    @settings(max_examples=100)
    def test_amounts_sum_to_remaining(self, inputs):
        entry, total, initial, n, drop = inputs
        assume(initial <= total)
        ladder = DCAEngine().levels(entry, total, initial, n, drop)

        assert sum(lvl.amount for lvl in ladder.levels) == pytest.approx(total - initial, rel=1e-9, abs=1e-6)
        assert ladder.total_invested == pytest.approx(total, rel=1e-9)
