"""Tests for volatility classification and the indicator cache.

**Feature: tradeguard, Property 15: ATR Non-Negativity**
**Feature: tradeguard, Property 16: Cache Entries Expire After TTL**
"""

import pytest
import pandas as pd
import numpy as np
from hypothesis import given, strategies as st, settings

from tradeguard.errors import InvalidParameterError
from tradeguard.indicators.cache import IndicatorCache
from tradeguard.indicators.volatility import VolatilityAnalyzer
from tradeguard.models import VolatilityLevel


def generate_ohlcv_dataframe(n_rows: int, base_price: float = 100.0, noise: float = 0.01) -> pd.DataFrame:
    """Generate a valid OHLCV dataframe for testing."""
    rng = np.random.default_rng(42)
    close = base_price * np.cumprod(1 + rng.normal(0, noise, n_rows))
    high = close * (1 + np.abs(rng.normal(0, noise / 2, n_rows)))
    low = close * (1 - np.abs(rng.normal(0, noise / 2, n_rows)))

    return pd.DataFrame({
        "open": close,
        "high": high,
        "low": low,
        "close": close,
        "volume": rng.uniform(1000, 100000, n_rows),
    })


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestATR:

    # **Feature: tradeguard, Property 15: ATR Non-Negativity**
    @given(
        n_rows=st.integers(min_value=2, max_value=300),
        base_price=st.floats(min_value=0.01, max_value=100000.0, allow_nan=False, allow_infinity=False),
    )
    @settings(max_examples=100)
    def test_atr_non_negative(self, n_rows, base_price):
        atr = VolatilityAnalyzer().calculate_atr(generate_ohlcv_dataframe(n_rows, base_price))
        assert (atr.dropna() >= 0).all()

    def test_atr_deterministic(self, ohlcv):
        analyzer = VolatilityAnalyzer()
        pd.testing.assert_series_equal(analyzer.calculate_atr(ohlcv), analyzer.calculate_atr(ohlcv))

    def test_missing_columns(self):
        with pytest.raises(InvalidParameterError, match="high"):
            VolatilityAnalyzer().calculate_atr(pd.DataFrame({"low": [1.0], "close": [1.0]}))

    def test_empty_frame(self):
        with pytest.raises(InvalidParameterError):
            VolatilityAnalyzer().calculate_atr(pd.DataFrame(columns=["high", "low", "close"]))


class TestClassify:

    @pytest.mark.parametrize("atr,atr_avg,price,level", [
        (1.0, 1.0, 100.0, VolatilityLevel.LOW),
        (1.6, 1.0, 100.0, VolatilityLevel.MEDIUM),
        (3.0, 1.0, 1000.0, VolatilityLevel.HIGH),
        (3.5, 1.0, 1000.0, VolatilityLevel.EXTREME),
        (11.0, 11.0, 100.0, VolatilityLevel.EXTREME),
        (6.0, 6.0, 100.0, VolatilityLevel.HIGH),
        (3.0, 3.0, 100.0, VolatilityLevel.MEDIUM),
    ])
    def test_bands(self, atr, atr_avg, price, level):
        assert VolatilityAnalyzer().classify(atr, atr_avg, price)[0] is level

    def test_non_positive_price(self):
        assert VolatilityAnalyzer().classify(5.0, 1.0, 0.0) == (VolatilityLevel.MEDIUM, 0.0)

    def test_zero_baseline_uses_unit_ratio(self):
        level, atr_percent = VolatilityAnalyzer().classify(1.0, 0.0, 100.0)
        assert level is VolatilityLevel.LOW
        assert atr_percent == pytest.approx(1.0)

    def test_extreme_multiplier_is_configurable(self):
        analyzer = VolatilityAnalyzer(extreme_multiplier=2.5)
        assert analyzer.classify(2.6, 1.0, 1000.0)[0] is VolatilityLevel.EXTREME


class TestSnapshot:

    def test_calm_market(self, ohlcv):
        indicators = VolatilityAnalyzer().snapshot(ohlcv)

        assert indicators.volatility_level is VolatilityLevel.LOW
        assert indicators.atr > 0
        assert indicators.atr_avg > 0
        assert indicators.volatility >= 0
        assert indicators.atr_percent == pytest.approx(indicators.atr / ohlcv["close"].iloc[-1] * 100)

    def test_single_candle(self):
        frame = pd.DataFrame({"high": [101.0], "low": [99.0], "close": [100.0]})
        indicators = VolatilityAnalyzer().snapshot(frame)

        assert indicators.atr == pytest.approx(2.0)
        assert indicators.volatility == 0.0


class TestIndicatorCache:

    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = IndicatorCache(ttl_seconds=30, clock=clock)
        cache.set("BTC/USDT", "5m", "snapshot")

        clock.now = 29.9
        assert cache.get("BTC/USDT", "5m") == "snapshot"

    # **Feature: tradeguard, Property 16: Cache Entries Expire After TTL**
    @given(ttl=st.floats(min_value=0.1, max_value=3600), extra=st.floats(min_value=0, max_value=3600))
    @settings(max_examples=100)
    def test_expired_after_ttl(self, ttl, extra):
        clock = FakeClock()
        cache = IndicatorCache(ttl_seconds=ttl, clock=clock)
        cache.set("BTC/USDT", "5m", 1)

        clock.now = ttl + extra
        assert cache.get("BTC/USDT", "5m") is None
        assert len(cache) == 0

    def test_keys_include_timeframe(self):
        cache = IndicatorCache(clock=FakeClock())
        cache.set("BTC/USDT", "5m", 1)
        assert cache.get("BTC/USDT", "1h") is None

    def test_get_or_compute(self):
        clock = FakeClock()
        cache = IndicatorCache(ttl_seconds=10, clock=clock)
        calls = []

        def factory():
            calls.append(clock.now)
            return len(calls)

        assert cache.get_or_compute("ETH/USDT", "5m", factory) == 1
        assert cache.get_or_compute("ETH/USDT", "5m", factory) == 1
        clock.now = 10
        assert cache.get_or_compute("ETH/USDT", "5m", factory) == 2
        assert calls == [0, 10]

    def test_cached_none_is_a_hit(self):
        cache = IndicatorCache(clock=FakeClock())
        calls = []

        def factory():
            calls.append(1)
            return None

        assert cache.get_or_compute("BTC/USDT", "5m", factory) is None
        assert cache.get_or_compute("BTC/USDT", "5m", factory) is None
        assert len(calls) == 1
        assert cache.get("BTC/USDT", "5m", default="missing") is None
        assert cache.get("ETH/USDT", "5m", default="missing") == "missing"

    def test_invalidate_symbol(self):
        cache = IndicatorCache(clock=FakeClock())
        cache.set("BTC/USDT", "5m", 1)
        cache.set("BTC/USDT", "1h", 2)
        cache.set("ETH/USDT", "5m", 3)

        cache.invalidate("BTC/USDT")

        assert len(cache) == 1
        assert cache.get("ETH/USDT", "5m") == 3

    def test_invalidate_all(self):
        cache = IndicatorCache(clock=FakeClock())
        cache.set("BTC/USDT", "5m", 1)
        cache.invalidate()
        assert len(cache) == 0

    def test_purge_expired(self):
        clock = FakeClock()
        cache = IndicatorCache(ttl_seconds=5, clock=clock)
        cache.set("BTC/USDT", "5m", 1)
        clock.now = 3
        cache.set("ETH/USDT", "5m", 2)

        clock.now = 6
        assert cache.purge_expired() == 1
        assert cache.get("ETH/USDT", "5m") == 2

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_invalid_ttl(self, ttl):
        with pytest.raises(ValueError):
            IndicatorCache(ttl_seconds=ttl)
