"""Volatility classification from OHLCV candles."""

import logging

import numpy as np
import pandas as pd

from ..errors import InvalidParameterError
from ..models import Indicators, VolatilityLevel


logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = ("high", "low", "close")


class VolatilityAnalyzer:
    """Derives ATR and a volatility band for a symbol."""

    def __init__(self, atr_period: int = 14, avg_window: int = 50, extreme_multiplier: float = 3.0):
        """Initialize volatility analyzer.

        Args:
            atr_period: Period for ATR calculation (default 14)
            avg_window: Window of the ATR average used as baseline (default 50)
            extreme_multiplier: ATR / baseline ratio above which volatility is EXTREME
        """
        self.atr_period = atr_period
        self.avg_window = avg_window
        self.extreme_multiplier = extreme_multiplier

    def calculate_atr(self, df: pd.DataFrame) -> pd.Series:
        """Calculate Average True Range.

        True Range = max(high - low, abs(high - prev_close), abs(low - prev_close))
        ATR = EMA of True Range

        Args:
            df: DataFrame with high, low, close columns

        Returns:
            Series with ATR values (always >= 0)
        """
        self._check_frame(df)
        high = df["high"]
        low = df["low"]
        prev_close = df["close"].shift(1)

        tr1 = high - low
        tr2 = (high - prev_close).abs()
        tr3 = (low - prev_close).abs()
        true_range = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)

        atr = true_range.ewm(span=self.atr_period, adjust=False).mean()
        return atr.clip(lower=0)

    def classify(self, atr: float, atr_avg: float, price: float) -> tuple[VolatilityLevel, float]:
        """Band volatility by ATR relative to its baseline and to price.

        Returns:
            (level, atr_percent); a non-positive price yields (MEDIUM, 0)
        """
        if price <= 0:
            return VolatilityLevel.MEDIUM, 0.0

        atr_percent = atr / price * 100
        ratio = atr / atr_avg if atr_avg > 0 else 1.0

        if ratio > self.extreme_multiplier or atr_percent > 10:
            return VolatilityLevel.EXTREME, atr_percent
        if ratio > 2.0 or atr_percent > 5:
            return VolatilityLevel.HIGH, atr_percent
        if ratio > 1.5 or atr_percent > 2:
            return VolatilityLevel.MEDIUM, atr_percent
        return VolatilityLevel.LOW, atr_percent

    def snapshot(self, df: pd.DataFrame) -> Indicators:
        """Build the Indicators view from the latest candle.

        volatility is the standard deviation of close-to-close returns over
        the baseline window, in percent.
        """
        atr_series = self.calculate_atr(df)
        atr = float(atr_series.iloc[-1])
        atr_avg = float(atr_series.rolling(window=self.avg_window, min_periods=1).mean().iloc[-1])
        price = float(df["close"].iloc[-1])

        returns = df["close"].pct_change().dropna().tail(self.avg_window).to_numpy()
        volatility = float(np.std(returns) * 100) if returns.size else 0.0

        level, atr_percent = self.classify(atr, atr_avg, price)
        logger.debug(f"Volatility snapshot: atr={atr:.6f} avg={atr_avg:.6f} pct={atr_percent:.2f} -> {level.value}")

        return Indicators(
            atr=atr,
            volatility=volatility,
            volatility_level=level,
            atr_percent=atr_percent,
            atr_avg=atr_avg,
        )

    def _check_frame(self, df: pd.DataFrame) -> None:
        missing = [c for c in _REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise InvalidParameterError(f"OHLCV frame is missing columns: {', '.join(missing)}")
        if df.empty:
            raise InvalidParameterError("OHLCV frame is empty")
