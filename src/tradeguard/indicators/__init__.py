"""Volatility indicators and their cache."""

from .volatility import VolatilityAnalyzer
from .cache import IndicatorCache

__all__ = [
    "VolatilityAnalyzer",
    "IndicatorCache",
]
