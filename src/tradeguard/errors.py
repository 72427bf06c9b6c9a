"""Exceptions raised by the tradeguard engines.

Risk denials are never raised; they are returned as RiskEvaluationResult.
"""

import math


class InvalidParameterError(ValueError):
    """Raised when a numeric input is malformed (zero, negative or non-finite)."""
    pass


class InvalidTransitionError(ValueError):
    """Raised when an order or position status change is not allowed."""
    pass


def require_finite(name: str, value: float) -> float:
    """Return value if it is a finite number, raise InvalidParameterError otherwise."""
    if value is None or isinstance(value, bool):
        raise InvalidParameterError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidParameterError(f"{name} must be finite, got {value!r}")
    return number


def require_positive(name: str, value: float) -> float:
    """Return value if it is finite and strictly positive."""
    number = require_finite(name, value)
    if number <= 0:
        raise InvalidParameterError(f"{name} must be > 0, got {value!r}")
    return number


def require_non_negative(name: str, value: float) -> float:
    """Return value if it is finite and >= 0."""
    number = require_finite(name, value)
    if number < 0:
        raise InvalidParameterError(f"{name} must be >= 0, got {value!r}")
    return number
