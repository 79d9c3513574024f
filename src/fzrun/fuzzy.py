"""Fuzzy truth values: triangular membership and min/max algebra.

A fuzzy value is a float in [0, 1] giving the degree to which a linguistic
predicate ("CPU usage is high") holds. Everything here is pure.
"""

import math

FuzzyValue = float

TRUE: FuzzyValue = 1.0
FALSE: FuzzyValue = 0.0


def membership(width: float, center: float, value: float) -> FuzzyValue:
    """Evaluate a symmetric triangular membership function.

    The triangle is 0 outside [center - width, center + width] and peaks at 1
    on ``center``. Both slopes share the same width.

    Args:
        width: Half-width of the triangle base. Must be > 0.
        center: Peak of the triangle.
        value: Raw measurement (usually a ratio in [0, 1]).

    Returns:
        Degree of membership in [0, 1]. Non-finite values yield 0.

    Raises:
        ValueError: If width is not positive.
    """
    if not width > 0:
        raise ValueError(f"membership width must be > 0, got {width!r}")
    if not math.isfinite(value):
        return FALSE

    # Compare against the edges themselves so center +/- width is exactly 0
    left = center - width
    right = center + width
    if value <= left or value >= right:
        return FALSE
    if value == center:
        return TRUE
    if value < center:
        return (value - left) / (center - left)
    return (right - value) / (right - center)


def fuzzy_and(*values: FuzzyValue) -> FuzzyValue:
    """Fuzzy conjunction (minimum)."""
    if not values:
        raise ValueError("fuzzy_and() needs at least one operand")
    return min(values)


def fuzzy_or(*values: FuzzyValue) -> FuzzyValue:
    """Fuzzy disjunction (maximum)."""
    if not values:
        raise ValueError("fuzzy_or() needs at least one operand")
    return max(values)


def fuzzy_not(value: FuzzyValue) -> FuzzyValue:
    """Fuzzy complement."""
    return 1.0 - value


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))
