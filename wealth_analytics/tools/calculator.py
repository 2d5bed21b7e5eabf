"""
Decimal Calculation Tools

All currency arithmetic in the engine goes through these helpers so that
comparisons near anomaly thresholds are never subject to binary
floating-point drift. Division guards return zero instead of raising.
"""
import math
from typing import Iterable, List, Optional, Sequence, Union
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
import logging

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


# ==================== CONVERSION ====================

def to_decimal(value: Number) -> Decimal:
    """
    Convert a number to Decimal.

    Floats go through ``str()`` so that 0.1 becomes Decimal("0.1") rather
    than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidOperation(f"Non-finite value: {value}")
        return Decimal(str(value))
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    return Decimal(value)


def quantize_currency(value: Number) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def round_half_up(value: Decimal, places: int = 0) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


# ==================== SAFE ARITHMETIC ====================

def safe_divide(numerator: Decimal, denominator: Decimal, default: Decimal = ZERO) -> Decimal:
    """Safe division with zero handling."""
    if denominator == 0:
        return default
    return numerator / denominator


def percentage_change(current: Decimal, base: Decimal) -> Decimal:
    """(current - base) / base * 100, or 0 when base is 0."""
    return safe_divide((current - base) * HUNDRED, base)


def decimal_sqrt(value: Decimal) -> Decimal:
    if value <= 0:
        return ZERO
    return value.sqrt()


# ==================== DESCRIPTIVE STATISTICS ====================

def total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return total(values) / Decimal(len(values))


def median(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / Decimal(2)


def sum_squared_deviations(values: Sequence[Decimal], center: Optional[Decimal] = None) -> Decimal:
    if center is None:
        center = mean(values)
    return total((v - center) ** 2 for v in values)


def sample_std_dev(values: Sequence[Decimal]) -> Decimal:
    """Sample standard deviation (n-1 divisor, guarded at n=1)."""
    if not values:
        return ZERO
    divisor = Decimal(max(1, len(values) - 1))
    return decimal_sqrt(sum_squared_deviations(values) / divisor)


def population_std_dev(values: Sequence[Decimal]) -> Decimal:
    """Population standard deviation (n divisor), 0 for fewer than 2 values."""
    if len(values) < 2:
        return ZERO
    return decimal_sqrt(sum_squared_deviations(values) / Decimal(len(values)))


def as_floats(values: Iterable[Decimal]) -> List[float]:
    """Hand a Decimal series to numpy/statsmodels."""
    return [float(v) for v in values]
