"""
Metric & time-range core.

These are the only primitives the analytics components use to touch raw
transactions: range filtering, the four primitive metrics, period
aggregation and period-over-period comparison. Pure functions over
immutable input.
"""
import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Union

from wealth_analytics.core.error_taxonomy import InvalidQueryError
from wealth_analytics.core.models import (
    MetricKind,
    MetricValue,
    PeriodValue,
    TimeRange,
    Transaction,
    TransactionType,
    Trend,
)
from wealth_analytics.core.periods import PeriodType, period_key, period_start
from wealth_analytics.tools.calculator import ZERO, percentage_change, total

logger = logging.getLogger(__name__)

MetricLike = Union[MetricKind, str]


def filter_by_range(transactions: Iterable[Transaction], time_range: TimeRange) -> List[Transaction]:
    """Transactions dated within the range, both ends inclusive."""
    return [t for t in transactions if time_range.contains(t.date)]


def filter_by_type(transactions: Iterable[Transaction], tx_type: TransactionType) -> List[Transaction]:
    return [t for t in transactions if t.type == tx_type]


def group_by_category(
    transactions: Iterable[Transaction],
    missing: str = "Uncategorized",
) -> Dict[str, List[Transaction]]:
    """Bucket transactions by category in first-seen order; None goes to ``missing``."""
    buckets: Dict[str, List[Transaction]] = {}
    for t in transactions:
        buckets.setdefault(t.category or missing, []).append(t)
    return buckets


def calculate_metric(transactions: Iterable[Transaction], kind: MetricLike) -> Decimal:
    """
    Compute a primitive metric.

    Args:
        transactions: Records to measure
        kind: income, expenses, net or count

    Returns:
        Decimal value. Income and expenses sum absolute amounts of the
        matching type; net is income minus expenses; count is the record count.
    """
    kind = MetricKind.parse(kind)
    transactions = list(transactions)

    if kind == MetricKind.COUNT:
        return Decimal(len(transactions))

    income = total(t.magnitude for t in transactions if t.is_income)
    if kind == MetricKind.INCOME:
        return income

    expenses = total(t.magnitude for t in transactions if t.is_expense)
    if kind == MetricKind.EXPENSES:
        return expenses

    return income - expenses


def parse_period(period: Union[PeriodType, str]) -> PeriodType:
    if isinstance(period, PeriodType):
        return period
    try:
        return PeriodType(str(period).lower())
    except ValueError:
        raise InvalidQueryError(
            f"Unknown period '{period}'. Available: {[p.value for p in PeriodType]}"
        ) from None


def group_by_period(
    transactions: Iterable[Transaction],
    period: Union[PeriodType, str] = PeriodType.MONTH,
) -> Dict[str, List[Transaction]]:
    """Bucket transactions by period key, keys in chronological order."""
    period = parse_period(period)
    buckets: Dict[str, List[Transaction]] = {}
    for t in transactions:
        buckets.setdefault(period_key(t.date, period), []).append(t)
    return OrderedDict(sorted(buckets.items()))


def aggregate_by_period(
    transactions: Iterable[Transaction],
    period: Union[PeriodType, str] = PeriodType.MONTH,
    kind: MetricLike = MetricKind.NET,
) -> List[PeriodValue]:
    """
    Aggregate a metric per period.

    Only periods containing at least one transaction are returned, ordered
    chronologically.
    """
    period = parse_period(period)
    kind = MetricKind.parse(kind)
    series = []
    for key, bucket in group_by_period(transactions, period).items():
        series.append(PeriodValue(
            key=key,
            start=period_start(bucket[0].date, period),
            value=calculate_metric(bucket, kind),
            count=len(bucket),
        ))
    logger.debug(f"Aggregated {len(series)} {period.value} periods of {kind.value}")
    return series


def calculate_period_comparison(
    transactions: Sequence[Transaction],
    current: TimeRange,
    previous: TimeRange,
    kind: MetricLike = MetricKind.NET,
    comparison: str = "both",
) -> MetricValue:
    """
    Compare a metric between two time ranges.

    Args:
        transactions: Records to measure
        current: The range being reported
        previous: The range it is compared against
        kind: Primitive metric to compare
        comparison: 'absolute', 'percentage' or 'both'

    Returns:
        MetricValue whose trend is up/down/stable by the sign of the change.
        The percentage change is 0 when the previous value is 0.
    """
    if comparison not in ("absolute", "percentage", "both"):
        raise InvalidQueryError(
            f"Unknown comparison '{comparison}'. Use absolute, percentage or both"
        )

    current_value = calculate_metric(filter_by_range(transactions, current), kind)
    previous_value = calculate_metric(filter_by_range(transactions, previous), kind)
    change = current_value - previous_value

    if change > 0:
        trend = Trend.UP
    elif change < 0:
        trend = Trend.DOWN
    else:
        trend = Trend.STABLE

    return MetricValue(
        value=current_value,
        change=change if comparison != "percentage" else None,
        change_percent=percentage_change(current_value, previous_value) if comparison != "absolute" else None,
        trend=trend,
    )
