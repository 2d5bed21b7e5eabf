"""
Cohort & Rolling-Window Analysis Module

Rolling windows:
    Trailing windows ending at progressively earlier points before a
    reference date; each value is the metric over the window divided by the
    window size (a per-day or per-month average). Emitted oldest first.

Cohorts:
    Transactions partitioned by account, category or first month. Each
    cohort is anchored at its own earliest transaction, and period p covers
    the month starting p months after the anchor. The row shape (cohort ->
    ordered period values) is what a retention heatmap consumes.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from config.settings import RollingConfig
from wealth_analytics.core.error_taxonomy import InvalidQueryError
from wealth_analytics.core.metrics import MetricLike, calculate_metric, filter_by_range
from wealth_analytics.core.models import MetricKind, TimeRange, Transaction
from wealth_analytics.core.periods import add_months, month_key, month_label

logger = logging.getLogger(__name__)


class WindowUnit(Enum):
    DAYS = "days"
    MONTHS = "months"


class CohortField(Enum):
    ACCOUNT = "account"
    CATEGORY = "category"
    MONTH = "month"


class CohortMetric(Enum):
    RETENTION = "retention"
    VALUE = "value"
    FREQUENCY = "frequency"


@dataclass
class RollingWindowPoint:
    """Per-unit average of a metric over one trailing window."""
    label: str
    window_start: date
    window_end: date
    value: Decimal
    transaction_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "value": str(self.value),
            "transaction_count": self.transaction_count,
        }


@dataclass
class CohortPeriod:
    period: int
    start: date
    end: date
    value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "value": str(self.value),
        }


@dataclass
class CohortRow:
    """One cohort's ordered period series."""
    cohort: str
    anchor: date
    size: int
    periods: List[CohortPeriod] = field(default_factory=list)

    @property
    def values(self) -> List[Decimal]:
        return [p.value for p in self.periods]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cohort": self.cohort,
            "anchor": self.anchor.isoformat(),
            "size": self.size,
            "periods": [p.to_dict() for p in self.periods],
        }


def _parse_enum(enum_cls, value, what: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise InvalidQueryError(
            f"Unknown {what} '{value}'. Available: {[e.value for e in enum_cls]}"
        ) from None


class CohortAnalyzer:
    """Rolling-window and cohort tables over a transaction batch."""

    def __init__(self, config: Optional[RollingConfig] = None):
        self.config = config or RollingConfig()
        self.logger = logging.getLogger(__name__)

    # ===================
    # ROLLING WINDOWS
    # ===================

    def calculate_rolling_window(
        self,
        transactions: Sequence[Transaction],
        window_size: int,
        end_date: date,
        window_unit: Union[WindowUnit, str] = WindowUnit.MONTHS,
        kind: MetricLike = MetricKind.NET,
        window_count: Optional[int] = None,
    ) -> List[RollingWindowPoint]:
        """
        Trailing per-unit averages of a metric.

        Window i ends at ``end_date`` minus i months (months unit) or minus
        i * window_size days (days unit), and covers
        [window_end - window_size units, window_end] inclusive.

        Args:
            transactions: Transaction batch
            window_size: Window length in ``window_unit``
            end_date: Reference date ending the newest window
            window_unit: days or months
            kind: Metric measured in each window
            window_count: Number of windows (default from config)

        Returns:
            Exactly ``window_count`` points, oldest first
        """
        unit = _parse_enum(WindowUnit, window_unit, "window unit")
        kind = MetricKind.parse(kind)
        window_count = self.config.window_count if window_count is None else window_count
        if window_size < 1:
            raise InvalidQueryError(f"Window size must be at least 1, got {window_size}")
        if window_count < 1:
            raise InvalidQueryError(f"Window count must be at least 1, got {window_count}")

        size = Decimal(window_size)
        points = []
        for i in range(window_count):
            if unit == WindowUnit.MONTHS:
                window_end = add_months(end_date, -i)
                window_start = add_months(window_end, -window_size)
            else:
                window_end = end_date - timedelta(days=i * window_size)
                window_start = window_end - timedelta(days=window_size)

            in_window = filter_by_range(transactions, TimeRange(window_start, window_end))
            points.append(RollingWindowPoint(
                label=month_label(window_end),
                window_start=window_start,
                window_end=window_end,
                value=calculate_metric(in_window, kind) / size,
                transaction_count=len(in_window),
            ))

        points.reverse()
        return points

    # ===================
    # COHORTS
    # ===================

    @staticmethod
    def cohort_key(t: Transaction, cohort_field: CohortField) -> str:
        if cohort_field == CohortField.ACCOUNT:
            return t.account_id
        if cohort_field == CohortField.CATEGORY:
            return t.category or "Uncategorized"
        return month_key(t.date)

    def perform_cohort_analysis(
        self,
        transactions: Sequence[Transaction],
        cohort_field: Union[CohortField, str],
        metric: Union[CohortMetric, str],
        periods: Optional[int] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> List[CohortRow]:
        """
        Build one period series per cohort.

        Args:
            transactions: Transaction batch
            cohort_field: account, category or month
            metric: retention (1/0 activity), value (net flow) or frequency (count)
            periods: Number of monthly periods from each cohort's anchor
            cancel_check: Polled between cohorts; returning True abandons the
                remaining cohorts and returns the rows built so far

        Returns:
            Rows in order of each cohort's first appearance in the input
        """
        cohort_field = _parse_enum(CohortField, cohort_field, "cohort field")
        metric = _parse_enum(CohortMetric, metric, "cohort metric")
        periods = self.config.cohort_periods if periods is None else periods
        if periods < 1:
            raise InvalidQueryError(f"Cohort periods must be at least 1, got {periods}")

        cohorts: Dict[str, List[Transaction]] = {}
        for t in transactions:
            cohorts.setdefault(self.cohort_key(t, cohort_field), []).append(t)

        rows = []
        for key, members in cohorts.items():
            if cancel_check is not None and cancel_check():
                self.logger.warning(
                    f"Cohort analysis cancelled after {len(rows)} of {len(cohorts)} cohorts"
                )
                break

            anchor = min(t.date for t in members)
            row = CohortRow(cohort=key, anchor=anchor, size=len(members))
            for p in range(periods):
                start = add_months(anchor, p)
                end = add_months(anchor, p + 1) - timedelta(days=1)
                in_period = filter_by_range(members, TimeRange(start, end))
                row.periods.append(CohortPeriod(
                    period=p,
                    start=start,
                    end=end,
                    value=self._cohort_value(in_period, metric),
                ))
            rows.append(row)

        self.logger.info(f"Built {len(rows)} {cohort_field.value} cohorts ({metric.value})")
        return rows

    @staticmethod
    def _cohort_value(members: List[Transaction], metric: CohortMetric) -> Decimal:
        if metric == CohortMetric.RETENTION:
            return Decimal(1) if members else Decimal(0)
        if metric == CohortMetric.VALUE:
            return calculate_metric(members, MetricKind.NET)
        return calculate_metric(members, MetricKind.COUNT)
