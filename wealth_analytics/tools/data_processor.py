"""
Query Engine

Declarative filter / group / aggregate / sort / limit over a transaction
batch. Single table, single pass, no joins.

Field access goes through the closed FIELD_ACCESSORS mapping. Filters and
queries are validated when they are built, so an unknown field name fails
immediately instead of silently matching nothing.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Callable, Sequence, Union

from wealth_analytics.core.error_taxonomy import ErrorCategory, InvalidQueryError
from wealth_analytics.core.metrics import calculate_metric, filter_by_range
from wealth_analytics.core.models import MetricKind, TimeRange, Transaction, TransactionType
from wealth_analytics.core.periods import to_date
from wealth_analytics.tools.calculator import (
    ZERO,
    mean,
    median,
    population_std_dev,
    to_decimal,
    total,
)

logger = logging.getLogger(__name__)

FIELD_ACCESSORS: Dict[str, Callable[[Transaction], Any]] = {
    "id": lambda t: t.id,
    "date": lambda t: t.date,
    "amount": lambda t: t.amount,
    "type": lambda t: t.type.value,
    "category": lambda t: t.category,
    "account_id": lambda t: t.account_id,
    "description": lambda t: t.description,
}

NUMERIC_FIELDS = frozenset({"amount"})
DATE_FIELDS = frozenset({"date"})
PRIMITIVE_METRICS = frozenset(m.value for m in MetricKind)


class FilterOperator(Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER = "greater"
    LESS = "less"
    BETWEEN = "between"
    IN = "in"
    CUSTOM = "custom"


class AggregationType(Enum):
    SUM = "sum"
    AVERAGE = "average"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    STDDEV = "stddev"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


def _check_field(name: str) -> None:
    if name not in FIELD_ACCESSORS:
        raise InvalidQueryError(
            f"Unknown field '{name}'. Available: {sorted(FIELD_ACCESSORS)}",
            category=ErrorCategory.UNKNOWN_FIELD,
        )


def _coerce(field_name: str, value: Any) -> Any:
    """Convert a filter operand to the type the field accessor returns."""
    try:
        if field_name in NUMERIC_FIELDS:
            return to_decimal(value)
        if field_name in DATE_FIELDS:
            return to_date(value)
    except (ArithmeticError, TypeError, ValueError) as e:
        raise InvalidQueryError(f"Invalid value {value!r} for field '{field_name}'") from e
    if isinstance(value, TransactionType):
        return value.value
    return value


@dataclass
class SegmentFilter:
    """A single predicate over one transaction field."""
    field: Optional[str]
    operator: Union[FilterOperator, str]
    value: Any = None
    custom_function: Optional[Callable[[Transaction], bool]] = None
    _operand: Any = field(default=None, init=False, repr=False)

    def __post_init__(self):
        try:
            self.operator = FilterOperator(self.operator)
        except ValueError:
            raise InvalidQueryError(
                f"Unknown filter operator '{self.operator}'. Available: {[o.value for o in FilterOperator]}"
            ) from None

        if self.custom_function is not None and not callable(self.custom_function):
            raise InvalidQueryError("custom_function must be callable")
        if self.operator == FilterOperator.CUSTOM:
            if self.custom_function is None:
                raise InvalidQueryError("Custom filters need a custom_function")
            if self.field is not None:
                _check_field(self.field)
            return

        if self.field is None:
            raise InvalidQueryError(f"'{self.operator.value}' filters need a field")
        _check_field(self.field)

        if self.operator == FilterOperator.BETWEEN:
            if isinstance(self.value, (str, bytes)) or not isinstance(self.value, Sequence) or len(self.value) != 2:
                raise InvalidQueryError("'between' filters need a two-element [low, high] value")
            self._operand = (_coerce(self.field, self.value[0]), _coerce(self.field, self.value[1]))
        elif self.operator == FilterOperator.IN:
            if isinstance(self.value, (str, bytes)) or not hasattr(self.value, "__iter__"):
                raise InvalidQueryError("'in' filters need a list of values")
            self._operand = [_coerce(self.field, v) for v in self.value]
        elif self.operator == FilterOperator.CONTAINS:
            self._operand = str(self.value).lower()
        else:
            self._operand = _coerce(self.field, self.value)

    def matches(self, t: Transaction) -> bool:
        if self.custom_function is not None:
            return bool(self.custom_function(t))

        actual = FIELD_ACCESSORS[self.field](t)
        op = self.operator
        if op == FilterOperator.EQUALS:
            return actual == self._operand
        if op == FilterOperator.IN:
            return actual in self._operand
        if actual is None:
            return False
        if op == FilterOperator.CONTAINS:
            return self._operand in str(actual).lower()
        if op == FilterOperator.GREATER:
            return actual > self._operand
        if op == FilterOperator.LESS:
            return actual < self._operand
        low, high = self._operand
        return low <= actual <= high

    def describe(self) -> str:
        if self.operator == FilterOperator.CUSTOM or self.custom_function is not None:
            return f"custom({self.field or '*'})"
        return f"{self.field} {self.operator.value} {self.value!r}"


@dataclass
class OrderBy:
    field: str
    direction: Union[SortDirection, str] = SortDirection.ASC

    def __post_init__(self):
        try:
            self.direction = SortDirection(self.direction)
        except ValueError:
            raise InvalidQueryError(f"Sort direction must be asc or desc, got '{self.direction}'") from None


@dataclass
class AnalyticsQuery:
    """
    A declarative query.

    ``metrics`` are primitive metric names (income, expenses, net, count)
    or numeric fields aggregated with ``aggregation``.
    """
    metrics: List[str]
    filters: List[SegmentFilter] = field(default_factory=list)
    time_range: Optional[TimeRange] = None
    aggregation: Union[AggregationType, str] = AggregationType.SUM
    group_by: Optional[str] = None
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None

    def __post_init__(self):
        if not self.metrics:
            raise InvalidQueryError("A query needs at least one metric")
        for metric in self.metrics:
            if metric not in PRIMITIVE_METRICS and metric not in NUMERIC_FIELDS:
                raise InvalidQueryError(
                    f"Unknown metric '{metric}'. Use one of {sorted(PRIMITIVE_METRICS)} "
                    f"or a numeric field {sorted(NUMERIC_FIELDS)}",
                    category=ErrorCategory.UNKNOWN_FIELD,
                )
        try:
            self.aggregation = AggregationType(self.aggregation)
        except ValueError:
            raise InvalidQueryError(
                f"Unknown aggregation '{self.aggregation}'. Available: {[a.value for a in AggregationType]}"
            ) from None
        if self.group_by is not None:
            _check_field(self.group_by)
        if self.order_by is not None:
            sortable = set(self.metrics) | ({self.group_by} if self.group_by else set())
            if self.order_by.field not in sortable:
                raise InvalidQueryError(
                    f"Cannot order by '{self.order_by.field}'; rows only contain {sorted(sortable)}",
                    category=ErrorCategory.UNKNOWN_FIELD,
                )
        if self.limit is not None and self.limit < 0:
            raise InvalidQueryError(f"Limit must be non-negative, got {self.limit}")


@dataclass
class QueryResult:
    """Rows produced by a query plus filtering bookkeeping."""
    rows: List[Dict[str, Any]]
    original_count: int
    filtered_count: int
    filters_applied: List[str]
    group_count: int

    @property
    def filter_summary(self) -> str:
        return f"Filtered {self.original_count} -> {self.filtered_count} rows ({len(self.filters_applied)} filters)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": [
                {k: (str(v) if isinstance(v, Decimal) else v) for k, v in row.items()}
                for row in self.rows
            ],
            "original_count": self.original_count,
            "filtered_count": self.filtered_count,
            "filters_applied": self.filters_applied,
            "group_count": self.group_count,
        }


def aggregate(values: Sequence[Decimal], aggregation: AggregationType) -> Decimal:
    """Apply an aggregation to Decimal values; 0 for empty input."""
    if aggregation == AggregationType.COUNT:
        return Decimal(len(values))
    if not values:
        return ZERO
    if aggregation == AggregationType.SUM:
        return total(values)
    if aggregation == AggregationType.AVERAGE:
        return mean(values)
    if aggregation == AggregationType.MEDIAN:
        return median(values)
    if aggregation == AggregationType.MIN:
        return min(values)
    if aggregation == AggregationType.MAX:
        return max(values)
    return population_std_dev(values)


class QueryEngine:
    """
    Executes AnalyticsQuery objects.

    Pipeline: filters (conjunction) -> time range -> grouping -> metrics
    per group -> sort -> limit.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def apply_filters(
        self,
        transactions: Sequence[Transaction],
        filters: Sequence[SegmentFilter],
        time_range: Optional[TimeRange] = None,
    ) -> List[Transaction]:
        result = [t for t in transactions if all(f.matches(t) for f in filters)]
        if time_range is not None:
            result = filter_by_range(result, time_range)
        return result

    def group(self, transactions: Sequence[Transaction], group_by: Optional[str]) -> Dict[str, List[Transaction]]:
        if group_by is None:
            return {"all": list(transactions)}
        accessor = FIELD_ACCESSORS[group_by]
        groups: Dict[str, List[Transaction]] = {}
        for t in transactions:
            value = accessor(t)
            if value is None or value == "":
                key = "Unknown"
            elif isinstance(value, date):
                key = value.isoformat()
            else:
                key = str(value)
            groups.setdefault(key, []).append(t)
        return groups

    def compute_metric(self, members: Sequence[Transaction], metric: str, aggregation: AggregationType) -> Decimal:
        if metric in PRIMITIVE_METRICS:
            return calculate_metric(members, metric)
        accessor = FIELD_ACCESSORS[metric]
        return aggregate([accessor(t) for t in members], aggregation)

    def execute(self, transactions: Sequence[Transaction], query: AnalyticsQuery) -> QueryResult:
        """
        Run a query.

        Args:
            transactions: Transaction batch
            query: Validated query

        Returns:
            QueryResult with one row per group
        """
        filtered = self.apply_filters(transactions, query.filters, query.time_range)
        filters_applied = [f.describe() for f in query.filters]
        if query.time_range is not None:
            filters_applied.append(f"date between {query.time_range.start} and {query.time_range.end}")

        groups = self.group(filtered, query.group_by)
        rows = []
        for key, members in groups.items():
            row: Dict[str, Any] = {}
            if query.group_by:
                row[query.group_by] = key
            for metric in query.metrics:
                row[metric] = self.compute_metric(members, metric, query.aggregation)
            rows.append(row)

        if query.order_by is not None:
            rows = self._sort(rows, query.order_by)
        if query.limit is not None:
            rows = rows[:query.limit]

        result = QueryResult(
            rows=rows,
            original_count=len(transactions),
            filtered_count=len(filtered),
            filters_applied=filters_applied,
            group_count=len(groups),
        )
        self.logger.debug(f"{result.filter_summary}; {len(rows)} result rows")
        return result

    @staticmethod
    def _sort(rows: List[Dict[str, Any]], order_by: OrderBy) -> List[Dict[str, Any]]:
        present = [r for r in rows if r.get(order_by.field) is not None]
        missing = [r for r in rows if r.get(order_by.field) is None]
        present.sort(key=lambda r: r[order_by.field], reverse=order_by.direction == SortDirection.DESC)
        return present + missing
