"""
Tests for the query engine.

Tests cover:
- Every filter operator, including custom predicates
- Validation of fields, operators, metrics and ordering at build time
- Grouping with the "Unknown" bucket and the ungrouped "all" row
- Aggregations over numeric fields
- Ordering, limits and time ranges
"""
import pytest
from datetime import date
from decimal import Decimal

from wealth_analytics.core.error_taxonomy import ErrorCategory, InvalidQueryError
from wealth_analytics.core.models import TimeRange
from wealth_analytics.tools.data_processor import (
    AggregationType,
    AnalyticsQuery,
    OrderBy,
    QueryEngine,
    SegmentFilter,
    aggregate,
)


@pytest.fixture
def ledger(make_txn):
    return [
        make_txn(date(2025, 1, 3), 4200, "income", category="Salary", description="Payroll ACME"),
        make_txn(date(2025, 1, 5), 1800, category="Rent", description="January rent"),
        make_txn(date(2025, 1, 9), 85, category="Groceries", description="Corner Market"),
        make_txn(date(2025, 1, 16), 120, category="Groceries", description="Whole Foods"),
        make_txn(date(2025, 1, 20), 45, category=None, description="Cash withdrawal"),
        make_txn(date(2025, 2, 2), 60, category="Dining", account="acct-2", description="Thai Kitchen"),
    ]


class TestSegmentFilter:
    """Tests for each filter operator."""

    def run(self, ledger, *filters):
        return QueryEngine().apply_filters(ledger, list(filters))

    def test_equals(self, ledger):
        result = self.run(ledger, SegmentFilter("category", "equals", "Groceries"))
        assert len(result) == 2

    def test_contains_is_case_insensitive(self, ledger):
        result = self.run(ledger, SegmentFilter("description", "contains", "MARKET"))
        assert [t.description for t in result] == ["Corner Market"]

    def test_greater_and_less(self, ledger):
        assert len(self.run(ledger, SegmentFilter("amount", "greater", 1000))) == 2
        assert len(self.run(ledger, SegmentFilter("amount", "less", "60"))) == 1

    def test_between_inclusive(self, ledger):
        result = self.run(ledger, SegmentFilter("amount", "between", [60, 120]))
        assert sorted(t.amount for t in result) == [Decimal("60"), Decimal("85"), Decimal("120")]

    def test_between_dates(self, ledger):
        result = self.run(ledger, SegmentFilter("date", "between", ["2025-01-09", "2025-01-20"]))
        assert len(result) == 3

    def test_in(self, ledger):
        result = self.run(ledger, SegmentFilter("category", "in", ["Rent", "Dining"]))
        assert len(result) == 2

    def test_type_filter(self, ledger):
        assert len(self.run(ledger, SegmentFilter("type", "equals", "income"))) == 1

    def test_custom(self, ledger):
        big = SegmentFilter(None, "custom", custom_function=lambda t: t.amount > 100)
        assert len(self.run(ledger, big)) == 3

    def test_filters_are_conjunctive(self, ledger):
        result = self.run(
            ledger,
            SegmentFilter("category", "equals", "Groceries"),
            SegmentFilter("amount", "greater", 100),
        )
        assert [t.amount for t in result] == [Decimal("120")]

    def test_none_field_never_matches_comparison(self, ledger):
        result = self.run(ledger, SegmentFilter("category", "contains", "a"))
        assert all(t.category is not None for t in result)

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidQueryError) as exc_info:
            SegmentFilter("merchant", "equals", "ACME")
        assert exc_info.value.category == ErrorCategory.UNKNOWN_FIELD

    def test_unknown_operator_rejected(self):
        with pytest.raises(InvalidQueryError):
            SegmentFilter("amount", "approximately", 10)

    def test_between_needs_pair(self):
        with pytest.raises(InvalidQueryError):
            SegmentFilter("amount", "between", [1, 2, 3])

    def test_in_needs_list(self):
        with pytest.raises(InvalidQueryError):
            SegmentFilter("category", "in", "Rent")

    def test_custom_needs_function(self):
        with pytest.raises(InvalidQueryError):
            SegmentFilter(None, "custom")

    def test_bad_numeric_operand(self):
        with pytest.raises(InvalidQueryError):
            SegmentFilter("amount", "greater", "lots")


class TestAnalyticsQuery:
    """Tests for query validation."""

    def test_requires_metric(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsQuery(metrics=[])

    def test_unknown_metric(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsQuery(metrics=["profit"])

    def test_unknown_group_by(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsQuery(metrics=["expenses"], group_by="merchant")

    def test_order_by_must_be_in_rows(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsQuery(metrics=["expenses"], order_by=OrderBy("income"))

    def test_negative_limit(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsQuery(metrics=["expenses"], limit=-1)

    def test_unknown_aggregation(self):
        with pytest.raises(InvalidQueryError):
            AnalyticsQuery(metrics=["amount"], aggregation="mode")


class TestExecute:
    """Tests for QueryEngine.execute."""

    def test_ungrouped_single_row(self, ledger):
        result = QueryEngine().execute(ledger, AnalyticsQuery(metrics=["income", "expenses", "net"]))

        assert result.rows == [{
            "income": Decimal("4200"),
            "expenses": Decimal("2110"),
            "net": Decimal("2090"),
        }]
        assert result.group_count == 1
        assert result.original_count == result.filtered_count == 6

    def test_group_by_category_with_unknown(self, ledger):
        result = QueryEngine().execute(
            ledger, AnalyticsQuery(metrics=["expenses", "count"], group_by="category")
        )

        by_category = {row["category"]: row for row in result.rows}
        assert by_category["Groceries"]["expenses"] == Decimal("205")
        assert by_category["Groceries"]["count"] == Decimal("2")
        assert by_category["Unknown"]["expenses"] == Decimal("45")
        assert result.group_count == 5

    def test_group_by_date(self, ledger):
        result = QueryEngine().execute(ledger, AnalyticsQuery(metrics=["count"], group_by="date"))
        assert result.rows[0]["date"] == "2025-01-03"

    def test_order_and_limit(self, ledger):
        query = AnalyticsQuery(
            metrics=["expenses"],
            group_by="category",
            order_by=OrderBy("expenses", "desc"),
            limit=2,
        )

        result = QueryEngine().execute(ledger, query)

        assert [row["category"] for row in result.rows] == ["Rent", "Groceries"]
        assert result.group_count == 5

    def test_ascending_order(self, ledger):
        query = AnalyticsQuery(metrics=["amount"], group_by="account_id", order_by=OrderBy("amount", "asc"))
        result = QueryEngine().execute(ledger, query)
        assert [row["account_id"] for row in result.rows] == ["acct-2", "acct-1"]

    def test_time_range(self, ledger):
        query = AnalyticsQuery(
            metrics=["expenses"],
            time_range=TimeRange(date(2025, 2, 1), date(2025, 2, 28)),
        )

        result = QueryEngine().execute(ledger, query)

        assert result.rows[0]["expenses"] == Decimal("60")
        assert result.filtered_count == 1
        assert result.filters_applied == ["date between 2025-02-01 and 2025-02-28"]

    def test_filter_summary(self, ledger):
        query = AnalyticsQuery(metrics=["count"], filters=[SegmentFilter("account_id", "equals", "acct-2")])
        result = QueryEngine().execute(ledger, query)
        assert result.filter_summary == "Filtered 6 -> 1 rows (1 filters)"

    def test_empty_input(self):
        result = QueryEngine().execute([], AnalyticsQuery(metrics=["amount"], aggregation="average"))
        assert result.rows == [{"amount": Decimal("0")}]


class TestAggregate:
    """Tests for the aggregation functions."""

    values = [Decimal(v) for v in (2, 4, 4, 4, 5, 5, 7, 9)]

    def test_sum(self):
        assert aggregate(self.values, AggregationType.SUM) == Decimal("40")

    def test_average(self):
        assert aggregate(self.values, AggregationType.AVERAGE) == Decimal("5")

    def test_median_even(self):
        assert aggregate(self.values, AggregationType.MEDIAN) == Decimal("4.5")

    def test_min_max_count(self):
        assert aggregate(self.values, AggregationType.MIN) == Decimal("2")
        assert aggregate(self.values, AggregationType.MAX) == Decimal("9")
        assert aggregate(self.values, AggregationType.COUNT) == Decimal("8")

    def test_population_stddev(self):
        assert aggregate(self.values, AggregationType.STDDEV) == Decimal("2")

    def test_empty_is_zero(self):
        for aggregation in AggregationType:
            assert aggregate([], aggregation) == Decimal("0")
