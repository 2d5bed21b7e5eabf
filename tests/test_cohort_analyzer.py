"""
Tests for rolling windows and cohort tables.
"""
import pytest
from datetime import date
from decimal import Decimal

from config.settings import RollingConfig
from wealth_analytics.core.error_taxonomy import InvalidQueryError
from wealth_analytics.tools.cohort_analyzer import CohortAnalyzer, CohortField, CohortMetric


class TestRollingWindow:
    """Tests for calculate_rolling_window."""

    @pytest.fixture
    def salary(self, make_txn):
        return [make_txn(date(2025, m, 15), 100 * (m + 9), "income") for m in range(1, 13)]

    def test_default_count_oldest_first(self, salary):
        points = CohortAnalyzer().calculate_rolling_window(salary, 1, date(2025, 12, 31))

        assert len(points) == 12
        assert points[0].label == "Jan 2025"
        assert points[-1].label == "Dec 2025"
        assert points[0].window_end < points[-1].window_end
        assert points[-1].value == Decimal("2100")
        assert all(p.transaction_count == 1 for p in points)

    def test_value_is_per_unit_average(self, salary):
        points = CohortAnalyzer().calculate_rolling_window(
            salary, 3, date(2025, 12, 31), window_count=1
        )

        assert len(points) == 1
        # Oct + Nov + Dec = 1900 + 2000 + 2100
        assert points[0].value == Decimal("2000")
        assert points[0].transaction_count == 3

    def test_count_from_config(self, salary):
        analyzer = CohortAnalyzer(RollingConfig(window_count=4))
        assert len(analyzer.calculate_rolling_window(salary, 1, date(2025, 12, 31))) == 4

    def test_day_windows(self, make_txn):
        txns = [make_txn(date(2025, 1, 20), 70), make_txn(date(2025, 1, 30), 140)]

        points = CohortAnalyzer().calculate_rolling_window(
            txns, 7, date(2025, 1, 31), window_unit="days", kind="expenses", window_count=2
        )

        assert [p.window_end for p in points] == [date(2025, 1, 24), date(2025, 1, 31)]
        assert [p.value for p in points] == [Decimal("10"), Decimal("20")]

    def test_empty_windows_are_zero(self):
        points = CohortAnalyzer().calculate_rolling_window([], 2, date(2025, 6, 30), window_count=3)
        assert [p.value for p in points] == [Decimal("0")] * 3

    def test_invalid_size_rejected(self, salary):
        with pytest.raises(InvalidQueryError):
            CohortAnalyzer().calculate_rolling_window(salary, 0, date(2025, 12, 31))

    def test_unknown_unit_rejected(self, salary):
        with pytest.raises(InvalidQueryError):
            CohortAnalyzer().calculate_rolling_window(salary, 1, date(2025, 12, 31), window_unit="weeks")


class TestCohortAnalysis:
    """Tests for perform_cohort_analysis."""

    @pytest.fixture
    def ledger(self, make_txn):
        return [
            make_txn(date(2025, 1, 10), 50, account="acct-A", category="Dining"),
            make_txn(date(2025, 3, 1), 900, "income", account="acct-B", category=None),
            make_txn(date(2025, 1, 20), 30, account="acct-A", category="Dining"),
            make_txn(date(2025, 2, 15), 20, account="acct-A", category="Dining"),
        ]

    def test_account_retention(self, ledger):
        rows = CohortAnalyzer().perform_cohort_analysis(ledger, "account", "retention", periods=3)

        assert [r.cohort for r in rows] == ["acct-A", "acct-B"]
        account_a = rows[0]
        assert account_a.anchor == date(2025, 1, 10)
        assert account_a.size == 3
        assert account_a.values == [Decimal(1), Decimal(1), Decimal(0)]
        assert account_a.periods[1].start == date(2025, 2, 10)
        assert account_a.periods[1].end == date(2025, 3, 9)

    def test_account_frequency(self, ledger):
        rows = CohortAnalyzer().perform_cohort_analysis(
            ledger, CohortField.ACCOUNT, CohortMetric.FREQUENCY, periods=3
        )
        assert rows[0].values == [Decimal(2), Decimal(1), Decimal(0)]

    def test_value_is_net_flow(self, ledger):
        rows = CohortAnalyzer().perform_cohort_analysis(ledger, "account", "value", periods=2)

        assert rows[0].values == [Decimal("-80"), Decimal("-20")]
        assert rows[1].values == [Decimal("900"), Decimal("0")]

    def test_missing_category_cohort(self, ledger):
        rows = CohortAnalyzer().perform_cohort_analysis(ledger, "category", "retention", periods=1)
        assert [r.cohort for r in rows] == ["Dining", "Uncategorized"]

    def test_month_cohorts(self, ledger):
        rows = CohortAnalyzer().perform_cohort_analysis(ledger, "month", "frequency", periods=1)

        assert [r.cohort for r in rows] == ["2025-01", "2025-03", "2025-02"]
        assert rows[0].values == [Decimal(2)]

    def test_default_periods_from_config(self, ledger):
        rows = CohortAnalyzer().perform_cohort_analysis(ledger, "account", "retention")
        assert all(len(r.periods) == 12 for r in rows)

    def test_cancel_returns_rows_built_so_far(self, ledger):
        polls = []

        def cancelled():
            polls.append(True)
            return len(polls) > 1

        rows = CohortAnalyzer().perform_cohort_analysis(
            ledger, "account", "retention", periods=2, cancel_check=cancelled
        )

        assert [r.cohort for r in rows] == ["acct-A"]

    def test_unknown_field_rejected(self, ledger):
        with pytest.raises(InvalidQueryError):
            CohortAnalyzer().perform_cohort_analysis(ledger, "merchant", "retention")
