"""
Tests for Statistical Analyzer Module

Tests trend classification, seasonality detection, forecasting and the
per-category spending outlook.
"""
import math

import numpy as np
import pytest
from datetime import date
from decimal import Decimal

from config.settings import ForecastConfig
from wealth_analytics.core.error_taxonomy import (
    AnalyticsError,
    ErrorCategory,
    InsufficientDataError,
    InvalidQueryError,
)
from wealth_analytics.core.periods import add_months
from wealth_analytics.tools.regression_models import ForecastModel
from wealth_analytics.tools.statistical_analyzer import StatisticalAnalyzer, TrendDirection


def monthly_income(make_txn, values, start=date(2025, 1, 5)):
    return [make_txn(add_months(start, i), v, "income") for i, v in enumerate(values)]


class TestTrend:
    """Tests for OLS trend classification."""

    def test_steady_growth_is_increasing(self, make_txn):
        """Net flow rising by 50 a month for 6 months."""
        txns = monthly_income(make_txn, [100, 150, 200, 250, 300, 350])

        trend = StatisticalAnalyzer().analyze_trend(txns, "net")

        assert trend.direction == TrendDirection.INCREASING
        assert trend.r_squared == pytest.approx(1.0, abs=1e-9)
        assert trend.slope == pytest.approx(50.0)
        assert trend.observations == 6
        assert trend.seasonality.detected is False
        assert trend.change_rate == pytest.approx(50.0)

    def test_decline_is_decreasing(self, make_txn):
        txns = monthly_income(make_txn, [500, 450, 400, 350, 300])
        assert StatisticalAnalyzer().analyze_trend(txns).direction == TrendDirection.DECREASING

    def test_shrinking_deficit_is_increasing(self, make_txn):
        """Net flow climbing from -300 to -50 while staying negative."""
        txns = [make_txn(add_months(date(2025, 1, 5), i), v)
                for i, v in enumerate([300, 250, 200, 150, 100, 50])]

        trend = StatisticalAnalyzer().analyze_trend(txns, "net")

        assert trend.direction == TrendDirection.INCREASING
        assert trend.slope == pytest.approx(50.0)
        assert trend.r_squared == pytest.approx(1.0, abs=1e-9)

    def test_growing_deficit_is_decreasing(self):
        trend = StatisticalAnalyzer().trend_from_values([-50, -100, -150, -200, -250, -300])
        assert trend.direction == TrendDirection.DECREASING

    def test_noisy_fit_forced_stable(self):
        """Slope/mean is 0.09 but R² is below 0.3."""
        trend = StatisticalAnalyzer().trend_from_values([100, 300, 90, 310, 95, 305])

        assert trend.r_squared < 0.3
        assert trend.direction == TrendDirection.STABLE

    def test_flat_series_is_stable(self):
        trend = StatisticalAnalyzer().trend_from_values([200.0] * 8)
        assert trend.direction == TrendDirection.STABLE
        assert trend.slope == pytest.approx(0.0, abs=1e-9)

    def test_single_period_is_stable(self):
        trend = StatisticalAnalyzer().trend_from_values([42.0])
        assert trend.direction == TrendDirection.STABLE
        assert trend.observations == 1


class TestSeasonality:
    """Tests for lag-12 autocorrelation."""

    def test_yearly_cycle_detected(self):
        i = np.arange(36)
        values = 1000 + 10 * i + 200 * np.sin(2 * np.pi * i / 12)

        result = StatisticalAnalyzer().detect_seasonality(values.tolist())

        assert result.detected is True
        assert result.strength > 0.3
        assert result.pattern == "yearly"

    def test_short_series_not_attempted(self):
        result = StatisticalAnalyzer().detect_seasonality([1.0, 2.0, 3.0] * 3)
        assert result.detected is False
        assert result.autocorrelation == 0.0

    def test_autocorrelation_guards(self):
        assert StatisticalAnalyzer.autocorrelation([1.0] * 12, 12) == 0.0
        assert StatisticalAnalyzer.autocorrelation([5.0] * 24, 12) == 0.0

    def test_autocorrelation_of_repeating_pattern(self):
        pattern = [1.0, -1.0, 2.0, -2.0, 0.5, -0.5, 1.5, -1.5, 3.0, -3.0, 0.0, 0.0]
        r = StatisticalAnalyzer.autocorrelation(pattern * 3, 12)
        assert r == pytest.approx(1.0)


class TestForecast:
    """Tests for multi-model forecasting."""

    def test_two_points_is_insufficient(self):
        with pytest.raises(InsufficientDataError) as exc_info:
            StatisticalAnalyzer().forecast_series([100.0, 110.0], horizon=3)
        assert exc_info.value.required == 3
        assert exc_info.value.actual == 2

    def test_three_points_succeeds(self):
        result = StatisticalAnalyzer().forecast_series([100.0, 110.0, 125.0], horizon=4)

        assert len(result.predictions) == 4
        assert result.parameters["data_points"] == 3
        assert 0.0 <= result.accuracy <= 1.0

    def test_interval_widens_with_horizon(self):
        values = [100.0, 120.0, 115.0, 140.0, 150.0, 148.0, 170.0]
        result = StatisticalAnalyzer().forecast_series(values, horizon=6, model="linear")

        margins = [p.margin for p in result.predictions]
        assert all(b >= a for a, b in zip(margins, margins[1:]))
        for p in result.predictions:
            assert p.lower <= p.value <= p.upper

    def test_exact_line_prefers_linear(self):
        result = StatisticalAnalyzer().forecast_series([10.0, 20.0, 30.0, 40.0, 50.0], horizon=2)

        assert result.model == ForecastModel.LINEAR
        assert result.accuracy == pytest.approx(1.0)
        assert result.predictions[0].value == Decimal("60.00")
        assert result.predictions[1].value == Decimal("70.00")

    def test_growth_curve_prefers_exponential(self):
        values = [100 * 1.3 ** x for x in range(8)]
        result = StatisticalAnalyzer().forecast_series(values, horizon=1)

        assert result.model == ForecastModel.EXPONENTIAL
        assert float(result.predictions[0].value) == pytest.approx(100 * 1.3 ** 8, rel=1e-3)

    def test_pinned_model(self):
        result = StatisticalAnalyzer().forecast_series([10.0, 20.0, 30.0], horizon=1, model="polynomial")
        assert result.model == ForecastModel.POLYNOMIAL
        assert list(result.parameters["candidates"]) == ["polynomial"]

    def test_unknown_model_rejected(self):
        with pytest.raises(InvalidQueryError):
            StatisticalAnalyzer().forecast_series([1.0, 2.0, 3.0], model="arima")

    def test_forecast_clamped_at_zero(self):
        result = StatisticalAnalyzer().forecast_series([300.0, 200.0, 100.0], horizon=3)

        for p in result.predictions:
            assert p.value >= 0
            assert p.lower >= 0
            assert p.upper >= 0
        assert result.predictions[-1].value == Decimal("0.00")

    def test_runaway_forecast_is_calculation_error(self):
        """Exponential growth past currency precision is reported, not leaked."""
        with pytest.raises(AnalyticsError) as exc_info:
            StatisticalAnalyzer().forecast_series([1.0, 100000.0, 1e10], horizon=12, model="exponential")

        assert exc_info.value.category == ErrorCategory.CALCULATION_ERROR

    def test_zero_horizon_rejected(self):
        with pytest.raises(InvalidQueryError):
            StatisticalAnalyzer().forecast_series([1.0, 2.0, 3.0], horizon=0)

    def test_default_horizon_from_config(self):
        analyzer = StatisticalAnalyzer(ForecastConfig(default_horizon=5))
        assert len(analyzer.forecast_series([1.0, 2.0, 3.0]).predictions) == 5

    def test_predictions_dated_after_last_month(self, make_txn):
        txns = monthly_income(make_txn, [100, 150, 200, 250, 300, 350])

        result = StatisticalAnalyzer().generate_forecast(txns, "net", horizon=3)

        assert [p.date for p in result.predictions] == [
            date(2025, 7, 1), date(2025, 8, 1), date(2025, 9, 1)
        ]
        assert all(math.isfinite(p.margin) for p in result.predictions)

    def test_generate_forecast_without_history(self):
        with pytest.raises(InsufficientDataError):
            StatisticalAnalyzer().generate_forecast([], "net")


class TestCategorySpendingPrediction:
    """Tests for predict_category_spending."""

    def test_trend_and_prediction(self, make_txn):
        now = date(2026, 6, 30)
        txns = []
        for month, amount in zip(range(1, 7), [100, 100, 100, 150, 150, 150]):
            txns.append(make_txn(date(2026, month, 10), amount, category="Groceries"))
            txns.append(make_txn(date(2026, month, 12), 50, category="Dining"))

        predictions = StatisticalAnalyzer().predict_category_spending(txns, now)

        assert [p.category for p in predictions] == ["Groceries", "Dining"]
        groceries, dining = predictions
        assert groceries.trend == TrendDirection.INCREASING
        assert groceries.predicted_amount == Decimal("157.50")
        assert groceries.confidence == 0.7
        assert groceries.monthly_average == Decimal("125.00")
        assert "budget limit" in groceries.recommendation

        assert dining.trend == TrendDirection.STABLE
        assert dining.predicted_amount == Decimal("50.00")
        assert dining.confidence == 0.8
        assert dining.recommendation is None

    def test_decreasing_category(self, make_txn):
        now = date(2026, 6, 30)
        txns = [make_txn(date(2026, m, 10), a, category="Dining")
                for m, a in zip(range(1, 7), [200, 200, 200, 100, 100, 100])]

        prediction = StatisticalAnalyzer().predict_category_spending(txns, now, months_to_predict=2)[0]

        assert prediction.trend == TrendDirection.DECREASING
        assert prediction.predicted_amount == Decimal("190.00")
        assert prediction.recommendation.startswith("Great job")
