"""
Tests for the regression model strategies and model selection.
"""
import numpy as np
import pytest

from wealth_analytics.core.error_taxonomy import ModelFitError
from wealth_analytics.tools.regression_models import (
    ExponentialRegressionModel,
    ForecastModel,
    LinearRegressionModel,
    PolynomialRegressionModel,
    coefficient_of_determination,
    select_best_model,
)


class TestCoefficientOfDetermination:
    """Tests for R² clamping and the constant-series case."""

    def test_worse_than_mean_clamped_to_zero(self):
        actual = np.array([1.0, 2.0, 3.0])
        assert coefficient_of_determination(actual, np.array([3.0, 2.0, 1.0])) == 0.0

    def test_constant_series_exact_fit(self):
        actual = np.array([5.0, 5.0, 5.0])
        assert coefficient_of_determination(actual, actual.copy()) == 1.0

    def test_constant_series_missed(self):
        actual = np.array([5.0, 5.0, 5.0])
        assert coefficient_of_determination(actual, np.array([5.0, 5.0, 6.0])) == 0.0


class TestStrategies:
    """Tests for the individual regression strategies."""

    def test_linear_parameters(self):
        fitted = LinearRegressionModel().fit([(0, 1), (1, 3), (2, 5)])

        slope, intercept = fitted.params
        assert slope == pytest.approx(2.0)
        assert intercept == pytest.approx(1.0)
        assert fitted.predict(3) == pytest.approx(7.0)
        assert fitted.equation == "y = 2.0000x + 1.0000"
        assert fitted.model == ForecastModel.LINEAR

    def test_exponential_needs_two_positive_values(self):
        with pytest.raises(ModelFitError) as exc_info:
            ExponentialRegressionModel().fit([(0, -5), (1, 3), (2, -1)])
        assert exc_info.value.model == "exponential"

    def test_exponential_ignores_non_positive_when_fitting(self):
        fitted = ExponentialRegressionModel().fit([(0, 0), (1, 2), (2, 4), (3, 8)])

        a, b = fitted.params
        assert a == pytest.approx(1.0)
        assert b == pytest.approx(np.log(2))
        # R² is still measured against every point, including the zero
        assert fitted.r_squared < 1.0

    def test_polynomial_needs_three_points(self):
        with pytest.raises(ModelFitError):
            PolynomialRegressionModel().fit([(0, 1), (1, 2)])

    def test_polynomial_fits_parabola(self):
        points = [(x, x * x - 2 * x + 3) for x in range(6)]
        fitted = PolynomialRegressionModel().fit(points)

        c2, c1, c0 = fitted.params
        assert c2 == pytest.approx(1.0)
        assert c1 == pytest.approx(-2.0)
        assert c0 == pytest.approx(3.0)
        assert fitted.r_squared == pytest.approx(1.0)


class TestSelectBestModel:
    """Tests for select_best_model."""

    def test_exponential_skipped_on_negative_series(self):
        best, scores = select_best_model([(0, -1), (1, -2), (2, -3), (3, -4)])

        assert "exponential" not in scores
        assert set(scores) == {"linear", "polynomial"}
        assert best.model == ForecastModel.LINEAR

    def test_parabola_selects_polynomial(self):
        points = [(x, 2 * (x - 3) ** 2 + 10) for x in range(7)]
        best, _ = select_best_model(points)
        assert best.model == ForecastModel.POLYNOMIAL

    def test_nothing_fits(self):
        with pytest.raises(ModelFitError):
            select_best_model([(0, 1), (1, 2)], candidates=[PolynomialRegressionModel()])
