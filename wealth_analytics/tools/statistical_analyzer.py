"""
Trend, Seasonality & Forecasting Module

Provides time-series analysis over periodic transaction aggregates.

Key Features:
- OLS trend with an R² confidence gate (noisy fits report "stable")
- Lag-12 autocorrelation of detrended residuals for seasonality
- Multi-model forecasting (linear, exponential, quadratic) with automatic
  model selection by R²
- Prediction intervals that widen with distance from the training data
- Per-category spending outlook from recent monthly averages

Follows the engine's error policy:
- Forecasting from fewer than 3 periods raises InsufficientDataError
- Trend and seasonality degrade to "stable" / "not detected" instead of raising
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Dict, Any, Optional, Sequence, Union

import numpy as np

from config.settings import ForecastConfig
from wealth_analytics.core.error_taxonomy import (
    AnalyticsError,
    ErrorCategory,
    ErrorSeverity,
    InsufficientDataError,
    InvalidQueryError,
)
from wealth_analytics.core.metrics import (
    MetricLike,
    aggregate_by_period,
    filter_by_range,
    filter_by_type,
    group_by_category,
    parse_period,
)
from wealth_analytics.core.models import MetricKind, TimeRange, Transaction, TransactionType
from wealth_analytics.core.periods import PeriodType, add_months, shift_period
from wealth_analytics.tools.calculator import (
    as_floats,
    mean,
    quantize_currency,
    round_half_up,
    total,
)
from wealth_analytics.tools.regression_models import (
    FittedModel,
    ForecastModel,
    LinearRegressionModel,
    default_models,
    select_best_model,
)

logger = logging.getLogger(__name__)


class TrendDirection(Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass
class SeasonalityResult:
    """Lag autocorrelation of detrended residuals."""
    detected: bool
    autocorrelation: float
    strength: float
    lag: int
    observations: int
    pattern: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected,
            "autocorrelation": self.autocorrelation,
            "strength": self.strength,
            "lag": self.lag,
            "observations": self.observations,
            "pattern": self.pattern,
        }


@dataclass
class TrendAnalysis:
    """Result of an OLS trend fit over a periodic series."""
    direction: TrendDirection
    slope: float
    intercept: float
    r_squared: float
    change_rate: float  # slope as % of the first period's magnitude
    observations: int
    seasonality: SeasonalityResult
    period: str = PeriodType.MONTH.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared,
            "change_rate": self.change_rate,
            "observations": self.observations,
            "period": self.period,
            "seasonality": self.seasonality.to_dict(),
        }


@dataclass
class ForecastPrediction:
    """One projected period with its prediction interval."""
    index: int
    date: Optional[date]
    value: Decimal
    lower: Decimal
    upper: Decimal
    margin: float  # half-width of the interval before clamping

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "date": self.date.isoformat() if self.date else None,
            "value": str(self.value),
            "lower": str(self.lower),
            "upper": str(self.upper),
            "margin": self.margin,
        }


@dataclass
class ForecastResult:
    """Projection from the selected regression model."""
    predictions: List[ForecastPrediction]
    accuracy: float  # R² of the selected model, in [0, 1]
    model: ForecastModel
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictions": [p.to_dict() for p in self.predictions],
            "accuracy": self.accuracy,
            "model": self.model.value,
            "parameters": self.parameters,
        }


@dataclass
class SpendingPrediction:
    """Expected spending for one category."""
    category: str
    predicted_amount: Decimal
    confidence: float
    trend: TrendDirection
    monthly_average: Decimal
    months: int
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "predicted_amount": str(self.predicted_amount),
            "confidence": self.confidence,
            "trend": self.trend.value,
            "monthly_average": str(self.monthly_average),
            "months": self.months,
            "recommendation": self.recommendation,
        }


class StatisticalAnalyzer:
    """
    Time-series analysis engine.

    Provides trend classification, seasonality detection and regression
    forecasting over series built with the metric core.
    """

    def __init__(self, config: Optional[ForecastConfig] = None):
        """
        Initialize analyzer.

        Args:
            config: Forecast thresholds (defaults from environment)
        """
        self.config = config or ForecastConfig()
        self.logger = logging.getLogger(__name__)

    # ===================
    # TREND
    # ===================

    def analyze_trend(
        self,
        transactions: Sequence[Transaction],
        kind: MetricLike = MetricKind.NET,
        period: Union[PeriodType, str] = PeriodType.MONTH,
    ) -> TrendAnalysis:
        """
        Classify the direction of a metric over time.

        Args:
            transactions: Transaction batch
            kind: Metric aggregated per period
            period: Aggregation granularity

        Returns:
            TrendAnalysis with seasonality attached
        """
        period = parse_period(period)
        series = aggregate_by_period(transactions, period, kind)
        analysis = self.trend_from_values(as_floats(p.value for p in series))
        analysis.period = period.value
        return analysis

    def trend_from_values(self, values: Sequence[float]) -> TrendAnalysis:
        """OLS trend over (index, value) pairs."""
        n = len(values)
        seasonality = self.detect_seasonality(values)

        if n < 2:
            self.logger.debug(f"Trend needs 2 periods, got {n}; reporting stable")
            return TrendAnalysis(
                direction=TrendDirection.STABLE, slope=0.0,
                intercept=float(values[0]) if values else 0.0,
                r_squared=0.0, change_rate=0.0, observations=n,
                seasonality=seasonality,
            )

        fitted = LinearRegressionModel().fit(list(enumerate(values)))
        slope, intercept = fitted.params
        avg = float(np.mean(values))
        ratio = slope / abs(avg) if avg != 0 else 0.0

        if fitted.r_squared < self.config.trend_min_r_squared:
            direction = TrendDirection.STABLE
        elif ratio > self.config.trend_slope_ratio:
            direction = TrendDirection.INCREASING
        elif ratio < -self.config.trend_slope_ratio:
            direction = TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE

        first = abs(values[0]) or 1.0
        return TrendAnalysis(
            direction=direction,
            slope=slope,
            intercept=intercept,
            r_squared=fitted.r_squared,
            change_rate=slope / first * 100,
            observations=n,
            seasonality=seasonality,
        )

    # ===================
    # SEASONALITY
    # ===================

    @staticmethod
    def autocorrelation(values: Sequence[float], lag: int) -> float:
        """
        Lag autocorrelation sum((x[i]-mu)(x[i+lag]-mu)) / ((n-lag) * var).

        Uses the population variance. Returns 0 when the series is not
        longer than the lag or has no variance.
        """
        x = np.asarray(values, dtype=float)
        n = len(x)
        if n <= lag:
            return 0.0
        mu = x.mean()
        variance = float(np.mean((x - mu) ** 2))
        if variance <= 1e-12 * max(1.0, float(np.mean(x ** 2))):
            return 0.0
        covariance = float(np.sum((x[:-lag] - mu) * (x[lag:] - mu)))
        return covariance / ((n - lag) * variance)

    def detect_seasonality(self, values: Sequence[float]) -> SeasonalityResult:
        """
        Detect a repeating yearly pattern in a monthly series.

        The series is detrended with OLS first; requires at least ``lag``
        observations, otherwise nothing is computed.
        """
        lag = self.config.seasonal_lag
        n = len(values)
        if n < lag:
            return SeasonalityResult(
                detected=False, autocorrelation=0.0, strength=0.0,
                lag=lag, observations=n,
            )

        residuals = LinearRegressionModel().fit(list(enumerate(values))).residuals
        r = self.autocorrelation(residuals, lag)
        detected = abs(r) > self.config.seasonality_threshold
        self.logger.debug(f"Lag-{lag} autocorrelation {r:.4f} over {n} periods")
        return SeasonalityResult(
            detected=detected,
            autocorrelation=r,
            strength=abs(r),
            lag=lag,
            observations=n,
            pattern="yearly" if detected else None,
        )

    # ===================
    # FORECASTING
    # ===================

    def forecast_series(
        self,
        values: Sequence[float],
        horizon: Optional[int] = None,
        model: Union[ForecastModel, str] = "auto",
        last_date: Optional[date] = None,
        period: Union[PeriodType, str] = PeriodType.MONTH,
    ) -> ForecastResult:
        """
        Project a series forward with a regression model.

        Args:
            values: Historical values, one per period, oldest first
            horizon: Number of future periods (default from config)
            model: "auto" to pick the highest R², or a ForecastModel name
            last_date: Start date of the last observed period, used to date predictions
            period: Period length used to date predictions

        Returns:
            ForecastResult with exactly ``horizon`` predictions

        Raises:
            InsufficientDataError: Fewer than 3 historical values
            ModelFitError: A pinned model cannot be fitted
        """
        horizon = self.config.default_horizon if horizon is None else horizon
        if horizon < 1:
            raise InvalidQueryError(f"Forecast horizon must be at least 1, got {horizon}")

        n = len(values)
        if n < self.config.min_points:
            raise InsufficientDataError(
                f"Forecasting needs at least {self.config.min_points} periods of history, got {n}",
                required=self.config.min_points,
                actual=n,
            )

        points = [(float(i), float(v)) for i, v in enumerate(values)]
        fitted, scores = self._fit(points, model)
        period = parse_period(period)

        x = np.arange(n, dtype=float)
        x_mean = float(x.mean())
        sxx = float(np.sum((x - x_mean) ** 2))
        std_error = fitted.std_error

        predictions = []
        for step in range(1, horizon + 1):
            x0 = n - 1 + step
            predicted = fitted.predict(x0)
            if not math.isfinite(predicted):
                raise AnalyticsError(
                    f"{fitted.model.value} model produced a non-finite forecast at period {x0}",
                    category=ErrorCategory.CALCULATION_ERROR,
                    severity=ErrorSeverity.HIGH,
                    context={"equation": fitted.equation},
                )
            margin = self.config.confidence_z * std_error * math.sqrt(
                1 + 1 / n + (x0 - x_mean) ** 2 / sxx
            )
            try:
                value = quantize_currency(max(0.0, predicted))
                lower = quantize_currency(max(0.0, predicted - margin))
                upper = quantize_currency(max(0.0, predicted + margin))
            except InvalidOperation as e:
                raise AnalyticsError(
                    f"{fitted.model.value} forecast {predicted:.4g} at period {x0} exceeds currency precision",
                    category=ErrorCategory.CALCULATION_ERROR,
                    severity=ErrorSeverity.HIGH,
                    context={"equation": fitted.equation},
                ) from e
            predictions.append(ForecastPrediction(
                index=x0,
                date=shift_period(last_date, period, step) if last_date else None,
                value=value,
                lower=lower,
                upper=upper,
                margin=margin,
            ))

        self.logger.info(
            f"Forecast {horizon} periods with {fitted.model.value} model (R²={fitted.r_squared:.3f})"
        )
        return ForecastResult(
            predictions=predictions,
            accuracy=fitted.r_squared,
            model=fitted.model,
            parameters={
                "equation": fitted.equation,
                "data_points": n,
                "std_error": std_error,
                "candidates": scores,
            },
        )

    def generate_forecast(
        self,
        transactions: Sequence[Transaction],
        kind: MetricLike = MetricKind.NET,
        horizon: Optional[int] = None,
        model: Union[ForecastModel, str] = "auto",
        period: Union[PeriodType, str] = PeriodType.MONTH,
    ) -> ForecastResult:
        """Aggregate a metric per period and forecast it."""
        series = aggregate_by_period(transactions, period, kind)
        return self.forecast_series(
            as_floats(p.value for p in series),
            horizon=horizon,
            model=model,
            last_date=series[-1].start if series else None,
            period=period,
        )

    def _fit(self, points, model: Union[ForecastModel, str]):
        if isinstance(model, str) and model.lower() == "auto":
            return select_best_model(points)
        try:
            pinned = ForecastModel(model.value if isinstance(model, ForecastModel) else str(model).lower())
        except ValueError:
            raise InvalidQueryError(
                f"Unknown forecast model '{model}'. Use auto or one of {[m.value for m in ForecastModel]}"
            ) from None
        strategy = next(m for m in default_models() if m.model == pinned)
        fitted: FittedModel = strategy.fit(points)
        return fitted, {fitted.model.value: fitted.r_squared}

    # ===================
    # CATEGORY OUTLOOK
    # ===================

    def predict_category_spending(
        self,
        transactions: Sequence[Transaction],
        now: date,
        months_to_predict: int = 1,
        history_months: int = 6,
    ) -> List[SpendingPrediction]:
        """
        Expected spending per category from recent monthly totals.

        Trend compares the average of the last three months against the
        first three (+/-10%). The monthly prediction is the recent average,
        nudged 5% in the direction of the trend.

        Returns:
            Predictions sorted by predicted amount, largest first
        """
        window = TimeRange(add_months(now, -history_months), now)
        expenses = filter_by_type(filter_by_range(transactions, window), TransactionType.EXPENSE)

        predictions = []
        for category, members in group_by_category(expenses).items():
            values = [p.value for p in aggregate_by_period(members, PeriodType.MONTH, MetricKind.EXPENSES)]
            average = mean(values)
            recent_avg = mean(values[-3:])
            trend = self._category_trend(values)

            if trend == TrendDirection.INCREASING:
                monthly_prediction, confidence = recent_avg * Decimal("1.05"), 0.7
            elif trend == TrendDirection.DECREASING:
                monthly_prediction, confidence = recent_avg * Decimal("0.95"), 0.7
            else:
                monthly_prediction, confidence = recent_avg, 0.8

            predicted = quantize_currency(monthly_prediction * months_to_predict)
            predictions.append(SpendingPrediction(
                category=category,
                predicted_amount=predicted,
                confidence=confidence,
                trend=trend,
                monthly_average=round_half_up(average, 2),
                months=months_to_predict,
                recommendation=self._spending_recommendation(category, trend, monthly_prediction, average),
            ))

        return sorted(predictions, key=lambda p: p.predicted_amount, reverse=True)

    @staticmethod
    def _category_trend(values: Sequence[Decimal]) -> TrendDirection:
        if len(values) < 3:
            return TrendDirection.STABLE
        recent = total(values[-3:]) / 3
        older = total(values[:3]) / 3
        if older == 0:
            return TrendDirection.STABLE
        change = (recent - older) / older
        if change > Decimal("0.1"):
            return TrendDirection.INCREASING
        if change < Decimal("-0.1"):
            return TrendDirection.DECREASING
        return TrendDirection.STABLE

    @staticmethod
    def _spending_recommendation(
        category: str, trend: TrendDirection, predicted: Decimal, average: Decimal
    ) -> Optional[str]:
        if trend == TrendDirection.INCREASING and predicted > average * Decimal("1.2"):
            return f"Consider setting a budget limit for {category} to control spending growth"
        if trend == TrendDirection.DECREASING:
            return f"Great job reducing {category} spending! Keep it up!"
        return None
