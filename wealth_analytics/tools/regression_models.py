"""
Regression model strategies for forecasting.

Every candidate model honours the same contract: ``fit(points)`` returns a
FittedModel exposing ``predict(x)``, ``r_squared`` and a human-readable
equation. Model selection is then just "fit every strategy, keep the
highest R²".

R² is always measured on the original (untransformed) scale, so the
exponential model, which is fitted on ln(y), competes fairly with the
others. It is clamped to [0, 1].
"""
import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import statsmodels.api as sm

from wealth_analytics.core.error_taxonomy import ModelFitError

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


class ForecastModel(Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    POLYNOMIAL = "polynomial"


def coefficient_of_determination(actual: np.ndarray, predicted: np.ndarray) -> float:
    """
    1 - SSres/SStot, clamped to [0, 1].

    A constant series has SStot = 0: R² is 1 when the model reproduces it
    exactly and 0 otherwise.
    """
    residuals = actual - predicted
    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((actual - actual.mean()) ** 2))
    if ss_tot == 0:
        scale = max(1.0, float(np.sum(actual ** 2)))
        return 1.0 if ss_res <= 1e-12 * scale else 0.0
    return float(min(1.0, max(0.0, 1.0 - ss_res / ss_tot)))


@dataclass
class FittedModel:
    """A regression strategy bound to its fitted parameters."""
    model: ForecastModel
    params: Tuple[float, ...]
    r_squared: float
    equation: str
    residuals: np.ndarray
    strategy: "RegressionModel"

    def predict(self, x: float) -> float:
        return self.strategy.evaluate(self.params, x)

    @property
    def std_error(self) -> float:
        """Standard deviation of the in-sample residuals."""
        return float(np.std(self.residuals))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model.value,
            "params": list(self.params),
            "r_squared": self.r_squared,
            "equation": self.equation,
            "std_error": self.std_error,
        }


class RegressionModel(ABC):
    """Strategy interface for a forecasting regression."""

    model: ForecastModel
    min_points: int = 2

    @property
    def name(self) -> str:
        return self.model.value

    def fit(self, points: Sequence[Point]) -> FittedModel:
        """
        Fit the model to (x, y) points.

        Raises:
            ModelFitError: If the points cannot support this model
        """
        if len(points) < self.min_points:
            raise ModelFitError(
                f"{self.name} regression needs at least {self.min_points} points, got {len(points)}",
                model=self.name,
            )
        x = np.array([p[0] for p in points], dtype=float)
        y = np.array([p[1] for p in points], dtype=float)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=RuntimeWarning)
            params = self._estimate(x, y)

        predicted = np.array([self.evaluate(params, xi) for xi in x])
        if not np.all(np.isfinite(predicted)):
            raise ModelFitError(f"{self.name} regression produced non-finite fitted values", model=self.name)

        fitted = FittedModel(
            model=self.model,
            params=params,
            r_squared=coefficient_of_determination(y, predicted),
            equation=self.describe(params),
            residuals=y - predicted,
            strategy=self,
        )
        logger.debug(f"Fitted {fitted.equation} (R²={fitted.r_squared:.4f})")
        return fitted

    @abstractmethod
    def _estimate(self, x: np.ndarray, y: np.ndarray) -> Tuple[float, ...]:
        ...

    @abstractmethod
    def evaluate(self, params: Tuple[float, ...], x: float) -> float:
        ...

    @abstractmethod
    def describe(self, params: Tuple[float, ...]) -> str:
        ...


class LinearRegressionModel(RegressionModel):
    """y = slope*x + intercept, ordinary least squares."""

    model = ForecastModel.LINEAR

    def _estimate(self, x: np.ndarray, y: np.ndarray) -> Tuple[float, ...]:
        X = sm.add_constant(x, has_constant="add")
        result = sm.OLS(y, X).fit()
        intercept, slope = result.params
        return float(slope), float(intercept)

    def evaluate(self, params: Tuple[float, ...], x: float) -> float:
        slope, intercept = params
        return slope * x + intercept

    def describe(self, params: Tuple[float, ...]) -> str:
        slope, intercept = params
        return f"y = {slope:.4f}x + {intercept:.4f}"


class ExponentialRegressionModel(RegressionModel):
    """y = a*e^(bx), fitted by OLS on ln(y) over strictly positive values."""

    model = ForecastModel.EXPONENTIAL

    def _estimate(self, x: np.ndarray, y: np.ndarray) -> Tuple[float, ...]:
        positive = y > 0
        if positive.sum() < 2:
            raise ModelFitError(
                "exponential regression needs at least 2 positive values",
                model=self.name,
                context={"positive_points": int(positive.sum())},
            )
        X = sm.add_constant(x[positive], has_constant="add")
        result = sm.OLS(np.log(y[positive]), X).fit()
        log_a, b = result.params
        return float(np.exp(log_a)), float(b)

    def evaluate(self, params: Tuple[float, ...], x: float) -> float:
        a, b = params
        with np.errstate(over="ignore"):
            return float(a * np.exp(b * x))

    def describe(self, params: Tuple[float, ...]) -> str:
        a, b = params
        return f"y = {a:.4f}e^({b:.4f}x)"


class PolynomialRegressionModel(RegressionModel):
    """y = c2*x^2 + c1*x + c0, ordinary least squares on a quadratic design matrix."""

    model = ForecastModel.POLYNOMIAL
    min_points = 3

    def _estimate(self, x: np.ndarray, y: np.ndarray) -> Tuple[float, ...]:
        X = np.column_stack([np.ones_like(x), x, x ** 2])
        result = sm.OLS(y, X).fit()
        c0, c1, c2 = result.params
        return float(c2), float(c1), float(c0)

    def evaluate(self, params: Tuple[float, ...], x: float) -> float:
        c2, c1, c0 = params
        return c2 * x * x + c1 * x + c0

    def describe(self, params: Tuple[float, ...]) -> str:
        c2, c1, c0 = params
        return f"y = {c2:.4f}x^2 + {c1:.4f}x + {c0:.4f}"


def default_models() -> List[RegressionModel]:
    """Candidate strategies in tie-break order."""
    return [LinearRegressionModel(), ExponentialRegressionModel(), PolynomialRegressionModel()]


def select_best_model(points: Sequence[Point], candidates: Sequence[RegressionModel] = None) -> Tuple[FittedModel, Dict[str, float]]:
    """
    Fit every candidate and keep the highest R².

    Ties go to the earlier candidate. Candidates that cannot be fitted are
    skipped.

    Returns:
        Tuple of (best fitted model, R² per fitted candidate)

    Raises:
        ModelFitError: If no candidate could be fitted
    """
    candidates = candidates if candidates is not None else default_models()
    best = None
    scores: Dict[str, float] = {}
    for candidate in candidates:
        try:
            fitted = candidate.fit(points)
        except ModelFitError as e:
            logger.warning(f"Skipping {candidate.name} model: {e}")
            continue
        scores[candidate.name] = fitted.r_squared
        if best is None or fitted.r_squared > best.r_squared:
            best = fitted

    if best is None:
        raise ModelFitError("No regression model could be fitted", model="auto")
    return best, scores
