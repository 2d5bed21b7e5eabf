"""
Correlation Discovery Module

Finds linear relationships between monthly financial metrics (income,
expenses, savings, transaction count) and tests their significance.

- One value per metric per calendar month, aligned with pandas
- Pearson sample correlation
- Two-sided p-value from Fisher's z-transformation
- Pairs with fewer than 3 overlapping months are skipped, never reported
  with a placeholder value
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pandas as pd
from scipy.stats import norm

from config.settings import CorrelationConfig
from wealth_analytics.core.error_taxonomy import InsufficientDataError, InvalidQueryError
from wealth_analytics.core.metrics import calculate_metric, group_by_period
from wealth_analytics.core.models import MetricKind, Transaction
from wealth_analytics.core.periods import PeriodType

logger = logging.getLogger(__name__)

MONTHLY_METRICS: Dict[str, Callable[[List[Transaction]], float]] = {
    "income": lambda bucket: float(calculate_metric(bucket, MetricKind.INCOME)),
    "expenses": lambda bucket: float(calculate_metric(bucket, MetricKind.EXPENSES)),
    "savings": lambda bucket: float(calculate_metric(bucket, MetricKind.NET)),
    "net": lambda bucket: float(calculate_metric(bucket, MetricKind.NET)),
    "count": lambda bucket: float(calculate_metric(bucket, MetricKind.COUNT)),
}

DEFAULT_METRICS = ("income", "expenses", "savings")


class CorrelationStrength(Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    NONE = "none"


class CorrelationDirection(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NONE = "none"


@dataclass
class CorrelationResult:
    """Correlation between two monthly metric series."""
    variable1: str
    variable2: str
    correlation: float
    p_value: float
    strength: CorrelationStrength
    direction: CorrelationDirection
    observations: int

    @property
    def is_significant(self) -> bool:
        return self.p_value < 0.05

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variable1": self.variable1,
            "variable2": self.variable2,
            "correlation": self.correlation,
            "p_value": self.p_value,
            "strength": self.strength.value,
            "direction": self.direction.value,
            "observations": self.observations,
            "is_significant": self.is_significant,
        }


def fisher_p_value(r: float, n: int) -> float:
    """
    Two-sided p-value of a Pearson r via Fisher's z-transformation.

    z = atanh(r), SE = 1/sqrt(n-3), p = 2 * (1 - Phi(|z/SE|)).
    Returns 1.0 when n <= 3 (SE undefined) and 0.0 for a perfect correlation.
    """
    if n <= 3:
        return 1.0
    if abs(r) >= 1.0:
        return 0.0
    z = math.atanh(r)
    standard_error = 1 / math.sqrt(n - 3)
    return float(2 * norm.sf(abs(z / standard_error)))


class CorrelationAnalyzer:
    """Pairwise correlation of monthly metrics."""

    def __init__(self, config: Optional[CorrelationConfig] = None):
        self.config = config or CorrelationConfig()
        self.logger = logging.getLogger(__name__)

    def build_monthly_metrics(
        self,
        transactions: Sequence[Transaction],
        metrics: Sequence[str] = DEFAULT_METRICS,
    ) -> pd.DataFrame:
        """
        One row per calendar month, one column per requested metric.

        Raises:
            InvalidQueryError: For an unknown metric name
        """
        unknown = [m for m in metrics if m not in MONTHLY_METRICS]
        if unknown:
            raise InvalidQueryError(
                f"Unknown correlation metrics {unknown}. Available: {sorted(MONTHLY_METRICS)}"
            )

        buckets = group_by_period(transactions, PeriodType.MONTH)
        frame = pd.DataFrame(
            {m: [MONTHLY_METRICS[m](bucket) for bucket in buckets.values()] for m in metrics},
            index=list(buckets.keys()),
            dtype=float,
        )
        frame.index.name = "month"
        return frame

    def classify_strength(self, r: float) -> CorrelationStrength:
        magnitude = abs(r)
        if magnitude > self.config.strong_threshold:
            return CorrelationStrength.STRONG
        if magnitude > self.config.moderate_threshold:
            return CorrelationStrength.MODERATE
        if magnitude > self.config.weak_threshold:
            return CorrelationStrength.WEAK
        return CorrelationStrength.NONE

    def correlate(
        self,
        name1: str,
        values1: Union[pd.Series, Sequence[float]],
        name2: str,
        values2: Union[pd.Series, Sequence[float]],
    ) -> CorrelationResult:
        """
        Pearson correlation of two aligned series.

        Args:
            name1, name2: Variable names for the result
            values1, values2: Series aligned by index (sequences align by position)

        Raises:
            InsufficientDataError: Fewer than ``min_overlap`` defined pairs
        """
        x = values1 if isinstance(values1, pd.Series) else pd.Series(list(values1), dtype=float)
        y = values2 if isinstance(values2, pd.Series) else pd.Series(list(values2), dtype=float)
        aligned = pd.DataFrame({"x": x, "y": y}).dropna()
        n = len(aligned)

        if n < self.config.min_overlap:
            raise InsufficientDataError(
                f"Correlating {name1} with {name2} needs {self.config.min_overlap} overlapping months, got {n}",
                required=self.config.min_overlap,
                actual=n,
            )

        if aligned["x"].std() == 0 or aligned["y"].std() == 0:
            r = 0.0
        else:
            r = float(aligned["x"].corr(aligned["y"]))
            if math.isnan(r):
                r = 0.0
            r = max(-1.0, min(1.0, r))

        if r > 0:
            direction = CorrelationDirection.POSITIVE
        elif r < 0:
            direction = CorrelationDirection.NEGATIVE
        else:
            direction = CorrelationDirection.NONE

        return CorrelationResult(
            variable1=name1,
            variable2=name2,
            correlation=r,
            p_value=fisher_p_value(r, n),
            strength=self.classify_strength(r),
            direction=direction,
            observations=n,
        )

    def calculate_correlations(
        self,
        transactions: Sequence[Transaction],
        metrics: Sequence[str] = DEFAULT_METRICS,
    ) -> List[CorrelationResult]:
        """
        Correlate every unordered pair of requested metrics.

        Returns:
            Results in request-pair order; pairs without enough overlap are omitted
        """
        frame = self.build_monthly_metrics(transactions, metrics)
        results = []
        for i, first in enumerate(metrics):
            for second in metrics[i + 1:]:
                try:
                    results.append(self.correlate(first, frame[first], second, frame[second]))
                except InsufficientDataError as e:
                    self.logger.debug(f"Skipping pair: {e}")
        self.logger.info(f"Computed {len(results)} correlations over {len(frame)} months")
        return results
