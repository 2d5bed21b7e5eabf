"""
Spending Anomaly Detection Module

Flags individual expense transactions that are unusually large relative to
their category's recent spending baseline.

Key Features:
- Per-category baselines over a trailing lookback window
- IQR-based robust statistics once a category has enough history
- z-score threshold that adapts to sample size (small samples need
  stronger evidence)
- Absolute floor so trivially small deviations are never flagged

Insufficient history is not an error: such categories simply produce no
anomalies. All currency arithmetic is Decimal.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Sequence, Tuple

from config.settings import AnomalyConfig
from wealth_analytics.core.metrics import (
    calculate_metric,
    filter_by_range,
    filter_by_type,
    group_by_category,
)
from wealth_analytics.core.models import MetricKind, TimeRange, Transaction, TransactionType
from wealth_analytics.core.periods import add_months
from wealth_analytics.tools.calculator import (
    ZERO,
    mean,
    percentage_change,
    round_half_up,
    safe_divide,
    sample_std_dev,
    total,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

SUBSCRIPTION_KEYWORDS = ("annual", "yearly", "subscription")
EMERGENCY_KEYWORDS = ("emergency", "repair", "medical")


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


@dataclass
class CategoryBaseline:
    """Expected spending level of one category."""
    category: str
    mean: Decimal
    std_dev: Decimal
    count: int  # observations actually used for mean/std_dev
    sample_size: int  # observations in the lookback window
    robust: bool = False
    degenerate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "mean": str(self.mean),
            "std_dev": str(self.std_dev),
            "count": self.count,
            "sample_size": self.sample_size,
            "robust": self.robust,
            "degenerate": self.degenerate,
        }


@dataclass
class SpendingAnomaly:
    """A flagged expense with its scoring context."""
    id: str
    transaction_id: str
    date: date
    description: str
    amount: Decimal
    category: str
    severity: Severity
    z_score: Decimal
    percentage_above: Decimal
    percentage_above_normal: int
    threshold: float
    baseline_mean: Decimal
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": str(self.amount),
            "category": self.category,
            "severity": self.severity.value,
            "z_score": str(round_half_up(self.z_score, 2)),
            "percentage_above": str(round_half_up(self.percentage_above, 2)),
            "percentage_above_normal": self.percentage_above_normal,
            "threshold": self.threshold,
            "baseline_mean": str(round_half_up(self.baseline_mean, 2)),
            "reason": self.reason,
        }


@dataclass
class AnomalySummary:
    """Counts and totals over a set of anomalies."""
    total: int
    by_severity: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    total_amount: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_severity": self.by_severity,
            "by_category": self.by_category,
            "total_amount": str(self.total_amount),
        }


def anomaly_threshold(count: int, config: Optional[AnomalyConfig] = None) -> float:
    """
    Required |z| for a category with ``count`` observations.

    Non-increasing in count: 3.0 below 5, 2.5 below 10, 2.0 below 20, else 1.8.
    """
    config = config or AnomalyConfig()
    for upper_bound, threshold in config.threshold_steps:
        if count < upper_bound:
            return threshold
    return config.default_threshold


def classify_severity(z_score: Decimal, percentage_above: Decimal, amount: Decimal) -> Severity:
    """First matching rule wins: high, then medium, else low."""
    z = abs(z_score)
    if z > Decimal("3.5") or percentage_above > 200 or amount > 1000:
        return Severity.HIGH
    if z > Decimal("2.5") or (percentage_above > 100 and amount > 100):
        return Severity.MEDIUM
    return Severity.LOW


def summarize_anomalies(anomalies: Sequence[SpendingAnomaly]) -> AnomalySummary:
    """Aggregate counts by severity and category."""
    by_severity = {s.value: 0 for s in Severity}
    by_category: Dict[str, int] = {}
    for anomaly in anomalies:
        by_severity[anomaly.severity.value] += 1
        by_category[anomaly.category] = by_category.get(anomaly.category, 0) + 1
    return AnomalySummary(
        total=len(anomalies),
        by_severity=by_severity,
        by_category=by_category,
        total_amount=total(a.amount for a in anomalies),
    )


class AnomalyDetector:
    """
    Category-baseline anomaly detector.

    Usage:
        detector = AnomalyDetector(get_config().anomaly)
        anomalies = detector.detect_anomalies(transactions, now=date.today())
    """

    def __init__(self, config: Optional[AnomalyConfig] = None):
        self.config = config or AnomalyConfig()
        self.logger = logging.getLogger(__name__)

    # ===================
    # BASELINES
    # ===================

    def robust_statistics(self, values: Sequence[Decimal]) -> Tuple[Decimal, Decimal, int, bool]:
        """
        Mean and sample standard deviation after IQR outlier removal.

        Q1 and Q3 are taken at sorted indices floor(0.25n) and floor(0.75n).
        Values outside [Q1 - k*IQR, Q3 + k*IQR] are dropped. When fewer than
        ``outlier_fallback_ratio * n`` values survive, statistics fall back to
        the unfiltered sample.

        Returns:
            Tuple of (mean, std_dev, observations used, whether filtering applied)
        """
        n = len(values)
        ordered = sorted(values)
        q1 = ordered[n // 4]
        q3 = ordered[(3 * n) // 4]
        spread = (q3 - q1) * Decimal(str(self.config.iqr_multiplier))
        lower, upper = q1 - spread, q3 + spread

        filtered = [v for v in values if lower <= v <= upper]
        minimum_kept = Decimal(str(self.config.outlier_fallback_ratio)) * n

        if Decimal(len(filtered)) < minimum_kept:
            self.logger.debug(
                f"IQR filter kept {len(filtered)}/{n} values, falling back to unfiltered stats"
            )
            return mean(values), sample_std_dev(values), n, False

        return mean(filtered), sample_std_dev(filtered), len(filtered), True

    def compute_baselines(self, transactions: Sequence[Transaction], now: date) -> Dict[str, CategoryBaseline]:
        """
        Build per-category baselines from expenses in the lookback window.

        Args:
            transactions: Full transaction batch
            now: Reference date ending the lookback window

        Returns:
            Dict mapping category name to its baseline
        """
        window = TimeRange(add_months(now, -self.config.lookback_months), now, label="lookback")
        expenses = filter_by_type(filter_by_range(transactions, window), TransactionType.EXPENSE)

        baselines = {}
        for category, members in group_by_category(expenses, UNCATEGORIZED).items():
            values = [calculate_metric([t], MetricKind.EXPENSES) for t in members]
            n = len(values)
            if n < self.config.min_observations:
                baselines[category] = CategoryBaseline(
                    category=category, mean=ZERO, std_dev=ZERO,
                    count=n, sample_size=n, degenerate=True,
                )
            elif n < self.config.robust_min_observations:
                baselines[category] = CategoryBaseline(
                    category=category, mean=mean(values), std_dev=sample_std_dev(values),
                    count=n, sample_size=n,
                )
            else:
                avg, std, used, robust = self.robust_statistics(values)
                baselines[category] = CategoryBaseline(
                    category=category, mean=avg, std_dev=std,
                    count=used, sample_size=n, robust=robust,
                )
            self.logger.debug(f"Baseline {category}: {baselines[category].to_dict()}")

        return baselines

    # ===================
    # DETECTION
    # ===================

    def detect_anomalies(self, transactions: Sequence[Transaction], now: date) -> List[SpendingAnomaly]:
        """
        Flag recent expenses that sit far above their category baseline.

        A transaction is flagged only when its amount exceeds the mean, its
        |z| exceeds the sample-size threshold, and it exceeds the mean by more
        than the absolute floor.

        Returns:
            Anomalies sorted high, medium, low (input order within a severity)
        """
        baselines = self.compute_baselines(transactions, now)
        recent = TimeRange(add_months(now, -self.config.recent_months), now, label="recent")
        floor = self.config.min_absolute_deviation

        anomalies: List[SpendingAnomaly] = []
        for t in filter_by_type(filter_by_range(transactions, recent), TransactionType.EXPENSE):
            category = t.category or UNCATEGORIZED
            baseline = baselines.get(category)
            if baseline is None or baseline.degenerate:
                continue

            amount = calculate_metric([t], MetricKind.EXPENSES)
            z_score = safe_divide(amount - baseline.mean, baseline.std_dev)
            percentage_above = percentage_change(amount, baseline.mean)
            threshold = anomaly_threshold(baseline.count, self.config)

            if not (
                amount > baseline.mean
                and abs(z_score) > Decimal(str(threshold))
                and amount > baseline.mean + floor
            ):
                continue

            above_normal = int(round_half_up(max(ZERO, percentage_above)))
            anomalies.append(SpendingAnomaly(
                id=f"anomaly-{t.id}",
                transaction_id=t.id,
                date=t.date,
                description=t.description,
                amount=amount,
                category=category,
                severity=classify_severity(z_score, percentage_above, amount),
                z_score=z_score,
                percentage_above=percentage_above,
                percentage_above_normal=above_normal,
                threshold=threshold,
                baseline_mean=baseline.mean,
                reason=self._build_reason(t, category, z_score, above_normal),
            ))

        # sorted() is stable, so ties keep input order
        anomalies = sorted(anomalies, key=lambda a: SEVERITY_RANK[a.severity])
        self.logger.info(
            f"Detected {len(anomalies)} anomalies across {len(baselines)} categories"
        )
        return anomalies

    @staticmethod
    def _build_reason(t: Transaction, category: str, z_score: Decimal, above_normal: int) -> str:
        """Human-readable explanation of why a transaction was flagged."""
        description = t.description.lower()
        label = category.lower()

        if any(word in description for word in SUBSCRIPTION_KEYWORDS):
            return f"Annual or subscription payment - {above_normal}% above typical {label} spending"
        if any(word in description for word in EMERGENCY_KEYWORDS):
            return "Emergency or unexpected expense - significantly higher than usual"
        if z_score > Decimal("3.5"):
            return f"Extremely high {label} expense - {above_normal}% above your typical spending pattern"
        if z_score > Decimal("2.5"):
            return f"Significantly above average {label} spending - worth reviewing for accuracy"
        return f"Higher than typical {label} expense - {above_normal}% above your average"
