"""
Analytics Engine

Caller-owned facade over the analytics components. An engine holds only
its configuration and a clock; it keeps no state between calls, so one
instance can be shared or many created freely.

Every operation is synchronous. The ``*_async`` variants run the same
computation on the event loop's default executor so a host application can
await them without blocking its loop.
"""
import asyncio
import functools
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from config.settings import AnalyticsConfig, get_config
from wealth_analytics.core.error_taxonomy import classify_error
from wealth_analytics.core.metrics import (
    MetricLike,
    aggregate_by_period,
    calculate_metric,
    calculate_period_comparison,
    filter_by_range,
)
from wealth_analytics.core.models import MetricKind, MetricValue, PeriodValue, TimeRange, Transaction
from wealth_analytics.core.periods import PeriodType
from wealth_analytics.tools.anomaly_detector import (
    AnomalyDetector,
    AnomalySummary,
    SpendingAnomaly,
    summarize_anomalies,
)
from wealth_analytics.tools.cohort_analyzer import CohortAnalyzer, CohortRow, RollingWindowPoint
from wealth_analytics.tools.correlation_analyzer import DEFAULT_METRICS, CorrelationAnalyzer, CorrelationResult
from wealth_analytics.tools.data_processor import AnalyticsQuery, QueryEngine, QueryResult
from wealth_analytics.tools.statistical_analyzer import (
    ForecastResult,
    SpendingPrediction,
    StatisticalAnalyzer,
    TrendAnalysis,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnalyticsEngine:
    """
    Entry point for host applications.

    Usage:
        engine = AnalyticsEngine(now_provider=lambda: date(2026, 10, 15))
        anomalies = engine.detect_anomalies(transactions)
        forecast = await engine.generate_forecast_async(transactions, horizon=6)
    """

    def __init__(
        self,
        config: Optional[AnalyticsConfig] = None,
        now_provider: Optional[Callable[[], date]] = None,
    ):
        self.config = config or get_config()
        self.now_provider = now_provider or date.today
        self.anomaly_detector = AnomalyDetector(self.config.anomaly)
        self.statistical_analyzer = StatisticalAnalyzer(self.config.forecast)
        self.correlation_analyzer = CorrelationAnalyzer(self.config.correlation)
        self.cohort_analyzer = CohortAnalyzer(self.config.rolling)
        self.query_engine = QueryEngine()

    def _now(self, now: Optional[date]) -> date:
        return now if now is not None else self.now_provider()

    # ===================
    # METRICS
    # ===================

    def metric(self, transactions: Sequence[Transaction], kind: MetricLike,
               time_range: Optional[TimeRange] = None):
        if time_range is not None:
            transactions = filter_by_range(transactions, time_range)
        return calculate_metric(transactions, kind)

    def aggregate(self, transactions: Sequence[Transaction],
                  period: Union[PeriodType, str] = PeriodType.MONTH,
                  kind: MetricLike = MetricKind.NET) -> List[PeriodValue]:
        return aggregate_by_period(transactions, period, kind)

    def compare_periods(self, transactions: Sequence[Transaction], current: TimeRange,
                        previous: TimeRange, kind: MetricLike = MetricKind.NET,
                        comparison: str = "both") -> MetricValue:
        return calculate_period_comparison(transactions, current, previous, kind, comparison)

    # ===================
    # ANOMALIES
    # ===================

    def detect_anomalies(self, transactions: Sequence[Transaction],
                         now: Optional[date] = None) -> List[SpendingAnomaly]:
        return self.anomaly_detector.detect_anomalies(transactions, self._now(now))

    def anomaly_summary(self, transactions: Sequence[Transaction],
                        now: Optional[date] = None) -> AnomalySummary:
        return summarize_anomalies(self.detect_anomalies(transactions, now))

    # ===================
    # TRENDS & FORECASTS
    # ===================

    def analyze_trend(self, transactions: Sequence[Transaction], kind: MetricLike = MetricKind.NET,
                      period: Union[PeriodType, str] = PeriodType.MONTH) -> TrendAnalysis:
        return self.statistical_analyzer.analyze_trend(transactions, kind, period)

    def generate_forecast(self, transactions: Sequence[Transaction], kind: MetricLike = MetricKind.NET,
                          horizon: Optional[int] = None, model: str = "auto") -> ForecastResult:
        return self.statistical_analyzer.generate_forecast(transactions, kind, horizon, model)

    def predict_category_spending(self, transactions: Sequence[Transaction], months_to_predict: int = 1,
                                  now: Optional[date] = None) -> List[SpendingPrediction]:
        return self.statistical_analyzer.predict_category_spending(
            transactions, self._now(now), months_to_predict
        )

    # ===================
    # CORRELATIONS, COHORTS, QUERIES
    # ===================

    def calculate_correlations(self, transactions: Sequence[Transaction],
                               metrics: Sequence[str] = DEFAULT_METRICS) -> List[CorrelationResult]:
        return self.correlation_analyzer.calculate_correlations(transactions, list(metrics))

    def rolling_window(self, transactions: Sequence[Transaction], window_size: int,
                       window_unit: str = "months", kind: MetricLike = MetricKind.NET,
                       window_count: Optional[int] = None,
                       now: Optional[date] = None) -> List[RollingWindowPoint]:
        return self.cohort_analyzer.calculate_rolling_window(
            transactions, window_size, self._now(now), window_unit, kind, window_count
        )

    def cohort_analysis(self, transactions: Sequence[Transaction], cohort_field: str, metric: str,
                        periods: Optional[int] = None,
                        cancel_check: Optional[Callable[[], bool]] = None) -> List[CohortRow]:
        return self.cohort_analyzer.perform_cohort_analysis(
            transactions, cohort_field, metric, periods, cancel_check
        )

    def execute_query(self, transactions: Sequence[Transaction], query: AnalyticsQuery) -> QueryResult:
        return self.query_engine.execute(transactions, query)

    # ===================
    # ASYNC BOUNDARY
    # ===================

    async def run_async(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run any engine operation on the default executor.

        Errors are logged with their classification and re-raised unchanged.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(operation, *args, **kwargs))
        except Exception as e:
            classified = classify_error(e, operation=getattr(operation, "__name__", str(operation)))
            logger.warning(f"{classified.operation} failed: {classified.category.name}: {classified.message}")
            raise

    async def detect_anomalies_async(self, transactions: Sequence[Transaction],
                                     now: Optional[date] = None) -> List[SpendingAnomaly]:
        return await self.run_async(self.detect_anomalies, transactions, now)

    async def analyze_trend_async(self, transactions: Sequence[Transaction],
                                  kind: MetricLike = MetricKind.NET) -> TrendAnalysis:
        return await self.run_async(self.analyze_trend, transactions, kind)

    async def generate_forecast_async(self, transactions: Sequence[Transaction],
                                      kind: MetricLike = MetricKind.NET,
                                      horizon: Optional[int] = None,
                                      model: str = "auto") -> ForecastResult:
        return await self.run_async(self.generate_forecast, transactions, kind, horizon, model)

    async def calculate_correlations_async(self, transactions: Sequence[Transaction],
                                           metrics: Sequence[str] = DEFAULT_METRICS) -> List[CorrelationResult]:
        return await self.run_async(self.calculate_correlations, transactions, metrics)

    async def cohort_analysis_async(self, transactions: Sequence[Transaction], cohort_field: str,
                                    metric: str, periods: Optional[int] = None) -> List[CohortRow]:
        """
        Cohort analysis that honours task cancellation.

        Cancelling the awaiting task stops the worker at the next cohort
        boundary.
        """
        cancelled = False

        def should_stop() -> bool:
            return cancelled

        try:
            return await self.run_async(self.cohort_analysis, transactions, cohort_field,
                                        metric, periods, should_stop)
        except asyncio.CancelledError:
            cancelled = True
            raise

    async def execute_query_async(self, transactions: Sequence[Transaction],
                                  query: AnalyticsQuery) -> QueryResult:
        return await self.run_async(self.execute_query, transactions, query)

    def summary(self, transactions: Sequence[Transaction], now: Optional[date] = None) -> Dict[str, Any]:
        """Headline numbers used by the CLI overview."""
        now = self._now(now)
        return {
            "as_of": now.isoformat(),
            "transactions": len(transactions),
            "income": str(calculate_metric(transactions, MetricKind.INCOME)),
            "expenses": str(calculate_metric(transactions, MetricKind.EXPENSES)),
            "net": str(calculate_metric(transactions, MetricKind.NET)),
            "anomalies": self.anomaly_summary(transactions, now).to_dict(),
        }
