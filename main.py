#!/usr/bin/env python3
"""
Wealth Analytics Engine - Main Entry Point

Runs the analytics components over a generated household ledger.

Usage:
    python main.py summary               # Headline numbers and anomaly counts
    python main.py anomalies             # Flag unusual recent expenses
    python main.py trend --metric net    # OLS trend and seasonality
    python main.py forecast --horizon 6  # Multi-model forecast
    python main.py correlate             # Income / expenses / savings correlations
    python main.py rolling --size 3      # Trailing window averages
    python main.py cohort --by category  # Cohort table
    python main.py query --group-by category --metrics expenses
    python main.py setup                 # Show effective configuration
"""
import os
import sys
import json
import asyncio
import argparse
import logging
from datetime import date
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

logger = logging.getLogger(__name__)


def setup_environment():
    """Load environment variables from .env file if present."""
    env_file = PROJECT_ROOT / '.env'
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def setup_logging(level: str):
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('analytics.log'),
        ]
    )


def build_engine(args):
    from config.settings import get_config
    from wealth_analytics.services.analytics_engine import AnalyticsEngine

    config = get_config(args.config)
    as_of = args.as_of
    return AnalyticsEngine(config=config, now_provider=lambda: as_of)


def load_transactions(args):
    from wealth_analytics.tools.mock_data_generator import generate_mock_transactions

    return generate_mock_transactions(months=args.months, as_of=args.as_of, seed=args.seed)


def emit(title: str, payload):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    print(json.dumps(payload, indent=2, default=str))


def cmd_summary(args):
    """Headline totals and anomaly counts."""
    engine = build_engine(args)
    emit("SUMMARY", engine.summary(load_transactions(args)))


def cmd_anomalies(args):
    """Detect spending anomalies."""
    engine = build_engine(args)
    anomalies = asyncio.run(engine.detect_anomalies_async(load_transactions(args)))
    emit("SPENDING ANOMALIES", [a.to_dict() for a in anomalies])


def cmd_trend(args):
    """Trend and seasonality of a metric."""
    engine = build_engine(args)
    trend = asyncio.run(engine.analyze_trend_async(load_transactions(args), args.metric))
    emit(f"{args.metric.upper()} TREND", trend.to_dict())


def cmd_forecast(args):
    """Forecast a metric."""
    engine = build_engine(args)
    forecast = asyncio.run(engine.generate_forecast_async(
        load_transactions(args), args.metric, args.horizon, args.model
    ))
    emit(f"{args.metric.upper()} FORECAST", forecast.to_dict())


def cmd_predict(args):
    """Per-category spending outlook."""
    engine = build_engine(args)
    predictions = engine.predict_category_spending(load_transactions(args), args.months_ahead)
    emit("CATEGORY SPENDING OUTLOOK", [p.to_dict() for p in predictions])


def cmd_correlate(args):
    """Correlations between monthly metrics."""
    engine = build_engine(args)
    results = asyncio.run(engine.calculate_correlations_async(load_transactions(args), args.metrics))
    emit("CORRELATIONS", [r.to_dict() for r in results])


def cmd_rolling(args):
    """Rolling window averages."""
    engine = build_engine(args)
    points = engine.rolling_window(
        load_transactions(args), args.size, args.unit, args.metric, args.count
    )
    emit("ROLLING WINDOWS", [p.to_dict() for p in points])


def cmd_cohort(args):
    """Cohort table."""
    engine = build_engine(args)
    rows = asyncio.run(engine.cohort_analysis_async(load_transactions(args), args.by, args.cohort_metric))
    emit(f"{args.by.upper()} COHORTS ({args.cohort_metric})", [r.to_dict() for r in rows])


def cmd_query(args):
    """Run a grouped query."""
    from wealth_analytics.tools.data_processor import AnalyticsQuery, OrderBy, SegmentFilter

    engine = build_engine(args)
    filters = []
    if args.category:
        filters.append(SegmentFilter("category", "in", args.category))
    if args.min_amount is not None:
        filters.append(SegmentFilter("amount", "greater", args.min_amount))
    if args.search:
        filters.append(SegmentFilter("description", "contains", args.search))

    order_by = OrderBy(args.order_by, args.direction) if args.order_by else None
    query = AnalyticsQuery(
        metrics=args.metrics,
        filters=filters,
        aggregation=args.aggregation,
        group_by=args.group_by,
        order_by=order_by,
        limit=args.limit,
    )
    result = asyncio.run(engine.execute_query_async(load_transactions(args), query))
    emit("QUERY RESULT", result.to_dict())


def cmd_setup(args):
    """Show effective configuration."""
    from config.settings import get_config

    config = get_config(args.config)
    emit("CONFIGURATION", config.to_dict())
    print("Override with environment variables (e.g. ANOMALY_LOOKBACK_MONTHS)")
    print("or a YAML file passed via --config / ANALYTICS_CONFIG_FILE.")


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got '{value}'")


def main():
    setup_environment()

    parser = argparse.ArgumentParser(
        description="Wealth Analytics Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py anomalies --as-of 2026-10-15     Flag unusual expenses
  python main.py forecast --metric expenses       Forecast monthly spending
  python main.py setup                            Show configuration

Environment Variables:
  LOG_LEVEL                       Logging level (default: INFO)
  ANALYTICS_CONFIG_FILE           YAML overrides for thresholds
  ANOMALY_LOOKBACK_MONTHS         Baseline window (default: 6)
  FORECAST_HORIZON                Default forecast periods (default: 3)
        """
    )
    parser.add_argument('--config', help='YAML config override file')
    parser.add_argument('--seed', type=int, default=7, help='Mock data seed')
    parser.add_argument('--months', type=int, default=18, help='Months of mock history')
    parser.add_argument('--as-of', type=parse_date, default=date.today(),
                        help='Reference date (YYYY-MM-DD)')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    summary_parser = subparsers.add_parser('summary', help='Headline numbers')
    summary_parser.set_defaults(func=cmd_summary)

    anomalies_parser = subparsers.add_parser('anomalies', help='Detect spending anomalies')
    anomalies_parser.set_defaults(func=cmd_anomalies)

    trend_parser = subparsers.add_parser('trend', help='Trend and seasonality')
    trend_parser.add_argument('--metric', default='net', choices=['income', 'expenses', 'net', 'count'])
    trend_parser.set_defaults(func=cmd_trend)

    forecast_parser = subparsers.add_parser('forecast', help='Forecast a metric')
    forecast_parser.add_argument('--metric', default='net', choices=['income', 'expenses', 'net', 'count'])
    forecast_parser.add_argument('--horizon', type=int, default=None, help='Periods to forecast')
    forecast_parser.add_argument('--model', default='auto',
                                 choices=['auto', 'linear', 'exponential', 'polynomial'])
    forecast_parser.set_defaults(func=cmd_forecast)

    predict_parser = subparsers.add_parser('predict', help='Per-category spending outlook')
    predict_parser.add_argument('--months-ahead', type=int, default=1)
    predict_parser.set_defaults(func=cmd_predict)

    correlate_parser = subparsers.add_parser('correlate', help='Metric correlations')
    correlate_parser.add_argument('--metrics', nargs='+', default=['income', 'expenses', 'savings'])
    correlate_parser.set_defaults(func=cmd_correlate)

    rolling_parser = subparsers.add_parser('rolling', help='Rolling window averages')
    rolling_parser.add_argument('--size', type=int, default=1, help='Window size')
    rolling_parser.add_argument('--unit', default='months', choices=['days', 'months'])
    rolling_parser.add_argument('--metric', default='net', choices=['income', 'expenses', 'net', 'count'])
    rolling_parser.add_argument('--count', type=int, default=None, help='Number of windows')
    rolling_parser.set_defaults(func=cmd_rolling)

    cohort_parser = subparsers.add_parser('cohort', help='Cohort analysis')
    cohort_parser.add_argument('--by', default='category', choices=['account', 'category', 'month'])
    cohort_parser.add_argument('--cohort-metric', default='retention',
                               choices=['retention', 'value', 'frequency'])
    cohort_parser.set_defaults(func=cmd_cohort)

    query_parser = subparsers.add_parser('query', help='Grouped query')
    query_parser.add_argument('--metrics', nargs='+', default=['expenses'])
    query_parser.add_argument('--group-by', default=None)
    query_parser.add_argument('--aggregation', default='sum',
                              choices=['sum', 'average', 'median', 'min', 'max', 'count', 'stddev'])
    query_parser.add_argument('--category', nargs='+', help='Only these categories')
    query_parser.add_argument('--min-amount', default=None, help='Only amounts above this')
    query_parser.add_argument('--search', help='Description contains')
    query_parser.add_argument('--order-by', default=None)
    query_parser.add_argument('--direction', default='desc', choices=['asc', 'desc'])
    query_parser.add_argument('--limit', type=int, default=None)
    query_parser.set_defaults(func=cmd_query)

    setup_parser = subparsers.add_parser('setup', help='Show configuration')
    setup_parser.set_defaults(func=cmd_setup)

    args = parser.parse_args()
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from wealth_analytics.core.error_taxonomy import AnalyticsError, InsufficientDataError

    try:
        args.func(args)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except InsufficientDataError as e:
        print(f"\nNot enough history yet: {e}")
        sys.exit(2)
    except AnalyticsError as e:
        print(f"\n{e.classify().user_message} {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
