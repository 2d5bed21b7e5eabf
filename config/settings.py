"""
Configuration settings for the Wealth Analytics Engine.

Key Design Principle: every empirically chosen threshold (lookback windows,
outlier fallback ratio, the absolute anomaly floor, trend cut-offs) lives
here as an explicit parameter. Defaults come from environment variables and
can be overridden from a YAML file.
"""
import os
import logging
from dataclasses import dataclass, field, fields
from decimal import Decimal
from pathlib import Path
from typing import Optional, Dict, Any, Tuple

import yaml

logger = logging.getLogger(__name__)


@dataclass
class AnomalyConfig:
    """Thresholds for category baselines and anomaly flagging."""
    # Baseline window ending "now"
    lookback_months: int = field(
        default_factory=lambda: int(os.getenv("ANOMALY_LOOKBACK_MONTHS", "6"))
    )
    # Only transactions this recent are scored
    recent_months: int = field(
        default_factory=lambda: int(os.getenv("ANOMALY_RECENT_MONTHS", "1"))
    )
    min_observations: int = 3
    robust_min_observations: int = 10
    iqr_multiplier: float = 1.5
    # Revert to unfiltered stats when IQR filtering keeps less than this share
    outlier_fallback_ratio: float = field(
        default_factory=lambda: float(os.getenv("ANOMALY_OUTLIER_FALLBACK_RATIO", "0.5"))
    )
    # Amount must exceed mean by more than this to be flagged
    min_absolute_deviation: Decimal = field(
        default_factory=lambda: Decimal(os.getenv("ANOMALY_MIN_ABSOLUTE_DEVIATION", "20"))
    )
    # (sample size upper bound, z threshold), checked in order
    threshold_steps: Tuple[Tuple[int, float], ...] = ((5, 3.0), (10, 2.5), (20, 2.0))
    default_threshold: float = 1.8


@dataclass
class ForecastConfig:
    """Trend, seasonality and forecasting parameters."""
    default_horizon: int = field(
        default_factory=lambda: int(os.getenv("FORECAST_HORIZON", "3"))
    )
    min_points: int = 3
    confidence_z: float = 1.96  # 95% prediction interval
    trend_slope_ratio: float = 0.05
    trend_min_r_squared: float = 0.3
    seasonal_lag: int = 12
    seasonality_threshold: float = 0.3


@dataclass
class CorrelationConfig:
    """Correlation discovery parameters."""
    min_overlap: int = 3
    strong_threshold: float = 0.7
    moderate_threshold: float = 0.4
    weak_threshold: float = 0.2


@dataclass
class RollingConfig:
    """Rolling-window and cohort defaults."""
    window_count: int = 12
    cohort_periods: int = 12


@dataclass
class AnalyticsConfig:
    """Main engine configuration."""
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    rolling: RollingConfig = field(default_factory=RollingConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"log_level": self.log_level}
        for section in ("anomaly", "forecast", "correlation", "rolling"):
            sub = getattr(self, section)
            result[section] = {
                f.name: (str(v) if isinstance(v, Decimal) else v)
                for f in fields(sub)
                for v in [getattr(sub, f.name)]
            }
        return result


def _apply_overrides(target: Any, overrides: Dict[str, Any], section: str) -> None:
    """Copy known keys from a YAML mapping onto a config dataclass."""
    known = {f.name: f for f in fields(target)}
    for key, value in overrides.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key '{section}.{key}'")
            continue
        current = getattr(target, key)
        if isinstance(current, Decimal):
            value = Decimal(str(value))
        elif isinstance(current, tuple):
            value = tuple(tuple(item) for item in value)
        elif isinstance(current, bool):
            value = bool(value)
        elif isinstance(current, int):
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        setattr(target, key, value)


def load_config_file(config: AnalyticsConfig, path: Path) -> AnalyticsConfig:
    """Apply overrides from a YAML file onto an existing configuration."""
    from wealth_analytics.core.error_taxonomy import ConfigurationError

    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    for section, overrides in data.items():
        if section == "log_level":
            config.log_level = str(overrides)
            continue
        target = getattr(config, section, None)
        if target is None or not isinstance(overrides, dict):
            logger.warning(f"Ignoring unknown config section '{section}'")
            continue
        _apply_overrides(target, overrides, section)

    logger.info(f"Loaded analytics config overrides from {path}")
    return config


def get_config(config_path: Optional[str] = None) -> AnalyticsConfig:
    """Factory function to get engine configuration.

    Returns a fresh instance on every call. When ``config_path`` is not given,
    ``ANALYTICS_CONFIG_FILE`` is consulted for an optional YAML override file.
    """
    config = AnalyticsConfig()
    path = config_path or os.getenv("ANALYTICS_CONFIG_FILE")
    if path:
        load_config_file(config, Path(path))
    return config
