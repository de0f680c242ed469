"""Environment variable validation and management."""

import os
import logging
from typing import Dict

from pattern_settings import PatternThresholds

logger = logging.getLogger(__name__)


class EnvironmentConfigError(Exception):
    """Raised when environment variables are missing or invalid."""


def validate_environment() -> PatternThresholds:
    """Validate critical environment variables and return the active thresholds.

    Raises EnvironmentConfigError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "BLOOM_LEVELS_PATH": "Path to an alternative Bloom taxonomy file",
        "LOG_LEVEL": "Logging level for the analytics loggers",
    }

    thresholds = PatternThresholds.from_env()
    invalid = thresholds.invalid_env_values()
    if invalid:
        raise EnvironmentConfigError(
            f"Non-numeric threshold overrides: {', '.join(sorted(invalid))}"
        )

    problems = []
    if not thresholds.attention_short_ratio < thresholds.attention_long_ratio:
        problems.append("LP_ATTENTION_SHORT_RATIO must be below LP_ATTENTION_LONG_RATIO")
    if not thresholds.trend_declining_delta < 0 < thresholds.trend_accelerating_delta:
        problems.append("trend deltas must straddle zero")
    if not thresholds.trend_declining_delta <= thresholds.trend_steady_upper <= thresholds.trend_accelerating_delta:
        problems.append("LP_TREND_STEADY_UPPER must lie between the trend deltas")
    if thresholds.min_records < 2:
        problems.append("LP_MIN_RECORDS must be at least 2")
    if thresholds.max_recommendations < 1 or thresholds.max_content_items < 1:
        problems.append("recommendation caps must be positive")
    if problems:
        raise EnvironmentConfigError("; ".join(problems))

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.debug("Optional environment variable not set: %s (%s)", var, description)

    return thresholds
