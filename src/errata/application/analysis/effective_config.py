"""
Resolution of a user's effective analysis config.

Stored configs are partial: they may predate statuses the user created
later, or omit scalar settings entirely. Every place that runs the
analyzer goes through ``build_effective_config`` so defaults come from
``errata.domain.constants`` only.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from errata.domain.analysis.models import AnalysisConfig, StatusConfig
from errata.domain.constants import (
    DEFAULT_AUTO_FLAG_ENABLED,
    DEFAULT_EXPECTED_REVIEWS,
    DEFAULT_OUTLIER_PERCENTAGE,
    DEFAULT_PROBLEM_THRESHOLD,
)

logger = logging.getLogger(__name__)


def default_status_config(statuses: Sequence[str]) -> dict[str, StatusConfig]:
    """
    Default weights for the user's statuses.

    The first status created gets the highest weight and the last one
    gets zero, so a fresh account ranks "critical"-style statuses first.
    """
    total = len(statuses)
    return {
        name: StatusConfig(weight=float(total - 1 - index), expected_reviews=DEFAULT_EXPECTED_REVIEWS)
        for index, name in enumerate(statuses)
    }


def build_effective_config(
    statuses: Sequence[str], stored: AnalysisConfig | None
) -> AnalysisConfig:
    """
    Merge the stored config over per-status defaults.

    Args:
        statuses: Known status names in creation order.
        stored: The user's saved config, or None.

    Returns:
        A new AnalysisConfig; ``stored`` is not modified.
    """
    status_config = default_status_config(statuses)
    if stored is None:
        return AnalysisConfig(status_config=status_config)

    status_config.update(stored.status_config)
    return AnalysisConfig(
        status_config=status_config,
        problem_threshold=stored.problem_threshold,
        outlier_percentage=stored.outlier_percentage,
        auto_flag_enabled=stored.auto_flag_enabled,
    )


def parse_analysis_config(data: Mapping[str, Any] | None) -> AnalysisConfig | None:
    """
    Build an AnalysisConfig from its stored JSON shape.

    Malformed status entries are dropped (the status then scores with the
    unconfigured defaults). Malformed scalars fall back to the defaults.
    """
    if not data:
        return None

    status_config: dict[str, StatusConfig] = {}
    for name, entry in (data.get("status_config") or {}).items():
        try:
            status_config[str(name)] = StatusConfig(
                weight=float(entry["weight"]),
                expected_reviews=_whole(entry.get("expected_reviews", DEFAULT_EXPECTED_REVIEWS)),
            )
        except (KeyError, TypeError, ValueError, OverflowError, AttributeError) as e:
            logger.warning(f"Ignoring malformed config for status '{name}': {e}")

    threshold = _number(data.get("problem_threshold"), DEFAULT_PROBLEM_THRESHOLD)
    if threshold <= 0:
        threshold = DEFAULT_PROBLEM_THRESHOLD

    percentage = _number(data.get("outlier_percentage"), DEFAULT_OUTLIER_PERCENTAGE)
    if not 0 < percentage <= 100:
        percentage = DEFAULT_OUTLIER_PERCENTAGE

    auto_flag = data.get("auto_flag_enabled")

    return AnalysisConfig(
        status_config=status_config,
        problem_threshold=threshold,
        outlier_percentage=percentage,
        auto_flag_enabled=DEFAULT_AUTO_FLAG_ENABLED if auto_flag is None else bool(auto_flag),
    )


def dump_analysis_config(config: AnalysisConfig) -> dict[str, Any]:
    """Inverse of ``parse_analysis_config``."""
    return {
        "status_config": {
            name: {"weight": cfg.weight, "expected_reviews": cfg.expected_reviews}
            for name, cfg in config.status_config.items()
        },
        "problem_threshold": config.problem_threshold,
        "outlier_percentage": config.outlier_percentage,
        "auto_flag_enabled": config.auto_flag_enabled,
    }


def _number(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric config value {value!r}")
        return default


def _whole(value: Any) -> int:
    number = float(value)
    if number.is_integer():
        return int(number)
    rounded = round(number)
    logger.warning(f"Rounding fractional expected_reviews {value!r} to {rounded}")
    return rounded
