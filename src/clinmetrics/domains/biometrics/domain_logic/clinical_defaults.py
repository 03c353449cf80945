"""Static default thresholds: loaded from YAML, shared as an immutable value."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRIC_KEYS,
    ResearchResult,
    ThresholdDefinition,
    TrajectoryRule,
)
from clinmetrics.domains.biometrics.domain_logic.series import coerce_numeric

logger = logging.getLogger(__name__)

# Threshold YAML lives under src/clinmetrics/domains/biometrics/thresholds/
DEFAULT_THRESHOLDS_PATH = (
    Path(__file__).resolve().parent.parent / "thresholds" / "default_thresholds.yaml"
)


class ThresholdTableError(ValueError):
    """Raised when a threshold table file is malformed."""


def _threshold_from_dict(data: dict[str, Any]) -> ThresholdDefinition:
    metric = data.get("metric")
    if metric not in METRIC_KEYS:
        raise ThresholdTableError(f"Unknown metric in threshold table: {metric!r}")
    direction = data.get("direction")
    if direction not in ("higher_worse", "lower_worse"):
        raise ThresholdTableError(f"Invalid direction for {metric}: {direction!r}")
    return ThresholdDefinition(
        metric=metric,
        direction=direction,
        unit=str(data.get("unit", "")),
        high_risk=coerce_numeric(data.get("high_risk")),
        moderate_risk=coerce_numeric(data.get("moderate_risk")),
        frailty_threshold=coerce_numeric(data.get("frailty_threshold")),
        normal_value=coerce_numeric(data.get("normal_value")),
        meaningful_change=coerce_numeric(data.get("meaningful_change")),
    )


def _rule_from_dict(data: dict[str, Any]) -> TrajectoryRule:
    metric = data.get("metric")
    if metric not in METRIC_KEYS:
        raise ThresholdTableError(f"Unknown metric in trajectory rules: {metric!r}")
    rule_type = data.get("type", "absolute")
    if rule_type not in ("absolute", "percentage"):
        raise ThresholdTableError(f"Invalid rule type for {metric}: {rule_type!r}")
    return TrajectoryRule(
        metric=metric,
        type=rule_type,
        unit=str(data.get("unit", "")),
        meaningful_drop=coerce_numeric(data.get("meaningful_drop")),
        meaningful_rise=coerce_numeric(data.get("meaningful_rise")),
        timeframe=str(data.get("timeframe", "any_followup")),
    )


def load_threshold_file(path: str | Path) -> ResearchResult:
    """Parse a threshold table YAML file into a fallback ResearchResult."""
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    thresholds = tuple(_threshold_from_dict(t) for t in data.get("thresholds", []))
    rules = tuple(_rule_from_dict(r) for r in data.get("trajectory_rules", []))
    references = tuple(str(r) for r in data.get("references", []))

    logger.info(
        "Loaded threshold table %s (v%s): %d thresholds, %d trajectory rules",
        Path(path).name,
        data.get("version", "?"),
        len(thresholds),
        len(rules),
    )
    return ResearchResult(
        thresholds=thresholds,
        trajectory_rules=rules,
        references=references,
        source="fallback",
    )


@lru_cache(maxsize=1)
def get_default_thresholds() -> ResearchResult:
    """The packaged default table (loaded once per process)."""
    return load_threshold_file(DEFAULT_THRESHOLDS_PATH)
