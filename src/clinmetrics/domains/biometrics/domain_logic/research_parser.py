"""Parse research LLM replies into structured thresholds.

The reply is expected to be a JSON object (optionally fenced) with
``thresholds``, ``trajectory_rules`` and ``references``. Parsing is
lenient per entry and strict overall:

1. Entries with unknown metrics, bad directions or non-numeric bounds
   are skipped with a warning.
2. Parsed entries replace the default entry for the same metric; metrics
   the reply omits keep their defaults.
3. A reply that yields no usable threshold and no usable rule is an error.
"""

from __future__ import annotations

import logging
from typing import Any

from clinmetrics.core.llm.response import ResponseFormatError, extract_json_object
from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRIC_KEYS,
    ResearchResult,
    ThresholdDefinition,
    TrajectoryRule,
)
from clinmetrics.domains.biometrics.domain_logic.series import coerce_numeric

logger = logging.getLogger(__name__)


class ResearchError(Exception):
    """Raised when patient-specific threshold research cannot be used."""


class ResearchParseError(ResearchError):
    """Raised when a research reply cannot be turned into thresholds."""


# camelCase spellings models tend to produce
_ALIASES = {
    "highRisk": "high_risk",
    "moderateRisk": "moderate_risk",
    "frailtyThreshold": "frailty_threshold",
    "normalValue": "normal_value",
    "meaningfulChange": "meaningful_change",
    "meaningfulDrop": "meaningful_drop",
    "meaningfulRise": "meaningful_rise",
    "trajectoryRules": "trajectory_rules",
}


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {_ALIASES.get(k, k): v for k, v in data.items()}


def _parse_threshold(raw: Any) -> ThresholdDefinition | None:
    if not isinstance(raw, dict):
        return None
    data = _normalize_keys(raw)
    metric = data.get("metric")
    if metric not in METRIC_KEYS:
        logger.warning("Skipping research threshold for unknown metric %r", metric)
        return None
    direction = data.get("direction")
    if direction not in ("higher_worse", "lower_worse"):
        logger.warning("Skipping research threshold for %s: bad direction %r", metric, direction)
        return None

    bounds = {
        name: coerce_numeric(data.get(name))
        for name in ("high_risk", "moderate_risk", "frailty_threshold",
                     "normal_value", "meaningful_change")
    }
    if all(v is None for v in bounds.values()):
        logger.warning("Skipping research threshold for %s: no numeric bounds", metric)
        return None

    return ThresholdDefinition(
        metric=metric,
        direction=direction,
        unit=str(data.get("unit") or ""),
        **bounds,
    )


def _parse_rule(raw: Any) -> TrajectoryRule | None:
    if not isinstance(raw, dict):
        return None
    data = _normalize_keys(raw)
    metric = data.get("metric")
    if metric not in METRIC_KEYS:
        logger.warning("Skipping research trajectory rule for unknown metric %r", metric)
        return None

    drop = coerce_numeric(data.get("meaningful_drop"))
    rise = coerce_numeric(data.get("meaningful_rise"))
    drop = drop if drop is not None and drop > 0 else None
    rise = rise if rise is not None and rise > 0 else None
    if drop is None and rise is None:
        logger.warning("Skipping research trajectory rule for %s: no positive change", metric)
        return None

    rule_type = data.get("type") or "absolute"
    if rule_type not in ("absolute", "percentage"):
        rule_type = "absolute"

    return TrajectoryRule(
        metric=metric,
        type=rule_type,
        unit=str(data.get("unit") or ""),
        meaningful_drop=drop,
        meaningful_rise=rise,
        timeframe="any_followup",
    )


def _first_by_metric(items: list[Any]) -> dict[str, Any]:
    by_metric: dict[str, Any] = {}
    for item in items:
        if item is not None and item.metric not in by_metric:
            by_metric[item.metric] = item
    return by_metric


def parse_research_response(content: str, defaults: ResearchResult) -> ResearchResult:
    """Turn an LLM reply into a ResearchResult merged onto ``defaults``.

    Raises:
        ResearchParseError: If the reply has no usable thresholds or rules.
    """
    try:
        data = _normalize_keys(extract_json_object(content))
    except ResponseFormatError as exc:
        raise ResearchParseError(str(exc)) from exc

    raw_thresholds = data.get("thresholds")
    raw_rules = data.get("trajectory_rules")
    parsed_thresholds = _first_by_metric(
        [_parse_threshold(t) for t in raw_thresholds] if isinstance(raw_thresholds, list) else []
    )
    parsed_rules = _first_by_metric(
        [_parse_rule(r) for r in raw_rules] if isinstance(raw_rules, list) else []
    )
    if not parsed_thresholds and not parsed_rules:
        raise ResearchParseError("Research reply contained no usable thresholds or rules")

    thresholds = []
    rules = []
    for metric in METRIC_KEYS:
        threshold = parsed_thresholds.get(metric) or defaults.threshold_for(metric)
        if threshold is not None:
            thresholds.append(threshold)
        rule = parsed_rules.get(metric) or defaults.rule_for(metric)
        if rule is not None:
            rules.append(rule)

    references: list[str] = []
    raw_refs = data.get("references")
    for ref in raw_refs if isinstance(raw_refs, list) else []:
        if isinstance(ref, str) and ref.strip() and ref.strip() not in references:
            references.append(ref.strip())
    for ref in defaults.references:
        if ref not in references:
            references.append(ref)

    logger.info(
        "Parsed research reply: %d/%d thresholds and %d/%d rules from research",
        len(parsed_thresholds), len(thresholds), len(parsed_rules), len(rules),
    )
    return ResearchResult(
        thresholds=tuple(thresholds),
        trajectory_rules=tuple(rules),
        references=tuple(references),
        source="research",
    )
