"""Clinical decision rules for biometric analysis.

Every classification is an ordered table evaluated top to bottom; the
first matching row wins. Severity policy lives in the row order:

* lower_worse:  frailty > high_risk > moderate_risk
* higher_worse: high_risk > moderate_risk
* trajectory:   concerning_decline is checked before concerning_increase
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    AnalysisResult,
    Finding,
    ThresholdDefinition,
    TrajectoryRule,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Clinical significance text
# ---------------------------------------------------------------------------

_FRAILTY_SIGNIFICANCE = {
    "gait_speed": (
        "Suggests increased fall risk and functional decline. "
        "Consider comprehensive geriatric assessment."
    ),
}
_FRAILTY_DEFAULT = "Requires clinical attention and potential intervention."

_HIGH_RISK_SIGNIFICANCE = {
    "six_minute_walk_distance": (
        "Associated with increased hospitalization risk and mortality. "
        "Consider pulmonary rehabilitation."
    ),
    "fev1_percent": (
        "Indicates moderate-to-severe airflow limitation. Consider specialist referral."
    ),
    "ldl_c": "Significantly elevated cardiovascular risk. Intensive statin therapy indicated.",
    "alt": "Suggests hepatocellular injury. Evaluate for underlying liver disease.",
}
_HIGH_RISK_DEFAULT = "Requires immediate clinical attention and intervention."

_MODERATE_RISK_SIGNIFICANCE = {
    "six_minute_walk_distance": (
        "Below normal range. Monitor closely and consider exercise intervention."
    ),
    "fev1_percent": "Mild-to-moderate airflow limitation. Optimize bronchodilator therapy.",
    "ldl_c": "Above target range. Consider lifestyle modification and statin therapy.",
}
_MODERATE_RISK_DEFAULT = "Monitor closely and consider intervention if trend continues."

_TRAJECTORY_SIGNIFICANCE = {
    "six_minute_walk_distance": (
        "Significant functional decline. "
        "Evaluate for underlying causes and consider rehabilitation."
    ),
    "fev1_percent": (
        "Accelerated lung function decline. Reassess treatment plan and compliance."
    ),
    "grip_strength": "Muscle strength decline associated with increased mortality risk.",
    "quality_of_life": (
        "Meaningful deterioration in patient-reported outcomes. "
        "Consider comprehensive assessment."
    ),
    "fatigue_score": "Clinically significant increase in fatigue. Evaluate for treatable causes.",
    "alt": "Rising liver enzymes suggest progressive hepatocellular injury.",
}
_TRAJECTORY_DEFAULT = "Clinically significant change requiring evaluation."

_SIGNIFICANCE_BY_BREACH = {
    "frailty": (_FRAILTY_SIGNIFICANCE, _FRAILTY_DEFAULT),
    "high_risk": (_HIGH_RISK_SIGNIFICANCE, _HIGH_RISK_DEFAULT),
    "moderate_risk": (_MODERATE_RISK_SIGNIFICANCE, _MODERATE_RISK_DEFAULT),
}


def breach_significance(metric: str, breach_type: str) -> str:
    table, default = _SIGNIFICANCE_BY_BREACH[breach_type]
    return table.get(metric, default)


def trajectory_significance(metric: str) -> str:
    return _TRAJECTORY_SIGNIFICANCE.get(metric, _TRAJECTORY_DEFAULT)


# ---------------------------------------------------------------------------
# Threshold breach table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BreachRule:
    """Row of the breach table: ``value <comparison> threshold.<bound>``."""

    direction: str
    bound: str          # ThresholdDefinition attribute
    comparison: str     # "below" | "above"
    breach_type: str
    message: str

    def matches(self, value: float, threshold: ThresholdDefinition) -> bool:
        if threshold.direction != self.direction:
            return False
        limit = getattr(threshold, self.bound)
        if limit is None:
            return False
        return value < limit if self.comparison == "below" else value > limit


BREACH_RULES: tuple[BreachRule, ...] = (
    BreachRule("lower_worse", "frailty_threshold", "below", "frailty",
               "Frailty threshold reached"),
    BreachRule("lower_worse", "high_risk", "below", "high_risk",
               "High-risk threshold reached"),
    BreachRule("lower_worse", "moderate_risk", "below", "moderate_risk",
               "Moderate-risk threshold reached"),
    BreachRule("higher_worse", "high_risk", "above", "high_risk",
               "Entered high-risk category"),
    BreachRule("higher_worse", "moderate_risk", "above", "moderate_risk",
               "Entered moderate-risk category"),
)


def classify_threshold(value: float, threshold: ThresholdDefinition) -> Finding | None:
    """Most severe breach of ``threshold`` by ``value``, or None."""
    for rule in BREACH_RULES:
        if rule.matches(value, threshold):
            return Finding(
                type=rule.breach_type,
                message=rule.message,
                clinical_significance=breach_significance(threshold.metric, rule.breach_type),
            )
    return None


# ---------------------------------------------------------------------------
# Trajectory alert table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrajectoryAlertRule:
    """Row of the trajectory table: a signed change at least ``rule.<bound>``."""

    bound: str          # TrajectoryRule attribute
    sign: int           # -1 for drops, +1 for rises
    alert_type: str
    message: str

    def matches(self, absolute_change: float, rule: TrajectoryRule) -> bool:
        limit = getattr(rule, self.bound)
        if limit is None:
            return False
        if absolute_change * self.sign <= 0:
            return False
        return abs(absolute_change) >= limit


TRAJECTORY_ALERT_RULES: tuple[TrajectoryAlertRule, ...] = (
    TrajectoryAlertRule("meaningful_drop", -1, "concerning_decline",
                        "Clinically meaningful decline"),
    TrajectoryAlertRule("meaningful_rise", 1, "concerning_increase",
                        "Clinically meaningful increase"),
)


def classify_trajectory(absolute_change: float, rule: TrajectoryRule) -> Finding | None:
    """Trajectory alert for a baseline-to-latest change, or None.

    The change is compared in absolute units regardless of ``rule.type``.
    """
    for row in TRAJECTORY_ALERT_RULES:
        if row.matches(absolute_change, rule):
            return Finding(
                type=row.alert_type,
                message=row.message,
                clinical_significance=trajectory_significance(rule.metric),
            )
    return None


# ---------------------------------------------------------------------------
# Cross-domain correlations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Condition:
    """``metric``'s breach or alert (``kind``) has one of ``types``."""

    metric: str
    kind: str           # "breach" | "alert"
    types: frozenset[str]

    def holds(self, by_metric: dict[str, AnalysisResult]) -> bool:
        analysis = by_metric.get(self.metric)
        if analysis is None:
            return False
        finding = analysis.threshold_breach if self.kind == "breach" else analysis.trajectory_alert
        return finding is not None and finding.type in self.types


@dataclass(frozen=True)
class CorrelationRule:
    conditions: tuple[Condition, ...]
    text: str


CORRELATION_RULES: tuple[CorrelationRule, ...] = (
    CorrelationRule(
        conditions=(
            Condition("gait_speed", "breach", frozenset({"frailty"})),
            Condition("fatigue_score", "alert", frozenset({"concerning_increase"})),
        ),
        text=(
            "Concurrent gait speed decline and increased fatigue suggest "
            "frailty syndrome progression"
        ),
    ),
    CorrelationRule(
        conditions=(
            Condition("six_minute_walk_distance", "alert", frozenset({"concerning_decline"})),
            Condition("fev1_percent", "alert", frozenset({"concerning_decline"})),
        ),
        text=(
            "Parallel decline in exercise capacity and lung function indicates "
            "cardiopulmonary deterioration"
        ),
    ),
)


def find_correlations(analyses: Sequence[AnalysisResult]) -> list[str]:
    """Correlation narratives whose conditions all hold (each at most once)."""
    by_metric = {a.metric: a for a in analyses}
    return [
        rule.text
        for rule in CORRELATION_RULES
        if all(c.holds(by_metric) for c in rule.conditions)
    ]


# ---------------------------------------------------------------------------
# Referral recommendations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReferralRule:
    """Refer when ``metric`` has any of the listed breach or alert types."""

    metric: str
    breach_types: frozenset[str]
    alert_types: frozenset[str]
    text: str

    def applies(self, analysis: AnalysisResult) -> bool:
        breach = analysis.threshold_breach
        alert = analysis.trajectory_alert
        return (
            (breach is not None and breach.type in self.breach_types)
            or (alert is not None and alert.type in self.alert_types)
        )


REFERRAL_RULES: tuple[ReferralRule, ...] = (
    ReferralRule(
        "fev1_percent", frozenset({"high_risk", "moderate_risk"}), frozenset(),
        "Pulmonology consultation for airway management and optimization",
    ),
    ReferralRule(
        "alt", frozenset({"high_risk"}), frozenset({"concerning_increase"}),
        "Hepatology referral for evaluation of liver enzyme elevation",
    ),
    ReferralRule(
        "gait_speed", frozenset({"frailty"}), frozenset(),
        "Physical therapy and falls prevention clinic for mobility assessment",
    ),
    ReferralRule(
        "ldl_c", frozenset({"high_risk"}), frozenset(),
        "Cardiology consultation for cardiovascular risk stratification",
    ),
)


def find_referrals(analyses: Sequence[AnalysisResult]) -> list[str]:
    """Referral strings in report (metric) order."""
    referrals: list[str] = []
    for analysis in analyses:
        for rule in REFERRAL_RULES:
            if rule.metric == analysis.metric and rule.applies(analysis) \
                    and rule.text not in referrals:
                referrals.append(rule.text)
    return referrals
