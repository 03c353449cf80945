"""Biometrics domain constants and data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Mapping

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Clinical visit markers in chronological order.
TIMEPOINTS: tuple[str, ...] = ("baseline", "3m", "6m", "12m")

TIMEPOINT_LABELS = {
    "baseline": "Baseline",
    "3m": "3 months",
    "6m": "6 months",
    "12m": "12 months",
}

Direction = Literal["higher_worse", "lower_worse"]
BreachType = Literal["high_risk", "moderate_risk", "frailty", "normal"]
AlertType = Literal["concerning_decline", "concerning_increase", "stable", "improving"]

# Breach/alert types that count toward the report summary.
BREACH_TYPES: frozenset[str] = frozenset({"high_risk", "moderate_risk", "frailty"})
ALERT_TYPES: frozenset[str] = frozenset({"concerning_decline", "concerning_increase"})


@dataclass(frozen=True)
class MetricSpec:
    """Static description of one tracked biometric."""

    key: str
    label: str
    unit: str
    category: str
    short_label: str


# Report order. Every per-metric loop in the package walks this list.
METRICS: tuple[MetricSpec, ...] = (
    MetricSpec("six_minute_walk_distance", "6-Minute Walk Distance", "m", "cardiopulmonary", "6MWD"),
    MetricSpec("fev1_percent", "FEV1", "%", "cardiopulmonary", "FEV1"),
    MetricSpec("gait_speed", "Gait Speed", "m/s", "neurologic", "Gait Speed"),
    MetricSpec("grip_strength", "Grip Strength", "kg", "neurologic", "Grip Strength"),
    MetricSpec("ldl_c", "LDL-C", "mg/dL", "metabolic", "LDL-C"),
    MetricSpec("alt", "ALT", "U/L", "metabolic", "ALT"),
    MetricSpec("quality_of_life", "Quality of Life", "", "patient_reported", "QoL"),
    MetricSpec("fatigue_score", "Fatigue Score", "", "patient_reported", "Fatigue"),
)

METRIC_KEYS: tuple[str, ...] = tuple(m.key for m in METRICS)

METRICS_BY_KEY: dict[str, MetricSpec] = {m.key: m for m in METRICS}

METRIC_CATEGORIES = {
    "cardiopulmonary": "Cardiopulmonary",
    "neurologic": "Neurologic / Functional",
    "metabolic": "Metabolic / Inflammatory",
    "patient_reported": "Patient-Reported",
}


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

@dataclass
class BiometricRecord:
    """One snapshot of a patient's measurements at a fixed timepoint.

    Metric fields are sparse; any subset may be None. Values are not
    validated here: the analyzer coerces them permissively on read.
    """

    patient_id: str
    timepoint: str
    six_minute_walk_distance: Any = None   # m
    fev1_percent: Any = None               # % predicted
    gait_speed: Any = None                 # m/s
    grip_strength: Any = None              # kg
    ldl_c: Any = None                      # mg/dL
    alt: Any = None                        # U/L
    quality_of_life: Any = None            # 0-100
    fatigue_score: Any = None              # 0-10
    id: str = ""
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BiometricRecord:
        """Build a record from a dict, ignoring keys that are not fields."""
        metrics = {k: data.get(k) for k in METRIC_KEYS}
        return cls(
            patient_id=str(data.get("patient_id", "")),
            timepoint=str(data.get("timepoint", "")),
            id=str(data.get("id") or ""),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
            **metrics,
        )

    def metric_values(self) -> dict[str, Any]:
        """Return the 8 metric fields in report order."""
        return {k: getattr(self, k) for k in METRIC_KEYS}

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Threshold research
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ThresholdDefinition:
    """Clinical decision boundaries for one metric."""

    metric: str
    direction: Direction
    unit: str = ""
    high_risk: float | None = None
    moderate_risk: float | None = None
    frailty_threshold: float | None = None
    normal_value: float | None = None
    meaningful_change: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrajectoryRule:
    """Definition of a clinically meaningful baseline-to-latest change."""

    metric: str
    type: Literal["absolute", "percentage"] = "absolute"
    unit: str = ""
    meaningful_drop: float | None = None
    meaningful_rise: float | None = None
    timeframe: str = "any_followup"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ResearchResult:
    """Thresholds, trajectory rules and citations for one patient."""

    thresholds: tuple[ThresholdDefinition, ...]
    trajectory_rules: tuple[TrajectoryRule, ...]
    references: tuple[str, ...]
    source: Literal["research", "fallback"] = "fallback"

    def threshold_for(self, metric: str) -> ThresholdDefinition | None:
        return next((t for t in self.thresholds if t.metric == metric), None)

    def rule_for(self, metric: str) -> TrajectoryRule | None:
        return next((r for r in self.trajectory_rules if r.metric == metric), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "thresholds": [t.to_dict() for t in self.thresholds],
            "trajectory_rules": [r.to_dict() for r in self.trajectory_rules],
            "references": list(self.references),
        }


# ---------------------------------------------------------------------------
# Analysis output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Finding:
    """A threshold breach or trajectory alert attached to one metric."""

    type: str
    message: str
    clinical_significance: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AnalysisResult:
    """Per-metric output of the analyzer."""

    metric: str
    label: str
    unit: str
    baseline: float | None = None
    latest: float | None = None
    absolute_change: float | None = None
    percent_change: float | None = None
    threshold_breach: Finding | None = None
    trajectory_alert: Finding | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "label": self.label,
            "unit": self.unit,
            "baseline": self.baseline,
            "latest": self.latest,
            "absolute_change": self.absolute_change,
            "percent_change": self.percent_change,
            "threshold_breach": self.threshold_breach.to_dict() if self.threshold_breach else None,
            "trajectory_alert": self.trajectory_alert.to_dict() if self.trajectory_alert else None,
        }


@dataclass
class ReportSummary:
    total_metrics: int
    metrics_with_data: int
    threshold_breaches: int
    trajectory_alerts: int


@dataclass
class BiometricsReport:
    """Aggregate physician report. Transient: never persisted by the analyzer."""

    patient_id: str
    generated_date: str
    summary: ReportSummary
    analyses: list[AnalysisResult] = field(default_factory=list)
    cross_domain_correlations: list[str] = field(default_factory=list)
    referral_recommendations: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    threshold_source: str = "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "generated_date": self.generated_date,
            "summary": asdict(self.summary),
            "analyses": [a.to_dict() for a in self.analyses],
            "cross_domain_correlations": list(self.cross_domain_correlations),
            "referral_recommendations": list(self.referral_recommendations),
            "references": list(self.references),
            "threshold_source": self.threshold_source,
        }
