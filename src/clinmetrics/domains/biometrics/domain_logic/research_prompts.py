"""Patient-specific research prompt construction for threshold research."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from clinmetrics.core.privacy.policy import PrivacyMode, build_research_context
from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRIC_KEYS,
    ResearchResult,
)
from clinmetrics.domains.biometrics.domain_logic.series import (
    get_metric_value,
    record_timepoint,
    select_baseline_and_latest,
    sort_by_timepoint,
)


@dataclass(frozen=True)
class ResearchQuery:
    query: str
    metric: str
    purpose: str


RESEARCH_QUERIES: tuple[ResearchQuery, ...] = (
    ResearchQuery("6-minute walk test threshold hospitalization risk",
                  "six_minute_walk_distance", "Establish high-risk threshold for 6MWD"),
    ResearchQuery("Clinically meaningful drop in 6MWD",
                  "six_minute_walk_distance", "Determine significant trajectory change"),
    ResearchQuery("Normal annual decline in FEV1 aging",
                  "fev1_percent", "Establish expected vs concerning decline"),
    ResearchQuery("Frailty cutoff gait speed m/s",
                  "gait_speed", "Define frailty threshold"),
    ResearchQuery("Grip strength decline mortality risk PURE study",
                  "grip_strength", "Establish mortality risk thresholds"),
    ResearchQuery("LDL levels cardiovascular risk per 40 mg/dL",
                  "ldl_c", "Define cardiovascular risk categories"),
    ResearchQuery("ALT elevation cutoff NAFLD guidelines",
                  "alt", "Establish liver function concern thresholds"),
    ResearchQuery("SF-36 QoL MCID clinically meaningful change",
                  "quality_of_life", "Define meaningful quality of life changes"),
    ResearchQuery("Minimal clinically important difference fatigue score",
                  "fatigue_score", "Establish significant fatigue changes"),
)

HIGH_PRIORITY = 10
NORMAL_PRIORITY = 5


@dataclass
class PatientMetrics:
    """Baseline/latest values of every metric that has any data."""

    values: dict[str, dict[str, float | None]] = field(default_factory=dict)
    timepoints: list[str] = field(default_factory=list)

    @property
    def available_metrics(self) -> list[str]:
        return list(self.values)

    def latest(self, metric: str) -> float | None:
        return self.values.get(metric, {}).get("latest")


def _displayed_latest(
    metric: str,
    patient_metrics: PatientMetrics,
    shown: Mapping[str, Mapping[str, float | None]] | None,
) -> float | None:
    if shown is None:
        return patient_metrics.latest(metric)
    return shown.get(metric, {}).get("latest")


def collect_patient_metrics(records: Sequence[Any]) -> PatientMetrics:
    """Extract baseline/latest values per metric from raw records."""
    sorted_records = sort_by_timepoint(records)
    baseline, latest = select_baseline_and_latest(sorted_records)

    metrics = PatientMetrics(timepoints=[record_timepoint(r) for r in sorted_records])
    for metric in METRIC_KEYS:
        baseline_value = get_metric_value(baseline, metric)
        latest_value = get_metric_value(latest, metric)
        if baseline_value is None and latest_value is None:
            continue
        metrics.values[metric] = {"baseline": baseline_value, "latest": latest_value}
    return metrics


def _summary_line(metric: str, baseline: float | None, latest: float | None) -> str:
    if baseline is not None and latest is not None:
        change = latest - baseline
        percent = f"{change / baseline * 100:.1f}%" if baseline != 0 else "n/a"
        return f"{metric}: {baseline} → {latest} (Δ{change:.1f}, {percent})"
    if latest is not None:
        return f"{metric}: {latest} (single timepoint)"
    return f"{metric}: {baseline} (baseline only)"


def identify_concerning_findings(
    patient_metrics: PatientMetrics,
    defaults: ResearchResult,
    *,
    shown: Mapping[str, Mapping[str, float | None]] | None = None,
) -> list[str]:
    """Latest values that already breach the default thresholds.

    Breaches are decided on ``patient_metrics``; the value written into each
    line comes from ``shown`` when given (the privacy-filtered metrics).
    """
    findings: list[str] = []
    for metric in patient_metrics.available_metrics:
        threshold = defaults.threshold_for(metric)
        latest = patient_metrics.latest(metric)
        if threshold is None or latest is None:
            continue
        value = _displayed_latest(metric, patient_metrics, shown)

        if threshold.direction == "lower_worse":
            if threshold.high_risk is not None and latest < threshold.high_risk:
                findings.append(
                    f"{metric}: {value} below high-risk threshold ({threshold.high_risk})"
                )
            if threshold.frailty_threshold is not None and latest < threshold.frailty_threshold:
                findings.append(
                    f"{metric}: {value} below frailty threshold ({threshold.frailty_threshold})"
                )
        elif threshold.high_risk is not None and latest > threshold.high_risk:
            findings.append(
                f"{metric}: {value} above high-risk threshold ({threshold.high_risk})"
            )
    return findings


def targeted_queries(
    patient_metrics: PatientMetrics,
    findings: Sequence[str],
    *,
    shown: Mapping[str, Mapping[str, float | None]] | None = None,
) -> list[dict[str, Any]]:
    """One query per available metric, concerning metrics first."""
    flagged = {f.split(":", 1)[0] for f in findings}
    queries = []
    for metric in patient_metrics.available_metrics:
        base = next((q for q in RESEARCH_QUERIES if q.metric == metric), None)
        if base is None:
            continue
        value = _displayed_latest(metric, patient_metrics, shown)
        queries.append({
            "query": base.query,
            "metric": metric,
            "priority": HIGH_PRIORITY if metric in flagged else NORMAL_PRIORITY,
            "rationale": (
                f"Patient's current {metric} value ({value}) "
                "requires targeted research for clinical decision-making"
            ),
        })
    return sorted(queries, key=lambda q: q["priority"], reverse=True)


def build_research_prompt(
    patient_id: str,
    records: Sequence[Any],
    defaults: ResearchResult,
    *,
    privacy_mode: PrivacyMode = "strict",
) -> str:
    """Render the patient-specific research prompt.

    Findings and priorities use full-precision values; what is displayed
    follows the privacy policy.
    """
    patient_metrics = collect_patient_metrics(records)
    context = build_research_context(
        patient_id=patient_id,
        metric_values=patient_metrics.values,
        privacy_mode=privacy_mode,
    )
    shown = context["metrics"]
    findings = identify_concerning_findings(patient_metrics, defaults, shown=shown)
    queries = targeted_queries(patient_metrics, findings, shown=shown)
    summary = "\n".join(
        _summary_line(metric, v["baseline"], v["latest"])
        for metric, v in context["metrics"].items()
    ) or "No biometric values recorded."
    finding_text = "\n".join(findings) or "None identified against default thresholds."
    query_text = "\n".join(
        f"- {q['query']} (Priority: {q['priority']}): {q['rationale']}" for q in queries
    ) or "- General evidence review for all tracked metrics"
    timepoint_text = ", ".join(t or "unknown" for t in patient_metrics.timepoints) or "none"

    return f"""You are conducting targeted research for a specific patient (ID: {context['patient_label']}).

TIMEPOINTS RECORDED: {timepoint_text}

PATIENT BIOMETRIC DATA ANALYSIS:
{summary}

CONCERNING FINDINGS IDENTIFIED:
{finding_text}

TARGETED RESEARCH QUERIES:
Based on this patient's specific data, conduct focused research on:

{query_text}

For this patient's specific presentation, provide:
1. Evidence-based thresholds most relevant to their condition profile
2. Trajectory analysis rules tailored to their specific metrics showing concerning trends
3. Supporting references from peer-reviewed sources

Focus on recent clinical guidelines and studies most applicable to this patient's presentation."""
