"""Plain-text rendering of a BiometricsReport for physicians."""

from __future__ import annotations

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    AnalysisResult,
    BiometricsReport,
)
from clinmetrics.domains.biometrics.domain_logic.series import format_metric_value

_SEVERITY_BADGES = {
    "high_risk": "HIGH",
    "frailty": "HIGH",
    "concerning_decline": "HIGH",
    "concerning_increase": "HIGH",
    "moderate_risk": "MODERATE",
}


def format_change(change: float | None, *, percent: bool = False) -> str:
    if change is None:
        return "N/A"
    sign = "+" if change > 0 else ""
    return f"{sign}{change:.1f}{'%' if percent else ''}"


def _with_unit(metric: str, value: float | None, unit: str) -> str:
    text = format_metric_value(metric, value)
    if value is None or not unit:
        return text
    return f"{text} {unit}"


def _analysis_lines(analysis: AnalysisResult) -> list[str]:
    line = (
        f"Baseline: {_with_unit(analysis.metric, analysis.baseline, analysis.unit)} → "
        f"Latest: {_with_unit(analysis.metric, analysis.latest, analysis.unit)}"
    )
    if analysis.absolute_change is not None:
        delta = format_change(analysis.absolute_change)
        if analysis.unit:
            delta = f"{delta} {analysis.unit}"
        line += f" (Δ {delta}, {format_change(analysis.percent_change, percent=True)})"

    lines = [f"{analysis.label}", f"  {line}"]
    for finding in (analysis.threshold_breach, analysis.trajectory_alert):
        if finding is not None:
            badge = _SEVERITY_BADGES.get(finding.type, "INFO")
            lines.append(f"  [{badge}] {finding.message}")

    significance = next(
        (
            f.clinical_significance
            for f in (analysis.threshold_breach, analysis.trajectory_alert)
            if f is not None
        ),
        None,
    )
    if significance:
        lines.append(f"  Clinical significance: {significance}")
    return lines


def render_report_text(report: BiometricsReport) -> str:
    """Render the report as the plain-text physician summary."""
    lines: list[str] = []
    lines.append("Physician Biometrics Report")
    lines.append(f"Generated on {report.generated_date[:10]} • Patient ID: {report.patient_id}")
    lines.append("")

    lines.append("Executive Summary")
    lines.append(f"- Metrics analyzed: {report.summary.metrics_with_data}")
    lines.append(f"- Threshold breaches: {report.summary.threshold_breaches}")
    lines.append(f"- Trajectory alerts: {report.summary.trajectory_alerts}")
    lines.append(f"- Referrals suggested: {len(report.referral_recommendations)}")
    lines.append("")

    lines.append("Detailed Metric Analysis")
    if not report.analyses:
        lines.append("No biometric data recorded.")
    for analysis in report.analyses:
        lines.extend(_analysis_lines(analysis))
    lines.append("")

    if report.cross_domain_correlations:
        lines.append("Cross-Domain Correlations")
        lines.extend(f"- {c}" for c in report.cross_domain_correlations)
        lines.append("")

    if report.referral_recommendations:
        lines.append("Referral Recommendations")
        lines.extend(f"- {r}" for r in report.referral_recommendations)
        lines.append("")

    lines.append("Clinical Evidence References")
    lines.extend(f"{i}. {ref}" for i, ref in enumerate(report.references, start=1))
    if report.threshold_source == "fallback":
        lines.append("(Thresholds: evidence-based defaults)")
    else:
        lines.append("(Thresholds: patient-specific research)")

    return "\n".join(lines)
