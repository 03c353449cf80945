"""Biometrics analyzer: longitudinal records in, physician report out.

Deterministic apart from the threshold lookup and ``generated_date``.
Inputs are never mutated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    ALERT_TYPES,
    BREACH_TYPES,
    METRICS,
    AnalysisResult,
    BiometricsReport,
    MetricSpec,
    ReportSummary,
    ResearchResult,
)
from clinmetrics.domains.biometrics.domain_logic.clinical_rules import (
    classify_threshold,
    classify_trajectory,
    find_correlations,
    find_referrals,
)
from clinmetrics.domains.biometrics.domain_logic.series import (
    get_metric_value,
    select_baseline_and_latest,
    sort_by_timepoint,
)

logger = logging.getLogger(__name__)


class ThresholdSource(Protocol):
    async def get_thresholds(
        self, patient_id: str, records: Sequence[Any]
    ) -> ResearchResult: ...


def analyze_metric(
    spec: MetricSpec,
    baseline: float | None,
    latest: float | None,
    research: ResearchResult,
) -> AnalysisResult:
    """Changes, threshold breach and trajectory alert for one metric."""
    analysis = AnalysisResult(
        metric=spec.key,
        label=spec.label,
        unit=spec.unit,
        baseline=baseline,
        latest=latest,
    )

    if baseline is not None and latest is not None:
        analysis.absolute_change = latest - baseline
        if baseline != 0:
            analysis.percent_change = (latest - baseline) / baseline * 100

    threshold = research.threshold_for(spec.key)
    if threshold is not None and latest is not None:
        analysis.threshold_breach = classify_threshold(latest, threshold)

    rule = research.rule_for(spec.key)
    if rule is not None and analysis.absolute_change is not None:
        analysis.trajectory_alert = classify_trajectory(analysis.absolute_change, rule)

    return analysis


def summarize(analyses: Sequence[AnalysisResult]) -> ReportSummary:
    return ReportSummary(
        total_metrics=len(METRICS),
        metrics_with_data=len(analyses),
        threshold_breaches=sum(
            1 for a in analyses
            if a.threshold_breach is not None and a.threshold_breach.type in BREACH_TYPES
        ),
        trajectory_alerts=sum(
            1 for a in analyses
            if a.trajectory_alert is not None and a.trajectory_alert.type in ALERT_TYPES
        ),
    )


class BiometricsAnalyzer:
    """Generates physician reports from a patient's biometric records."""

    def __init__(self, threshold_provider: ThresholdSource) -> None:
        self.threshold_provider = threshold_provider

    async def generate_report(
        self, patient_id: str, records: Sequence[Any]
    ) -> BiometricsReport:
        """Analyze ``records`` (any order, any subset of metrics) for one patient.

        Research failures are absorbed by the threshold provider; any other
        error propagates and no partial report is produced.
        """
        sorted_records = sort_by_timepoint(records)
        baseline_record, latest_record = select_baseline_and_latest(sorted_records)

        research = await self.threshold_provider.get_thresholds(patient_id, sorted_records)

        analyses: list[AnalysisResult] = []
        for spec in METRICS:
            baseline = get_metric_value(baseline_record, spec.key)
            latest = get_metric_value(latest_record, spec.key)
            if baseline is None and latest is None:
                continue
            analyses.append(analyze_metric(spec, baseline, latest, research))

        report = BiometricsReport(
            patient_id=patient_id,
            generated_date=datetime.now(timezone.utc).isoformat(),
            summary=summarize(analyses),
            analyses=analyses,
            cross_domain_correlations=find_correlations(analyses),
            referral_recommendations=find_referrals(analyses),
            references=list(research.references),
            threshold_source=research.source,
        )

        logger.info(
            "Generated biometrics report: records=%d, metrics=%d, breaches=%d, alerts=%d, source=%s",
            len(sorted_records),
            report.summary.metrics_with_data,
            report.summary.threshold_breaches,
            report.summary.trajectory_alerts,
            research.source,
        )
        return report
