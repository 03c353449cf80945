"""Tests for BiometricsAnalyzer report generation."""

from __future__ import annotations

import asyncio
import copy

import pytest

from clinmetrics.domains.biometrics.domain_logic.analyzer import (
    BiometricsAnalyzer,
    analyze_metric,
)
from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRIC_KEYS,
    METRICS_BY_KEY,
    BiometricRecord,
)
from clinmetrics.domains.biometrics.domain_logic.research_parser import (
    parse_research_response,
)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _by_metric(report):
    return {a.metric: a for a in report.analyses}


class TestAnalyzeMetric:
    def test_changes(self, default_thresholds):
        analysis = analyze_metric(
            METRICS_BY_KEY["six_minute_walk_distance"], 500, 440, default_thresholds
        )
        assert analysis.absolute_change == -60
        assert analysis.percent_change == pytest.approx(-12.0)
        assert analysis.threshold_breach.type == "moderate_risk"
        assert analysis.trajectory_alert.type == "concerning_decline"

    def test_zero_baseline_has_no_percent(self, default_thresholds):
        analysis = analyze_metric(METRICS_BY_KEY["fatigue_score"], 0, 2, default_thresholds)
        assert analysis.absolute_change == 2
        assert analysis.percent_change is None
        assert analysis.trajectory_alert.type == "concerning_increase"

    def test_unchanged_normal_value(self, default_thresholds):
        analysis = analyze_metric(METRICS_BY_KEY["alt"], 20, 20, default_thresholds)
        assert analysis.absolute_change == 0
        assert analysis.threshold_breach is None
        assert analysis.trajectory_alert is None

    def test_latest_only_checks_breach(self, default_thresholds):
        analysis = analyze_metric(METRICS_BY_KEY["gait_speed"], None, 0.7, default_thresholds)
        assert analysis.absolute_change is None
        assert analysis.percent_change is None
        assert analysis.threshold_breach.type == "frailty"
        assert analysis.trajectory_alert is None


class TestGenerateReport:
    def test_declining_patient(self, static_threshold_provider, declining_patient_records):
        report = _run(BiometricsAnalyzer(static_threshold_provider).generate_report(
            "patient-001", declining_patient_records
        ))
        by_metric = _by_metric(report)

        assert [a.metric for a in report.analyses] == list(METRIC_KEYS)
        assert report.summary.total_metrics == 8
        assert report.summary.metrics_with_data == 8
        assert report.summary.threshold_breaches == 5
        assert report.summary.trajectory_alerts == 6
        assert by_metric["gait_speed"].threshold_breach.type == "frailty"
        assert by_metric["ldl_c"].threshold_breach.type == "high_risk"
        assert by_metric["fatigue_score"].threshold_breach is None
        assert by_metric["grip_strength"].trajectory_alert.type == "concerning_decline"

        assert len(report.cross_domain_correlations) == 2
        assert [r.split()[0] for r in report.referral_recommendations] == [
            "Pulmonology", "Physical", "Cardiology", "Hepatology",
        ]
        assert report.threshold_source == "fallback"
        assert len(report.references) == 6

    def test_research_thresholds_change_findings(
        self, static_threshold_provider, declining_patient_records, research_reply_json,
        default_thresholds,
    ):
        static_threshold_provider.result = parse_research_response(
            research_reply_json, default_thresholds
        )
        report = _run(BiometricsAnalyzer(static_threshold_provider).generate_report(
            "patient-001", declining_patient_records
        ))
        by_metric = _by_metric(report)

        # 0.7 is above the researched 0.6 frailty bound
        assert by_metric["gait_speed"].threshold_breach is None
        assert by_metric["six_minute_walk_distance"].threshold_breach.type == "moderate_risk"
        assert not any(r.startswith("Physical therapy") for r in report.referral_recommendations)
        assert report.cross_domain_correlations == [
            "Parallel decline in exercise capacity and lung function indicates "
            "cardiopulmonary deterioration"
        ]
        assert report.threshold_source == "research"
        assert report.references[0].startswith("Holland AE")

    def test_no_records(self, static_threshold_provider):
        report = _run(BiometricsAnalyzer(static_threshold_provider).generate_report("p", []))
        assert report.analyses == []
        assert report.summary.metrics_with_data == 0
        assert report.summary.total_metrics == 8
        assert report.referral_recommendations == []
        assert report.cross_domain_correlations == []

    def test_baseline_only(self, static_threshold_provider):
        records = [BiometricRecord(patient_id="p", timepoint="baseline", gait_speed=1.0)]
        report = _run(BiometricsAnalyzer(static_threshold_provider).generate_report("p", records))

        assert len(report.analyses) == 1
        gait = report.analyses[0]
        assert gait.baseline == gait.latest == 1.0
        assert gait.absolute_change == 0
        assert gait.percent_change == 0
        assert gait.threshold_breach is None
        assert report.summary.threshold_breaches == 0

    def test_latest_is_last_visit_regardless_of_input_order(self, static_threshold_provider):
        records = [
            {"timepoint": "12m", "six_minute_walk_distance": 440},
            {"timepoint": "baseline", "six_minute_walk_distance": 500},
            {"timepoint": "6m", "six_minute_walk_distance": 480},
        ]
        report = _run(BiometricsAnalyzer(static_threshold_provider).generate_report("p", records))
        six = report.analyses[0]
        assert (six.baseline, six.latest) == (500, 440)

    def test_metrics_without_values_excluded(self, static_threshold_provider):
        records = [
            {"timepoint": "baseline", "ldl_c": 120, "alt": None},
            {"timepoint": "3m", "ldl_c": "135", "alt": "n/a"},
        ]
        report = _run(BiometricsAnalyzer(static_threshold_provider).generate_report("p", records))
        assert [a.metric for a in report.analyses] == ["ldl_c"]
        assert report.analyses[0].threshold_breach.type == "moderate_risk"

    def test_thresholds_requested_once_with_sorted_records(
        self, static_threshold_provider, declining_patient_records
    ):
        analyzer = BiometricsAnalyzer(static_threshold_provider)
        _run(analyzer.generate_report("patient-001", declining_patient_records))
        assert static_threshold_provider.calls == [("patient-001", 2)]

    def test_inputs_not_mutated(self, static_threshold_provider, declining_patient_records):
        snapshot = copy.deepcopy(declining_patient_records)
        reversed_records = list(reversed(declining_patient_records))
        _run(BiometricsAnalyzer(static_threshold_provider).generate_report("p", reversed_records))
        assert declining_patient_records == snapshot
        assert reversed_records[0].timepoint == "12m"

    def test_repeatable_apart_from_generated_date(
        self, static_threshold_provider, declining_patient_records
    ):
        analyzer = BiometricsAnalyzer(static_threshold_provider)
        first = _run(analyzer.generate_report("p", declining_patient_records)).to_dict()
        second = _run(analyzer.generate_report("p", declining_patient_records)).to_dict()
        first.pop("generated_date")
        second.pop("generated_date")
        assert first == second

    def test_non_research_error_propagates(self, declining_patient_records):
        class Broken:
            async def get_thresholds(self, patient_id, records):
                raise KeyError("boom")

        with pytest.raises(KeyError):
            _run(BiometricsAnalyzer(Broken()).generate_report("p", declining_patient_records))
