"""Tests for patient-specific research prompt construction."""

from __future__ import annotations

from clinmetrics.core.privacy.policy import pseudonymize_patient_id
from clinmetrics.domains.biometrics.domain_logic.research_prompts import (
    HIGH_PRIORITY,
    NORMAL_PRIORITY,
    build_research_prompt,
    collect_patient_metrics,
    identify_concerning_findings,
    targeted_queries,
)


class TestCollectPatientMetrics:
    def test_only_metrics_with_data(self, declining_patient_records):
        metrics = collect_patient_metrics(declining_patient_records[:1])
        assert "gait_speed" in metrics.available_metrics
        assert metrics.values["gait_speed"] == {"baseline": 1.0, "latest": 1.0}

    def test_timepoints_in_visit_order(self, declining_patient_records):
        metrics = collect_patient_metrics(list(reversed(declining_patient_records)))
        assert metrics.timepoints == ["baseline", "12m"]

    def test_empty(self):
        metrics = collect_patient_metrics([])
        assert metrics.available_metrics == []


class TestFindings:
    def test_breaches_against_defaults(self, declining_patient_records, default_thresholds):
        metrics = collect_patient_metrics(declining_patient_records)
        findings = identify_concerning_findings(metrics, default_thresholds)

        assert "gait_speed: 0.7 below frailty threshold (0.8)" in findings
        assert "ldl_c: 170.0 above high-risk threshold (160.0)" in findings
        assert "alt: 55.0 above high-risk threshold (40.0)" in findings
        assert not any(f.startswith("six_minute_walk_distance") for f in findings)

    def test_queries_prioritize_flagged_metrics(self, declining_patient_records, default_thresholds):
        metrics = collect_patient_metrics(declining_patient_records)
        findings = identify_concerning_findings(metrics, default_thresholds)
        queries = targeted_queries(metrics, findings)

        priorities = [q["priority"] for q in queries]
        assert priorities == sorted(priorities, reverse=True)
        by_metric = {q["metric"]: q["priority"] for q in queries}
        assert by_metric["gait_speed"] == HIGH_PRIORITY
        assert by_metric["grip_strength"] == NORMAL_PRIORITY


class TestBuildResearchPrompt:
    def test_strict_hides_patient_id(self, declining_patient_records, default_thresholds):
        prompt = build_research_prompt("mrn-4471", declining_patient_records, default_thresholds)
        assert "mrn-4471" not in prompt
        assert pseudonymize_patient_id("mrn-4471") in prompt
        assert "TIMEPOINTS RECORDED: baseline, 12m" in prompt
        assert "CONCERNING FINDINGS IDENTIFIED:" in prompt

    def test_explicit_includes_patient_id(self, declining_patient_records, default_thresholds):
        prompt = build_research_prompt(
            "patient-001", declining_patient_records, default_thresholds, privacy_mode="explicit"
        )
        assert "(ID: patient-001)" in prompt

    def test_trajectory_summary_line(self, declining_patient_records, default_thresholds):
        prompt = build_research_prompt("p", declining_patient_records, default_thresholds)
        assert "six_minute_walk_distance: 500.0 → 420.0 (Δ-80.0, -16.0%)" in prompt

    def test_zero_baseline_does_not_crash(self, default_thresholds):
        records = [
            {"timepoint": "baseline", "fatigue_score": 0},
            {"timepoint": "3m", "fatigue_score": 2},
        ]
        prompt = build_research_prompt("p", records, default_thresholds)
        assert "fatigue_score: 0.0 → 2.0 (Δ2.0, n/a)" in prompt

    def test_no_data(self, default_thresholds):
        prompt = build_research_prompt("p", [], default_thresholds)
        assert "No biometric values recorded." in prompt
        assert "TIMEPOINTS RECORDED: none" in prompt


PRECISE_RECORDS = [
    {"timepoint": "baseline", "gait_speed": 1.04321, "ldl_c": 150.2718},
    {"timepoint": "6m", "gait_speed": 0.73456, "ldl_c": 171.23456},
]


class TestPromptPrivacy:
    def test_strict_rounds_every_displayed_value(self, default_thresholds):
        prompt = build_research_prompt("p", PRECISE_RECORDS, default_thresholds)

        for raw in ("1.04321", "0.73456", "150.2718", "171.23456"):
            assert raw not in prompt
        assert "gait_speed: 0.7 below frailty threshold (0.8)" in prompt
        assert "ldl_c: 171.2 above high-risk threshold (160.0)" in prompt
        assert "Patient's current gait_speed value (0.7)" in prompt

    def test_standard_keeps_full_precision(self, default_thresholds):
        prompt = build_research_prompt(
            "p", PRECISE_RECORDS, default_thresholds, privacy_mode="standard"
        )
        assert "gait_speed: 0.73456 below frailty threshold (0.8)" in prompt
        assert "Patient's current ldl_c value (171.23456)" in prompt

    def test_flags_decided_before_rounding(self, default_thresholds):
        records = [{"timepoint": "baseline", "gait_speed": 0.79}]
        prompt = build_research_prompt("p", records, default_thresholds)

        # 0.79 rounds to the 0.8 bound but is still below it
        assert "gait_speed: 0.8 below frailty threshold (0.8)" in prompt
        assert f"(Priority: {HIGH_PRIORITY}): Patient's current gait_speed value (0.8)" in prompt

    def test_shown_values_replace_raw_in_findings(self, default_thresholds):
        metrics = collect_patient_metrics(PRECISE_RECORDS)
        shown = {"gait_speed": {"baseline": 1.0, "latest": 0.7}, "ldl_c": {"latest": 171.2}}

        findings = identify_concerning_findings(metrics, default_thresholds, shown=shown)
        queries = targeted_queries(metrics, findings, shown=shown)

        assert "gait_speed: 0.7 below frailty threshold (0.8)" in findings
        assert all("0.73456" not in q["rationale"] for q in queries)
