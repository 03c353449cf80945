"""Tests for the packaged default threshold table."""

from __future__ import annotations

import pytest

from clinmetrics.domains.biometrics.domain_logic.biometric_models import METRIC_KEYS
from clinmetrics.domains.biometrics.domain_logic.clinical_defaults import (
    ThresholdTableError,
    get_default_thresholds,
    load_threshold_file,
)


class TestDefaultTable:
    def test_covers_every_metric_in_order(self, default_thresholds):
        assert [t.metric for t in default_thresholds.thresholds] == list(METRIC_KEYS)

    def test_source_is_fallback(self, default_thresholds):
        assert default_thresholds.source == "fallback"

    def test_known_values(self, default_thresholds):
        six = default_thresholds.threshold_for("six_minute_walk_distance")
        assert (six.high_risk, six.moderate_risk, six.normal_value) == (400, 450, 500)
        gait = default_thresholds.threshold_for("gait_speed")
        assert gait.frailty_threshold == 0.8
        assert gait.high_risk is None
        ldl = default_thresholds.threshold_for("ldl_c")
        assert ldl.direction == "higher_worse"
        assert (ldl.high_risk, ldl.moderate_risk) == (160, 130)

    def test_trajectory_rules(self, default_thresholds):
        rules = {r.metric: r for r in default_thresholds.trajectory_rules}
        assert set(rules) == {
            "six_minute_walk_distance", "fev1_percent", "grip_strength",
            "alt", "quality_of_life", "fatigue_score",
        }
        assert rules["fev1_percent"].type == "percentage"
        assert rules["alt"].meaningful_rise == 30
        assert rules["fatigue_score"].meaningful_rise == 1.5
        assert default_thresholds.rule_for("gait_speed") is None

    def test_six_references(self, default_thresholds):
        assert len(default_thresholds.references) == 6
        assert default_thresholds.references[0].startswith("Casanova C")

    def test_loaded_once(self):
        assert get_default_thresholds() is get_default_thresholds()

    def test_serializable_and_deterministic(self, default_thresholds):
        assert default_thresholds.to_dict() == get_default_thresholds().to_dict()


class TestLoadThresholdFile:
    def test_custom_file(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text(
            "thresholds:\n"
            "  - metric: alt\n"
            "    direction: higher_worse\n"
            "    high_risk: 50\n"
            "references: [ref]\n"
        )
        result = load_threshold_file(path)
        assert result.threshold_for("alt").high_risk == 50
        assert result.trajectory_rules == ()
        assert result.references == ("ref",)

    def test_unknown_metric(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("thresholds:\n  - metric: bmi\n    direction: higher_worse\n")
        with pytest.raises(ThresholdTableError, match="Unknown metric"):
            load_threshold_file(path)

    def test_bad_direction(self, tmp_path):
        path = tmp_path / "t.yaml"
        path.write_text("thresholds:\n  - metric: alt\n    direction: sideways\n")
        with pytest.raises(ThresholdTableError, match="Invalid direction"):
            load_threshold_file(path)
