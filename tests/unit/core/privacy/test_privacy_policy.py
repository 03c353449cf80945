"""Unit tests for the privacy policy module."""

from __future__ import annotations

import pytest

from clinmetrics.core.privacy.policy import (
    _round_floats,
    build_research_context,
    pseudonymize_patient_id,
    validate_privacy_mode,
)

_METRICS = {
    "gait_speed": {"baseline": 1.0456, "latest": 0.7349},
    "ldl_c": {"baseline": 120.0, "latest": None},
}


class TestValidatePrivacyMode:
    @pytest.mark.parametrize("mode", ["strict", "standard", "explicit"])
    def test_accepts_known_modes(self, mode):
        assert validate_privacy_mode(mode) == mode

    @pytest.mark.parametrize("value", [None, ""])
    def test_defaults_when_missing(self, value):
        assert validate_privacy_mode(value) == "strict"
        assert validate_privacy_mode(value, default="standard") == "standard"

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValueError, match="privacy_mode"):
            validate_privacy_mode("open")


class TestPseudonym:
    def test_stable(self):
        assert pseudonymize_patient_id("p-1") == pseudonymize_patient_id("p-1")

    def test_does_not_contain_id(self):
        label = pseudonymize_patient_id("jane-doe-1984")
        assert "jane" not in label
        assert label.startswith("patient-")

    def test_distinct_patients_differ(self):
        assert pseudonymize_patient_id("a") != pseudonymize_patient_id("b")


class TestBuildResearchContext:
    def test_strict_pseudonymizes_and_rounds(self):
        ctx = build_research_context(
            patient_id="p-1", metric_values=_METRICS, privacy_mode="strict"
        )
        assert ctx["patient_label"] == pseudonymize_patient_id("p-1")
        assert ctx["metrics"]["gait_speed"] == {"baseline": 1.0, "latest": 0.7}
        assert ctx["metrics"]["ldl_c"]["latest"] is None

    def test_standard_keeps_full_values(self):
        ctx = build_research_context(
            patient_id="p-1", metric_values=_METRICS, privacy_mode="standard"
        )
        assert ctx["patient_label"] != "p-1"
        assert ctx["metrics"]["gait_speed"]["baseline"] == 1.0456

    def test_explicit_passes_raw_id(self):
        ctx = build_research_context(
            patient_id="p-1", metric_values=_METRICS, privacy_mode="explicit"
        )
        assert ctx["patient_label"] == "p-1"

    def test_strict_does_not_mutate_input(self):
        build_research_context(patient_id="p-1", metric_values=_METRICS, privacy_mode="strict")
        assert _METRICS["gait_speed"]["baseline"] == 1.0456


class TestRoundFloats:
    def test_nested(self):
        assert _round_floats({"a": [1.26, {"b": 2.349}], "c": 3}) == {
            "a": [1.3, {"b": 2.3}],
            "c": 3,
        }
