"""Shared test fixtures for Clinmetrics tests."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Sequence

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("DEFAULT_PRIVACY_MODE", "strict")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (  # noqa: E402
    BiometricRecord,
    ResearchResult,
)
from clinmetrics.domains.biometrics.domain_logic.clinical_defaults import (  # noqa: E402
    get_default_thresholds,
)


# ---------------------------------------------------------------------------
# Sample records and research replies
# ---------------------------------------------------------------------------

@pytest.fixture
def declining_patient_records() -> list[BiometricRecord]:
    """Baseline and 12-month visits with several breaches and alerts."""
    return [
        BiometricRecord(
            patient_id="patient-001",
            timepoint="baseline",
            six_minute_walk_distance=500,
            fev1_percent=75,
            gait_speed=1.0,
            grip_strength=30,
            ldl_c=120,
            alt=20,
            quality_of_life=70,
            fatigue_score=3,
        ),
        BiometricRecord(
            patient_id="patient-001",
            timepoint="12m",
            six_minute_walk_distance=420,
            fev1_percent=60,
            gait_speed=0.7,
            grip_strength=24,
            ldl_c=170,
            alt=55,
            quality_of_life=55,
            fatigue_score=5,
        ),
    ]


# A well-formed research reply that overrides the 6MWD and gait thresholds.
RESEARCH_REPLY: dict[str, Any] = {
    "thresholds": [
        {
            "metric": "six_minute_walk_distance",
            "direction": "lower_worse",
            "highRisk": 350,
            "moderateRisk": 430,
            "normalValue": 500,
            "meaningfulChange": 30,
            "unit": "m",
        },
        {
            "metric": "gait_speed",
            "direction": "lower_worse",
            "frailty_threshold": 0.6,
            "normal_value": 1.2,
            "unit": "m/s",
        },
    ],
    "trajectory_rules": [
        {
            "metric": "six_minute_walk_distance",
            "meaningful_drop": 30,
            "type": "absolute",
            "unit": "m",
        },
    ],
    "references": ["Holland AE, et al. Eur Respir J. 2014;44(6):1428-46."],
}


@pytest.fixture
def research_reply_json() -> str:
    return "```json\n" + json.dumps(RESEARCH_REPLY) + "\n```"


@pytest.fixture
def default_thresholds() -> ResearchResult:
    return get_default_thresholds()


class StaticThresholdProvider:
    """Threshold source that always returns one result and records calls."""

    def __init__(self, result: ResearchResult) -> None:
        self.result = result
        self.calls: list[tuple[str, int]] = []

    async def get_thresholds(self, patient_id: str, records: Sequence[Any]) -> ResearchResult:
        self.calls.append((patient_id, len(records)))
        return self.result


@pytest.fixture
def static_threshold_provider(default_thresholds: ResearchResult) -> StaticThresholdProvider:
    return StaticThresholdProvider(default_thresholds)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def biometrics_db():
    """Create an in-memory BiometricsDatabase for testing."""
    from clinmetrics.core.storage.database import BiometricsDatabase

    db = BiometricsDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from clinmetrics.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def biometrics_repository(biometrics_db, field_encryptor):
    """Create a BiometricsRepository backed by in-memory SQLite."""
    from clinmetrics.core.storage.repository import BiometricsRepository

    return BiometricsRepository(biometrics_db, field_encryptor)


@pytest.fixture
def audit_logger(biometrics_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from clinmetrics.core.audit.logger import AuditLogger

    return AuditLogger(biometrics_db)
