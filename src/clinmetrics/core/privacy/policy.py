"""Privacy policy for controlling what patient data reaches the research LLM.

The research prompt needs metric trajectories, not identities:

- ``strict``  : patient id replaced by a stable pseudonym, values rounded to 1 dp
- ``standard``: pseudonym, full-precision values
- ``explicit``: raw patient id and values (caller opted in)
"""

from __future__ import annotations

import hashlib
from typing import Any, Literal

PrivacyMode = Literal["strict", "standard", "explicit"]

PRIVACY_MODES: tuple[str, ...] = ("strict", "standard", "explicit")


def validate_privacy_mode(value: str | None, default: PrivacyMode = "strict") -> PrivacyMode:
    """Validate and default a privacy_mode parameter."""
    if value in (None, ""):
        return default
    if value not in PRIVACY_MODES:
        raise ValueError("privacy_mode must be one of: strict | standard | explicit")
    return value  # type: ignore[return-value]


def pseudonymize_patient_id(patient_id: str) -> str:
    """Stable, non-reversible label for a patient id."""
    digest = hashlib.sha256(patient_id.encode("utf-8")).hexdigest()
    return f"patient-{digest[:10]}"


def _round_floats(obj: Any, ndigits: int = 1) -> Any:
    if isinstance(obj, float):
        return round(obj, ndigits)
    if isinstance(obj, dict):
        return {k: _round_floats(v, ndigits=ndigits) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_round_floats(v, ndigits=ndigits) for v in obj]
    return obj


def build_research_context(
    *,
    patient_id: str,
    metric_values: dict[str, dict[str, float | None]],
    privacy_mode: PrivacyMode,
) -> dict[str, Any]:
    """Build the minimized context that will be rendered into the research prompt.

    Args:
        patient_id: The real patient identifier.
        metric_values: ``{metric: {"baseline": x, "latest": y}}``.
        privacy_mode: Active privacy level.
    """
    if privacy_mode == "explicit":
        return {"patient_label": patient_id, "metrics": metric_values}

    label = pseudonymize_patient_id(patient_id)
    if privacy_mode == "standard":
        return {"patient_label": label, "metrics": metric_values}

    return {"patient_label": label, "metrics": _round_floats(metric_values, ndigits=1)}
