"""Helpers for reading a patient's longitudinal biometric records.

Records may be ``BiometricRecord`` instances or plain mappings (storage
rows, decoded JSON). Nothing here mutates its input.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import asdict, is_dataclass
from typing import Any, Iterable, Mapping, Sequence

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRICS_BY_KEY,
    TIMEPOINTS,
)


def coerce_numeric(value: Any) -> float | None:
    """Permissive numeric coercion: bad or missing input becomes None.

    None, empty strings, booleans, non-numeric strings, NaN and infinities
    are all treated as missing data. Numeric strings are parsed whole: a
    string with trailing text such as ``"12abc"`` or ``"120 mg/dL"`` is
    missing, not 12.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def record_timepoint(record: Any) -> str:
    return str(_field(record, "timepoint") or "")


def get_metric_value(record: Any | None, metric: str) -> float | None:
    """Coerced value of ``metric`` on ``record`` (None when absent)."""
    if record is None:
        return None
    return coerce_numeric(_field(record, metric))


def timepoint_rank(timepoint: str) -> int:
    """Position in the visit order; unknown timepoints rank -1."""
    try:
        return TIMEPOINTS.index(timepoint)
    except ValueError:
        return -1


def sort_by_timepoint(records: Iterable[Any]) -> list[Any]:
    """Stable sort into visit order, returning a new list."""
    return sorted(records, key=lambda r: timepoint_rank(record_timepoint(r)))


def select_baseline_and_latest(sorted_records: Sequence[Any]) -> tuple[Any | None, Any | None]:
    """Pick the baseline record and the chronologically last record.

    ``latest`` is simply the last record present, whichever timepoint it
    carries; with only a baseline record, latest is the baseline.
    """
    baseline = next(
        (r for r in sorted_records if record_timepoint(r) == "baseline"), None
    )
    latest = None
    for record in reversed(sorted_records):
        if record is not None:
            latest = record
            break
    return baseline, latest


def _as_plain(record: Any) -> Any:
    if is_dataclass(record) and not isinstance(record, type):
        return asdict(record)
    if isinstance(record, Mapping):
        return dict(record)
    return record


def records_fingerprint(records: Iterable[Any]) -> str:
    """SHA-256 over canonical JSON of the records, independent of input order."""
    canonical = sorted(
        json.dumps(_as_plain(r), sort_keys=True, separators=(",", ":"), default=str)
        for r in records
    )
    payload = "[" + ",".join(canonical) + "]"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def format_metric_value(metric: str, value: float | None) -> str:
    """Display form used in reports: QoL as integer, gait speed 2 dp, others 1 dp."""
    if value is None:
        return "N/A"
    if metric not in METRICS_BY_KEY:
        return str(value)
    if metric == "quality_of_life":
        # Half-up, not banker's rounding: 60.5 displays as 61.
        return f"{math.floor(value + 0.5)}"
    if metric == "gait_speed":
        return f"{value:.2f}"
    return f"{value:.1f}"
