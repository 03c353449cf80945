"""MCP tools for recording and managing per-visit biometric measurements.

Records are persisted to the encrypted biometrics store, one per patient
and timepoint. Reads and deletions are audit-logged.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from clinmetrics.core.audit.logger import AuditLogger
    from clinmetrics.core.storage.repository import BiometricsRepository

from clinmetrics.core.storage.repository import RepositoryError
from clinmetrics.domains.biometrics.domain_logic.biometric_models import BiometricRecord

logger = logging.getLogger(__name__)


def register_biometrics_entry_tools(
    mcp: FastMCP,
    repository: BiometricsRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register biometrics entry and data management tools on the MCP server."""

    @mcp.tool
    async def record_biometrics(
        ctx: Context,
        patient_id: str,
        timepoint: str,
        six_minute_walk_distance: float | None = None,
        fev1_percent: float | None = None,
        gait_speed: float | None = None,
        grip_strength: float | None = None,
        ldl_c: float | None = None,
        alt: float | None = None,
        quality_of_life: float | None = None,
        fatigue_score: float | None = None,
        overwrite: bool = False,
    ) -> str:
        """Record a patient's biometric measurements for one visit.

        Any subset of the eight metrics may be given; omitted metrics are
        stored as missing.

        Args:
            patient_id: Patient identifier.
            timepoint: Visit marker: 'baseline', '3m', '6m' or '12m'.
            six_minute_walk_distance: 6-minute walk distance in meters.
            fev1_percent: FEV1 as percent of predicted.
            gait_speed: Gait speed in m/s.
            grip_strength: Grip strength in kg.
            ldl_c: LDL cholesterol in mg/dL.
            alt: Alanine aminotransferase in U/L.
            quality_of_life: Quality-of-life score (0-100).
            fatigue_score: Fatigue score (0-10).
            overwrite: Replace an existing record for this timepoint instead
                of rejecting the entry.
        """
        start_time = time.monotonic()
        record = BiometricRecord(
            patient_id=patient_id,
            timepoint=timepoint,
            six_minute_walk_distance=six_minute_walk_distance,
            fev1_percent=fev1_percent,
            gait_speed=gait_speed,
            grip_strength=grip_strength,
            ldl_c=ldl_c,
            alt=alt,
            quality_of_life=quality_of_life,
            fatigue_score=fatigue_score,
        )
        try:
            saved = repository.upsert(record) if overwrite else repository.create(record)
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        elapsed_ms = (time.monotonic() - start_time) * 1000
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="record_biometrics",
                tool_input={"patient_id": patient_id, "timepoint": timepoint},
                record_id=saved.id,
                duration_ms=elapsed_ms,
                metadata={"overwrite": overwrite},
            )

        return json.dumps({"status": "saved", "record": saved.to_dict()})

    @mcp.tool
    async def get_biometrics(
        ctx: Context,
        patient_id: str,
        timepoint: str | None = None,
    ) -> str:
        """Retrieve a patient's stored biometric records (newest first).

        Args:
            patient_id: Patient identifier.
            timepoint: Optional visit marker to fetch a single record.
        """
        try:
            if timepoint:
                record = repository.get_for_timepoint(patient_id, timepoint)
                records = [record] if record is not None else []
            else:
                records = repository.get_by_patient(patient_id)
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        if audit_logger is not None:
            audit_logger.log_data_access(tool_name="get_biometrics", count=len(records))

        return json.dumps({
            "status": "ok",
            "patient_id": patient_id,
            "count": len(records),
            "records": [r.to_dict() for r in records],
        })

    @mcp.tool
    async def delete_biometrics(
        ctx: Context,
        record_id: str,
    ) -> str:
        """Permanently delete one stored biometric record.

        Args:
            record_id: The UUID of the record to delete.
        """
        start_time = time.monotonic()
        deleted = repository.delete(record_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "record_id": record_id,
                "message": "No biometrics record found with that ID.",
            })

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_biometrics", record_id=record_id, count=1
            )
        return json.dumps({
            "status": "deleted",
            "record_id": record_id,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def delete_patient_biometrics(
        ctx: Context,
        patient_id: str,
        confirm: str = "",
    ) -> str:
        """Permanently delete every biometric record of one patient.

        Args:
            patient_id: Patient identifier.
            confirm: Must be exactly 'DELETE_PATIENT' to proceed. Safety gate.
        """
        if confirm != "DELETE_PATIENT":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all biometrics for this patient, call this tool with "
                    "confirm='DELETE_PATIENT'. This action cannot be undone."
                ),
            })

        start_time = time.monotonic()
        count = repository.delete_patient_data(patient_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(tool_name="delete_patient_biometrics", count=count)

        return json.dumps({
            "status": "deleted",
            "records_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
        })
