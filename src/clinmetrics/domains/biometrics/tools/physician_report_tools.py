"""MCP tools for physician biometrics reports and threshold lookup."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from clinmetrics.core.audit.logger import AuditLogger
    from clinmetrics.core.storage.repository import BiometricsRepository
    from clinmetrics.domains.biometrics.domain_logic.analyzer import BiometricsAnalyzer
    from clinmetrics.domains.biometrics.domain_logic.threshold_provider import (
        ThresholdProvider,
    )

from clinmetrics.domains.biometrics.domain_logic.biometric_models import BiometricsReport
from clinmetrics.domains.biometrics.domain_logic.report_renderer import render_report_text

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("json", "text")


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def _parse_records(records_json: str) -> list[dict[str, Any]]:
    """Decode a JSON array of record objects.

    Raises:
        ValueError: If the input is not a JSON array of objects.
    """
    try:
        data = json.loads(records_json)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError(f"records_json is not valid JSON: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise ValueError("records_json must be a JSON array of record objects")
    return data


def _render(report: BiometricsReport, output_format: str) -> str:
    if output_format == "text":
        return render_report_text(report)
    return json.dumps(report.to_dict(), indent=2)


def register_physician_report_tools(
    mcp: FastMCP,
    analyzer: BiometricsAnalyzer,
    threshold_provider: ThresholdProvider,
    repository: BiometricsRepository | None = None,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register report tools. ``physician_report`` needs a repository."""

    async def _generate(
        tool_name: str,
        patient_id: str,
        records: list[Any],
        output_format: str,
    ) -> str:
        start_time = time.monotonic()
        tool_input = {"patient_id": patient_id, "output_format": output_format}
        try:
            report = await analyzer.generate_report(patient_id, records)
        except Exception as exc:
            elapsed_ms = (time.monotonic() - start_time) * 1000
            if audit_logger is not None:
                audit_logger.log_tool_call(
                    tool_name=tool_name,
                    tool_input=tool_input,
                    privacy_mode=threshold_provider.privacy_mode,
                    llm_provider=threshold_provider.provider_name,
                    duration_ms=elapsed_ms,
                    status="failure",
                    error_type=type(exc).__name__,
                )
            raise

        elapsed_ms = (time.monotonic() - start_time) * 1000
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name=tool_name,
                tool_input=tool_input,
                privacy_mode=threshold_provider.privacy_mode,
                llm_provider=threshold_provider.provider_name,
                llm_disclosed=(
                    report.threshold_source == "research" and threshold_provider.discloses_data
                ),
                duration_ms=elapsed_ms,
                metadata={
                    "records": len(records),
                    "threshold_source": report.threshold_source,
                    "threshold_breaches": report.summary.threshold_breaches,
                    "trajectory_alerts": report.summary.trajectory_alerts,
                },
            )
        return _render(report, output_format)

    @mcp.tool
    async def analyze_biometrics(
        ctx: Context,
        patient_id: str,
        records_json: str,
        output_format: str = "json",
    ) -> str:
        """Generate a physician report from caller-supplied biometric records.

        Nothing is stored. Records may arrive in any order and carry any
        subset of the eight metrics.

        Args:
            patient_id: Patient identifier.
            records_json: JSON array of objects with 'timepoint' and metric
                fields (e.g. [{"timepoint": "baseline", "gait_speed": 1.0}]).
            output_format: 'json' (structured report) or 'text' (physician summary).
        """
        if output_format not in OUTPUT_FORMATS:
            return _error("output_format must be one of: json | text")
        try:
            records = _parse_records(records_json)
        except ValueError as exc:
            return _error(str(exc))
        return await _generate("analyze_biometrics", patient_id, records, output_format)

    @mcp.tool
    def biometric_thresholds() -> str:
        """Return the evidence-based default thresholds, trajectory rules and references."""
        return json.dumps(threshold_provider.defaults.to_dict(), indent=2)

    if repository is None:
        return

    @mcp.tool
    async def physician_report(
        ctx: Context,
        patient_id: str,
        output_format: str = "json",
    ) -> str:
        """Generate a physician biometrics report from the patient's stored records.

        Covers per-metric baseline-to-latest trajectories, threshold breaches,
        trajectory alerts, cross-domain correlations, referral recommendations
        and supporting references.

        Args:
            patient_id: Patient identifier.
            output_format: 'json' (structured report) or 'text' (physician summary).
        """
        if output_format not in OUTPUT_FORMATS:
            return _error("output_format must be one of: json | text")

        records = repository.get_by_patient(patient_id)
        if audit_logger is not None:
            audit_logger.log_data_access(tool_name="physician_report", count=len(records))
        return await _generate("physician_report", patient_id, records, output_format)
