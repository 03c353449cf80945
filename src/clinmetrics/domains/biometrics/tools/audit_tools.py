"""MCP tools for viewing the audit trail.

The audit log holds no biometric values: only tool names, hashed inputs,
record ids and whether data was disclosed to an external LLM.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from clinmetrics.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

_DISPLAY_FIELDS = (
    "timestamp",
    "action",
    "tool_name",
    "privacy_mode",
    "llm_provider",
    "llm_disclosed",
    "status",
    "duration_ms",
)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
        limit: int = 20,
    ) -> str:
        """View recent tool usage, data access and LLM disclosure counts.

        Args:
            days: Number of days to look back (default: 30).
            limit: Maximum number of recent events to list (default: 20).
        """
        if days < 1:
            return json.dumps({"status": "error", "message": "days must be at least 1."})

        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        summary = audit_logger.summarize(since=since)
        recent = [
            {key: event.get(key) for key in _DISPLAY_FIELDS}
            for event in audit_logger.get_events(since=since, limit=max(1, limit))
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            **summary,
            "recent_events": recent,
            "note": (
                "This audit trail contains no biometric values. "
                "It tracks tool usage and whether data was sent to external LLMs."
            ),
        }, indent=2)
