"""MCP Resources for biometric metric discovery."""

from __future__ import annotations

import json
from typing import Any

from fastmcp import FastMCP

from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRIC_CATEGORIES,
    METRICS,
    TIMEPOINT_LABELS,
    TIMEPOINTS,
)


def metric_catalog() -> dict[str, Any]:
    """Metrics grouped by category, plus the visit timepoints."""
    categories = []
    for key, title in METRIC_CATEGORIES.items():
        categories.append({
            "category": key,
            "title": title,
            "metrics": [
                {
                    "key": m.key,
                    "label": m.label,
                    "short_label": m.short_label,
                    "unit": m.unit,
                }
                for m in METRICS
                if m.category == key
            ],
        })
    return {
        "metric_count": len(METRICS),
        "categories": categories,
        "timepoints": [
            {"key": t, "label": TIMEPOINT_LABELS[t]} for t in TIMEPOINTS
        ],
    }


def register_biometrics_resources(mcp: FastMCP) -> None:
    """Register biometric catalog resources on the MCP server."""

    @mcp.resource("biometrics://metrics")
    def biometrics_metrics_resource() -> str:
        """The eight tracked biometrics, their units, categories and visit timepoints."""
        return json.dumps(metric_catalog(), indent=2)
