"""MCP Prompts: interaction templates for physician biometrics review."""

from __future__ import annotations

from fastmcp import FastMCP


def register_biometrics_prompts(mcp: FastMCP) -> None:
    """Register biometrics MCP prompts."""

    @mcp.prompt()
    def physician_review_prompt(patient_id: str) -> str:
        """Prompt template for reviewing a patient's biometric trajectory report."""
        return f"""Please review the biometric trajectory of patient {patient_id}.

1. Generate the physician report (physician_report tool) for this patient
2. Summarize the threshold breaches and trajectory alerts, most severe first
3. Explain any cross-domain correlations in clinical terms
4. List the referral recommendations with a one-line rationale each
5. Note which metrics have no follow-up data yet

Be concise and clinical. Flag anything that needs attention before the next visit."""

    @mcp.prompt()
    def visit_entry_prompt(patient_id: str, timepoint: str = "baseline") -> str:
        """Prompt template for recording a visit's measurements."""
        return f"""I need to record the {timepoint} visit measurements for patient {patient_id}.

Ask me for each of these, skipping any I don't have:
- 6-minute walk distance (m), FEV1 (% predicted)
- Gait speed (m/s), grip strength (kg)
- LDL-C (mg/dL), ALT (U/L)
- Quality of life (0-100), fatigue score (0-10)

Then save them with the record_biometrics tool and read them back to confirm."""
