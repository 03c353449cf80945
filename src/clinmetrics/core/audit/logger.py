"""PHI-free audit trail for the biometrics server.

Each tool invocation, record read and record deletion becomes one
``audit_log`` row. Rows never hold measurements or raw tool input: the
input is reduced to a SHA-256 of its canonical JSON, and the row records
whether the research prompt left the process (``llm_disclosed``) under
which privacy mode.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from clinmetrics.core.storage.database import BiometricsDatabase, DatabaseError

logger = logging.getLogger(__name__)

ACTION_TOOL = "tool_invocation"
ACTION_READ = "data_access"
ACTION_DELETE = "data_delete"


def _hash_input(data: Any) -> str:
    """SHA-256 of canonical JSON, or ``""`` if ``data`` is not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class AuditEvent:
    action: str
    tool_name: str = ""
    tool_input_hash: str = ""
    privacy_mode: str | None = None
    llm_provider: str | None = None
    llm_disclosed: bool = False
    record_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self, event_id: str, timestamp: str) -> tuple[Any, ...]:
        """Column values in ``_INSERT`` order."""
        return (
            event_id,
            timestamp,
            self.action,
            self.tool_name or None,
            self.tool_input_hash or None,
            self.privacy_mode,
            self.llm_provider,
            int(self.llm_disclosed),
            self.record_id,
            None if self.duration_ms is None else round(self.duration_ms, 3),
            self.status,
            self.error_type,
            json.dumps(self.metadata, separators=(",", ":"), default=str)
            if self.metadata else None,
        )


_INSERT = """INSERT INTO audit_log
    (id, timestamp, action, tool_name, tool_input_hash, privacy_mode, llm_provider,
     llm_disclosed, record_id, duration_ms, status, error_type, metadata_json)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"""


def _where(**filters: Any) -> tuple[str, list[Any]]:
    """WHERE clause for equality filters plus an optional ``since`` lower bound."""
    clauses: list[str] = []
    params: list[Any] = []
    since = filters.pop("since", None)
    if since:
        clauses.append("timestamp >= ?")
        params.append(since)
    for column, value in filters.items():
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    return (" WHERE " + " AND ".join(clauses)) if clauses else "", params


def _decode(row: sqlite3.Row) -> dict[str, Any]:
    event = dict(row)
    raw = event.pop("metadata_json", None)
    event["metadata"] = json.loads(raw) if raw else {}
    event["llm_disclosed"] = bool(event["llm_disclosed"])
    return event


class AuditLogger:
    """Writes and queries ``audit_log``.

    A failed write is logged and returns ``""``; auditing never fails the
    tool call it describes.
    """

    def __init__(self, database: BiometricsDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        event_id = str(uuid.uuid4())
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            with self._db.transaction() as conn:
                conn.execute(_INSERT, event.to_row(event_id, timestamp))
        except (sqlite3.Error, DatabaseError):
            logger.exception("Failed to write audit event (action=%s)", event.action)
            return ""
        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        privacy_mode: str | None = None,
        llm_provider: str | None = None,
        llm_disclosed: bool = False,
        record_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log one MCP tool invocation. ``tool_input`` is hashed, never stored."""
        return self.log_event(AuditEvent(
            action=ACTION_TOOL,
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            privacy_mode=privacy_mode,
            llm_provider=llm_provider,
            llm_disclosed=llm_disclosed,
            record_id=record_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_access(self, *, tool_name: str, count: int) -> str:
        return self.log_event(AuditEvent(
            action=ACTION_READ, tool_name=tool_name, metadata={"records_read": count},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        record_id: str | None = None,
        count: int = 0,
    ) -> str:
        return self.log_event(AuditEvent(
            action=ACTION_DELETE,
            tool_name=tool_name,
            record_id=record_id,
            metadata={"records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Events newest first, with ``metadata`` decoded and ``llm_disclosed`` as bool."""
        where, params = _where(since=since, action=action, tool_name=tool_name)
        rows = self._db.connection.execute(
            f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            [*params, limit],
        ).fetchall()
        return [_decode(row) for row in rows]

    def count_events(self, *, since: str | None = None, action: str | None = None) -> int:
        where, params = _where(since=since, action=action)
        return self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{where}", params
        ).fetchone()[0]

    def count_disclosures(self, *, since: str | None = None) -> int:
        """Events where biometric data was sent to an external LLM."""
        where, params = _where(since=since, llm_disclosed=1)
        return self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{where}", params
        ).fetchone()[0]

    def summarize(self, *, since: str | None = None) -> dict[str, Any]:
        """Event counts per action and per tool, plus failures and disclosures."""
        where, params = _where(since=since)
        conn = self._db.connection
        by_action = {
            row["action"]: row["n"]
            for row in conn.execute(
                f"SELECT action, COUNT(*) AS n FROM audit_log{where} GROUP BY action", params
            )
        }
        by_tool = {
            row["tool_name"]: row["n"]
            for row in conn.execute(
                f"SELECT tool_name, COUNT(*) AS n FROM audit_log{where} "
                "GROUP BY tool_name ORDER BY n DESC, tool_name",
                params,
            )
            if row["tool_name"]
        }
        where_failed, failed_params = _where(since=since, status="failure")
        failures = conn.execute(
            f"SELECT COUNT(*) FROM audit_log{where_failed}", failed_params
        ).fetchone()[0]
        return {
            "total_events": sum(by_action.values()),
            "by_action": by_action,
            "by_tool": by_tool,
            "failures": failures,
            "llm_disclosures": self.count_disclosures(since=since),
        }
