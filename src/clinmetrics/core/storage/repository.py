"""Per-visit biometric records on top of BiometricsDatabase.

One row per (patient, timepoint). Metric names, timepoints and values are
validated on write; the eight values are stored as one encrypted JSON
object, and every write runs in its own transaction.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from clinmetrics.core.storage.database import BiometricsDatabase
from clinmetrics.core.storage.encryption import FieldEncryptor
from clinmetrics.domains.biometrics.domain_logic.biometric_models import (
    METRIC_KEYS,
    TIMEPOINTS,
    BiometricRecord,
)
from clinmetrics.domains.biometrics.domain_logic.series import coerce_numeric

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class BiometricsRepository:
    """CRUD repository for per-visit biometric records.

    Usage::

        db = BiometricsDatabase(":memory:")
        db.initialize()
        repo = BiometricsRepository(db, FieldEncryptor(key="..."))

        saved = repo.create(BiometricRecord(patient_id="p1", timepoint="baseline", gait_speed=1.1))
        history = repo.get_by_patient("p1")
    """

    def __init__(self, database: BiometricsDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_timepoint(timepoint: str) -> None:
        if timepoint not in TIMEPOINTS:
            raise RepositoryError(
                f"Unknown timepoint {timepoint!r}; expected one of: {', '.join(TIMEPOINTS)}"
            )

    @staticmethod
    def _clean_measurements(values: Mapping[str, Any]) -> dict[str, float | None]:
        """Validate metric names and coerce values; None clears a metric."""
        unknown = sorted(set(values) - set(METRIC_KEYS))
        if unknown:
            raise RepositoryError(f"Unknown biometric metric(s): {', '.join(unknown)}")

        cleaned: dict[str, float | None] = {}
        for metric, raw in values.items():
            if raw is None:
                cleaned[metric] = None
                continue
            number = coerce_numeric(raw)
            if number is None:
                raise RepositoryError(f"Value for {metric} is not a finite number: {raw!r}")
            cleaned[metric] = number
        return cleaned

    # ------------------------------------------------------------------
    # Create / upsert
    # ------------------------------------------------------------------

    def create(self, record: BiometricRecord) -> BiometricRecord:
        """Insert a new visit record.

        Raises:
            RepositoryError: If the timepoint or a metric is invalid, or the
                patient already has a record for this timepoint.
        """
        if not record.patient_id:
            raise RepositoryError("patient_id must not be empty")
        self._validate_timepoint(record.timepoint)
        measurements = self._clean_measurements(record.metric_values())

        rid = record.id or self._new_id()
        now = self._now_iso()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO biometrics
                       (id, patient_id, timepoint, measurements_enc, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (rid, record.patient_id, record.timepoint,
                     self._enc.encrypt(measurements), now, now),
                )
        except sqlite3.IntegrityError as exc:
            raise RepositoryError(
                f"Biometrics for timepoint {record.timepoint!r} already exist for this patient"
            ) from exc
        logger.info("Created biometrics record %s (timepoint=%s)", rid, record.timepoint)
        return self._require(rid)

    def upsert(self, record: BiometricRecord) -> BiometricRecord:
        """Create the visit record, or replace the measurements of the existing one."""
        existing = self.get_for_timepoint(record.patient_id, record.timepoint)
        if existing is None:
            return self.create(record)

        measurements = self._clean_measurements(record.metric_values())
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE biometrics SET measurements_enc = ?, updated_at = ? WHERE id = ?",
                (self._enc.encrypt(measurements), self._now_iso(), existing.id),
            )
        logger.info("Replaced biometrics record %s (timepoint=%s)", existing.id, record.timepoint)
        return self._require(existing.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> BiometricRecord | None:
        """Retrieve a record by ID, or None if not found."""
        row = self._db.connection.execute(
            "SELECT * FROM biometrics WHERE id = ?", (record_id,)
        ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def get_by_patient(self, patient_id: str) -> list[BiometricRecord]:
        """All of a patient's records, newest first."""
        rows = self._db.connection.execute(
            """SELECT * FROM biometrics WHERE patient_id = ?
               ORDER BY created_at DESC, rowid DESC""",
            (patient_id,),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_for_timepoint(self, patient_id: str, timepoint: str) -> BiometricRecord | None:
        """The patient's record for one timepoint, or None."""
        self._validate_timepoint(timepoint)
        row = self._db.connection.execute(
            "SELECT * FROM biometrics WHERE patient_id = ? AND timepoint = ?",
            (patient_id, timepoint),
        ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def count(self, patient_id: str | None = None) -> int:
        """Number of stored records, optionally for one patient."""
        if patient_id is None:
            row = self._db.connection.execute("SELECT COUNT(*) FROM biometrics").fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM biometrics WHERE patient_id = ?", (patient_id,)
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, record_id: str, updates: Mapping[str, Any]) -> BiometricRecord:
        """Apply a partial update: metric values and/or the timepoint.

        Metrics not named in ``updates`` keep their stored values.

        Raises:
            RepositoryError: If the record does not exist, a key is not
                updatable, or the new timepoint is already taken.
        """
        existing = self.get(record_id)
        if existing is None:
            raise RepositoryError(f"Biometrics record not found: {record_id}")

        changes = dict(updates)
        timepoint = changes.pop("timepoint", existing.timepoint)
        self._validate_timepoint(timepoint)

        measurements = existing.metric_values()
        measurements.update(self._clean_measurements(changes))

        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """UPDATE biometrics
                       SET timepoint = ?, measurements_enc = ?, updated_at = ?
                       WHERE id = ?""",
                    (timepoint, self._enc.encrypt(measurements), self._now_iso(), record_id),
                )
        except sqlite3.IntegrityError as exc:
            raise RepositoryError(
                f"Biometrics for timepoint {timepoint!r} already exist for this patient"
            ) from exc
        logger.info("Updated biometrics record %s (%d field(s))", record_id, len(updates))
        return self._require(record_id)

    # ------------------------------------------------------------------
    # Deletion (right to deletion)
    # ------------------------------------------------------------------

    def delete(self, record_id: str) -> bool:
        """Delete one record. Returns True if it existed."""
        with self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM biometrics WHERE id = ?", (record_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted biometrics record %s", record_id)
        return deleted

    def delete_patient_data(self, patient_id: str) -> int:
        """Delete every record of one patient. Returns the number removed."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM biometrics WHERE patient_id = ?", (patient_id,)
            )
        logger.warning("Deleted all biometrics for a patient: %d record(s) removed", cursor.rowcount)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Key rotation
    # ------------------------------------------------------------------

    def rotate_encryption(self) -> int:
        """Re-seal every stored visit under the current key. Returns rows rewritten.

        All rows are rotated in one transaction; a token no key can open
        aborts the whole pass.
        """
        with self._db.transaction() as conn:
            rows = conn.execute(
                "SELECT id, measurements_enc FROM biometrics WHERE measurements_enc != ''"
            ).fetchall()
            conn.executemany(
                "UPDATE biometrics SET measurements_enc = ? WHERE id = ?",
                [(self._enc.rotate(row["measurements_enc"]), row["id"]) for row in rows],
            )
        logger.info("Rotated encryption for %d biometrics record(s)", len(rows))
        return len(rows)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, record_id: str) -> BiometricRecord:
        record = self.get(record_id)
        if record is None:
            raise RepositoryError(f"Biometrics record vanished after write: {record_id}")
        return record

    def _row_to_record(self, row: Any) -> BiometricRecord:
        """Convert a database row to a BiometricRecord with decrypted values."""
        measurements = self._enc.decrypt(row["measurements_enc"] or "") or {}
        return BiometricRecord(
            patient_id=row["patient_id"],
            timepoint=row["timepoint"],
            id=row["id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            **{k: measurements.get(k) for k in METRIC_KEYS},
        )
