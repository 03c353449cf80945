"""SQLite storage for the biometrics store: connection, schema migrations, transactions.

Schema changes are an ordered list of migrations; each applied version is
recorded in ``schema_version`` so an older database file is upgraded in
place the next time it is opened.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NamedTuple

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    version: int
    description: str
    ddl: str


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "biometrics visits", """
        CREATE TABLE IF NOT EXISTS biometrics (
            id               TEXT PRIMARY KEY,
            patient_id       TEXT NOT NULL,
            timepoint        TEXT NOT NULL,
            measurements_enc TEXT,          -- Fernet token of the 8 metric values
            created_at       TEXT NOT NULL,
            updated_at       TEXT NOT NULL,
            UNIQUE (patient_id, timepoint)
        );
        CREATE INDEX IF NOT EXISTS idx_biometrics_patient ON biometrics(patient_id);
    """),
    Migration(2, "audit log", """
        CREATE TABLE IF NOT EXISTS audit_log (
            id              TEXT PRIMARY KEY,
            timestamp       TEXT NOT NULL,
            action          TEXT NOT NULL,
            tool_name       TEXT,
            tool_input_hash TEXT,
            privacy_mode    TEXT,
            llm_provider    TEXT,
            llm_disclosed   INTEGER NOT NULL DEFAULT 0,
            record_id       TEXT,
            duration_ms     REAL,
            status          TEXT NOT NULL DEFAULT 'success',
            error_type      TEXT,
            metadata_json   TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
        CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
    """),
)

SCHEMA_VERSION = MIGRATIONS[-1].version

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class DatabaseError(Exception):
    """Raised when the database cannot be opened, migrated or used."""


class BiometricsDatabase:
    """Owns the SQLite connection for the biometrics store.

    ``":memory:"`` gives a private in-process database (tests). Usage::

        with BiometricsDatabase("~/.clinmetrics/biometrics.db") as db:
            with db.transaction() as conn:
                conn.execute(...)
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection.

        Raises:
            DatabaseError: If :meth:`initialize` has not been called.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and apply pending migrations. Idempotent."""
        if self._conn is not None:
            return

        target = self._db_path
        try:
            if target != ":memory:":
                db_file = Path(target).expanduser()
                db_file.parent.mkdir(parents=True, exist_ok=True)
                target = str(db_file)
            # FastMCP may run sync tools on worker threads.
            conn = sqlite3.connect(target, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise DatabaseError(f"Cannot open database {self._db_path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        if target != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        self._conn = conn

        try:
            self._migrate()
        except DatabaseError:
            self.close()
            raise
        except sqlite3.Error as exc:
            self.close()
            raise DatabaseError(f"Schema migration failed for {self._db_path}: {exc}") from exc
        logger.info("Biometrics database ready: %s (schema v%d)", self._db_path, SCHEMA_VERSION)

    def _migrate(self) -> None:
        conn = self.connection
        conn.executescript(_VERSION_TABLE)
        current = self.get_schema_version()
        if current > SCHEMA_VERSION:
            raise DatabaseError(
                f"Database schema v{current} is newer than this server (v{SCHEMA_VERSION})"
            )

        for migration in MIGRATIONS:
            if migration.version <= current:
                continue
            conn.executescript(migration.ddl)
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (migration.version,))
            conn.commit()
            logger.info("Applied schema v%d: %s", migration.version, migration.description)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on any exception (which propagates)."""
        conn = self.connection
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Biometrics database closed: %s", self._db_path)

    def __enter__(self) -> BiometricsDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
