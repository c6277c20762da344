"""SQLite session store for ripsfold.

RipsDB wraps a SQLite database with:
- Schema initialization from schema.sql
- Whole-session save/load preserving record and roster order
- Read-only query helper returning list[dict]
- Load logging for audit trail
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ripsfold.models import IngestBatch, PatientRecord, ServiceRecord

logger = logging.getLogger(__name__)

DEFAULT_DB = "ripsfold.db"

_RECORD_COLUMNS = ("service_code", "patient_id", "service_type", "service_name", "service_date")
_PATIENT_COLUMNS = ("patient_id", "sex", "birth_date", "full_name")


def _get_schema_sql() -> str:
    """Read the schema.sql file bundled with the package."""
    schema_path = Path(__file__).parent / "schema.sql"
    return schema_path.read_text()


def _content_hash(batch: IngestBatch) -> str:
    """SHA-256 over the batch's records (in order) and roster, for provenance."""
    h = hashlib.sha256()
    h.update(json.dumps([asdict(r) for r in batch.records], sort_keys=True).encode())
    h.update(json.dumps([asdict(p) for p in batch.roster.values()], sort_keys=True).encode())
    return h.hexdigest()


class RipsDB:
    """SQLite-backed session store."""

    def __init__(self, db_path: str = DEFAULT_DB):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")

    def init_schema(self) -> None:
        """Create all tables from schema.sql (IF NOT EXISTS)."""
        self.conn.executescript(_get_schema_sql())

    # --- Session ---

    def save_session(
        self, records: Iterable[ServiceRecord], patients: Iterable[PatientRecord]
    ) -> bool:
        """Replace the stored session with these records and patients.

        Runs in one transaction; on failure the previous session is kept and
        False is returned.
        """
        record_rows = [
            (i, *(getattr(r, c) for c in _RECORD_COLUMNS)) for i, r in enumerate(records)
        ]
        patient_rows = [
            (i, *(getattr(p, c) for c in _PATIENT_COLUMNS)) for i, p in enumerate(patients)
        ]
        try:
            with self.conn:
                self.conn.execute("DELETE FROM service_records")
                self.conn.execute("DELETE FROM patients")
                self.conn.executemany(
                    f"INSERT INTO service_records (position, {', '.join(_RECORD_COLUMNS)}) "
                    f"VALUES (?, ?, ?, ?, ?, ?)",
                    record_rows,
                )
                self.conn.executemany(
                    f"INSERT INTO patients (position, {', '.join(_PATIENT_COLUMNS)}) "
                    f"VALUES (?, ?, ?, ?, ?)",
                    patient_rows,
                )
        except sqlite3.Error as e:
            logger.error("Session save failed: %s", e)
            return False
        logger.info("Saved session: %d records, %d patients", len(record_rows), len(patient_rows))
        return True

    def load_session(self) -> tuple[list[ServiceRecord], list[PatientRecord]] | None:
        """Return (records, patients) in their saved order, or None if nothing is stored."""
        try:
            record_rows = self.query(
                f"SELECT {', '.join(_RECORD_COLUMNS)} FROM service_records ORDER BY position"
            )
            patient_rows = self.query(
                f"SELECT {', '.join(_PATIENT_COLUMNS)} FROM patients ORDER BY position"
            )
        except sqlite3.Error as e:
            logger.error("Session load failed: %s", e)
            return None
        if not record_rows and not patient_rows:
            return None
        records = [ServiceRecord(**{c: row[c] or "" for c in _RECORD_COLUMNS}) for row in record_rows]
        patients = [PatientRecord(**{c: row[c] or "" for c in _PATIENT_COLUMNS}) for row in patient_rows]
        return records, patients

    def clear_session(self) -> bool:
        """Delete the stored records and patients. The load log is kept."""
        try:
            with self.conn:
                self.conn.execute("DELETE FROM service_records")
                self.conn.execute("DELETE FROM patients")
        except sqlite3.Error as e:
            logger.error("Session clear failed: %s", e)
            return False
        return True

    # --- Audit ---

    def log_load(self, batch: IngestBatch, duration_seconds: float = 0.0) -> str:
        """Record an ingestion batch in load_log. Returns the batch content hash."""
        chash = _content_hash(batch)
        counts = batch.counts()
        now = datetime.now(timezone.utc).isoformat()
        with self.conn:
            self.conn.execute(
                """INSERT INTO load_log (
                    loaded_at, files, duration_seconds, content_hash,
                    files_count, service_records_count, patients_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    now,
                    json.dumps(batch.files, ensure_ascii=False),
                    duration_seconds,
                    chash,
                    counts["files"],
                    counts["service_records"],
                    counts["patients"],
                ),
            )
        return chash

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a read-only SQL query and return results as list of dicts."""
        cursor = self.conn.execute(sql, params)
        columns = [desc[0] for desc in cursor.description] if cursor.description else []
        return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]

    def summary(self) -> dict[str, int]:
        """Return row counts for all main tables (auto-discovered from schema)."""
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )
        result = {}
        for r in rows:
            table = r["name"]
            if table == "load_log":
                continue  # Exclude audit log from summary display
            row = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            result[table] = row[0]
        return result

    def sources(self) -> list[dict]:
        """Return load history, newest first."""
        rows = self.query(
            "SELECT loaded_at, files, duration_seconds, files_count, "
            "service_records_count, patients_count "
            "FROM load_log ORDER BY id DESC"
        )
        for row in rows:
            row["files"] = json.loads(row["files"] or "[]")
        return rows

    def last_load_counts(self) -> dict[str, int] | None:
        """Return record counts from the most recent load."""
        rows = self.query("SELECT * FROM load_log ORDER BY id DESC LIMIT 1")
        if not rows:
            return None
        row = rows[0]
        return {
            "files": row["files_count"],
            "service_records": row["service_records_count"],
            "patients": row["patients_count"],
        }

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
