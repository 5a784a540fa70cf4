"""SQLite document store for monitored patients.

Each patient record is kept as a single JSON document. Updates replace
whole top-level fields of that document (for example the entire
``antimicrobials`` list), never fields nested inside them.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import config
from .exceptions import PersistenceError, RecordNotFoundError
from .models import AdmissionStatus, PatientRecord

logger = logging.getLogger(__name__)


class MonitoringDatabase:
    """SQLite database for AMS patient monitoring."""

    def __init__(self, db_path: str | None = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database. Uses config default if None.
        """
        self.db_path = db_path or config.MONITORING_DB_PATH
        self._ensure_db_exists()

    def _ensure_db_exists(self) -> None:
        """Create database and tables if they don't exist."""
        db_path = Path(self.db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)

        schema_path = Path(__file__).parent / "schema.sql"
        schema = schema_path.read_text()

        with self._get_connection() as conn:
            conn.executescript(schema)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager.

        sqlite3 errors raised inside the block surface as PersistenceError.
        """
        db_path = Path(self.db_path).expanduser()
        try:
            conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as e:
            logger.warning(f"Could not open monitoring database {db_path}: {e}")
            raise PersistenceError(f"Could not open monitoring database: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            logger.warning(f"Monitoring database error: {e}")
            raise PersistenceError(f"Monitoring database error: {e}") from e
        finally:
            conn.close()

    def create(self, record: PatientRecord) -> int:
        """Store a new patient record.

        Args:
            record: The record to store. Its ``id`` is ignored.

        Returns:
            The id assigned to the record.
        """
        document = record.to_dict()
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO monitoring_patients (hospital_number, status, created_at, document)
                VALUES (?, ?, ?, ?)
                """,
                (
                    record.hospital_number,
                    record.status.value,
                    record.created_at.isoformat(),
                    json.dumps(document),
                ),
            )
            conn.commit()
            record_id = cursor.lastrowid

        logger.debug(f"Created monitoring record {record_id} for {record.hospital_number}")
        return record_id

    def get(self, record_id: int) -> PatientRecord | None:
        """Get a patient record by id.

        Returns:
            The record if found, None otherwise.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, document FROM monitoring_patients WHERE id = ?",
                (record_id,),
            )
            row = cursor.fetchone()

        if not row:
            return None
        return self._row_to_record(row)

    def fetch_all(self, status: AdmissionStatus | str | None = None) -> list[PatientRecord]:
        """List patient records, newest first.

        Args:
            status: Only return records with this admission status.
        """
        query = "SELECT id, document FROM monitoring_patients"
        params: list[Any] = []

        if status:
            query += " WHERE status = ?"
            params.append(status.value if isinstance(status, AdmissionStatus) else status)

        query += " ORDER BY created_at DESC, id DESC"

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            rows = cursor.fetchall()

        return [self._row_to_record(row) for row in rows]

    def update(self, record_id: int, fields: dict[str, Any]) -> None:
        """Replace top-level fields of a stored record.

        Args:
            record_id: The record to update.
            fields: Serialized values keyed by top-level document field.

        Raises:
            RecordNotFoundError: If no record has this id.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT document FROM monitoring_patients WHERE id = ?",
                (record_id,),
            )
            row = cursor.fetchone()
            if not row:
                raise RecordNotFoundError(f"Patient record {record_id} not found")

            document = json.loads(row["document"])
            document.update(fields)

            cursor.execute(
                """
                UPDATE monitoring_patients
                SET document = ?, status = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    json.dumps(document),
                    document.get("status") or AdmissionStatus.ADMITTED.value,
                    datetime.now().isoformat(),
                    record_id,
                ),
            )
            conn.commit()

        logger.debug(f"Updated monitoring record {record_id}: {sorted(fields)}")

    def _row_to_record(self, row: sqlite3.Row) -> PatientRecord:
        """Convert database row to PatientRecord."""
        return PatientRecord.from_dict(json.loads(row["document"]), record_id=row["id"])
