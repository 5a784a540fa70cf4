"""Tests for the SQLite monitoring document store."""

import pytest
import sqlite3
from datetime import date, datetime, time
from unittest.mock import patch

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ams_src.administration import DoseGiven
from ams_src.db import MonitoringDatabase
from ams_src.episodes import register_episode
from ams_src.exceptions import PersistenceError, RecordNotFoundError
from ams_src.models import AdmissionStatus, PatientRecord


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database."""
    db_path = tmp_path / "test_monitoring.db"
    return MonitoringDatabase(str(db_path))


def make_record(hospital_number="H-1001", created_at=None):
    episode = register_episode("ep-1", "Meropenem", "1g", "IV", 8, date(2024, 1, 1))
    episode.administration_log.record(date(2024, 1, 1), 0, DoseGiven(time(8, 0)))
    return PatientRecord(
        hospital_number=hospital_number,
        patient_name="Test Patient",
        ward="ICU",
        bed_number="2",
        created_at=created_at or datetime(2024, 1, 1, 7, 0),
        episodes=[episode],
    )


class TestMonitoringDatabase:
    """Test MonitoringDatabase operations."""

    def test_create_and_get(self, temp_db):
        record_id = temp_db.create(make_record())

        retrieved = temp_db.get(record_id)

        assert retrieved is not None
        assert retrieved.id == record_id
        assert retrieved.hospital_number == "H-1001"
        assert retrieved.episodes[0].administration_log.given_count() == 1

    def test_get_missing(self, temp_db):
        assert temp_db.get(999) is None

    def test_fetch_all_newest_first(self, temp_db):
        temp_db.create(make_record("H-1", datetime(2024, 1, 1)))
        temp_db.create(make_record("H-2", datetime(2024, 1, 3)))
        temp_db.create(make_record("H-3", datetime(2024, 1, 2)))

        records = temp_db.fetch_all()

        assert [r.hospital_number for r in records] == ["H-2", "H-3", "H-1"]

    def test_fetch_all_by_status(self, temp_db):
        admitted_id = temp_db.create(make_record("H-1"))
        discharged_id = temp_db.create(make_record("H-2"))
        temp_db.update(discharged_id, {"status": "Discharged", "discharged_at": "2024-01-05T10:00:00"})

        admitted = temp_db.fetch_all(AdmissionStatus.ADMITTED)
        discharged = temp_db.fetch_all("Discharged")

        assert [r.id for r in admitted] == [admitted_id]
        assert [r.id for r in discharged] == [discharged_id]
        assert discharged[0].discharged_at == datetime(2024, 1, 5, 10, 0)

    def test_update_replaces_top_level_fields_only(self, temp_db):
        record_id = temp_db.create(make_record())

        temp_db.update(record_id, {"ward": "HDU", "bed_number": "9"})
        updated = temp_db.get(record_id)

        assert (updated.ward, updated.bed_number) == ("HDU", "9")
        assert updated.patient_name == "Test Patient"
        assert len(updated.episodes) == 1

    def test_update_replaces_whole_episode_list(self, temp_db):
        record_id = temp_db.create(make_record())

        temp_db.update(record_id, {"antimicrobials": []})

        assert temp_db.get(record_id).episodes == []

    def test_update_missing(self, temp_db):
        with pytest.raises(RecordNotFoundError):
            temp_db.update(42, {"ward": "ICU"})

    def test_sqlite_errors_become_persistence_errors(self, temp_db):
        with patch("ams_src.db.sqlite3.connect", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(PersistenceError):
                temp_db.fetch_all()

    def test_write_failure_is_persistence_error(self, temp_db):
        record_id = temp_db.create(make_record())
        conn = sqlite3.connect(temp_db.db_path)
        conn.execute("DROP TABLE monitoring_patients")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceError):
            temp_db.update(record_id, {"ward": "ICU"})

    def test_expands_home_directory(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        db = MonitoringDatabase("~/nested/monitoring.db")

        assert (tmp_path / "nested" / "monitoring.db").exists()
        assert db.fetch_all() == []
