"""Tests for AMS monitoring data models."""

import pytest
from datetime import date, datetime, time

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ams_src.administration import DoseGiven, DoseMissed
from ams_src.models import (
    ActiveStatus,
    AdmissionStatus,
    ChangeLogEntry,
    CompletedStatus,
    EpisodeState,
    MissedDoseReason,
    PatientRecord,
    ShiftedStatus,
    StoppedStatus,
    SusceptibilityNote,
    TherapyEpisode,
    TransferLogEntry,
    status_from_dict,
)


@pytest.fixture
def episode():
    ep = TherapyEpisode(
        id="ep-1",
        drug_name="Vancomycin",
        dose="1g",
        route="IV",
        start_date=date(2024, 1, 1),
        frequency_hours=12,
        planned_duration_days=7,
        requesting_clinician="Dr. Reyes",
        ids_in_charge="Dr. Tan",
        status=StoppedStatus(datetime(2024, 1, 5, 9, 0), "No Infection"),
        susceptibility=SusceptibilityNote("MRSA sensitive to vancomycin", date(2024, 1, 3)),
        change_log=[ChangeLogEntry(datetime(2024, 1, 2, 8, 0), "1g", "1.5g", "Renal Adjustment")],
    )
    ep.administration_log.record(date(2024, 1, 1), 0, DoseGiven(time(9, 0)))
    ep.administration_log.record(date(2024, 1, 1), 1, DoseMissed("No IV Access"))
    return ep


class TestEpisodeStatus:
    """Test the status variants."""

    def test_only_own_fields_serialized(self):
        assert ActiveStatus().to_dict() == {"status": "Active"}
        assert set(CompletedStatus(datetime(2024, 1, 1)).to_dict()) == {"status", "completed_at"}
        assert set(ShiftedStatus(datetime(2024, 1, 1), "IV to PO Switch").to_dict()) == {
            "status", "shifted_at", "shift_reason",
        }

    def test_ended_at(self):
        assert ActiveStatus().ended_at is None
        assert StoppedStatus(datetime(2024, 1, 4), "x").ended_at == datetime(2024, 1, 4)

    def test_status_from_dict(self):
        data = {"status": "Shifted", "shifted_at": "2024-01-04T10:00:00", "shift_reason": "Adverse Event"}
        status = status_from_dict(data)

        assert status == ShiftedStatus(datetime(2024, 1, 4, 10, 0), "Adverse Event")
        assert status.state == EpisodeState.SHIFTED

    def test_missing_status_is_active(self):
        assert status_from_dict({}) == ActiveStatus()

    @pytest.mark.parametrize("data", [
        {"status": "Stopped", "stop_reason": "x"},
        {"status": "Completed"},
        {"status": "Shifted", "shift_reason": "IV to PO Switch"},
    ])
    def test_missing_end_timestamp_uses_start_date(self, data):
        """An ended course stored without its timestamp still saves."""
        status = status_from_dict({**data, "start_date": "2024-01-02"})

        assert status.ended_at == datetime(2024, 1, 2)
        assert status.to_dict()["status"] == data["status"]


class TestTherapyEpisode:
    """Test TherapyEpisode model."""

    def test_derived_fields(self, episode):
        assert episode.slots_per_day == 2
        assert episode.frequency_label == "Every 12 Hours"
        assert not episode.is_active

    def test_round_trip(self, episode):
        restored = TherapyEpisode.from_dict(episode.to_dict())
        assert restored == episode

    def test_stored_field_names(self, episode):
        data = episode.to_dict()

        assert data["status"] == "Stopped"
        assert data["stop_reason"] == "No Infection"
        assert data["requesting_resident"] == "Dr. Reyes"
        assert data["sensitivity_info"] == "MRSA sensitive to vancomycin"
        assert data["change_history"][0]["type"] == "Dose Change"
        assert "completed_at" not in data

    def test_legacy_planned_duration_text(self):
        data = {"id": "ep-2", "drug_name": "Cefepime", "start_date": "2024-01-01", "planned_duration": "7 days"}
        assert TherapyEpisode.from_dict(data).planned_duration_days == 7

    def test_start_date_timestamp_is_truncated(self):
        data = {"id": "ep-3", "drug_name": "Cefepime", "start_date": "2024-01-01T08:00:00"}
        assert TherapyEpisode.from_dict(data).start_date == date(2024, 1, 1)


class TestPatientRecord:
    """Test PatientRecord model."""

    def test_round_trip(self, episode):
        record = PatientRecord(
            hospital_number="H-1001",
            patient_name="Test Patient",
            ward="ICU",
            bed_number="4",
            age="67",
            sex="F",
            date_of_admission=date(2024, 1, 1),
            egfr="28 mL/min/1.73m²",
            dialysis=True,
            episodes=[episode],
            transfer_history=[TransferLogEntry(datetime(2024, 1, 2, 10, 0), "ER", "1", "ICU", "4")],
            created_at=datetime(2024, 1, 1, 7, 0),
            last_updated_by="pharmacist",
        )

        data = record.to_dict()
        assert data["dialysis_status"] == "Yes"
        assert data["status"] == "Admitted"

        restored = PatientRecord.from_dict(data, record_id=12)
        assert restored.id == 12
        restored.id = None
        assert restored == record

    def test_defaults(self):
        record = PatientRecord.from_dict({"hospital_number": "H-1", "patient_name": "P", "ward": "ER"})

        assert record.status == AdmissionStatus.ADMITTED
        assert record.episodes == []
        assert record.dialysis is False

    def test_get_episode(self, episode):
        record = PatientRecord("H-1", "P", "ER", episodes=[episode])

        assert record.get_episode("ep-1") is episode
        assert record.get_episode("missing") is None
        assert record.active_episodes() == []


class TestReasonSets:
    """Test reason dropdown options."""

    def test_missed_dose_options(self):
        values = [value for value, _ in MissedDoseReason.all_options()]

        assert values[0] == "Patient Refused"
        assert values[-1] == "Others (Specify)"

    def test_display_name_of_free_text(self):
        assert MissedDoseReason.display_name("Vomited dose") == "Vomited dose"
