"""Tests for ward and bed transfer history."""

import pytest
from datetime import datetime

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ams_src.exceptions import RecordNotFoundError, ValidationError
from ams_src.models import PatientRecord
from ams_src.transfers import current_location, edit_transfer, transfer_patient


@pytest.fixture
def record():
    return PatientRecord(
        hospital_number="H-1001",
        patient_name="Test Patient",
        ward="ER",
        bed_number="3",
    )


@pytest.fixture
def moved_twice(record):
    first = transfer_patient(record, "Medical Ward", "12", datetime(2024, 1, 2, 10, 0))
    return transfer_patient(first, "ICU", "4", datetime(2024, 1, 5, 22, 15))


class TestTransferPatient:
    """Test appending transfers."""

    def test_records_origin_and_moves_patient(self, record):
        moved = transfer_patient(record, "ICU", "7", datetime(2024, 1, 2, 10, 0))

        entry = moved.transfer_history[-1]
        assert (entry.from_ward, entry.from_bed) == ("ER", "3")
        assert (entry.to_ward, entry.to_bed) == ("ICU", "7")
        assert (moved.ward, moved.bed_number) == ("ICU", "7")
        assert record.transfer_history == []  # input untouched

    def test_chain_of_transfers(self, moved_twice):
        second = moved_twice.transfer_history[1]
        assert (second.from_ward, second.from_bed) == ("Medical Ward", "12")

    @pytest.mark.parametrize("ward,bed,at", [
        ("", "7", datetime(2024, 1, 2)),
        ("ICU", " ", datetime(2024, 1, 2)),
        ("ICU", "7", None),
    ])
    def test_required_fields(self, record, ward, bed, at):
        with pytest.raises(ValidationError):
            transfer_patient(record, ward, bed, at)


class TestEditTransfer:
    """Test correcting past transfers."""

    def test_editing_latest_updates_live_location(self, moved_twice):
        edited = edit_transfer(moved_twice, 1, "HDU", "2")

        assert (edited.transfer_history[1].to_ward, edited.transfer_history[1].to_bed) == ("HDU", "2")
        assert (edited.ward, edited.bed_number) == ("HDU", "2")
        assert edited.transfer_history[1].transferred_at == datetime(2024, 1, 5, 22, 15)

    def test_editing_older_entry_keeps_live_location(self, moved_twice):
        edited = edit_transfer(moved_twice, 0, "Surgical Ward", "9", at=datetime(2024, 1, 2, 11, 0))

        assert edited.transfer_history[0].to_ward == "Surgical Ward"
        assert edited.transfer_history[0].transferred_at == datetime(2024, 1, 2, 11, 0)
        assert (edited.ward, edited.bed_number) == ("ICU", "4")

    def test_unknown_index(self, moved_twice):
        with pytest.raises(RecordNotFoundError):
            edit_transfer(moved_twice, 5, "ICU", "1")


class TestCurrentLocation:
    """Test the live location lookup."""

    def test_admission_location_without_history(self, record):
        assert current_location(record) == ("ER", "3")

    def test_latest_destination(self, moved_twice):
        assert current_location(moved_twice) == ("ICU", "4")
        assert current_location(moved_twice) == (moved_twice.ward, moved_twice.bed_number)
