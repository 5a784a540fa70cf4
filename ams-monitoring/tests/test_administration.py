"""Tests for the per-dose administration log."""

import pytest
from datetime import date, time

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ams_src.administration import (
    AdministrationEntry,
    AdministrationLog,
    DoseGiven,
    DoseMissed,
    LogKey,
    parse_time_of_day,
)


@pytest.fixture
def log():
    """Log with a mix of Given and Missed entries over two days."""
    log = AdministrationLog("ep-1")
    log.record(date(2024, 1, 1), 0, DoseGiven(time(8, 0)))
    log.record(date(2024, 1, 1), 2, DoseMissed("Patient Refused"))
    log.record(date(2024, 1, 1), 1, DoseGiven(time(16, 0)))
    log.record(date(2024, 1, 2), 0, DoseGiven(time(7, 45)))
    return log


class TestParseTimeOfDay:
    """Test dose time parsing."""

    def test_24_hour(self):
        assert parse_time_of_day("14:30") == time(14, 30)
        assert parse_time_of_day("08:05:00") == time(8, 5)

    def test_12_hour(self):
        assert parse_time_of_day("2:30 PM") == time(14, 30)
        assert parse_time_of_day("12:00 AM") == time(0, 0)
        assert parse_time_of_day("9:15am") == time(9, 15)

    def test_time_passes_through(self):
        assert parse_time_of_day(time(6, 0)) == time(6, 0)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_time_of_day("later")


class TestAdministrationLog:
    """Test the composite-key log."""

    def test_record_and_get(self, log):
        entry = log.get(date(2024, 1, 1), 0)
        assert entry.is_given
        assert entry.outcome.time == time(8, 0)
        assert entry.key == LogKey("ep-1", date(2024, 1, 1), 0)

    def test_one_entry_per_slot(self, log):
        """Writing to an occupied key replaces the entry."""
        log.record(date(2024, 1, 1), 0, DoseMissed("NPO / Procedure"))

        assert len(log) == 4
        assert log.get(date(2024, 1, 1), 0).is_missed

    def test_is_occupied(self, log):
        assert log.is_occupied(date(2024, 1, 1), 2)
        assert not log.is_occupied(date(2024, 1, 2), 1)

    def test_remove(self, log):
        removed = log.remove(date(2024, 1, 1), 2)

        assert removed.is_missed
        assert not log.is_occupied(date(2024, 1, 1), 2)
        assert len(log) == 3

    def test_remove_empty_slot(self, log):
        with pytest.raises(KeyError):
            log.remove(date(2024, 1, 5), 0)

    def test_entries_for_date_orders_given_by_time_then_missed(self, log):
        """Given entries sort by time; Missed entries come after them."""
        entries = log.entries_for_date(date(2024, 1, 1))

        assert [e.status for e in entries] == ["Given", "Given", "Missed"]
        assert [e.outcome.time for e in entries[:2]] == [time(8, 0), time(16, 0)]

    def test_entries_between(self, log):
        """Range scan is ordered by date then slot."""
        entries = log.entries_between(date(2024, 1, 1), date(2024, 1, 2))
        assert [(e.log_date.day, e.slot) for e in entries] == [(1, 0), (1, 1), (1, 2), (2, 0)]

        assert len(log.entries_between(date(2024, 1, 2), date(2024, 1, 2))) == 1

    def test_counts(self, log):
        assert log.given_count() == 3
        assert log.missed_count() == 1

    def test_dates(self, log):
        assert log.dates() == [date(2024, 1, 1), date(2024, 1, 2)]

    def test_contains_key(self, log):
        assert LogKey("ep-1", date(2024, 1, 2), 0) in log
        assert LogKey("ep-2", date(2024, 1, 2), 0) not in log


class TestSerialization:
    """Test stored forms of the log."""

    def test_entry_to_dict(self):
        given = AdministrationEntry("ep-1", date(2024, 1, 1), 1, DoseGiven(time(14, 5)))
        missed = AdministrationEntry("ep-1", date(2024, 1, 1), 2, DoseMissed("Drug Unavailable"))

        assert given.to_dict() == {"date": "2024-01-01", "slot": 1, "status": "Given", "time": "14:05"}
        assert missed.to_dict() == {
            "date": "2024-01-01",
            "slot": 2,
            "status": "Missed",
            "reason": "Drug Unavailable",
        }

    def test_flat_list_round_trip(self, log):
        restored = AdministrationLog.from_data("ep-1", log.to_list())
        assert restored == log

    def test_legacy_date_keyed_mapping(self):
        """Older records store a list per date; list position is the slot."""
        data = {
            "2024-01-01": ["08:00", {"status": "Missed", "reason": "Patient Off Ward"}],
            "2024-01-02": [{"status": "Given", "time": "2:00 PM"}],
        }
        log = AdministrationLog.from_data("ep-9", data)

        assert len(log) == 3
        assert log.get(date(2024, 1, 1), 0).outcome == DoseGiven(time(8, 0))
        assert log.get(date(2024, 1, 1), 1).outcome == DoseMissed("Patient Off Ward")
        assert log.get(date(2024, 1, 2), 0).outcome == DoseGiven(time(14, 0))

    def test_empty_data(self):
        assert len(AdministrationLog.from_data("ep-1", None)) == 0
        assert len(AdministrationLog.from_data("ep-1", [])) == 0
