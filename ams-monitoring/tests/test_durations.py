"""Tests for calendar day-of-therapy and dose-based duration."""

import pytest
from datetime import date, datetime, time, timedelta

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ams_src.administration import DoseGiven, DoseMissed
from ams_src.durations import (
    DoseDuration,
    calendar_day_of_therapy,
    dose_based_duration,
    dose_duration_breakdown,
    dose_progress_percent,
)
from ams_src.models import StoppedStatus, TherapyEpisode


def make_episode(frequency_hours=8, given=0, missed=0, start=date(2024, 1, 1), planned=None):
    """Episode with ``given`` Given doses and ``missed`` Missed doses filled slot by slot."""
    episode = TherapyEpisode(
        id="ep-1",
        drug_name="Meropenem",
        dose="1g",
        route="IV",
        start_date=start,
        frequency_hours=frequency_hours,
        planned_duration_days=planned,
    )
    per_day = episode.slots_per_day
    for n in range(given + missed):
        log_date = start + timedelta(days=n // per_day)
        outcome = DoseGiven(time(8, 0)) if n < given else DoseMissed("Patient Refused")
        episode.administration_log.record(log_date, n % per_day, outcome)
    return episode


class TestCalendarDayOfTherapy:
    """Test wall-clock day numbering."""

    def test_start_today_is_day_one(self):
        today = date.today()
        assert calendar_day_of_therapy(today, today) == 1

    def test_fourteen_days_ago_is_day_fifteen(self):
        today = date.today()
        assert calendar_day_of_therapy(today - timedelta(days=14), today) == 15

    def test_defaults_to_today(self):
        assert calendar_day_of_therapy(date.today() - timedelta(days=2)) == 3

    def test_future_start_is_day_one(self):
        assert calendar_day_of_therapy(date(2024, 1, 10), date(2024, 1, 5)) == 1

    def test_ignores_logging(self):
        """Calendar day is independent of doses logged."""
        episode = make_episode(given=0)
        assert calendar_day_of_therapy(episode.start_date, date(2024, 1, 5)) == 5


class TestDoseBasedDuration:
    """Test dose-based duration strings."""

    def test_no_doses(self):
        assert dose_based_duration(make_episode(given=0)) == "0 doses"

    def test_no_doses_active_display(self):
        """Active course with nothing logged reads Day 1 on display."""
        assert dose_based_duration(make_episode(given=0), active_display=True) == "Day 1"

    def test_no_doses_ended_course_active_display(self):
        episode = make_episode(given=0)
        episode.status = StoppedStatus(datetime(2024, 1, 2, 9, 0), "No Infection")
        assert dose_based_duration(episode, active_display=True) == "0 doses"

    @pytest.mark.parametrize("count", [1, 4, 11])
    def test_once_daily_reports_day_count(self, count):
        assert dose_based_duration(make_episode(frequency_hours=24, given=count)) == f"Day {count}"

    @pytest.mark.parametrize("count,expected", [
        (7, "Day 2 + 1"),
        (10, "Day 3 + 1"),
        (9, "Day 3"),
        (2, "2 doses"),
    ])
    def test_q8h(self, count, expected):
        assert dose_based_duration(make_episode(frequency_hours=8, given=count)) == expected

    @pytest.mark.parametrize("frequency_hours", [None, 0, -6])
    def test_unknown_frequency_reports_dose_count(self, frequency_hours):
        episode = make_episode(frequency_hours=8, given=3)
        episode.frequency_hours = frequency_hours
        assert dose_based_duration(episode) == "3 doses"
        assert dose_duration_breakdown(episode).doses_per_day is None

    def test_missed_doses_not_counted(self):
        episode = make_episode(frequency_hours=8, given=3, missed=2)
        assert dose_based_duration(episode) == "Day 1"

    def test_q6h_scenario(self):
        """Five Given and one Missed at q6h: day 3 by calendar, Day 1 + 1 by dose."""
        episode = make_episode(frequency_hours=6, given=5, missed=1)

        assert calendar_day_of_therapy(episode.start_date, date(2024, 1, 3)) == 3
        assert dose_based_duration(episode) == "Day 1 + 1"
        assert dose_duration_breakdown(episode) == DoseDuration(
            given=5, doses_per_day=4, full_days=1, extra=1
        )

    def test_metrics_diverge(self):
        """Calendar day keeps moving while the dose count does not."""
        episode = make_episode(frequency_hours=12, given=2)

        assert calendar_day_of_therapy(episode.start_date, date(2024, 1, 10)) == 10
        assert dose_based_duration(episode) == "Day 1"

    def test_recompute_is_idempotent(self):
        episode = make_episode(frequency_hours=8, given=7, missed=1)
        before = episode.to_dict()

        first = (dose_based_duration(episode), dose_duration_breakdown(episode))
        second = (dose_based_duration(episode), dose_duration_breakdown(episode))

        assert first == second
        assert episode.to_dict() == before


class TestDoseProgress:
    """Test progress towards the planned number of doses."""

    def test_no_plan(self):
        assert dose_progress_percent(make_episode(given=5, planned=None)) == 0

    def test_partial(self):
        # 7 days of q8h = 21 doses
        assert dose_progress_percent(make_episode(given=7, planned=7)) == 33

    def test_capped_at_100(self):
        assert dose_progress_percent(make_episode(frequency_hours=24, given=9, planned=7)) == 100
