"""Course length calculators.

Two measures of how long a course has run:

- Calendar day-of-therapy counts wall-clock days from the start date. It
  drives the prolonged-therapy flag and the Continue check.
- Dose-based duration counts Given doses actually logged. It is the figure
  shown as the course duration on patient summaries.

The two diverge whenever doses are missed or not logged.
"""

from dataclasses import dataclass
from datetime import date, datetime

from .models import EpisodeState, TherapyEpisode
from .schedule import to_date, slots_per_day


def calendar_day_of_therapy(
    start_date: date | datetime,
    today: date | datetime | None = None,
) -> int:
    """Calendar day of therapy, with the start date as day 1."""
    reference = to_date(today) if today is not None else date.today()
    elapsed = (reference - to_date(start_date)).days
    return max(0, elapsed) + 1


@dataclass(frozen=True)
class DoseDuration:
    """Given-dose count split into whole days of therapy."""
    given: int
    doses_per_day: int | None  # None when the frequency is unknown
    full_days: int
    extra: int

    def format(self) -> str:
        if self.given == 0:
            return "0 doses"
        if self.doses_per_day is None:
            return f"{self.given} doses"
        if self.doses_per_day <= 1:
            return f"Day {self.given}"
        if self.extra == 0:
            return f"Day {self.full_days}"
        if self.full_days == 0:
            return f"{self.extra} doses"
        return f"Day {self.full_days} + {self.extra}"


def dose_duration_breakdown(episode: TherapyEpisode) -> DoseDuration:
    """Split the episode's Given doses into full days and leftover doses."""
    given = episode.administration_log.given_count()

    if not episode.frequency_hours or episode.frequency_hours <= 0:
        return DoseDuration(given=given, doses_per_day=None, full_days=0, extra=given)

    per_day = slots_per_day(episode.frequency_hours)
    full_days, extra = divmod(given, per_day)
    return DoseDuration(given=given, doses_per_day=per_day, full_days=full_days, extra=extra)


def dose_based_duration(episode: TherapyEpisode, active_display: bool = False) -> str:
    """Dose-based duration label, e.g. "Day 2 + 1".

    Args:
        episode: The course to measure.
        active_display: Report "Day 1" rather than "0 doses" for an active
            course with nothing logged yet.
    """
    breakdown = dose_duration_breakdown(episode)
    if breakdown.given == 0 and active_display and episode.state == EpisodeState.ACTIVE:
        return "Day 1"
    return breakdown.format()


def dose_progress_percent(episode: TherapyEpisode) -> int:
    """Given doses as a percentage of the planned course, capped at 100."""
    if not episode.planned_duration_days or episode.planned_duration_days <= 0:
        return 0

    planned_doses = episode.planned_duration_days * episode.slots_per_day
    given = episode.administration_log.given_count()
    return min(100, round(given * 100 / planned_doses))
