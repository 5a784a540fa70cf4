"""Read-only views of patient records for display.

Views are rebuilt from the record on every call and are never stored.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Any

from .administration import AdministrationEntry
from .durations import calendar_day_of_therapy, dose_based_duration, dose_progress_percent
from .episodes import can_continue, sort_episodes
from .formulary import classify_drug
from .models import PatientRecord, TherapyEpisode
from .risk import PatientFlags, compute_flags
from .schedule import day_number, log_window
from .transfers import current_location


def format_time_12h(value: time) -> str:
    """Format a dose time for display, e.g. "2:30 PM"."""
    hour = value.hour % 12 or 12
    suffix = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {suffix}"


@dataclass(frozen=True)
class SlotCell:
    """One dose slot in the log grid."""
    slot: int
    entry: AdministrationEntry | None = None

    @property
    def label(self) -> str:
        if self.entry is None:
            return ""
        if self.entry.is_given:
            return format_time_12h(self.entry.outcome.time)
        return f"Missed: {self.entry.outcome.reason}"


@dataclass(frozen=True)
class LogDay:
    """One calendar date of the log grid."""
    log_date: date
    day_number: int
    slots: list[SlotCell]


@dataclass
class EpisodeView:
    """Display state of one therapy episode."""
    episode: TherapyEpisode
    calendar_day: int
    dose_duration: str
    missed_count: int
    progress_percent: int
    continuable: bool
    resistant: bool
    formulary_class: str | None
    log_days: list[LogDay] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "episode_id": self.episode.id,
            "drug_name": self.episode.drug_name,
            "status": self.episode.state.value,
            "calendar_day": self.calendar_day,
            "dose_duration": self.dose_duration,
            "missed_count": self.missed_count,
            "progress_percent": self.progress_percent,
            "continuable": self.continuable,
            "resistant": self.resistant,
            "formulary_class": self.formulary_class,
        }


def build_log_grid(episode: TherapyEpisode, today: date | None = None) -> list[LogDay]:
    """Slot grid over the episode's log window, oldest date first."""
    dates = log_window(episode.start_date, episode.ended_at, today=today)
    log = episode.administration_log
    return [
        LogDay(
            log_date=log_date,
            day_number=day_number(episode.start_date, log_date),
            slots=[SlotCell(slot, log.get(log_date, slot)) for slot in range(episode.slots_per_day)],
        )
        for log_date in dates
    ]


def build_episode_view(episode: TherapyEpisode, today: date | None = None) -> EpisodeView:
    formulary_class = classify_drug(episode.drug_name)
    return EpisodeView(
        episode=episode,
        calendar_day=calendar_day_of_therapy(episode.start_date, today),
        dose_duration=dose_based_duration(episode, active_display=True),
        missed_count=episode.administration_log.missed_count(),
        progress_percent=dose_progress_percent(episode),
        continuable=can_continue(episode, today),
        resistant=bool(episode.susceptibility and episode.susceptibility.is_resistant),
        formulary_class=formulary_class.value if formulary_class else None,
        log_days=build_log_grid(episode, today),
    )


@dataclass
class PatientSummary:
    """Roster row for one patient."""
    record: PatientRecord
    flags: PatientFlags
    ward: str
    bed: str
    active_episodes: list[EpisodeView]
    episodes: list[EpisodeView]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record.id,
            "hospital_number": self.record.hospital_number,
            "patient_name": self.record.patient_name,
            "status": self.record.status.value,
            "ward": self.ward,
            "bed_number": self.bed,
            "flags": self.flags.to_dict(),
            "active_episodes": [v.to_dict() for v in self.active_episodes],
        }


def build_patient_summary(record: PatientRecord, today: date | None = None) -> PatientSummary:
    """Flags, location and episode views for a patient."""
    ward, bed = current_location(record)
    views = [build_episode_view(e, today) for e in sort_episodes(record.episodes)]
    return PatientSummary(
        record=record,
        flags=compute_flags(record, today),
        ward=ward,
        bed=bed,
        active_episodes=[v for v in views if v.episode.is_active],
        episodes=views,
    )
