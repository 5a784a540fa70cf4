"""Therapy episode state machine.

Active is the initial state. Stop, Complete and Shift end the course and
Undo brings it back to Active. Dose Change and Continue leave the status
alone; only Dose Change writes to the change log.

Every operation validates first and returns a new episode. The input
episode is never modified, so a rejected action leaves the caller's copy
as it was.
"""

import copy
from datetime import date, datetime
from enum import Enum
from typing import Any

from .durations import calendar_day_of_therapy
from .exceptions import ConfirmationRequiredError, InvalidTransitionError, ValidationError
from .models import (
    ActiveStatus,
    ChangeLogEntry,
    CompletedStatus,
    DoseChangeReason,
    EpisodeState,
    ReasonSelection,
    ShiftedStatus,
    ShiftReason,
    StoppedStatus,
    StopReason,
    SusceptibilityNote,
    TherapyEpisode,
)
from .schedule import to_date


# Prescription fields that edit_episode may change
EDITABLE_FIELDS = (
    "drug_name",
    "dose",
    "route",
    "frequency_hours",
    "start_date",
    "planned_duration_days",
    "requesting_clinician",
    "ids_in_charge",
)

# Required on registration; also re-checked after an edit
REQUIRED_FIELDS = ("drug_name", "dose", "route", "frequency_hours", "start_date")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def resolve_reason(
    selection: ReasonSelection | Enum | str | None,
    field: str = "reason",
) -> str:
    """Final reason text for a selection from one of the reason sets.

    Enum members resolve to their display text. The "Others (Specify)"
    member resolves to the trimmed free text, which must not be empty.
    Plain strings are taken as free-text reasons.

    Raises:
        ValidationError: If no usable reason was given.
    """
    if isinstance(selection, ReasonSelection):
        choice, other_text = selection.choice, selection.other_text
    else:
        choice, other_text = selection, ""

    if isinstance(choice, Enum):
        if choice.name == "OTHER":
            text = (other_text or "").strip()
            if not text:
                raise ValidationError(field, "Please specify the reason")
            return text
        return choice.value

    if _is_blank(choice):
        raise ValidationError(field, "A reason is required")
    return choice.strip()


def _require_active(episode: TherapyEpisode, action: str) -> None:
    if episode.state != EpisodeState.ACTIVE:
        raise InvalidTransitionError(action, episode.state.value)


def _validate_required(values: dict[str, Any]) -> None:
    for name in REQUIRED_FIELDS:
        if _is_blank(values.get(name)):
            raise ValidationError(name, "This field is required")

    frequency = values["frequency_hours"]
    if not isinstance(frequency, int) or frequency <= 0:
        raise ValidationError("frequency_hours", "Frequency must be a positive number of hours")

    planned = values.get("planned_duration_days")
    if planned is not None and (not isinstance(planned, int) or planned < 0):
        raise ValidationError("planned_duration_days", "Planned duration must be a number of days")


def register_episode(
    episode_id: str,
    drug_name: str,
    dose: str,
    route: str,
    frequency_hours: int,
    start_date: date | datetime,
    planned_duration_days: int | None = None,
    requesting_clinician: str = "",
    ids_in_charge: str | None = None,
) -> TherapyEpisode:
    """Create a new Active episode with empty logs."""
    values = {
        "drug_name": drug_name,
        "dose": dose,
        "route": route,
        "frequency_hours": frequency_hours,
        "start_date": start_date,
        "planned_duration_days": planned_duration_days,
    }
    _validate_required(values)

    return TherapyEpisode(
        id=episode_id,
        drug_name=drug_name.strip(),
        dose=dose.strip(),
        route=route.strip(),
        frequency_hours=frequency_hours,
        start_date=to_date(start_date),
        planned_duration_days=planned_duration_days,
        requesting_clinician=(requesting_clinician or "").strip(),
        ids_in_charge=ids_in_charge,
    )


def edit_episode(episode: TherapyEpisode, **fields) -> TherapyEpisode:
    """Correct prescription details of an episode.

    Status, logs, change history and susceptibility are carried over as
    they are.

    Raises:
        ValidationError: On an unknown field or a required field left empty.
    """
    for name in fields:
        if name not in EDITABLE_FIELDS:
            raise ValidationError(name, "Field cannot be edited")

    current = {name: getattr(episode, name) for name in EDITABLE_FIELDS}
    current.update(fields)
    _validate_required(current)

    updated = copy.deepcopy(episode)
    for name, value in fields.items():
        if name == "start_date":
            value = to_date(value)
        elif isinstance(value, str):
            value = value.strip()
        setattr(updated, name, value)
    return updated


def stop_episode(
    episode: TherapyEpisode,
    reason: ReasonSelection | StopReason | str,
    at: datetime | None = None,
) -> TherapyEpisode:
    """Active -> Stopped."""
    _require_active(episode, "stop")
    reason_text = resolve_reason(reason, "stop_reason")

    updated = copy.deepcopy(episode)
    updated.status = StoppedStatus(stopped_at=at or datetime.now(), reason=reason_text)
    return updated


def complete_episode(episode: TherapyEpisode, at: datetime | None = None) -> TherapyEpisode:
    """Active -> Completed."""
    _require_active(episode, "complete")

    updated = copy.deepcopy(episode)
    updated.status = CompletedStatus(completed_at=at or datetime.now())
    return updated


def shift_episode(
    episode: TherapyEpisode,
    reason: ReasonSelection | ShiftReason | str,
    at: datetime | None = None,
) -> TherapyEpisode:
    """Active -> Shifted."""
    _require_active(episode, "shift")
    reason_text = resolve_reason(reason, "shift_reason")

    updated = copy.deepcopy(episode)
    updated.status = ShiftedStatus(shifted_at=at or datetime.now(), reason=reason_text)
    return updated


def undo_episode(episode: TherapyEpisode, confirmed: bool = False) -> TherapyEpisode:
    """Return an ended episode to Active.

    The terminal date and reason are dropped. Administration and change
    logs are not touched.

    Raises:
        InvalidTransitionError: If the episode is already Active.
        ConfirmationRequiredError: If ``confirmed`` is not True.
    """
    if episode.state == EpisodeState.ACTIVE:
        raise InvalidTransitionError("undo", episode.state.value)
    if confirmed is not True:
        raise ConfirmationRequiredError("Undo")

    updated = copy.deepcopy(episode)
    updated.status = ActiveStatus()
    return updated


def change_dose(
    episode: TherapyEpisode,
    new_dose: str,
    reason: ReasonSelection | DoseChangeReason | str,
    at: datetime | None = None,
) -> TherapyEpisode:
    """Set a new dose and append the change to the change log."""
    _require_active(episode, "change the dose of")
    if _is_blank(new_dose):
        raise ValidationError("new_dose", "New dose is required")
    reason_text = resolve_reason(reason, "change_reason")

    updated = copy.deepcopy(episode)
    updated.change_log.append(ChangeLogEntry(
        changed_at=at or datetime.now(),
        old_value=episode.dose,
        new_value=new_dose.strip(),
        reason=reason_text,
    ))
    updated.dose = new_dose.strip()
    return updated


def continue_episode(episode: TherapyEpisode, clinician: str) -> TherapyEpisode:
    """Keep a course running past its plan under the named clinician.

    Only the requesting clinician changes. Nothing is added to the change log.
    """
    _require_active(episode, "continue")
    if _is_blank(clinician):
        raise ValidationError("clinician", "Resident name is required")

    updated = copy.deepcopy(episode)
    updated.requesting_clinician = clinician.strip()
    return updated


def record_susceptibility(
    episode: TherapyEpisode,
    info: str,
    noted_on: date | datetime | None = None,
) -> TherapyEpisode:
    """Attach culture and sensitivity results to an episode."""
    if _is_blank(info):
        raise ValidationError("sensitivity_info", "Susceptibility details are required")

    updated = copy.deepcopy(episode)
    updated.susceptibility = SusceptibilityNote(
        info=info.strip(),
        noted_on=to_date(noted_on) if noted_on else date.today(),
    )
    return updated


def can_continue(episode: TherapyEpisode, today: date | None = None) -> bool:
    """Whether the course has reached its planned length and may be continued.

    A course with no planned duration counts as planned for 0 days.
    """
    if episode.state != EpisodeState.ACTIVE:
        return False
    planned = episode.planned_duration_days or 0
    return calendar_day_of_therapy(episode.start_date, today) >= planned


def _latest_date(episode: TherapyEpisode) -> date:
    ended = episode.ended_at
    if ended is None:
        return episode.start_date
    return max(to_date(ended), episode.start_date)


def sort_episodes(episodes: list[TherapyEpisode]) -> list[TherapyEpisode]:
    """Active episodes first, then ended ones with the most recent first."""
    active = [e for e in episodes if e.state == EpisodeState.ACTIVE]
    ended = [e for e in episodes if e.state != EpisodeState.ACTIVE]
    ended.sort(key=_latest_date, reverse=True)
    return active + ended
