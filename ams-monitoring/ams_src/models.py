"""Data models for AMS therapy monitoring."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar

from .administration import AdministrationLog
from .schedule import slots_per_day


def _parse_datetime(val: Any) -> datetime | None:
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val
    return datetime.fromisoformat(val)


def _parse_date(val: Any) -> date | None:
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    # Full timestamps are accepted and truncated to the calendar date
    return datetime.fromisoformat(val).date() if "T" in val else date.fromisoformat(val)


def _isoformat(val: date | datetime | None) -> str | None:
    return val.isoformat() if val else None


class AdmissionStatus(Enum):
    """Hospitalization status of a monitored patient."""
    ADMITTED = "Admitted"
    DISCHARGED = "Discharged"
    EXPIRED = "Expired"


class EpisodeState(Enum):
    """Lifecycle state of an antimicrobial course."""
    ACTIVE = "Active"
    STOPPED = "Stopped"
    COMPLETED = "Completed"
    SHIFTED = "Shifted"


class _ReasonChoices:
    """Dropdown helpers shared by the fixed reason sets.

    Member values are the display text stored in the record. Every set has
    an OTHER member whose final reason is the clinician's free text.
    """

    @classmethod
    def display_name(cls, reason: "Enum | str") -> str:
        """Get human-readable display name for a reason."""
        if isinstance(reason, str):
            try:
                reason = cls(reason)
            except ValueError:
                return reason  # Free-text reason, return as-is
        return reason.value

    @classmethod
    def all_options(cls) -> list[tuple[str, str]]:
        """Get all options as (value, display_name) tuples for dropdowns."""
        return [(r.value, cls.display_name(r)) for r in cls]


class StopReason(_ReasonChoices, Enum):
    """Reasons for stopping an antimicrobial."""
    DE_ESCALATION = "De-escalation"
    ADVERSE_EVENT = "Adverse Event / Toxicity"
    NO_INFECTION = "No Infection"
    CLINICAL_FAILURE = "Clinical Failure"
    RESISTANT_ORGANISM = "Resistant Organism"
    PALLIATIVE = "Palliative / Comfort Care"
    DISCHARGED_OR_EXPIRED = "Patient Discharged / Expired"
    OTHER = "Others (Specify)"


class ShiftReason(_ReasonChoices, Enum):
    """Reasons for shifting to another agent or route."""
    IV_TO_PO = "IV to PO Switch"
    ESCALATION = "Escalation (Broadening)"
    DE_ESCALATION = "De-escalation (Narrowing)"
    RENAL_ADJUSTMENT = "Renal Adjustment"
    ADVERSE_EVENT = "Adverse Event"
    OTHER = "Others (Specify)"


class DoseChangeReason(_ReasonChoices, Enum):
    """Reasons for changing the dose of an active course."""
    RENAL_ADJUSTMENT = "Renal Adjustment"
    HEPATIC_ADJUSTMENT = "Hepatic Adjustment"
    CLINICAL_IMPROVEMENT = "Clinical Improvement (De-escalation)"
    CLINICAL_WORSENING = "Clinical Worsening (Escalation)"
    ADVERSE_EVENT = "Adverse Event"
    SOURCE_CONTROL = "Source Control Achieved"
    OTHER = "Others (Specify)"


class MissedDoseReason(_ReasonChoices, Enum):
    """Reasons a scheduled dose was not given."""
    PATIENT_REFUSED = "Patient Refused"
    NPO_OR_PROCEDURE = "NPO / Procedure"
    DRUG_UNAVAILABLE = "Drug Unavailable"
    NO_IV_ACCESS = "No IV Access"
    OFF_WARD = "Patient Off Ward"
    HELD_BY_PHYSICIAN = "Held per Physician Order"
    OTHER = "Others (Specify)"


@dataclass(frozen=True)
class ReasonSelection:
    """A reason picked from a fixed set, with free text for "Others"."""
    choice: Enum | str | None
    other_text: str = ""


# --- Episode status variants ---
# Each variant carries only the terminal fields of its own state.

@dataclass(frozen=True)
class ActiveStatus:
    """Course is running."""
    state: ClassVar[EpisodeState] = EpisodeState.ACTIVE

    @property
    def ended_at(self) -> datetime | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.state.value}


@dataclass(frozen=True)
class StoppedStatus:
    """Course was discontinued."""
    stopped_at: datetime
    reason: str
    state: ClassVar[EpisodeState] = EpisodeState.STOPPED

    @property
    def ended_at(self) -> datetime | None:
        return self.stopped_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.state.value,
            "stop_date": self.stopped_at.isoformat(),
            "stop_reason": self.reason,
        }


@dataclass(frozen=True)
class CompletedStatus:
    """Course ran to completion."""
    completed_at: datetime
    state: ClassVar[EpisodeState] = EpisodeState.COMPLETED

    @property
    def ended_at(self) -> datetime | None:
        return self.completed_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.state.value,
            "completed_at": self.completed_at.isoformat(),
        }


@dataclass(frozen=True)
class ShiftedStatus:
    """Course was switched to another agent or route."""
    shifted_at: datetime
    reason: str
    state: ClassVar[EpisodeState] = EpisodeState.SHIFTED

    @property
    def ended_at(self) -> datetime | None:
        return self.shifted_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.state.value,
            "shifted_at": self.shifted_at.isoformat(),
            "shift_reason": self.reason,
        }


EpisodeStatus = ActiveStatus | StoppedStatus | CompletedStatus | ShiftedStatus


def _ended_at(data: dict[str, Any], key: str) -> datetime:
    """End timestamp of a finished course.

    Documents missing it fall back to midnight on the start date.
    """
    ended = _parse_datetime(data.get(key))
    if ended is not None:
        return ended
    start = _parse_date(data.get("start_date")) or date.today()
    return datetime.combine(start, datetime.min.time())


def status_from_dict(data: dict[str, Any]) -> EpisodeStatus:
    """Rebuild the status variant from a flattened episode document."""
    state = EpisodeState(data.get("status") or EpisodeState.ACTIVE.value)
    if state == EpisodeState.STOPPED:
        return StoppedStatus(
            stopped_at=_ended_at(data, "stop_date"),
            reason=data.get("stop_reason") or "",
        )
    if state == EpisodeState.COMPLETED:
        return CompletedStatus(completed_at=_ended_at(data, "completed_at"))
    if state == EpisodeState.SHIFTED:
        return ShiftedStatus(
            shifted_at=_ended_at(data, "shifted_at"),
            reason=data.get("shift_reason") or "",
        )
    return ActiveStatus()


@dataclass(frozen=True)
class ChangeLogEntry:
    """Audit row appended when the dose of a course changes."""
    changed_at: datetime
    old_value: str
    new_value: str
    reason: str
    change_type: str = "Dose Change"

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.changed_at.isoformat(),
            "type": self.change_type,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeLogEntry":
        return cls(
            changed_at=_parse_datetime(data["date"]),
            old_value=data.get("oldValue") or "",
            new_value=data.get("newValue") or "",
            reason=data.get("reason") or "",
            change_type=data.get("type") or "Dose Change",
        )


@dataclass(frozen=True)
class SusceptibilityNote:
    """Culture and sensitivity annotation for a course."""
    info: str
    noted_on: date | None = None

    @property
    def is_resistant(self) -> bool:
        return "resist" in self.info.lower()


@dataclass(frozen=True)
class TransferLogEntry:
    """One ward/bed move."""
    transferred_at: datetime
    from_ward: str
    from_bed: str
    to_ward: str
    to_bed: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.transferred_at.isoformat(),
            "from_ward": self.from_ward,
            "from_bed": self.from_bed,
            "to_ward": self.to_ward,
            "to_bed": self.to_bed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransferLogEntry":
        return cls(
            transferred_at=_parse_datetime(data["date"]),
            from_ward=data.get("from_ward") or "",
            from_bed=data.get("from_bed") or "",
            to_ward=data.get("to_ward") or "",
            to_bed=data.get("to_bed") or "",
        )


@dataclass
class TherapyEpisode:
    """One antimicrobial course prescribed to a patient."""
    id: str
    drug_name: str
    dose: str
    route: str
    start_date: date

    frequency_hours: int | None = None
    planned_duration_days: int | None = None

    # Prescribers
    requesting_clinician: str = ""
    ids_in_charge: str | None = None

    # Lifecycle
    status: EpisodeStatus = field(default_factory=ActiveStatus)
    susceptibility: SusceptibilityNote | None = None

    # Dose events and dose change history
    administration_log: AdministrationLog | None = None
    change_log: list[ChangeLogEntry] = field(default_factory=list)

    def __post_init__(self):
        if self.administration_log is None:
            self.administration_log = AdministrationLog(self.id)

    @property
    def state(self) -> EpisodeState:
        return self.status.state

    @property
    def is_active(self) -> bool:
        return self.status.state == EpisodeState.ACTIVE

    @property
    def ended_at(self) -> datetime | None:
        return self.status.ended_at

    @property
    def slots_per_day(self) -> int:
        return slots_per_day(self.frequency_hours)

    @property
    def frequency_label(self) -> str:
        if not self.frequency_hours:
            return ""
        return f"Every {self.frequency_hours} Hours"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = {
            "id": self.id,
            "drug_name": self.drug_name,
            "dose": self.dose,
            "route": self.route,
            "frequency": self.frequency_label,
            "frequency_hours": self.frequency_hours,
            "start_date": self.start_date.isoformat(),
            "planned_duration": self.planned_duration_days,
            "requesting_resident": self.requesting_clinician,
            "ids_in_charge": self.ids_in_charge,
            "sensitivity_info": self.susceptibility.info if self.susceptibility else None,
            "sensitivity_date": _isoformat(self.susceptibility.noted_on) if self.susceptibility else None,
            "administration_log": self.administration_log.to_list(),
            "change_history": [entry.to_dict() for entry in self.change_log],
        }
        data.update(self.status.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TherapyEpisode":
        """Create from a stored episode document."""
        episode_id = str(data["id"])

        susceptibility = None
        if data.get("sensitivity_info"):
            susceptibility = SusceptibilityNote(
                info=data["sensitivity_info"],
                noted_on=_parse_date(data.get("sensitivity_date")),
            )

        planned = data.get("planned_duration")
        if isinstance(planned, str):
            # Older records hold free text such as "7" or "7 days"
            digits = planned.strip().split(" ")[0]
            planned = int(digits) if digits.isdigit() else None

        return cls(
            id=episode_id,
            drug_name=data.get("drug_name") or "",
            dose=data.get("dose") or "",
            route=data.get("route") or "",
            start_date=_parse_date(data["start_date"]),
            frequency_hours=data.get("frequency_hours"),
            planned_duration_days=planned,
            requesting_clinician=data.get("requesting_resident") or "",
            ids_in_charge=data.get("ids_in_charge"),
            status=status_from_dict(data),
            susceptibility=susceptibility,
            administration_log=AdministrationLog.from_data(
                episode_id, data.get("administration_log")
            ),
            change_log=[ChangeLogEntry.from_dict(c) for c in data.get("change_history") or []],
        )


@dataclass
class PatientRecord:
    """One hospitalization of a patient under AMS monitoring."""
    hospital_number: str
    patient_name: str
    ward: str
    bed_number: str = ""

    # Demographics
    age: str = ""
    sex: str = ""
    date_of_admission: date | None = None

    # Admission lifecycle
    status: AdmissionStatus = AdmissionStatus.ADMITTED
    discharged_at: datetime | None = None

    # Renal function (eGFR is computed upstream and stored as text)
    latest_creatinine: str = ""
    egfr: str = ""
    dialysis: bool = False

    infectious_diagnosis: str = ""

    episodes: list[TherapyEpisode] = field(default_factory=list)
    transfer_history: list[TransferLogEntry] = field(default_factory=list)

    created_at: datetime = field(default_factory=datetime.now)
    last_updated_by: str | None = None

    # Assigned by the document store
    id: int | None = None

    @property
    def is_admitted(self) -> bool:
        return self.status == AdmissionStatus.ADMITTED

    def active_episodes(self) -> list[TherapyEpisode]:
        return [e for e in self.episodes if e.is_active]

    def get_episode(self, episode_id: str) -> TherapyEpisode | None:
        for episode in self.episodes:
            if episode.id == episode_id:
                return episode
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored document (the id is kept outside it)."""
        return {
            "hospital_number": self.hospital_number,
            "patient_name": self.patient_name,
            "ward": self.ward,
            "bed_number": self.bed_number,
            "age": self.age,
            "sex": self.sex,
            "date_of_admission": _isoformat(self.date_of_admission),
            "status": self.status.value,
            "discharged_at": _isoformat(self.discharged_at),
            "latest_creatinine": self.latest_creatinine,
            "egfr": self.egfr,
            "dialysis_status": "Yes" if self.dialysis else "No",
            "infectious_diagnosis": self.infectious_diagnosis,
            "antimicrobials": [e.to_dict() for e in self.episodes],
            "transfer_history": [t.to_dict() for t in self.transfer_history],
            "created_at": _isoformat(self.created_at),
            "last_updated_by": self.last_updated_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], record_id: int | None = None) -> "PatientRecord":
        """Create from a stored document."""
        dialysis = data.get("dialysis_status")
        if isinstance(dialysis, str):
            dialysis = dialysis.lower() == "yes"

        return cls(
            id=record_id if record_id is not None else data.get("id"),
            hospital_number=data.get("hospital_number") or "",
            patient_name=data.get("patient_name") or "",
            ward=data.get("ward") or "",
            bed_number=data.get("bed_number") or "",
            age=str(data.get("age") or ""),
            sex=data.get("sex") or "",
            date_of_admission=_parse_date(data.get("date_of_admission")),
            status=AdmissionStatus(data.get("status") or AdmissionStatus.ADMITTED.value),
            discharged_at=_parse_datetime(data.get("discharged_at")),
            latest_creatinine=str(data.get("latest_creatinine") or ""),
            egfr=data.get("egfr") or "",
            dialysis=bool(dialysis),
            infectious_diagnosis=data.get("infectious_diagnosis") or "",
            episodes=[TherapyEpisode.from_dict(e) for e in data.get("antimicrobials") or []],
            transfer_history=[
                TransferLogEntry.from_dict(t) for t in data.get("transfer_history") or []
            ],
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
            last_updated_by=data.get("last_updated_by"),
        )


# Top-level document fields written by each kind of mutation
EPISODE_FIELDS = ("antimicrobials",)
TRANSFER_FIELDS = ("transfer_history", "ward", "bed_number")
DETAIL_FIELDS = (
    "ward",
    "bed_number",
    "age",
    "sex",
    "latest_creatinine",
    "egfr",
    "dialysis_status",
    "infectious_diagnosis",
)
ADMISSION_FIELDS = ("status", "discharged_at")
