"""Monitoring service: the single entry point that changes patient records.

Every operation follows the same cycle: load the stored record, copy it,
validate, apply the change to the copy, write the changed top-level fields
back, and return the copy. If validation or the write fails the stored
record and the caller's earlier record are both left as they were.
"""

import copy
import logging
import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import Callable

from . import episodes as episode_ops
from . import transfers as transfer_ops
from .administration import DoseGiven, DoseMissed, parse_time_of_day
from .config import config
from .db import MonitoringDatabase
from .exceptions import (
    ConfirmationRequiredError,
    InvalidTransitionError,
    RecordNotFoundError,
    ValidationError,
)
from .models import (
    ADMISSION_FIELDS,
    DETAIL_FIELDS,
    EPISODE_FIELDS,
    TRANSFER_FIELDS,
    AdmissionStatus,
    DoseChangeReason,
    MissedDoseReason,
    PatientRecord,
    ReasonSelection,
    ShiftReason,
    StopReason,
    TherapyEpisode,
)
from .projections import PatientSummary, build_patient_summary
from .risk import compute_kpis, filter_roster
from .schedule import to_date, window_contains

logger = logging.getLogger(__name__)


# Attributes update_patient_details may change
EDITABLE_DETAILS = (
    "ward",
    "bed_number",
    "age",
    "sex",
    "latest_creatinine",
    "egfr",
    "dialysis",
    "infectious_diagnosis",
)


class MonitoringService:
    """Applies stewardship actions to stored patient records."""

    def __init__(
        self,
        db: MonitoringDatabase | None = None,
        updated_by: str | None = None,
    ):
        """Initialize the service.

        Args:
            db: Document store. Opens the configured database if None.
            updated_by: Name recorded as last_updated_by on every write.
        """
        self.db = db or MonitoringDatabase(config.MONITORING_DB_PATH)
        self.updated_by = updated_by

    # --- Reads ---

    def list_patients(self, status: AdmissionStatus | str | None = None) -> list[PatientRecord]:
        return self.db.fetch_all(status)

    def get_patient(self, patient_id: int) -> PatientRecord:
        """Load a patient record.

        Raises:
            RecordNotFoundError: If no record has this id.
        """
        record = self.db.get(patient_id)
        if record is None:
            raise RecordNotFoundError(f"Patient record {patient_id} not found")
        return record

    def patient_summary(self, patient_id: int, today: date | None = None) -> PatientSummary:
        return build_patient_summary(self.get_patient(patient_id), today)

    def roster_kpis(self, now: datetime | None = None) -> dict[str, int]:
        """KPI counts over the admitted roster."""
        return compute_kpis(self.db.fetch_all(AdmissionStatus.ADMITTED), now)

    def filter_roster(self, kpi: str, now: datetime | None = None) -> list[PatientRecord]:
        """Admitted patients selected by a KPI predicate."""
        return filter_roster(self.db.fetch_all(AdmissionStatus.ADMITTED), kpi, now)

    # --- Persistence helpers ---

    def _save(
        self,
        record: PatientRecord,
        fields: tuple[str, ...],
        action: str,
    ) -> PatientRecord:
        """Write the named top-level fields of ``record`` and return it."""
        record.last_updated_by = self.updated_by
        document = record.to_dict()
        partial = {name: document[name] for name in fields}
        partial["last_updated_by"] = document["last_updated_by"]

        self.db.update(record.id, partial)
        logger.info(f"Patient {record.id}: {action}")
        return record

    def _find_episode(self, record: PatientRecord, episode_id: str) -> int:
        for index, episode in enumerate(record.episodes):
            if episode.id == episode_id:
                return index
        raise RecordNotFoundError(f"Episode {episode_id} not found for patient {record.id}")

    def _apply_to_episode(
        self,
        patient_id: int,
        episode_id: str,
        operation: Callable[[TherapyEpisode], TherapyEpisode],
        action: str,
    ) -> PatientRecord:
        """Run a pure episode operation and persist the episode list."""
        record = self.get_patient(patient_id)
        index = self._find_episode(record, episode_id)

        updated_episode = operation(record.episodes[index])

        updated = copy.deepcopy(record)
        updated.episodes[index] = updated_episode
        return self._save(updated, EPISODE_FIELDS, f"{action} episode {episode_id}")

    # --- Patient lifecycle ---

    def admit_patient(
        self,
        hospital_number: str,
        patient_name: str,
        ward: str,
        bed_number: str = "",
        age: str = "",
        sex: str = "",
        date_of_admission: date | None = None,
        latest_creatinine: str = "",
        egfr: str = "",
        dialysis: bool = False,
        infectious_diagnosis: str = "",
    ) -> PatientRecord:
        """Create a monitoring record for a newly admitted patient."""
        for field_name, value in (
            ("patient_name", patient_name),
            ("hospital_number", hospital_number),
            ("ward", ward),
        ):
            if not value or not value.strip():
                raise ValidationError(field_name, "This field is required")

        record = PatientRecord(
            hospital_number=hospital_number.strip(),
            patient_name=patient_name.strip(),
            ward=ward.strip(),
            bed_number=bed_number.strip(),
            age=age,
            sex=sex,
            date_of_admission=date_of_admission or date.today(),
            latest_creatinine=latest_creatinine,
            egfr=egfr,
            dialysis=dialysis,
            infectious_diagnosis=infectious_diagnosis,
            last_updated_by=self.updated_by,
        )
        record.id = self.db.create(record)
        logger.info(f"Patient {record.id}: admitted to {record.ward}")
        return record

    def update_patient_details(self, patient_id: int, **fields) -> PatientRecord:
        """Edit demographics, location, renal function or diagnosis."""
        for name in fields:
            if name not in EDITABLE_DETAILS:
                raise ValidationError(name, "Field cannot be edited")
        if "ward" in fields and not (fields["ward"] or "").strip():
            raise ValidationError("ward", "Ward is required")

        record = self.get_patient(patient_id)
        updated = copy.deepcopy(record)
        for name, value in fields.items():
            setattr(updated, name, value.strip() if isinstance(value, str) else value)
        return self._save(updated, DETAIL_FIELDS, "details updated")

    def _end_admission(
        self,
        patient_id: int,
        status: AdmissionStatus,
        action: str,
        at: datetime | None,
    ) -> PatientRecord:
        record = self.get_patient(patient_id)
        if record.status != AdmissionStatus.ADMITTED:
            raise InvalidTransitionError(action, record.status.value, subject="a patient")

        updated = copy.deepcopy(record)
        updated.status = status
        updated.discharged_at = at or datetime.now()
        return self._save(updated, ADMISSION_FIELDS, status.value.lower())

    def discharge_patient(self, patient_id: int, at: datetime | None = None) -> PatientRecord:
        return self._end_admission(patient_id, AdmissionStatus.DISCHARGED, "discharge", at)

    def mark_expired(self, patient_id: int, at: datetime | None = None) -> PatientRecord:
        return self._end_admission(patient_id, AdmissionStatus.EXPIRED, "mark as expired", at)

    def readmit_patient(self, patient_id: int) -> PatientRecord:
        """Return a discharged or expired patient to the admitted roster."""
        record = self.get_patient(patient_id)
        if record.status == AdmissionStatus.ADMITTED:
            raise InvalidTransitionError("readmit", record.status.value, subject="a patient")

        updated = copy.deepcopy(record)
        updated.status = AdmissionStatus.ADMITTED
        updated.discharged_at = None
        return self._save(updated, ADMISSION_FIELDS, "readmitted")

    # --- Transfers ---

    def transfer_patient(
        self,
        patient_id: int,
        to_ward: str,
        to_bed: str,
        at: datetime | None,
    ) -> PatientRecord:
        record = self.get_patient(patient_id)
        updated = transfer_ops.transfer_patient(record, to_ward, to_bed, at)
        return self._save(updated, TRANSFER_FIELDS, f"transferred to {updated.ward}/{updated.bed_number}")

    def edit_transfer(
        self,
        patient_id: int,
        index: int,
        to_ward: str,
        to_bed: str,
        at: datetime | None = None,
    ) -> PatientRecord:
        record = self.get_patient(patient_id)
        updated = transfer_ops.edit_transfer(record, index, to_ward, to_bed, at)
        return self._save(updated, TRANSFER_FIELDS, f"transfer {index} edited")

    # --- Episodes ---

    def register_episode(
        self,
        patient_id: int,
        drug_name: str,
        dose: str,
        route: str,
        frequency_hours: int,
        start_date: date | datetime,
        planned_duration_days: int | None = None,
        requesting_clinician: str = "",
        ids_in_charge: str | None = None,
        episode_id: str | None = None,
    ) -> PatientRecord:
        """Add a new Active course to a patient."""
        episode = episode_ops.register_episode(
            episode_id or str(uuid.uuid4()),
            drug_name,
            dose,
            route,
            frequency_hours,
            start_date,
            planned_duration_days=planned_duration_days,
            requesting_clinician=requesting_clinician,
            ids_in_charge=ids_in_charge,
        )

        record = self.get_patient(patient_id)
        if record.get_episode(episode.id) is not None:
            raise ValidationError("episode_id", f"Episode {episode.id} already exists")

        updated = copy.deepcopy(record)
        updated.episodes.append(episode)
        return self._save(updated, EPISODE_FIELDS, f"registered episode {episode.id} ({episode.drug_name})")

    def edit_episode(self, patient_id: int, episode_id: str, **fields) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.edit_episode(e, **fields),
            "edited",
        )

    def stop_episode(
        self,
        patient_id: int,
        episode_id: str,
        reason: ReasonSelection | StopReason | str,
        at: datetime | None = None,
    ) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.stop_episode(e, reason, at),
            "stopped",
        )

    def complete_episode(
        self,
        patient_id: int,
        episode_id: str,
        at: datetime | None = None,
    ) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.complete_episode(e, at),
            "completed",
        )

    def shift_episode(
        self,
        patient_id: int,
        episode_id: str,
        reason: ReasonSelection | ShiftReason | str,
        at: datetime | None = None,
    ) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.shift_episode(e, reason, at),
            "shifted",
        )

    def undo_episode(self, patient_id: int, episode_id: str, confirmed: bool = False) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.undo_episode(e, confirmed),
            "reverted",
        )

    def change_dose(
        self,
        patient_id: int,
        episode_id: str,
        new_dose: str,
        reason: ReasonSelection | DoseChangeReason | str,
        at: datetime | None = None,
    ) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.change_dose(e, new_dose, reason, at),
            "changed dose of",
        )

    def continue_episode(self, patient_id: int, episode_id: str, clinician: str) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.continue_episode(e, clinician),
            "continued",
        )

    def record_susceptibility(
        self,
        patient_id: int,
        episode_id: str,
        info: str,
        noted_on: date | None = None,
    ) -> PatientRecord:
        return self._apply_to_episode(
            patient_id, episode_id,
            lambda e: episode_ops.record_susceptibility(e, info, noted_on),
            "recorded susceptibility for",
        )

    # --- Administration log ---

    def log_dose(
        self,
        patient_id: int,
        episode_id: str,
        log_date: date | datetime,
        slot: int,
        given_time: time | str | None = None,
        missed_reason: ReasonSelection | MissedDoseReason | str | None = None,
        today: date | None = None,
    ) -> PatientRecord:
        """Record a Given or Missed dose into an empty slot.

        Exactly one of ``given_time`` and ``missed_reason`` must be supplied.
        """

        def _log(episode: TherapyEpisode) -> TherapyEpisode:
            if not episode.is_active:
                raise InvalidTransitionError("log a dose for", episode.state.value)

            target = to_date(log_date)
            if slot < 0 or slot >= episode.slots_per_day:
                raise ValidationError("slot", f"Slot must be between 0 and {episode.slots_per_day - 1}")
            if not window_contains(target, episode.start_date, episode.ended_at, today):
                raise ValidationError("log_date", "Date is outside the course of therapy")
            if episode.administration_log.is_occupied(target, slot):
                raise ValidationError("slot", "A dose is already recorded for this slot")

            if (given_time is None) == (missed_reason is None):
                raise ValidationError("outcome", "Record either a time given or a missed reason")

            if given_time is not None:
                if isinstance(given_time, str) and not given_time.strip():
                    raise ValidationError("given_time", "Time given is required")
                try:
                    outcome = DoseGiven(time=parse_time_of_day(given_time))
                except ValueError as e:
                    raise ValidationError("given_time", str(e)) from e
            else:
                if isinstance(missed_reason, Enum) and not isinstance(missed_reason, MissedDoseReason):
                    raise ValidationError("missed_reason", "Not a missed dose reason")
                outcome = DoseMissed(
                    reason=episode_ops.resolve_reason(missed_reason, "missed_reason")
                )

            updated = copy.deepcopy(episode)
            updated.administration_log.record(target, slot, outcome)
            return updated

        return self._apply_to_episode(
            patient_id, episode_id, _log,
            f"logged slot {slot} on {to_date(log_date)} for",
        )

    def delete_dose(
        self,
        patient_id: int,
        episode_id: str,
        log_date: date | datetime,
        slot: int,
        confirmed: bool = False,
    ) -> PatientRecord:
        """Remove a recorded dose so it can be logged again."""

        def _delete(episode: TherapyEpisode) -> TherapyEpisode:
            if not episode.is_active:
                raise InvalidTransitionError("delete a dose from", episode.state.value)
            target = to_date(log_date)
            if not episode.administration_log.is_occupied(target, slot):
                raise RecordNotFoundError(f"No dose recorded for {target} slot {slot}")
            if confirmed is not True:
                raise ConfirmationRequiredError("Deleting a dose")

            updated = copy.deepcopy(episode)
            updated.administration_log.remove(target, slot)
            return updated

        return self._apply_to_episode(
            patient_id, episode_id, _delete,
            f"deleted slot {slot} on {to_date(log_date)} for",
        )
