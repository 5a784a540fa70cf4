"""Ward and bed transfer history for a monitored patient.

The record's live ward and bed always match the destination of the most
recent transfer, or the admission location when there has been none.
"""

import copy
from datetime import datetime

from .exceptions import RecordNotFoundError, ValidationError
from .models import PatientRecord, TransferLogEntry


def _require_text(field: str, value: str | None, message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field, message)
    return str(value).strip()


def transfer_patient(
    record: PatientRecord,
    to_ward: str,
    to_bed: str,
    at: datetime | None,
) -> PatientRecord:
    """Move a patient and append the move to the transfer history.

    The current location becomes the entry's origin before being replaced.

    Raises:
        ValidationError: If the ward, bed or timestamp is missing.
    """
    ward = _require_text("to_ward", to_ward, "New ward is required")
    bed = _require_text("to_bed", to_bed, "New bed is required")
    if at is None:
        raise ValidationError("transferred_at", "Transfer date and time are required")

    updated = copy.deepcopy(record)
    updated.transfer_history.append(TransferLogEntry(
        transferred_at=at,
        from_ward=record.ward,
        from_bed=record.bed_number,
        to_ward=ward,
        to_bed=bed,
    ))
    updated.ward = ward
    updated.bed_number = bed
    return updated


def edit_transfer(
    record: PatientRecord,
    index: int,
    to_ward: str,
    to_bed: str,
    at: datetime | None = None,
) -> PatientRecord:
    """Correct the destination of a past transfer.

    The live location follows only when the edited entry is the latest one.

    Raises:
        RecordNotFoundError: If there is no transfer at ``index``.
        ValidationError: If the ward or bed is missing.
    """
    if index < 0 or index >= len(record.transfer_history):
        raise RecordNotFoundError(f"No transfer entry at index {index}")
    ward = _require_text("to_ward", to_ward, "New ward is required")
    bed = _require_text("to_bed", to_bed, "New bed is required")

    updated = copy.deepcopy(record)
    entry = updated.transfer_history[index]
    updated.transfer_history[index] = TransferLogEntry(
        transferred_at=at or entry.transferred_at,
        from_ward=entry.from_ward,
        from_bed=entry.from_bed,
        to_ward=ward,
        to_bed=bed,
    )

    if index == len(updated.transfer_history) - 1:
        updated.ward = ward
        updated.bed_number = bed
    return updated


def current_location(record: PatientRecord) -> tuple[str, str]:
    """(ward, bed) the patient is in now."""
    if record.transfer_history:
        latest = record.transfer_history[-1]
        return latest.to_ward, latest.to_bed
    return record.ward, record.bed_number
