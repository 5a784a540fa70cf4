"""AMS Monitoring - Antimicrobial therapy lifecycle tracking.

This module tracks every antimicrobial course of a monitored inpatient:
1. Episode lifecycle (stop, complete, shift, undo, dose change, continue)
2. Per-dose administration log and the two measures of course length
3. Red flags and roster KPIs for the stewardship team
4. Best-effort dosing advisory checks against a local LLM
"""

from .models import (
    AdmissionStatus,
    EpisodeState,
    StopReason,
    ShiftReason,
    DoseChangeReason,
    MissedDoseReason,
    ReasonSelection,
    ActiveStatus,
    StoppedStatus,
    CompletedStatus,
    ShiftedStatus,
    ChangeLogEntry,
    TransferLogEntry,
    SusceptibilityNote,
    TherapyEpisode,
    PatientRecord,
)
from .administration import (
    AdministrationEntry,
    AdministrationLog,
    DoseGiven,
    DoseMissed,
    LogKey,
)
from .exceptions import (
    MonitoringError,
    ValidationError,
    InvalidTransitionError,
    ConfirmationRequiredError,
    RecordNotFoundError,
    PersistenceError,
)
from .durations import calendar_day_of_therapy, dose_based_duration
from .risk import PatientFlags, compute_flags, compute_kpis, filter_roster
from .db import MonitoringDatabase
from .service import MonitoringService

__all__ = [
    # Models
    "AdmissionStatus",
    "EpisodeState",
    "StopReason",
    "ShiftReason",
    "DoseChangeReason",
    "MissedDoseReason",
    "ReasonSelection",
    "ActiveStatus",
    "StoppedStatus",
    "CompletedStatus",
    "ShiftedStatus",
    "ChangeLogEntry",
    "TransferLogEntry",
    "SusceptibilityNote",
    "TherapyEpisode",
    "PatientRecord",
    # Administration log
    "AdministrationEntry",
    "AdministrationLog",
    "DoseGiven",
    "DoseMissed",
    "LogKey",
    # Errors
    "MonitoringError",
    "ValidationError",
    "InvalidTransitionError",
    "ConfirmationRequiredError",
    "RecordNotFoundError",
    "PersistenceError",
    # Derived values
    "calendar_day_of_therapy",
    "dose_based_duration",
    "PatientFlags",
    "compute_flags",
    "compute_kpis",
    "filter_roster",
    # Storage and service
    "MonitoringDatabase",
    "MonitoringService",
]
