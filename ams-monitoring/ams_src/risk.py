"""Per-patient red flags and roster KPIs.

Everything here is computed from the stored record on each call and never
written back. Each KPI is a single predicate used both to count patients
and to filter the roster, so the two can never disagree.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable

from .config import config
from .durations import calendar_day_of_therapy
from .models import PatientRecord


_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def parse_egfr(egfr: str | None) -> float | None:
    """Leading number of an eGFR text such as "25.3 mL/min/1.73m²"."""
    if not egfr:
        return None
    match = _LEADING_NUMBER.match(str(egfr))
    if not match:
        return None
    return float(match.group(1))


@dataclass(frozen=True)
class PatientFlags:
    """Red flags for one patient."""
    has_missed_doses: bool = False
    has_renal_alert: bool = False
    has_prolonged_therapy: bool = False

    @property
    def any(self) -> bool:
        return self.has_missed_doses or self.has_renal_alert or self.has_prolonged_therapy

    def to_dict(self) -> dict[str, bool]:
        return {
            "has_missed_doses": self.has_missed_doses,
            "has_renal_alert": self.has_renal_alert,
            "has_prolonged_therapy": self.has_prolonged_therapy,
        }


def has_missed_doses(record: PatientRecord) -> bool:
    return any(e.administration_log.missed_count() > 0 for e in record.episodes)


def has_renal_alert(record: PatientRecord) -> bool:
    egfr = parse_egfr(record.egfr)
    return egfr is not None and egfr < config.RENAL_ALERT_EGFR


def has_prolonged_therapy(record: PatientRecord, today: date | None = None) -> bool:
    return any(
        calendar_day_of_therapy(e.start_date, today) > config.PROLONGED_THERAPY_DAYS
        for e in record.active_episodes()
    )


def compute_flags(record: PatientRecord, today: date | None = None) -> PatientFlags:
    """Compute the red flags of one patient."""
    return PatientFlags(
        has_missed_doses=has_missed_doses(record),
        has_renal_alert=has_renal_alert(record),
        has_prolonged_therapy=has_prolonged_therapy(record, today),
    )


def is_nearing_stop(record: PatientRecord, today: date | None = None) -> bool:
    """An active course is within NEARING_STOP_DAYS of its planned length."""
    for episode in record.active_episodes():
        planned = episode.planned_duration_days or 0
        if planned <= 0:
            continue
        if planned - calendar_day_of_therapy(episode.start_date, today) <= config.NEARING_STOP_DAYS:
            return True
    return False


def is_new_admission(record: PatientRecord, now: datetime | None = None) -> bool:
    """Record created within the last NEW_ADMISSION_HOURS."""
    now = now or datetime.now()
    return now - record.created_at <= timedelta(hours=config.NEW_ADMISSION_HOURS)


# KPI name -> predicate(record, now). Applied to admitted patients only.
KPI_PREDICATES: dict[str, Callable[[PatientRecord, datetime], bool]] = {
    "active": lambda record, now: True,
    "red_flag": lambda record, now: compute_flags(record, now.date()).any,
    "new": lambda record, now: is_new_admission(record, now),
    "nearing_stop": lambda record, now: is_nearing_stop(record, now.date()),
}


def filter_roster(
    roster: list[PatientRecord],
    kpi: str,
    now: datetime | None = None,
) -> list[PatientRecord]:
    """Admitted patients matching a KPI.

    Raises:
        KeyError: If ``kpi`` is not one of KPI_PREDICATES.
    """
    predicate = KPI_PREDICATES[kpi]
    now = now or datetime.now()
    return [r for r in roster if r.is_admitted and predicate(r, now)]


def compute_kpis(roster: list[PatientRecord], now: datetime | None = None) -> dict[str, int]:
    """Count admitted patients for every KPI."""
    now = now or datetime.now()
    return {kpi: len(filter_roster(roster, kpi, now)) for kpi in KPI_PREDICATES}
