"""Per-dose administration log for antimicrobial episodes.

Each dose event is keyed by (episode id, calendar date, slot index). The key
is the only way into the log, so a slot can never hold two entries. Writing
to an occupied key replaces the entry; callers check ``is_occupied`` before
offering the log action.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, ClassVar, Iterator, NamedTuple

logger = logging.getLogger(__name__)


GIVEN = "Given"
MISSED = "Missed"


def parse_time_of_day(value: time | str) -> time:
    """Parse a dose time.

    Accepts ``time`` objects, 24-hour strings ("14:30", "14:30:00") and the
    12-hour form found in older records ("2:30 PM").

    Raises:
        ValueError: If the string is not a recognizable time.
    """
    if isinstance(value, time):
        return value

    text = value.strip()
    for fmt in ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized time of day: {value!r}")


@dataclass(frozen=True)
class DoseGiven:
    """Dose was administered at the given time of day."""
    time: time
    status: ClassVar[str] = GIVEN


@dataclass(frozen=True)
class DoseMissed:
    """Dose was not given."""
    reason: str
    status: ClassVar[str] = MISSED


DoseOutcome = DoseGiven | DoseMissed


class LogKey(NamedTuple):
    """Composite key of one dose slot."""
    episode_id: str
    log_date: date
    slot: int


@dataclass(frozen=True)
class AdministrationEntry:
    """One recorded dose event."""
    episode_id: str
    log_date: date
    slot: int
    outcome: DoseOutcome

    @property
    def key(self) -> LogKey:
        return LogKey(self.episode_id, self.log_date, self.slot)

    @property
    def status(self) -> str:
        return self.outcome.status

    @property
    def is_given(self) -> bool:
        return isinstance(self.outcome, DoseGiven)

    @property
    def is_missed(self) -> bool:
        return isinstance(self.outcome, DoseMissed)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "date": self.log_date.isoformat(),
            "slot": self.slot,
            "status": self.status,
        }
        if isinstance(self.outcome, DoseGiven):
            data["time"] = self.outcome.time.strftime("%H:%M")
        else:
            data["reason"] = self.outcome.reason
        return data

    @classmethod
    def from_dict(cls, episode_id: str, data: dict[str, Any]) -> "AdministrationEntry":
        """Create from a serialized entry."""
        if data.get("status") == MISSED:
            outcome: DoseOutcome = DoseMissed(reason=data.get("reason") or "")
        else:
            outcome = DoseGiven(time=parse_time_of_day(data["time"]))

        return cls(
            episode_id=episode_id,
            log_date=date.fromisoformat(data["date"]),
            slot=int(data["slot"]),
            outcome=outcome,
        )


def _sort_within_date(entry: AdministrationEntry) -> tuple:
    # Given entries by time, then Missed entries by slot
    if isinstance(entry.outcome, DoseGiven):
        return (0, entry.outcome.time, entry.slot)
    return (1, time.min, entry.slot)


class AdministrationLog:
    """Flat store of dose events for a single episode."""

    def __init__(
        self,
        episode_id: str,
        entries: list[AdministrationEntry] | None = None,
    ):
        self.episode_id = episode_id
        self._entries: dict[LogKey, AdministrationEntry] = {}
        for entry in entries or []:
            self._entries[entry.key] = entry

    def _key(self, log_date: date, slot: int) -> LogKey:
        return LogKey(self.episode_id, log_date, slot)

    def record(self, log_date: date, slot: int, outcome: DoseOutcome) -> AdministrationEntry:
        """Write a dose event into a slot, replacing whatever is there."""
        entry = AdministrationEntry(
            episode_id=self.episode_id,
            log_date=log_date,
            slot=slot,
            outcome=outcome,
        )
        if entry.key in self._entries:
            logger.debug(f"Overwriting dose entry {entry.key}")
        self._entries[entry.key] = entry
        return entry

    def get(self, log_date: date, slot: int) -> AdministrationEntry | None:
        return self._entries.get(self._key(log_date, slot))

    def is_occupied(self, log_date: date, slot: int) -> bool:
        return self._key(log_date, slot) in self._entries

    def remove(self, log_date: date, slot: int) -> AdministrationEntry:
        """Delete the entry in a slot.

        Raises:
            KeyError: If the slot is empty.
        """
        return self._entries.pop(self._key(log_date, slot))

    def entries_for_date(self, log_date: date) -> list[AdministrationEntry]:
        """Entries of one date, Given by time first, then Missed."""
        day_entries = [e for e in self._entries.values() if e.log_date == log_date]
        return sorted(day_entries, key=_sort_within_date)

    def entries_between(self, start: date, end: date) -> list[AdministrationEntry]:
        """Entries with start <= date <= end, ordered by date then slot."""
        return [e for e in self if start <= e.log_date <= end]

    def dates(self) -> list[date]:
        return sorted({key.log_date for key in self._entries})

    def given_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.is_given)

    def missed_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.is_missed)

    def __iter__(self) -> Iterator[AdministrationEntry]:
        for key in sorted(self._entries):
            yield self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AdministrationLog):
            return NotImplemented
        return self.episode_id == other.episode_id and self._entries == other._entries

    def __repr__(self) -> str:
        return f"AdministrationLog(episode_id={self.episode_id!r}, entries={len(self)})"

    def to_list(self) -> list[dict[str, Any]]:
        """Serialize as a flat list of entries."""
        return [entry.to_dict() for entry in self]

    @classmethod
    def from_data(
        cls,
        episode_id: str,
        data: list[dict[str, Any]] | dict[str, list] | None,
    ) -> "AdministrationLog":
        """Load a log from its stored form.

        Accepts the flat entry list written by ``to_list`` and the older
        date-keyed mapping ``{"YYYY-MM-DD": [entry, ...]}`` in which bare
        strings are Given times and list position is the slot.
        """
        log = cls(episode_id)
        if not data:
            return log

        if isinstance(data, dict):
            for date_str, day_entries in data.items():
                log_date = date.fromisoformat(date_str)
                for slot, raw in enumerate(day_entries or []):
                    log.record(log_date, slot, _legacy_outcome(raw))
            return log

        for raw in data:
            entry = AdministrationEntry.from_dict(episode_id, raw)
            log._entries[entry.key] = entry
        return log


def _legacy_outcome(raw: str | dict[str, Any]) -> DoseOutcome:
    """Outcome of an entry from a date-keyed log."""
    if isinstance(raw, str):
        return DoseGiven(time=parse_time_of_day(raw))
    if raw.get("status") == MISSED:
        return DoseMissed(reason=raw.get("reason") or "")
    return DoseGiven(time=parse_time_of_day(raw["time"]))
