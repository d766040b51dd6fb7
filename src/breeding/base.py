"""Canonical records and the storage contract for the breeding engine.

Every storage backend must subclass BreedingRepository and exchange the
record dataclasses defined here.  These types are the single source of truth
consumed by the heat store, the calendar sync services, the reminder layer,
and the API layer.  The engine never talks to the database directly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

logger = logging.getLogger("kennel.breeding")


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    heat = "heat"
    heat_active = "heat-active"
    heat_start = "heat-start"  # user-entered heat marker, not derived
    ovulation_predicted = "ovulation-predicted"
    fertility_window = "fertility-window"
    due_date = "due-date"
    pregnancy_period = "pregnancy-period"
    birthday = "birthday"
    mating = "mating"
    vaccination = "vaccination"
    custom = "custom"


class PregnancyStatus(str, Enum):
    active = "active"
    completed = "completed"


class ReminderPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


# Derived from heat cycles; regenerated wholesale on every sync.
HEAT_DERIVED_TYPES: tuple[str, ...] = (
    EventType.heat.value,
    EventType.heat_active.value,
    EventType.ovulation_predicted.value,
    EventType.fertility_window.value,
)

# Derived from pregnancies; owned by pregnancy_id.
PREGNANCY_DERIVED_TYPES: tuple[str, ...] = (
    EventType.mating.value,
    EventType.pregnancy_period.value,
    EventType.due_date.value,
)

DERIVED_EVENT_TYPES: frozenset[str] = frozenset(
    HEAT_DERIVED_TYPES + PREGNANCY_DERIVED_TYPES + (EventType.birthday.value,)
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BreedingError(Exception):
    """Base class for breeding engine errors."""


class RecordNotFoundError(BreedingError):
    """A record addressed by id does not exist (or is not visible under RLS)."""

    def __init__(self, table: str, record_id: Any) -> None:
        super().__init__(f"{table} {record_id} not found")
        self.table = table
        self.record_id = record_id


class HeatCycleConflictError(BreedingError):
    """A dog already has an open (active) heat cycle."""


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def parse_calendar_date(value: Any) -> date | None:
    """Coerce a stored date value to a calendar date.

    Accepts ``date``/``datetime`` objects and ISO strings with or without a
    time part (``"2024-01-01"``, ``"2024-01-01T00:00:00.000Z"``).  Only the
    date part is kept.  Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.warning("Unparseable date value: %r", value)
            return None
    return None


def add_months(d: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping to the month's last day."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    for day in (d.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    raise ValueError(f"cannot shift {d} by {months} months")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class HeatHistoryEntry:
    """Legacy heat record embedded in ``dogs.heatHistory`` (JSONB array).

    Attributes:
        date:          Start date of the heat.
        recorded_at:   When the entry was written, if known.
        heat_cycle_id: Structured heat cycle this entry mirrors.  Only set on
                       entries written by the structured store. Older
                       entries are matched by date.
    """

    date: date
    recorded_at: datetime | None = None
    heat_cycle_id: UUID | None = None

    @classmethod
    def from_json(cls, raw: dict) -> HeatHistoryEntry | None:
        d = parse_calendar_date(raw.get("date"))
        if d is None:
            return None
        recorded = raw.get("recorded")
        cycle_id = raw.get("heat_cycle_id")
        return cls(
            date=d,
            recorded_at=datetime.fromisoformat(recorded.replace("Z", "+00:00"))
            if isinstance(recorded, str) and recorded
            else None,
            heat_cycle_id=UUID(str(cycle_id)) if cycle_id else None,
        )

    def to_json(self) -> dict:
        out: dict[str, Any] = {"date": self.date.isoformat()}
        if self.recorded_at:
            out["recorded"] = self.recorded_at.isoformat()
        if self.heat_cycle_id:
            out["heat_cycle_id"] = str(self.heat_cycle_id)
        return out

    def matches(self, cycle: HeatCycleRecord) -> bool:
        """True when this entry mirrors ``cycle``.

        The stable id wins when present.  Entries without one fall back to
        calendar-date equality with the cycle start.
        """
        if self.heat_cycle_id is not None:
            return self.heat_cycle_id == cycle.id
        return self.date == cycle.start_date


@dataclass
class DogRecord:
    """A dog owned by the current user."""

    id: UUID
    name: str
    gender: str | None = None
    date_of_birth: date | None = None
    vaccination_date: date | None = None
    heat_interval: int | None = None
    sterilization_date: date | None = None
    heat_history: list[HeatHistoryEntry] = field(default_factory=list)
    owner_id: UUID | None = None

    @property
    def is_female(self) -> bool:
        return (self.gender or "").lower() == "female"


@dataclass
class HeatCycleRecord:
    """One structured heat cycle.  ``end_date is None`` means active."""

    id: UUID | None
    dog_id: UUID
    start_date: date
    end_date: date | None = None
    cycle_length: int | None = None
    notes: str | None = None
    user_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None


@dataclass
class HeatLogRecord:
    """A daily observation logged against a heat cycle."""

    id: UUID | None
    heat_cycle_id: UUID
    date: date
    phase: str | None = None
    temperature: float | None = None
    observations: str | None = None
    notes: str | None = None
    user_id: UUID | None = None


@dataclass
class CalendarEventRecord:
    """A calendar row, either user-authored or derived from another record.

    ``date`` and ``end_date`` are calendar days; ``end_date`` is inclusive.
    """

    id: UUID | None
    title: str
    date: date
    type: str
    end_date: date | None = None
    dog_id: UUID | None = None
    dog_name: str | None = None
    status: str | None = None
    notes: str | None = None
    heat_phase: str | None = None
    pregnancy_id: UUID | None = None
    user_id: UUID | None = None

    @property
    def last_day(self) -> date:
        return self.end_date if self.end_date and self.end_date > self.date else self.date

    def covers(self, day: date) -> bool:
        return self.date <= day <= self.last_day

    def overlaps(self, start: date, end: date) -> bool:
        return self.date <= end and self.last_day >= start


@dataclass
class PregnancyRecord:
    """A pregnancy.  The due date is fixed at creation and never recalculated."""

    id: UUID | None
    female_dog_id: UUID | None
    mating_date: date
    expected_due_date: date
    status: str = PregnancyStatus.active.value
    male_dog_id: UUID | None = None
    external_male_name: str | None = None
    actual_birth_date: date | None = None
    user_id: UUID | None = None

    @property
    def is_active(self) -> bool:
        return self.status == PregnancyStatus.active.value


@dataclass
class LitterRecord:
    """A born litter; drives puppy-care milestone reminders."""

    id: UUID
    name: str
    date_of_birth: date
    dam_id: UUID | None = None
    archived: bool = False


@dataclass
class PlannedLitterRecord:
    """A planned mating with an expected heat date for the female."""

    id: UUID
    female_id: UUID
    female_name: str
    expected_heat_date: date | None = None


@dataclass
class ReminderRecord:
    """A reminder, either system-generated or user-created.

    System reminders carry deterministic, non-UUID ids (``heat-<dog>``) and
    are recomputed on every load.  Persisted rows carry a UUID id; rows that
    persist a system reminder keep its deterministic id in ``source_key``.
    """

    id: str
    title: str
    due_date: date
    priority: str
    type: str
    is_completed: bool = False
    dog_id: UUID | None = None
    description: str | None = None
    related_id: UUID | None = None
    source_key: str | None = None
    is_custom: bool = False


@dataclass
class ReminderStatusRecord:
    """Completion / dismissal state of a system reminder, keyed by its id."""

    reminder_id: str
    is_completed: bool = False
    is_deleted: bool = False


# ---------------------------------------------------------------------------
# Storage contract
# ---------------------------------------------------------------------------


class BreedingRepository(ABC):
    """Abstract storage for one authenticated user's breeding data.

    Implementations are scoped to a single user (Row-Level Security in the
    Postgres backend) and may raise on backend errors.  Turning those errors
    into ``None``/``False``/``[]`` sentinels is the caller's job.

    ``transaction()`` groups several calls atomically.  Calls made inside
    the block either all take effect or none do.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Return an async context manager wrapping an atomic unit of work."""

    # ── Dogs ──

    @abstractmethod
    async def get_dog(self, dog_id: UUID) -> DogRecord | None:
        """Fetch a dog including its legacy heat history."""

    @abstractmethod
    async def list_dogs(self) -> list[DogRecord]:
        """Return all dogs visible to the user."""

    @abstractmethod
    async def update_heat_history(
        self, dog_id: UUID, entries: list[HeatHistoryEntry]
    ) -> None:
        """Replace the dog's legacy heat history array."""

    # ── Heat cycles & logs ──

    @abstractmethod
    async def list_heat_cycles(self, dog_id: UUID) -> list[HeatCycleRecord]:
        """Return the dog's heat cycles, newest start date first."""

    @abstractmethod
    async def get_heat_cycle(self, cycle_id: UUID) -> HeatCycleRecord | None:
        """Fetch one heat cycle."""

    @abstractmethod
    async def insert_heat_cycle(self, cycle: HeatCycleRecord) -> HeatCycleRecord:
        """Insert a cycle and return it with its generated id."""

    @abstractmethod
    async def update_heat_cycle(
        self, cycle_id: UUID, fields: dict[str, Any]
    ) -> HeatCycleRecord | None:
        """Apply ``fields`` to a cycle; None if it does not exist."""

    @abstractmethod
    async def delete_heat_cycle(self, cycle_id: UUID) -> bool:
        """Delete a cycle row; False if nothing was deleted."""

    @abstractmethod
    async def list_heat_logs(self, cycle_id: UUID) -> list[HeatLogRecord]:
        """Return the logs for a cycle, oldest first."""

    @abstractmethod
    async def get_heat_log(self, log_id: UUID) -> HeatLogRecord | None:
        """Return one log, or None."""

    @abstractmethod
    async def insert_heat_log(self, log: HeatLogRecord) -> HeatLogRecord:
        """Insert a log and return it with its generated id."""

    @abstractmethod
    async def update_heat_log(
        self, log_id: UUID, fields: dict[str, Any]
    ) -> HeatLogRecord | None:
        """Apply ``fields`` to a log; None if it does not exist."""

    @abstractmethod
    async def delete_heat_log(self, log_id: UUID) -> bool:
        """Delete one log; False if nothing was deleted."""

    @abstractmethod
    async def delete_heat_logs(self, cycle_id: UUID) -> int:
        """Delete every log of a cycle and return the count."""

    # ── Calendar events ──

    @abstractmethod
    async def list_calendar_events(
        self,
        *,
        dog_id: UUID | None = None,
        types: tuple[str, ...] | list[str] | None = None,
        start: date | None = None,
        end: date | None = None,
        pregnancy_id: UUID | None = None,
    ) -> list[CalendarEventRecord]:
        """Return events matching every given filter, ordered by date.

        ``start``/``end`` select events whose span overlaps the range.
        """

    @abstractmethod
    async def get_calendar_event(self, event_id: UUID) -> CalendarEventRecord | None:
        """Fetch one event."""

    @abstractmethod
    async def insert_calendar_event(
        self, event: CalendarEventRecord
    ) -> CalendarEventRecord:
        """Insert an event and return it with its generated id."""

    @abstractmethod
    async def update_calendar_event(
        self, event_id: UUID, fields: dict[str, Any]
    ) -> CalendarEventRecord | None:
        """Apply ``fields`` to one event; None if it does not exist."""

    @abstractmethod
    async def delete_calendar_event(self, event_id: UUID) -> bool:
        """Delete one event; False if nothing was deleted."""

    @abstractmethod
    async def delete_calendar_events(
        self,
        *,
        types: tuple[str, ...] | list[str],
        dog_id: UUID | None = None,
        pregnancy_id: UUID | None = None,
    ) -> int:
        """Delete every event of ``types`` for a dog and/or pregnancy."""

    @abstractmethod
    async def delete_calendar_events_before(self, event_type: str, cutoff: date) -> int:
        """Delete events of one type that start before ``cutoff``."""

    # ── Pregnancies, litters ──

    @abstractmethod
    async def list_pregnancies(self, status: str | None = None) -> list[PregnancyRecord]:
        """Return pregnancies, newest mating date first."""

    @abstractmethod
    async def get_pregnancy(self, pregnancy_id: UUID) -> PregnancyRecord | None:
        """Fetch one pregnancy."""

    @abstractmethod
    async def insert_pregnancy(self, pregnancy: PregnancyRecord) -> PregnancyRecord:
        """Insert a pregnancy and return it with its generated id."""

    @abstractmethod
    async def update_pregnancy(
        self, pregnancy_id: UUID, fields: dict[str, Any]
    ) -> PregnancyRecord | None:
        """Apply ``fields`` to a pregnancy; None if it does not exist."""

    @abstractmethod
    async def delete_pregnancy(self, pregnancy_id: UUID) -> bool:
        """Delete a pregnancy; False if nothing was deleted."""

    @abstractmethod
    async def list_litters(self, include_archived: bool = False) -> list[LitterRecord]:
        """Return litters, optionally including archived ones."""

    @abstractmethod
    async def list_planned_litters(self) -> list[PlannedLitterRecord]:
        """Return planned litters."""

    # ── Reminders ──

    @abstractmethod
    async def list_reminders(self) -> list[ReminderRecord]:
        """Return persisted reminders (UUID ids)."""

    @abstractmethod
    async def insert_reminder(self, reminder: ReminderRecord) -> ReminderRecord:
        """Insert a reminder and return it with its generated UUID id."""

    @abstractmethod
    async def update_reminder(
        self, reminder_id: UUID, fields: dict[str, Any]
    ) -> ReminderRecord | None:
        """Apply ``fields`` to a persisted reminder."""

    @abstractmethod
    async def delete_reminder(self, reminder_id: UUID) -> bool:
        """Delete a persisted reminder; False if nothing was deleted."""

    @abstractmethod
    async def list_reminder_statuses(self) -> list[ReminderStatusRecord]:
        """Return the status rows of system reminders."""

    @abstractmethod
    async def upsert_reminder_status(self, status: ReminderStatusRecord) -> None:
        """Insert or replace the status of a system reminder."""
