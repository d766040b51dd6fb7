"""Pydantic models for the breeding API: heat cycles, calendar, pregnancies, reminders."""

from __future__ import annotations

import datetime as dt
import uuid

from pydantic import Field, model_validator

from src.breeding.base import ReminderPriority
from src.models.base import KennelBase


# ---------- Heat cycles ----------

class HeatCycleCreate(KennelBase):
    start_date: dt.date
    end_date: dt.date | None = None  # set when recording a previous, finished heat
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _end_after_start(self) -> HeatCycleCreate:
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class HeatCycleUpdate(KennelBase):
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class HeatCycleEnd(KennelBase):
    end_date: dt.date | None = None


_HEAT_PHASE_PATTERN = "^(proestrus|estrus|metestrus|anestrus)$"


class HeatLogCreate(KennelBase):
    date: dt.date
    phase: str | None = Field(default=None, pattern=_HEAT_PHASE_PATTERN)
    temperature: float | None = None
    observations: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=2000)


class HeatLogUpdate(KennelBase):
    date: dt.date | None = None
    phase: str | None = Field(default=None, pattern=_HEAT_PHASE_PATTERN)
    temperature: float | None = None
    observations: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=2000)


class HeatLogRead(KennelBase):
    id: uuid.UUID
    heat_cycle_id: uuid.UUID
    date: dt.date
    phase: str | None = None
    temperature: float | None = None
    observations: str | None = None
    notes: str | None = None


class HeatCycleRead(KennelBase):
    id: uuid.UUID
    dog_id: uuid.UUID
    start_date: dt.date
    end_date: dt.date | None = None
    cycle_length: int | None = None
    notes: str | None = None
    is_active: bool
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class HeatCycleDetail(HeatCycleRead):
    logs: list[HeatLogRead] = []


class MigrationResult(KennelBase):
    direction: str
    count: int


class UpcomingHeatRead(KennelBase):
    dog_id: uuid.UUID
    dog_name: str
    date: dt.date


class SyncResult(KennelBase):
    synced: bool
    birthdays_synced: bool | None = None


# ---------- Calendar ----------

class CalendarEventBase(KennelBase):
    title: str = Field(min_length=1, max_length=200)
    date: dt.date
    end_date: dt.date | None = None
    type: str = "custom"
    dog_id: uuid.UUID | None = None
    dog_name: str | None = None
    notes: str | None = Field(default=None, max_length=2000)


class CalendarEventCreate(CalendarEventBase):
    pass


class CalendarEventUpdate(KennelBase):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    date: dt.date | None = None
    end_date: dt.date | None = None
    notes: str | None = Field(default=None, max_length=2000)
    status: str | None = None


class CalendarEventRead(CalendarEventBase):
    id: uuid.UUID
    status: str | None = None
    heat_phase: str | None = None
    pregnancy_id: uuid.UUID | None = None


class PregnancyBandRead(KennelBase):
    pregnancy_event_id: uuid.UUID | None = None
    pregnancy_id: uuid.UUID | None = None
    dog_name: str | None = None
    lane: int
    start_day: int
    end_day: int
    is_due_week: bool
    label: str


class DayCellRead(KennelBase):
    date: dt.date
    in_month: bool
    is_today: bool
    pills: list[CalendarEventRead]
    overflow: int
    is_due_date: bool
    is_birthday: bool
    is_due_week: bool
    is_heat: bool
    is_fertility_window: bool
    is_ovulation: bool
    within_due_uncertainty: bool
    badges: list[str]


class WeekRowRead(KennelBase):
    days: list[DayCellRead]
    bands: list[PregnancyBandRead]


class MonthGridRead(KennelBase):
    year: int
    month: int
    weeks: list[WeekRowRead]
    selected_date: dt.date | None = None
    selected_events: list[CalendarEventRead] = []


class CleanupResult(KennelBase):
    deleted: dict[str, int]
    total: int


# ---------- Pregnancies ----------

class PregnancyCreate(KennelBase):
    female_dog_id: uuid.UUID
    mating_date: dt.date
    male_dog_id: uuid.UUID | None = None
    external_male_name: str | None = Field(default=None, max_length=200)


class PregnancyUpdate(KennelBase):
    actual_birth_date: dt.date | None = None
    status: str | None = Field(default=None, pattern="^(active|completed)$")
    male_dog_id: uuid.UUID | None = None
    external_male_name: str | None = Field(default=None, max_length=200)


class PregnancyProjectionRead(KennelBase):
    due_date: dt.date
    days_pregnant: int
    days_left: int
    progress_pct: float
    current_week: int
    in_due_week: bool
    within_due_uncertainty: bool


class PregnancyRead(KennelBase):
    id: uuid.UUID
    female_dog_id: uuid.UUID | None = None
    male_dog_id: uuid.UUID | None = None
    external_male_name: str | None = None
    mating_date: dt.date
    expected_due_date: dt.date
    actual_birth_date: dt.date | None = None
    status: str


class PregnancyDetail(PregnancyRead):
    projection: PregnancyProjectionRead


# ---------- Reminders ----------

class ReminderCreate(KennelBase):
    title: str = Field(min_length=1, max_length=200)
    due_date: dt.date
    priority: ReminderPriority = ReminderPriority.medium
    type: str = "custom"
    description: str | None = Field(default=None, max_length=2000)
    dog_id: uuid.UUID | None = None


class ReminderUpdate(KennelBase):
    is_completed: bool | None = None
    is_deleted: bool | None = None  # dismisses a system reminder


class ReminderRead(KennelBase):
    id: str
    title: str
    description: str | None = None
    due_date: dt.date
    priority: str
    type: str
    is_completed: bool
    dog_id: uuid.UUID | None = None
    related_id: uuid.UUID | None = None
    is_custom: bool


class GenerateResult(KennelBase):
    inserted: int
