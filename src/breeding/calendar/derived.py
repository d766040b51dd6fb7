"""Derived calendar events owned by pregnancies and dog birthdays.

A pregnancy owns three events, keyed by ``pregnancy_id``:

    mating            mating date
    pregnancy-period  mating date → expected due date (actual birth once completed)
    due-date          expected due date

A dog owns one ``birthday`` event per anniversary that falls between today
and the future horizon (18 months).  Like heat events, both sets are
regenerated wholesale inside a transaction.
"""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from src.breeding.base import (
    PREGNANCY_DERIVED_TYPES,
    BreedingRepository,
    CalendarEventRecord,
    DogRecord,
    EventType,
    PregnancyRecord,
    add_months,
)
from src.breeding.config_loader import BreedingConfig, get_breeding_config

logger = logging.getLogger("kennel.breeding.calendar.derived")


def project_pregnancy_events(
    pregnancy: PregnancyRecord, dog_name: str
) -> list[CalendarEventRecord]:
    status = pregnancy.status
    period_end = pregnancy.actual_birth_date or pregnancy.expected_due_date
    common = dict(
        dog_id=pregnancy.female_dog_id,
        dog_name=dog_name,
        status=status,
        pregnancy_id=pregnancy.id,
        user_id=pregnancy.user_id,
    )
    mating_note = (
        f"Mated with {pregnancy.external_male_name}" if pregnancy.external_male_name else None
    )
    return [
        CalendarEventRecord(
            id=None,
            title=f"{dog_name} - Mating",
            date=pregnancy.mating_date,
            type=EventType.mating.value,
            notes=mating_note,
            **common,
        ),
        CalendarEventRecord(
            id=None,
            title=f"{dog_name} - Pregnancy",
            date=pregnancy.mating_date,
            end_date=period_end,
            type=EventType.pregnancy_period.value,
            **common,
        ),
        CalendarEventRecord(
            id=None,
            title=f"{dog_name} - Due Date",
            date=pregnancy.expected_due_date,
            type=EventType.due_date.value,
            **common,
        ),
    ]


def project_birthday_events(
    dog: DogRecord, today: date, horizon_months: int
) -> list[CalendarEventRecord]:
    """One birthday event per anniversary in ``[today, today + horizon]``."""
    if dog.date_of_birth is None:
        return []
    horizon = add_months(today, horizon_months)
    events: list[CalendarEventRecord] = []
    for year in range(today.year, horizon.year + 1):
        age = year - dog.date_of_birth.year
        if age <= 0:
            continue
        try:
            day = dog.date_of_birth.replace(year=year)
        except ValueError:
            day = date(year, 2, 28)
        if not today <= day <= horizon:
            continue
        events.append(
            CalendarEventRecord(
                id=None,
                title=f"{dog.name}'s Birthday ({age} years)",
                date=day,
                type=EventType.birthday.value,
                dog_id=dog.id,
                dog_name=dog.name,
                user_id=dog.owner_id,
            )
        )
    return events


class DerivedEventSync:
    """Regenerates pregnancy and birthday events for one user."""

    def __init__(
        self, repo: BreedingRepository, config: BreedingConfig | None = None
    ) -> None:
        self._repo = repo
        self._config = config or get_breeding_config()

    async def sync_pregnancy_events(self, pregnancy: PregnancyRecord, dog_name: str) -> bool:
        events = project_pregnancy_events(pregnancy, dog_name)
        try:
            async with self._repo.transaction():
                await self._repo.delete_calendar_events(
                    types=PREGNANCY_DERIVED_TYPES, pregnancy_id=pregnancy.id
                )
                for event in events:
                    await self._repo.insert_calendar_event(event)
        except Exception as exc:
            logger.error("sync_pregnancy_events failed for pregnancy %s: %s", pregnancy.id, exc)
            return False
        return True

    async def remove_pregnancy_events(self, pregnancy_id: UUID) -> bool:
        try:
            removed = await self._repo.delete_calendar_events(
                types=PREGNANCY_DERIVED_TYPES, pregnancy_id=pregnancy_id
            )
        except Exception as exc:
            logger.error("remove_pregnancy_events failed for %s: %s", pregnancy_id, exc)
            return False
        logger.info("Removed %d events for pregnancy %s", removed, pregnancy_id)
        return True

    async def sync_birthday_events(self, dog: DogRecord, today: date | None = None) -> bool:
        events = project_birthday_events(
            dog, today or date.today(), self._config.calendar.future_event_horizon_months
        )
        try:
            async with self._repo.transaction():
                await self._repo.delete_calendar_events(
                    types=(EventType.birthday.value,), dog_id=dog.id
                )
                for event in events:
                    await self._repo.insert_calendar_event(event)
        except Exception as exc:
            logger.error("sync_birthday_events failed for dog %s: %s", dog.id, exc)
            return False
        return True
