"""Reminder service: generate, merge, persist and update reminders.

System reminders are recomputed from dogs, heat cycles, litters, planned
litters and pregnancies on every load, merged with persisted reminders, and
sorted.  ``generate_and_persist`` writes system reminders as rows, skipping
any whose deterministic id is already stored in a row's ``source_key``.
Running it twice on unchanged data inserts nothing the second time.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from src.breeding.base import (
    BreedingRepository,
    HeatCycleRecord,
    PregnancyStatus,
    ReminderPriority,
    ReminderRecord,
    ReminderStatusRecord,
)
from src.breeding.config_loader import BreedingConfig, get_breeding_config
from src.breeding.reminders.generators import generate_system_reminders
from src.breeding.reminders.merge import (
    apply_statuses,
    is_persisted_id,
    merge_reminders,
    sort_reminders,
)

logger = logging.getLogger("kennel.breeding.reminders.service")


class ReminderService:
    """Reminder operations for one user."""

    def __init__(
        self, repo: BreedingRepository, config: BreedingConfig | None = None
    ) -> None:
        self._repo = repo
        self._config = config or get_breeding_config()

    async def generate(self, today: date | None = None) -> list[ReminderRecord]:
        """Compute the current system reminders.  Raises on backend errors."""
        today = today or date.today()
        dogs = await self._repo.list_dogs()
        cycles_by_dog: dict[UUID, list[HeatCycleRecord]] = {}
        for dog in dogs:
            if dog.is_female:
                cycles_by_dog[dog.id] = await self._repo.list_heat_cycles(dog.id)
        return generate_system_reminders(
            dogs=dogs,
            cycles_by_dog=cycles_by_dog,
            litters=await self._repo.list_litters(include_archived=False),
            planned_litters=await self._repo.list_planned_litters(),
            pregnancies=await self._repo.list_pregnancies(PregnancyStatus.active.value),
            today=today,
            config=self._config,
        )

    async def load_reminders(self, today: date | None = None) -> list[ReminderRecord]:
        """Persisted and system reminders, deduplicated and sorted.  ``[]`` on error."""
        try:
            persisted = await self._repo.list_reminders()
            statuses = await self._repo.list_reminder_statuses()
            system = await self.generate(today)
        except Exception as exc:
            logger.error("load_reminders failed: %s", exc)
            return []
        merged = merge_reminders(persisted, system)
        return sort_reminders(apply_statuses(merged, statuses))

    async def generate_and_persist(self, today: date | None = None) -> int | None:
        """Insert system reminders that have no row yet.

        Dismissed system ids are skipped, and a completed one is written as a
        completed row.

        Returns:
            Number of rows inserted, or None on error.
        """
        try:
            existing = await self._repo.list_reminders()
            stored_keys = {r.source_key for r in existing if r.source_key}
            statuses = {s.reminder_id: s for s in await self._repo.list_reminder_statuses()}
            generated = await self.generate(today)
            inserted = 0
            async with self._repo.transaction():
                for reminder in generated:
                    if reminder.id in stored_keys:
                        continue
                    status = statuses.get(reminder.id)
                    if status is not None and status.is_deleted:
                        continue
                    await self._repo.insert_reminder(
                        ReminderRecord(
                            id="",
                            title=reminder.title,
                            description=reminder.description,
                            due_date=reminder.due_date,
                            priority=reminder.priority,
                            type=reminder.type,
                            is_completed=status.is_completed if status else False,
                            dog_id=reminder.dog_id,
                            related_id=reminder.related_id,
                            source_key=reminder.id,
                        )
                    )
                    stored_keys.add(reminder.id)
                    inserted += 1
        except Exception as exc:
            logger.error("generate_and_persist failed: %s", exc)
            return None
        logger.info("Persisted %d of %d generated reminders", inserted, len(generated))
        return inserted

    async def add_custom(
        self,
        title: str,
        due_date: date,
        priority: str = ReminderPriority.medium.value,
        type: str = "custom",
        description: str | None = None,
        dog_id: UUID | None = None,
    ) -> ReminderRecord | None:
        try:
            return await self._repo.insert_reminder(
                ReminderRecord(
                    id="",
                    title=title,
                    due_date=due_date,
                    priority=priority,
                    type=type,
                    description=description,
                    dog_id=dog_id,
                    is_custom=True,
                )
            )
        except Exception as exc:
            logger.error("add_custom reminder failed: %s", exc)
            return None

    async def update_status(
        self,
        reminder_id: str,
        *,
        is_completed: bool | None = None,
        is_deleted: bool | None = None,
    ) -> bool:
        """Update completion state.

        Persisted reminders are updated in place.  System reminders get a
        ``reminder_status`` row, which can also dismiss them.
        """
        try:
            if is_persisted_id(reminder_id):
                fields: dict[str, Any] = {}
                if is_completed is not None:
                    fields["is_completed"] = is_completed
                if not fields:
                    return False
                return await self._repo.update_reminder(UUID(reminder_id), fields) is not None

            current = {
                s.reminder_id: s for s in await self._repo.list_reminder_statuses()
            }.get(reminder_id) or ReminderStatusRecord(reminder_id=reminder_id)
            await self._repo.upsert_reminder_status(
                ReminderStatusRecord(
                    reminder_id=reminder_id,
                    is_completed=current.is_completed if is_completed is None else is_completed,
                    is_deleted=current.is_deleted if is_deleted is None else is_deleted,
                )
            )
        except Exception as exc:
            logger.error("update_status failed for reminder %s: %s", reminder_id, exc)
            return False
        return True

    async def delete(self, reminder_id: UUID) -> bool:
        """Delete a persisted reminder.

        Deleting a row that stores a system reminder also dismisses its
        system id, so the next ``generate_and_persist`` does not bring it back.
        """
        try:
            rows = {r.id: r for r in await self._repo.list_reminders()}
            row = rows.get(str(reminder_id))
            async with self._repo.transaction():
                if not await self._repo.delete_reminder(reminder_id):
                    return False
                if row is not None and row.source_key:
                    await self._repo.upsert_reminder_status(
                        ReminderStatusRecord(
                            reminder_id=row.source_key,
                            is_completed=row.is_completed,
                            is_deleted=True,
                        )
                    )
        except Exception as exc:
            logger.error("delete reminder %s failed: %s", reminder_id, exc)
            return False
        return True
