"""Heat cycle store.

CRUD over structured heat cycles plus the legacy ``dogs.heatHistory`` array,
keeping both representations of the same heat in step:

- creating a cycle writes (or re-keys) a matching legacy entry
- changing a cycle's start date moves the matching legacy entry
- deleting a cycle deletes its heat logs, the cycle row, and the legacy entry

Daily heat logs (phase, temperature, observations) hang off a cycle and are
added, edited and removed one by one.
- ``sync_heat_history_to_heat_cycles`` migrates legacy entries to cycles
- ``sync_heat_cycles_to_heat_history`` backfills legacy entries for cycles

Failure policy: every public operation catches backend errors, logs them and
returns ``None`` / ``False`` / ``[]`` / ``0``.  Callers must read an empty
result as "unknown", not as "no data".  The one exception is
``HeatCycleConflictError``, which ``create_heat_cycle`` raises when the dog
already has an open cycle, because the API has to tell a conflict apart from
a backend failure.

Legacy entries are matched to cycles by ``heat_cycle_id`` when the entry
carries one, otherwise by start-date equality (date part only).  Date
matching cannot tell two heats on the same day apart.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from src.breeding.base import (
    BreedingRepository,
    HeatCycleConflictError,
    HeatCycleRecord,
    HeatHistoryEntry,
    HeatLogRecord,
    RecordNotFoundError,
)
from src.breeding.config_loader import BreedingConfig, get_breeding_config

logger = logging.getLogger("kennel.breeding.heat.store")

_UPDATABLE_FIELDS = frozenset({"start_date", "end_date", "notes"})
_LOG_UPDATABLE_FIELDS = frozenset({"date", "phase", "temperature", "observations", "notes"})


def compute_cycle_length(start_date: date, end_date: date | None) -> int | None:
    """Length of an ended cycle in days (``end - start``), None while active."""
    if end_date is None:
        return None
    return (end_date - start_date).days


def latest_heat_date(
    cycles: list[HeatCycleRecord], history: list[HeatHistoryEntry]
) -> date | None:
    """Most recent heat start across structured cycles and legacy history."""
    dates = [c.start_date for c in cycles] + [h.date for h in history]
    return max(dates) if dates else None


class HeatCycleStore:
    """Heat cycle CRUD for one user, backed by a BreedingRepository.

    Usage::

        store = HeatCycleStore(repo)
        cycle = await store.create_heat_cycle(dog_id, date(2024, 1, 1))
        await store.end_heat_cycle(cycle.id, date(2024, 1, 21))
    """

    def __init__(
        self,
        repo: BreedingRepository,
        config: BreedingConfig | None = None,
        user_id: UUID | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or get_breeding_config()
        self._user_id = user_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_heat_cycles(self, dog_id: UUID) -> list[HeatCycleRecord]:
        """All cycles for a dog, newest start date first.  ``[]`` on error."""
        try:
            cycles = await self._repo.list_heat_cycles(dog_id)
        except Exception as exc:
            logger.error("get_heat_cycles failed for dog %s: %s", dog_id, exc)
            return []
        return sorted(cycles, key=lambda c: c.start_date, reverse=True)

    async def get_active_heat_cycle(self, dog_id: UUID) -> HeatCycleRecord | None:
        """The dog's open cycle (no end date), or None.

        If the single-active-cycle invariant has been broken, the most recent
        open cycle wins and the violation is logged.
        """
        try:
            cycles = await self._repo.list_heat_cycles(dog_id)
        except Exception as exc:
            logger.error("get_active_heat_cycle failed for dog %s: %s", dog_id, exc)
            return None
        active = sorted(
            (c for c in cycles if c.is_active), key=lambda c: c.start_date, reverse=True
        )
        if len(active) > 1:
            logger.warning(
                "Dog %s has %d open heat cycles; using the one started %s",
                dog_id, len(active), active[0].start_date,
            )
        return active[0] if active else None

    async def get_heat_cycle(self, cycle_id: UUID) -> HeatCycleRecord | None:
        try:
            return await self._repo.get_heat_cycle(cycle_id)
        except Exception as exc:
            logger.error("get_heat_cycle failed for %s: %s", cycle_id, exc)
            return None

    async def get_heat_logs(self, cycle_id: UUID) -> list[HeatLogRecord]:
        try:
            return await self._repo.list_heat_logs(cycle_id)
        except Exception as exc:
            logger.error("get_heat_logs failed for cycle %s: %s", cycle_id, exc)
            return []

    async def get_heat_log(self, log_id: UUID) -> HeatLogRecord | None:
        try:
            return await self._repo.get_heat_log(log_id)
        except Exception as exc:
            logger.error("get_heat_log failed for %s: %s", log_id, exc)
            return None

    async def get_heat_history(self, dog_id: UUID) -> list[HeatHistoryEntry]:
        """The dog's legacy heat history, newest first.  ``[]`` on error."""
        try:
            dog = await self._repo.get_dog(dog_id)
        except Exception as exc:
            logger.error("get_heat_history failed for dog %s: %s", dog_id, exc)
            return []
        if dog is None:
            return []
        return sorted(dog.heat_history, key=lambda h: h.date, reverse=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_heat_cycle(
        self,
        dog_id: UUID,
        start_date: date,
        notes: str | None = None,
        end_date: date | None = None,
    ) -> HeatCycleRecord | None:
        """Create a cycle and mirror it into the legacy heat history.

        Pass ``end_date`` to record a previous, already-finished heat.

        Raises:
            HeatCycleConflictError: If the new cycle is open and the dog
                already has an open cycle.
        """
        if end_date is not None and end_date < start_date:
            logger.warning(
                "Refusing heat cycle for dog %s ending %s before it starts %s",
                dog_id, end_date, start_date,
            )
            return None

        if end_date is None:
            existing = await self.get_active_heat_cycle(dog_id)
            if existing is not None:
                raise HeatCycleConflictError(
                    f"Dog {dog_id} already has an active heat cycle "
                    f"started {existing.start_date}"
                )

        try:
            async with self._repo.transaction():
                cycle = await self._repo.insert_heat_cycle(
                    HeatCycleRecord(
                        id=None,
                        dog_id=dog_id,
                        start_date=start_date,
                        end_date=end_date,
                        cycle_length=compute_cycle_length(start_date, end_date),
                        notes=notes,
                        user_id=self._user_id,
                    )
                )
                await self._write_legacy_entry(cycle)
        except Exception as exc:
            logger.error("create_heat_cycle failed for dog %s: %s", dog_id, exc)
            return None

        logger.info(
            "Created heat cycle %s for dog %s starting %s (%s)",
            cycle.id, dog_id, start_date, "active" if cycle.is_active else "ended",
        )
        return cycle

    async def update_heat_cycle(
        self, cycle_id: UUID, patch: dict[str, Any]
    ) -> HeatCycleRecord | None:
        """Apply ``patch`` (start_date / end_date / notes) to a cycle.

        ``cycle_length`` is recomputed whenever either date changes.  A
        start-date change also moves the matching legacy entry.
        """
        fields = {k: v for k, v in patch.items() if k in _UPDATABLE_FIELDS}
        ignored = set(patch) - _UPDATABLE_FIELDS
        if ignored:
            logger.debug("update_heat_cycle ignoring fields: %s", sorted(ignored))

        try:
            current = await self._repo.get_heat_cycle(cycle_id)
            if current is None:
                logger.warning("update_heat_cycle: cycle %s not found", cycle_id)
                return None
            if not fields:
                return current

            start = fields.get("start_date", current.start_date)
            end = fields.get("end_date", current.end_date)
            if end is not None and end < start:
                logger.warning(
                    "update_heat_cycle: end %s before start %s for cycle %s",
                    end, start, cycle_id,
                )
                return None
            if "start_date" in fields or "end_date" in fields:
                fields["cycle_length"] = compute_cycle_length(start, end)

            async with self._repo.transaction():
                updated = await self._repo.update_heat_cycle(cycle_id, fields)
                if updated is not None and updated.start_date != current.start_date:
                    await self._move_legacy_entry(current, updated)
        except Exception as exc:
            logger.error("update_heat_cycle failed for %s: %s", cycle_id, exc)
            return None
        return updated

    async def end_heat_cycle(
        self, cycle_id: UUID, end_date: date | None = None
    ) -> HeatCycleRecord | None:
        """Close an open cycle on ``end_date`` (default today)."""
        final_end = end_date or date.today()
        return await self.update_heat_cycle(cycle_id, {"end_date": final_end})

    async def delete_heat_cycle(self, cycle_id: UUID) -> bool:
        """Delete a cycle with its heat logs and the matching legacy entry.

        A missing legacy entry is logged but does not fail the delete.
        """
        try:
            cycle = await self._repo.get_heat_cycle(cycle_id)
            if cycle is None:
                logger.warning("delete_heat_cycle: cycle %s not found", cycle_id)
                return False

            async with self._repo.transaction():
                logs_deleted = await self._repo.delete_heat_logs(cycle_id)
                if not await self._repo.delete_heat_cycle(cycle_id):
                    raise RecordNotFoundError("heat_cycles", cycle_id)
                removed = await self._remove_legacy_entry(cycle)
        except RecordNotFoundError:
            logger.warning("delete_heat_cycle: cycle %s vanished mid-delete", cycle_id)
            return False
        except Exception as exc:
            logger.error("delete_heat_cycle failed for %s: %s", cycle_id, exc)
            return False

        if not removed:
            logger.warning(
                "No legacy heat history entry matched cycle %s (dog %s, %s)",
                cycle_id, cycle.dog_id, cycle.start_date,
            )
        logger.info(
            "Deleted heat cycle %s for dog %s (%d logs)", cycle_id, cycle.dog_id, logs_deleted
        )
        return True

    async def delete_heat_entry(self, dog_id: UUID, entry_date: date) -> bool:
        """Remove legacy heat-history entries on ``entry_date`` with no cycle."""
        try:
            dog = await self._repo.get_dog(dog_id)
            if dog is None:
                return False
            kept = [
                h for h in dog.heat_history
                if not (h.date == entry_date and h.heat_cycle_id is None)
            ]
            if len(kept) == len(dog.heat_history):
                logger.warning(
                    "delete_heat_entry: no unlinked entry on %s for dog %s", entry_date, dog_id
                )
                return False
            await self._repo.update_heat_history(dog_id, kept)
        except Exception as exc:
            logger.error("delete_heat_entry failed for dog %s: %s", dog_id, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Heat logs
    # ------------------------------------------------------------------

    async def add_heat_log(
        self,
        cycle_id: UUID,
        log_date: date,
        *,
        phase: str | None = None,
        temperature: float | None = None,
        observations: str | None = None,
        notes: str | None = None,
    ) -> HeatLogRecord | None:
        """Record a daily observation against a cycle.  None if the cycle is gone."""
        try:
            if await self._repo.get_heat_cycle(cycle_id) is None:
                logger.warning("add_heat_log: cycle %s not found", cycle_id)
                return None
            log = await self._repo.insert_heat_log(
                HeatLogRecord(
                    id=None,
                    heat_cycle_id=cycle_id,
                    date=log_date,
                    phase=phase,
                    temperature=temperature,
                    observations=observations,
                    notes=notes,
                    user_id=self._user_id,
                )
            )
        except Exception as exc:
            logger.error("add_heat_log failed for cycle %s: %s", cycle_id, exc)
            return None
        logger.info("Logged heat observation %s for cycle %s on %s", log.id, cycle_id, log_date)
        return log

    async def update_heat_log(
        self, log_id: UUID, patch: dict[str, Any]
    ) -> HeatLogRecord | None:
        fields = {k: v for k, v in patch.items() if k in _LOG_UPDATABLE_FIELDS}
        try:
            if not fields:
                return await self._repo.get_heat_log(log_id)
            return await self._repo.update_heat_log(log_id, fields)
        except Exception as exc:
            logger.error("update_heat_log failed for %s: %s", log_id, exc)
            return None

    async def delete_heat_log(self, log_id: UUID) -> bool:
        try:
            return await self._repo.delete_heat_log(log_id)
        except Exception as exc:
            logger.error("delete_heat_log failed for %s: %s", log_id, exc)
            return False

    # ------------------------------------------------------------------
    # Migration between representations
    # ------------------------------------------------------------------

    async def sync_heat_history_to_heat_cycles(
        self, dog_id: UUID, today: date | None = None
    ) -> int:
        """Create cycles for legacy entries that have none.  Idempotent.

        Entries are skipped when a cycle already starts on the same date.
        Migrated heats are closed ``event_span_days`` after they start,
        except the newest one when it is still within that span and the dog
        has no open cycle, which stays open.

        Returns:
            Number of cycles created (0 on error).
        """
        today = today or date.today()
        span = self._config.heat_cycle.event_span_days
        notes = self._config.heat_cycle.legacy_migration_notes
        created = 0
        try:
            dog = await self._repo.get_dog(dog_id)
            if dog is None:
                logger.warning("sync_heat_history_to_heat_cycles: dog %s not found", dog_id)
                return 0
            cycles = await self._repo.list_heat_cycles(dog_id)
            known_starts = {c.start_date.isoformat() for c in cycles}
            has_active = any(c.is_active for c in cycles)

            pending = sorted(
                (h for h in dog.heat_history if h.date.isoformat() not in known_starts),
                key=lambda h: h.date,
            )
            if not pending:
                return 0

            history = list(dog.heat_history)
            async with self._repo.transaction():
                for i, entry in enumerate(pending):
                    is_newest = i == len(pending) - 1
                    keep_open = (
                        is_newest
                        and not has_active
                        and entry.date <= today < entry.date + timedelta(days=span)
                    )
                    end = None if keep_open else entry.date + timedelta(days=span)
                    cycle = await self._repo.insert_heat_cycle(
                        HeatCycleRecord(
                            id=None,
                            dog_id=dog_id,
                            start_date=entry.date,
                            end_date=end,
                            cycle_length=compute_cycle_length(entry.date, end),
                            notes=notes,
                            user_id=self._user_id,
                        )
                    )
                    known_starts.add(entry.date.isoformat())
                    for h in history:
                        if h is entry:
                            h.heat_cycle_id = cycle.id
                    created += 1
                await self._repo.update_heat_history(dog_id, history)
        except Exception as exc:
            logger.error("sync_heat_history_to_heat_cycles failed for dog %s: %s", dog_id, exc)
            return 0

        logger.info("Migrated %d legacy heat entries to cycles for dog %s", created, dog_id)
        return created

    async def sync_heat_cycles_to_heat_history(self, dog_id: UUID) -> int:
        """Add legacy entries for cycles that have none.  Idempotent.

        Returns:
            Number of legacy entries added (0 on error).
        """
        try:
            dog = await self._repo.get_dog(dog_id)
            if dog is None:
                logger.warning("sync_heat_cycles_to_heat_history: dog %s not found", dog_id)
                return 0
            cycles = await self._repo.list_heat_cycles(dog_id)
            history = list(dog.heat_history)
            added = 0
            for cycle in sorted(cycles, key=lambda c: c.start_date):
                if any(h.matches(cycle) for h in history):
                    continue
                history.append(self._legacy_entry_for(cycle))
                added += 1
            if added:
                await self._repo.update_heat_history(dog_id, history)
        except Exception as exc:
            logger.error("sync_heat_cycles_to_heat_history failed for dog %s: %s", dog_id, exc)
            return 0
        return added

    # ------------------------------------------------------------------
    # Legacy dual-write helpers
    # ------------------------------------------------------------------

    def _legacy_entry_for(self, cycle: HeatCycleRecord) -> HeatHistoryEntry:
        return HeatHistoryEntry(
            date=cycle.start_date,
            recorded_at=datetime.now(timezone.utc),
            heat_cycle_id=cycle.id,
        )

    async def _write_legacy_entry(self, cycle: HeatCycleRecord) -> None:
        """Append an entry for ``cycle``, or attach the cycle id to a date match."""
        dog = await self._repo.get_dog(cycle.dog_id)
        if dog is None:
            logger.warning("Dog %s not found while writing heat history", cycle.dog_id)
            return
        history = list(dog.heat_history)
        for entry in history:
            if entry.heat_cycle_id is None and entry.date == cycle.start_date:
                entry.heat_cycle_id = cycle.id
                break
        else:
            history.append(self._legacy_entry_for(cycle))
        await self._repo.update_heat_history(cycle.dog_id, history)

    async def _move_legacy_entry(
        self, before: HeatCycleRecord, after: HeatCycleRecord
    ) -> None:
        dog = await self._repo.get_dog(after.dog_id)
        if dog is None:
            return
        history = list(dog.heat_history)
        for entry in history:
            if entry.matches(before):
                entry.date = after.start_date
                entry.heat_cycle_id = after.id
                break
        else:
            history.append(self._legacy_entry_for(after))
        await self._repo.update_heat_history(after.dog_id, history)

    async def _remove_legacy_entry(self, cycle: HeatCycleRecord) -> bool:
        dog = await self._repo.get_dog(cycle.dog_id)
        if dog is None:
            return False
        kept = [h for h in dog.heat_history if not h.matches(cycle)]
        if len(kept) == len(dog.heat_history):
            return False
        await self._repo.update_heat_history(cycle.dog_id, kept)
        return True
