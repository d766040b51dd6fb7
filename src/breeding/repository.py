"""asyncpg implementation of BreedingRepository over the Supabase database.

One instance serves one authenticated user.  Every statement runs on a
connection from ``get_connection(user_id=...)``, so Supabase RLS scopes it
to that user.  Inside ``transaction()`` all statements share one connection
and one transaction; outside it each call gets its own.

Column names follow the hosted schema, including the camelCase legacy
columns on ``dogs`` (``"heatHistory"``, ``"heatInterval"``,
``"vaccinationDate"``).
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator
from uuid import UUID

import asyncpg

from src.breeding.base import (
    BreedingRepository,
    CalendarEventRecord,
    DogRecord,
    HeatCycleRecord,
    HeatHistoryEntry,
    HeatLogRecord,
    LitterRecord,
    PlannedLitterRecord,
    PregnancyRecord,
    ReminderRecord,
    ReminderStatusRecord,
    parse_calendar_date,
)
from src.services.supabase import get_connection

logger = logging.getLogger("kennel.breeding.repository")

_DOG_COLUMNS = (
    'id, name, gender, birthdate, "vaccinationDate", "heatInterval", '
    'sterilization_date, "heatHistory", owner_id'
)
_EVENT_COLUMNS = (
    "id, title, date, end_date, type, dog_id, dog_name, status, notes, "
    "heat_phase, pregnancy_id, user_id"
)
_PREGNANCY_COLUMNS = (
    "id, female_dog_id, male_dog_id, external_male_name, mating_date, "
    "expected_due_date, actual_birth_date, status, user_id"
)
_REMINDER_COLUMNS = (
    "id, title, description, due_date, priority, type, is_completed, related_id, source"
)

# Columns a caller may write through the generic ``update_*`` methods.
_HEAT_CYCLE_WRITABLE = frozenset({"start_date", "end_date", "cycle_length", "notes"})
_HEAT_LOG_WRITABLE = frozenset({"date", "phase", "temperature", "observations", "notes"})
_EVENT_WRITABLE = frozenset(
    {"title", "date", "end_date", "type", "dog_id", "dog_name", "status", "notes", "heat_phase"}
)
_PREGNANCY_WRITABLE = frozenset({"actual_birth_date", "status", "male_dog_id", "external_male_name"})
_REMINDER_WRITABLE = frozenset({"title", "description", "due_date", "priority", "is_completed"})


def _set_clause(fields: dict[str, Any], allowed: frozenset[str], start: int = 1) -> tuple[str, list]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update column(s): {', '.join(sorted(unknown))}")
    parts: list[str] = []
    values: list[Any] = []
    for i, (col, val) in enumerate(fields.items(), start=start):
        parts.append(f"{col} = ${i}")
        values.append(val)
    return ", ".join(parts), values


def _rows_affected(status: str) -> int:
    """Parse asyncpg's command tag (``"DELETE 3"``) into a row count."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0


# ---------------------------------------------------------------------------
# Row → record mapping
# ---------------------------------------------------------------------------


def _dog(row: asyncpg.Record) -> DogRecord:
    raw_history = row["heatHistory"]
    if isinstance(raw_history, str):
        raw_history = json.loads(raw_history)
    history = [
        entry
        for entry in (HeatHistoryEntry.from_json(h) for h in raw_history or [] if isinstance(h, dict))
        if entry is not None
    ]
    return DogRecord(
        id=row["id"],
        name=row["name"],
        gender=row["gender"],
        date_of_birth=parse_calendar_date(row["birthdate"]),
        vaccination_date=parse_calendar_date(row["vaccinationDate"]),
        heat_interval=row["heatInterval"],
        sterilization_date=parse_calendar_date(row["sterilization_date"]),
        heat_history=history,
        owner_id=row["owner_id"],
    )


def _heat_cycle(row: asyncpg.Record) -> HeatCycleRecord:
    return HeatCycleRecord(
        id=row["id"],
        dog_id=row["dog_id"],
        start_date=parse_calendar_date(row["start_date"]),
        end_date=parse_calendar_date(row["end_date"]),
        cycle_length=row["cycle_length"],
        notes=row["notes"],
        user_id=row["user_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _heat_log(row: asyncpg.Record) -> HeatLogRecord:
    return HeatLogRecord(
        id=row["id"],
        heat_cycle_id=row["heat_cycle_id"],
        date=parse_calendar_date(row["date"]),
        phase=row["phase"],
        temperature=row["temperature"],
        observations=row["observations"],
        notes=row["notes"],
        user_id=row["user_id"],
    )


def _event(row: asyncpg.Record) -> CalendarEventRecord:
    return CalendarEventRecord(
        id=row["id"],
        title=row["title"],
        date=parse_calendar_date(row["date"]),
        end_date=parse_calendar_date(row["end_date"]),
        type=row["type"],
        dog_id=row["dog_id"],
        dog_name=row["dog_name"],
        status=row["status"],
        notes=row["notes"],
        heat_phase=row["heat_phase"],
        pregnancy_id=row["pregnancy_id"],
        user_id=row["user_id"],
    )


def _pregnancy(row: asyncpg.Record) -> PregnancyRecord:
    return PregnancyRecord(
        id=row["id"],
        female_dog_id=row["female_dog_id"],
        male_dog_id=row["male_dog_id"],
        external_male_name=row["external_male_name"],
        mating_date=parse_calendar_date(row["mating_date"]),
        expected_due_date=parse_calendar_date(row["expected_due_date"]),
        actual_birth_date=parse_calendar_date(row["actual_birth_date"]),
        status=row["status"],
        user_id=row["user_id"],
    )


def _reminder(row: asyncpg.Record) -> ReminderRecord:
    return ReminderRecord(
        id=str(row["id"]),
        title=row["title"],
        description=row["description"],
        due_date=parse_calendar_date(row["due_date"]),
        priority=row["priority"],
        type=row["type"],
        is_completed=bool(row["is_completed"]),
        related_id=row["related_id"],
        source_key=row["source"],
        is_custom=row["source"] is None,
    )


class PostgresBreedingRepository(BreedingRepository):
    """BreedingRepository for one user, backed by the asyncpg pool."""

    def __init__(self, user_id: UUID) -> None:
        self._user_id = user_id
        self._conn: asyncpg.Connection | None = None

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self._conn is not None:
            yield self._conn
            return
        async with get_connection(user_id=self._user_id) as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._conn is not None:
            # Nested: a savepoint on the shared connection
            async with self._conn.transaction():
                yield
            return
        async with get_connection(user_id=self._user_id) as conn:
            self._conn = conn
            try:
                yield
            finally:
                self._conn = None

    # ── Dogs ──

    async def get_dog(self, dog_id: UUID) -> DogRecord | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_DOG_COLUMNS} FROM dogs WHERE id = $1 AND deleted_at IS NULL", dog_id
            )
        return _dog(row) if row else None

    async def list_dogs(self) -> list[DogRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_DOG_COLUMNS} FROM dogs WHERE deleted_at IS NULL ORDER BY name"
            )
        return [_dog(r) for r in rows]

    async def update_heat_history(self, dog_id: UUID, entries: list[HeatHistoryEntry]) -> None:
        payload = json.dumps([e.to_json() for e in sorted(entries, key=lambda e: e.date)])
        async with self._connection() as conn:
            status = await conn.execute(
                'UPDATE dogs SET "heatHistory" = $1::jsonb, updated_at = now() WHERE id = $2',
                payload,
                dog_id,
            )
        if _rows_affected(status) == 0:
            logger.warning("update_heat_history: dog %s not updated", dog_id)

    # ── Heat cycles & logs ──

    async def list_heat_cycles(self, dog_id: UUID) -> list[HeatCycleRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM heat_cycles WHERE dog_id = $1 ORDER BY start_date DESC", dog_id
            )
        return [_heat_cycle(r) for r in rows]

    async def get_heat_cycle(self, cycle_id: UUID) -> HeatCycleRecord | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM heat_cycles WHERE id = $1", cycle_id)
        return _heat_cycle(row) if row else None

    async def insert_heat_cycle(self, cycle: HeatCycleRecord) -> HeatCycleRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO heat_cycles (dog_id, start_date, end_date, cycle_length, notes, user_id)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                cycle.dog_id,
                cycle.start_date,
                cycle.end_date,
                cycle.cycle_length,
                cycle.notes,
                cycle.user_id or self._user_id,
            )
        return _heat_cycle(row)

    async def update_heat_cycle(
        self, cycle_id: UUID, fields: dict[str, Any]
    ) -> HeatCycleRecord | None:
        set_sql, values = _set_clause(fields, _HEAT_CYCLE_WRITABLE, start=2)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE heat_cycles SET {set_sql}, updated_at = now() WHERE id = $1 RETURNING *",
                cycle_id,
                *values,
            )
        return _heat_cycle(row) if row else None

    async def delete_heat_cycle(self, cycle_id: UUID) -> bool:
        async with self._connection() as conn:
            status = await conn.execute("DELETE FROM heat_cycles WHERE id = $1", cycle_id)
        return _rows_affected(status) > 0

    async def list_heat_logs(self, cycle_id: UUID) -> list[HeatLogRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM heat_logs WHERE heat_cycle_id = $1 ORDER BY date", cycle_id
            )
        return [_heat_log(r) for r in rows]

    async def get_heat_log(self, log_id: UUID) -> HeatLogRecord | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM heat_logs WHERE id = $1", log_id)
        return _heat_log(row) if row else None

    async def insert_heat_log(self, log: HeatLogRecord) -> HeatLogRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO heat_logs
                    (heat_cycle_id, date, phase, temperature, observations, notes, user_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
                """,
                log.heat_cycle_id,
                log.date,
                log.phase,
                log.temperature,
                log.observations,
                log.notes,
                log.user_id or self._user_id,
            )
        return _heat_log(row)

    async def update_heat_log(
        self, log_id: UUID, fields: dict[str, Any]
    ) -> HeatLogRecord | None:
        set_sql, values = _set_clause(fields, _HEAT_LOG_WRITABLE, start=2)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE heat_logs SET {set_sql}, updated_at = now() WHERE id = $1 RETURNING *",
                log_id,
                *values,
            )
        return _heat_log(row) if row else None

    async def delete_heat_log(self, log_id: UUID) -> bool:
        async with self._connection() as conn:
            status = await conn.execute("DELETE FROM heat_logs WHERE id = $1", log_id)
        return _rows_affected(status) > 0

    async def delete_heat_logs(self, cycle_id: UUID) -> int:
        async with self._connection() as conn:
            status = await conn.execute("DELETE FROM heat_logs WHERE heat_cycle_id = $1", cycle_id)
        return _rows_affected(status)

    # ── Calendar events ──

    async def list_calendar_events(
        self,
        *,
        dog_id: UUID | None = None,
        types: tuple[str, ...] | list[str] | None = None,
        start: date | None = None,
        end: date | None = None,
        pregnancy_id: UUID | None = None,
    ) -> list[CalendarEventRecord]:
        conditions: list[str] = []
        params: list[Any] = []

        def _param(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if dog_id is not None:
            conditions.append(f"dog_id = {_param(dog_id)}")
        if types is not None:
            conditions.append(f"type = ANY({_param(list(types))}::text[])")
        if pregnancy_id is not None:
            conditions.append(f"pregnancy_id = {_param(pregnancy_id)}")
        if end is not None:
            conditions.append(f"date <= {_param(end)}")
        if start is not None:
            conditions.append(f"COALESCE(end_date, date) >= {_param(start)}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_EVENT_COLUMNS} FROM calendar_events {where} ORDER BY date, title",
                *params,
            )
        return [_event(r) for r in rows]

    async def get_calendar_event(self, event_id: UUID) -> CalendarEventRecord | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_EVENT_COLUMNS} FROM calendar_events WHERE id = $1", event_id
            )
        return _event(row) if row else None

    async def insert_calendar_event(self, event: CalendarEventRecord) -> CalendarEventRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO calendar_events
                    (title, date, end_date, type, dog_id, dog_name, status, notes,
                     heat_phase, pregnancy_id, user_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                RETURNING {_EVENT_COLUMNS}
                """,
                event.title,
                event.date,
                event.end_date,
                event.type,
                event.dog_id,
                event.dog_name,
                event.status,
                event.notes,
                event.heat_phase,
                event.pregnancy_id,
                event.user_id or self._user_id,
            )
        return _event(row)

    async def update_calendar_event(
        self, event_id: UUID, fields: dict[str, Any]
    ) -> CalendarEventRecord | None:
        set_sql, values = _set_clause(fields, _EVENT_WRITABLE, start=2)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE calendar_events SET {set_sql}, updated_at = now() "
                f"WHERE id = $1 RETURNING {_EVENT_COLUMNS}",
                event_id,
                *values,
            )
        return _event(row) if row else None

    async def delete_calendar_event(self, event_id: UUID) -> bool:
        async with self._connection() as conn:
            status = await conn.execute("DELETE FROM calendar_events WHERE id = $1", event_id)
        return _rows_affected(status) > 0

    async def delete_calendar_events(
        self,
        *,
        types: tuple[str, ...] | list[str],
        dog_id: UUID | None = None,
        pregnancy_id: UUID | None = None,
    ) -> int:
        if dog_id is None and pregnancy_id is None:
            raise ValueError("delete_calendar_events needs a dog_id or a pregnancy_id")
        conditions = ["type = ANY($1::text[])"]
        params: list[Any] = [list(types)]
        if dog_id is not None:
            params.append(dog_id)
            conditions.append(f"dog_id = ${len(params)}")
        if pregnancy_id is not None:
            params.append(pregnancy_id)
            conditions.append(f"pregnancy_id = ${len(params)}")
        async with self._connection() as conn:
            status = await conn.execute(
                f"DELETE FROM calendar_events WHERE {' AND '.join(conditions)}", *params
            )
        return _rows_affected(status)

    async def delete_calendar_events_before(self, event_type: str, cutoff: date) -> int:
        async with self._connection() as conn:
            status = await conn.execute(
                "DELETE FROM calendar_events WHERE type = $1 AND date < $2", event_type, cutoff
            )
        return _rows_affected(status)

    # ── Pregnancies, litters ──

    async def list_pregnancies(self, status: str | None = None) -> list[PregnancyRecord]:
        async with self._connection() as conn:
            if status is None:
                rows = await conn.fetch(
                    f"SELECT {_PREGNANCY_COLUMNS} FROM pregnancies ORDER BY mating_date DESC"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_PREGNANCY_COLUMNS} FROM pregnancies WHERE status = $1 "
                    "ORDER BY mating_date DESC",
                    status,
                )
        return [_pregnancy(r) for r in rows]

    async def get_pregnancy(self, pregnancy_id: UUID) -> PregnancyRecord | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_PREGNANCY_COLUMNS} FROM pregnancies WHERE id = $1", pregnancy_id
            )
        return _pregnancy(row) if row else None

    async def insert_pregnancy(self, pregnancy: PregnancyRecord) -> PregnancyRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO pregnancies
                    (female_dog_id, male_dog_id, external_male_name, mating_date,
                     expected_due_date, status, user_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING {_PREGNANCY_COLUMNS}
                """,
                pregnancy.female_dog_id,
                pregnancy.male_dog_id,
                pregnancy.external_male_name,
                pregnancy.mating_date,
                pregnancy.expected_due_date,
                pregnancy.status,
                pregnancy.user_id or self._user_id,
            )
        return _pregnancy(row)

    async def update_pregnancy(
        self, pregnancy_id: UUID, fields: dict[str, Any]
    ) -> PregnancyRecord | None:
        set_sql, values = _set_clause(fields, _PREGNANCY_WRITABLE, start=2)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE pregnancies SET {set_sql}, updated_at = now() "
                f"WHERE id = $1 RETURNING {_PREGNANCY_COLUMNS}",
                pregnancy_id,
                *values,
            )
        return _pregnancy(row) if row else None

    async def delete_pregnancy(self, pregnancy_id: UUID) -> bool:
        async with self._connection() as conn:
            status = await conn.execute("DELETE FROM pregnancies WHERE id = $1", pregnancy_id)
        return _rows_affected(status) > 0

    async def list_litters(self, include_archived: bool = False) -> list[LitterRecord]:
        query = "SELECT id, name, date_of_birth, dam_id, archived FROM litters"
        if not include_archived:
            query += " WHERE archived IS NOT TRUE"
        async with self._connection() as conn:
            rows = await conn.fetch(query + " ORDER BY date_of_birth DESC")
        return [
            LitterRecord(
                id=r["id"],
                name=r["name"],
                date_of_birth=parse_calendar_date(r["date_of_birth"]),
                dam_id=r["dam_id"],
                archived=bool(r["archived"]),
            )
            for r in rows
        ]

    async def list_planned_litters(self) -> list[PlannedLitterRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT id, female_id, female_name, expected_heat_date FROM planned_litters "
                "ORDER BY expected_heat_date"
            )
        return [
            PlannedLitterRecord(
                id=r["id"],
                female_id=r["female_id"],
                female_name=r["female_name"],
                expected_heat_date=parse_calendar_date(r["expected_heat_date"]),
            )
            for r in rows
        ]

    # ── Reminders ──

    async def list_reminders(self) -> list[ReminderRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_REMINDER_COLUMNS} FROM reminders WHERE is_deleted IS NOT TRUE "
                "ORDER BY due_date"
            )
        return [_reminder(r) for r in rows]

    async def insert_reminder(self, reminder: ReminderRecord) -> ReminderRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO reminders
                    (title, description, due_date, priority, type, is_completed,
                     related_id, source, user_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {_REMINDER_COLUMNS}
                """,
                reminder.title,
                reminder.description or "",
                reminder.due_date,
                reminder.priority,
                reminder.type,
                reminder.is_completed,
                reminder.related_id or reminder.dog_id,
                reminder.source_key,
                self._user_id,
            )
        return _reminder(row)

    async def update_reminder(
        self, reminder_id: UUID, fields: dict[str, Any]
    ) -> ReminderRecord | None:
        set_sql, values = _set_clause(fields, _REMINDER_WRITABLE, start=2)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE reminders SET {set_sql}, updated_at = now() "
                f"WHERE id = $1 RETURNING {_REMINDER_COLUMNS}",
                reminder_id,
                *values,
            )
        return _reminder(row) if row else None

    async def delete_reminder(self, reminder_id: UUID) -> bool:
        async with self._connection() as conn:
            status = await conn.execute("DELETE FROM reminders WHERE id = $1", reminder_id)
        return _rows_affected(status) > 0

    async def list_reminder_statuses(self) -> list[ReminderStatusRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT reminder_id, is_completed, is_deleted FROM reminder_status"
            )
        return [
            ReminderStatusRecord(
                reminder_id=r["reminder_id"],
                is_completed=bool(r["is_completed"]),
                is_deleted=bool(r["is_deleted"]),
            )
            for r in rows
        ]

    async def upsert_reminder_status(self, status: ReminderStatusRecord) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO reminder_status (reminder_id, user_id, is_completed, is_deleted)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (reminder_id, user_id)
                DO UPDATE SET is_completed = EXCLUDED.is_completed,
                              is_deleted = EXCLUDED.is_deleted,
                              updated_at = now()
                """,
                status.reminder_id,
                self._user_id,
                status.is_completed,
                status.is_deleted,
            )
