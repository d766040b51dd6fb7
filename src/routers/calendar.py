"""Breeding calendar endpoints: events, month grid, retention cleanup."""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response

from src.breeding.base import DERIVED_EVENT_TYPES, CalendarEventRecord, EventType
from src.breeding.calendar.cleanup import run_cleanup
from src.breeding.calendar.grid import (
    CalendarSelection,
    EventIndex,
    MonthGrid,
    build_month_grid,
    month_weeks,
)
from src.breeding.heat.calendar_sync import HeatCalendarSync
from src.breeding.heat.store import HeatCycleStore
from src.dependencies import Config, CurrentUser, Repo
from src.models.breeding import (
    CalendarEventCreate,
    CalendarEventRead,
    CalendarEventUpdate,
    CleanupResult,
    DayCellRead,
    MonthGridRead,
    PregnancyBandRead,
    WeekRowRead,
)

router = APIRouter(prefix="/calendar", tags=["calendar"])
logger = logging.getLogger("kennel.routers.calendar")


def _reject_derived(event_type: str) -> None:
    if event_type in DERIVED_EVENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"'{event_type}' events are generated from their source record "
            "and cannot be edited directly",
        )


def _grid_read(grid: MonthGrid, selection: CalendarSelection | None) -> MonthGridRead:
    weeks = [
        WeekRowRead(
            days=[
                DayCellRead(
                    date=c.date,
                    in_month=c.in_month,
                    is_today=c.is_today,
                    pills=[CalendarEventRead.model_validate(e) for e in c.pills],
                    overflow=c.overflow,
                    is_due_date=c.is_due_date,
                    is_birthday=c.is_birthday,
                    is_due_week=c.is_due_week,
                    is_heat=c.is_heat,
                    is_fertility_window=c.is_fertility_window,
                    is_ovulation=c.is_ovulation,
                    within_due_uncertainty=c.within_due_uncertainty,
                    badges=c.badges,
                )
                for c in week.days
            ],
            bands=[
                PregnancyBandRead(
                    pregnancy_event_id=b.event.id,
                    pregnancy_id=b.event.pregnancy_id,
                    dog_name=b.event.dog_name,
                    lane=b.lane,
                    start_day=b.segment.start_day,
                    end_day=b.segment.end_day,
                    is_due_week=b.segment.is_due_week,
                    label=b.badge,
                )
                for b in week.bands
            ],
        )
        for week in grid.weeks
    ]
    return MonthGridRead(
        year=grid.year,
        month=grid.month,
        weeks=weeks,
        selected_date=selection.selected_date if selection else None,
        selected_events=[
            CalendarEventRead.model_validate(e) for e in selection.day_events
        ] if selection else [],
    )


# ---------- Events ----------

@router.get("/events", response_model=list[CalendarEventRead])
async def list_events(
    user: CurrentUser,
    repo: Repo,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    dog_id: uuid.UUID | None = Query(default=None),
    type: str | None = Query(default=None),
) -> Any:
    if start and end and end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    events = await repo.list_calendar_events(
        dog_id=dog_id, types=(type,) if type else None, start=start, end=end
    )
    return [CalendarEventRead.model_validate(e) for e in events]


@router.post("/events", response_model=CalendarEventRead, status_code=201)
async def create_event(body: CalendarEventCreate, user: CurrentUser, repo: Repo, config: Config) -> Any:
    if body.end_date is not None and body.end_date < body.date:
        raise HTTPException(status_code=400, detail="end_date must not be before date")

    if body.type == EventType.heat_active.value:
        if body.dog_id is None:
            raise HTTPException(status_code=400, detail="A heat event needs a dog_id")
        dog = await repo.get_dog(body.dog_id)
        if dog is None:
            raise HTTPException(status_code=404, detail="Dog not found")
        sync = HeatCalendarSync(repo, config, HeatCycleStore(repo, config, user.user_id))
        draft = CalendarEventRecord(
            id=None,
            title=body.title,
            date=body.date,
            type=body.type,
            dog_id=dog.id,
            dog_name=body.dog_name or dog.name,
            notes=body.notes,
        )
        cycle = await sync.create_heat_cycle_from_calendar(draft, dog.id)
        if cycle is None:
            raise HTTPException(status_code=502, detail="Failed to start heat cycle")
        rows = await repo.list_calendar_events(
            dog_id=dog.id, types=(EventType.heat_active.value,)
        )
        if not rows:
            raise HTTPException(status_code=502, detail="Heat cycle created but calendar sync failed")
        return CalendarEventRead.model_validate(rows[0])

    _reject_derived(body.type)
    event = await repo.insert_calendar_event(
        CalendarEventRecord(
            id=None,
            title=body.title,
            date=body.date,
            end_date=body.end_date,
            type=body.type,
            dog_id=body.dog_id,
            dog_name=body.dog_name,
            notes=body.notes,
            user_id=user.user_id,
        )
    )
    return CalendarEventRead.model_validate(event)


@router.patch("/events/{event_id}", response_model=CalendarEventRead)
async def update_event(
    event_id: uuid.UUID, body: CalendarEventUpdate, user: CurrentUser, repo: Repo
) -> Any:
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    event = await repo.get_calendar_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    _reject_derived(event.type)

    start = updates.get("date") or event.date
    end = updates["end_date"] if "end_date" in updates else event.end_date
    if end is not None and end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before date")

    updated = await repo.update_calendar_event(event_id, updates)
    if updated is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return CalendarEventRead.model_validate(updated)


@router.delete("/events/{event_id}", status_code=204)
async def delete_event(event_id: uuid.UUID, user: CurrentUser, repo: Repo) -> Response:
    event = await repo.get_calendar_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    _reject_derived(event.type)
    if not await repo.delete_calendar_event(event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return Response(status_code=204)


# ---------- Grid ----------

@router.get("/grid", response_model=MonthGridRead)
async def month_grid(
    user: CurrentUser,
    repo: Repo,
    config: Config,
    year: int = Query(ge=1900, le=2200),
    month: int = Query(ge=1, le=12),
    today: date | None = Query(default=None),
    selected: date | None = Query(default=None),
    dog_id: uuid.UUID | None = Query(default=None),
) -> Any:
    weeks = month_weeks(year, month, config.calendar.week_starts_on)
    # Due dates just outside the visible weeks still flag their edge days
    lookback = timedelta(days=config.gestation.due_date_uncertainty_days)
    events = await repo.list_calendar_events(
        dog_id=dog_id, start=weeks[0][0] - lookback, end=weeks[-1][-1] + lookback
    )
    grid = build_month_grid(year, month, events, today=today or date.today(), config=config)

    selection = None
    if selected is not None:
        selection = CalendarSelection(index=EventIndex(events, config))
        selection.select_date(selected)
    return _grid_read(grid, selection)


# ---------- Maintenance ----------

@router.post("/cleanup", response_model=CleanupResult)
async def cleanup(
    user: CurrentUser,
    repo: Repo,
    config: Config,
    today: date | None = Query(default=None),
) -> Any:
    counts = await run_cleanup(repo, today=today, config=config)
    if counts is None:
        raise HTTPException(status_code=502, detail="Calendar cleanup failed")
    logger.info("Calendar cleanup for user %s removed %d events", user.user_id, sum(counts.values()))
    return CleanupResult(deleted=counts, total=sum(counts.values()))
