"""Heat cycle endpoints: CRUD, daily logs, legacy migration, predictions, calendar sync.

Calendar updates triggered by heat cycle changes run as background tasks;
their failures are logged, not returned to the caller.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Response

from src.breeding.base import (
    BreedingRepository,
    DogRecord,
    HeatCycleConflictError,
    HeatCycleRecord,
    HeatLogRecord,
)
from src.breeding.calendar.derived import DerivedEventSync
from src.breeding.heat.calendar_sync import HeatCalendarSync
from src.breeding.heat.predictions import calculate_upcoming_heats
from src.breeding.heat.store import HeatCycleStore
from src.dependencies import Config, CurrentUser, Repo
from src.models.base import ErrorDetail
from src.models.breeding import (
    HeatCycleCreate,
    HeatCycleDetail,
    HeatCycleEnd,
    HeatCycleRead,
    HeatCycleUpdate,
    HeatLogCreate,
    HeatLogRead,
    HeatLogUpdate,
    MigrationResult,
    SyncResult,
    UpcomingHeatRead,
)

router = APIRouter(tags=["heat cycles"])
logger = logging.getLogger("kennel.routers.heat_cycles")


async def _get_dog(repo: BreedingRepository, dog_id: uuid.UUID) -> DogRecord:
    dog = await repo.get_dog(dog_id)
    if dog is None:
        raise HTTPException(status_code=404, detail="Dog not found")
    return dog


async def _get_cycle(store: HeatCycleStore, cycle_id: uuid.UUID) -> HeatCycleRecord:
    cycle = await store.get_heat_cycle(cycle_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail="Heat cycle not found")
    return cycle


async def _get_log(store: HeatCycleStore, cycle_id: uuid.UUID, log_id: uuid.UUID) -> HeatLogRecord:
    log = await store.get_heat_log(log_id)
    if log is None or log.heat_cycle_id != cycle_id:
        raise HTTPException(status_code=404, detail="Heat log not found")
    return log


async def _full_sync(sync: HeatCalendarSync, dog_id: uuid.UUID, dog_name: str) -> None:
    if not await sync.perform_full_sync(dog_id, dog_name):
        logger.warning("Background calendar sync failed for dog %s", dog_id)


async def _update_calendar(
    sync: HeatCalendarSync,
    cycle: HeatCycleRecord,
    dog_name: str,
    previous: HeatCycleRecord,
) -> None:
    if not await sync.update_calendar_for_heat_cycle(cycle, dog_name, previous):
        logger.warning("Background calendar update failed for heat cycle %s", cycle.id)


# ---------- Per-dog ----------

@router.get("/dogs/{dog_id}/heat-cycles", response_model=list[HeatCycleRead])
async def list_heat_cycles(dog_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config) -> Any:
    await _get_dog(repo, dog_id)
    cycles = await HeatCycleStore(repo, config, user.user_id).get_heat_cycles(dog_id)
    return [HeatCycleRead.model_validate(c) for c in cycles]


@router.get("/dogs/{dog_id}/heat-cycles/active", response_model=HeatCycleDetail)
async def get_active_heat_cycle(
    dog_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config
) -> Any:
    store = HeatCycleStore(repo, config, user.user_id)
    cycle = await store.get_active_heat_cycle(dog_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail="No active heat cycle")
    logs = await store.get_heat_logs(cycle.id)
    return HeatCycleDetail(
        **HeatCycleRead.model_validate(cycle).model_dump(),
        logs=[HeatLogRead.model_validate(log) for log in logs],
    )


@router.post(
    "/dogs/{dog_id}/heat-cycles",
    response_model=HeatCycleRead,
    status_code=201,
    responses={409: {"model": ErrorDetail}},
)
async def create_heat_cycle(
    dog_id: uuid.UUID,
    body: HeatCycleCreate,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
    repo: Repo,
    config: Config,
) -> Any:
    dog = await _get_dog(repo, dog_id)
    if not dog.is_female:
        raise HTTPException(status_code=400, detail="Heat cycles can only be recorded for female dogs")

    store = HeatCycleStore(repo, config, user.user_id)
    try:
        cycle = await store.create_heat_cycle(
            dog_id, body.start_date, notes=body.notes, end_date=body.end_date
        )
    except HeatCycleConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if cycle is None:
        raise HTTPException(status_code=502, detail="Failed to create heat cycle")

    sync = HeatCalendarSync(repo, config, store)
    background_tasks.add_task(_full_sync, sync, dog_id, dog.name)
    return HeatCycleRead.model_validate(cycle)


@router.post("/dogs/{dog_id}/heat-history/migrate", response_model=MigrationResult)
async def migrate_heat_history(
    dog_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
    repo: Repo,
    config: Config,
    direction: Literal["to-cycles", "to-legacy"] = Query(default="to-cycles"),
) -> Any:
    dog = await _get_dog(repo, dog_id)
    store = HeatCycleStore(repo, config, user.user_id)
    if direction == "to-legacy":
        count = await store.sync_heat_cycles_to_heat_history(dog_id)
    else:
        count = await store.sync_heat_history_to_heat_cycles(dog_id)
        if count:
            background_tasks.add_task(
                _full_sync, HeatCalendarSync(repo, config, store), dog_id, dog.name
            )
    return MigrationResult(direction=direction, count=count)


@router.get("/dogs/{dog_id}/heat-predictions", response_model=list[UpcomingHeatRead])
async def heat_predictions(
    dog_id: uuid.UUID,
    user: CurrentUser,
    repo: Repo,
    config: Config,
    months_ahead: int = Query(default=3, ge=0, le=36),
    months_past: int = Query(default=0, ge=0, le=36),
    today: date | None = Query(default=None),
) -> Any:
    dog = await _get_dog(repo, dog_id)
    cycles = await HeatCycleStore(repo, config, user.user_id).get_heat_cycles(dog_id)
    return calculate_upcoming_heats(
        [dog],
        {dog.id: cycles},
        months_ahead=months_ahead,
        months_past=months_past,
        today=today,
        config=config,
    )


@router.post("/dogs/{dog_id}/calendar-sync", response_model=SyncResult)
async def calendar_sync(dog_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config) -> Any:
    dog = await _get_dog(repo, dog_id)
    synced = await HeatCalendarSync(repo, config).perform_full_sync(dog_id, dog.name)
    birthdays = await DerivedEventSync(repo, config).sync_birthday_events(dog)
    return SyncResult(synced=synced, birthdays_synced=birthdays)


# ---------- Per-cycle ----------

@router.get("/heat-cycles/{cycle_id}", response_model=HeatCycleDetail)
async def get_heat_cycle(cycle_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config) -> Any:
    store = HeatCycleStore(repo, config, user.user_id)
    cycle = await _get_cycle(store, cycle_id)
    logs = await store.get_heat_logs(cycle_id)
    return HeatCycleDetail(
        **HeatCycleRead.model_validate(cycle).model_dump(),
        logs=[HeatLogRead.model_validate(log) for log in logs],
    )


@router.patch("/heat-cycles/{cycle_id}", response_model=HeatCycleRead)
async def update_heat_cycle(
    cycle_id: uuid.UUID,
    body: HeatCycleUpdate,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
    repo: Repo,
    config: Config,
) -> Any:
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "start_date" in updates and updates["start_date"] is None:
        raise HTTPException(status_code=400, detail="start_date cannot be cleared")

    store = HeatCycleStore(repo, config, user.user_id)
    previous = await _get_cycle(store, cycle_id)
    start = updates.get("start_date", previous.start_date)
    end = updates["end_date"] if "end_date" in updates else previous.end_date
    if end is not None and end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    if end is None and previous.end_date is not None:
        active = await store.get_active_heat_cycle(previous.dog_id)
        if active is not None and active.id != cycle_id:
            raise HTTPException(status_code=409, detail="Dog already has an active heat cycle")

    cycle = await store.update_heat_cycle(cycle_id, updates)
    if cycle is None:
        raise HTTPException(status_code=502, detail="Failed to update heat cycle")

    dog = await _get_dog(repo, cycle.dog_id)
    sync = HeatCalendarSync(repo, config, store)
    background_tasks.add_task(_update_calendar, sync, cycle, dog.name, previous)
    return HeatCycleRead.model_validate(cycle)


@router.post("/heat-cycles/{cycle_id}/end", response_model=HeatCycleRead)
async def end_heat_cycle(
    cycle_id: uuid.UUID,
    body: HeatCycleEnd,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
    repo: Repo,
    config: Config,
) -> Any:
    store = HeatCycleStore(repo, config, user.user_id)
    previous = await _get_cycle(store, cycle_id)
    if not previous.is_active:
        raise HTTPException(status_code=400, detail="Heat cycle has already ended")
    if body.end_date is not None and body.end_date < previous.start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    cycle = await store.end_heat_cycle(cycle_id, body.end_date)
    if cycle is None:
        raise HTTPException(status_code=502, detail="Failed to end heat cycle")

    dog = await _get_dog(repo, cycle.dog_id)
    sync = HeatCalendarSync(repo, config, store)
    background_tasks.add_task(_update_calendar, sync, cycle, dog.name, previous)
    return HeatCycleRead.model_validate(cycle)


@router.delete("/heat-cycles/{cycle_id}", status_code=204)
async def delete_heat_cycle(
    cycle_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
    repo: Repo,
    config: Config,
) -> Response:
    store = HeatCycleStore(repo, config, user.user_id)
    cycle = await _get_cycle(store, cycle_id)
    if not await store.delete_heat_cycle(cycle_id):
        raise HTTPException(status_code=502, detail="Failed to delete heat cycle")

    dog = await repo.get_dog(cycle.dog_id)
    sync = HeatCalendarSync(repo, config, store)
    background_tasks.add_task(_full_sync, sync, cycle.dog_id, dog.name if dog else "Unknown")
    return Response(status_code=204)


# ---------- Heat logs ----------

@router.get("/heat-cycles/{cycle_id}/logs", response_model=list[HeatLogRead])
async def list_heat_logs(cycle_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config) -> Any:
    store = HeatCycleStore(repo, config, user.user_id)
    await _get_cycle(store, cycle_id)
    return [HeatLogRead.model_validate(log) for log in await store.get_heat_logs(cycle_id)]


@router.post("/heat-cycles/{cycle_id}/logs", response_model=HeatLogRead, status_code=201)
async def create_heat_log(
    cycle_id: uuid.UUID, body: HeatLogCreate, user: CurrentUser, repo: Repo, config: Config
) -> Any:
    store = HeatCycleStore(repo, config, user.user_id)
    cycle = await _get_cycle(store, cycle_id)
    if body.date < cycle.start_date:
        raise HTTPException(status_code=400, detail="Log date must not be before the cycle start")

    log = await store.add_heat_log(
        cycle_id,
        body.date,
        phase=body.phase,
        temperature=body.temperature,
        observations=body.observations,
        notes=body.notes,
    )
    if log is None:
        raise HTTPException(status_code=502, detail="Failed to record heat log")
    return HeatLogRead.model_validate(log)


@router.patch("/heat-cycles/{cycle_id}/logs/{log_id}", response_model=HeatLogRead)
async def update_heat_log(
    cycle_id: uuid.UUID,
    log_id: uuid.UUID,
    body: HeatLogUpdate,
    user: CurrentUser,
    repo: Repo,
    config: Config,
) -> Any:
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "date" in updates and updates["date"] is None:
        raise HTTPException(status_code=400, detail="date cannot be cleared")

    store = HeatCycleStore(repo, config, user.user_id)
    cycle = await _get_cycle(store, cycle_id)
    await _get_log(store, cycle_id, log_id)
    if "date" in updates and updates["date"] < cycle.start_date:
        raise HTTPException(status_code=400, detail="Log date must not be before the cycle start")

    log = await store.update_heat_log(log_id, updates)
    if log is None:
        raise HTTPException(status_code=502, detail="Failed to update heat log")
    return HeatLogRead.model_validate(log)


@router.delete("/heat-cycles/{cycle_id}/logs/{log_id}", status_code=204)
async def delete_heat_log(
    cycle_id: uuid.UUID, log_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config
) -> Response:
    store = HeatCycleStore(repo, config, user.user_id)
    await _get_log(store, cycle_id, log_id)
    if not await store.delete_heat_log(log_id):
        raise HTTPException(status_code=502, detail="Failed to delete heat log")
    return Response(status_code=204)
