"""Reminder endpoints.

Reminder ids are strings: persisted reminders carry a UUID, system
reminders a deterministic key such as ``heat-<dog id>``.  Only persisted
reminders can be deleted; system reminders are dismissed through PATCH.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response

from src.breeding.reminders.merge import is_persisted_id
from src.breeding.reminders.service import ReminderService
from src.dependencies import Config, CurrentUser, Repo
from src.models.breeding import GenerateResult, ReminderCreate, ReminderRead, ReminderUpdate

router = APIRouter(prefix="/reminders", tags=["reminders"])
logger = logging.getLogger("kennel.routers.reminders")


@router.get("", response_model=list[ReminderRead])
async def list_reminders(
    user: CurrentUser,
    repo: Repo,
    config: Config,
    today: date | None = Query(default=None),
    include_completed: bool = Query(default=True),
) -> Any:
    reminders = await ReminderService(repo, config).load_reminders(today)
    if not include_completed:
        reminders = [r for r in reminders if not r.is_completed]
    return [ReminderRead.model_validate(r) for r in reminders]


@router.post("", response_model=ReminderRead, status_code=201)
async def create_reminder(body: ReminderCreate, user: CurrentUser, repo: Repo, config: Config) -> Any:
    if body.dog_id is not None and await repo.get_dog(body.dog_id) is None:
        raise HTTPException(status_code=404, detail="Dog not found")
    reminder = await ReminderService(repo, config).add_custom(
        title=body.title,
        due_date=body.due_date,
        priority=body.priority.value,
        type=body.type,
        description=body.description,
        dog_id=body.dog_id,
    )
    if reminder is None:
        raise HTTPException(status_code=502, detail="Failed to create reminder")
    return ReminderRead.model_validate(reminder)


@router.post("/generate", response_model=GenerateResult)
async def generate_reminders(
    user: CurrentUser,
    repo: Repo,
    config: Config,
    today: date | None = Query(default=None),
) -> Any:
    inserted = await ReminderService(repo, config).generate_and_persist(today)
    if inserted is None:
        raise HTTPException(status_code=502, detail="Failed to generate reminders")
    logger.info("Generated reminders for user %s: %d new", user.user_id, inserted)
    return GenerateResult(inserted=inserted)


@router.patch("/{reminder_id}", status_code=204)
async def update_reminder(
    reminder_id: str, body: ReminderUpdate, user: CurrentUser, repo: Repo, config: Config
) -> Response:
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "is_deleted" in updates and is_persisted_id(reminder_id):
        raise HTTPException(status_code=400, detail="Use DELETE to remove a saved reminder")

    ok = await ReminderService(repo, config).update_status(
        reminder_id,
        is_completed=updates.get("is_completed"),
        is_deleted=updates.get("is_deleted"),
    )
    if not ok:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return Response(status_code=204)


@router.delete("/{reminder_id}", status_code=204)
async def delete_reminder(reminder_id: str, user: CurrentUser, repo: Repo, config: Config) -> Response:
    if not is_persisted_id(reminder_id):
        raise HTTPException(
            status_code=400,
            detail="System reminders cannot be deleted; dismiss them instead",
        )
    if not await ReminderService(repo, config).delete(uuid.UUID(reminder_id)):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return Response(status_code=204)
