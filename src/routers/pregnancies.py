"""Pregnancy endpoints.

Creating, completing or deleting a pregnancy regenerates its mating,
pregnancy-period and due-date calendar events.  The due date is fixed when
the pregnancy is created and is not recalculated afterwards.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response

from src.breeding.base import BreedingRepository, PregnancyRecord, PregnancyStatus
from src.breeding.calendar.derived import DerivedEventSync
from src.breeding.pregnancy import calculate_due_date, project_pregnancy
from src.dependencies import Config, CurrentUser, Repo
from src.models.breeding import (
    PregnancyCreate,
    PregnancyDetail,
    PregnancyProjectionRead,
    PregnancyRead,
    PregnancyUpdate,
)

router = APIRouter(prefix="/pregnancies", tags=["pregnancies"])
logger = logging.getLogger("kennel.routers.pregnancies")


async def _get_pregnancy(repo: BreedingRepository, pregnancy_id: uuid.UUID) -> PregnancyRecord:
    pregnancy = await repo.get_pregnancy(pregnancy_id)
    if pregnancy is None:
        raise HTTPException(status_code=404, detail="Pregnancy not found")
    return pregnancy


async def _dog_name(repo: BreedingRepository, dog_id: uuid.UUID | None) -> str:
    if dog_id is None:
        return "Unknown"
    dog = await repo.get_dog(dog_id)
    return dog.name if dog else "Unknown"


def _detail(pregnancy: PregnancyRecord, today: date | None, config) -> PregnancyDetail:
    projection = project_pregnancy(pregnancy, today, config)
    return PregnancyDetail(
        **PregnancyRead.model_validate(pregnancy).model_dump(),
        projection=PregnancyProjectionRead.model_validate(projection),
    )


@router.get("", response_model=list[PregnancyRead])
async def list_pregnancies(
    user: CurrentUser,
    repo: Repo,
    status: PregnancyStatus | None = Query(default=None),
) -> Any:
    pregnancies = await repo.list_pregnancies(status.value if status else None)
    return [PregnancyRead.model_validate(p) for p in pregnancies]


@router.get("/{pregnancy_id}", response_model=PregnancyDetail)
async def get_pregnancy(
    pregnancy_id: uuid.UUID,
    user: CurrentUser,
    repo: Repo,
    config: Config,
    today: date | None = Query(default=None),
) -> Any:
    pregnancy = await _get_pregnancy(repo, pregnancy_id)
    return _detail(pregnancy, today, config)


@router.post("", response_model=PregnancyDetail, status_code=201)
async def create_pregnancy(body: PregnancyCreate, user: CurrentUser, repo: Repo, config: Config) -> Any:
    female = await repo.get_dog(body.female_dog_id)
    if female is None:
        raise HTTPException(status_code=404, detail="Dog not found")
    if not female.is_female:
        raise HTTPException(status_code=400, detail="Pregnancies can only be recorded for female dogs")
    if body.male_dog_id is not None and await repo.get_dog(body.male_dog_id) is None:
        raise HTTPException(status_code=404, detail="Sire not found")

    pregnancy = await repo.insert_pregnancy(
        PregnancyRecord(
            id=None,
            female_dog_id=female.id,
            mating_date=body.mating_date,
            expected_due_date=calculate_due_date(body.mating_date, config),
            male_dog_id=body.male_dog_id,
            external_male_name=body.external_male_name,
            user_id=user.user_id,
        )
    )
    if not await DerivedEventSync(repo, config).sync_pregnancy_events(pregnancy, female.name):
        logger.warning("Calendar events not created for pregnancy %s", pregnancy.id)
    return _detail(pregnancy, None, config)


@router.patch("/{pregnancy_id}", response_model=PregnancyDetail)
async def update_pregnancy(
    pregnancy_id: uuid.UUID, body: PregnancyUpdate, user: CurrentUser, repo: Repo, config: Config
) -> Any:
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "status" in updates and updates["status"] is None:
        raise HTTPException(status_code=400, detail="status cannot be cleared")

    previous = await _get_pregnancy(repo, pregnancy_id)
    birth = updates.get("actual_birth_date")
    if birth is not None and birth < previous.mating_date:
        raise HTTPException(status_code=400, detail="actual_birth_date must not be before mating_date")

    pregnancy = await repo.update_pregnancy(pregnancy_id, updates)
    if pregnancy is None:
        raise HTTPException(status_code=404, detail="Pregnancy not found")

    name = await _dog_name(repo, pregnancy.female_dog_id)
    if not await DerivedEventSync(repo, config).sync_pregnancy_events(pregnancy, name):
        logger.warning("Calendar events not refreshed for pregnancy %s", pregnancy_id)
    return _detail(pregnancy, None, config)


@router.delete("/{pregnancy_id}", status_code=204)
async def delete_pregnancy(
    pregnancy_id: uuid.UUID, user: CurrentUser, repo: Repo, config: Config
) -> Response:
    await _get_pregnancy(repo, pregnancy_id)
    if not await DerivedEventSync(repo, config).remove_pregnancy_events(pregnancy_id):
        raise HTTPException(status_code=502, detail="Failed to remove pregnancy events")
    if not await repo.delete_pregnancy(pregnancy_id):
        raise HTTPException(status_code=404, detail="Pregnancy not found")
    return Response(status_code=204)
