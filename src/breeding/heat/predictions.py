"""Upcoming heat predictions from the latest known heat and the dog's interval."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from src.breeding.base import DogRecord, HeatCycleRecord
from src.breeding.config_loader import BreedingConfig, get_breeding_config
from src.breeding.heat.store import latest_heat_date

logger = logging.getLogger("kennel.breeding.heat.predictions")


@dataclass
class UpcomingHeat:
    """A predicted heat start for one dog."""

    dog_id: UUID
    dog_name: str
    date: date


def calculate_upcoming_heats(
    dogs: list[DogRecord],
    cycles_by_dog: dict[UUID, list[HeatCycleRecord]] | None = None,
    months_ahead: int = 3,
    months_past: int = 0,
    today: date | None = None,
    config: BreedingConfig | None = None,
) -> list[UpcomingHeat]:
    """Project heat dates for every female dog with a known heat.

    Starting from the latest heat (structured cycles and legacy history
    together), dates are stepped forward by the dog's ``heat_interval``
    (default 180 days) up to ``today + months_ahead * 30`` days.  Only dates
    on or after ``today - months_past * 30`` days are returned.

    Returns:
        Predictions for all dogs, sorted by date.
    """
    today = today or date.today()
    default_interval = (config or get_breeding_config()).heat_cycle.default_interval_days
    cycles_by_dog = cycles_by_dog or {}
    horizon = today + timedelta(days=months_ahead * 30)
    floor = today - timedelta(days=months_past * 30)

    upcoming: list[UpcomingHeat] = []
    for dog in dogs:
        if not dog.is_female:
            continue
        last = latest_heat_date(cycles_by_dog.get(dog.id, []), dog.heat_history)
        if last is None:
            logger.debug("No heat records for dog %s; skipping prediction", dog.id)
            continue
        interval = dog.heat_interval or default_interval
        if interval <= 0:
            logger.warning("Dog %s has a non-positive heat interval %s", dog.id, interval)
            continue

        next_heat = last + timedelta(days=interval)
        while next_heat <= horizon:
            if next_heat >= floor:
                upcoming.append(UpcomingHeat(dog_id=dog.id, dog_name=dog.name, date=next_heat))
            next_heat += timedelta(days=interval)

    upcoming.sort(key=lambda h: h.date)
    return upcoming
