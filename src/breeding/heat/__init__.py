"""Heat cycle tracking for the breeding engine.

Modules:
    store         — Heat cycle CRUD, legacy heat-history dual-write and migration
    calendar_sync — Derived heat / ovulation / fertility-window calendar events
    predictions   — Upcoming heat dates from the latest heat and the dog's interval
"""

from src.breeding.heat.store import HeatCycleStore, compute_cycle_length, latest_heat_date
from src.breeding.heat.calendar_sync import (
    HeatCalendarSync,
    extract_heat_cycle_id_from_event,
)
from src.breeding.heat.predictions import UpcomingHeat, calculate_upcoming_heats

__all__ = [
    "HeatCycleStore",
    "compute_cycle_length",
    "latest_heat_date",
    "HeatCalendarSync",
    "extract_heat_cycle_id_from_event",
    "UpcomingHeat",
    "calculate_upcoming_heats",
]
