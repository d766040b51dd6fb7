"""Kennelbook breeding engine.

Heat cycle tracking, heat ↔ calendar synchronization, pregnancy date
projection, the breeding calendar grid and reminder generation.  The engine
talks to storage only through the BreedingRepository ABC and never imports
the web layer.

Subpackages:
    heat/      — Heat cycle store, calendar sync, heat predictions
    calendar/  — Month grid aggregation, pregnancy/birthday events, retention cleanup
    reminders/ — Reminder generators, merge/sort, reminder service

Core modules:
    base          — BreedingRepository ABC and canonical records
    config_loader — Load/validate/hot-reload breeding_config.yaml
    pregnancy     — Due date, progress and week-band projection
    repository    — asyncpg-backed BreedingRepository (Supabase Postgres)
"""

from src.breeding.base import (
    BreedingError,
    BreedingRepository,
    CalendarEventRecord,
    DogRecord,
    EventType,
    HeatCycleConflictError,
    HeatCycleRecord,
    HeatHistoryEntry,
    PregnancyRecord,
    RecordNotFoundError,
    ReminderRecord,
)
from src.breeding.config_loader import BreedingConfig, get_breeding_config

__all__ = [
    "BreedingError",
    "BreedingRepository",
    "CalendarEventRecord",
    "DogRecord",
    "EventType",
    "HeatCycleConflictError",
    "HeatCycleRecord",
    "HeatHistoryEntry",
    "PregnancyRecord",
    "RecordNotFoundError",
    "ReminderRecord",
    "BreedingConfig",
    "get_breeding_config",
]
