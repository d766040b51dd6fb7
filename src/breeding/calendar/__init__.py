"""Breeding calendar.

Modules:
    grid    — Month grid: pills by chip priority, styling flags, pregnancy bands and badges
    derived — Pregnancy (mating / pregnancy-period / due-date) and birthday events
    cleanup — Retention cleanup of expired events
"""

from src.breeding.calendar.cleanup import retention_cutoff, run_cleanup
from src.breeding.calendar.derived import DerivedEventSync
from src.breeding.calendar.grid import (
    CalendarSelection,
    DayCell,
    EventIndex,
    MonthGrid,
    build_month_grid,
)

__all__ = [
    "retention_cutoff",
    "run_cleanup",
    "DerivedEventSync",
    "CalendarSelection",
    "DayCell",
    "EventIndex",
    "MonthGrid",
    "build_month_grid",
]
