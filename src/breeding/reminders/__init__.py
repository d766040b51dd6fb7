"""Reminder generation and merge layer.

Modules:
    generators — Birthday, vaccination, heat, planned-heat, litter and due-date reminders
    merge      — Id-based dedup, status overlay and priority ordering
    service    — Load / generate-and-persist / update against a BreedingRepository
"""

from src.breeding.reminders.generators import (
    generate_birthday_reminders,
    generate_heat_reminders,
    generate_litter_reminders,
    generate_planned_heat_reminders,
    generate_pregnancy_reminders,
    generate_system_reminders,
    generate_vaccination_reminders,
)
from src.breeding.reminders.merge import (
    apply_statuses,
    is_persisted_id,
    merge_reminders,
    sort_reminders,
)
from src.breeding.reminders.service import ReminderService

__all__ = [
    "generate_birthday_reminders",
    "generate_heat_reminders",
    "generate_litter_reminders",
    "generate_planned_heat_reminders",
    "generate_pregnancy_reminders",
    "generate_system_reminders",
    "generate_vaccination_reminders",
    "apply_statuses",
    "is_persisted_id",
    "merge_reminders",
    "sort_reminders",
    "ReminderService",
]
