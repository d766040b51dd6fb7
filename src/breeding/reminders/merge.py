"""Merge, status overlay and ordering of reminder lists."""

from __future__ import annotations

from uuid import UUID

from src.breeding.base import ReminderRecord, ReminderStatusRecord

_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


def is_persisted_id(reminder_id: str) -> bool:
    """True for UUID ids (rows in the reminders table), False for system ids."""
    try:
        UUID(str(reminder_id))
    except ValueError:
        return False
    return True


def merge_reminders(*reminder_sets: list[ReminderRecord]) -> list[ReminderRecord]:
    """Concatenate reminder lists, keeping the first reminder seen per id.

    A persisted row generated from a system reminder also shadows that
    system reminder through its ``source_key``, so pass persisted rows first.
    """
    seen: set[str] = set()
    merged: list[ReminderRecord] = []
    for reminder_set in reminder_sets:
        for reminder in reminder_set:
            keys = {reminder.id}
            if reminder.source_key:
                keys.add(reminder.source_key)
            if keys & seen:
                continue
            seen |= keys
            merged.append(reminder)
    return merged


def apply_statuses(
    reminders: list[ReminderRecord], statuses: list[ReminderStatusRecord]
) -> list[ReminderRecord]:
    """Overlay stored completion state and drop dismissed system reminders.

    A persisted row that stores a system reminder is also matched through its
    ``source_key``, so dismissing or completing the system id sticks after
    the reminder has been written as a row.
    """
    by_id = {s.reminder_id: s for s in statuses}
    out: list[ReminderRecord] = []
    for reminder in reminders:
        status = by_id.get(reminder.id)
        if status is None and reminder.source_key:
            status = by_id.get(reminder.source_key)
            if status is not None and not status.is_deleted:
                # The row owns its completion state once persisted
                reminder.is_completed = reminder.is_completed or status.is_completed
                out.append(reminder)
                continue
        if status is None:
            out.append(reminder)
            continue
        if status.is_deleted:
            continue
        reminder.is_completed = status.is_completed
        out.append(reminder)
    return out


def sort_reminders(reminders: list[ReminderRecord]) -> list[ReminderRecord]:
    """Open before completed, then high → medium → low, then earliest due date."""
    return sorted(
        reminders,
        key=lambda r: (r.is_completed, _PRIORITY_RANK.get(r.priority, 3), r.due_date),
    )
