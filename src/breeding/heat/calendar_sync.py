"""Project heat cycles onto the breeding calendar.

Every heat cycle owns a small set of derived calendar events:

    heat-active           start → start+21 (or heat, once the cycle has ended)
    ovulation-predicted   start+12                     (active cycles only)
    fertility-window      start+9 → start+15           (active cycles only)

Derived events are never patched piecemeal when the cycle's dates change:
the dog's derived heat events are wiped and recreated.  The wipe and the
inserts run inside one repository transaction, so a failed insert leaves
the previous events in place and the call returns False.

Background sync failures are logged, never raised.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from uuid import UUID

from src.breeding.base import (
    HEAT_DERIVED_TYPES,
    BreedingRepository,
    CalendarEventRecord,
    EventType,
    HeatCycleConflictError,
    HeatCycleRecord,
)
from src.breeding.config_loader import BreedingConfig, get_breeding_config
from src.breeding.heat.store import HeatCycleStore

logger = logging.getLogger("kennel.breeding.heat.calendar_sync")

LINK_MARKER = "Linked to heat cycle: "
_LINK_RE = re.compile(r"Linked to heat cycle: ([a-f0-9-]{36})")

CALENDAR_START_NOTES = "Started from calendar"
OVULATION_NOTES = "Peak fertility window (days 12-14 of heat cycle)"
FERTILITY_NOTES = "Optimal breeding window (days 10-16 of heat cycle)"

_HEAT_ROW_TYPES = (EventType.heat.value, EventType.heat_active.value)


def link_marker(cycle_id: UUID) -> str:
    return f"{LINK_MARKER}{cycle_id}"


def extract_heat_cycle_id_from_event(event: CalendarEventRecord) -> UUID | None:
    """Return the heat cycle id embedded in an event's notes, if any."""
    if not event.notes:
        return None
    match = _LINK_RE.search(event.notes)
    if match is None:
        return None
    try:
        return UUID(match.group(1))
    except ValueError:
        return None


def _with_link(notes: str | None, cycle_id: UUID | None) -> str | None:
    if cycle_id is None:
        return notes
    marker = link_marker(cycle_id)
    if notes and marker in notes:
        return notes
    return f"{notes}\n{marker}" if notes else marker


class HeatCalendarSync:
    """Keeps a dog's derived heat events in step with its heat cycles."""

    def __init__(
        self,
        repo: BreedingRepository,
        config: BreedingConfig | None = None,
        store: HeatCycleStore | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or get_breeding_config()
        self._store = store or HeatCycleStore(repo, self._config)

    # ------------------------------------------------------------------
    # Event projection
    # ------------------------------------------------------------------

    def project_heat_cycle(
        self, cycle: HeatCycleRecord, dog_name: str, *, as_active: bool | None = None
    ) -> list[CalendarEventRecord]:
        """Build the derived events for one cycle without touching storage.

        Args:
            cycle:     The heat cycle.
            dog_name:  Used in event titles.
            as_active: Override whether the cycle is projected as the active
                       heat.  Defaults to ``cycle.is_active``.
        """
        hc = self._config.heat_cycle
        active = cycle.is_active if as_active is None else as_active
        start = cycle.start_date

        events = [
            CalendarEventRecord(
                id=None,
                title=f"{dog_name} - {'Active Heat Cycle' if active else 'Heat Cycle'}",
                date=start,
                end_date=cycle.end_date or start + timedelta(days=hc.event_span_days),
                type=EventType.heat_active.value if active else EventType.heat.value,
                dog_id=cycle.dog_id,
                dog_name=dog_name,
                status="active" if active else "ended",
                notes=_with_link(cycle.notes, cycle.id),
                heat_phase="proestrus" if active else None,
                user_id=cycle.user_id,
            )
        ]
        if not active:
            return events

        events.append(
            CalendarEventRecord(
                id=None,
                title=f"{dog_name} - Predicted Ovulation",
                date=start + timedelta(days=hc.ovulation_offset),
                type=EventType.ovulation_predicted.value,
                dog_id=cycle.dog_id,
                dog_name=dog_name,
                status="predicted",
                notes=_with_link(OVULATION_NOTES, cycle.id),
                user_id=cycle.user_id,
            )
        )
        events.append(
            CalendarEventRecord(
                id=None,
                title=f"{dog_name} - Fertility Window",
                date=start + timedelta(days=hc.fertility_window_start_offset),
                end_date=start + timedelta(days=hc.fertility_window_end_offset),
                type=EventType.fertility_window.value,
                dog_id=cycle.dog_id,
                dog_name=dog_name,
                status="active",
                notes=_with_link(FERTILITY_NOTES, cycle.id),
                user_id=cycle.user_id,
            )
        )
        return events

    # ------------------------------------------------------------------
    # Sync entry points
    # ------------------------------------------------------------------

    async def sync_heat_cycle_to_calendar(
        self, cycle: HeatCycleRecord, dog_name: str
    ) -> bool:
        """Replace the dog's derived heat events with those of ``cycle``.

        Every existing ``heat``/``heat-active``/``ovulation-predicted``/
        ``fertility-window`` event for the dog is deleted first.  Use
        ``perform_full_sync`` to keep the events of the dog's other cycles.
        """
        events = self.project_heat_cycle(cycle, dog_name)
        try:
            async with self._repo.transaction():
                removed = await self._repo.delete_calendar_events(
                    types=HEAT_DERIVED_TYPES, dog_id=cycle.dog_id
                )
                for event in events:
                    await self._repo.insert_calendar_event(event)
        except Exception as exc:
            logger.error(
                "sync_heat_cycle_to_calendar failed for cycle %s (dog %s): %s",
                cycle.id, cycle.dog_id, exc,
            )
            return False

        logger.info(
            "Synced heat cycle %s to calendar: removed %d, created %d events",
            cycle.id, removed, len(events),
        )
        return True

    async def update_calendar_for_heat_cycle(
        self,
        cycle: HeatCycleRecord,
        dog_name: str,
        previous: HeatCycleRecord | None = None,
    ) -> bool:
        """Bring the calendar in line with an edited heat cycle.

        A start-date change or an active cycle being ended rebuilds the dog's
        derived events.  Anything else (notes, a later end date) patches the
        cycle's heat event in place.
        """
        needs_rebuild = previous is None or (
            previous.start_date != cycle.start_date
            or (previous.is_active and not cycle.is_active)
            or (not previous.is_active and cycle.is_active)
        )
        if needs_rebuild:
            return await self.perform_full_sync(cycle.dog_id, dog_name)

        try:
            rows = await self._repo.list_calendar_events(
                dog_id=cycle.dog_id, types=_HEAT_ROW_TYPES
            )
            target = self._find_heat_row(rows, cycle)
            if target is None:
                logger.info(
                    "No heat event found for cycle %s; rebuilding dog %s",
                    cycle.id, cycle.dog_id,
                )
                return await self.perform_full_sync(cycle.dog_id, dog_name)

            span = self._config.heat_cycle.event_span_days
            await self._repo.update_calendar_event(
                target.id,
                {
                    "title": f"{dog_name} - "
                    f"{'Heat Cycle' if cycle.end_date else 'Active Heat Cycle'}",
                    "notes": _with_link(cycle.notes, cycle.id),
                    "status": "ended" if cycle.end_date else "active",
                    "end_date": cycle.end_date
                    or cycle.start_date + timedelta(days=span),
                },
            )
        except Exception as exc:
            logger.error(
                "update_calendar_for_heat_cycle failed for cycle %s: %s", cycle.id, exc
            )
            return False
        return True

    async def remove_calendar_events_for_heat_cycle(self, dog_id: UUID) -> bool:
        """Delete every derived heat event of a dog."""
        try:
            removed = await self._repo.delete_calendar_events(
                types=HEAT_DERIVED_TYPES, dog_id=dog_id
            )
        except Exception as exc:
            logger.error("remove_calendar_events_for_heat_cycle failed for dog %s: %s", dog_id, exc)
            return False
        logger.info("Removed %d derived heat events for dog %s", removed, dog_id)
        return True

    async def perform_full_sync(self, dog_id: UUID, dog_name: str) -> bool:
        """Rebuild all derived heat events of a dog from its heat cycles.

        Wipes once, then projects every cycle oldest first.  Only the most
        recent open cycle becomes ``heat-active``; older open cycles break the
        single-active-cycle rule and are projected as plain ``heat``.

        Afterwards the result is checked: exactly one ``heat-active`` event
        when the dog has an open cycle, none otherwise.

        Returns:
            True if the rebuild committed and passed verification.
        """
        try:
            cycles = await self._repo.list_heat_cycles(dog_id)
        except Exception as exc:
            logger.error("perform_full_sync could not load cycles for dog %s: %s", dog_id, exc)
            return False

        ordered = sorted(cycles, key=lambda c: c.start_date)
        open_cycles = [c for c in ordered if c.is_active]
        current = open_cycles[-1] if open_cycles else None
        for stale in open_cycles[:-1]:
            logger.warning(
                "Dog %s has an extra open heat cycle %s (started %s); projecting it as ended",
                dog_id, stale.id, stale.start_date,
            )

        events: list[CalendarEventRecord] = []
        for cycle in ordered:
            events.extend(
                self.project_heat_cycle(cycle, dog_name, as_active=cycle is current)
            )

        try:
            async with self._repo.transaction():
                removed = await self._repo.delete_calendar_events(
                    types=HEAT_DERIVED_TYPES, dog_id=dog_id
                )
                for event in events:
                    await self._repo.insert_calendar_event(event)
            active_rows = await self._repo.list_calendar_events(
                dog_id=dog_id, types=(EventType.heat_active.value,)
            )
        except Exception as exc:
            logger.error("perform_full_sync failed for dog %s: %s", dog_id, exc)
            return False

        expected = 1 if current is not None else 0
        if len(active_rows) != expected:
            logger.error(
                "Full sync verification failed for dog %s: %d heat-active events, expected %d",
                dog_id, len(active_rows), expected,
            )
            return False

        logger.info(
            "Full sync for dog %s: %d cycles, removed %d, created %d events",
            dog_id, len(ordered), removed, len(events),
        )
        return True

    # ------------------------------------------------------------------
    # Calendar-initiated heat cycles
    # ------------------------------------------------------------------

    async def create_heat_cycle_from_calendar(
        self, event: CalendarEventRecord, dog_id: UUID
    ) -> HeatCycleRecord | None:
        """Start a heat cycle from a calendar event.

        If the dog already has an active cycle, that cycle is returned and
        nothing is created.
        """
        existing = await self._store.get_active_heat_cycle(dog_id)
        if existing is not None:
            logger.info(
                "Dog %s already has active heat cycle %s; not creating from calendar",
                dog_id, existing.id,
            )
            return existing

        try:
            cycle = await self._store.create_heat_cycle(
                dog_id, event.date, notes=event.notes or CALENDAR_START_NOTES
            )
        except HeatCycleConflictError:
            return await self._store.get_active_heat_cycle(dog_id)
        if cycle is None:
            return None

        dog_name = event.dog_name
        if not dog_name:
            dog = await self._repo.get_dog(dog_id)
            dog_name = dog.name if dog else "Unknown"

        if event.id is not None:
            await self.link_calendar_event_to_heat_cycle(event.id, cycle.id)
        await self.perform_full_sync(dog_id, dog_name)
        return cycle

    async def link_calendar_event_to_heat_cycle(
        self, event_id: UUID, cycle_id: UUID
    ) -> bool:
        """Write the heat-cycle link marker into an event's notes."""
        try:
            event = await self._repo.get_calendar_event(event_id)
            if event is None:
                logger.warning("link_calendar_event_to_heat_cycle: event %s not found", event_id)
                return False
            await self._repo.update_calendar_event(
                event_id, {"notes": _with_link(event.notes, cycle_id)}
            )
        except Exception as exc:
            logger.error("link_calendar_event_to_heat_cycle failed for %s: %s", event_id, exc)
            return False
        return True

    @staticmethod
    def _find_heat_row(
        rows: list[CalendarEventRecord], cycle: HeatCycleRecord
    ) -> CalendarEventRecord | None:
        for row in rows:
            if extract_heat_cycle_id_from_event(row) == cycle.id:
                return row
        for row in rows:
            if row.date == cycle.start_date:
                return row
        return None
