"""Retention cleanup of old calendar events.

Permanent types are never touched.  Every medium- and short-retention type
has events starting before ``today - retention months`` deleted.
"""

from __future__ import annotations

import logging
from datetime import date

from src.breeding.base import BreedingRepository, add_months
from src.breeding.config_loader import BreedingConfig, get_breeding_config

logger = logging.getLogger("kennel.breeding.calendar.cleanup")


def retention_cutoff(
    event_type: str, today: date, config: BreedingConfig | None = None
) -> date | None:
    """Events of ``event_type`` starting before this date expire.  None if permanent."""
    months = (config or get_breeding_config()).calendar.retention.retention_months(event_type)
    if months is None:
        return None
    return add_months(today, -months)


async def run_cleanup(
    repo: BreedingRepository,
    today: date | None = None,
    config: BreedingConfig | None = None,
) -> dict[str, int] | None:
    """Delete expired events.

    Returns:
        Deleted count per event type, or None if the cleanup failed.
    """
    cfg = config or get_breeding_config()
    today = today or date.today()
    retention = cfg.calendar.retention
    counts: dict[str, int] = {}
    try:
        for event_type in retention.medium_types + retention.short_types:
            cutoff = retention_cutoff(event_type, today, cfg)
            if cutoff is None:
                continue
            counts[event_type] = await repo.delete_calendar_events_before(event_type, cutoff)
    except Exception as exc:
        logger.error("Calendar cleanup failed: %s", exc)
        return None

    total = sum(counts.values())
    if total:
        logger.info("Calendar cleanup removed %d events: %s", total, counts)
    return counts
