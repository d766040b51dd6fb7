"""Load, validate, and hot-reload the breeding engine configuration.

The config lives in ``breeding_config.yaml`` alongside this module.  It is
loaded once on first use and cached.  Call ``reload_breeding_config()`` to
re-read it from disk after an edit. No restart is required.

Usage::

    from src.breeding.config_loader import get_breeding_config

    config = get_breeding_config()
    config.gestation.days                      # 63
    config.calendar.chip_priority("due-date")  # 1
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger("kennel.breeding.config")

_CONFIG_PATH = Path(__file__).parent / "breeding_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class GestationConfig:
    """Canine gestation constants."""

    days: int = 63
    due_date_uncertainty_days: int = 2


@dataclass
class HeatCycleConfig:
    """Heat cycle biology used to project derived calendar events.

    Offsets are counted in days from the first day of the heat cycle
    (proestrus ~0-9, estrus/fertile ~10-16, peak ovulation ~12-14).
    """

    default_interval_days: int = 180
    event_span_days: int = 21
    fertility_window_start_offset: int = 9
    ovulation_offset: int = 12
    fertility_window_end_offset: int = 15
    legacy_migration_notes: str = "Migrated from heat history"


@dataclass
class ReminderWindow:
    """Days before / after a target date during which a reminder is shown."""

    days_before: int
    days_after: int = 0


@dataclass
class LitterMilestone:
    """A fixed puppy-care milestone counted from the litter's birth date."""

    key: str
    type: str
    title: str
    day: int
    window_start: int
    window_end: int
    priority: str = "high"
    description: str = ""


@dataclass
class ReminderConfig:
    """Reminder generation windows."""

    birthday: ReminderWindow
    vaccination: ReminderWindow
    vaccination_interval_days: int
    heat: ReminderWindow
    heat_high_priority_within_days: int
    planned_heat: ReminderWindow
    pregnancy_due: ReminderWindow
    litter_milestones: list[LitterMilestone]
    weighing_every_days: int = 3
    weighing_until_day: int = 21


@dataclass
class RetentionConfig:
    """How long each calendar event type is kept before cleanup."""

    permanent_types: list[str]
    medium_types: list[str]
    medium_months: int
    short_types: list[str]
    short_months: int

    def is_permanent(self, event_type: str) -> bool:
        return event_type in self.permanent_types

    def retention_months(self, event_type: str) -> int | None:
        """Return the retention in months, or None for permanent types.

        Unknown types fall back to the medium retention period.
        """
        if self.is_permanent(event_type):
            return None
        if event_type in self.short_types:
            return self.short_months
        return self.medium_months


@dataclass
class CalendarConfig:
    """Calendar grid rendering rules."""

    max_visible_pills: int
    max_pregnancy_lanes: int
    week_starts_on: int
    future_event_horizon_months: int
    chip_priorities: dict[str, int]
    default_chip_priority: int
    retention: RetentionConfig

    def chip_priority(self, event_type: str | None) -> int:
        """Return the pill sort priority for an event type (1 = first)."""
        if event_type is None:
            return self.default_chip_priority
        return self.chip_priorities.get(event_type, self.default_chip_priority)


@dataclass
class BreedingConfig:
    """Complete, validated breeding engine configuration.

    This is the single in-memory representation of breeding_config.yaml.
    The heat store, calendar sync, projection utilities, grid aggregator and
    reminder generators all read from this object.
    """

    version: str
    gestation: GestationConfig
    heat_cycle: HeatCycleConfig
    reminders: ReminderConfig
    calendar: CalendarConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when breeding_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    import yaml

    if not path.exists():
        raise FileNotFoundError(f"Breeding config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> BreedingConfig:
    """Validate the raw YAML dict and construct a BreedingConfig.

    All problems are collected first and reported together.

    Raises:
        ConfigValidationError: If any value is missing or out of range.
    """
    errors: list[str] = []

    def _int(section: dict, key: str, default: int, path: str, minimum: int = 0) -> int:
        value = section.get(key, default)
        try:
            n = int(value)
        except (TypeError, ValueError):
            errors.append(f"{path}.{key} must be an integer, got {value!r}")
            return default
        if n < minimum:
            errors.append(f"{path}.{key} = {n} is below the minimum of {minimum}")
        return n

    def _window(section: dict, path: str, before: int, after: int = 0) -> ReminderWindow:
        return ReminderWindow(
            days_before=_int(section, "days_before", before, path),
            days_after=_int(section, "days_after", after, path),
        )

    version = str(raw.get("version", "1.0"))

    # ── Gestation ──
    g_raw = raw.get("gestation") or {}
    gestation = GestationConfig(
        days=_int(g_raw, "days", 63, "gestation", minimum=1),
        due_date_uncertainty_days=_int(g_raw, "due_date_uncertainty_days", 2, "gestation"),
    )

    # ── Heat cycle ──
    h_raw = raw.get("heat_cycle") or {}
    heat_cycle = HeatCycleConfig(
        default_interval_days=_int(h_raw, "default_interval_days", 180, "heat_cycle", minimum=1),
        event_span_days=_int(h_raw, "event_span_days", 21, "heat_cycle", minimum=1),
        fertility_window_start_offset=_int(h_raw, "fertility_window_start_offset", 9, "heat_cycle"),
        ovulation_offset=_int(h_raw, "ovulation_offset", 12, "heat_cycle"),
        fertility_window_end_offset=_int(h_raw, "fertility_window_end_offset", 15, "heat_cycle"),
        legacy_migration_notes=str(
            h_raw.get("legacy_migration_notes", "Migrated from heat history")
        ),
    )
    if not (
        heat_cycle.fertility_window_start_offset
        <= heat_cycle.ovulation_offset
        <= heat_cycle.fertility_window_end_offset
    ):
        errors.append(
            "heat_cycle.ovulation_offset must fall inside the fertility window "
            f"({heat_cycle.fertility_window_start_offset}-"
            f"{heat_cycle.fertility_window_end_offset}), got {heat_cycle.ovulation_offset}"
        )

    # ── Reminders ──
    r_raw = raw.get("reminders") or {}
    milestones: list[LitterMilestone] = []
    for i, m in enumerate(r_raw.get("litter_milestones") or []):
        if not isinstance(m, dict):
            errors.append(f"reminders.litter_milestones[{i}] must be a mapping")
            continue
        missing = [k for k in ("key", "type", "title", "day") if k not in m]
        if missing:
            errors.append(
                f"reminders.litter_milestones[{i}] is missing {', '.join(missing)}"
            )
            continue
        path = f"reminders.litter_milestones[{i}]"
        day = _int(m, "day", 0, path)
        milestones.append(
            LitterMilestone(
                key=str(m["key"]),
                type=str(m["type"]),
                title=str(m["title"]),
                day=day,
                window_start=_int(m, "window_start", day, path),
                window_end=_int(m, "window_end", day, path),
                priority=str(m.get("priority", "high")),
                description=str(m.get("description", "")),
            )
        )
    vacc_raw = r_raw.get("vaccination") or {}
    heat_raw = r_raw.get("heat") or {}
    weighing_raw = r_raw.get("weighing") or {}
    reminders = ReminderConfig(
        birthday=_window(r_raw.get("birthday") or {}, "reminders.birthday", 7, 2),
        vaccination=_window(vacc_raw, "reminders.vaccination", 30, 7),
        vaccination_interval_days=_int(
            vacc_raw, "interval_days", 365, "reminders.vaccination", minimum=1
        ),
        heat=_window(heat_raw, "reminders.heat", 30, 5),
        heat_high_priority_within_days=_int(
            heat_raw, "high_priority_within_days", 7, "reminders.heat"
        ),
        planned_heat=_window(r_raw.get("planned_heat") or {}, "reminders.planned_heat", 14),
        pregnancy_due=_window(r_raw.get("pregnancy_due") or {}, "reminders.pregnancy_due", 7, 3),
        litter_milestones=milestones,
        weighing_every_days=_int(weighing_raw, "every_days", 3, "reminders.weighing", minimum=1),
        weighing_until_day=_int(weighing_raw, "until_day", 21, "reminders.weighing"),
    )

    # ── Calendar ──
    c_raw = raw.get("calendar") or {}
    priorities_raw = c_raw.get("chip_priority") or {}
    chip_priorities: dict[str, int] = {}
    for event_type, value in priorities_raw.items():
        try:
            chip_priorities[str(event_type)] = int(value)
        except (TypeError, ValueError):
            errors.append(f"calendar.chip_priority.{event_type} must be an integer, got {value!r}")
    ret_raw = c_raw.get("retention") or {}
    medium_raw = ret_raw.get("medium") or {}
    short_raw = ret_raw.get("short") or {}
    retention = RetentionConfig(
        permanent_types=[str(t) for t in ret_raw.get("permanent") or []],
        medium_types=[str(t) for t in medium_raw.get("types") or []],
        medium_months=_int(medium_raw, "months", 12, "calendar.retention.medium", minimum=1),
        short_types=[str(t) for t in short_raw.get("types") or []],
        short_months=_int(short_raw, "months", 6, "calendar.retention.short", minimum=1),
    )
    overlap = set(retention.permanent_types) & (
        set(retention.medium_types) | set(retention.short_types)
    )
    if overlap:
        errors.append(
            "calendar.retention: permanent types cannot also expire: "
            + ", ".join(sorted(overlap))
        )
    week_starts_on = _int(c_raw, "week_starts_on", 0, "calendar")
    if week_starts_on > 6:
        errors.append(f"calendar.week_starts_on must be 0-6, got {week_starts_on}")
    calendar = CalendarConfig(
        max_visible_pills=_int(c_raw, "max_visible_pills", 3, "calendar", minimum=1),
        max_pregnancy_lanes=_int(c_raw, "max_pregnancy_lanes", 3, "calendar", minimum=1),
        week_starts_on=week_starts_on,
        future_event_horizon_months=_int(
            c_raw, "future_event_horizon_months", 18, "calendar", minimum=1
        ),
        chip_priorities=chip_priorities,
        default_chip_priority=_int(c_raw, "default_chip_priority", 11, "calendar"),
        retention=retention,
    )

    if errors:
        raise ConfigValidationError(
            f"breeding_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return BreedingConfig(
        version=version,
        gestation=gestation,
        heat_cycle=heat_cycle,
        reminders=reminders,
        calendar=calendar,
        _raw=raw,
    )


def load_breeding_config(path: Path | None = None) -> BreedingConfig:
    """Load and validate the breeding config from disk.

    Args:
        path: Override path to YAML. Uses the bundled breeding_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded breeding config v%s from %s", config.version, target)
    return config


def build_breeding_config(raw: dict[str, Any]) -> BreedingConfig:
    """Validate an already-parsed mapping (used by tests and admin tooling)."""
    return _validate_and_build(raw)


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: BreedingConfig | None = None
_config_lock = threading.Lock()


def get_breeding_config() -> BreedingConfig:
    """Return the global BreedingConfig, loading it on first call. Thread-safe."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_breeding_config()
    return _config


def reload_breeding_config(path: Path | None = None) -> BreedingConfig:
    """Reload the config from disk and replace the global singleton.

    If validation fails the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_breeding_config(path)
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded breeding config: %s → %s", old_version, new_config.version)
    return new_config
