"""Pregnancy date projection.

Pure, stateless helpers anchored on the mating date:

- due date (mating + gestation days, 63 by default)
- days pregnant and progress percentage
- the ±2 day due-date uncertainty band
- the D61–D65 "due week" window, anchored on the mating date
- week-band segmentation used by the calendar grid

Nothing here touches storage.  Every function takes an optional ``today``
and ``config`` so callers (and tests) can pin the clock and constants.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Union

from src.breeding.base import CalendarEventRecord, PregnancyRecord
from src.breeding.config_loader import BreedingConfig, get_breeding_config

PregnancyLike = Union[PregnancyRecord, CalendarEventRecord]


def _cfg(config: BreedingConfig | None) -> BreedingConfig:
    return config or get_breeding_config()


def calculate_due_date(mating_date: date, config: BreedingConfig | None = None) -> date:
    """Expected whelping date: ``mating_date + 63 days``."""
    return mating_date + timedelta(days=_cfg(config).gestation.days)


def calculate_days_pregnant(mating_date: date, today: date | None = None) -> int:
    """Whole days elapsed since mating.  Negative before the mating date."""
    return ((today or date.today()) - mating_date).days


def calculate_progress(
    mating_date: date,
    today: date | None = None,
    config: BreedingConfig | None = None,
) -> float:
    """Gestation progress as a percentage, clamped to [0, 100]."""
    days = calculate_days_pregnant(mating_date, today)
    ratio = days / _cfg(config).gestation.days
    return min(max(ratio, 0.0), 1.0) * 100


def is_within_due_date_uncertainty(
    day: date, due_date: date, config: BreedingConfig | None = None
) -> bool:
    """True if ``day`` is within ±2 days of ``due_date`` (inclusive)."""
    band = _cfg(config).gestation.due_date_uncertainty_days
    return abs((day - due_date).days) <= band


def is_in_due_week(
    day: date, mating_date: date, config: BreedingConfig | None = None
) -> bool:
    """True if ``day`` falls on D61–D65 counted from the mating date."""
    g = _cfg(config).gestation
    offset = (day - mating_date).days
    return g.days - g.due_date_uncertainty_days <= offset <= g.days + g.due_date_uncertainty_days


def pregnancy_span(
    pregnancy: PregnancyLike, config: BreedingConfig | None = None
) -> tuple[date, date]:
    """Return the inclusive ``(start, end)`` span of a pregnancy.

    Accepts a PregnancyRecord (mating date to actual birth, else expected
    due date) or a ``pregnancy-period`` calendar event.
    """
    if isinstance(pregnancy, PregnancyRecord):
        end = pregnancy.actual_birth_date or pregnancy.expected_due_date
        return pregnancy.mating_date, end
    if pregnancy.end_date is None:
        return pregnancy.date, calculate_due_date(pregnancy.date, config)
    return pregnancy.date, pregnancy.last_day


def is_pregnancy_active_in_week(
    pregnancy: PregnancyLike,
    week_start: date,
    week_end: date,
    config: BreedingConfig | None = None,
) -> bool:
    """Interval overlap between the pregnancy span and a calendar week."""
    start, end = pregnancy_span(pregnancy, config)
    return start <= week_end and end >= week_start


def pregnancy_week_number(mating_date: date, day: date) -> int:
    """1-based gestation week containing ``day`` (week 1 = D0–D6)."""
    return (day - mating_date).days // 7 + 1


@dataclass
class PregnancyWeekSegment:
    """The slice of one pregnancy that falls inside one calendar week.

    Attributes:
        week_start:  First day of the calendar week.
        week_end:    Last day of the calendar week.
        start_day:   First gestation day shown in this week (clamped ≥ 0).
        end_day:     Last gestation day shown in this week (clamped ≤ 63).
        is_due_week: True when the week starts inside the D61–D65 window.
    """

    week_start: date
    week_end: date
    start_day: int
    end_day: int
    is_due_week: bool

    @property
    def label(self) -> str:
        if self.is_due_week:
            return "Due ±2d"
        return f"D+{self.start_day}–{self.end_day}"


def week_segment(
    mating_date: date,
    week_start: date,
    week_end: date,
    config: BreedingConfig | None = None,
) -> PregnancyWeekSegment:
    """Describe the part of a pregnancy visible in one week."""
    cfg = _cfg(config)
    return PregnancyWeekSegment(
        week_start=week_start,
        week_end=week_end,
        start_day=max(0, (week_start - mating_date).days),
        end_day=min(cfg.gestation.days, (week_end - mating_date).days),
        is_due_week=is_in_due_week(week_start, mating_date, cfg),
    )


def segment_pregnancy_weeks(
    pregnancy: PregnancyLike,
    week_starts_on: int = 0,
    config: BreedingConfig | None = None,
) -> list[PregnancyWeekSegment]:
    """Split a pregnancy span into calendar-week segments.

    Args:
        pregnancy:      PregnancyRecord or ``pregnancy-period`` event.
        week_starts_on: Weekday the calendar week starts on (0 = Monday).

    Returns:
        One segment per calendar week the pregnancy touches, in order.
    """
    cfg = _cfg(config)
    start, end = pregnancy_span(pregnancy, cfg)
    mating = start
    week_start = start - timedelta(days=(start.weekday() - week_starts_on) % 7)
    segments: list[PregnancyWeekSegment] = []
    while week_start <= end:
        week_end = week_start + timedelta(days=6)
        segments.append(week_segment(mating, week_start, week_end, cfg))
        week_start += timedelta(days=7)
    return segments


@dataclass
class PregnancyProjection:
    """Everything the UI shows about a pregnancy on a given day."""

    due_date: date
    days_pregnant: int
    days_left: int
    progress_pct: float
    current_week: int
    in_due_week: bool
    within_due_uncertainty: bool


def project_pregnancy(
    pregnancy: PregnancyRecord,
    today: date | None = None,
    config: BreedingConfig | None = None,
) -> PregnancyProjection:
    """Summarize a pregnancy as of ``today``.

    The stored ``expected_due_date`` is used as-is; it is never recomputed.
    """
    today = today or date.today()
    due = pregnancy.expected_due_date
    return PregnancyProjection(
        due_date=due,
        days_pregnant=calculate_days_pregnant(pregnancy.mating_date, today),
        days_left=max(0, (due - today).days),
        progress_pct=round(calculate_progress(pregnancy.mating_date, today, config), 1),
        current_week=max(1, pregnancy_week_number(pregnancy.mating_date, today)),
        in_due_week=is_in_due_week(today, pregnancy.mating_date, config),
        within_due_uncertainty=is_within_due_date_uncertainty(today, due, config),
    )
