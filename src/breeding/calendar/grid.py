"""Month grid aggregation for the breeding calendar.

Turns a flat list of calendar events into week rows of day cells:

- each cell carries up to ``max_visible_pills`` event pills ordered by chip
  priority (due-date, then mating, then birthday, then the rest) and a "+N"
  overflow count for the remainder
- styling flags mark due dates, birthdays, the D61–D65 due week, heat,
  fertility window, ovulation and the ±2 day due-date band
- ``pregnancy-period`` events never become pills; they are drawn as bands
  across each week they touch, one lane per pregnancy (first free lane,
  ordered by mating date), at most ``max_pregnancy_lanes`` lanes.  Bands that
  do not fit are dropped without an overflow count
- every visible band puts a week badge ("D+14–20" / "Due ±2d") on the
  week's first day
"""

from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from src.breeding.base import CalendarEventRecord, EventType
from src.breeding.config_loader import BreedingConfig, get_breeding_config
from src.breeding.pregnancy import (
    PregnancyWeekSegment,
    is_in_due_week,
    is_pregnancy_active_in_week,
    is_within_due_date_uncertainty,
    week_segment,
)

_HEAT_TYPES = frozenset(
    {EventType.heat.value, EventType.heat_active.value, EventType.heat_start.value}
)


class EventIndex:
    """Span-aware lookup of events by calendar day."""

    def __init__(
        self, events: list[CalendarEventRecord], config: BreedingConfig | None = None
    ) -> None:
        self._config = config or get_breeding_config()
        self._events = sorted(events, key=lambda e: (e.date, e.title))

    def events_for_date(self, day: date) -> list[CalendarEventRecord]:
        """Events covering ``day``, in pill order."""
        hits = [e for e in self._events if e.covers(day)]
        return self.sort_by_priority(hits)

    def events_in_range(self, start: date, end: date) -> list[CalendarEventRecord]:
        return [e for e in self._events if e.overlaps(start, end)]

    def sort_by_priority(self, events: list[CalendarEventRecord]) -> list[CalendarEventRecord]:
        cal = self._config.calendar
        return sorted(events, key=lambda e: (cal.chip_priority(e.type), e.date, e.title))


@dataclass
class PregnancyBand:
    """One pregnancy drawn across one calendar week."""

    event: CalendarEventRecord
    lane: int
    segment: PregnancyWeekSegment

    @property
    def badge(self) -> str:
        if self.segment.is_due_week:
            return self.segment.label
        return f"{self.event.dog_name or 'Unknown'} • {self.segment.label}"


@dataclass
class DayCell:
    """Everything needed to render one day of the month grid."""

    date: date
    in_month: bool
    is_today: bool = False
    pills: list[CalendarEventRecord] = field(default_factory=list)
    overflow: int = 0
    is_due_date: bool = False
    is_birthday: bool = False
    is_due_week: bool = False
    is_heat: bool = False
    is_fertility_window: bool = False
    is_ovulation: bool = False
    within_due_uncertainty: bool = False
    badges: list[str] = field(default_factory=list)


@dataclass
class WeekRow:
    days: list[DayCell]
    bands: list[PregnancyBand] = field(default_factory=list)

    @property
    def start(self) -> date:
        return self.days[0].date

    @property
    def end(self) -> date:
        return self.days[-1].date


@dataclass
class MonthGrid:
    year: int
    month: int
    weeks: list[WeekRow]

    def cell(self, day: date) -> DayCell | None:
        for week in self.weeks:
            for c in week.days:
                if c.date == day:
                    return c
        return None


def month_weeks(year: int, month: int, week_starts_on: int = 0) -> list[list[date]]:
    """Full weeks (7 days each) covering the month."""
    first = date(year, month, 1)
    last = date(year, month, _calendar.monthrange(year, month)[1])
    start = first - timedelta(days=(first.weekday() - week_starts_on) % 7)
    weeks: list[list[date]] = []
    while start <= last:
        weeks.append([start + timedelta(days=i) for i in range(7)])
        start += timedelta(days=7)
    return weeks


def assign_pregnancy_lanes(
    pregnancies: list[CalendarEventRecord],
    week_start: date,
    week_end: date,
    max_lanes: int,
    config: BreedingConfig | None = None,
) -> list[tuple[CalendarEventRecord, int]]:
    """Give each pregnancy overlapping the week the first free lane.

    Pregnancies are taken in mating-date order.  Any pregnancy that would
    need a lane at or beyond ``max_lanes`` is left out.
    """
    in_week = [
        p for p in pregnancies if is_pregnancy_active_in_week(p, week_start, week_end, config)
    ]
    seen: set[UUID | None] = set()
    unique: list[CalendarEventRecord] = []
    for p in sorted(in_week, key=lambda p: p.date):
        key = p.id if p.id is not None else id(p)
        if key in seen:
            continue
        seen.add(key)
        unique.append(p)

    occupied: set[int] = set()
    placed: list[tuple[CalendarEventRecord, int]] = []
    for p in unique:
        lane = 0
        while lane in occupied:
            lane += 1
        if lane >= max_lanes:
            continue
        occupied.add(lane)
        placed.append((p, lane))
    return placed


def build_day_cell(
    day: date,
    index: EventIndex,
    *,
    month: int,
    today: date | None,
    config: BreedingConfig,
) -> DayCell:
    covering = index.events_for_date(day)
    cell = DayCell(date=day, in_month=day.month == month, is_today=day == today)

    starting = [
        e for e in covering
        if e.date == day and e.type != EventType.pregnancy_period.value
    ]
    limit = config.calendar.max_visible_pills
    cell.pills = starting[:limit]
    cell.overflow = max(0, len(starting) - limit)

    for e in covering:
        if e.type == EventType.due_date.value:
            if e.date == day:
                cell.is_due_date = True
        elif e.type == EventType.birthday.value:
            cell.is_birthday = True
        elif e.type in _HEAT_TYPES:
            cell.is_heat = True
        elif e.type == EventType.fertility_window.value:
            cell.is_fertility_window = True
        elif e.type == EventType.ovulation_predicted.value:
            cell.is_ovulation = True

    # The due week runs past a pregnancy band that ends on the due date
    g = config.gestation
    lookback = day - timedelta(days=g.days + g.due_date_uncertainty_days)
    for e in index.events_in_range(lookback, day):
        if e.type == EventType.pregnancy_period.value and is_in_due_week(day, e.date, config):
            cell.is_due_week = True
            break

    for e in index.events_in_range(day - timedelta(days=7), day + timedelta(days=7)):
        if e.type == EventType.due_date.value and is_within_due_date_uncertainty(
            day, e.date, config
        ):
            cell.within_due_uncertainty = True
            break
    return cell


def build_month_grid(
    year: int,
    month: int,
    events: list[CalendarEventRecord],
    today: date | None = None,
    config: BreedingConfig | None = None,
) -> MonthGrid:
    """Aggregate ``events`` into a renderable month grid."""
    cfg = config or get_breeding_config()
    index = EventIndex(events, cfg)
    pregnancies = [e for e in events if e.type == EventType.pregnancy_period.value]

    weeks: list[WeekRow] = []
    for days in month_weeks(year, month, cfg.calendar.week_starts_on):
        row = WeekRow(
            days=[build_day_cell(d, index, month=month, today=today, config=cfg) for d in days]
        )
        for p, lane in assign_pregnancy_lanes(
            pregnancies, row.start, row.end, cfg.calendar.max_pregnancy_lanes, cfg
        ):
            band = PregnancyBand(
                event=p, lane=lane, segment=week_segment(p.date, row.start, row.end, cfg)
            )
            row.bands.append(band)
            row.days[0].badges.append(band.badge)
        weeks.append(row)
    return MonthGrid(year=year, month=month, weeks=weeks)


@dataclass
class CalendarSelection:
    """Which day and event the user has selected in the grid.

    Selecting a day clears the selected event.  Selecting an event also
    selects its start day.
    """

    index: EventIndex
    selected_date: date | None = None
    selected_event: CalendarEventRecord | None = None

    def select_date(self, day: date) -> list[CalendarEventRecord]:
        self.selected_date = day
        self.selected_event = None
        return self.index.events_for_date(day)

    def select_event(self, event: CalendarEventRecord) -> None:
        self.selected_event = event
        self.selected_date = event.date

    def clear(self) -> None:
        self.selected_date = None
        self.selected_event = None

    @property
    def day_events(self) -> list[CalendarEventRecord]:
        if self.selected_date is None:
            return []
        return self.index.events_for_date(self.selected_date)
