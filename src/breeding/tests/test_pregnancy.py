"""Tests for pregnancy date projection."""

from __future__ import annotations

from datetime import date, timedelta
from uuid import uuid4

from src.breeding.base import CalendarEventRecord, PregnancyRecord
from src.breeding.config_loader import BreedingConfig
from src.breeding.pregnancy import (
    calculate_days_pregnant,
    calculate_due_date,
    calculate_progress,
    is_in_due_week,
    is_pregnancy_active_in_week,
    is_within_due_date_uncertainty,
    pregnancy_span,
    pregnancy_week_number,
    project_pregnancy,
    segment_pregnancy_weeks,
    week_segment,
)

MATING = date(2024, 3, 1)
DUE = date(2024, 5, 3)


def make_pregnancy(**kw) -> PregnancyRecord:
    fields = dict(
        id=uuid4(),
        female_dog_id=uuid4(),
        mating_date=MATING,
        expected_due_date=DUE,
    )
    fields.update(kw)
    return PregnancyRecord(**fields)


class TestDueDate:
    def test_due_date_is_63_days_after_mating(self, breeding_config: BreedingConfig) -> None:
        assert calculate_due_date(MATING, breeding_config) == DUE

    def test_days_pregnant(self) -> None:
        assert calculate_days_pregnant(MATING, date(2024, 3, 15)) == 14
        assert calculate_days_pregnant(MATING, date(2024, 2, 28)) == -2

    def test_progress_is_clamped(self, breeding_config: BreedingConfig) -> None:
        assert calculate_progress(MATING, date(2024, 2, 1), breeding_config) == 0.0
        assert calculate_progress(MATING, MATING, breeding_config) == 0.0
        assert calculate_progress(MATING, DUE + timedelta(days=10), breeding_config) == 100.0
        mid = calculate_progress(MATING, MATING + timedelta(days=21), breeding_config)
        assert round(mid, 2) == 33.33


class TestUncertaintyBand:
    def test_band_is_symmetric(self, breeding_config: BreedingConfig) -> None:
        for offset in range(-2, 3):
            assert is_within_due_date_uncertainty(DUE + timedelta(days=offset), DUE, breeding_config)
        assert not is_within_due_date_uncertainty(DUE - timedelta(days=3), DUE, breeding_config)
        assert not is_within_due_date_uncertainty(DUE + timedelta(days=3), DUE, breeding_config)

    def test_due_week_window(self, breeding_config: BreedingConfig) -> None:
        assert not is_in_due_week(date(2024, 4, 30), MATING, breeding_config)
        for day in (1, 2, 3, 4, 5):
            assert is_in_due_week(date(2024, 5, day), MATING, breeding_config)
        assert not is_in_due_week(date(2024, 5, 6), MATING, breeding_config)


class TestSpans:
    def test_record_span_uses_due_date(self) -> None:
        assert pregnancy_span(make_pregnancy()) == (MATING, DUE)

    def test_record_span_prefers_actual_birth(self) -> None:
        p = make_pregnancy(actual_birth_date=date(2024, 4, 29), status="completed")
        assert pregnancy_span(p) == (MATING, date(2024, 4, 29))

    def test_event_without_end_projects_due_date(self, breeding_config: BreedingConfig) -> None:
        event = CalendarEventRecord(id=None, title="p", date=MATING, type="pregnancy-period")
        assert pregnancy_span(event, breeding_config) == (MATING, DUE)

    def test_active_in_week_overlap(self) -> None:
        p = make_pregnancy()
        assert is_pregnancy_active_in_week(p, date(2024, 2, 26), date(2024, 3, 3))
        assert is_pregnancy_active_in_week(p, date(2024, 4, 29), date(2024, 5, 5))
        assert not is_pregnancy_active_in_week(p, date(2024, 5, 6), date(2024, 5, 12))
        assert not is_pregnancy_active_in_week(p, date(2024, 2, 19), date(2024, 2, 25))

    def test_week_number(self) -> None:
        assert pregnancy_week_number(MATING, MATING) == 1
        assert pregnancy_week_number(MATING, MATING + timedelta(days=6)) == 1
        assert pregnancy_week_number(MATING, MATING + timedelta(days=7)) == 2


class TestSegments:
    def test_segments_cover_every_week(self, breeding_config: BreedingConfig) -> None:
        segments = segment_pregnancy_weeks(make_pregnancy(), 0, breeding_config)
        # 2024-03-01 is a Friday; weeks run Monday..Sunday
        assert segments[0].week_start == date(2024, 2, 26)
        assert segments[0].start_day == 0
        assert segments[0].end_day == 2
        assert segments[-1].week_start == date(2024, 4, 29)
        assert segments[-1].end_day == 63
        assert segments[-1].is_due_week is False  # week starts on D59

    def test_labels(self, breeding_config: BreedingConfig) -> None:
        seg = week_segment(MATING, date(2024, 3, 11), date(2024, 3, 17), breeding_config)
        assert seg.label == "D+10–16"
        due = week_segment(MATING, date(2024, 5, 1), date(2024, 5, 7), breeding_config)
        assert due.is_due_week
        assert due.label == "Due ±2d"


class TestProjection:
    def test_project_mid_pregnancy(self, breeding_config: BreedingConfig) -> None:
        proj = project_pregnancy(make_pregnancy(), date(2024, 4, 1), breeding_config)
        assert proj.due_date == DUE
        assert proj.days_pregnant == 31
        assert proj.days_left == 32
        assert proj.current_week == 5
        assert proj.progress_pct == 49.2
        assert not proj.in_due_week
        assert not proj.within_due_uncertainty

    def test_stored_due_date_is_not_recomputed(self, breeding_config: BreedingConfig) -> None:
        p = make_pregnancy(expected_due_date=date(2024, 5, 5))
        proj = project_pregnancy(p, date(2024, 5, 4), breeding_config)
        assert proj.due_date == date(2024, 5, 5)
        assert proj.days_left == 1
        assert proj.within_due_uncertainty
        assert proj.in_due_week

    def test_overdue_has_no_days_left(self, breeding_config: BreedingConfig) -> None:
        proj = project_pregnancy(make_pregnancy(), DUE + timedelta(days=4), breeding_config)
        assert proj.days_left == 0
        assert proj.progress_pct == 100.0
