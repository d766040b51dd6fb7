"""Tests for pregnancy / birthday derived events and retention cleanup."""

from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from src.breeding.base import CalendarEventRecord, DogRecord, PregnancyRecord, add_months
from src.breeding.calendar import DerivedEventSync, retention_cutoff, run_cleanup
from src.breeding.calendar.derived import project_birthday_events, project_pregnancy_events
from src.breeding.config_loader import BreedingConfig
from src.breeding.tests.conftest import InMemoryBreedingRepository


def make_pregnancy(dog_id, **kw) -> PregnancyRecord:
    fields = dict(
        id=uuid4(),
        female_dog_id=dog_id,
        mating_date=date(2024, 3, 1),
        expected_due_date=date(2024, 5, 3),
    )
    fields.update(kw)
    return PregnancyRecord(**fields)


class TestAddMonths:
    def test_clamps_to_month_end(self) -> None:
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 3, 15), -6) == date(2023, 9, 15)
        assert add_months(date(2024, 1, 1), 18) == date(2025, 7, 1)


class TestPregnancyEvents:
    def test_projection(self) -> None:
        p = make_pregnancy(uuid4(), external_male_name="Rex")
        events = {e.type: e for e in project_pregnancy_events(p, "Bella")}

        assert set(events) == {"mating", "pregnancy-period", "due-date"}
        assert events["mating"].title == "Bella - Mating"
        assert events["mating"].notes == "Mated with Rex"
        assert (events["pregnancy-period"].date, events["pregnancy-period"].end_date) == (
            date(2024, 3, 1), date(2024, 5, 3)
        )
        assert events["due-date"].date == date(2024, 5, 3)
        assert all(e.pregnancy_id == p.id and e.status == "active" for e in events.values())

    def test_completed_pregnancy_ends_at_birth(self) -> None:
        p = make_pregnancy(uuid4(), status="completed", actual_birth_date=date(2024, 4, 30))
        period = next(
            e for e in project_pregnancy_events(p, "Bella") if e.type == "pregnancy-period"
        )
        assert period.end_date == date(2024, 4, 30)
        assert period.status == "completed"

    @pytest.mark.asyncio
    async def test_sync_replaces_only_own_events(
        self,
        repo: InMemoryBreedingRepository,
        female_dog: DogRecord,
        breeding_config: BreedingConfig,
    ) -> None:
        other = make_pregnancy(female_dog.id, mating_date=date(2023, 6, 1))
        p = make_pregnancy(female_dog.id)
        sync = DerivedEventSync(repo, breeding_config)

        assert await sync.sync_pregnancy_events(other, "Bella")
        assert await sync.sync_pregnancy_events(p, "Bella")
        assert await sync.sync_pregnancy_events(p, "Bella")
        assert len(repo.events) == 6

        assert await sync.remove_pregnancy_events(p.id)
        assert {e.pregnancy_id for e in repo.events.values()} == {other.id}

    @pytest.mark.asyncio
    async def test_sync_failure_keeps_old_events(
        self,
        repo: InMemoryBreedingRepository,
        female_dog: DogRecord,
        breeding_config: BreedingConfig,
    ) -> None:
        p = make_pregnancy(female_dog.id)
        sync = DerivedEventSync(repo, breeding_config)
        await sync.sync_pregnancy_events(p, "Bella")
        before = set(repo.events)

        repo.fail_on.add("insert_calendar_event")
        assert await sync.sync_pregnancy_events(p, "Bella") is False
        assert set(repo.events) == before


class TestBirthdayEvents:
    def test_anniversaries_within_horizon(self, female_dog: DogRecord) -> None:
        events = project_birthday_events(female_dog, date(2024, 1, 1), 18)
        assert [(e.date, e.title) for e in events] == [
            (date(2024, 6, 15), "Bella's Birthday (4 years)"),
            (date(2025, 6, 15), "Bella's Birthday (5 years)"),
        ]

    def test_no_birthday_before_first_anniversary(self) -> None:
        puppy = DogRecord(id=uuid4(), name="Pip", date_of_birth=date(2024, 3, 1))
        events = project_birthday_events(puppy, date(2024, 3, 10), 18)
        assert [e.date for e in events] == [date(2025, 3, 1)]

    @pytest.mark.asyncio
    async def test_sync_birthdays(
        self,
        repo: InMemoryBreedingRepository,
        female_dog: DogRecord,
        breeding_config: BreedingConfig,
    ) -> None:
        sync = DerivedEventSync(repo, breeding_config)
        assert await sync.sync_birthday_events(female_dog, date(2024, 1, 1))
        assert await sync.sync_birthday_events(female_dog, date(2024, 1, 1))
        assert len(repo.events_of("birthday")) == 2


class TestCleanup:
    def test_cutoffs(self, breeding_config: BreedingConfig) -> None:
        today = date(2024, 7, 31)
        assert retention_cutoff("mating", today, breeding_config) is None
        assert retention_cutoff("fertility-window", today, breeding_config) == date(2023, 7, 31)
        assert retention_cutoff("custom", today, breeding_config) == date(2024, 1, 31)

    @pytest.mark.asyncio
    async def test_run_cleanup(
        self, repo: InMemoryBreedingRepository, breeding_config: BreedingConfig
    ) -> None:
        for event_type, day in [
            ("custom", date(2023, 12, 1)),
            ("custom", date(2024, 3, 1)),
            ("fertility-window", date(2023, 6, 1)),
            ("fertility-window", date(2023, 9, 1)),
            ("mating", date(2015, 1, 1)),
        ]:
            repo.add_event(CalendarEventRecord(id=None, title=event_type, date=day, type=event_type))

        counts = await run_cleanup(repo, today=date(2024, 7, 1), config=breeding_config)

        assert counts["custom"] == 1
        assert counts["fertility-window"] == 1
        assert "mating" not in counts
        assert sorted((e.type, e.date) for e in repo.events.values()) == [
            ("custom", date(2024, 3, 1)),
            ("fertility-window", date(2023, 9, 1)),
            ("mating", date(2015, 1, 1)),
        ]

    @pytest.mark.asyncio
    async def test_cleanup_failure(
        self, repo: InMemoryBreedingRepository, breeding_config: BreedingConfig
    ) -> None:
        repo.fail_on.add("delete_calendar_events_before")
        assert await run_cleanup(repo, config=breeding_config) is None
