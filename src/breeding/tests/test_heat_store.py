"""Tests for the heat cycle store and its legacy heat-history dual write."""

from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.breeding.base import (
    DogRecord,
    HeatCycleConflictError,
    HeatCycleRecord,
    HeatHistoryEntry,
    HeatLogRecord,
)
from src.breeding.config_loader import BreedingConfig
from src.breeding.heat.store import HeatCycleStore, compute_cycle_length, latest_heat_date
from src.breeding.tests.conftest import TEST_DOG_ID, TEST_USER_ID, InMemoryBreedingRepository


@pytest.fixture
def store(repo: InMemoryBreedingRepository, breeding_config: BreedingConfig) -> HeatCycleStore:
    return HeatCycleStore(repo, breeding_config, TEST_USER_ID)


class TestHelpers:
    def test_cycle_length(self) -> None:
        assert compute_cycle_length(date(2024, 1, 1), date(2024, 1, 22)) == 21
        assert compute_cycle_length(date(2024, 1, 1), None) is None

    def test_latest_heat_date_across_sources(self) -> None:
        cycles = [HeatCycleRecord(id=uuid4(), dog_id=TEST_DOG_ID, start_date=date(2024, 1, 1))]
        history = [HeatHistoryEntry(date=date(2024, 3, 1))]
        assert latest_heat_date(cycles, history) == date(2024, 3, 1)
        assert latest_heat_date([], []) is None

    def test_history_entry_json(self) -> None:
        cycle_id = uuid4()
        entry = HeatHistoryEntry.from_json(
            {"date": "2024-01-01T00:00:00.000Z", "heat_cycle_id": str(cycle_id)}
        )
        assert entry is not None
        assert entry.date == date(2024, 1, 1)
        assert entry.heat_cycle_id == cycle_id
        assert entry.to_json() == {"date": "2024-01-01", "heat_cycle_id": str(cycle_id)}
        assert HeatHistoryEntry.from_json({"date": "not a date"}) is None


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_writes_cycle_and_legacy_entry(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1), notes="first")

        assert cycle is not None
        assert cycle.is_active
        assert cycle.user_id == TEST_USER_ID
        history = repo.dogs[female_dog.id].heat_history
        assert [(h.date, h.heat_cycle_id) for h in history] == [(date(2024, 1, 1), cycle.id)]

    @pytest.mark.asyncio
    async def test_create_links_existing_legacy_entry(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.dogs[female_dog.id].heat_history = [HeatHistoryEntry(date=date(2024, 1, 1))]
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))

        history = repo.dogs[female_dog.id].heat_history
        assert len(history) == 1
        assert history[0].heat_cycle_id == cycle.id

    @pytest.mark.asyncio
    async def test_second_active_cycle_conflicts(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        with pytest.raises(HeatCycleConflictError):
            await store.create_heat_cycle(female_dog.id, date(2024, 2, 1))
        assert len(repo.heat_cycles) == 1

    @pytest.mark.asyncio
    async def test_ended_cycle_allowed_alongside_active(
        self, store: HeatCycleStore, female_dog: DogRecord
    ) -> None:
        await store.create_heat_cycle(female_dog.id, date(2024, 7, 1))
        past = await store.create_heat_cycle(
            female_dog.id, date(2024, 1, 1), end_date=date(2024, 1, 20)
        )
        assert past is not None
        assert past.cycle_length == 19

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        result = await store.create_heat_cycle(
            female_dog.id, date(2024, 1, 10), end_date=date(2024, 1, 1)
        )
        assert result is None
        assert repo.heat_cycles == {}

    @pytest.mark.asyncio
    async def test_legacy_write_failure_rolls_back_cycle(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.fail_on.add("update_heat_history")
        assert await store.create_heat_cycle(female_dog.id, date(2024, 1, 1)) is None
        assert repo.heat_cycles == {}
        assert repo.dogs[female_dog.id].heat_history == []


class TestReads:
    @pytest.mark.asyncio
    async def test_cycles_newest_first(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.add_cycle(female_dog.id, date(2023, 1, 1), date(2023, 1, 21))
        repo.add_cycle(female_dog.id, date(2023, 7, 1), date(2023, 7, 21))
        cycles = await store.get_heat_cycles(female_dog.id)
        assert [c.start_date for c in cycles] == [date(2023, 7, 1), date(2023, 1, 1)]

    @pytest.mark.asyncio
    async def test_active_cycle_prefers_most_recent(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.add_cycle(female_dog.id, date(2023, 1, 1))
        newest = repo.add_cycle(female_dog.id, date(2023, 7, 1))
        active = await store.get_active_heat_cycle(female_dog.id)
        assert active is not None and active.id == newest.id

    @pytest.mark.asyncio
    async def test_backend_errors_become_sentinels(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.fail_on |= {"list_heat_cycles", "get_heat_cycle", "list_heat_logs", "get_dog"}
        assert await store.get_heat_cycles(female_dog.id) == []
        assert await store.get_active_heat_cycle(female_dog.id) is None
        assert await store.get_heat_cycle(uuid4()) is None
        assert await store.get_heat_logs(uuid4()) == []
        assert await store.get_heat_history(female_dog.id) == []


class TestUpdate:
    @pytest.mark.asyncio
    async def test_end_recomputes_length(
        self, store: HeatCycleStore, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        ended = await store.end_heat_cycle(cycle.id, date(2024, 1, 22))
        assert ended.end_date == date(2024, 1, 22)
        assert ended.cycle_length == 21
        assert not ended.is_active

    @pytest.mark.asyncio
    async def test_start_change_moves_legacy_entry(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        updated = await store.update_heat_cycle(cycle.id, {"start_date": date(2024, 1, 3)})

        assert updated.start_date == date(2024, 1, 3)
        history = repo.dogs[female_dog.id].heat_history
        assert [(h.date, h.heat_cycle_id) for h in history] == [(date(2024, 1, 3), cycle.id)]

    @pytest.mark.asyncio
    async def test_unknown_fields_ignored(
        self, store: HeatCycleStore, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        updated = await store.update_heat_cycle(cycle.id, {"dog_id": uuid4(), "notes": "ok"})
        assert updated.dog_id == female_dog.id
        assert updated.notes == "ok"

    @pytest.mark.asyncio
    async def test_missing_cycle(self, store: HeatCycleStore) -> None:
        assert await store.update_heat_cycle(uuid4(), {"notes": "x"}) is None


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_cascades(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        keep = await store.create_heat_cycle(
            female_dog.id, date(2023, 6, 1), end_date=date(2023, 6, 21)
        )
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        log_id = uuid4()
        repo.heat_logs[log_id] = HeatLogRecord(
            id=log_id, heat_cycle_id=cycle.id, date=date(2024, 1, 2), phase="proestrus"
        )

        assert await store.delete_heat_cycle(cycle.id) is True
        assert cycle.id not in repo.heat_cycles
        assert repo.heat_logs == {}
        history = repo.dogs[female_dog.id].heat_history
        assert [h.heat_cycle_id for h in history] == [keep.id]

    @pytest.mark.asyncio
    async def test_delete_without_legacy_entry_still_succeeds(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = repo.add_cycle(female_dog.id, date(2024, 1, 1))
        assert await store.delete_heat_cycle(cycle.id) is True
        assert repo.heat_cycles == {}

    @pytest.mark.asyncio
    async def test_delete_failure_rolls_back(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        repo.fail_on.add("update_heat_history")
        assert await store.delete_heat_cycle(cycle.id) is False
        assert cycle.id in repo.heat_cycles
        assert len(repo.dogs[female_dog.id].heat_history) == 1

    @pytest.mark.asyncio
    async def test_delete_legacy_entry(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.dogs[female_dog.id].heat_history = [
            HeatHistoryEntry(date=date(2023, 1, 1)),
            HeatHistoryEntry(date=date(2023, 7, 1)),
        ]
        assert await store.delete_heat_entry(female_dog.id, date(2023, 1, 1)) is True
        assert [h.date for h in repo.dogs[female_dog.id].heat_history] == [date(2023, 7, 1)]
        assert await store.delete_heat_entry(female_dog.id, date(2023, 1, 1)) is False


    @pytest.mark.asyncio
    async def test_cycle_vanishing_mid_delete_keeps_logs(
        self,
        store: HeatCycleStore,
        repo: InMemoryBreedingRepository,
        female_dog: DogRecord,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        log = await store.add_heat_log(cycle.id, date(2024, 1, 2), phase="proestrus")
        monkeypatch.setattr(repo, "delete_heat_cycle", AsyncMock(return_value=False))

        assert await store.delete_heat_cycle(cycle.id) is False
        assert log.id in repo.heat_logs
        assert len(repo.dogs[female_dog.id].heat_history) == 1


class TestHeatLogs:
    @pytest.mark.asyncio
    async def test_add_and_list(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        later = await store.add_heat_log(cycle.id, date(2024, 1, 9), phase="estrus")
        first = await store.add_heat_log(
            cycle.id, date(2024, 1, 2), phase="proestrus", temperature=38.6, observations="swelling"
        )

        assert first is not None and first.user_id == TEST_USER_ID
        assert [log.id for log in await store.get_heat_logs(cycle.id)] == [first.id, later.id]
        assert repo.heat_logs[first.id].temperature == 38.6

    @pytest.mark.asyncio
    async def test_add_to_unknown_cycle(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository
    ) -> None:
        assert await store.add_heat_log(uuid4(), date(2024, 1, 2)) is None
        assert repo.heat_logs == {}

    @pytest.mark.asyncio
    async def test_add_failure_returns_none(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        repo.fail_on.add("insert_heat_log")
        assert await store.add_heat_log(cycle.id, date(2024, 1, 2)) is None

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_fields(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        log = await store.add_heat_log(cycle.id, date(2024, 1, 2))

        updated = await store.update_heat_log(
            log.id, {"phase": "estrus", "notes": "standing", "heat_cycle_id": uuid4()}
        )
        assert updated.phase == "estrus"
        assert updated.notes == "standing"
        assert updated.heat_cycle_id == cycle.id
        assert (await store.update_heat_log(log.id, {"bogus": 1})).id == log.id
        assert await store.update_heat_log(uuid4(), {"notes": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        log = await store.add_heat_log(cycle.id, date(2024, 1, 2))

        assert await store.delete_heat_log(log.id) is True
        assert await store.delete_heat_log(log.id) is False
        assert repo.heat_logs == {}

    @pytest.mark.asyncio
    async def test_cycle_delete_removes_added_logs(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        cycle = await store.create_heat_cycle(female_dog.id, date(2024, 1, 1))
        await store.add_heat_log(cycle.id, date(2024, 1, 2))
        await store.add_heat_log(cycle.id, date(2024, 1, 3))

        assert await store.delete_heat_cycle(cycle.id) is True
        assert repo.heat_logs == {}



class TestMigration:
    @pytest.mark.asyncio
    async def test_history_to_cycles(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.dogs[female_dog.id].heat_history = [
            HeatHistoryEntry(date=date(2023, 1, 1)),
            HeatHistoryEntry(date=date(2023, 7, 1)),
        ]
        created = await store.sync_heat_history_to_heat_cycles(
            female_dog.id, today=date(2024, 1, 1)
        )

        assert created == 2
        cycles = sorted(repo.heat_cycles.values(), key=lambda c: c.start_date)
        assert [c.end_date for c in cycles] == [date(2023, 1, 22), date(2023, 7, 22)]
        assert all(c.notes == "Migrated from heat history" for c in cycles)
        history = repo.dogs[female_dog.id].heat_history
        assert {h.heat_cycle_id for h in history} == {c.id for c in cycles}

    @pytest.mark.asyncio
    async def test_migration_is_idempotent(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.dogs[female_dog.id].heat_history = [HeatHistoryEntry(date=date(2023, 1, 1))]
        assert await store.sync_heat_history_to_heat_cycles(female_dog.id, date(2024, 1, 1)) == 1
        assert await store.sync_heat_history_to_heat_cycles(female_dog.id, date(2024, 1, 1)) == 0
        assert len(repo.heat_cycles) == 1

    @pytest.mark.asyncio
    async def test_recent_heat_stays_open(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        start = date(2024, 1, 1)
        repo.dogs[female_dog.id].heat_history = [HeatHistoryEntry(date=start)]
        await store.sync_heat_history_to_heat_cycles(
            female_dog.id, today=start + timedelta(days=5)
        )
        (cycle,) = repo.heat_cycles.values()
        assert cycle.is_active

    @pytest.mark.asyncio
    async def test_migration_failure_returns_zero(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        repo.dogs[female_dog.id].heat_history = [HeatHistoryEntry(date=date(2023, 1, 1))]
        repo.fail_on.add("update_heat_history")
        assert await store.sync_heat_history_to_heat_cycles(female_dog.id) == 0
        assert repo.heat_cycles == {}

    @pytest.mark.asyncio
    async def test_cycles_to_history(
        self, store: HeatCycleStore, repo: InMemoryBreedingRepository, female_dog: DogRecord
    ) -> None:
        a = repo.add_cycle(female_dog.id, date(2023, 1, 1), date(2023, 1, 21))
        repo.add_cycle(female_dog.id, date(2023, 7, 1), date(2023, 7, 21))
        repo.dogs[female_dog.id].heat_history = [HeatHistoryEntry(date=date(2023, 7, 1))]

        assert await store.sync_heat_cycles_to_heat_history(female_dog.id) == 1
        history = repo.dogs[female_dog.id].heat_history
        assert sorted(h.date for h in history) == [date(2023, 1, 1), date(2023, 7, 1)]
        assert any(h.heat_cycle_id == a.id for h in history)
        assert await store.sync_heat_cycles_to_heat_history(female_dog.id) == 0
