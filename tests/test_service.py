"""
Tests for the async schedule service.

Runs the whole pipeline against InMemoryRepository: window loading with
materialization, session mutations with persistence and rollback, the
finance summary and payment toggling.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from coachledger.errors import NotFoundError
from coachledger.repository import InMemoryRepository, ScheduleRepository
from coachledger.service import ScheduleService


async def _service(clients, config):
    repo = InMemoryRepository()
    for client in clients:
        await repo.save_client(client)
    return ScheduleService(repo, config=config), repo


# ===================================================================
# Window loading
# ===================================================================

class TestLoadWindow:

    @pytest.mark.unit
    def test_in_memory_repository_satisfies_protocol(self):
        assert isinstance(InMemoryRepository(), ScheduleRepository)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_materializes_and_persists(self, roster, feb_start, feb_end, third_monday, config):
        service, repo = await _service(roster, config)
        created = await service.load_window(feb_start, feb_end, today=third_monday)
        # ana 4, bruno 8, carla 3 (inactive), davi 0 (consulting)
        assert len(created) == 15
        assert len(repo.stored_occurrence_ids()) == 15
        assert len(service.store) == 15

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_load_is_noop(self, roster, feb_start, feb_end, third_monday, config):
        service, repo = await _service(roster, config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        before = repo.stored_occurrence_ids()
        assert await service.load_window(feb_start, feb_end, today=third_monday) == []
        assert repo.stored_occurrence_ids() == before

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stored_edits_win_over_templates(self, monthly_client, feb_start, feb_end,
                                                   third_monday, config, make_occurrence):
        service, repo = await _service([monthly_client], config)
        await repo.save_occurrence(make_occurrence(completed=True, notes="great session"))
        created = await service.load_window(feb_start, feb_end, today=third_monday)
        assert len(created) == 3
        assert service.store.get("ana-2026-02-02-08:00").notes == "great session"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fresh_service_sees_persisted_state(self, monthly_client, feb_start, feb_end,
                                                      third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        await service.complete_session("ana-2026-02-16-08:00", tags={"legs"})

        other = ScheduleService(repo, config=config)
        assert await other.load_window(feb_start, feb_end, today=third_monday) == []
        assert other.store.get("ana-2026-02-16-08:00").tags == frozenset({"legs"})

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_inverted_window(self, roster, feb_start, feb_end, config):
        service, _ = await _service(roster, config)
        assert await service.load_window(feb_end, feb_start, today=feb_start) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_persist_rolls_back(self, monthly_client, feb_start, feb_end,
                                             third_monday, config):
        service, repo = await _service([monthly_client], config)
        repo.save_occurrence = AsyncMock(side_effect=RuntimeError("backend down"))
        with pytest.raises(RuntimeError):
            await service.load_window(feb_start, feb_end, today=third_monday)
        assert len(service.store) == 0
        assert service.store.known_keys() == frozenset()


# ===================================================================
# Session mutations
# ===================================================================

class TestMutations:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_move_persists_in_place(self, monthly_client, session_client,
                                          feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client, session_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)

        moved = await service.move_session("ana-2026-02-23-08:00", date(2026, 2, 24), "07:00")

        assert moved.id == "ana-2026-02-23-08:00"
        assert (moved.date, moved.time) == (date(2026, 2, 24), time(7, 0))
        stored = await repo.load_occurrences(date(2026, 2, 24), date(2026, 2, 24))
        assert [o for o in stored if o.client_id == "ana"] == [moved]
        assert await service.load_window(feb_start, feb_end, today=third_monday) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_move_is_a_single_write(self, monthly_client, feb_start, feb_end,
                                          third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        repo.delete_occurrence = AsyncMock(side_effect=RuntimeError("offline"))

        moved = await service.move_session("ana-2026-02-23-08:00", date(2026, 2, 24), "07:00")

        repo.delete_occurrence.assert_not_awaited()
        assert repo.stored_occurrence_ids().count(moved.id) == 1
        assert len(repo.stored_occurrence_ids()) == 4
        stored = await repo.load_occurrences(feb_start, feb_end)
        assert [o for o in stored if o.id == moved.id] == [moved]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_move_rollback(self, monthly_client, feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        real_save = repo.save_occurrence
        repo.save_occurrence = AsyncMock(side_effect=RuntimeError("timeout"))

        with pytest.raises(RuntimeError):
            await service.move_session("ana-2026-02-23-08:00", date(2026, 2, 24), "07:00")

        assert service.store.get("ana-2026-02-23-08:00").date == date(2026, 2, 23)
        repo.save_occurrence = real_save
        stored = await repo.load_occurrences(date(2026, 2, 23), date(2026, 2, 23))
        assert [o.date for o in stored] == [date(2026, 2, 23)]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_move_to_same_slot_skips_repository(self, monthly_client, feb_start, feb_end,
                                                      third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        repo.save_occurrence = AsyncMock()
        await service.move_session("ana-2026-02-23-08:00", date(2026, 2, 23), time(8, 0))
        repo.save_occurrence.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_moved_session_survives_restart(self, session_client, feb_start, feb_end,
                                                  third_monday, config):
        service, repo = await _service([session_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        await service.move_session("bruno-2026-02-24-18:00", date(2026, 2, 25), "18:00")

        restarted = ScheduleService(repo, config=config)
        summary = await restarted.finance_summary(date(2026, 2, 1), today=third_monday)

        row = summary.row_for("bruno")
        assert row.total_count == 8
        assert row.expected == Decimal("400.00")
        assert restarted.store.get("bruno-2026-02-24-18:00").date == date(2026, 2, 25)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_move_across_months_survives_restart(self, monthly_client, feb_start, feb_end,
                                                       third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        await service.move_session("ana-2026-02-23-08:00", date(2026, 3, 2), "08:00")

        restarted = ScheduleService(repo, config=config)
        assert await restarted.load_window(feb_start, feb_end, today=third_monday) == []
        assert restarted.store.get("ana-2026-02-23-08:00").date == date(2026, 3, 2)
        assert len(restarted.store.list_by_date_range(feb_start, feb_end)) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_complete_rollback(self, monthly_client, feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        repo.save_occurrence = AsyncMock(side_effect=RuntimeError("offline"))

        with pytest.raises(RuntimeError):
            await service.complete_session("ana-2026-02-02-08:00")
        assert service.store.get("ana-2026-02-02-08:00").completed is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_annotate_and_reopen(self, monthly_client, feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)

        await service.complete_session("ana-2026-02-02-08:00", tags=["back"])
        await service.annotate_session("ana-2026-02-02-08:00", notes="deadlift 80kg")
        reopened = await service.reopen_session("ana-2026-02-02-08:00")

        assert reopened.completed is False
        assert reopened.notes == "deadlift 80kg"
        stored = await repo.load_occurrences(date(2026, 2, 2), date(2026, 2, 2))
        assert stored == [reopened]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_session(self, monthly_client, feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)

        removed = await service.remove_session("ana-2026-02-09-08:00")

        assert removed.cancelled is False
        assert "ana-2026-02-09-08:00" not in service.store
        assert repo.cancelled_occurrence_ids() == ["ana-2026-02-09-08:00"]
        assert await service.load_window(feb_start, feb_end, today=third_monday) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_removed_session_stays_removed_after_restart(self, monthly_client, feb_start,
                                                               feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        await service.remove_session("ana-2026-02-09-08:00")

        restarted = ScheduleService(repo, config=config)
        assert await restarted.load_window(feb_start, feb_end, today=third_monday) == []
        assert "ana-2026-02-09-08:00" not in restarted.store
        assert "ana-2026-02-09-08:00" in restarted.store.retired_keys
        summary = await restarted.finance_summary(date(2026, 2, 1), today=third_monday)
        assert summary.row_for("ana").total_count == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_ad_hoc_already_deleted_remotely(self, monthly_client, config):
        service, repo = await _service([monthly_client], config)
        await service.refresh_clients()
        occ = await service.add_session("ana", date(2026, 2, 20), "10:00")
        await repo.delete_occurrence(occ.id)

        removed = await service.remove_session(occ.id)
        assert removed.date == date(2026, 2, 20)
        assert occ.id not in service.store

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_ad_hoc_deletes_record(self, monthly_client, config):
        service, repo = await _service([monthly_client], config)
        await service.refresh_clients()
        occ = await service.add_session("ana", date(2026, 2, 20), "10:00")

        await service.remove_session(occ.id)
        assert repo.stored_occurrence_ids() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_rollback(self, monthly_client, feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        repo.save_occurrence = AsyncMock(side_effect=RuntimeError("offline"))

        with pytest.raises(RuntimeError):
            await service.remove_session("ana-2026-02-09-08:00")
        assert "ana-2026-02-09-08:00" in service.store
        assert "ana-2026-02-09-08:00" not in service.store.retired_keys
        assert repo.cancelled_occurrence_ids() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_ad_hoc_rollback(self, monthly_client, config):
        service, repo = await _service([monthly_client], config)
        await service.refresh_clients()
        occ = await service.add_session("ana", date(2026, 2, 20), "10:00")
        repo.delete_occurrence = AsyncMock(side_effect=RuntimeError("offline"))

        with pytest.raises(RuntimeError):
            await service.remove_session(occ.id)
        assert service.store.get(occ.id) == occ

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_occurrence(self, monthly_client, config):
        service, _ = await _service([monthly_client], config)
        with pytest.raises(NotFoundError):
            await service.complete_session("ghost")



# ===================================================================
# Ad-hoc sessions
# ===================================================================

class TestAdHoc:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_add_trial_session(self, monthly_client, feb_start, feb_end, third_monday, config):
        service, repo = await _service([monthly_client], config)
        await service.load_window(feb_start, feb_end, today=third_monday)
        now = datetime(2026, 2, 16, 12, 0, tzinfo=timezone.utc)

        occ = await service.add_session(
            "ana", date(2026, 2, 23), "08:00", display_name="Trial: Julia", now=now
        )

        assert occ.id == f"ana-{int(now.timestamp() * 1000)}"
        assert occ.ad_hoc is True
        assert occ.client_name == "Trial: Julia"
        assert occ.duration_minutes == 60
        # Coexists with the template session at the same slot.
        assert len(service.store.list_by_date_range(date(2026, 2, 23), date(2026, 2, 23))) == 2
        assert occ.id in repo.stored_occurrence_ids()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_add_session_unknown_client(self, monthly_client, config):
        service, _ = await _service([monthly_client], config)
        await service.refresh_clients()
        with pytest.raises(NotFoundError):
            await service.add_session("nobody", date(2026, 2, 23), "08:00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_add_session_rollback(self, monthly_client, config):
        service, repo = await _service([monthly_client], config)
        await service.refresh_clients()
        repo.save_occurrence = AsyncMock(side_effect=RuntimeError("offline"))
        with pytest.raises(RuntimeError):
            await service.add_session("ana", date(2026, 2, 23), "10:00", duration_minutes=30)
        assert len(service.store) == 0


# ===================================================================
# Finance
# ===================================================================

class TestFinance:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_february_summary(self, monthly_client, third_monday, config):
        service, _ = await _service([monthly_client], config)
        summary = await service.finance_summary(date(2026, 2, 1), today=third_monday)
        row = summary.row_for("ana")
        assert row.total_count == 4
        assert row.earned == row.expected == Decimal("100.00")
        assert (row.done_count, row.pending_count) == (2, 2)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_summary_reflects_completion(self, session_client, third_monday, config):
        service, _ = await _service([session_client], config)
        await service.finance_summary(date(2026, 2, 1), today=third_monday)
        await service.complete_session("bruno-2026-02-26-18:00")
        summary = await service.finance_summary(date(2026, 2, 1), today=third_monday)
        assert summary.row_for("bruno").earned == Decimal("250.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_toggle_paid(self, monthly_client, third_monday, config):
        service, _ = await _service([monthly_client], config)
        await service.finance_summary(date(2026, 2, 1), today=third_monday)
        assert service.payment_status("ana").overdue_days(third_monday) == 6

        status = await service.toggle_paid("ana", date(2026, 2, 1), today=third_monday)
        assert status.paid is True
        assert service.payment_status("ana").paid is True

        status = await service.toggle_paid("ana", date(2026, 2, 1), today=third_monday)
        assert status.paid is False
        assert status.paid_at is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_february_payment_does_not_cover_march(self, monthly_client, third_monday,
                                                         config):
        service, _ = await _service([monthly_client], config)
        await service.finance_summary(date(2026, 2, 1), today=third_monday)
        await service.toggle_paid("ana", date(2026, 2, 1), today=third_monday)

        march_20 = date(2026, 3, 20)
        await service.finance_summary(date(2026, 3, 1), today=march_20)

        status = service.payment_status("ana")
        assert status.paid is False
        assert status.due_date == date(2026, 3, 10)
        assert status.overdue_days(march_20) == 10

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_toggle_paid_loads_roster(self, monthly_client, third_monday, config):
        service, _ = await _service([monthly_client], config)
        status = await service.toggle_paid("ana", date(2026, 2, 1), today=third_monday)
        assert status.paid is True

    @pytest.mark.unit
    def test_client_lookup_before_load(self, config):
        service = ScheduleService(InMemoryRepository(), config=config)
        with pytest.raises(NotFoundError):
            service.client("ana")

