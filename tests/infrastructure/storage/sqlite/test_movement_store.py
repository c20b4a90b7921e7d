"""Tests for the SQLite movement store."""

from datetime import timedelta

import pytest

from src.core.entities.movement import (
    LineStatus,
    MovementStatus,
    MovementType,
    TaskStatus,
)
from src.core.exceptions import (
    ConcurrentModificationError,
    DuplicateReferenceNumberError,
    MovementNotFoundError,
)
from src.core.interfaces.movement_store import LineFilter, MovementFilter, TaskFilter
from src.core.services.outcome import make_event


class TestCreateAndLoad:
    async def test_round_trips_aggregate(self, store, make_movement, now):
        movement = make_movement(
            status=MovementStatus.PENDING,
            tasks=1,
            reference_number="TRF-001",
            expected_date=now + timedelta(days=1),
        )
        event = make_event(movement.id, "movement", movement.id, "create", None, "PENDING", now)

        await store.create_movement(movement, [event])
        loaded = await store.get_movement(movement.id)

        assert loaded.version == 0
        assert loaded.reference_number == "TRF-001"
        assert loaded.expected_date == now + timedelta(days=1)
        assert [line.line_number for line in loaded.lines] == [1, 2]
        assert loaded.tasks[0].sequence >= 1
        assert (await store.get_movement_by_reference("TRF-001")).id == movement.id

    async def test_missing_movement(self, store):
        assert await store.get_movement("nope") is None
        assert await store.find_movement_id_for_line("nope") is None

    async def test_duplicate_reference(self, store, make_movement):
        await store.create_movement(make_movement(reference_number="DUP"))
        with pytest.raises(DuplicateReferenceNumberError):
            await store.create_movement(make_movement(reference_number="DUP"))

    async def test_reference_taken_excludes_self(self, store, make_movement):
        movement = await store.create_movement(make_movement(reference_number="REF-9"))
        assert await store.reference_number_taken("REF-9")
        assert not await store.reference_number_taken("REF-9", movement.id)

    async def test_child_lookups(self, store, make_movement):
        movement = await store.create_movement(make_movement(tasks=1))
        assert await store.find_movement_id_for_line(movement.lines[0].id) == movement.id
        assert await store.find_movement_id_for_task(movement.tasks[0].id) == movement.id


class TestSaveMovement:
    async def test_version_increments(self, store, make_movement):
        movement = await store.create_movement(make_movement())
        movement.lines[0].status = LineStatus.PICKED

        saved = await store.save_movement(movement, 0)

        assert saved.version == 1
        loaded = await store.get_movement(movement.id)
        assert loaded.version == 1
        assert loaded.lines[0].status == LineStatus.PICKED

    async def test_stale_version_rejected(self, store, make_movement):
        movement = await store.create_movement(make_movement())
        await store.save_movement(movement.model_copy(deep=True), 0)

        stale = movement.model_copy(deep=True)
        stale.notes = "lost update"
        with pytest.raises(ConcurrentModificationError):
            await store.save_movement(stale, 0)

        loaded = await store.get_movement(movement.id)
        assert loaded.notes is None
        assert loaded.version == 1

    async def test_deleted_movement_reports_not_found(self, store, make_movement):
        movement = await store.create_movement(make_movement(status=MovementStatus.DRAFT))
        assert await store.delete_movement(movement.id)
        with pytest.raises(MovementNotFoundError):
            await store.save_movement(movement, 0)

    async def test_children_are_synchronized(self, store, make_movement):
        movement = await store.create_movement(make_movement(lines=3, tasks=2))
        removed_line = movement.lines.pop()
        movement.tasks.pop(0)

        await store.save_movement(movement, 0)
        loaded = await store.get_movement(movement.id)

        assert len(loaded.lines) == 2
        assert len(loaded.tasks) == 1
        assert await store.find_movement_id_for_line(removed_line.id) is None

    async def test_renumbered_lines_keep_unique_numbers(self, store, make_movement):
        movement = await store.create_movement(
            make_movement(status=MovementStatus.DRAFT, lines=4)
        )
        movement.lines.pop(1)
        for number, line in enumerate(movement.lines, start=1):
            line.line_number = number

        await store.save_movement(movement, 0)
        loaded = await store.get_movement(movement.id)

        assert [line.line_number for line in loaded.lines] == [1, 2, 3]
        assert [line.item_id for line in loaded.lines] == ["ITEM-1", "ITEM-3", "ITEM-4"]

    async def test_events_recorded_in_order(self, store, make_movement, now):
        movement = await store.create_movement(make_movement())
        events = [
            make_event(movement.id, "line", movement.lines[0].id, "advance", "PENDING", "PICKED", now),
            make_event(movement.id, "movement", movement.id, "hold", "IN_PROGRESS", "ON_HOLD", now,
                       actor_id="u1", reason="truck late", dock="D4"),
        ]
        await store.save_movement(movement, 0, events)

        history = await store.get_events(movement.id)
        assert [e.action for e in history] == ["advance", "hold"]
        assert history[1].reason == "truck late"
        assert history[1].details == {"dock": "D4"}
        assert history[1].occurred_at == now


class TestClaimTask:
    async def test_first_claim_wins(self, store, make_movement, now):
        movement = await store.create_movement(make_movement(tasks=1))
        first = movement.tasks[0].model_copy()
        first.status, first.assigned_user_id, first.updated_at = TaskStatus.ASSIGNED, "u1", now
        second = first.model_copy(update={"assigned_user_id": "u2"})

        assert await store.claim_task(first)
        assert not await store.claim_task(second)

        loaded = await store.get_movement(movement.id)
        assert loaded.tasks[0].assigned_user_id == "u1"
        assert loaded.version == 1

    async def test_claim_bumps_version_for_writers(self, store, make_movement, now):
        movement = await store.create_movement(make_movement(tasks=1))
        claimed = movement.tasks[0].model_copy()
        claimed.status, claimed.assigned_user_id, claimed.updated_at = TaskStatus.ASSIGNED, "u1", now
        await store.claim_task(claimed)

        with pytest.raises(ConcurrentModificationError):
            await store.save_movement(movement, 0)


class TestQueries:
    async def test_list_movements_filters_and_pages(self, store, make_movement, now):
        for i in range(3):
            await store.create_movement(
                make_movement(
                    status=MovementStatus.PENDING,
                    notes=f"batch {i}",
                    created_by="u1",
                    movement_date=now,
                )
            )
        await store.create_movement(
            make_movement(type=MovementType.INBOUND, warehouse_id="WH-2", reference_number="INB-77")
        )

        items, total = await store.list_movements(
            MovementFilter(status=MovementStatus.PENDING), limit=2, offset=0
        )
        assert total == 3 and len(items) == 2
        assert items[0].lines == []

        _, total = await store.list_movements(MovementFilter(warehouse_id="WH-2"))
        assert total == 1
        _, total = await store.list_movements(MovementFilter(search="INB"))
        assert total == 1
        _, total = await store.list_movements(MovementFilter(search="batch", created_by="u1"))
        assert total == 3
        _, total = await store.list_movements(
            MovementFilter(start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1))
        )
        assert total == 3

    async def test_overdue_and_counts(self, store, make_movement, now):
        await store.create_movement(make_movement(expected_date=now - timedelta(hours=1)))
        await store.create_movement(
            make_movement(status=MovementStatus.COMPLETED, expected_date=now - timedelta(hours=1))
        )
        await store.create_movement(make_movement(expected_date=now + timedelta(hours=1)))

        overdue = await store.list_overdue_movements(now)
        assert len(overdue) == 1

        counts = await store.count_by_status("WH-1")
        assert counts == {"IN_PROGRESS": 2, "COMPLETED": 1}

    async def test_variance_lines(self, store, make_movement):
        movement = make_movement(lines=[LineStatus.COMPLETED, LineStatus.COMPLETED, LineStatus.PENDING])
        movement.lines[0].actual_quantity = 10
        movement.lines[1].actual_quantity = 8
        await store.create_movement(movement)

        lines, total = await store.list_lines(LineFilter(with_variance=True))
        assert total == 1
        assert lines[0].variance == -2

    async def test_short_picked_lines(self, store, make_movement):
        movement = make_movement(lines=[LineStatus.COMPLETED] * 3 + [LineStatus.PENDING])
        movement.lines[0].actual_quantity = 10
        movement.lines[1].actual_quantity = 4
        movement.lines[2].actual_quantity = 12
        await store.create_movement(movement)

        lines, total = await store.list_lines(LineFilter(short_picked=True))
        assert total == 1
        assert lines[0].id == movement.lines[1].id

    async def test_counts_by_type_within_dates(self, store, make_movement, now):
        await store.create_movement(make_movement(movement_date=now))
        await store.create_movement(make_movement(type=MovementType.INBOUND, movement_date=now))
        await store.create_movement(
            make_movement(type=MovementType.INBOUND, movement_date=now - timedelta(days=3))
        )
        await store.create_movement(
            make_movement(type=MovementType.INBOUND, warehouse_id="WH-2", movement_date=now)
        )

        counts = await store.count_by_type(
            "WH-1", start_date=now - timedelta(days=1), end_date=now + timedelta(days=1)
        )
        assert counts == {"TRANSFER": 1, "INBOUND": 1}
        assert await store.count_by_type() == {"TRANSFER": 1, "INBOUND": 3}

    async def test_tasks_in_assignment_order(self, store, make_movement, now):
        movement = make_movement(tasks=3, warehouse_id="WH-9")
        low, urgent, due = movement.tasks
        low.priority, urgent.priority, due.priority = 1, 9, 5
        due.expected_completion_time = now - timedelta(minutes=1)
        due.scheduled_start_time = now
        await store.create_movement(movement)

        tasks, total = await store.list_tasks(TaskFilter(unassigned_only=True, warehouse_id="WH-9"))
        assert total == 3
        assert [t.id for t in tasks] == [urgent.id, due.id, low.id]

        overdue = await store.list_open_tasks_due_before(now)
        assert [t.id for t in overdue] == [due.id]

        today, _ = await store.list_tasks(
            TaskFilter(scheduled_from=now - timedelta(hours=1), scheduled_to=now + timedelta(hours=1))
        )
        assert [t.id for t in today] == [due.id]
