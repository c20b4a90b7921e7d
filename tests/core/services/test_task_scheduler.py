"""Tests for the movement task scheduler."""

from datetime import timedelta

import pytest

from src.core.entities.movement import MovementTask, TaskStatus, TaskType
from src.core.exceptions import (
    AlreadyTerminalError,
    InvalidTransitionError,
    TaskAlreadyAssignedError,
    TaskNotAssignedError,
    ValidationError,
)
from src.core.services import Effect, MovementTaskScheduler, priority_key


@pytest.fixture
def scheduler() -> MovementTaskScheduler:
    return MovementTaskScheduler()


@pytest.fixture
def task(now) -> MovementTask:
    return MovementTask(movement_id="m-1", task_type=TaskType.PICK, created_at=now)


class TestLifecycle:
    def test_assign(self, scheduler, task, now):
        outcome = scheduler.assign(task, "user-a", now, actor_id="lead")
        assert task.status == TaskStatus.ASSIGNED
        assert task.assigned_user_id == "user-a"
        assert outcome.effects == {Effect.CLAIM_TASK}
        assert outcome.events[0].details["user_id"] == "user-a"
        assert outcome.events[0].actor_id == "lead"

    def test_assign_twice_rejected(self, scheduler, task, now):
        scheduler.assign(task, "user-a", now)
        with pytest.raises(TaskAlreadyAssignedError) as exc:
            scheduler.assign(task, "user-b", now)
        assert exc.value.details["assigned_user_id"] == "user-a"

    def test_assign_requires_user(self, scheduler, task, now):
        with pytest.raises(ValidationError):
            scheduler.assign(task, "", now)

    def test_assign_non_pending_rejected(self, scheduler, task, now):
        task.status = TaskStatus.CANCELLED
        with pytest.raises(InvalidTransitionError):
            scheduler.assign(task, "user-a", now)

    def test_unassign_returns_to_pool(self, scheduler, task, now):
        scheduler.assign(task, "user-a", now)
        scheduler.unassign(task, now)
        assert task.status == TaskStatus.PENDING
        assert task.assigned_user_id is None

    def test_unassign_requires_assigned(self, scheduler, task, now):
        with pytest.raises(InvalidTransitionError):
            scheduler.unassign(task, now)

    def test_start_requires_assignment(self, scheduler, task, now):
        with pytest.raises(TaskNotAssignedError):
            scheduler.start(task, now)

    def test_full_run_records_times(self, scheduler, task, now):
        scheduler.assign(task, "user-a", now)
        scheduler.start(task, now)
        outcome = scheduler.complete(task, now + timedelta(minutes=30), notes="done")
        assert task.status == TaskStatus.COMPLETED
        assert task.actual_start_time == now
        assert task.duration_minutes == 30
        assert task.notes == "done"
        assert Effect.RECONCILE in outcome.effects

    def test_complete_requires_in_progress(self, scheduler, task, now):
        scheduler.assign(task, "user-a", now)
        with pytest.raises(InvalidTransitionError):
            scheduler.complete(task, now)

    def test_cancel_appends_reason_to_notes(self, scheduler, task, now):
        task.notes = "fragile"
        scheduler.cancel(task, "stock missing", now)
        assert task.status == TaskStatus.CANCELLED
        assert task.notes == "fragile\nCancellation reason: stock missing"

    def test_cancel_terminal_rejected(self, scheduler, task, now):
        scheduler.cancel(task, "x", now)
        with pytest.raises(AlreadyTerminalError):
            scheduler.cancel(task, "again", now)


class TestOrdering:
    def _task(self, now, priority=5, due=None, created=0, sequence=0):
        return MovementTask(
            task_type=TaskType.PICK,
            priority=priority,
            expected_completion_time=due,
            created_at=now + timedelta(seconds=created),
            sequence=sequence,
        )

    def test_priority_then_deadline_then_creation(self, scheduler, now):
        low = self._task(now, priority=2)
        urgent = self._task(now, priority=9)
        due_late = self._task(now, due=now + timedelta(hours=5))
        due_soon = self._task(now, due=now + timedelta(hours=1))
        no_due_old = self._task(now, created=1)
        no_due_new = self._task(now, created=2)

        ordered = scheduler.order([low, no_due_new, due_late, urgent, no_due_old, due_soon])
        assert ordered == [urgent, due_soon, due_late, no_due_old, no_due_new, low]

    def test_sequence_breaks_full_ties(self, now):
        a = self._task(now, sequence=2)
        b = self._task(now, sequence=1)
        assert sorted([a, b], key=priority_key) == [b, a]

    def test_overdue(self, scheduler, now):
        late = self._task(now, due=now - timedelta(minutes=5))
        on_time = self._task(now, due=now + timedelta(minutes=5))
        assert scheduler.overdue([on_time, late], now) == [late]
        assert scheduler.is_overdue(late, now)


class TestPlanAssignments:
    def test_round_robin_in_priority_order(self, scheduler, now):
        tasks = [
            MovementTask(task_type=TaskType.PICK, priority=p, created_at=now)
            for p in (3, 9, 6)
        ]
        plan = scheduler.plan_assignments(tasks, ["u1", "u2"])
        assert [(t.priority, u) for t, u in plan] == [(9, "u1"), (6, "u2"), (3, "u1")]

    def test_skips_assigned_and_terminal(self, scheduler, now):
        open_task = MovementTask(task_type=TaskType.PICK)
        taken = MovementTask(
            task_type=TaskType.PICK, status=TaskStatus.ASSIGNED, assigned_user_id="x"
        )
        done = MovementTask(task_type=TaskType.PICK, status=TaskStatus.COMPLETED)
        plan = scheduler.plan_assignments([taken, done, open_task], ["u1"])
        assert plan == [(open_task, "u1")]

    def test_requires_users(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.plan_assignments([], ["", "  "])
