"""Tests for the movement state machine."""

import pytest

from src.core.entities.movement import LineStatus, MovementStatus, TaskStatus
from src.core.exceptions import (
    EmptyMovementError,
    InvalidTransitionError,
    ValidationError,
)
from src.core.services import (
    ALLOWED_TRANSITIONS,
    FORCE_COMPLETE_REASON,
    Effect,
    MovementStateMachine,
)

S = MovementStatus


@pytest.fixture
def machine() -> MovementStateMachine:
    return MovementStateMachine()


class TestGraph:
    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS[S.COMPLETED] == frozenset()
        assert ALLOWED_TRANSITIONS[S.CANCELLED] == frozenset()

    def test_every_open_state_can_cancel(self, machine):
        for status in S:
            if not status.is_terminal:
                assert machine.can_transition(status, S.CANCELLED)

    @pytest.mark.parametrize(
        "current, target",
        [
            (S.DRAFT, S.IN_PROGRESS),
            (S.PENDING, S.COMPLETED),
            (S.PARTIALLY_COMPLETED, S.IN_PROGRESS),
            (S.COMPLETED, S.IN_PROGRESS),
            (S.ON_HOLD, S.COMPLETED),
        ],
    )
    def test_disallowed_edges(self, machine, current, target):
        assert not machine.can_transition(current, target)

    def test_transition_records_event(self, machine, make_movement, now):
        movement = make_movement(status=S.PENDING)
        outcome = machine.transition(movement, S.IN_PROGRESS, "start", now, actor_id="u1")
        event = outcome.events[0]
        assert (event.from_status, event.to_status, event.action) == (
            "PENDING",
            "IN_PROGRESS",
            "start",
        )
        assert event.entity_type == "movement"
        assert movement.updated_at == now

    def test_rejected_transition_leaves_state(self, machine, make_movement, now):
        movement = make_movement(status=S.COMPLETED)
        with pytest.raises(InvalidTransitionError) as exc:
            machine.transition(movement, S.IN_PROGRESS, "start", now)
        assert exc.value.details["current_status"] == "COMPLETED"
        assert exc.value.details["target_status"] == "IN_PROGRESS"
        assert movement.status == S.COMPLETED


class TestStart:
    def test_start_from_pending(self, machine, make_movement, now):
        movement = make_movement(status=S.PENDING)
        outcome = machine.start(movement, now)
        assert movement.status == S.IN_PROGRESS
        assert [e.action for e in outcome.events] == ["start"]

    def test_start_from_draft_passes_through_pending(self, machine, make_movement, now):
        movement = make_movement(status=S.DRAFT)
        outcome = machine.start(movement, now)
        assert movement.status == S.IN_PROGRESS
        assert [(e.from_status, e.to_status) for e in outcome.events] == [
            ("DRAFT", "PENDING"),
            ("PENDING", "IN_PROGRESS"),
        ]

    def test_start_empty_rejected(self, machine, make_movement, now):
        movement = make_movement(status=S.PENDING, lines=0)
        with pytest.raises(EmptyMovementError):
            machine.start(movement, now)
        assert movement.status == S.PENDING

    def test_start_completed_is_invalid_transition(self, machine, make_movement, now):
        movement = make_movement(status=S.COMPLETED, lines=0)
        with pytest.raises(InvalidTransitionError):
            machine.start(movement, now)


class TestHoldRelease:
    @pytest.mark.parametrize("origin", [S.PENDING, S.IN_PROGRESS])
    def test_release_restores_previous_state(self, machine, make_movement, now, origin):
        movement = make_movement(status=origin)
        machine.hold(movement, "waiting for truck", now)
        assert movement.status == S.ON_HOLD
        assert movement.hold_previous_status == origin
        assert movement.reason == "waiting for truck"

        outcome = machine.release(movement, now)
        assert movement.status == origin
        assert movement.hold_previous_status is None
        assert Effect.RECONCILE in outcome.effects

    def test_hold_from_draft_rejected(self, machine, make_movement, now):
        with pytest.raises(InvalidTransitionError):
            machine.hold(make_movement(status=S.DRAFT), "x", now)

    def test_release_requires_hold(self, machine, make_movement, now):
        with pytest.raises(InvalidTransitionError):
            machine.release(make_movement(status=S.IN_PROGRESS), now)


class TestCancel:
    def test_cascades_to_open_children(self, machine, make_movement, now):
        movement = make_movement(
            lines=[LineStatus.COMPLETED, LineStatus.PICKED],
            tasks=[TaskStatus.COMPLETED, TaskStatus.ASSIGNED, TaskStatus.PENDING],
        )
        outcome = machine.cancel(movement, "customer withdrew", now, actor_id="u1")

        assert movement.status == S.CANCELLED
        assert movement.reason == "customer withdrew"
        assert [line.status for line in movement.lines] == [
            LineStatus.COMPLETED,
            LineStatus.CANCELLED,
        ]
        assert [task.status for task in movement.tasks] == [
            TaskStatus.COMPLETED,
            TaskStatus.CANCELLED,
            TaskStatus.CANCELLED,
        ]
        assert Effect.RECONCILE not in outcome.effects
        assert outcome.events[-1].entity_type == "movement"
        assert len(outcome.events) == 4

    def test_cancel_from_hold_clears_previous(self, machine, make_movement, now):
        movement = make_movement(status=S.ON_HOLD, hold_previous_status=S.IN_PROGRESS)
        machine.cancel(movement, "x", now)
        assert movement.hold_previous_status is None

    def test_cancel_requires_reason(self, machine, make_movement, now):
        with pytest.raises(ValidationError):
            machine.cancel(make_movement(), "", now)

    def test_cancel_terminal_rejected(self, machine, make_movement, now):
        with pytest.raises(InvalidTransitionError):
            machine.cancel(make_movement(status=S.COMPLETED), "x", now)


class TestForceComplete:
    def test_partially_completed_closes(self, machine, make_movement, now):
        movement = make_movement(
            status=S.PARTIALLY_COMPLETED,
            lines=[LineStatus.COMPLETED, LineStatus.CANCELLED],
            tasks=[TaskStatus.PENDING],
        )
        outcome = machine.force_complete(movement, now, actor_id="lead")

        assert movement.status == S.COMPLETED
        assert movement.completed_by == "lead"
        assert movement.completed_at == now
        assert movement.actual_date == now
        assert movement.tasks[0].status == TaskStatus.CANCELLED
        assert outcome.events[-1].action == "force_complete"

    def test_in_progress_rejected_by_default(self, machine, make_movement, now):
        movement = make_movement(status=S.IN_PROGRESS)
        with pytest.raises(InvalidTransitionError):
            machine.force_complete(movement, now)
        assert movement.status == S.IN_PROGRESS

    def test_in_progress_allowed_cancels_unresolved(self, machine, make_movement, now):
        movement = make_movement(
            lines=[LineStatus.COMPLETED, LineStatus.IN_TRANSIT],
            tasks=[TaskStatus.IN_PROGRESS],
        )
        machine.force_complete(movement, now, allow_unresolved=True)

        assert movement.status == S.COMPLETED
        assert movement.lines[1].status == LineStatus.CANCELLED
        assert movement.lines[1].reason == FORCE_COMPLETE_REASON
        assert movement.tasks[0].status == TaskStatus.CANCELLED


class TestGuards:
    def test_ensure_executing_allows_hold_from_in_progress(self, machine, make_movement):
        held = make_movement(status=S.ON_HOLD, hold_previous_status=S.IN_PROGRESS)
        machine.ensure_executing(held, "advance line")

    def test_ensure_executing_rejects_hold_from_pending(self, machine, make_movement):
        held = make_movement(status=S.ON_HOLD, hold_previous_status=S.PENDING)
        with pytest.raises(InvalidTransitionError):
            machine.ensure_executing(held, "advance line")

    def test_ensure_editable(self, machine, make_movement):
        machine.ensure_editable(make_movement(status=S.DRAFT), "update")
        with pytest.raises(InvalidTransitionError):
            machine.ensure_editable(make_movement(status=S.IN_PROGRESS), "update")


class TestRejectedTargets:
    @pytest.mark.parametrize(
        ("command", "target"),
        [
            (lambda m, mv, now: m.submit(mv, now), "PENDING"),
            (lambda m, mv, now: m.start(mv, now), "IN_PROGRESS"),
            (lambda m, mv, now: m.hold(mv, "x", now), "ON_HOLD"),
            (lambda m, mv, now: m.cancel(mv, "x", now), "CANCELLED"),
            (lambda m, mv, now: m.force_complete(mv, now), "COMPLETED"),
        ],
    )
    def test_error_names_target_status(self, machine, make_movement, now, command, target):
        movement = make_movement(status=S.COMPLETED)
        with pytest.raises(InvalidTransitionError) as exc:
            command(machine, movement, now)
        assert exc.value.details["current_status"] == "COMPLETED"
        assert exc.value.details["target_status"] == target

    def test_release_outside_hold_has_no_target(self, machine, make_movement, now):
        with pytest.raises(InvalidTransitionError) as exc:
            machine.release(make_movement(status=S.IN_PROGRESS), now)
        assert "target_status" not in exc.value.details
