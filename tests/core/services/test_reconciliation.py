"""Tests for the reconciliation engine."""

from datetime import timedelta

import pytest

from src.core.entities.movement import LineStatus, MovementStatus, TaskStatus
from src.core.services import ReconciliationEngine

L = LineStatus
S = MovementStatus


@pytest.fixture
def engine() -> ReconciliationEngine:
    return ReconciliationEngine()


class TestDeriveStatus:
    @pytest.mark.parametrize(
        "lines, expected",
        [
            ([L.COMPLETED, L.COMPLETED], S.COMPLETED),
            ([L.COMPLETED, L.CANCELLED], S.PARTIALLY_COMPLETED),
            ([L.CANCELLED, L.CANCELLED], S.CANCELLED),
            ([L.COMPLETED, L.PICKED], None),
            ([], None),
        ],
    )
    def test_derivation(self, engine, make_movement, lines, expected):
        assert engine.derive_status(make_movement(lines=lines)) == expected


class TestReconcile:
    def test_all_completed_completes(self, engine, make_movement, now):
        movement = make_movement(lines=[L.COMPLETED, L.COMPLETED])
        outcome = engine.reconcile(movement, now, actor_id="u1")
        assert movement.status == S.COMPLETED
        assert movement.completed_at == now
        assert movement.completed_by == "u1"
        assert outcome.events[0].action == "reconcile"
        assert not outcome.effects

    def test_partial(self, engine, make_movement, now):
        movement = make_movement(lines=[L.COMPLETED, L.CANCELLED])
        engine.reconcile(movement, now)
        assert movement.status == S.PARTIALLY_COMPLETED

    def test_terminal_derivation_cancels_open_tasks(self, engine, make_movement, now):
        movement = make_movement(
            lines=[L.CANCELLED],
            tasks=[TaskStatus.PENDING, TaskStatus.COMPLETED],
        )
        engine.reconcile(movement, now)
        assert movement.status == S.CANCELLED
        assert movement.tasks[0].status == TaskStatus.CANCELLED
        assert "movement cancelled" in movement.tasks[0].notes
        assert movement.tasks[1].status == TaskStatus.COMPLETED

    def test_partial_keeps_open_tasks(self, engine, make_movement, now):
        movement = make_movement(lines=[L.COMPLETED, L.CANCELLED], tasks=[TaskStatus.ASSIGNED])
        engine.reconcile(movement, now)
        assert movement.tasks[0].status == TaskStatus.ASSIGNED

    def test_idempotent(self, engine, make_movement, now):
        movement = make_movement(lines=[L.COMPLETED, L.COMPLETED])
        engine.reconcile(movement, now)
        snapshot = movement.model_dump()

        second = engine.reconcile(movement, now + timedelta(minutes=5))
        assert not second.changed
        assert movement.model_dump() == snapshot

    def test_unresolved_lines_leave_status(self, engine, make_movement, now):
        movement = make_movement(lines=[L.COMPLETED, L.PICKED])
        assert not engine.reconcile(movement, now).changed
        assert movement.status == S.IN_PROGRESS

    @pytest.mark.parametrize("frozen", [S.ON_HOLD, S.COMPLETED, S.CANCELLED])
    def test_frozen_statuses_untouched(self, engine, make_movement, now, frozen):
        movement = make_movement(status=frozen, lines=[L.COMPLETED])
        assert not engine.reconcile(movement, now).changed
        assert movement.status == frozen

    def test_disallowed_edge_skipped(self, engine, make_movement, now):
        # PENDING cannot jump to PARTIALLY_COMPLETED
        movement = make_movement(status=S.PENDING, lines=[L.COMPLETED, L.CANCELLED])
        assert not engine.reconcile(movement, now).changed
        assert movement.status == S.PENDING

    def test_pending_with_all_lines_cancelled_cancels(self, engine, make_movement, now):
        movement = make_movement(status=S.PENDING, lines=[L.CANCELLED])
        engine.reconcile(movement, now)
        assert movement.status == S.CANCELLED

    def test_partially_completed_moves_to_completed(self, engine, make_movement, now):
        movement = make_movement(status=S.PARTIALLY_COMPLETED, lines=[L.COMPLETED])
        engine.reconcile(movement, now)
        assert movement.status == S.COMPLETED


class TestProgress:
    def test_counts(self, engine, make_movement, now):
        movement = make_movement(
            lines=[L.COMPLETED, L.CANCELLED, L.PICKED, L.PENDING],
            tasks=[TaskStatus.COMPLETED, TaskStatus.PENDING],
        )
        movement.lines[0].actual_quantity = 9
        movement.tasks[1].expected_completion_time = now - timedelta(hours=1)

        progress = engine.progress(movement, now)
        assert progress.total_lines == 4
        assert progress.completed_lines == 1
        assert progress.cancelled_lines == 1
        assert progress.resolved_lines == 2
        assert progress.progress_percent == 25.0
        assert not progress.all_resolved
        assert progress.total_tasks == 2
        assert progress.completed_tasks == 1
        assert progress.open_tasks == 1
        assert progress.overdue_tasks == 1
        assert progress.total_requested == 40
        assert progress.total_actual == 9

    def test_empty_movement(self, engine, make_movement, now):
        progress = engine.progress(make_movement(lines=0), now)
        assert progress.progress_percent == 0.0
        assert not progress.all_resolved

    def test_cancelled_lines_resolve_but_do_not_progress(self, engine, make_movement, now):
        progress = engine.progress(make_movement(lines=[L.CANCELLED, L.CANCELLED]), now)
        assert progress.progress_percent == 0.0
        assert progress.all_resolved
