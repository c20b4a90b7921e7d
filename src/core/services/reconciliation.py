"""
Reconciliation engine.

Derives a movement's status from its lines after any line or task change and
computes the progress summary reported to clients. Running it twice on the
same state changes nothing the second time.
"""

from dataclasses import dataclass
from datetime import datetime

from src.config import get_logger
from src.core.entities.movement import (
    LineStatus,
    Movement,
    MovementStatus,
    TaskStatus,
)
from src.core.services.movement_state_machine import MovementStateMachine
from src.core.services.outcome import Outcome

logger = get_logger(__name__)

# Statuses reconciliation never moves a movement out of
_FROZEN = (MovementStatus.ON_HOLD, MovementStatus.COMPLETED, MovementStatus.CANCELLED)


@dataclass
class MovementProgress:
    """Read-side summary of a movement's execution."""

    movement_id: str
    status: MovementStatus
    total_lines: int
    completed_lines: int
    cancelled_lines: int
    resolved_lines: int
    progress_percent: float
    total_tasks: int
    completed_tasks: int
    open_tasks: int
    overdue_tasks: int
    total_requested: float
    total_actual: float

    @property
    def all_resolved(self) -> bool:
        return self.total_lines > 0 and self.resolved_lines == self.total_lines


class ReconciliationEngine:
    """Keeps movement status consistent with its lines."""

    def __init__(self, state_machine: MovementStateMachine | None = None):
        self.state_machine = state_machine or MovementStateMachine()

    def derive_status(self, movement: Movement) -> MovementStatus | None:
        """Status implied by the lines, or None when nothing is implied."""
        if not movement.lines:
            return None
        if any(not line.status.is_terminal for line in movement.lines):
            return None

        completed = sum(1 for line in movement.lines if line.status == LineStatus.COMPLETED)
        if completed == len(movement.lines):
            return MovementStatus.COMPLETED
        if completed == 0:
            return MovementStatus.CANCELLED
        return MovementStatus.PARTIALLY_COMPLETED

    def reconcile(
        self,
        movement: Movement,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """Apply the derived status if the lifecycle graph permits it."""
        if movement.status in _FROZEN:
            return Outcome()

        derived = self.derive_status(movement)
        if derived is None or derived == movement.status:
            return Outcome()

        if not self.state_machine.can_transition(movement.status, derived):
            logger.warning(
                "reconcile_skipped",
                movement_id=movement.id,
                status=movement.status.value,
                derived=derived.value,
            )
            return Outcome()

        outcome = self.state_machine.transition(
            movement, derived, "reconcile", now, actor_id
        )
        if derived.is_terminal:
            for task in movement.tasks:
                if not task.status.is_terminal:
                    outcome.merge(
                        self.state_machine.task_scheduler.cancel(
                            task, f"movement {derived.value.lower()}", now, actor_id
                        )
                    )
        outcome.effects.clear()

        logger.info(
            "movement_reconciled",
            movement_id=movement.id,
            status=derived.value,
        )
        return outcome

    def progress(self, movement: Movement, now: datetime) -> MovementProgress:
        lines = movement.lines
        completed = sum(1 for line in lines if line.status == LineStatus.COMPLETED)
        cancelled = sum(1 for line in lines if line.status == LineStatus.CANCELLED)
        resolved = completed + cancelled
        percent = round(completed * 100.0 / len(lines), 2) if lines else 0.0

        tasks = movement.tasks
        return MovementProgress(
            movement_id=movement.id,
            status=movement.status,
            total_lines=len(lines),
            completed_lines=completed,
            cancelled_lines=cancelled,
            resolved_lines=resolved,
            progress_percent=percent,
            total_tasks=len(tasks),
            completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
            open_tasks=sum(1 for t in tasks if not t.status.is_terminal),
            overdue_tasks=sum(1 for t in tasks if t.is_overdue(now)),
            total_requested=sum(line.requested_quantity for line in lines),
            total_actual=sum(line.actual_quantity or 0.0 for line in lines),
        )
