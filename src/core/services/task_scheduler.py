"""
Movement task scheduler.

Owns the task lifecycle (PENDING → ASSIGNED → IN_PROGRESS → COMPLETED, with
CANCELLED reachable from any non-terminal state), overdue detection and the
priority ordering used for assignment.
"""

from datetime import UTC, datetime

from src.config import get_logger
from src.core.entities.movement import MovementTask, TaskStatus
from src.core.exceptions import (
    AlreadyTerminalError,
    InvalidTransitionError,
    TaskAlreadyAssignedError,
    TaskNotAssignedError,
    ValidationError,
)
from src.core.services.outcome import Effect, Outcome, make_event

logger = get_logger(__name__)

_FAR_FUTURE = datetime.max.replace(tzinfo=UTC)


def priority_key(task: MovementTask) -> tuple:
    """Higher priority first, then earliest deadline, then creation order."""
    return (
        -task.priority,
        task.expected_completion_time or _FAR_FUTURE,
        task.created_at,
        task.sequence,
    )


class MovementTaskScheduler:
    """Pure task state machine. Mutates the task it is given."""

    def _event(
        self,
        task: MovementTask,
        action: str,
        previous: TaskStatus,
        now: datetime,
        actor_id: str | None,
        reason: str | None = None,
        **details: object,
    ):
        return make_event(
            task.movement_id or "",
            "task",
            task.id,
            action,
            previous.value,
            task.status.value,
            now,
            actor_id=actor_id,
            reason=reason,
            **details,
        )

    def assign(
        self,
        task: MovementTask,
        user_id: str,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """Bind a PENDING task to a user.

        The caller must persist the result through a compare-and-set claim so
        that concurrent assigners cannot both succeed.
        """
        if task.assigned_user_id:
            raise TaskAlreadyAssignedError(task.id, task.assigned_user_id)
        if task.status != TaskStatus.PENDING:
            raise InvalidTransitionError(
                "task", task.id, task.status.value, "assign", TaskStatus.ASSIGNED.value
            )
        if not user_id or not user_id.strip():
            raise ValidationError("user_id", "An assignee is required")

        previous = task.status
        task.assigned_user_id = user_id
        task.status = TaskStatus.ASSIGNED
        task.updated_at = now

        logger.info("task_assigned", task_id=task.id, user_id=user_id)
        return Outcome(
            events=[self._event(task, "assign", previous, now, actor_id, user_id=user_id)],
            effects={Effect.CLAIM_TASK},
        )

    def unassign(
        self,
        task: MovementTask,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """Return an ASSIGNED task to the pool."""
        if task.status != TaskStatus.ASSIGNED:
            raise InvalidTransitionError(
                "task", task.id, task.status.value, "unassign", TaskStatus.PENDING.value
            )

        previous = task.status
        former = task.assigned_user_id
        task.assigned_user_id = None
        task.status = TaskStatus.PENDING
        task.updated_at = now

        logger.info("task_unassigned", task_id=task.id, user_id=former)
        return Outcome(
            events=[self._event(task, "unassign", previous, now, actor_id, user_id=former)]
        )

    def start(
        self,
        task: MovementTask,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        if task.status != TaskStatus.ASSIGNED:
            raise TaskNotAssignedError(task.id, task.status.value)

        previous = task.status
        task.status = TaskStatus.IN_PROGRESS
        task.actual_start_time = now
        task.updated_at = now

        logger.info("task_started", task_id=task.id)
        return Outcome(events=[self._event(task, "start", previous, now, actor_id)])

    def complete(
        self,
        task: MovementTask,
        now: datetime,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> Outcome:
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                "task", task.id, task.status.value, "complete", TaskStatus.COMPLETED.value
            )

        previous = task.status
        task.status = TaskStatus.COMPLETED
        task.actual_completion_time = now
        if notes:
            task.notes = f"{task.notes}\n{notes}" if task.notes else notes
        task.updated_at = now

        logger.info("task_completed", task_id=task.id, duration_minutes=task.duration_minutes)
        return Outcome(
            events=[self._event(task, "complete", previous, now, actor_id)],
            effects={Effect.RECONCILE},
        )

    def cancel(
        self,
        task: MovementTask,
        reason: str | None,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """Cancel from any non-terminal state; the reason is appended to notes."""
        if task.status.is_terminal:
            raise AlreadyTerminalError("task", task.id, task.status.value)

        previous = task.status
        task.status = TaskStatus.CANCELLED
        if reason:
            line = f"Cancellation reason: {reason}"
            task.notes = f"{task.notes}\n{line}" if task.notes else line
        task.updated_at = now

        logger.info("task_cancelled", task_id=task.id, from_status=previous.value)
        return Outcome(
            events=[self._event(task, "cancel", previous, now, actor_id, reason=reason)],
            effects={Effect.RECONCILE},
        )

    def is_overdue(self, task: MovementTask, now: datetime) -> bool:
        return task.is_overdue(now)

    def overdue(self, tasks: list[MovementTask], now: datetime) -> list[MovementTask]:
        return sorted((t for t in tasks if t.is_overdue(now)), key=priority_key)

    def order(self, tasks: list[MovementTask]) -> list[MovementTask]:
        """Sort tasks into assignment order."""
        return sorted(tasks, key=priority_key)

    def plan_assignments(
        self,
        tasks: list[MovementTask],
        user_ids: list[str],
    ) -> list[tuple[MovementTask, str]]:
        """Distribute unassigned PENDING tasks round-robin over users.

        Tasks are taken in priority order, so the most urgent work lands first.
        """
        users = [u for u in user_ids if u and u.strip()]
        if not users:
            raise ValidationError("user_ids", "At least one user is required")

        candidates = [
            t for t in tasks if t.status == TaskStatus.PENDING and not t.assigned_user_id
        ]
        return [
            (task, users[i % len(users)])
            for i, task in enumerate(self.order(candidates))
        ]
