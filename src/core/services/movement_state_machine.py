"""
Movement state machine.

Encodes the movement lifecycle graph and the commands that drive it:

    DRAFT ─► PENDING ─► IN_PROGRESS ─► PARTIALLY_COMPLETED ─► COMPLETED
      │        │  ▲         │  ▲              │
      │        ▼  │         ▼  │              │
      │       ON_HOLD ◄─────┘  │              │
      └────────┴───────┴───────┴──────────────┴─► CANCELLED

ON_HOLD remembers the state it was entered from and release restores it.
Cancellation cascades to every unresolved line and open task.
"""

from datetime import datetime

from src.config import get_logger
from src.core.entities.movement import Movement, MovementStatus
from src.core.exceptions import (
    EmptyMovementError,
    InvalidTransitionError,
    ValidationError,
)
from src.core.services.line_engine import MovementLineEngine
from src.core.services.outcome import Effect, Outcome, make_event
from src.core.services.task_scheduler import MovementTaskScheduler

logger = get_logger(__name__)

S = MovementStatus

ALLOWED_TRANSITIONS: dict[MovementStatus, frozenset[MovementStatus]] = {
    S.DRAFT: frozenset({S.PENDING, S.CANCELLED}),
    S.PENDING: frozenset({S.IN_PROGRESS, S.ON_HOLD, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.PARTIALLY_COMPLETED, S.COMPLETED, S.ON_HOLD, S.CANCELLED}),
    S.PARTIALLY_COMPLETED: frozenset({S.COMPLETED, S.CANCELLED}),
    S.ON_HOLD: frozenset({S.PENDING, S.IN_PROGRESS, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

FORCE_COMPLETE_REASON = "force completed"


class MovementStateMachine:
    """Pure movement lifecycle. Mutates the movement it is given."""

    def __init__(
        self,
        line_engine: MovementLineEngine | None = None,
        task_scheduler: MovementTaskScheduler | None = None,
    ):
        self.line_engine = line_engine or MovementLineEngine()
        self.task_scheduler = task_scheduler or MovementTaskScheduler()

    @staticmethod
    def can_transition(current: MovementStatus, target: MovementStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[current]

    def transition(
        self,
        movement: Movement,
        target: MovementStatus,
        action: str,
        now: datetime,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> Outcome:
        """Apply one edge of the graph and record it."""
        if not self.can_transition(movement.status, target):
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, action, target.value
            )

        previous = movement.status
        movement.status = target
        movement.updated_at = now
        if target == S.COMPLETED:
            movement.completed_at = now
            movement.completed_by = actor_id
            movement.actual_date = now

        logger.info(
            "movement_transitioned",
            movement_id=movement.id,
            action=action,
            from_status=previous.value,
            to_status=target.value,
        )
        return Outcome(
            events=[
                make_event(
                    movement.id,
                    "movement",
                    movement.id,
                    action,
                    previous.value,
                    target.value,
                    now,
                    actor_id=actor_id,
                    reason=reason,
                )
            ]
        )

    # Guards

    def ensure_editable(self, movement: Movement, attempted: str) -> None:
        """Header and line-set edits are only allowed before activation."""
        if not movement.status.is_editable:
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, attempted
            )

    def ensure_open(
        self, movement: Movement, attempted: str, target: MovementStatus | None = None
    ) -> None:
        if movement.status.is_terminal:
            raise InvalidTransitionError(
                "movement",
                movement.id,
                movement.status.value,
                attempted,
                target.value if target else None,
            )

    def ensure_executing(self, movement: Movement, attempted: str) -> None:
        """Line progress requires an active movement, or one held while active."""
        executing = movement.status == S.IN_PROGRESS or (
            movement.status == S.ON_HOLD and movement.hold_previous_status == S.IN_PROGRESS
        )
        if not executing:
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, attempted
            )

    # Commands

    def submit(
        self, movement: Movement, now: datetime, actor_id: str | None = None
    ) -> Outcome:
        """DRAFT → PENDING."""
        if movement.status != S.DRAFT:
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, "submit", S.PENDING.value
            )
        return self.transition(movement, S.PENDING, "submit", now, actor_id)

    def start(
        self, movement: Movement, now: datetime, actor_id: str | None = None
    ) -> Outcome:
        """DRAFT|PENDING → IN_PROGRESS. A DRAFT passes through PENDING."""
        if movement.status not in (S.DRAFT, S.PENDING):
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, "start", S.IN_PROGRESS.value
            )
        if not movement.lines:
            raise EmptyMovementError(movement.id)

        outcome = Outcome()
        if movement.status == S.DRAFT:
            outcome.merge(self.transition(movement, S.PENDING, "submit", now, actor_id))
        return outcome.merge(
            self.transition(movement, S.IN_PROGRESS, "start", now, actor_id)
        )

    def hold(
        self,
        movement: Movement,
        reason: str | None,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """PENDING|IN_PROGRESS → ON_HOLD, remembering where it came from."""
        if movement.status not in (S.PENDING, S.IN_PROGRESS):
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, "hold", S.ON_HOLD.value
            )
        previous = movement.status
        outcome = self.transition(movement, S.ON_HOLD, "hold", now, actor_id, reason)
        movement.hold_previous_status = previous
        if reason:
            movement.reason = reason
        return outcome

    def release(
        self, movement: Movement, now: datetime, actor_id: str | None = None
    ) -> Outcome:
        """ON_HOLD → the state held from. Work done while held may now resolve it."""
        if movement.status != S.ON_HOLD:
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, "release"
            )
        target = movement.hold_previous_status or S.PENDING
        outcome = self.transition(movement, target, "release", now, actor_id)
        movement.hold_previous_status = None
        outcome.effects.add(Effect.RECONCILE)
        return outcome

    def cancel(
        self,
        movement: Movement,
        reason: str,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """Any non-terminal → CANCELLED, cascading to lines and tasks."""
        if not reason or not reason.strip():
            raise ValidationError("reason", "A cancellation reason is required")
        self.ensure_open(movement, "cancel", S.CANCELLED)

        outcome = self._cancel_children(movement, reason, now, actor_id)
        outcome.merge(self.transition(movement, S.CANCELLED, "cancel", now, actor_id, reason))
        movement.hold_previous_status = None
        movement.reason = reason
        return outcome

    def force_complete(
        self,
        movement: Movement,
        now: datetime,
        actor_id: str | None = None,
        allow_unresolved: bool = False,
    ) -> Outcome:
        """Explicit completion.

        PARTIALLY_COMPLETED always closes. IN_PROGRESS closes only when
        allow_unresolved is set, in which case unresolved lines and open tasks
        are cancelled first.
        """
        if movement.status == S.PARTIALLY_COMPLETED:
            outcome = self._cancel_open_tasks(movement, FORCE_COMPLETE_REASON, now, actor_id)
        elif movement.status == S.IN_PROGRESS and allow_unresolved:
            outcome = self._cancel_children(movement, FORCE_COMPLETE_REASON, now, actor_id)
        else:
            raise InvalidTransitionError(
                "movement", movement.id, movement.status.value, "complete", S.COMPLETED.value
            )

        outcome.merge(
            self.transition(
                movement, S.COMPLETED, "force_complete", now, actor_id, FORCE_COMPLETE_REASON
            )
        )
        outcome.effects.add(Effect.RECONCILE)
        return outcome

    def _cancel_children(
        self,
        movement: Movement,
        reason: str,
        now: datetime,
        actor_id: str | None,
    ) -> Outcome:
        outcome = Outcome()
        for line in movement.lines:
            if not line.status.is_terminal:
                outcome.merge(self.line_engine.cancel(line, reason, now, actor_id))
        outcome.merge(self._cancel_open_tasks(movement, reason, now, actor_id))
        # Child cancellations are part of this command, not a reason to reconcile
        outcome.effects.discard(Effect.RECONCILE)
        return outcome

    def _cancel_open_tasks(
        self,
        movement: Movement,
        reason: str,
        now: datetime,
        actor_id: str | None,
    ) -> Outcome:
        outcome = Outcome()
        for task in movement.tasks:
            if not task.status.is_terminal:
                outcome.merge(self.task_scheduler.cancel(task, reason, now, actor_id))
        outcome.effects.discard(Effect.RECONCILE)
        return outcome
