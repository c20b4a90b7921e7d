"""
Movement line engine.

Owns per-line status transitions and actual-quantity recording. Lines move
strictly forward through PENDING → ALLOCATED → PICKED → IN_TRANSIT →
COMPLETED, may skip intermediate states, and may be CANCELLED from any
non-terminal state.
"""

import math
from datetime import datetime

from src.config import get_logger
from src.core.entities.movement import LineStatus, MovementLine
from src.core.exceptions import (
    AlreadyTerminalError,
    InvalidTransitionError,
    QuantityAlreadySetError,
    QuantityOutOfRangeError,
    ValidationError,
)
from src.core.services.outcome import Effect, Outcome, make_event

logger = get_logger(__name__)


class MovementLineEngine:
    """Pure per-line state machine. Mutates the line it is given."""

    def can_advance(self, current: LineStatus, target: LineStatus) -> bool:
        """Forward-only ordering; terminal lines never move again."""
        if current.is_terminal:
            return False
        return target.rank > current.rank

    def advance(
        self,
        line: MovementLine,
        target: LineStatus,
        now: datetime,
        actual_quantity: float | None = None,
        actor_id: str | None = None,
    ) -> Outcome:
        """Move a line forward, optionally recording its actual quantity."""
        if not self.can_advance(line.status, target):
            raise InvalidTransitionError(
                "line", line.id, line.status.value, "advance", target.value
            )

        if actual_quantity is not None:
            if line.actual_quantity is not None:
                raise QuantityAlreadySetError(line.id, line.actual_quantity)
            if actual_quantity < 0 or math.isnan(actual_quantity):
                raise QuantityOutOfRangeError(line.id, actual_quantity)

        previous = line.status
        line.status = target
        if actual_quantity is not None:
            line.actual_quantity = actual_quantity
        line.updated_at = now

        outcome = Outcome(
            events=[
                make_event(
                    line.movement_id or "",
                    "line",
                    line.id,
                    "advance",
                    previous.value,
                    target.value,
                    now,
                    actor_id=actor_id,
                    line_number=line.line_number,
                    actual_quantity=actual_quantity,
                )
            ]
        )
        if target.is_terminal:
            outcome.effects.add(Effect.RECONCILE)

        logger.info(
            "line_advanced",
            line_id=line.id,
            from_status=previous.value,
            to_status=target.value,
            actual_quantity=actual_quantity,
        )
        return outcome

    def cancel(
        self,
        line: MovementLine,
        reason: str,
        now: datetime,
        actor_id: str | None = None,
    ) -> Outcome:
        """Cancel a line from any non-terminal state."""
        if line.status.is_terminal:
            raise AlreadyTerminalError("line", line.id, line.status.value)
        if not reason or not reason.strip():
            raise ValidationError("reason", "A cancellation reason is required")

        previous = line.status
        line.status = LineStatus.CANCELLED
        line.reason = reason
        line.updated_at = now

        logger.info("line_cancelled", line_id=line.id, from_status=previous.value)
        return Outcome(
            events=[
                make_event(
                    line.movement_id or "",
                    "line",
                    line.id,
                    "cancel",
                    previous.value,
                    LineStatus.CANCELLED.value,
                    now,
                    actor_id=actor_id,
                    reason=reason,
                    line_number=line.line_number,
                )
            ],
            effects={Effect.RECONCILE},
        )
