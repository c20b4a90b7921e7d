"""Result type shared by the orchestration engines."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.core.entities.movement import MovementEvent


class Effect(str, Enum):
    """Follow-up work an engine asks the caller to perform."""

    RECONCILE = "reconcile"  # movement may now auto-complete
    CLAIM_TASK = "claim_task"  # assignment must win the task compare-and-set


@dataclass
class Outcome:
    """Audit events produced by a transition plus requested side effects."""

    events: list[MovementEvent] = field(default_factory=list)
    effects: set[Effect] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.events)

    def merge(self, other: "Outcome") -> "Outcome":
        self.events.extend(other.events)
        self.effects |= other.effects
        return self


def make_event(
    movement_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    from_status: str | None,
    to_status: str | None,
    now: datetime,
    actor_id: str | None = None,
    reason: str | None = None,
    **details: object,
) -> MovementEvent:
    """Build an audit event for one state change."""
    return MovementEvent(
        movement_id=movement_id,
        entity_type=entity_type,  # type: ignore[arg-type]
        entity_id=entity_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        reason=reason,
        details=dict(details),
        occurred_at=now,
    )
