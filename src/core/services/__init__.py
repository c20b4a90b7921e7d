"""
Core business logic services.

Layer-pure services that depend only on:
- src/core/entities/*
- src/core/interfaces/*
- src/core/exceptions.py

NO infrastructure imports. Engines are synchronous and mutate the aggregate
they are handed; persistence is the caller's job.
"""

from src.core.services.line_engine import MovementLineEngine
from src.core.services.movement_state_machine import (
    ALLOWED_TRANSITIONS,
    FORCE_COMPLETE_REASON,
    MovementStateMachine,
)
from src.core.services.outcome import Effect, Outcome, make_event
from src.core.services.reconciliation import MovementProgress, ReconciliationEngine
from src.core.services.task_scheduler import MovementTaskScheduler, priority_key

__all__ = [
    # Outcomes
    "Effect",
    "Outcome",
    "make_event",
    # Movement lifecycle
    "MovementStateMachine",
    "ALLOWED_TRANSITIONS",
    "FORCE_COMPLETE_REASON",
    # Lines
    "MovementLineEngine",
    # Tasks
    "MovementTaskScheduler",
    "priority_key",
    # Reconciliation
    "ReconciliationEngine",
    "MovementProgress",
]
