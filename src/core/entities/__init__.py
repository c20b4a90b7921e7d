"""Core domain entities."""

from src.core.entities.movement import (
    LineStatus,
    Movement,
    MovementEvent,
    MovementLine,
    MovementPriority,
    MovementStatus,
    MovementTask,
    MovementType,
    TaskStatus,
    TaskType,
    as_utc,
    new_id,
    utc_now,
)

__all__ = [
    # Movement aggregate
    "Movement",
    "MovementLine",
    "MovementTask",
    "MovementEvent",
    # Status and kind enums
    "MovementType",
    "MovementStatus",
    "MovementPriority",
    "LineStatus",
    "TaskStatus",
    "TaskType",
    # Helpers
    "as_utc",
    "new_id",
    "utc_now",
]
