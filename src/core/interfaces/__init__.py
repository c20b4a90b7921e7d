"""Core interfaces (ports) for dependency injection."""

from src.core.interfaces.clock import IClock, SystemClock
from src.core.interfaces.directory import IReferenceDirectory, ReferenceKind
from src.core.interfaces.movement_store import (
    IMovementStore,
    LineFilter,
    MovementFilter,
    TaskFilter,
)

__all__ = [
    # Clock
    "IClock",
    "SystemClock",
    # Reference directory
    "IReferenceDirectory",
    "ReferenceKind",
    # Movement storage
    "IMovementStore",
    "MovementFilter",
    "TaskFilter",
    "LineFilter",
]
