"""Abstract interface for movement aggregate storage."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from src.core.entities.movement import (
    LineStatus,
    Movement,
    MovementEvent,
    MovementLine,
    MovementStatus,
    MovementTask,
    MovementType,
    TaskStatus,
)


@dataclass
class MovementFilter:
    """Criteria for listing movements."""

    warehouse_id: str | None = None
    status: MovementStatus | None = None
    type: MovementType | None = None
    created_by: str | None = None
    search: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass
class TaskFilter:
    """Criteria for listing tasks."""

    movement_id: str | None = None
    assigned_user_id: str | None = None
    status: TaskStatus | None = None
    unassigned_only: bool = False
    warehouse_id: str | None = None
    scheduled_from: datetime | None = None
    scheduled_to: datetime | None = None


@dataclass
class LineFilter:
    """Criteria for listing lines."""

    movement_id: str | None = None
    item_id: str | None = None
    status: LineStatus | None = None
    with_variance: bool = False
    short_picked: bool = False


class IMovementStore(ABC):
    """Persistence port for the Movement aggregate.

    The aggregate (movement, lines, tasks) is the unit of consistency: every
    write goes through save_movement, which checks and increments the version
    counter atomically with the child rows and audit events.
    """

    @abstractmethod
    async def create_movement(
        self, movement: Movement, events: list[MovementEvent] | None = None
    ) -> Movement:
        """Insert a new aggregate; raises DuplicateReferenceNumberError."""
        pass

    @abstractmethod
    async def get_movement(self, movement_id: str) -> Movement | None:
        """Load the full aggregate by ID."""
        pass

    @abstractmethod
    async def get_movement_by_reference(self, reference_number: str) -> Movement | None:
        """Load the full aggregate by reference number."""
        pass

    @abstractmethod
    async def reference_number_taken(
        self, reference_number: str, exclude_movement_id: str | None = None
    ) -> bool:
        """Check whether another movement already uses the reference number."""
        pass

    @abstractmethod
    async def find_movement_id_for_line(self, line_id: str) -> str | None:
        """Resolve the parent movement of a line."""
        pass

    @abstractmethod
    async def find_movement_id_for_task(self, task_id: str) -> str | None:
        """Resolve the parent movement of a task."""
        pass

    @abstractmethod
    async def save_movement(
        self,
        movement: Movement,
        expected_version: int,
        events: list[MovementEvent] | None = None,
    ) -> Movement:
        """Persist the aggregate if its stored version still equals expected_version.

        Raises ConcurrentModificationError on mismatch. Returns the movement
        with its incremented version.
        """
        pass

    @abstractmethod
    async def claim_task(
        self,
        task: MovementTask,
        events: list[MovementEvent] | None = None,
    ) -> bool:
        """Compare-and-set assignment of a PENDING, unassigned task.

        Writes the task's new assignee and status only if the stored row is
        still PENDING with no assignee. Returns False when another caller won.
        """
        pass

    @abstractmethod
    async def delete_movement(self, movement_id: str) -> bool:
        """Delete the aggregate and its children."""
        pass

    @abstractmethod
    async def list_movements(
        self,
        criteria: MovementFilter | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Movement], int]:
        """List movement headers (no children) and the total match count."""
        pass

    @abstractmethod
    async def list_overdue_movements(self, now: datetime) -> list[Movement]:
        """Non-terminal movements whose expected date has passed."""
        pass

    @abstractmethod
    async def count_by_status(self, warehouse_id: str | None = None) -> dict[str, int]:
        """Movement counts grouped by status."""
        pass

    @abstractmethod
    async def count_by_type(
        self,
        warehouse_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, int]:
        """Movement counts grouped by type, filtered on movement_date."""
        pass

    @abstractmethod
    async def list_lines(
        self,
        criteria: LineFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[MovementLine], int]:
        """List lines across movements and the total match count."""
        pass

    @abstractmethod
    async def list_tasks(
        self,
        criteria: TaskFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[MovementTask], int]:
        """List tasks in assignment priority order and the total match count."""
        pass

    @abstractmethod
    async def list_open_tasks_due_before(self, now: datetime) -> list[MovementTask]:
        """Open tasks whose expected completion time has passed."""
        pass

    @abstractmethod
    async def get_events(self, movement_id: str) -> list[MovementEvent]:
        """Audit trail for a movement, oldest first."""
        pass
