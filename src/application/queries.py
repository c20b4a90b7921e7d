"""
Movement query service.

Read paths never take the write lock and may observe an aggregate that a
concurrent command is about to replace. Derived values (overdue, progress)
are recomputed from what was read.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta

from src.config import get_logger
from src.core.entities.movement import (
    Movement,
    MovementEvent,
    MovementLine,
    MovementStatus,
    MovementTask,
    MovementType,
)
from src.core.exceptions import (
    MovementLineNotFoundError,
    MovementNotFoundError,
    MovementTaskNotFoundError,
    ValidationError,
)
from src.core.interfaces.clock import IClock, SystemClock
from src.core.interfaces.movement_store import (
    IMovementStore,
    LineFilter,
    MovementFilter,
    TaskFilter,
)
from src.core.services.reconciliation import MovementProgress, ReconciliationEngine
from src.core.services.task_scheduler import priority_key

logger = get_logger(__name__)


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@dataclass
class Page:
    """One page of results plus the total match count."""

    items: list
    total: int
    page: int
    size: int


@dataclass
class MovementStatistics:
    warehouse_id: str | None
    by_status: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.by_status.values())


@dataclass
class TypeStatistics:
    """Movement counts per type over an optional movement_date window."""

    warehouse_id: str | None
    start_date: datetime | None
    end_date: datetime | None
    by_type: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.by_type.values())


class MovementQueryService:
    """Read-only access to movements, lines, tasks and their derived values."""

    def __init__(
        self,
        store: IMovementStore,
        clock: IClock | None = None,
        reconciler: ReconciliationEngine | None = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.reconciler = reconciler or ReconciliationEngine()

    def now(self) -> datetime:
        return self.clock.now()

    # Movements

    async def get_movement(self, movement_id: str) -> Movement:
        movement = await self.store.get_movement(movement_id)
        if movement is None:
            raise MovementNotFoundError(movement_id)
        return movement

    async def get_by_reference(self, reference_number: str) -> Movement:
        movement = await self.store.get_movement_by_reference(reference_number)
        if movement is None:
            raise MovementNotFoundError(reference_number)
        return movement

    async def list_movements(
        self, criteria: MovementFilter, page: int = 0, size: int = 20
    ) -> Page:
        items, total = await self.store.list_movements(criteria, limit=size, offset=page * size)
        return Page(items=items, total=total, page=page, size=size)

    async def overdue_movements(self) -> list[Movement]:
        return await self.store.list_overdue_movements(self.now())

    async def progress(
        self, movement_id: str
    ) -> tuple[MovementProgress, MovementStatus | None]:
        """Progress summary and the status the lines currently imply."""
        movement = await self.get_movement(movement_id)
        return (
            self.reconciler.progress(movement, self.now()),
            self.reconciler.derive_status(movement),
        )

    async def history(self, movement_id: str) -> list[MovementEvent]:
        await self.get_movement(movement_id)
        return await self.store.get_events(movement_id)

    async def statistics(self, warehouse_id: str | None = None) -> MovementStatistics:
        counts = await self.store.count_by_status(warehouse_id)
        return MovementStatistics(
            warehouse_id=warehouse_id,
            by_status={status.value: counts.get(status.value, 0) for status in MovementStatus},
        )

    async def statistics_by_type(
        self,
        warehouse_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> TypeStatistics:
        if start_date and end_date and _utc(start_date) > _utc(end_date):
            raise ValidationError("start_date", "Must not be after end_date", start_date)
        counts = await self.store.count_by_type(warehouse_id, start_date, end_date)
        return TypeStatistics(
            warehouse_id=warehouse_id,
            start_date=start_date,
            end_date=end_date,
            by_type={kind.value: counts.get(kind.value, 0) for kind in MovementType},
        )

    # Lines

    async def get_line(self, line_id: str) -> MovementLine:
        movement_id = await self.store.find_movement_id_for_line(line_id)
        movement = await self.store.get_movement(movement_id) if movement_id else None
        line = movement.get_line(line_id) if movement else None
        if line is None:
            raise MovementLineNotFoundError(line_id)
        return line

    async def list_lines(self, criteria: LineFilter, page: int = 0, size: int = 20) -> Page:
        items, total = await self.store.list_lines(criteria, limit=size, offset=page * size)
        return Page(items=items, total=total, page=page, size=size)

    async def variance_lines(self, page: int = 0, size: int = 20) -> Page:
        return await self.list_lines(LineFilter(with_variance=True), page, size)

    async def short_picked_lines(self, page: int = 0, size: int = 20) -> Page:
        """Lines whose recorded actual quantity fell short of the request."""
        return await self.list_lines(LineFilter(short_picked=True), page, size)

    # Tasks

    async def get_task(self, task_id: str) -> MovementTask:
        movement_id = await self.store.find_movement_id_for_task(task_id)
        movement = await self.store.get_movement(movement_id) if movement_id else None
        task = movement.get_task(task_id) if movement else None
        if task is None:
            raise MovementTaskNotFoundError(task_id)
        return task

    async def list_tasks(self, criteria: TaskFilter, page: int = 0, size: int = 20) -> Page:
        items, total = await self.store.list_tasks(criteria, limit=size, offset=page * size)
        return Page(items=items, total=total, page=page, size=size)

    async def unassigned_tasks(
        self, warehouse_id: str | None = None, page: int = 0, size: int = 20
    ) -> Page:
        """Unassigned PENDING tasks in assignment order."""
        return await self.list_tasks(
            TaskFilter(unassigned_only=True, warehouse_id=warehouse_id), page, size
        )

    async def overdue_tasks(self) -> list[MovementTask]:
        now = self.now()
        tasks = await self.store.list_open_tasks_due_before(now)
        return sorted((t for t in tasks if t.is_overdue(now)), key=priority_key)

    def _today(self) -> tuple[datetime, datetime]:
        now = self.now()
        start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        return start, start + timedelta(days=1)

    async def scheduled_today(
        self, warehouse_id: str | None = None, page: int = 0, size: int = 100
    ) -> Page:
        start, end = self._today()
        return await self.list_tasks(
            TaskFilter(warehouse_id=warehouse_id, scheduled_from=start, scheduled_to=end),
            page,
            size,
        )

    async def my_tasks_today(self, user_id: str, page: int = 0, size: int = 100) -> Page:
        start, end = self._today()
        return await self.list_tasks(
            TaskFilter(assigned_user_id=user_id, scheduled_from=start, scheduled_to=end),
            page,
            size,
        )
