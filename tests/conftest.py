"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from src.core.entities.movement import (
    LineStatus,
    Movement,
    MovementLine,
    MovementStatus,
    MovementTask,
    MovementType,
    TaskStatus,
    TaskType,
)
from src.core.interfaces.clock import IClock

T0 = datetime(2024, 6, 3, 9, 0, tzinfo=UTC)


class FixedClock(IClock):
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def now() -> datetime:
    return T0


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def make_movement() -> Callable[..., Movement]:
    """Build an in-memory movement with numbered lines and optional tasks."""

    def _make(
        status: MovementStatus = MovementStatus.IN_PROGRESS,
        lines: int | list[LineStatus] = 2,
        tasks: int | list[TaskStatus] = 0,
        **fields,
    ) -> Movement:
        movement = Movement(
            type=fields.pop("type", MovementType.TRANSFER),
            warehouse_id=fields.pop("warehouse_id", "WH-1"),
            status=status,
            created_at=T0,
            updated_at=T0,
            **fields,
        )
        line_statuses = [LineStatus.PENDING] * lines if isinstance(lines, int) else lines
        movement.lines = [
            MovementLine(
                movement_id=movement.id,
                line_number=i,
                item_id=f"ITEM-{i}",
                requested_quantity=10.0,
                status=line_status,
                created_at=T0,
                updated_at=T0,
            )
            for i, line_status in enumerate(line_statuses, start=1)
        ]
        task_statuses = [TaskStatus.PENDING] * tasks if isinstance(tasks, int) else tasks
        movement.tasks = [
            MovementTask(
                movement_id=movement.id,
                task_type=TaskType.PICK,
                status=task_status,
                assigned_user_id=(
                    "user-a" if task_status in (TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS) else None
                ),
                sequence=i,
                created_at=T0,
                updated_at=T0,
            )
            for i, task_status in enumerate(task_statuses, start=1)
        ]
        return movement

    return _make


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> MagicMock:
    """Settings mock pointing the connection pool at a temp database."""
    mock = MagicMock()
    mock.storage.db_path = tmp_path / "test.db"
    mock.storage.pool_size = 2
    mock.storage.busy_timeout = 5000
    return mock


@pytest.fixture
async def migrated_db(sqlite_settings: MagicMock) -> AsyncGenerator[Path, None]:
    """Temp database with every migration applied and the pool bound to it."""
    import src.infrastructure.storage.sqlite.connection as conn_module
    from src.infrastructure.storage.sqlite.migrations.migrator import initialize_database

    db_path = sqlite_settings.storage.db_path
    results = await initialize_database(db_path, create_backup_before=False)
    assert all(r.success for r in results)

    conn_module._pool = None
    with patch.object(conn_module, "get_settings", return_value=sqlite_settings):
        try:
            yield db_path
        finally:
            await conn_module.close_pool()
