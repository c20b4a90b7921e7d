"""SQLite implementation of movement aggregate storage."""

import json
from datetime import UTC, datetime

import aiosqlite

from src.config import get_logger
from src.core.entities.movement import (
    Movement,
    MovementEvent,
    MovementLine,
    MovementTask,
)
from src.core.exceptions import (
    ConcurrentModificationError,
    DuplicateReferenceNumberError,
    MovementNotFoundError,
)
from src.core.interfaces.movement_store import (
    IMovementStore,
    LineFilter,
    MovementFilter,
    TaskFilter,
)
from src.infrastructure.storage.sqlite.connection import get_connection, get_transaction

logger = get_logger(__name__)

_MOVEMENT_COLUMNS = (
    "id", "reference_number", "type", "status", "priority", "movement_date",
    "expected_date", "scheduled_date", "actual_date", "warehouse_id",
    "source_location_id", "destination_location_id", "source_user_id",
    "destination_user_id", "notes", "reason", "hold_previous_status",
    "created_by", "created_at", "updated_at", "completed_by", "completed_at",
    "version",
)

_LINE_COLUMNS = (
    "id", "movement_id", "line_number", "item_id", "requested_quantity",
    "actual_quantity", "uom", "lot_id", "serial_id", "from_location_id",
    "to_location_id", "status", "notes", "reason", "created_at", "updated_at",
)

_TASK_COLUMNS = (
    "id", "movement_id", "movement_line_id", "task_type", "status", "priority",
    "assigned_user_id", "scheduled_start_time", "expected_completion_time",
    "actual_start_time", "actual_completion_time", "location_id",
    "instructions", "notes", "sequence", "created_at", "updated_at",
)

_TERMINAL_MOVEMENT = "('COMPLETED', 'CANCELLED')"
_TERMINAL_TASK = "('COMPLETED', 'CANCELLED')"

_TASK_ORDER = (
    "t.priority DESC, t.expected_completion_time IS NULL, "
    "t.expected_completion_time, t.created_at, t.sequence"
)


def _ts(value: datetime | None) -> str | None:
    """Serialize timestamps as UTC ISO text so they sort lexically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _db_value(value):
    if isinstance(value, datetime):
        return _ts(value)
    if hasattr(value, "value"):
        return value.value
    return value


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def _upsert_sql(table: str, columns: tuple[str, ...]) -> str:
    updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")
    return (
        f"{_insert_sql(table, columns)} "
        f"ON CONFLICT(id) DO UPDATE SET {updates}"
    )


class SQLiteMovementStore(IMovementStore):
    """SQLite implementation of the Movement aggregate store."""

    # Writes

    async def create_movement(
        self, movement: Movement, events: list[MovementEvent] | None = None
    ) -> Movement:
        """Insert a movement with its lines, tasks and creation events."""
        movement.version = 0
        async with get_transaction() as conn:
            if movement.reference_number and await self._reference_taken(
                conn, movement.reference_number, None
            ):
                raise DuplicateReferenceNumberError(movement.reference_number)

            try:
                await conn.execute(
                    _insert_sql("movements", _MOVEMENT_COLUMNS),
                    self._movement_params(movement),
                )
            except aiosqlite.IntegrityError as e:
                if "reference_number" in str(e):
                    raise DuplicateReferenceNumberError(movement.reference_number or "") from e
                raise

            await self._write_children(conn, movement)
            await self._insert_events(conn, events or [])

        logger.info(
            "movement_created",
            movement_id=movement.id,
            reference_number=movement.reference_number,
            lines=len(movement.lines),
            tasks=len(movement.tasks),
        )
        return movement

    async def save_movement(
        self,
        movement: Movement,
        expected_version: int,
        events: list[MovementEvent] | None = None,
    ) -> Movement:
        """Version-checked write of the whole aggregate."""
        async with get_transaction() as conn:
            if movement.reference_number and await self._reference_taken(
                conn, movement.reference_number, movement.id
            ):
                raise DuplicateReferenceNumberError(movement.reference_number)

            movement.version = expected_version + 1
            params = self._movement_params(movement)
            assignments = ", ".join(f"{c} = ?" for c in _MOVEMENT_COLUMNS if c != "id")
            cursor = await conn.execute(
                f"UPDATE movements SET {assignments} WHERE id = ? AND version = ?",
                (*params[1:], movement.id, expected_version),
            )
            if cursor.rowcount == 0:
                movement.version = expected_version
                await self._raise_version_conflict(conn, movement.id, expected_version)

            await self._write_children(conn, movement)
            await self._insert_events(conn, events or [])

        logger.debug(
            "movement_saved",
            movement_id=movement.id,
            version=movement.version,
            events=len(events or []),
        )
        return movement

    async def claim_task(
        self,
        task: MovementTask,
        events: list[MovementEvent] | None = None,
    ) -> bool:
        """Assign a task only if it is still PENDING and unassigned."""
        async with get_transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE movement_tasks SET
                    assigned_user_id = ?,
                    status = ?,
                    updated_at = ?
                WHERE id = ? AND status = 'PENDING' AND assigned_user_id IS NULL
                """,
                (task.assigned_user_id, task.status.value, _ts(task.updated_at), task.id),
            )
            if cursor.rowcount == 0:
                logger.info("task_claim_lost", task_id=task.id)
                return False

            await conn.execute(
                "UPDATE movements SET version = version + 1, updated_at = ? WHERE id = ?",
                (_ts(task.updated_at), task.movement_id),
            )
            await self._insert_events(conn, events or [])

        logger.info("task_claimed", task_id=task.id, user_id=task.assigned_user_id)
        return True

    async def delete_movement(self, movement_id: str) -> bool:
        async with get_transaction() as conn:
            cursor = await conn.execute("DELETE FROM movements WHERE id = ?", (movement_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("movement_deleted", movement_id=movement_id)
        return deleted

    async def _raise_version_conflict(
        self, conn: aiosqlite.Connection, movement_id: str, expected_version: int
    ) -> None:
        cursor = await conn.execute(
            "SELECT version FROM movements WHERE id = ?", (movement_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise MovementNotFoundError(movement_id)
        logger.info(
            "movement_version_conflict",
            movement_id=movement_id,
            expected_version=expected_version,
            stored_version=row["version"],
        )
        raise ConcurrentModificationError(movement_id, expected_version)

    async def _write_children(self, conn: aiosqlite.Connection, movement: Movement) -> None:
        """Synchronize line and task rows with the in-memory aggregate."""
        line_ids = [line.id for line in movement.lines]
        task_ids = [task.id for task in movement.tasks]

        await self._delete_missing(conn, "movement_tasks", movement.id, task_ids)
        await self._delete_missing(conn, "movement_lines", movement.id, line_ids)

        for line in movement.lines:
            line.movement_id = movement.id
            await conn.execute(
                _upsert_sql("movement_lines", _LINE_COLUMNS),
                tuple(_db_value(getattr(line, c)) for c in _LINE_COLUMNS),
            )

        for task in movement.tasks:
            task.movement_id = movement.id
            if task.sequence == 0:
                cursor = await conn.execute(
                    "SELECT COALESCE(MAX(sequence), 0) + 1 FROM movement_tasks"
                )
                task.sequence = (await cursor.fetchone())[0]
            await conn.execute(
                _upsert_sql("movement_tasks", _TASK_COLUMNS),
                tuple(_db_value(getattr(task, c)) for c in _TASK_COLUMNS),
            )

    async def _delete_missing(
        self, conn: aiosqlite.Connection, table: str, movement_id: str, keep: list[str]
    ) -> None:
        if keep:
            placeholders = ", ".join("?" for _ in keep)
            await conn.execute(
                f"DELETE FROM {table} WHERE movement_id = ? AND id NOT IN ({placeholders})",
                (movement_id, *keep),
            )
        else:
            await conn.execute(f"DELETE FROM {table} WHERE movement_id = ?", (movement_id,))

    async def _insert_events(
        self, conn: aiosqlite.Connection, events: list[MovementEvent]
    ) -> None:
        for event in events:
            cursor = await conn.execute(
                """
                INSERT INTO movement_events (
                    movement_id, entity_type, entity_id, action, from_status,
                    to_status, actor_id, reason, details, occurred_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.movement_id,
                    event.entity_type,
                    event.entity_id,
                    event.action,
                    event.from_status,
                    event.to_status,
                    event.actor_id,
                    event.reason,
                    json.dumps(event.details, default=str) if event.details else None,
                    _ts(event.occurred_at),
                ),
            )
            event.id = cursor.lastrowid

    def _movement_params(self, movement: Movement) -> tuple:
        return tuple(_db_value(getattr(movement, c)) for c in _MOVEMENT_COLUMNS)

    async def _reference_taken(
        self, conn: aiosqlite.Connection, reference_number: str, exclude_id: str | None
    ) -> bool:
        cursor = await conn.execute(
            "SELECT 1 FROM movements WHERE reference_number = ? AND id IS NOT ?",
            (reference_number, exclude_id),
        )
        return await cursor.fetchone() is not None

    # Reads

    async def get_movement(self, movement_id: str) -> Movement | None:
        async with get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM movements WHERE id = ?", (movement_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            return await self._load_aggregate(conn, row)

    async def get_movement_by_reference(self, reference_number: str) -> Movement | None:
        async with get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM movements WHERE reference_number = ?", (reference_number,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return await self._load_aggregate(conn, row)

    async def reference_number_taken(
        self, reference_number: str, exclude_movement_id: str | None = None
    ) -> bool:
        async with get_connection() as conn:
            return await self._reference_taken(conn, reference_number, exclude_movement_id)

    async def find_movement_id_for_line(self, line_id: str) -> str | None:
        async with get_connection() as conn:
            cursor = await conn.execute(
                "SELECT movement_id FROM movement_lines WHERE id = ?", (line_id,)
            )
            row = await cursor.fetchone()
            return row["movement_id"] if row else None

    async def find_movement_id_for_task(self, task_id: str) -> str | None:
        async with get_connection() as conn:
            cursor = await conn.execute(
                "SELECT movement_id FROM movement_tasks WHERE id = ?", (task_id,)
            )
            row = await cursor.fetchone()
            return row["movement_id"] if row else None

    async def list_movements(
        self,
        criteria: MovementFilter | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Movement], int]:
        """List movement headers, newest first."""
        criteria = criteria or MovementFilter()
        clauses: list[str] = []
        params: list = []

        if criteria.warehouse_id:
            clauses.append("warehouse_id = ?")
            params.append(criteria.warehouse_id)
        if criteria.status:
            clauses.append("status = ?")
            params.append(criteria.status.value)
        if criteria.type:
            clauses.append("type = ?")
            params.append(criteria.type.value)
        if criteria.created_by:
            clauses.append("created_by = ?")
            params.append(criteria.created_by)
        if criteria.search:
            clauses.append("(reference_number LIKE ? OR notes LIKE ? OR reason LIKE ?)")
            pattern = f"%{criteria.search}%"
            params.extend([pattern, pattern, pattern])
        if criteria.start_date:
            clauses.append("movement_date >= ?")
            params.append(_ts(criteria.start_date))
        if criteria.end_date:
            clauses.append("movement_date <= ?")
            params.append(_ts(criteria.end_date))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with get_connection() as conn:
            cursor = await conn.execute(f"SELECT COUNT(*) FROM movements {where}", params)
            total = (await cursor.fetchone())[0]

            cursor = await conn.execute(
                f"SELECT * FROM movements {where} ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                (*params, limit, offset),
            )
            rows = await cursor.fetchall()
            return [self._row_to_movement(row) for row in rows], total

    async def list_overdue_movements(self, now: datetime) -> list[Movement]:
        async with get_connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT * FROM movements
                WHERE status NOT IN {_TERMINAL_MOVEMENT}
                  AND expected_date IS NOT NULL AND expected_date < ?
                ORDER BY expected_date
                """,
                (_ts(now),),
            )
            rows = await cursor.fetchall()
            return [self._row_to_movement(row) for row in rows]

    async def count_by_status(self, warehouse_id: str | None = None) -> dict[str, int]:
        sql = "SELECT status, COUNT(*) AS n FROM movements"
        params: tuple = ()
        if warehouse_id:
            sql += " WHERE warehouse_id = ?"
            params = (warehouse_id,)
        sql += " GROUP BY status"

        async with get_connection() as conn:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
            return {row["status"]: row["n"] for row in rows}

    async def count_by_type(
        self,
        warehouse_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, int]:
        clauses: list[str] = []
        params: list = []
        if warehouse_id:
            clauses.append("warehouse_id = ?")
            params.append(warehouse_id)
        if start_date:
            clauses.append("movement_date >= ?")
            params.append(_ts(start_date))
        if end_date:
            clauses.append("movement_date <= ?")
            params.append(_ts(end_date))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT type, COUNT(*) AS n FROM movements {where} GROUP BY type", params
            )
            rows = await cursor.fetchall()
            return {row["type"]: row["n"] for row in rows}

    async def list_lines(
        self,
        criteria: LineFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[MovementLine], int]:
        criteria = criteria or LineFilter()
        clauses: list[str] = []
        params: list = []

        if criteria.movement_id:
            clauses.append("movement_id = ?")
            params.append(criteria.movement_id)
        if criteria.item_id:
            clauses.append("item_id = ?")
            params.append(criteria.item_id)
        if criteria.status:
            clauses.append("status = ?")
            params.append(criteria.status.value)
        if criteria.with_variance:
            clauses.append("actual_quantity IS NOT NULL AND actual_quantity != requested_quantity")
        if criteria.short_picked:
            clauses.append("actual_quantity IS NOT NULL AND actual_quantity < requested_quantity")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with get_connection() as conn:
            cursor = await conn.execute(f"SELECT COUNT(*) FROM movement_lines {where}", params)
            total = (await cursor.fetchone())[0]

            cursor = await conn.execute(
                f"""
                SELECT * FROM movement_lines {where}
                ORDER BY movement_id, line_number
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            )
            rows = await cursor.fetchall()
            return [self._row_to_line(row) for row in rows], total

    async def list_tasks(
        self,
        criteria: TaskFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[MovementTask], int]:
        """List tasks in assignment priority order."""
        criteria = criteria or TaskFilter()
        clauses: list[str] = []
        params: list = []

        if criteria.movement_id:
            clauses.append("t.movement_id = ?")
            params.append(criteria.movement_id)
        if criteria.assigned_user_id:
            clauses.append("t.assigned_user_id = ?")
            params.append(criteria.assigned_user_id)
        if criteria.status:
            clauses.append("t.status = ?")
            params.append(criteria.status.value)
        if criteria.unassigned_only:
            clauses.append("t.assigned_user_id IS NULL AND t.status = 'PENDING'")
        if criteria.warehouse_id:
            clauses.append("m.warehouse_id = ?")
            params.append(criteria.warehouse_id)
        if criteria.scheduled_from:
            clauses.append("t.scheduled_start_time >= ?")
            params.append(_ts(criteria.scheduled_from))
        if criteria.scheduled_to:
            clauses.append("t.scheduled_start_time < ?")
            params.append(_ts(criteria.scheduled_to))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        from_clause = f"FROM movement_tasks t JOIN movements m ON m.id = t.movement_id {where}"
        async with get_connection() as conn:
            cursor = await conn.execute(f"SELECT COUNT(*) {from_clause}", params)
            total = (await cursor.fetchone())[0]

            cursor = await conn.execute(
                f"SELECT t.* {from_clause} ORDER BY {_TASK_ORDER} LIMIT ? OFFSET ?",
                (*params, limit, offset),
            )
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows], total

    async def list_open_tasks_due_before(self, now: datetime) -> list[MovementTask]:
        async with get_connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT t.* FROM movement_tasks t
                WHERE t.status NOT IN {_TERMINAL_TASK}
                  AND t.expected_completion_time IS NOT NULL
                  AND t.expected_completion_time < ?
                ORDER BY {_TASK_ORDER}
                """,
                (_ts(now),),
            )
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def get_events(self, movement_id: str) -> list[MovementEvent]:
        async with get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM movement_events WHERE movement_id = ? ORDER BY id",
                (movement_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_event(row) for row in rows]

    async def _load_aggregate(self, conn: aiosqlite.Connection, row: aiosqlite.Row) -> Movement:
        movement = self._row_to_movement(row)

        cursor = await conn.execute(
            "SELECT * FROM movement_lines WHERE movement_id = ? ORDER BY line_number",
            (movement.id,),
        )
        movement.lines = [self._row_to_line(r) for r in await cursor.fetchall()]

        cursor = await conn.execute(
            "SELECT * FROM movement_tasks WHERE movement_id = ? ORDER BY sequence",
            (movement.id,),
        )
        movement.tasks = [self._row_to_task(r) for r in await cursor.fetchall()]
        return movement

    @staticmethod
    def _row_to_movement(row: aiosqlite.Row) -> Movement:
        """Convert database row to Movement (without children)."""
        return Movement.model_validate({c: row[c] for c in _MOVEMENT_COLUMNS})

    @staticmethod
    def _row_to_line(row: aiosqlite.Row) -> MovementLine:
        return MovementLine.model_validate({c: row[c] for c in _LINE_COLUMNS})

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> MovementTask:
        return MovementTask.model_validate({c: row[c] for c in _TASK_COLUMNS})

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> MovementEvent:
        return MovementEvent(
            id=row["id"],
            movement_id=row["movement_id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            action=row["action"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            actor_id=row["actor_id"],
            reason=row["reason"],
            details=json.loads(row["details"]) if row["details"] else {},
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
        )

