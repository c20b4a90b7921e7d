"""
Pooled aiosqlite connections for the movement database.

Every connection is opened in autocommit mode (``isolation_level=None``).
Writers go through :meth:`ConnectionPool.transaction`, which takes the
database write lock with ``BEGIN IMMEDIATE`` before the first read, so a
version check and the write it guards cannot interleave with another
writer on a different pooled connection.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from src.config import get_logger, get_settings

logger = get_logger(__name__)

PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)


class ConnectionPool:
    """Fixed-size set of connections handed out one coroutine at a time."""

    def __init__(self, db_path: Path, pool_size: int = 5, busy_timeout: int = 30000):
        self.db_path = db_path
        self.pool_size = pool_size
        self.busy_timeout = busy_timeout

        self._idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue()
        self._all: list[aiosqlite.Connection] = []
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return bool(self._all)

    @property
    def size(self) -> int:
        return len(self._all)

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path, isolation_level=None)
        for pragma in PRAGMAS:
            await conn.execute(pragma)
        await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout)}")
        conn.row_factory = aiosqlite.Row
        return conn

    async def initialize(self) -> None:
        """Open every connection up front; calling it again does nothing."""
        async with self._open_lock:
            if self.is_open:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._all = [await self._connect() for _ in range(self.pool_size)]
            for conn in self._all:
                self._idle.put_nowait(conn)
            logger.info("sqlite_pool_opened", db_path=str(self.db_path), size=self.pool_size)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection, waiting while all of them are in use."""
        if not self.is_open:
            await self.initialize()
        conn = await self._idle.get()
        try:
            yield conn
        finally:
            self._idle.put_nowait(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection holding the write lock; commit or roll back on exit."""
        async with self.acquire() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                await conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise

    async def ping(self) -> bool:
        async with self.acquire() as conn:
            async with conn.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
        return row is not None and row[0] == 1

    async def close(self) -> None:
        async with self._open_lock:
            for conn in self._all:
                await conn.close()
            self._all = []
            self._idle = asyncio.Queue()
            logger.info("sqlite_pool_closed", db_path=str(self.db_path))


_pool: ConnectionPool | None = None


async def get_pool() -> ConnectionPool:
    """Process-wide pool built from storage settings on first use."""
    global _pool
    if _pool is None:
        storage = get_settings().storage
        _pool = ConnectionPool(storage.db_path, storage.pool_size, storage.busy_timeout)
        await _pool.initialize()
    return _pool


async def close_pool() -> None:
    global _pool
    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()


@asynccontextmanager
async def get_connection() -> AsyncIterator[aiosqlite.Connection]:
    async with (await get_pool()).acquire() as conn:
        yield conn


@asynccontextmanager
async def get_transaction() -> AsyncIterator[aiosqlite.Connection]:
    async with (await get_pool()).transaction() as conn:
        yield conn
