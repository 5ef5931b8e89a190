"""SQLite connection pool with explicit transactional boundaries."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

import aiosqlite

from core.exceptions import ConnectionPoolError
from core.logger import get_logger

logger = get_logger(__name__)


class OptimizedSQLitePool:
    """Fixed-size pool of aiosqlite connections.

    Connections run in autocommit mode; multi-statement units of work go
    through :meth:`transaction`, which opens ``BEGIN IMMEDIATE`` so that the
    write lock is taken before the first read. Two transactions can therefore
    never both observe the same "next order" or the same last free seat.
    """

    def __init__(self, database_path: str, pool_size: int = 5, busy_timeout_ms: int = 5000) -> None:
        self.database_path = Path(database_path)
        self.pool_size = pool_size
        self.busy_timeout_ms = busy_timeout_ms
        self._connections: List[aiosqlite.Connection] = []
        self._idle: Optional[asyncio.Queue[aiosqlite.Connection]] = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def init_pool(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return

            if not self.database_path.parent.exists():
                self.database_path.parent.mkdir(parents=True, exist_ok=True)

            self._idle = asyncio.Queue()
            for _ in range(self.pool_size):
                conn = await aiosqlite.connect(self.database_path.as_posix(), isolation_level=None)
                conn.row_factory = aiosqlite.Row
                await self._apply_pragma(conn)
                self._connections.append(conn)
                self._idle.put_nowait(conn)

            self._initialized = True
            logger.debug(f"SQLite pool ready path={self.database_path} size={self.pool_size}")

    async def close(self) -> None:
        while self._connections:
            conn = self._connections.pop()
            await conn.close()
        self._idle = None
        self._initialized = False

    async def _apply_pragma(self, conn: aiosqlite.Connection) -> None:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA temp_store=MEMORY")
        await conn.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms}")

    async def _acquire(self) -> aiosqlite.Connection:
        if not self._initialized:
            await self.init_pool()
        if self._idle is None:
            raise ConnectionPoolError("Connection pool is closed")
        return await self._idle.get()

    def _release(self, conn: aiosqlite.Connection) -> None:
        if self._idle is not None:
            self._idle.put_nowait(conn)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection in autocommit mode."""
        conn = await self._acquire()
        try:
            yield conn
        finally:
            self._release(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection and run the block as one atomic transaction."""
        conn = await self._acquire()
        try:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
        finally:
            self._release(conn)


_db_pool: Optional[OptimizedSQLitePool] = None


def get_db_pool() -> OptimizedSQLitePool:
    if _db_pool is None:
        raise ConnectionPoolError("Database pool not initialized")
    return _db_pool


async def init_db_pool(database_path: str, pool_size: int, busy_timeout_ms: int) -> OptimizedSQLitePool:
    global _db_pool
    pool = OptimizedSQLitePool(database_path=database_path, pool_size=pool_size, busy_timeout_ms=busy_timeout_ms)
    await pool.init_pool()
    _db_pool = pool
    return pool


async def close_db_pool() -> None:
    global _db_pool
    if _db_pool is not None:
        await _db_pool.close()
        _db_pool = None
