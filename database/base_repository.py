"""Base repository pattern for database operations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

import aiosqlite

from database.connection import get_db_pool


class BaseRepository:
    """Base repository with common database operations.

    Every helper accepts an optional ``conn``. Passing the connection of an
    open transaction makes the statement part of that transaction; without
    it a pooled connection is borrowed in autocommit mode.
    """

    @staticmethod
    @asynccontextmanager
    async def _use(conn: Optional[aiosqlite.Connection]) -> AsyncIterator[aiosqlite.Connection]:
        if conn is not None:
            yield conn
            return
        async with get_db_pool().connection() as pooled:
            yield pooled

    @staticmethod
    async def execute(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        """Execute a query and return the number of affected rows."""
        async with BaseRepository._use(conn) as db:
            cursor = await db.execute(query, params)
            return cursor.rowcount

    @staticmethod
    async def insert(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        """Execute an INSERT and return the new row id."""
        async with BaseRepository._use(conn) as db:
            cursor = await db.execute(query, params)
            return cursor.lastrowid

    @staticmethod
    async def execute_many(
        query: str,
        params: Sequence[Sequence[Any]],
        conn: Optional[aiosqlite.Connection] = None,
    ) -> None:
        """Execute a query multiple times with different parameters."""
        async with BaseRepository._use(conn) as db:
            await db.executemany(query, params)

    @staticmethod
    async def fetch_one(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Optional[aiosqlite.Row]:
        """Fetch a single row."""
        async with BaseRepository._use(conn) as db:
            cursor = await db.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        async with BaseRepository._use(conn) as db:
            cursor = await db.execute(query, params)
            return list(await cursor.fetchall())

    @staticmethod
    async def fetch_value(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Optional[Any]:
        """Fetch a single value from a single row."""
        row = await BaseRepository.fetch_one(query, params, conn)
        return row[0] if row else None

    @staticmethod
    async def fetch_column(
        query: str,
        params: Sequence[Any] = (),
        conn: Optional[aiosqlite.Connection] = None,
    ) -> List[Any]:
        """Fetch first column from all rows."""
        rows = await BaseRepository.fetch_all(query, params, conn)
        return [row[0] for row in rows]
