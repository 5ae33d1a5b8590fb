"""Async SQLite connection management."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)


class Database:
    """Thin wrapper around an ``aiosqlite`` connection.

    Backups arrive from several flux tasks at once, so writes go through
    :meth:`write`, which holds a lock from the first statement to the commit.

    Usage::

        db = Database("data/tradeflux.db")
        await db.connect()
        async with db.write() as conn:
            await conn.execute(...)
        await db.disconnect()
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> aiosqlite.Connection:
        """Return the active connection or raise."""
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    async def connect(self) -> None:
        """Open the SQLite connection and enable WAL mode."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        logger.info("Connected to database: %s", self._db_path)

    async def disconnect(self) -> None:
        """Close the SQLite connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Disconnected from database: %s", self._db_path)

    @asynccontextmanager
    async def write(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize a unit of writes and commit it (rolled back on error)."""
        async with self._write_lock:
            conn = self.connection
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()
