"""Async SQLite database manager for the candle cache.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance. Initialization is lazy and
memoized: every caller awaits the same in-flight setup.
"""

import asyncio
import os
from typing import Self

import aiosqlite

from chartcache.logging import get_logger

logger = get_logger(__name__)

TABLE_NAME = "candle_cache"

_CREATE_SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    instrument TEXT NOT NULL,
    market TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    last_fetched_ms INTEGER NOT NULL,
    candles_json TEXT NOT NULL,
    PRIMARY KEY (instrument, market, timeframe)
);

CREATE INDEX IF NOT EXISTS idx_candle_cache_last_fetched
    ON {TABLE_NAME}(last_fetched_ms);
"""


class CandleCacheDatabase:
    """Owns the aiosqlite connection and its readiness state.

    A failed initialization is logged and leaves the database not ready;
    it is never raised to callers, who then see cache misses.

    Usage:
        # Context manager (recommended)
        async with CandleCacheDatabase("data/candle_cache.db") as database:
            store = CandleStore(database)

        # Manual lifecycle
        database = CandleCacheDatabase("data/candle_cache.db")
        await database.init()
        try:
            ...
        finally:
            await database.close()
    """

    def __init__(self, db_path: str = "data/candle_cache.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._ready = False
        self._init_task: asyncio.Task | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not initialized.
        """
        if self._connection is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._connection

    def is_ready(self) -> bool:
        """True only after a successful init()."""
        return self._ready and self._connection is not None

    async def init(self) -> None:
        """Open the database and create the schema, once.

        Concurrent callers share a single initialization task. The task is
        shielded so one caller being cancelled does not abort setup for the
        others.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            db_dir = os.path.dirname(self._db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

            self._connection = await aiosqlite.connect(self._db_path)

            # Performance pragmas
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")

            await self._create_schema()
        except Exception as e:
            logger.error(
                "candle_cache_init_failed",
                db_path=self._db_path,
                error=str(e),
            )
            await self._discard_connection()
            self._ready = False
            return

        self._ready = True
        logger.info(
            "candle_cache_initialized",
            db_path=self._db_path,
            duration_ms=round((loop.time() - started) * 1000, 1),
        )

    async def _create_schema(self) -> None:
        """Create the cache table and its last_fetched_ms index if missing."""
        assert self._connection is not None
        await self._connection.executescript(_CREATE_SCHEMA_SQL)
        await self._connection.commit()

    async def _discard_connection(self) -> None:
        if self._connection is None:
            return
        try:
            await self._connection.close()
        except Exception as e:
            logger.warning("candle_cache_close_failed", error=str(e))
        self._connection = None

    async def close(self) -> None:
        """Close the connection if open. A later init() opens it again."""
        if self._init_task is not None and not self._init_task.done():
            await asyncio.shield(self._init_task)
        self._ready = False
        self._init_task = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("candle_cache_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()
