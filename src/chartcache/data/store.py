"""Typed SQLite read/write abstraction for cached candle series.

Each (instrument, market, timeframe) key maps to one row holding the whole
series as a JSON blob plus the time it was fetched. All SQL is isolated
behind CandleStore.

Reads and writes fail open: when the database is not ready or a query
fails, reads return None and writes do nothing, so a broken cache never
breaks chart loading.
"""

import json

import aiosqlite

from chartcache.data.database import TABLE_NAME, CandleCacheDatabase
from chartcache.logging import get_logger
from chartcache.models import CacheEntry, CacheStats, Candle, Market, Timeframe

logger = get_logger(__name__)

MAX_CANDLES_PER_ENTRY = 800


class CandleStore:
    """Async SQLite store for candle series keyed by instrument/market/timeframe.

    Wraps CandleCacheDatabase with typed methods. Freshness is not applied
    here; get() returns last_fetched_ms so the cache layer can decide.

    Usage:
        async with CandleCacheDatabase("data/candle_cache.db") as database:
            store = CandleStore(database)
            await store.put("BTC", Market.PERP, Timeframe.H1, candles, now_ms)
    """

    def __init__(
        self,
        database: CandleCacheDatabase,
        max_candles: int = MAX_CANDLES_PER_ENTRY,
    ) -> None:
        self._database = database
        self._max_candles = max_candles

    @property
    def database(self) -> CandleCacheDatabase:
        return self._database

    def is_ready(self) -> bool:
        return self._database.is_ready()

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def put(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
        candles: list[Candle],
        fetched_at_ms: int,
    ) -> int:
        """Replace the row for a key with the newest max_candles candles.

        The incoming series is truncated from the front; nothing is merged
        with what was cached before. Returns the number of candles stored,
        0 if the write was skipped or failed.
        """
        if not self.is_ready():
            return 0

        to_cache = candles[-self._max_candles :] if candles else []
        try:
            candles_json = json.dumps([c.to_dict() for c in to_cache])
            await self._database.db.execute(
                f"INSERT OR REPLACE INTO {TABLE_NAME} "
                "(instrument, market, timeframe, last_fetched_ms, candles_json) "
                "VALUES (?, ?, ?, ?, ?)",
                (instrument, market.value, timeframe.value, fetched_at_ms, candles_json),
            )
            await self._database.db.commit()
        except (aiosqlite.Error, TypeError, ValueError) as e:
            logger.error(
                "candle_cache_write_failed",
                instrument=instrument,
                market=market.value,
                timeframe=timeframe.value,
                error=str(e),
            )
            return 0

        logger.debug(
            "candle_cache_written",
            instrument=instrument,
            market=market.value,
            timeframe=timeframe.value,
            stored=len(to_cache),
            received=len(candles),
        )
        return len(to_cache)

    async def delete_oldest(self, n: int) -> int:
        """Delete the n rows with the smallest last_fetched_ms.

        Errors propagate; the cache layer logs them from its eviction task.
        Returns the number of rows deleted.
        """
        if n <= 0 or not self.is_ready():
            return 0

        cursor = await self._database.db.execute(
            f"DELETE FROM {TABLE_NAME} WHERE rowid IN ("
            f"  SELECT rowid FROM {TABLE_NAME} ORDER BY last_fetched_ms ASC LIMIT ?"
            ")",
            (n,),
        )
        await self._database.db.commit()
        return cursor.rowcount

    async def clear_all(self) -> None:
        """Delete every cached row."""
        if not self.is_ready():
            logger.warning("candle_cache_not_ready", operation="clear_all")
            return

        try:
            await self._database.db.execute(f"DELETE FROM {TABLE_NAME}")
            await self._database.db.commit()
        except aiosqlite.Error as e:
            logger.error("candle_cache_clear_failed", error=str(e))
            return
        logger.info("candle_cache_cleared")

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
    ) -> CacheEntry | None:
        """Return the cached row for a key, or None if absent or unreadable.

        Returns None without touching the database when it is not ready.
        """
        if not self.is_ready():
            return None

        try:
            cursor = await self._database.db.execute(
                f"SELECT last_fetched_ms, candles_json FROM {TABLE_NAME} "
                "WHERE instrument = ? AND market = ? AND timeframe = ?",
                (instrument, market.value, timeframe.value),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            candles = [Candle.from_dict(item) for item in json.loads(row[1])]
        except (aiosqlite.Error, KeyError, TypeError, ValueError) as e:
            logger.error(
                "candle_cache_read_failed",
                instrument=instrument,
                market=market.value,
                timeframe=timeframe.value,
                error=str(e),
            )
            return None

        return CacheEntry(
            instrument=instrument,
            market=market,
            timeframe=timeframe,
            last_fetched_ms=row[0],
            candles=candles,
        )

    async def count(self) -> int:
        """Number of cached rows. Errors propagate, like delete_oldest."""
        if not self.is_ready():
            return 0

        cursor = await self._database.db.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}")
        return (await cursor.fetchone())[0]

    async def stats(self) -> CacheStats:
        """Aggregate figures for diagnostics: rows, JSON bytes, fetch time range."""
        if not self.is_ready():
            return CacheStats()

        try:
            cursor = await self._database.db.execute(
                "SELECT COUNT(*), COALESCE(SUM(LENGTH(candles_json)), 0), "
                f"MIN(last_fetched_ms), MAX(last_fetched_ms) FROM {TABLE_NAME}"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error("candle_cache_stats_failed", error=str(e))
            return CacheStats()

        return CacheStats(
            total_entries=row[0],
            total_size_bytes=row[1],
            oldest_entry_ms=row[2],
            newest_entry_ms=row[3],
        )
