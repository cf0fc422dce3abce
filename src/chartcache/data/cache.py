"""Freshness and capacity policy over the candle store.

A cached series is fresh for one bar interval of its timeframe. Writes
return as soon as the row is stored; trimming the table back to capacity
runs afterwards as a tracked background task.
"""

import asyncio
import time
from collections.abc import Callable

from chartcache.data.store import CandleStore
from chartcache.logging import get_logger
from chartcache.models import CacheStats, Candle, Market, StaleCandles, Timeframe

logger = get_logger(__name__)

MAX_CACHE_ENTRIES = 100


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def is_fresh(last_fetched_ms: int, timeframe: Timeframe, current_ms: int) -> bool:
    """True while the entry's age is strictly below the timeframe's window."""
    return current_ms - last_fetched_ms < timeframe.window_ms


class CandleCache:
    """Cache manager: fresh reads, stale fallback reads, bounded writes.

    Usage:
        cache = CandleCache(CandleStore(database))
        candles = await cache.get_fresh("BTC", Market.PERP, Timeframe.H1)
        if candles is None:
            candles = await fetch()
            await cache.set("BTC", Market.PERP, Timeframe.H1, candles)
    """

    def __init__(
        self,
        store: CandleStore,
        max_entries: int = MAX_CACHE_ENTRIES,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._max_entries = max_entries
        self._clock = clock
        self._eviction_task: asyncio.Task | None = None
        self._eviction_pending = False

    @property
    def store(self) -> CandleStore:
        return self._store

    async def get_fresh(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
    ) -> list[Candle] | None:
        """Return cached candles only if still inside the freshness window."""
        entry = await self._store.get(instrument, market, timeframe)
        if entry is None:
            logger.debug(
                "candle_cache_miss",
                instrument=instrument,
                market=market.value,
                timeframe=timeframe.value,
            )
            return None

        current = self._clock()
        if not is_fresh(entry.last_fetched_ms, timeframe, current):
            logger.debug(
                "candle_cache_expired",
                instrument=instrument,
                market=market.value,
                timeframe=timeframe.value,
                age_seconds=round((current - entry.last_fetched_ms) / 1000),
            )
            return None

        logger.debug(
            "candle_cache_hit",
            instrument=instrument,
            market=market.value,
            timeframe=timeframe.value,
            candles=len(entry.candles),
        )
        return entry.candles

    async def get_stale(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
    ) -> StaleCandles | None:
        """Return cached candles regardless of age, flagged with is_stale."""
        entry = await self._store.get(instrument, market, timeframe)
        if entry is None:
            return None

        stale = not is_fresh(entry.last_fetched_ms, timeframe, self._clock())
        logger.debug(
            "candle_cache_stale_lookup",
            instrument=instrument,
            timeframe=timeframe.value,
            candles=len(entry.candles),
            is_stale=stale,
        )
        return StaleCandles(
            candles=entry.candles,
            last_fetched_ms=entry.last_fetched_ms,
            is_stale=stale,
        )

    async def set(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
        candles: list[Candle],
    ) -> None:
        """Store candles stamped with the current time, then schedule eviction.

        Does not wait for eviction; use wait_for_eviction() to join it.
        """
        if not self._store.is_ready():
            return

        await self._store.put(instrument, market, timeframe, candles, self._clock())
        self._schedule_eviction()

    def _schedule_eviction(self) -> None:
        # One evictor at a time; writes landing mid-run trigger another pass.
        self._eviction_pending = True
        if self._eviction_task is None or self._eviction_task.done():
            self._eviction_task = asyncio.create_task(self._evict_in_background())

    async def evict(self) -> int:
        """Delete the least recently fetched rows beyond max_entries.

        Returns the number of rows removed.
        """
        total = await self._store.count()
        if total <= self._max_entries:
            return 0

        excess = total - self._max_entries
        removed = await self._store.delete_oldest(excess)
        logger.info(
            "candle_cache_evicted",
            removed=removed,
            total_before=total,
            max_entries=self._max_entries,
        )
        return removed

    async def _evict_in_background(self) -> None:
        while self._eviction_pending:
            self._eviction_pending = False
            try:
                await self.evict()
            except Exception as e:
                logger.error("candle_cache_eviction_failed", error=str(e))

    async def wait_for_eviction(self) -> None:
        """Wait for every eviction scheduled so far to finish."""
        if self._eviction_task is not None:
            await self._eviction_task

    async def clear(self) -> None:
        await self._store.clear_all()

    async def stats(self) -> CacheStats:
        return await self._store.stats()
