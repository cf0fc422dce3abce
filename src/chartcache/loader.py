"""Chart data loading: cache first, network with retry, stale fallback.

Flow for one request:
1. A fresh cache entry is returned without touching the network.
2. Otherwise the candle source is called through with_retry, retrying
   only rate limits, network errors and 5xx responses. Successful results
   are written back to the cache.
3. If every attempt fails, the last cached copy (however old) is returned
   with a message explaining why; with no cached copy the load fails with
   ChartDataUnavailable.
"""

from dataclasses import dataclass
from enum import Enum

from structlog.contextvars import bound_contextvars

from chartcache.config import RetrySettings
from chartcache.data.cache import CandleCache
from chartcache.exceptions import ChartDataUnavailable
from chartcache.exchange.client import CandleSource
from chartcache.logging import get_logger
from chartcache.models import Candle, Market, Timeframe
from chartcache.resilience.errors import final_message, should_retry
from chartcache.resilience.retry import RetryPolicy, with_retry

logger = get_logger(__name__)


class DataSource(str, Enum):
    """Where a ChartData result came from."""

    CACHE = "cache"
    NETWORK = "network"
    STALE = "stale"


@dataclass
class ChartData:
    """Candles for one chart request plus how they were obtained.

    message is set only for stale fallbacks, e.g. "Using cached data (offline)".
    """

    instrument: str
    market: Market
    timeframe: Timeframe
    candles: list[Candle]
    source: DataSource
    message: str | None = None
    last_fetched_ms: int | None = None


class ChartDataLoader:
    """Loads candles for charts through the cache and a retrying fetch."""

    def __init__(
        self,
        cache: CandleCache,
        source: CandleSource,
        retry_settings: RetrySettings | None = None,
        candle_limit: int | None = None,
    ) -> None:
        self._cache = cache
        self._source = source
        self._retry_settings = retry_settings or RetrySettings()
        self._candle_limit = candle_limit

    def _retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_settings(self._retry_settings, should_retry=should_retry)

    async def load(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
    ) -> ChartData:
        """Return candles for a chart, preferring fresh cache over network.

        Raises ChartDataUnavailable when the fetch fails and nothing is cached.
        """
        cached = await self._cache.get_fresh(instrument, market, timeframe)
        if cached is not None:
            return ChartData(
                instrument=instrument,
                market=market,
                timeframe=timeframe,
                candles=cached,
                source=DataSource.CACHE,
            )

        async def _fetch() -> list[Candle]:
            return await self._source.fetch_candles(
                instrument, market, timeframe, limit=self._candle_limit
            )

        try:
            with bound_contextvars(
                instrument=instrument, market=market.value, timeframe=timeframe.value
            ):
                candles = await with_retry(_fetch, self._retry_policy())
        except Exception as e:
            return await self._fallback(instrument, market, timeframe, e)

        await self._cache.set(instrument, market, timeframe, candles)
        logger.info(
            "chart_data_fetched",
            instrument=instrument,
            market=market.value,
            timeframe=timeframe.value,
            candles=len(candles),
        )
        return ChartData(
            instrument=instrument,
            market=market,
            timeframe=timeframe,
            candles=candles,
            source=DataSource.NETWORK,
        )

    async def _fallback(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
        error: Exception,
    ) -> ChartData:
        stale = await self._cache.get_stale(instrument, market, timeframe)
        message = final_message(error, stale is not None)

        if stale is None:
            logger.error(
                "chart_data_unavailable",
                instrument=instrument,
                market=market.value,
                timeframe=timeframe.value,
                user_message=message,
                error=str(error),
            )
            raise ChartDataUnavailable(message) from error

        logger.warning(
            "chart_data_stale_fallback",
            instrument=instrument,
            market=market.value,
            timeframe=timeframe.value,
            user_message=message,
            last_fetched_ms=stale.last_fetched_ms,
            error=str(error),
        )
        return ChartData(
            instrument=instrument,
            market=market,
            timeframe=timeframe,
            candles=stale.candles,
            source=DataSource.STALE,
            message=message,
            last_fetched_ms=stale.last_fetched_ms,
        )
