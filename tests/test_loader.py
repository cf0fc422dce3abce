"""Tests for ChartDataLoader: cache hit, fetch with retry, stale fallback."""

from unittest.mock import AsyncMock, MagicMock, patch

import ccxt.async_support as ccxt_async
import pytest

from conftest import FakeClock, make_candles

from chartcache.config import ExchangeSettings, RetrySettings
from chartcache.data.cache import CandleCache
from chartcache.exceptions import ChartCacheError, ChartDataUnavailable
from chartcache.exchange.ccxt_source import CcxtCandleSource
from chartcache.loader import ChartDataLoader, DataSource
from chartcache.models import Market, Timeframe
from chartcache.resilience.errors import is_retryable

SLEEP = "chartcache.resilience.retry.asyncio.sleep"


@pytest.fixture
def source() -> AsyncMock:
    """Mock CandleSource returning five candles."""
    mock = AsyncMock()
    mock.fetch_candles = AsyncMock(return_value=make_candles(5))
    return mock


@pytest.fixture
def loader(cache: CandleCache, source: AsyncMock) -> ChartDataLoader:
    return ChartDataLoader(cache, source, retry_settings=RetrySettings(), candle_limit=500)


class TestLoad:
    @pytest.mark.asyncio
    async def test_network_then_cache(
        self, loader: ChartDataLoader, source: AsyncMock, cache: CandleCache
    ) -> None:
        first = await loader.load("BTC", Market.PERP, Timeframe.H1)
        await cache.wait_for_eviction()
        second = await loader.load("BTC", Market.PERP, Timeframe.H1)

        assert first.source is DataSource.NETWORK
        assert second.source is DataSource.CACHE
        assert second.candles == first.candles
        source.fetch_candles.assert_awaited_once_with(
            "BTC", Market.PERP, Timeframe.H1, limit=500
        )

    @pytest.mark.asyncio
    async def test_expired_cache_refetches(
        self, loader: ChartDataLoader, source: AsyncMock, clock: FakeClock
    ) -> None:
        await loader.load("BTC", Market.PERP, Timeframe.M1)
        clock.advance(Timeframe.M1.window_ms)
        result = await loader.load("BTC", Market.PERP, Timeframe.M1)

        assert result.source is DataSource.NETWORK
        assert source.fetch_candles.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_transient_errors(
        self, loader: ChartDataLoader, source: AsyncMock
    ) -> None:
        source.fetch_candles.side_effect = [
            Exception("hyperliquid 429 Too Many Requests"),
            make_candles(3),
        ]
        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            result = await loader.load("ETH", Market.SPOT, Timeframe.M15)

        assert result.source is DataSource.NETWORK
        assert len(result.candles) == 3
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(
        self, loader: ChartDataLoader, source: AsyncMock
    ) -> None:
        source.fetch_candles.side_effect = Exception("404 - null")
        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ChartDataUnavailable) as exc_info:
                await loader.load("NOPE", Market.PERP, Timeframe.H1)

        assert source.fetch_candles.await_count == 1
        mock_sleep.assert_not_awaited()
        assert exc_info.value.user_message == "Data not found for this asset."
        assert str(exc_info.value.__cause__) == "404 - null"
        assert isinstance(exc_info.value, ChartCacheError)

    @pytest.mark.asyncio
    async def test_stale_fallback_when_offline(
        self,
        loader: ChartDataLoader,
        source: AsyncMock,
        cache: CandleCache,
        clock: FakeClock,
    ) -> None:
        cached = make_candles(4)
        written_at = clock()
        await cache.set("BTC", Market.PERP, Timeframe.H1, cached)
        clock.advance(Timeframe.H1.window_ms * 5)

        source.fetch_candles.side_effect = Exception("Network request failed")
        with patch(SLEEP, new_callable=AsyncMock):
            result = await loader.load("BTC", Market.PERP, Timeframe.H1)

        assert source.fetch_candles.await_count == 3
        assert result.source is DataSource.STALE
        assert result.candles == cached
        assert result.message == "Using cached data (offline)"
        assert result.last_fetched_ms == written_at

    @pytest.mark.asyncio
    async def test_no_fallback_raises_with_final_message(
        self, loader: ChartDataLoader, source: AsyncMock
    ) -> None:
        source.fetch_candles.side_effect = Exception("Network request failed")
        with patch(SLEEP, new_callable=AsyncMock):
            with pytest.raises(ChartDataUnavailable) as exc_info:
                await loader.load("BTC", Market.PERP, Timeframe.H1)

        assert exc_info.value.user_message == "Network error. Check your connection."

    @pytest.mark.asyncio
    async def test_rate_limited_with_stale_cache(
        self,
        loader: ChartDataLoader,
        source: AsyncMock,
        cache: CandleCache,
        clock: FakeClock,
    ) -> None:
        await cache.set("SOL", Market.PERP, Timeframe.M5, make_candles(2))
        clock.advance(Timeframe.M5.window_ms)

        source.fetch_candles.side_effect = Exception("Request failed with status 429")
        with patch(SLEEP, new_callable=AsyncMock):
            result = await loader.load("SOL", Market.PERP, Timeframe.M5)

        assert result.message == "Using cached data (API rate limit)"

    @pytest.mark.asyncio
    async def test_each_retry_logged_once(
        self, loader: ChartDataLoader, source: AsyncMock
    ) -> None:
        source.fetch_candles.side_effect = Exception("Network request failed")
        with (
            patch(SLEEP, new_callable=AsyncMock),
            patch("chartcache.resilience.retry.logger") as retry_logger,
            patch("chartcache.loader.logger") as loader_logger,
        ):
            with pytest.raises(ChartDataUnavailable):
                await loader.load("BTC", Market.PERP, Timeframe.H1)

        scheduled = [
            c for c in retry_logger.warning.call_args_list if c.args[0] == "retry_scheduled"
        ]
        assert [c.kwargs["attempt"] for c in scheduled] == [1, 2]
        loader_events = [
            c.args[0]
            for c in loader_logger.info.call_args_list + loader_logger.warning.call_args_list
        ]
        assert "chart_data_retrying" not in loader_events


# ccxt's async transport errors carry only "<id> <METHOD> <url>" as message
CCXT_TRANSPORT_ERRORS = [
    (ccxt_async.RequestTimeout, "Using cached data (offline)", "Network error. Check your connection."),
    (ccxt_async.ExchangeNotAvailable, "Using cached data (offline)", "Network error. Check your connection."),
    (ccxt_async.NetworkError, "Using cached data (offline)", "Network error. Check your connection."),
    (ccxt_async.RateLimitExceeded, "Using cached data (API rate limit)", "Rate limit reached. Try again shortly."),
]


class TestCcxtTransportErrors:
    @pytest.fixture
    def mock_exchange(self) -> MagicMock:
        exchange = MagicMock()
        exchange.load_markets = AsyncMock(return_value={"BTC/USDC:USDC": {}})
        exchange.fetch_ohlcv = AsyncMock()
        exchange.close = AsyncMock()
        return exchange

    @pytest.fixture
    def ccxt_loader(self, cache: CandleCache, mock_exchange: MagicMock) -> ChartDataLoader:
        source = CcxtCandleSource(ExchangeSettings(), exchange=mock_exchange)
        return ChartDataLoader(cache, source, retry_settings=RetrySettings())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc_cls,stale_message,final", CCXT_TRANSPORT_ERRORS)
    async def test_retried_then_raises(
        self,
        ccxt_loader: ChartDataLoader,
        mock_exchange: MagicMock,
        exc_cls: type,
        stale_message: str,
        final: str,
    ) -> None:
        mock_exchange.fetch_ohlcv.side_effect = exc_cls(
            "hyperliquid POST https://api.hyperliquid.xyz/info"
        )
        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ChartDataUnavailable) as exc_info:
                await ccxt_loader.load("BTC", Market.PERP, Timeframe.H1)

        assert mock_exchange.fetch_ohlcv.await_count == 3
        assert mock_sleep.await_count == 2
        assert exc_info.value.user_message == final
        cause = exc_info.value.__cause__
        assert isinstance(cause, exc_cls)
        assert is_retryable(cause)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc_cls,stale_message,final", CCXT_TRANSPORT_ERRORS)
    async def test_stale_fallback_message(
        self,
        ccxt_loader: ChartDataLoader,
        mock_exchange: MagicMock,
        cache: CandleCache,
        clock: FakeClock,
        exc_cls: type,
        stale_message: str,
        final: str,
    ) -> None:
        await cache.set("BTC", Market.PERP, Timeframe.H1, make_candles(3))
        clock.advance(Timeframe.H1.window_ms)

        mock_exchange.fetch_ohlcv.side_effect = exc_cls(
            "hyperliquid POST https://api.hyperliquid.xyz/info"
        )
        with patch(SLEEP, new_callable=AsyncMock):
            result = await ccxt_loader.load("BTC", Market.PERP, Timeframe.H1)

        assert mock_exchange.fetch_ohlcv.await_count == 3
        assert result.source is DataSource.STALE
        assert result.message == stale_message
