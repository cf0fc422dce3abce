"""Candle source backed by ccxt async.

Fetches public OHLCV data for any ccxt exchange id. ccxt transport errors
carry only "<exchange> <METHOD> <url>" as their message, so rate-limit and
network failures are re-raised as the same ccxt class with a message
prefix ("rate limit: ", "timeout: ", "network error: ") that the error
classifier recognizes. Other ccxt errors pass through untouched.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import ccxt.async_support as ccxt_async

from chartcache.config import ExchangeSettings
from chartcache.exceptions import UnknownExchangeError, UnknownMarketError
from chartcache.exchange.client import CandleSource
from chartcache.logging import get_logger
from chartcache.models import Candle, Market, Timeframe

logger = get_logger(__name__)


class CcxtCandleSource(CandleSource):
    """Public OHLCV fetcher over a ccxt async exchange instance."""

    def __init__(
        self,
        settings: ExchangeSettings,
        exchange: ccxt_async.Exchange | None = None,
    ) -> None:
        self._settings = settings
        if exchange is None:
            if settings.exchange_id not in ccxt_async.exchanges:
                raise UnknownExchangeError(
                    f"Unknown ccxt exchange id {settings.exchange_id!r} "
                    "(check EXCHANGE_EXCHANGE_ID)"
                )
            exchange_class = getattr(ccxt_async, settings.exchange_id)
            exchange = exchange_class(
                {
                    "enableRateLimit": True,
                    "timeout": settings.timeout_ms,
                }
            )
        self._exchange = exchange
        self._markets: dict = {}

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    def symbol_for(self, instrument: str, market: Market) -> str:
        """Map an instrument and market onto a ccxt unified symbol."""
        if market is Market.PERP:
            template = self._settings.perp_symbol_format
        else:
            template = self._settings.spot_symbol_format
        return template.format(instrument=instrument)

    async def _request(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Call a ccxt method, tagging transport errors for classification.

        RateLimitExceeded and RequestTimeout are NetworkError subclasses,
        so they are checked first.
        """
        try:
            return await fn(*args, **kwargs)
        except ccxt_async.RateLimitExceeded as e:
            raise type(e)(f"rate limit: {e}") from e
        except ccxt_async.RequestTimeout as e:
            raise type(e)(f"timeout: {e}") from e
        except ccxt_async.NetworkError as e:
            raise type(e)(f"network error: {e}") from e

    async def fetch_candles(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
        limit: int | None = None,
    ) -> list[Candle]:
        """Fetch recent candles and return them sorted oldest first.

        Raises UnknownMarketError if the exchange has no such symbol.
        """
        if not self._markets:
            self._markets = await self._request(self._exchange.load_markets)

        symbol = self.symbol_for(instrument, market)
        if symbol not in self._markets:
            raise UnknownMarketError(
                f"No {market.value} market for {instrument} on "
                f"{self._settings.exchange_id} (symbol {symbol})"
            )

        rows = await self._request(
            self._exchange.fetch_ohlcv, symbol, timeframe=timeframe.value, limit=limit
        )
        candles = sorted(
            (
                Candle(
                    timestamp_ms=int(row[0]),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                )
                for row in rows
            ),
            key=lambda c: c.timestamp_ms,
        )
        logger.debug(
            "candles_fetched",
            symbol=symbol,
            timeframe=timeframe.value,
            count=len(candles),
        )
        return candles

    async def close(self) -> None:
        """Clean up ccxt async resources. Must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.info("candle_source_closed", exchange=self._settings.exchange_id)
