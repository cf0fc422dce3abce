"""Abstract candle source interface.

The chart loader depends only on this interface, keeping exchange-specific
details isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod

from chartcache.models import Candle, Market, Timeframe


class CandleSource(ABC):
    """Abstract base class for network candle providers."""

    @abstractmethod
    async def fetch_candles(
        self,
        instrument: str,
        market: Market,
        timeframe: Timeframe,
        limit: int | None = None,
    ) -> list[Candle]:
        """Fetch the most recent candles, oldest first."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...
