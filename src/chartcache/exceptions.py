"""Custom exceptions for the candle cache.

The cache layers fail open and never raise these for storage problems;
they exist for the consumer flow, which must surface a final failure.
"""


class ChartCacheError(Exception):
    """Base exception for all chartcache errors."""


class ChartDataUnavailable(ChartCacheError):
    """Raised when candles could not be fetched and no cached copy exists.

    ``user_message`` holds the text to show; the underlying fetch error is
    chained as ``__cause__``.
    """

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


class UnknownMarketError(ChartCacheError):
    """Raised when a (instrument, market) pair has no exchange symbol."""


class UnknownExchangeError(ChartCacheError):
    """Raised when the configured exchange id is not a ccxt exchange."""
