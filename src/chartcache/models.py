"""Data models for cached candle series.

Prices are floats: candles are display data for charts and are persisted
as JSON numbers, not used for order math.
"""

from dataclasses import dataclass, field
from enum import Enum

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


class Market(str, Enum):
    """Market an instrument trades on."""

    PERP = "perp"
    SPOT = "spot"


class Timeframe(str, Enum):
    """Candle interval.

    A cached series is current for exactly one bar interval, since a new
    bar opens at that cadence.
    """

    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def window_ms(self) -> int:
        """Freshness window in milliseconds."""
        return _FRESHNESS_WINDOWS_MS[self]


_FRESHNESS_WINDOWS_MS: dict[Timeframe, int] = {
    Timeframe.M1: 1 * _MINUTE_MS,
    Timeframe.M5: 5 * _MINUTE_MS,
    Timeframe.M15: 15 * _MINUTE_MS,
    Timeframe.H1: 1 * _HOUR_MS,
    Timeframe.H4: 4 * _HOUR_MS,
    Timeframe.D1: 1 * _DAY_MS,
}


@dataclass(frozen=True)
class Candle:
    """A single OHLC candle.

    Serialized as {"timestamp", "open", "high", "low", "close"} with the
    timestamp in epoch milliseconds.
    """

    timestamp_ms: int
    open: float
    high: float
    low: float
    close: float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp_ms,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Candle":
        return cls(
            timestamp_ms=int(data["timestamp"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
        )


@dataclass
class CacheEntry:
    """One cached row: the newest candles for a key plus when they were fetched."""

    instrument: str
    market: Market
    timeframe: Timeframe
    last_fetched_ms: int
    candles: list[Candle] = field(default_factory=list)


@dataclass
class StaleCandles:
    """Cached candles returned regardless of age, flagged when past the window."""

    candles: list[Candle]
    last_fetched_ms: int
    is_stale: bool


@dataclass
class CacheStats:
    """Aggregate cache figures for diagnostics."""

    total_entries: int = 0
    total_size_bytes: int = 0
    oldest_entry_ms: int | None = None
    newest_entry_ms: int | None = None
