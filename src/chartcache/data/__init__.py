"""Candle cache persistence layer.

Provides the SQLite database manager, the typed candle store, and the
cache manager applying freshness and capacity policy.
"""

from chartcache.data.cache import CandleCache, is_fresh, now_ms
from chartcache.data.database import CandleCacheDatabase
from chartcache.data.store import CandleStore

__all__ = [
    "CandleCache",
    "CandleCacheDatabase",
    "CandleStore",
    "is_fresh",
    "now_ms",
]
