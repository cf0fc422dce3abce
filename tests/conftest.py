"""Shared test fixtures for the candle cache."""

import pytest
import pytest_asyncio

from chartcache.config import AppSettings, CacheSettings, RetrySettings
from chartcache.data.cache import CandleCache
from chartcache.data.database import CandleCacheDatabase
from chartcache.data.store import CandleStore
from chartcache.models import Candle

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now_ms: int = START_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def make_candles(count: int, start_ms: int = START_MS, step_ms: int = 60_000) -> list[Candle]:
    """Ascending candles with distinguishable prices."""
    return [
        Candle(
            timestamp_ms=start_ms + i * step_ms,
            open=100.0 + i,
            high=101.0 + i,
            low=99.0 + i,
            close=100.5 + i,
        )
        for i in range(count)
    ]


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """Return AppSettings pointing at a temporary database, with fast retries."""
    return AppSettings(
        log_level="DEBUG",
        cache=CacheSettings(db_path=str(tmp_path / "candle_cache.db")),
        retry=RetrySettings(max_attempts=3, base_delay_ms=1000, max_delay_ms=8000),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Initialized CandleCacheDatabase on a temporary file."""
    db = CandleCacheDatabase(str(tmp_path / "candle_cache.db"))
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def store(database: CandleCacheDatabase) -> CandleStore:
    return CandleStore(database)


@pytest.fixture
def cache(store: CandleStore, clock: FakeClock) -> CandleCache:
    return CandleCache(store, clock=clock)
