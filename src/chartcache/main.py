"""Entry point for candle cache diagnostics.

Commands:
    chartcache load BTC --market perp --timeframe 1h
    chartcache stats
    chartcache clear

Settings come from the environment (see chartcache.config); the command
line only selects what to do.
"""

import argparse
import asyncio

from chartcache.config import AppSettings
from chartcache.data.cache import CandleCache
from chartcache.data.database import CandleCacheDatabase
from chartcache.data.store import CandleStore
from chartcache.exceptions import ChartCacheError, ChartDataUnavailable
from chartcache.exchange.ccxt_source import CcxtCandleSource
from chartcache.loader import ChartDataLoader
from chartcache.logging import get_logger, setup_logging
from chartcache.models import Market, Timeframe


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chartcache", description=__doc__.splitlines()[0])
    parser.add_argument("--log-format", choices=["console", "json"], default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    load = commands.add_parser("load", help="load candles through the cache")
    load.add_argument("instrument")
    load.add_argument(
        "--market", choices=[m.value for m in Market], default=Market.PERP.value
    )
    load.add_argument(
        "--timeframe", choices=[t.value for t in Timeframe], default=Timeframe.H1.value
    )

    commands.add_parser("stats", help="show cache statistics")
    commands.add_parser("clear", help="delete all cached candles")
    return parser


async def run(args: argparse.Namespace, settings: AppSettings) -> int:
    """Run one command against the configured cache. Returns an exit code."""
    logger = get_logger("chartcache.main")

    async with CandleCacheDatabase(settings.cache.db_path) as database:
        store = CandleStore(database, max_candles=settings.cache.max_candles)
        cache = CandleCache(store, max_entries=settings.cache.max_entries)

        if args.command == "stats":
            stats = await cache.stats()
            logger.info(
                "candle_cache_stats",
                ready=database.is_ready(),
                total_entries=stats.total_entries,
                total_size_bytes=stats.total_size_bytes,
                oldest_entry_ms=stats.oldest_entry_ms,
                newest_entry_ms=stats.newest_entry_ms,
            )
            return 0

        if args.command == "clear":
            before = await cache.stats()
            await cache.clear()
            logger.info("candle_cache_clear_done", removed=before.total_entries)
            return 0

        try:
            source = CcxtCandleSource(settings.exchange)
        except ChartCacheError as e:
            logger.error("candle_source_init_failed", error=str(e))
            return 1

        loader = ChartDataLoader(
            cache,
            source,
            retry_settings=settings.retry,
            candle_limit=settings.cache.candle_limit,
        )
        try:
            result = await loader.load(
                args.instrument, Market(args.market), Timeframe(args.timeframe)
            )
        except ChartDataUnavailable as e:
            logger.error("chart_load_failed", user_message=e.user_message)
            return 1
        finally:
            await cache.wait_for_eviction()
            await source.close()

        logger.info(
            "chart_load_done",
            instrument=result.instrument,
            source=result.source.value,
            candles=len(result.candles),
            message=result.message,
        )
        return 0


def main(argv: list[str] | None = None) -> int:
    """Synchronous entry point."""
    args = _build_parser().parse_args(argv)
    settings = AppSettings()
    setup_logging(settings.log_level, args.log_format)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    raise SystemExit(main())
