"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Candle cache storage and capacity settings.

    All fields configurable via CANDLE_CACHE_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="CANDLE_CACHE_")

    db_path: str = "data/candle_cache.db"
    max_entries: int = 100  # distinct (instrument, market, timeframe) rows
    max_candles: int = 800  # newest candles kept per row
    candle_limit: int = 500  # candles requested per network fetch


class RetrySettings(BaseSettings):
    """Exponential backoff parameters for network fetches."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 8000


class ExchangeSettings(BaseSettings):
    """Public market-data exchange connection settings.

    Symbol formats map (instrument, market) onto ccxt unified symbols,
    e.g. "BTC" + perp -> "BTC/USDC:USDC".
    """

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_")

    exchange_id: str = "hyperliquid"
    perp_symbol_format: str = "{instrument}/USDC:USDC"
    spot_symbol_format: str = "{instrument}/USDC"
    timeout_ms: int = 10_000


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    cache: CacheSettings = CacheSettings()
    retry: RetrySettings = RetrySettings()
    exchange: ExchangeSettings = ExchangeSettings()
