from chartcache.exchange.ccxt_source import CcxtCandleSource
from chartcache.exchange.client import CandleSource

__all__ = ["CandleSource", "CcxtCandleSource"]
