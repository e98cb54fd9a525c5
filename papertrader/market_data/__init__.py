"""Market data: price store and feed collaborators."""

from papertrader.market_data.binance import BinanceMarketData, parse_mini_ticker, to_binance_symbol
from papertrader.market_data.interfaces import MarketDataFeed
from papertrader.market_data.price_store import PriceStore

__all__ = [
    "BinanceMarketData",
    "MarketDataFeed",
    "PriceStore",
    "parse_mini_ticker",
    "to_binance_symbol",
]
