"""Execution: market data abstraction and Binance implementation."""

from perp_bot.execution.base import KLINE_COLUMNS, MarketDataClient
from perp_bot.execution.binance_data import BinanceMarketData, klines_to_frame

__all__ = ["KLINE_COLUMNS", "MarketDataClient", "BinanceMarketData", "klines_to_frame"]
