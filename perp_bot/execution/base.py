"""Abstract market data interface: historical ranges and latest candles."""

from __future__ import annotations
from abc import ABC, abstractmethod

import pandas as pd

KLINE_COLUMNS = ["time", "open", "high", "low", "close", "volume", "close_time"]


class MarketDataClient(ABC):
    """Supplies OHLCV DataFrames with columns: time, open, high, low, close, volume, close_time."""

    @abstractmethod
    def fetch_range(self, symbol: str, interval: str, start_date: str, end_date: str) -> pd.DataFrame:
        """Closed candles between two dates, oldest first."""
        pass

    @abstractmethod
    def fetch_latest(self, symbol: str, interval: str, limit: int = 500) -> pd.DataFrame:
        """Most recent `limit` candles, oldest first. The last one may still be forming."""
        pass
