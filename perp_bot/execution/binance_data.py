"""
Binance kline data with retry on rate limits and a CSV cache for date ranges.
Public endpoints only; no keys are needed.
"""

from __future__ import annotations
import logging
import time
from pathlib import Path
from typing import List, Optional

import pandas as pd

from binance.client import Client
from binance.exceptions import BinanceAPIException

from perp_bot.execution.base import KLINE_COLUMNS, MarketDataClient

logger = logging.getLogger("perp_bot.execution.binance")

_RAW_COLUMNS = [
    "open_time", "open", "high", "low", "close", "volume",
    "close_time", "quote_av", "num_trades", "tb_base_av", "tb_quote_av", "ignore",
]


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on 429 or 418 (rate limit)."""
    def decorator(f):
        def wrapped(*args, **kwargs):
            last_exc = None
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    last_exc = e
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        time.sleep(delay)
                    else:
                        raise
            raise last_exc
        return wrapped
    return decorator


def klines_to_frame(raw: List[list]) -> pd.DataFrame:
    """Convert Binance kline rows to an OHLCV DataFrame."""
    df = pd.DataFrame(raw, columns=_RAW_COLUMNS)
    df[["open", "high", "low", "close", "volume"]] = df[["open", "high", "low", "close", "volume"]].astype(float)
    df["time"] = pd.to_datetime(df["open_time"].astype("int64"), unit="ms")
    df["close_time"] = pd.to_datetime(df["close_time"].astype("int64"), unit="ms")
    return df[KLINE_COLUMNS]


class BinanceMarketData(MarketDataClient):
    """Spot klines from Binance; date ranges are cached as CSV under cache_dir."""

    def __init__(self, cache_dir: Optional[Path] = None, client: Optional[Client] = None):
        self._client = client or Client()
        self.cache_dir = Path(cache_dir) if cache_dir else None

    def _cache_path(self, symbol: str, interval: str, start_date: str, end_date: str) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return self.cache_dir / f"{symbol}_{interval}_{start_date}_{end_date}.csv"

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def _download_range(self, symbol: str, interval: str, start_date: str, end_date: str) -> List[list]:
        return self._client.get_historical_klines(symbol, interval, start_date, end_date)

    def fetch_range(self, symbol: str, interval: str, start_date: str, end_date: str) -> pd.DataFrame:
        path = self._cache_path(symbol, interval, start_date, end_date)
        if path is not None and path.exists():
            logger.info("Loaded cached candles: %s", path)
            return pd.read_csv(path, parse_dates=["time", "close_time"])
        logger.info("Downloading %s %s from %s to %s", symbol, interval, start_date, end_date)
        df = klines_to_frame(self._download_range(symbol, interval, start_date, end_date))
        logger.info("Downloaded %d candles", len(df))
        if path is not None and len(df) > 0:
            path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(path, index=False)
            logger.info("Cached to %s", path)
        return df

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def fetch_latest(self, symbol: str, interval: str, limit: int = 500) -> pd.DataFrame:
        raw = self._client.get_klines(symbol=symbol, interval=interval, limit=limit)
        return klines_to_frame(raw)
