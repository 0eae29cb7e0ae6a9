"""Shared builders for synthetic candles and signals."""

import math

import numpy as np
import pandas as pd
import pytest

from perp_bot.core.types import Candle, Regime, Signal


def _make_candles(closes, spread=0.002, start="2025-01-01", freq="1h", volumes=None) -> pd.DataFrame:
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    times = pd.date_range(start, periods=len(closes), freq=freq)
    return pd.DataFrame({
        "time": times,
        "open": opens,
        "high": np.maximum(opens, closes) * (1 + spread),
        "low": np.minimum(opens, closes) * (1 - spread),
        "close": closes,
        "volume": np.full(len(closes), 1000.0) if volumes is None else np.asarray(volumes, dtype=float),
        "close_time": times + pd.Timedelta(freq) - pd.Timedelta(milliseconds=1),
    })


def _make_signal(long=False, short=False, atr=1.0, regime=Regime.RANGE, rsi=50.0) -> Signal:
    return Signal(
        long=long, short=short, atr=atr, rsi=rsi,
        ema20=math.nan, ema50=math.nan, ema200=math.nan, regime=regime,
    )


def _make_candle(close, hour=0, start="2025-01-01") -> Candle:
    t = pd.Timestamp(start) + pd.Timedelta(hours=hour)
    return Candle(time=t, open=close, high=close, low=close, close=close, volume=1000.0)


@pytest.fixture
def make_candles():
    return _make_candles


@pytest.fixture
def make_signal():
    return _make_signal


@pytest.fixture
def make_candle():
    return _make_candle


@pytest.fixture
def random_walk():
    def build(n=600, seed=7, start_price=100.0, vol=0.01):
        rng = np.random.default_rng(seed)
        closes = start_price * np.exp(np.cumsum(rng.normal(0, vol, n)))
        volumes = rng.uniform(500, 1500, n)
        return _make_candles(closes, spread=0.004, volumes=volumes)
    return build
