"""
Technical indicators on an OHLCV DataFrame. All strictly causal: value i only
depends on rows 0..i. Warm-up rows are NaN.
"""

from __future__ import annotations

import numpy as np
import pandas as pd


def _simple_mean(values: pd.Series, period: int) -> pd.Series:
    """Plain rolling mean of the last `period` values, NaN before bar `period`."""
    out = values.rolling(period, min_periods=period).mean()
    out.iloc[:period] = np.nan
    return out


def true_range(df: pd.DataFrame) -> pd.Series:
    """max(high-low, |high-prev_close|, |low-prev_close|); first bar is high-low."""
    prev_close = df["close"].shift()
    high_low = df["high"] - df["low"]
    high_close = (df["high"] - prev_close).abs()
    low_close = (df["low"] - prev_close).abs()
    return pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """Simple (not Wilder) average true range. Defined from bar `period` on."""
    return _simple_mean(true_range(df).astype(float), period).rename("atr")


def rsi(close: pd.Series, period: int = 14) -> pd.Series:
    """
    RSI from plain averages of the last `period` one-bar changes.
    Zero average loss gives 100.
    """
    delta = close.astype(float).diff().fillna(0.0)
    up = _simple_mean(delta.clip(lower=0), period)
    down = _simple_mean((-delta).clip(lower=0), period)
    rs = up / down.replace(0, np.nan)
    values = 100 - (100 / (1 + rs))
    values = values.where(down != 0, 100.0).where(down.notna())
    return values.rename("rsi")


def ema(close: pd.Series, period: int) -> pd.Series:
    """Recursive EMA seeded with the first close, k = 2 / (period + 1)."""
    return close.ewm(span=period, adjust=False).mean().rename(f"ema{period}")


def compute_indicator_frame(
    df: pd.DataFrame,
    atr_len: int = 14,
    rsi_len: int = 14,
    vol_gate_window: int = 50,
) -> pd.DataFrame:
    """Return a copy of df with atr, atr_ma, rsi, ema20, ema50, ema200 columns."""
    out = df.copy()
    out["atr"] = atr(out, atr_len)
    # Average of the *previous* window bars, excluding the current one
    out["atr_ma"] = out["atr"].shift(1).rolling(vol_gate_window, min_periods=vol_gate_window).mean()
    out["rsi"] = rsi(out["close"], rsi_len)
    out["ema20"] = ema(out["close"], 20)
    out["ema50"] = ema(out["close"], 50)
    out["ema200"] = ema(out["close"], 200)
    return out
