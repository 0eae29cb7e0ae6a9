"""
Market regime classification: bull / bear / range from the trailing price change
and the slope of the trailing mean close.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

from perp_bot.core.types import Regime


@dataclass(frozen=True)
class RegimeConfig:
    lookback: int = 50
    trend_threshold: float = 0.10
    slope_threshold: float = 0.001
    slope_offset: int = 5


def regime_features(close: pd.Series, cfg: RegimeConfig = RegimeConfig()) -> pd.DataFrame:
    """
    price_change: close[i] vs close[i-lookback].
    sma_slope: mean(close[i-lookback..i]) vs the same mean `slope_offset` bars
    earlier, relative to the current mean; 0 until the earlier window exists.
    """
    window = cfg.lookback + 1
    past = close.shift(cfg.lookback)
    price_change = (close - past) / past
    sma = close.rolling(window, min_periods=window).mean()
    sma_slope = ((sma - sma.shift(cfg.slope_offset)) / sma).fillna(0.0)
    return pd.DataFrame({"price_change": price_change, "sma_slope": sma_slope}, index=close.index)


def detect_regimes(close: pd.Series, cfg: RegimeConfig = RegimeConfig()) -> List[Regime]:
    """One Regime per bar. Bars before `lookback` are always RANGE."""
    feats = regime_features(close, cfg)
    change = feats["price_change"].to_numpy(dtype=float)
    slope = feats["sma_slope"].to_numpy(dtype=float)
    regimes: List[Regime] = []
    for i in range(len(close)):
        if i < cfg.lookback or np.isnan(change[i]):
            regimes.append(Regime.RANGE)
        elif change[i] > cfg.trend_threshold and slope[i] > cfg.slope_threshold:
            regimes.append(Regime.BULL)
        elif change[i] < -cfg.trend_threshold and slope[i] < -cfg.slope_threshold:
            regimes.append(Regime.BEAR)
        else:
            regimes.append(Regime.RANGE)
    return regimes
