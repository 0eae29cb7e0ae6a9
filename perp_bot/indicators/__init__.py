"""Indicators: ATR, RSI, EMA and market regime."""

from perp_bot.indicators.technical import atr, rsi, ema, true_range, compute_indicator_frame
from perp_bot.indicators.regime import RegimeConfig, detect_regimes, regime_features

__all__ = [
    "atr",
    "rsi",
    "ema",
    "true_range",
    "compute_indicator_frame",
    "RegimeConfig",
    "detect_regimes",
    "regime_features",
]
