"""
Signal generator: indicators + regime + mode-specific entry rule, filtered by a
volatility gate (ATR must exceed a fraction of its recent average).
"""

from __future__ import annotations
import math
from typing import List, Optional

import pandas as pd

from perp_bot.core.config import Config, ConfigError, parse_strategy_mode
from perp_bot.core.types import Regime, Signal, StrategyMode
from perp_bot.indicators.regime import RegimeConfig, detect_regimes
from perp_bot.indicators.technical import compute_indicator_frame
from perp_bot.strategies.base import BaseStrategy
from perp_bot.strategies.rules import RULES, BarContext

REQUIRED_COLUMNS = ("time", "open", "high", "low", "close", "volume")

_CONTEXT_FIELDS = ("close", "rsi", "ema20", "ema50", "ema200", "atr")


def validate_candles(df: pd.DataFrame) -> None:
    """Raise ConfigError unless df is a non-empty OHLCV frame with increasing time."""
    if df is None or len(df) == 0:
        raise ConfigError("Candle data is empty")
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ConfigError(f"Candle data is missing columns: {missing}")
    if not pd.Series(df["time"]).is_monotonic_increasing or pd.Series(df["time"]).duplicated().any():
        raise ConfigError("Candle timestamps must be strictly increasing")


class SignalGenerator(BaseStrategy):
    """
    Long/short entry signals for one StrategyMode.
    Bars before `warmup_bars` (EMA200 baseline) never signal.
    """

    def __init__(
        self,
        mode: StrategyMode = StrategyMode.ADAPTIVE,
        atr_len: int = 14,
        rsi_len: int = 14,
        warmup_bars: int = 200,
        breakout_window: int = 20,
        vol_gate_ratio: float = 0.8,
        vol_gate_window: int = 50,
        regime_config: RegimeConfig = RegimeConfig(),
    ):
        self.mode = parse_strategy_mode(mode)
        self.rule = RULES[self.mode]
        self.atr_len = atr_len
        self.rsi_len = rsi_len
        self.warmup_bars = max(warmup_bars, 1)
        self.breakout_window = breakout_window
        self.vol_gate_ratio = vol_gate_ratio
        self.vol_gate_window = vol_gate_window
        self.regime_config = regime_config

    @classmethod
    def from_config(cls, config: Config, mode: Optional[StrategyMode] = None) -> "SignalGenerator":
        return cls(
            mode=mode or config.strategy_mode,
            atr_len=config.atr_len,
            rsi_len=config.rsi_len,
            warmup_bars=config.warmup_bars,
            breakout_window=config.breakout_window,
            vol_gate_ratio=config.vol_gate_ratio,
            vol_gate_window=config.vol_gate_window,
            regime_config=RegimeConfig(
                lookback=config.regime_lookback,
                trend_threshold=config.regime_trend_threshold,
                slope_threshold=config.regime_slope_threshold,
                slope_offset=config.regime_slope_offset,
            ),
        )

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        validate_candles(df)
        out = compute_indicator_frame(df, self.atr_len, self.rsi_len, self.vol_gate_window)
        out = out.reset_index(drop=True)
        prior_high = out["high"].shift(1)
        prior_low = out["low"].shift(1)
        out["recent_high"] = prior_high.rolling(self.breakout_window, min_periods=1).max()
        out["recent_low"] = prior_low.rolling(self.breakout_window, min_periods=1).min()
        out["regime"] = detect_regimes(out["close"], self.regime_config)
        return out

    def _volatile_enough(self, atr: float, atr_ma: float) -> bool:
        return atr > atr_ma * self.vol_gate_ratio

    def signal_at(self, frame: pd.DataFrame, i: int) -> Signal:
        row = frame.iloc[i]
        regime: Regime = row["regime"]
        values = {k: float(row[k]) for k in _CONTEXT_FIELDS}
        long = short = False
        if i >= self.warmup_bars and not any(math.isnan(v) for v in values.values()):
            prev = frame.iloc[i - 1]
            ctx = BarContext(
                close=values["close"],
                volume=float(row["volume"]),
                prev_close=float(prev["close"]),
                prev_volume=float(prev["volume"]),
                rsi=values["rsi"],
                prev_rsi=float(prev["rsi"]),
                ema20=values["ema20"],
                prev_ema20=float(prev["ema20"]),
                ema50=values["ema50"],
                ema200=values["ema200"],
                recent_high=float(row["recent_high"]),
                recent_low=float(row["recent_low"]),
                regime=regime,
            )
            long, short = self.rule(ctx)
            if not self._volatile_enough(values["atr"], float(row["atr_ma"])):
                long = short = False
        return Signal(
            long=bool(long),
            short=bool(short),
            atr=values["atr"],
            rsi=values["rsi"],
            ema20=values["ema20"],
            ema50=values["ema50"],
            ema200=values["ema200"],
            regime=regime,
        )

    def generate_signals(self, df: pd.DataFrame) -> List[Signal]:
        frame = self.compute_indicators(df)
        return [self.signal_at(frame, i) for i in range(len(frame))]
