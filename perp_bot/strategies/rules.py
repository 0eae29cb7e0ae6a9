"""
Entry rules, one pure function per StrategyMode.

Each rule maps a BarContext to (long, short). A rule never returns both True:
where long and short conditions could coincide the short side is built as
"short condition and not long".
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from perp_bot.core.types import Regime, StrategyMode


@dataclass(frozen=True)
class BarContext:
    """Indicator values for one bar plus the few previous-bar values the rules need."""
    close: float
    volume: float
    prev_close: float
    prev_volume: float
    rsi: float
    prev_rsi: float
    ema20: float
    prev_ema20: float
    ema50: float
    ema200: float
    recent_high: float  # max high of the previous breakout window, current bar excluded
    recent_low: float
    regime: Regime


EntryRule = Callable[[BarContext], Tuple[bool, bool]]


def _pullback_long(c: BarContext) -> bool:
    return c.ema200 < c.close < c.ema20 and 40 < c.rsi < 60 and c.rsi > c.prev_rsi


def _pullback_short(c: BarContext) -> bool:
    return c.ema20 < c.close < c.ema200 and 40 < c.rsi < 60 and c.rsi < c.prev_rsi


def _overbought_downtrend(c: BarContext) -> bool:
    return c.rsi > 60 and c.close < c.ema200 and c.ema20 < c.ema50


def mean_reversion(c: BarContext) -> Tuple[bool, bool]:
    long = c.rsi < 30 and c.close > c.ema200
    short = c.rsi > 70 and c.close < c.ema200
    return long, short


def momentum(c: BarContext) -> Tuple[bool, bool]:
    long = c.close > c.recent_high and c.rsi > 50 and c.close > c.ema200 and c.ema20 > c.ema50
    short = c.close < c.recent_low and c.rsi < 50 and c.close < c.ema200 and c.ema20 < c.ema50
    return long, short


def pullback(c: BarContext) -> Tuple[bool, bool]:
    return _pullback_long(c), _pullback_short(c)


def bear_market(c: BarContext) -> Tuple[bool, bool]:
    long = c.rsi < 25 and c.close > c.prev_close and c.volume > c.prev_volume * 1.2
    ema20_breakdown = c.close < c.ema20 and c.prev_close > c.prev_ema20 and c.close < c.ema200
    new_low = c.close < c.recent_low and c.close < c.ema200
    short = (_overbought_downtrend(c) or ema20_breakdown or new_low) and not long
    return long, short


def adaptive(c: BarContext) -> Tuple[bool, bool]:
    if c.regime is Regime.BULL:
        return _pullback_long(c), False
    if c.regime is Regime.BEAR:
        bounce = c.rsi < 25 and c.close > c.prev_close
        return bounce, _overbought_downtrend(c)
    return c.rsi < 30, c.rsi > 70


RULES: Dict[StrategyMode, EntryRule] = {
    StrategyMode.MEAN_REVERSION: mean_reversion,
    StrategyMode.MOMENTUM: momentum,
    StrategyMode.PULLBACK: pullback,
    StrategyMode.BEAR_MARKET: bear_market,
    StrategyMode.ADAPTIVE: adaptive,
}

_missing = set(StrategyMode) - set(RULES)
if _missing:
    raise RuntimeError(f"No entry rule registered for: {sorted(m.value for m in _missing)}")
