"""
Core data types for candles, signals, positions, and trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


class Regime(str, Enum):
    BULL = "bull"
    BEAR = "bear"
    RANGE = "range"

    @property
    def label(self) -> str:
        return self.value.upper()


class StrategyMode(str, Enum):
    ADAPTIVE = "adaptive"
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean_reversion"
    PULLBACK = "pullback"
    BEAR_MARKET = "bear_market"


class ExitReason(str, Enum):
    INITIAL_STOP = "initial_stop"
    PROFIT_PROTECTION = "profit_protection"
    LIQUIDATION = "liquidation"
    END_OF_DATA = "end_of_data"
    MANUAL_SHUTDOWN = "manual_shutdown"


@dataclass(frozen=True)
class Candle:
    """OHLCV candle."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: Optional[datetime] = None


@dataclass(frozen=True)
class Signal:
    """Entry decision for one bar plus the indicator values it was built from."""
    long: bool
    short: bool
    atr: float
    rsi: float
    ema20: float
    ema50: float
    ema200: float
    regime: Regime = Regime.RANGE

    @property
    def side(self) -> Optional[Side]:
        if self.long:
            return Side.LONG
        if self.short:
            return Side.SHORT
        return None


@dataclass
class Position:
    """Open position state. Lives only inside the simulator."""
    side: Side
    entry_price: float
    entry_index: int
    entry_time: datetime
    quantity: float
    trailing_stop: float
    liquidation_price: float
    max_profit_atr: float = 0.0

    @property
    def margin(self) -> float:
        return self.entry_price * self.quantity


@dataclass(frozen=True)
class Trade:
    """Closed trade for analytics."""
    entry_time: datetime
    exit_time: datetime
    side: Side
    entry_price: float
    exit_price: float
    quantity: float
    bars_held: int
    pnl: float
    trade_return: float  # net pnl / margin; -1.0 on liquidation
    exit_reason: ExitReason
    regime: Regime
    funding_cost: float = 0.0
    slippage: float = 0.0
    max_profit_atr: float = 0.0


@dataclass
class SimulationResult:
    """Output of a batch or live run."""
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    regime_log: List[str] = field(default_factory=list)
    final_capital: float = 0.0
