"""Simulation: position state machine, batch backtest, forward test, comparison."""

from perp_bot.simulation.engine import (
    BacktestEngine,
    PositionSimulator,
    StatusSnapshot,
    frame_to_candles,
)
from perp_bot.simulation.forward import CancellationToken, ForwardTester
from perp_bot.simulation.compare import compare_strategies

__all__ = [
    "BacktestEngine",
    "PositionSimulator",
    "StatusSnapshot",
    "frame_to_candles",
    "CancellationToken",
    "ForwardTester",
    "compare_strategies",
]
