"""
Forward test (paper trading) on live candles.

One loop owns all simulator state: fetch -> evaluate the newest closed bar ->
maybe emit a status snapshot -> wait. Shutdown is a CancellationToken checked
at the top of every iteration; the forced close runs in finalize() on the same
thread after the loop exits.
"""

from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Optional

import pandas as pd

from perp_bot.core.types import Candle, ExitReason, Position, SimulationResult, Trade
from perp_bot.execution.base import MarketDataClient
from perp_bot.risk.model import RiskModel
from perp_bot.simulation.engine import PositionSimulator, StatusSnapshot
from perp_bot.strategies.signal_generator import SignalGenerator

logger = logging.getLogger("perp_bot.simulation.forward")


class CancellationToken:
    """Set from a signal handler or another thread; read by the loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; returns early (True) once cancelled."""
        return self._event.wait(timeout)


def _candle_from_row(row: pd.Series) -> Candle:
    return Candle(
        time=row["time"],
        open=float(row["open"]),
        high=float(row["high"]),
        low=float(row["low"]),
        close=float(row["close"]),
        volume=float(row["volume"]),
        close_time=row["close_time"] if "close_time" in row.index else None,
    )


class ForwardTester:
    """Paper-trades one symbol on the newest closed candle of every poll."""

    def __init__(
        self,
        client: MarketDataClient,
        strategy: SignalGenerator,
        risk_model: RiskModel,
        symbol: str,
        interval: str,
        initial_capital: float = 10000.0,
        poll_interval_seconds: float = 60.0,
        status_interval_seconds: float = 300.0,
        candle_limit: int = 501,
        status_observer: Optional[Callable[[StatusSnapshot], None]] = None,
        trade_observer: Optional[Callable[[Trade], None]] = None,
        entry_observer: Optional[Callable[[Position], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.strategy = strategy
        self.symbol = symbol
        self.interval = interval
        self.poll_interval_seconds = poll_interval_seconds
        self.status_interval_seconds = status_interval_seconds
        self.candle_limit = candle_limit
        self.status_observer = status_observer
        self.trade_observer = trade_observer
        self.entry_observer = entry_observer
        self.clock = clock
        self.simulator = PositionSimulator(risk_model, initial_capital, verbose=True)
        self._last_close_time = None

    @property
    def min_candles(self) -> int:
        """Fetched candles needed: the warm-up window plus the still-forming bar."""
        return self.strategy.warmup_bars + 2

    def poll_once(self) -> bool:
        """One iteration. Returns True if a new closed bar was processed."""
        try:
            raw = self.client.fetch_latest(self.symbol, self.interval, self.candle_limit)
            if raw is None or len(raw) < self.min_candles:
                logger.warning(
                    "Fetch returned %d candles (need %d), retrying",
                    0 if raw is None else len(raw), self.min_candles,
                )
                return False
            closed = raw.iloc[:-1].reset_index(drop=True)
            latest = closed.iloc[-1]
            close_time = latest["close_time"] if "close_time" in closed.columns else latest["time"]
            if self._last_close_time is not None and close_time <= self._last_close_time:
                return False

            signal = self.strategy.get_signal(closed)
            candle = _candle_from_row(latest)
            logger.info(
                "[%s] %.4f | %s | capital %.2f | RSI %.1f | ATR %.4f",
                candle.time, candle.close, signal.regime.label, self.simulator.capital,
                signal.rsi, signal.atr,
            )
            trade = self.simulator.on_bar(candle, signal)
            # a bar that failed to evaluate stays eligible for the next poll
            self._last_close_time = close_time
            if trade is not None and self.trade_observer is not None:
                self.trade_observer(trade)
            pos = self.simulator.position
            if pos is not None and pos.entry_index == self.simulator.bar_index and self.entry_observer is not None:
                self.entry_observer(pos)
            return True
        except Exception as e:
            logger.exception("Live loop error: %s", e)
            return False

    def _emit_status(self) -> None:
        if self.status_observer is None:
            return
        try:
            self.status_observer(self.simulator.snapshot())
        except Exception as e:
            logger.exception("Status observer failed: %s", e)

    def run(self, token: CancellationToken, max_iterations: Optional[int] = None) -> SimulationResult:
        """Poll until cancelled (or max_iterations), then finalize."""
        logger.info(
            "Forward test %s %s | %s | leverage %sx | capital %.2f",
            self.symbol, self.interval, self.strategy.mode.value,
            self.simulator.leverage, self.simulator.capital,
        )
        last_status = self.clock()
        iterations = 0
        while not token.cancelled:
            self.poll_once()
            iterations += 1
            now = self.clock()
            if now - last_status >= self.status_interval_seconds:
                self._emit_status()
                last_status = now
            if max_iterations is not None and iterations >= max_iterations:
                break
            token.wait(self.poll_interval_seconds)
        return self.finalize()

    def _latest_closed_candle(self) -> Optional[Candle]:
        try:
            raw = self.client.fetch_latest(self.symbol, self.interval, 10)
            if raw is not None and len(raw) >= 2:
                return _candle_from_row(raw.iloc[-2])
        except Exception as e:
            logger.exception("Could not fetch shutdown price: %s", e)
        return self.simulator.last_candle

    def finalize(self) -> SimulationResult:
        """Close any open position at the latest available price and return the result."""
        sim = self.simulator
        if sim.position is not None:
            candle = self._latest_closed_candle()
            if candle is not None:
                trade = sim.force_close(candle.close, candle.time, ExitReason.MANUAL_SHUTDOWN)
                if trade is not None and self.trade_observer is not None:
                    self.trade_observer(trade)
        result = sim.result()
        total_return = (result.final_capital - sim.initial_capital) / sim.initial_capital * 100
        logger.info(
            "Shutdown | final capital %.2f | return %.2f%% | trades %d",
            result.final_capital, total_return, len(result.trades),
        )
        if result.trades:
            wins = sum(1 for t in result.trades if t.pnl > 0)
            protected = sum(1 for t in result.trades if t.exit_reason is ExitReason.PROFIT_PROTECTION)
            logger.info(
                "Win rate %.1f%% | profit protection exits %d (%.1f%%)",
                wins / len(result.trades) * 100, protected, protected / len(result.trades) * 100,
            )
        return result
