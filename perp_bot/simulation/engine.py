"""
Position simulation: one FLAT/OPEN state machine fed bar by bar, shared by the
batch backtest and the live forward test.

Per bar, with a position open, in this order:
  1. liquidation (close through the liquidation price) -> full margin lost
  2. trailing stop recomputed and only ever tightened
  3. close through the stop -> exit at the slipped stop price
With no position (including right after a stop exit) a signal opens one.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

import pandas as pd

from perp_bot.core.types import (
    Candle,
    ExitReason,
    Position,
    Regime,
    Side,
    Signal,
    SimulationResult,
    Trade,
)
from perp_bot.risk.model import RiskModel
from perp_bot.strategies.base import BaseStrategy
from perp_bot.strategies.signal_generator import validate_candles

logger = logging.getLogger("perp_bot.simulation")


def frame_to_candles(df: pd.DataFrame) -> Iterator[Candle]:
    """Yield Candle objects from an OHLCV DataFrame (close_time optional)."""
    has_close_time = "close_time" in df.columns
    for row in df.itertuples(index=False):
        yield Candle(
            time=row.time,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            close_time=row.close_time if has_close_time else None,
        )


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> float:
    if start is None or end is None:
        return 0.0
    return max((end - start).total_seconds() / 3600.0, 0.0)


def _usable(atr: float) -> bool:
    return not math.isnan(atr) and atr > 0


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-only view of the simulator, marked to the last processed close."""
    time: Optional[datetime]
    capital: float
    initial_capital: float
    price: Optional[float]
    side: Optional[Side] = None
    entry_price: float = 0.0
    quantity: float = 0.0
    trailing_stop: float = 0.0
    liquidation_price: float = 0.0
    profit_atr: float = 0.0
    max_profit_atr: float = 0.0
    gross_pnl: float = 0.0
    exit_fee: float = 0.0
    funding_cost: float = 0.0
    net_pnl: float = 0.0
    trades: int = 0

    @property
    def projected_capital(self) -> float:
        return self.capital + self.net_pnl

    @property
    def total_return(self) -> float:
        return (self.projected_capital - self.initial_capital) / self.initial_capital


class PositionSimulator:
    """
    Owns capital, the (at most one) open position, trades, equity curve and
    regime log. Every processed bar appends exactly one equity value.
    """

    def __init__(self, risk_model: RiskModel, initial_capital: float = 10000.0, verbose: bool = False):
        self.risk = risk_model
        self.initial_capital = initial_capital
        self.capital = initial_capital
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []
        self.equity_curve: List[float] = []
        self.regime_log: List[str] = []
        self.bar_index = -1
        self.last_candle: Optional[Candle] = None
        self.last_signal: Optional[Signal] = None
        self._event_level = logging.INFO if verbose else logging.DEBUG

    @property
    def leverage(self) -> float:
        return self.risk.params.leverage

    def on_bar(self, candle: Candle, signal: Signal) -> Optional[Trade]:
        """Process one closed bar. Returns the trade closed on this bar, if any."""
        self.bar_index += 1
        self.last_candle = candle
        self.last_signal = signal
        self.regime_log.append(signal.regime.label)
        closed: Optional[Trade] = None
        pos = self.position

        if pos is not None and self.risk.is_liquidated(candle.close, pos.liquidation_price, pos.side):
            closed = self._liquidate(candle, signal.regime)
        elif _usable(signal.atr):
            if pos is not None:
                closed = self._manage(candle, signal)
            if self.position is None and self.capital > 0 and signal.side is not None:
                self._enter(candle, signal)

        self.equity_curve.append(self.capital)
        return closed

    def _enter(self, candle: Candle, signal: Signal) -> None:
        plan = self.risk.plan_entry(self.capital, candle.close, signal.atr, signal.side, signal.regime)
        if not plan.allowed:
            logger.debug("Entry rejected at bar %d: %s", self.bar_index, plan.reason)
            return
        self.position = Position(
            side=plan.side,
            entry_price=plan.entry_price,
            entry_index=self.bar_index,
            entry_time=candle.time,
            quantity=plan.quantity,
            trailing_stop=plan.trailing_stop,
            liquidation_price=plan.liquidation_price,
        )
        protection_price = plan.entry_price + plan.side.sign * self.risk.params.profit_threshold_atr * signal.atr
        logger.log(
            self._event_level,
            "ENTER %s %sx @ %.4f qty=%.4f | stop %.4f | liq %.4f | protection from %.4f",
            plan.side.value.upper(), self.leverage, plan.entry_price, plan.quantity,
            plan.trailing_stop, plan.liquidation_price, protection_price,
        )

    def _manage(self, candle: Candle, signal: Signal) -> Optional[Trade]:
        pos = self.position
        price, atr = candle.close, signal.atr
        profit_atr = self.risk.profit_in_atr(price, pos.entry_price, atr, pos.side)
        pos.max_profit_atr = max(pos.max_profit_atr, profit_atr)

        candidate = self.risk.dynamic_trail(price, pos.entry_price, atr, pos.side, signal.regime)
        new_stop = self.risk.tighten(pos.trailing_stop, candidate, pos.side)
        if new_stop != pos.trailing_stop:
            logger.log(
                self._event_level, "Trailing tightened: %.4f (profit %.2f ATR)", new_stop, profit_atr
            )
            pos.trailing_stop = new_stop

        if not self.risk.is_stop_hit(price, pos.trailing_stop, pos.side):
            return None
        fill = self.risk.stop_fill_price(pos.trailing_stop, pos.side, atr)
        if pos.max_profit_atr > self.risk.params.profit_threshold_atr:
            reason = ExitReason.PROFIT_PROTECTION
        else:
            reason = ExitReason.INITIAL_STOP
        return self._close(
            candle.time, fill, reason, signal.regime, slippage=abs(pos.trailing_stop - fill)
        )

    def _liquidate(self, candle: Candle, regime: Regime) -> Trade:
        pos = self.position
        margin_lost = pos.entry_price * pos.quantity
        self.capital -= margin_lost
        trade = Trade(
            entry_time=pos.entry_time,
            exit_time=candle.time,
            side=pos.side,
            entry_price=pos.entry_price,
            exit_price=pos.liquidation_price,
            quantity=pos.quantity,
            bars_held=self.bar_index - pos.entry_index,
            pnl=-margin_lost,
            trade_return=-1.0,
            exit_reason=ExitReason.LIQUIDATION,
            regime=regime,
            max_profit_atr=pos.max_profit_atr,
        )
        self.trades.append(trade)
        self.position = None
        logger.warning(
            "LIQUIDATION at bar %d: close %.4f through %.4f, margin lost %.2f",
            self.bar_index, candle.close, trade.exit_price, margin_lost,
        )
        return trade

    def _close(
        self,
        exit_time: Optional[datetime],
        exit_price: float,
        reason: ExitReason,
        regime: Regime,
        slippage: float = 0.0,
    ) -> Trade:
        pos = self.position
        params = self.risk.params
        notional = exit_price * pos.quantity * params.leverage
        gross = (exit_price - pos.entry_price) * pos.side.sign * pos.quantity * params.leverage
        exit_fee = notional * params.taker_fee
        funding = self.risk.funding_cost(notional, hours_between(pos.entry_time, exit_time))
        net = gross - exit_fee - funding
        self.capital += net
        trade = Trade(
            entry_time=pos.entry_time,
            exit_time=exit_time,
            side=pos.side,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            quantity=pos.quantity,
            bars_held=self.bar_index - pos.entry_index,
            pnl=net,
            trade_return=net / pos.margin,
            exit_reason=reason,
            regime=regime,
            funding_cost=funding,
            slippage=slippage,
            max_profit_atr=pos.max_profit_atr,
        )
        self.trades.append(trade)
        self.position = None
        logger.log(
            self._event_level,
            "EXIT %s @ %.4f | pnl %.2f (%.2f%%) | max profit %.2f ATR | %s",
            trade.side.value.upper(), exit_price, net, trade.trade_return * 100,
            trade.max_profit_atr, reason.value,
        )
        return trade

    def force_close(
        self,
        price: float,
        time: Optional[datetime],
        reason: ExitReason,
    ) -> Optional[Trade]:
        """Close any open position at `price` without slippage. No equity point is added."""
        if self.position is None:
            return None
        regime = self.last_signal.regime if self.last_signal is not None else Regime.RANGE
        return self._close(time, price, reason, regime)

    def snapshot(self) -> StatusSnapshot:
        """Mark the open position (if any) to the last processed close."""
        candle, pos = self.last_candle, self.position
        price = candle.close if candle is not None else None
        base = dict(
            time=candle.time if candle is not None else None,
            capital=self.capital,
            initial_capital=self.initial_capital,
            price=price,
            trades=len(self.trades),
        )
        if pos is None or price is None:
            return StatusSnapshot(**base)
        params = self.risk.params
        atr = self.last_signal.atr if self.last_signal is not None else float("nan")
        notional = price * pos.quantity * params.leverage
        gross = (price - pos.entry_price) * pos.side.sign * pos.quantity * params.leverage
        exit_fee = notional * params.taker_fee
        funding = self.risk.funding_cost(notional, hours_between(pos.entry_time, candle.time))
        return StatusSnapshot(
            side=pos.side,
            entry_price=pos.entry_price,
            quantity=pos.quantity,
            trailing_stop=pos.trailing_stop,
            liquidation_price=pos.liquidation_price,
            profit_atr=self.risk.profit_in_atr(price, pos.entry_price, atr, pos.side),
            max_profit_atr=pos.max_profit_atr,
            gross_pnl=gross,
            exit_fee=exit_fee,
            funding_cost=funding,
            net_pnl=gross - exit_fee - funding,
            **base,
        )

    def result(self) -> SimulationResult:
        return SimulationResult(
            trades=list(self.trades),
            equity_curve=list(self.equity_curve),
            regime_log=list(self.regime_log),
            final_capital=self.capital,
        )


class BacktestEngine:
    """
    Runs a strategy over historical candles once, start to end.
    Deterministic: same candles and parameters give the same trades and equity.
    """

    def __init__(
        self,
        strategy: BaseStrategy,
        risk_model: RiskModel,
        initial_capital: float = 10000.0,
    ):
        self.strategy = strategy
        self.risk_model = risk_model
        self.initial_capital = initial_capital

    def run(self, df: pd.DataFrame, signals: Optional[List[Signal]] = None) -> SimulationResult:
        """
        Run over an OHLCV DataFrame (time, open, high, low, close, volume).
        `signals` may be supplied precomputed, one per row.
        """
        validate_candles(df)
        if signals is None:
            signals = self.strategy.generate_signals(df)
        if len(signals) != len(df):
            raise ValueError(f"Expected {len(df)} signals, got {len(signals)}")
        sim = PositionSimulator(self.risk_model, self.initial_capital)
        last: Optional[Candle] = None
        for candle, signal in zip(frame_to_candles(df), signals):
            sim.on_bar(candle, signal)
            last = candle
        if sim.position is not None and last is not None:
            sim.force_close(last.close, last.time, ExitReason.END_OF_DATA)
        result = sim.result()
        logger.info(
            "Backtest done: %d bars, %d trades, final capital %.2f",
            len(df), len(result.trades), result.final_capital,
        )
        return result
