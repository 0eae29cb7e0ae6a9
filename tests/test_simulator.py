"""Tests for the position simulator and the batch backtest engine."""

import math

import numpy as np
import pytest

from perp_bot.core.config import ConfigError
from perp_bot.core.types import ExitReason, Regime, Side
from perp_bot.risk.model import RiskModel, RiskParams
from perp_bot.simulation.engine import BacktestEngine, PositionSimulator
from perp_bot.strategies.signal_generator import SignalGenerator

LONG_FILL = 100.0302  # 100 after entry slippage with ATR 1
SHORT_FILL = 99.9698


def _sim(leverage=1.0, capital=1000.0):
    return PositionSimulator(RiskModel(RiskParams(leverage=leverage)), initial_capital=capital)


def test_profit_protection_exit(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True, regime=Regime.BULL))
    pos = sim.position
    assert pos.side is Side.LONG
    assert pos.entry_price == pytest.approx(LONG_FILL)
    assert pos.trailing_stop == pytest.approx(LONG_FILL - 1.2)

    # +1.97 ATR -> tier 1.0 trail 0.2, x1.2 in a bull regime
    assert sim.on_bar(make_candle(102.0, 1), make_signal(regime=Regime.BULL)) is None
    assert sim.position.trailing_stop == pytest.approx(101.76)

    trade = sim.on_bar(make_candle(101.5, 2), make_signal(regime=Regime.BULL))
    assert trade.exit_reason is ExitReason.PROFIT_PROTECTION
    assert trade.exit_price == pytest.approx(101.46)
    assert trade.slippage == pytest.approx(0.3)
    assert trade.bars_held == 2
    assert trade.max_profit_atr == pytest.approx(102.0 - LONG_FILL)

    qty = (500.0 - 500.0 * 0.0004) / LONG_FILL
    expected = (101.46 - LONG_FILL) * qty - 101.46 * qty * 0.0004
    assert trade.pnl == pytest.approx(expected)
    assert trade.trade_return == pytest.approx(expected / (LONG_FILL * qty))
    assert sim.capital == pytest.approx(1000.0 + expected)
    assert sim.position is None


def test_initial_stop_exit(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    trade = sim.on_bar(make_candle(98.5, 1), make_signal())
    assert trade.exit_reason is ExitReason.INITIAL_STOP
    assert trade.exit_price == pytest.approx(LONG_FILL - 1.2 - 0.3)
    assert trade.pnl < 0


def test_short_profit_protection(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(short=True))
    assert sim.position.side is Side.SHORT
    assert sim.position.trailing_stop == pytest.approx(SHORT_FILL + 1.2)
    sim.on_bar(make_candle(97.0, 1), make_signal())
    # +2.97 ATR -> tier 2.0 trail 0.5, x0.8 in a range
    assert sim.position.trailing_stop == pytest.approx(97.4)
    trade = sim.on_bar(make_candle(97.5, 2), make_signal())
    assert trade.exit_reason is ExitReason.PROFIT_PROTECTION
    assert trade.exit_price == pytest.approx(97.7)
    assert trade.pnl > 0


def test_reentry_on_stop_exit_bar(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    trade = sim.on_bar(make_candle(98.5, 1), make_signal(short=True))
    assert trade is not None
    assert sim.position is not None and sim.position.side is Side.SHORT
    assert sim.position.entry_index == 1


def test_liquidation_loses_full_margin(make_candle, make_signal):
    sim = _sim(leverage=10)
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    pos = sim.position
    assert pos.liquidation_price == pytest.approx(LONG_FILL * 0.904)
    margin = pos.entry_price * pos.quantity

    trade = sim.on_bar(make_candle(80.0, 1), make_signal(long=True))
    assert trade.exit_reason is ExitReason.LIQUIDATION
    assert trade.pnl == pytest.approx(-margin)
    assert trade.trade_return == -1.0
    assert sim.capital == pytest.approx(1000.0 - margin)
    # no re-entry on the liquidation bar
    assert sim.position is None
    assert len(sim.equity_curve) == 2


def test_liquidation_checked_with_undefined_atr(make_candle, make_signal):
    sim = _sim(leverage=10)
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    trade = sim.on_bar(make_candle(80.0, 1), make_signal(atr=math.nan))
    assert trade.exit_reason is ExitReason.LIQUIDATION


def test_undefined_atr_bar_passes_through(make_candle, make_signal):
    sim = _sim()
    assert sim.on_bar(make_candle(100.0, 0), make_signal(long=True, atr=math.nan)) is None
    assert sim.position is None
    assert sim.equity_curve == [1000.0]
    assert sim.regime_log == ["RANGE"]


def test_funding_charged_per_completed_interval(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    trade = sim.on_bar(make_candle(98.5, 9), make_signal())
    notional = trade.exit_price * trade.quantity
    assert trade.funding_cost == pytest.approx(notional * 0.0001)


def test_trailing_stop_never_loosens(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True, regime=Regime.BULL))
    stops = [sim.position.trailing_stop]
    for hour, close in enumerate([101.0, 100.9, 102.0, 101.95, 103.0], start=1):
        assert sim.on_bar(make_candle(close, hour), make_signal(regime=Regime.BULL)) is None
        stops.append(sim.position.trailing_stop)
    assert stops == sorted(stops)
    assert stops[-1] == pytest.approx(102.4)


def test_uptrend_then_drop_exits_with_profit_protection(make_candles, make_signal):
    closes = list(100.0 * 1.005 ** np.arange(21)) + [100.0 * 1.005 ** 20 * 0.97]
    df = make_candles(closes)
    signals = [make_signal(long=(i == 0), atr=c * 0.01, regime=Regime.BULL) for i, c in enumerate(closes)]
    engine = BacktestEngine(SignalGenerator(), RiskModel(), initial_capital=1000.0)
    result = engine.run(df, signals)
    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.PROFIT_PROTECTION
    assert trade.pnl > 0


def test_snapshot_marks_open_position(make_candle, make_signal):
    sim = _sim()
    assert sim.snapshot().side is None
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    sim.on_bar(make_candle(100.5, 1), make_signal())
    snap = sim.snapshot()
    assert snap.side is Side.LONG
    assert snap.price == 100.5
    assert snap.net_pnl == pytest.approx(snap.gross_pnl - snap.exit_fee - snap.funding_cost)
    assert snap.projected_capital == pytest.approx(1000.0 + snap.net_pnl)


def test_force_close_adds_no_equity_point(make_candle, make_signal):
    sim = _sim()
    sim.on_bar(make_candle(100.0, 0), make_signal(long=True))
    trade = sim.force_close(100.2, make_candle(100.2, 1).time, ExitReason.MANUAL_SHUTDOWN)
    assert trade.exit_reason is ExitReason.MANUAL_SHUTDOWN
    assert trade.exit_price == 100.2
    assert len(sim.equity_curve) == 1
    assert sim.force_close(100.0, None, ExitReason.MANUAL_SHUTDOWN) is None


def test_end_of_data_closes_at_last_close(make_candles, make_signal):
    closes = [100.0, 100.1, 100.2, 100.3, 100.4]
    df = make_candles(closes)
    signals = [make_signal(long=(i == 0)) for i in range(len(closes))]
    result = BacktestEngine(SignalGenerator(), RiskModel(), 1000.0).run(df, signals)
    assert len(result.equity_curve) == 5
    assert len(result.trades) == 1
    assert result.trades[0].exit_reason is ExitReason.END_OF_DATA
    assert result.trades[0].exit_price == 100.4
    assert result.final_capital != result.equity_curve[-1]


def test_signal_count_must_match(make_candles, make_signal):
    df = make_candles([100.0] * 5)
    with pytest.raises(ValueError):
        BacktestEngine(SignalGenerator(), RiskModel()).run(df, [make_signal()] * 4)


def test_empty_data_rejected(make_candles):
    with pytest.raises(ConfigError):
        BacktestEngine(SignalGenerator(), RiskModel()).run(make_candles([100.0] * 5).iloc[:0])


@pytest.mark.parametrize("leverage", [1, 5])
def test_full_run_invariants(random_walk, leverage):
    df = random_walk(n=700, vol=0.02)
    engine = BacktestEngine(
        SignalGenerator(mode="mean_reversion"),
        RiskModel(RiskParams(leverage=leverage)),
        initial_capital=800.0,
    )
    first = engine.run(df)
    second = engine.run(df)
    assert len(first.equity_curve) == len(df)
    assert len(first.regime_log) == len(df)
    # deterministic
    assert first.trades == second.trades
    assert first.equity_curve == second.equity_curve
    # at most one position at a time
    for prev, nxt in zip(first.trades, first.trades[1:]):
        assert nxt.entry_time >= prev.exit_time
    for t in first.trades:
        if t.exit_reason is ExitReason.LIQUIDATION:
            assert t.trade_return == -1.0


def test_steady_uptrend_never_enters_adaptive(make_candles):
    # RSI stays at 100 and close never dips below EMA20, so the bull pullback rule cannot fire
    df = make_candles(100.0 * 1.005 ** np.arange(250))
    result = BacktestEngine(SignalGenerator(), RiskModel(), 800.0).run(df)
    assert result.trades == []
    assert result.equity_curve == [800.0] * 250
    assert result.final_capital == 800.0
    assert result.regime_log[-1] == "BULL"
