"""Unit tests for analytics.metrics and analytics.export."""

import json

import pandas as pd
import pytest

from perp_bot.analytics.export import export_results
from perp_bot.analytics.metrics import (
    compute_metrics,
    equity_returns,
    expectancy,
    max_drawdown,
    profit_factor,
    reality_check,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)
from perp_bot.core.types import ExitReason, Regime, Side, SimulationResult, Trade


def _trade(pnl, reason=ExitReason.INITIAL_STOP, regime=Regime.RANGE, funding=0.0, slippage=0.0, max_profit=0.0):
    t0 = pd.Timestamp("2025-01-01")
    return Trade(
        entry_time=t0, exit_time=t0 + pd.Timedelta(hours=3), side=Side.LONG,
        entry_price=100.0, exit_price=100.0 + pnl, quantity=1.0, bars_held=3,
        pnl=pnl, trade_return=pnl / 100.0, exit_reason=reason, regime=regime,
        funding_cost=funding, slippage=slippage, max_profit_atr=max_profit,
    )


def test_sharpe_ratio_empty():
    assert sharpe_ratio([]) == 0.0


def test_sharpe_ratio_constant():
    assert sharpe_ratio([0.01] * 10) == 0.0  # zero std


def test_sortino_without_losses_falls_back_to_sharpe():
    rets = [0.01, 0.02, 0.03]
    assert sortino_ratio(rets) == sharpe_ratio(rets)


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 0.75
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == float("inf")
    assert profit_factor([-5, -5]) == 0.0


def test_expectancy():
    assert expectancy([10, -5, 5]) == pytest.approx(10 / 3)
    assert expectancy([]) == 0.0


def test_max_drawdown():
    # equity 1 -> 1.2 -> 1.0 -> 1.1  =>  peak 1.2, dd (1.0-1.2)/1.2 = -16.67%
    cum = [1.0, 1.2, 1.0, 1.1]
    assert max_drawdown(cum) == pytest.approx(-16.666, rel=0.01)


def test_equity_returns_after_wipeout():
    assert equity_returns([100.0, 0.0, 0.0]) == [-1.0, 0.0]
    assert equity_returns([100.0]) == []


def test_compute_metrics():
    trades = [
        _trade(10.0, ExitReason.PROFIT_PROTECTION, Regime.BULL, funding=0.5, slippage=0.3, max_profit=2.0),
        _trade(-5.0, ExitReason.INITIAL_STOP, Regime.RANGE, slippage=0.3),
        _trade(15.0, ExitReason.PROFIT_PROTECTION, Regime.BULL, funding=0.5, max_profit=3.0),
        _trade(-100.0, ExitReason.LIQUIDATION, Regime.BEAR),
    ]
    result = SimulationResult(
        trades=trades, equity_curve=[1000.0, 1010.0, 1005.0, 1020.0, 920.0],
        regime_log=["BULL"] * 5, final_capital=920.0,
    )
    candles = pd.DataFrame({"close": [100.0, 110.0]})
    m = compute_metrics(result, 1000.0, candles)
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.win_rate == 0.5
    assert m.total_return_pct == pytest.approx(-8.0)
    assert m.buy_hold_return_pct == pytest.approx(10.0)
    assert m.outperformance_pct == pytest.approx(-18.0)
    assert m.liquidations == 1
    assert m.profit_protection_exits == 2
    assert m.profit_protection_rate == 0.5
    assert m.total_funding_costs == pytest.approx(1.0)
    assert m.avg_slippage == pytest.approx(0.3)
    assert m.avg_max_profit_atr == pytest.approx(1.25)
    assert m.regime_stats["BULL"]["count"] == 2
    assert m.regime_stats["BULL"]["win_rate"] == 1.0
    assert m.regime_stats["BEAR"]["sum"] == -100.0
    assert m.max_drawdown_pct == pytest.approx((920.0 - 1020.0) / 1020.0 * 100)


def test_compute_metrics_no_trades():
    result = SimulationResult(equity_curve=[1000.0, 1000.0], regime_log=["RANGE"] * 2, final_capital=1000.0)
    m = compute_metrics(result, 1000.0)
    assert m.total_trades == 0
    assert m.total_return_pct == 0.0
    assert m.profit_protection_rate == 0.0
    assert reality_check(m) == []


def test_reality_check_flags_liquidations():
    trades = [_trade(-100.0, ExitReason.LIQUIDATION)] * 2 + [_trade(5.0)] * 3
    result = SimulationResult(trades=trades, equity_curve=[1000.0, 700.0], final_capital=815.0)
    warnings = reality_check(compute_metrics(result, 1000.0))
    assert any("Liquidation" in w for w in warnings)


def test_export_results(tmp_path):
    result = SimulationResult(
        trades=[_trade(10.0, ExitReason.PROFIT_PROTECTION, Regime.BULL)],
        equity_curve=[1000.0, 1010.0], regime_log=["BULL", "BULL"], final_capital=1010.0,
    )
    paths = export_results(result, tmp_path / "out", prefix="forward")
    assert paths["trades"].name == "forward_trades.json"
    trades = json.loads(paths["trades"].read_text())
    assert trades[0]["exit_reason"] == "profit_protection"
    assert trades[0]["regime"] == "BULL"
    equity = json.loads(paths["equity_curve"].read_text())
    assert [row["equity"] for row in equity] == [1000.0, 1010.0]
