"""
Performance metrics: Sharpe, Sortino, max drawdown, win rate, profit factor,
expectancy, plus perpetual-specific stats (liquidations, funding, profit
protection exits) and per-regime breakdown.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from perp_bot.core.types import ExitReason, SimulationResult


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_return_pct: float
    buy_hold_return_pct: float
    outperformance_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float
    total_pnl: float
    final_capital: float
    liquidations: int = 0
    profit_protection_exits: int = 0
    profit_protection_rate: float = 0.0
    avg_max_profit_atr: float = 0.0
    avg_slippage: float = 0.0
    total_funding_costs: float = 0.0
    regime_stats: Dict[str, dict] = field(default_factory=dict)


def sharpe_ratio(returns: List[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe. returns = list of period returns."""
    if not len(returns):
        return 0.0
    arr = np.array(returns)
    excess = arr - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def sortino_ratio(returns: List[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sortino (downside deviation)."""
    if not len(returns):
        return 0.0
    arr = np.array(returns)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def max_drawdown(equity: List[float]) -> float:
    """Max drawdown in percent, as a negative number (e.g. -15.0)."""
    if not len(equity):
        return 0.0
    arr = np.array(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak != 0, peak, 1)
    return float(np.min(dd)) * 100.0


def equity_returns(equity: List[float]) -> List[float]:
    """Bar-to-bar returns of an equity curve; bars after a zero balance count as 0."""
    arr = np.array(equity, dtype=float)
    if len(arr) < 2:
        return []
    prev = arr[:-1]
    rets = np.where(prev != 0, (arr[1:] - prev) / np.where(prev != 0, prev, 1), 0.0)
    return rets.tolist()


def win_rate(pnls: List[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: List[float]) -> float:
    """Gross profit / gross loss. Returns inf if only wins."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: List[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def regime_breakdown(result: SimulationResult) -> Dict[str, dict]:
    """PnL sum, count, mean and win rate per exit regime."""
    stats: Dict[str, dict] = {}
    for t in result.trades:
        s = stats.setdefault(t.regime.label, {"sum": 0.0, "count": 0, "wins": 0})
        s["sum"] += t.pnl
        s["count"] += 1
        if t.pnl > 0:
            s["wins"] += 1
    for s in stats.values():
        s["mean"] = s["sum"] / s["count"]
        s["win_rate"] = s["wins"] / s["count"]
    return stats


def compute_metrics(
    result: SimulationResult,
    initial_capital: float,
    candles: Optional[pd.DataFrame] = None,
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """Full metrics for one run. Buy & hold needs the candles."""
    trades = result.trades
    pnls = [t.pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    total_return_pct = (result.final_capital - initial_capital) / initial_capital * 100.0
    buy_hold_pct = 0.0
    if candles is not None and len(candles) > 1:
        first, last = float(candles["close"].iloc[0]), float(candles["close"].iloc[-1])
        buy_hold_pct = (last - first) / first * 100.0 if first else 0.0
    rets = equity_returns(result.equity_curve)
    protected = sum(1 for t in trades if t.exit_reason is ExitReason.PROFIT_PROTECTION)
    slipped = [abs(t.slippage) for t in trades if t.slippage]
    return PerformanceMetrics(
        total_return_pct=total_return_pct,
        buy_hold_return_pct=buy_hold_pct,
        outperformance_pct=total_return_pct - buy_hold_pct,
        sharpe_ratio=sharpe_ratio(rets, periods_per_year=periods_per_year),
        sortino_ratio=sortino_ratio(rets, periods_per_year=periods_per_year),
        max_drawdown_pct=max_drawdown(result.equity_curve),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        total_pnl=sum(pnls),
        final_capital=result.final_capital,
        liquidations=sum(1 for t in trades if t.exit_reason is ExitReason.LIQUIDATION),
        profit_protection_exits=protected,
        profit_protection_rate=protected / len(trades) if trades else 0.0,
        avg_max_profit_atr=float(np.mean([t.max_profit_atr for t in trades])) if trades else 0.0,
        avg_slippage=float(np.mean(slipped)) if slipped else 0.0,
        total_funding_costs=sum(t.funding_cost for t in trades),
        regime_stats=regime_breakdown(result),
    )


def reality_check(m: PerformanceMetrics) -> List[str]:
    """Warnings for results that rarely survive live trading. Empty list = looks plausible."""
    warns = []
    if m.total_trades == 0:
        return warns
    if m.win_rate > 0.70:
        warns.append("Win rate > 70% unusual for scalping")
    if m.sharpe_ratio > 3.0:
        warns.append("Sharpe > 3 extremely rare in live trading")
    if abs(m.max_drawdown_pct) < 5.0:
        warns.append("Max drawdown < 5% unrealistic for crypto")
    if m.profit_factor > 3.0:
        warns.append("Profit factor > 3 rarely sustained")
    if m.liquidations > m.total_trades * 0.1:
        warns.append("Liquidation rate > 10% very dangerous")
    if m.total_pnl != 0 and m.total_funding_costs / abs(m.total_pnl) > 0.2:
        warns.append("Funding costs > 20% of P&L")
    return warns
