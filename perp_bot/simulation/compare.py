"""Run every strategy mode over the same candles and rank them by return."""

from __future__ import annotations
import logging
from typing import List

import pandas as pd

from perp_bot.analytics.metrics import compute_metrics
from perp_bot.core.config import Config
from perp_bot.core.types import StrategyMode
from perp_bot.risk.model import RiskModel, RiskParams
from perp_bot.simulation.engine import BacktestEngine
from perp_bot.strategies.signal_generator import SignalGenerator

logger = logging.getLogger("perp_bot.simulation.compare")


def compare_strategies(df: pd.DataFrame, config: Config) -> List[dict]:
    """One row per StrategyMode, best total return first."""
    risk_model = RiskModel(RiskParams.from_config(config))
    rows = []
    for mode in StrategyMode:
        logger.info("Backtesting %s...", mode.value)
        engine = BacktestEngine(
            strategy=SignalGenerator.from_config(config, mode=mode),
            risk_model=risk_model,
            initial_capital=config.initial_capital,
        )
        result = engine.run(df)
        m = compute_metrics(result, config.initial_capital, df)
        rows.append({
            "strategy": mode.value,
            "return_pct": m.total_return_pct,
            "trades": m.total_trades,
            "win_rate_pct": m.win_rate * 100,
            "protection_rate_pct": m.profit_protection_rate * 100,
            "sharpe": m.sharpe_ratio,
            "max_drawdown_pct": m.max_drawdown_pct,
            "liquidations": m.liquidations,
        })
    rows.sort(key=lambda r: r["return_pct"], reverse=True)
    return rows
