"""Analytics: performance metrics, reality check, JSON export."""

from perp_bot.analytics.metrics import (
    PerformanceMetrics,
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
from perp_bot.analytics.export import export_results, trades_frame, equity_frame

__all__ = [
    "PerformanceMetrics",
    "compute_metrics",
    "equity_returns",
    "expectancy",
    "max_drawdown",
    "profit_factor",
    "reality_check",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
    "export_results",
    "trades_frame",
    "equity_frame",
]
