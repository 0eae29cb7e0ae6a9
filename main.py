#!/usr/bin/env python3
"""
Perpetual futures strategy simulator CLI: backtest | compare | live
Usage:
  python main.py backtest [--config config.yaml]
  python main.py compare [--config config.yaml]
  python main.py live [--config config.yaml]
"""

from __future__ import annotations
import argparse
import logging
import signal
import sys
from pathlib import Path

import pandas as pd

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from perp_bot.analytics.export import export_results
from perp_bot.analytics.metrics import compute_metrics, reality_check
from perp_bot.core.config import Config, ConfigError, load_config
from perp_bot.core.logger import setup_logging
from perp_bot.execution.binance_data import BinanceMarketData
from perp_bot.risk.model import RiskModel, RiskParams
from perp_bot.simulation.compare import compare_strategies
from perp_bot.simulation.engine import BacktestEngine
from perp_bot.simulation.forward import CancellationToken, ForwardTester
from perp_bot.strategies.signal_generator import SignalGenerator
from perp_bot.utils.telegram import TelegramNotifier

logger = logging.getLogger("perp_bot")


def _load(config_path: Path | None) -> Config:
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    return config


def _historical_candles(config: Config) -> pd.DataFrame:
    if not config.start_date or not config.end_date:
        raise ConfigError("backtest.start_date and backtest.end_date are required")
    client = BinanceMarketData(cache_dir=config.cache_dir)
    return client.fetch_range(config.symbol, config.interval, config.start_date, config.end_date)


def run_backtest(config_path: Path | None) -> int:
    """Backtest the configured strategy over the configured date range."""
    config = _load(config_path)
    df = _historical_candles(config)
    engine = BacktestEngine(
        strategy=SignalGenerator.from_config(config),
        risk_model=RiskModel(RiskParams.from_config(config)),
        initial_capital=config.initial_capital,
    )
    result = engine.run(df)
    m = compute_metrics(result, config.initial_capital, df)

    print("\n--- Backtest Results ---")
    print(f"Strategy: {config.strategy_mode.value} | Leverage: {config.leverage}x | Regime sizing: {config.use_regime_sizing}")
    print(f"Initial: {config.initial_capital:.2f} | Final: {m.final_capital:.2f}")
    print(f"Return: {m.total_return_pct:.2f}% | Buy&Hold: {m.buy_hold_return_pct:.2f}% | Outperformance: {m.outperformance_pct:.2f}%")
    print(f"Trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades}, liquidations: {m.liquidations})")
    print(f"Win rate: {m.win_rate*100:.1f}% | Profit factor: {m.profit_factor:.2f}")
    print(f"Profit protection exits: {m.profit_protection_exits} ({m.profit_protection_rate*100:.1f}%) | Avg max profit: {m.avg_max_profit_atr:.2f} ATR")
    print(f"Avg win: {m.avg_win:.2f} | Avg loss: {m.avg_loss:.2f}")
    print(f"Max drawdown: {m.max_drawdown_pct:.2f}% | Sharpe: {m.sharpe_ratio:.2f}")
    print(f"Avg slippage: {m.avg_slippage:.4f} | Total funding: {m.total_funding_costs:.2f}")
    if m.regime_stats:
        print("\n--- Performance by Regime ---")
        print(pd.DataFrame(m.regime_stats).T.to_string())
    counts = pd.Series(result.regime_log).value_counts()
    print("\n--- Regime Distribution ---")
    for regime, count in counts.items():
        print(f"{regime}: {count} bars ({count / len(result.regime_log) * 100:.1f}%)")
    warnings = reality_check(m)
    for w in warnings:
        logger.warning("Reality check: %s", w)
    if not warnings:
        logger.info("Reality check passed")
    export_results(result, config.output_dir)
    return 0


def run_compare(config_path: Path | None) -> int:
    """Backtest every strategy mode on the same data."""
    config = _load(config_path)
    df = _historical_candles(config)
    rows = compare_strategies(df, config)
    table = pd.DataFrame(rows)
    print("\n--- Strategy comparison (sorted by return) ---")
    print(table.to_string(index=False, float_format=lambda v: f"{v:.2f}"))
    config.output_dir.mkdir(parents=True, exist_ok=True)
    table.to_json(config.output_dir / "strategy_comparison.json", orient="records", indent=2)
    return 0


def run_live(config_path: Path | None) -> int:
    """Paper-trade on live candles until SIGINT/SIGTERM."""
    config = _load(config_path)
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id, config.symbol)
    tester = ForwardTester(
        client=BinanceMarketData(),
        strategy=SignalGenerator.from_config(config),
        risk_model=RiskModel(RiskParams.from_config(config)),
        symbol=config.symbol,
        interval=config.interval,
        initial_capital=config.initial_capital,
        poll_interval_seconds=config.poll_interval_seconds,
        status_interval_seconds=config.status_interval_minutes * 60,
        candle_limit=config.candle_limit,
        status_observer=notifier.on_status,
        trade_observer=notifier.on_trade,
        entry_observer=notifier.on_entry,
    )
    token = CancellationToken()

    def _request_shutdown(signum, _frame):
        logger.info("Received signal %s, shutting down after the current iteration", signum)
        token.cancel()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)
    notifier.send(f"Paper trading starting | {config.symbol} {config.interval} | {config.strategy_mode.value} | {config.leverage}x")
    result = tester.run(token)
    export_results(result, config.output_dir, prefix="forward")
    notifier.send(f"Paper trading stopped | final capital {result.final_capital:.2f} | trades {len(result.trades)}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Perpetual futures strategy simulator")
    parser.add_argument("mode", choices=["backtest", "compare", "live"], help="Run backtest, compare or live paper trading")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    args = parser.parse_args()
    try:
        if args.mode == "backtest":
            return run_backtest(args.config)
        if args.mode == "compare":
            return run_compare(args.config)
        return run_live(args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
