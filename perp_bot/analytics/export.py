"""Write trades and the equity curve to JSON files."""

from __future__ import annotations
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict

import pandas as pd

from perp_bot.core.types import SimulationResult

logger = logging.getLogger("perp_bot.analytics.export")


def trades_frame(result: SimulationResult) -> pd.DataFrame:
    rows = []
    for t in result.trades:
        row = asdict(t)
        row["side"] = t.side.value
        row["exit_reason"] = t.exit_reason.value
        row["regime"] = t.regime.label
        rows.append(row)
    return pd.DataFrame(rows)


def equity_frame(result: SimulationResult) -> pd.DataFrame:
    n = len(result.equity_curve)
    regimes = result.regime_log + ["UNKNOWN"] * (n - len(result.regime_log))
    return pd.DataFrame({"index": range(n), "equity": result.equity_curve, "regime": regimes[:n]})


def export_results(result: SimulationResult, output_dir: Path, prefix: str = "backtest") -> Dict[str, Path]:
    """Write <prefix>_trades.json and <prefix>_equity_curve.json; returns the paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "trades": output_dir / f"{prefix}_trades.json",
        "equity_curve": output_dir / f"{prefix}_equity_curve.json",
    }
    trades_frame(result).to_json(paths["trades"], orient="records", date_format="iso", indent=2)
    equity_frame(result).to_json(paths["equity_curve"], orient="records", indent=2)
    for name, path in paths.items():
        logger.info("Saved %s to %s", name, path)
    return paths
