"""Core: config, types, logging."""

from perp_bot.core.config import load_config, Config, ConfigError
from perp_bot.core.types import (
    Candle,
    ExitReason,
    Position,
    Regime,
    Side,
    Signal,
    SimulationResult,
    StrategyMode,
    Trade,
)
from perp_bot.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "ConfigError",
    "Candle",
    "ExitReason",
    "Position",
    "Regime",
    "Side",
    "Signal",
    "SimulationResult",
    "StrategyMode",
    "Trade",
    "setup_logging",
]
