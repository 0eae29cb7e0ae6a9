"""Strategies: base interface, entry rules and the signal generator."""

from perp_bot.strategies.base import BaseStrategy
from perp_bot.strategies.rules import RULES, BarContext
from perp_bot.strategies.signal_generator import SignalGenerator, validate_candles

__all__ = ["BaseStrategy", "RULES", "BarContext", "SignalGenerator", "validate_candles"]
