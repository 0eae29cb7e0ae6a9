"""Abstract strategy: indicators + signal generation."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List

import pandas as pd

from perp_bot.core.types import Signal


class BaseStrategy(ABC):
    """Strategy computes indicators and turns every bar into a Signal."""

    @abstractmethod
    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add indicator columns to OHLCV DataFrame. No lookahead."""
        pass

    @abstractmethod
    def generate_signals(self, df: pd.DataFrame) -> List[Signal]:
        """One Signal per row of df, each built only from rows up to itself."""
        pass

    def get_signal(self, df: pd.DataFrame) -> Signal:
        """Signal for the last row of df (expected to be a closed bar)."""
        return self.generate_signals(df)[-1]
