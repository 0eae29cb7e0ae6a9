"""Risk model: slippage, liquidation, funding, sizing, dynamic trailing stop."""

from perp_bot.risk.model import EntryPlan, ProfitTier, RegimeMultiplier, RiskModel, RiskParams

__all__ = ["EntryPlan", "ProfitTier", "RegimeMultiplier", "RiskModel", "RiskParams"]
