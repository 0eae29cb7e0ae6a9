"""
Risk model for leveraged perpetuals: slippage, liquidation, funding,
position sizing and the two-tier dynamic trailing stop.

Stateless: every method is a pure function of its arguments and the
immutable RiskParams given at construction.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from perp_bot.core.config import (
    Config,
    ConfigError,
    DEFAULT_PROFIT_TIERS,
    DEFAULT_REGIME_MULTIPLIERS,
    DEFAULT_REGIME_POSITION_PCT,
)
from perp_bot.core.types import Regime, Side


@dataclass(frozen=True)
class ProfitTier:
    """Once profit reaches `profit_atr` ATRs, trail at `trail_atr` ATRs."""
    profit_atr: float
    trail_atr: float


@dataclass(frozen=True)
class RegimeMultiplier:
    initial: float = 1.0
    profit: float = 1.0


def _default_tiers() -> Tuple[ProfitTier, ...]:
    return tuple(ProfitTier(p, t) for p, t in DEFAULT_PROFIT_TIERS)


def _default_multipliers() -> Mapping[Regime, RegimeMultiplier]:
    return {r: RegimeMultiplier(i, p) for r, (i, p) in DEFAULT_REGIME_MULTIPLIERS.items()}


@dataclass(frozen=True)
class RiskParams:
    leverage: float = 1.0
    taker_fee: float = 0.0004
    maintenance_margin_rate: float = 0.004
    base_slippage: float = 0.0003
    vol_slippage_mult: float = 0.0002
    stop_slippage_atr_mult: float = 0.3
    funding_rate: float = 0.0001
    funding_interval_hours: float = 8.0
    profit_threshold_atr: float = 0.2
    initial_stop_atr: float = 1.2
    profit_trailing_atr: float = 0.4
    profit_tiers: Tuple[ProfitTier, ...] = field(default_factory=_default_tiers)
    regime_multipliers: Mapping[Regime, RegimeMultiplier] = field(default_factory=_default_multipliers)
    use_regime_sizing: bool = True
    regime_position_pct: Mapping[Regime, float] = field(
        default_factory=lambda: dict(DEFAULT_REGIME_POSITION_PCT)
    )
    default_position_pct: float = 0.5

    def __post_init__(self):
        if self.leverage <= 0:
            raise ConfigError(f"leverage must be positive, got {self.leverage}")
        if self.funding_interval_hours <= 0:
            raise ConfigError("funding_interval_hours must be positive")
        # Tier lookup relies on ascending thresholds
        object.__setattr__(
            self, "profit_tiers", tuple(sorted(self.profit_tiers, key=lambda t: t.profit_atr))
        )
        missing = set(Regime) - set(self.regime_multipliers)
        if missing:
            raise ConfigError(f"regime_multipliers missing: {sorted(r.value for r in missing)}")
        # Read-only views over private copies
        object.__setattr__(self, "regime_multipliers", MappingProxyType(dict(self.regime_multipliers)))
        object.__setattr__(self, "regime_position_pct", MappingProxyType(dict(self.regime_position_pct)))

    @classmethod
    def from_config(cls, config: Config) -> "RiskParams":
        return cls(
            leverage=config.leverage,
            taker_fee=config.taker_fee,
            maintenance_margin_rate=config.maintenance_margin_rate,
            base_slippage=config.base_slippage,
            vol_slippage_mult=config.vol_slippage_mult,
            stop_slippage_atr_mult=config.stop_slippage_atr_mult,
            funding_rate=config.funding_rate,
            funding_interval_hours=config.funding_interval_hours,
            profit_threshold_atr=config.profit_threshold_atr,
            initial_stop_atr=config.initial_stop_atr,
            profit_trailing_atr=config.profit_trailing_atr,
            profit_tiers=tuple(ProfitTier(p, t) for p, t in config.profit_tiers),
            regime_multipliers={
                r: RegimeMultiplier(i, p) for r, (i, p) in config.regime_multipliers.items()
            },
            use_regime_sizing=config.use_regime_sizing,
            regime_position_pct=dict(config.regime_position_pct),
            default_position_pct=config.default_position_pct,
        )


@dataclass
class EntryPlan:
    """Result of sizing an entry: allowed or rejected + reason."""
    allowed: bool
    side: Side = Side.LONG
    entry_price: float = 0.0
    quantity: float = 0.0
    entry_fee: float = 0.0
    trailing_stop: float = 0.0
    liquidation_price: float = 0.0
    reason: str = ""


class RiskModel:
    """
    Prices fills and stops for one position at a time. Holds no position state;
    the simulator owns that and asks this class for numbers.
    """

    def __init__(self, params: RiskParams = None):
        self.params = params or RiskParams()

    def entry_price(self, price: float, side: Side, atr: float) -> float:
        """Fill price after volatility-scaled slippage: buys pay up, sells receive less."""
        p = self.params
        slip = p.base_slippage + (atr / price) * p.vol_slippage_mult
        return price * (1 + slip) if side is Side.LONG else price * (1 - slip)

    def stop_fill_price(self, stop_price: float, side: Side, atr: float) -> float:
        """Stops fill worse than their trigger by stop_slippage_atr_mult ATRs."""
        slip = atr * self.params.stop_slippage_atr_mult
        return max(0.0, stop_price - slip) if side is Side.LONG else stop_price + slip

    def liquidation_price(self, entry_price: float, side: Side) -> float:
        p = self.params
        if side is Side.LONG:
            return entry_price * (1 - 1 / p.leverage + p.maintenance_margin_rate)
        return entry_price * (1 + 1 / p.leverage - p.maintenance_margin_rate)

    def is_liquidated(self, price: float, liquidation_price: float, side: Side) -> bool:
        if side is Side.LONG:
            return price <= liquidation_price
        return price >= liquidation_price

    def funding_cost(self, notional: float, hours_held: float) -> float:
        """Charged only for completed funding intervals."""
        p = self.params
        periods = math.floor(max(hours_held, 0.0) / p.funding_interval_hours)
        return notional * p.funding_rate * periods

    def position_pct(self, regime: Regime) -> float:
        p = self.params
        if p.use_regime_sizing:
            return p.regime_position_pct.get(regime, p.default_position_pct)
        return p.default_position_pct

    def profit_in_atr(self, price: float, entry_price: float, atr: float, side: Side) -> float:
        if not atr > 0:
            return 0.0
        return (price - entry_price) * side.sign / atr

    def trail_distance_atr(self, profit_atr: float, regime: Regime) -> float:
        """
        Stop distance in ATRs. Below the profit threshold: the wide initial stop.
        Above: the base trail, overridden by every reached tier in ascending
        order (the last reached tier wins), scaled by the regime's profit factor.
        """
        p = self.params
        mult = p.regime_multipliers[regime]
        if profit_atr < p.profit_threshold_atr:
            return p.initial_stop_atr * mult.initial
        trail = p.profit_trailing_atr
        for tier in p.profit_tiers:
            if profit_atr >= tier.profit_atr:
                trail = tier.trail_atr
        return trail * mult.profit

    def dynamic_trail(
        self,
        price: float,
        entry_price: float,
        atr: float,
        side: Side,
        regime: Regime,
    ) -> float:
        """Candidate stop for the current bar (before the monotonic update)."""
        profit_atr = self.profit_in_atr(price, entry_price, atr, side)
        distance = self.trail_distance_atr(profit_atr, regime) * atr
        return price - distance if side is Side.LONG else price + distance

    @staticmethod
    def tighten(current_stop: float, candidate: float, side: Side) -> float:
        """Stops only move in the position's favour."""
        if side is Side.LONG:
            return max(current_stop, candidate)
        return min(current_stop, candidate)

    def is_stop_hit(self, price: float, stop: float, side: Side) -> bool:
        if side is Side.LONG:
            return price <= stop
        return price >= stop

    def plan_entry(
        self,
        capital: float,
        price: float,
        atr: float,
        side: Side,
        regime: Regime,
    ) -> EntryPlan:
        """
        Size a new position: commit position_pct of capital as margin, pay the
        taker fee on the leveraged notional out of it, buy at the slipped price.
        """
        if capital <= 0:
            return EntryPlan(allowed=False, side=side, reason="no capital")
        if not (atr > 0 and price > 0):
            return EntryPlan(allowed=False, side=side, reason="undefined price or ATR")
        p = self.params
        trade_capital = capital * self.position_pct(regime)
        fill = self.entry_price(price, side, atr)
        entry_fee = trade_capital * p.leverage * p.taker_fee
        quantity = (trade_capital - entry_fee) / fill
        if quantity <= 0:
            return EntryPlan(allowed=False, side=side, reason="quantity <= 0")
        return EntryPlan(
            allowed=True,
            side=side,
            entry_price=fill,
            quantity=quantity,
            entry_fee=entry_fee,
            trailing_stop=self.dynamic_trail(fill, fill, atr, side, regime),
            liquidation_price=self.liquidation_price(fill, side),
        )
