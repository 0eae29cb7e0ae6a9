"""
Load configuration from config.yaml and .env. Env values override the file.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from perp_bot.core.types import Regime, StrategyMode
from perp_bot.utils.timeframes import timeframe_minutes


class ConfigError(ValueError):
    """Invalid configuration or unusable input data."""


DEFAULT_PROFIT_TIERS: Tuple[Tuple[float, float], ...] = ((1.0, 0.2), (2.0, 0.5), (3.0, 1.0))
DEFAULT_REGIME_MULTIPLIERS: Dict[Regime, Tuple[float, float]] = {
    Regime.BULL: (1.0, 1.2),
    Regime.BEAR: (1.0, 1.2),
    Regime.RANGE: (1.0, 0.8),
}
DEFAULT_REGIME_POSITION_PCT: Dict[Regime, float] = {
    Regime.BULL: 0.5,
    Regime.BEAR: 0.3,
    Regime.RANGE: 0.4,
}


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def parse_strategy_mode(value: Any) -> StrategyMode:
    if isinstance(value, StrategyMode):
        return value
    try:
        return StrategyMode(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in StrategyMode)
        raise ConfigError(f"Unknown strategy mode {value!r} (expected one of: {valid})") from None


def parse_profit_tiers(raw: Any) -> Tuple[Tuple[float, float], ...]:
    """Accepts [{profit_atr, trail_atr}, ...] or [[profit_atr, trail_atr], ...]."""
    if raw is None:
        return DEFAULT_PROFIT_TIERS
    tiers = []
    try:
        for item in raw:
            if isinstance(item, dict):
                tiers.append((float(item["profit_atr"]), float(item["trail_atr"])))
            else:
                threshold, trail = item
                tiers.append((float(threshold), float(trail)))
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Malformed profit tier table: {raw!r}") from e
    return tuple(sorted(tiers))


def parse_regime_multipliers(raw: Optional[dict]) -> Dict[Regime, Tuple[float, float]]:
    result = dict(DEFAULT_REGIME_MULTIPLIERS)
    for key, value in (raw or {}).items():
        try:
            regime = Regime(str(key).lower())
            result[regime] = (float(value.get("initial", 1.0)), float(value.get("profit", 1.0)))
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Malformed regime multiplier entry {key!r}: {value!r}") from e
    return result


def parse_regime_position_pct(raw: Optional[dict]) -> Dict[Regime, float]:
    result = dict(DEFAULT_REGIME_POSITION_PCT)
    for key, value in (raw or {}).items():
        try:
            result[Regime(str(key).lower())] = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Malformed position size entry {key!r}: {value!r}") from e
    return result


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: Any = "") -> str:
        return os.getenv(key, "" if default is None else str(default)).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        raw = os.getenv(key, str(default))
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {raw!r}") from None

    def env_float(key: str, default: float = 0.0) -> float:
        raw = os.getenv(key, str(default))
        try:
            return float(raw)
        except ValueError:
            raise ConfigError(f"{key} must be a number, got {raw!r}") from None

    market = data.get("market", {})
    strategy = data.get("strategy", {})
    risk = data.get("risk", {})
    backtest = data.get("backtest", {})
    live = data.get("live", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})

    return Config(
        symbol=env("SYMBOL", market.get("symbol", "NEARUSDT")).upper(),
        interval=env("INTERVAL", market.get("interval", "1h")),
        # Strategy
        strategy_mode=parse_strategy_mode(env("STRATEGY_MODE", strategy.get("mode", "adaptive"))),
        atr_len=int(strategy.get("atr_len", 14)),
        rsi_len=int(strategy.get("rsi_len", 14)),
        warmup_bars=int(strategy.get("warmup_bars", 200)),
        breakout_window=int(strategy.get("breakout_window", 20)),
        vol_gate_ratio=float(strategy.get("vol_gate_ratio", 0.8)),
        vol_gate_window=int(strategy.get("vol_gate_window", 50)),
        regime_lookback=int(strategy.get("regime_lookback", 50)),
        regime_trend_threshold=float(strategy.get("regime_trend_threshold", 0.10)),
        regime_slope_threshold=float(strategy.get("regime_slope_threshold", 0.001)),
        regime_slope_offset=int(strategy.get("regime_slope_offset", 5)),
        # Risk
        leverage=env_float("LEVERAGE", risk.get("leverage", 1)),
        use_regime_sizing=env_bool("USE_REGIME_SIZING", risk.get("use_regime_sizing", True)),
        taker_fee=float(risk.get("taker_fee", 0.0004)),
        maintenance_margin_rate=float(risk.get("maintenance_margin_rate", 0.004)),
        base_slippage=float(risk.get("base_slippage", 0.0003)),
        vol_slippage_mult=float(risk.get("vol_slippage_mult", 0.0002)),
        stop_slippage_atr_mult=float(risk.get("stop_slippage_atr_mult", 0.3)),
        funding_rate=float(risk.get("funding_rate", 0.0001)),
        funding_interval_hours=float(risk.get("funding_interval_hours", 8)),
        profit_threshold_atr=float(risk.get("profit_threshold_atr", 0.2)),
        initial_stop_atr=float(risk.get("initial_stop_atr", 1.2)),
        profit_trailing_atr=float(risk.get("profit_trailing_atr", 0.4)),
        profit_tiers=parse_profit_tiers(risk.get("profit_tiers")),
        regime_multipliers=parse_regime_multipliers(risk.get("regime_multipliers")),
        regime_position_pct=parse_regime_position_pct(risk.get("regime_position_pct")),
        default_position_pct=float(risk.get("default_position_pct", 0.5)),
        # Backtest
        start_date=env("START_DATE", backtest.get("start_date")) or None,
        end_date=env("END_DATE", backtest.get("end_date")) or None,
        initial_capital=env_float("INITIAL_CAPITAL", backtest.get("initial_capital", 800.0)),
        cache_dir=Path(backtest.get("cache_dir", "binance_cache")),
        output_dir=Path(backtest.get("output_dir", "results")),
        # Live
        poll_interval_seconds=env_float("POLL_INTERVAL_SECONDS", live.get("poll_interval_seconds", 60)),
        status_interval_minutes=float(live.get("status_interval_minutes", 5)),
        candle_limit=int(live.get("candle_limit", 501)),
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "perp_bot.log"),
    )


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "symbol", "interval", "strategy_mode",
        "atr_len", "rsi_len", "warmup_bars", "breakout_window", "vol_gate_ratio", "vol_gate_window",
        "regime_lookback", "regime_trend_threshold", "regime_slope_threshold", "regime_slope_offset",
        "leverage", "use_regime_sizing", "taker_fee", "maintenance_margin_rate",
        "base_slippage", "vol_slippage_mult", "stop_slippage_atr_mult",
        "funding_rate", "funding_interval_hours",
        "profit_threshold_atr", "initial_stop_atr", "profit_trailing_atr", "profit_tiers",
        "regime_multipliers", "regime_position_pct", "default_position_pct",
        "start_date", "end_date", "initial_capital", "cache_dir", "output_dir",
        "poll_interval_seconds", "status_interval_minutes", "candle_limit",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        symbol: str = "NEARUSDT",
        interval: str = "1h",
        strategy_mode: StrategyMode = StrategyMode.ADAPTIVE,
        atr_len: int = 14,
        rsi_len: int = 14,
        warmup_bars: int = 200,
        breakout_window: int = 20,
        vol_gate_ratio: float = 0.8,
        vol_gate_window: int = 50,
        regime_lookback: int = 50,
        regime_trend_threshold: float = 0.10,
        regime_slope_threshold: float = 0.001,
        regime_slope_offset: int = 5,
        leverage: float = 1.0,
        use_regime_sizing: bool = True,
        taker_fee: float = 0.0004,
        maintenance_margin_rate: float = 0.004,
        base_slippage: float = 0.0003,
        vol_slippage_mult: float = 0.0002,
        stop_slippage_atr_mult: float = 0.3,
        funding_rate: float = 0.0001,
        funding_interval_hours: float = 8.0,
        profit_threshold_atr: float = 0.2,
        initial_stop_atr: float = 1.2,
        profit_trailing_atr: float = 0.4,
        profit_tiers: Tuple[Tuple[float, float], ...] = DEFAULT_PROFIT_TIERS,
        regime_multipliers: Optional[Dict[Regime, Tuple[float, float]]] = None,
        regime_position_pct: Optional[Dict[Regime, float]] = None,
        default_position_pct: float = 0.5,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        initial_capital: float = 800.0,
        cache_dir: Path = None,
        output_dir: Path = None,
        poll_interval_seconds: float = 60.0,
        status_interval_minutes: float = 5.0,
        candle_limit: int = 501,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "perp_bot.log",
    ):
        if leverage <= 0:
            raise ConfigError(f"leverage must be positive, got {leverage}")
        if initial_capital <= 0:
            raise ConfigError(f"initial_capital must be positive, got {initial_capital}")
        if poll_interval_seconds < 0:
            raise ConfigError(f"poll_interval_seconds must be >= 0, got {poll_interval_seconds}")
        try:
            timeframe_minutes(interval)
        except ValueError as e:
            raise ConfigError(str(e)) from None
        self.symbol = symbol
        self.interval = interval
        self.strategy_mode = parse_strategy_mode(strategy_mode)
        self.atr_len = atr_len
        self.rsi_len = rsi_len
        self.warmup_bars = warmup_bars
        self.breakout_window = breakout_window
        self.vol_gate_ratio = vol_gate_ratio
        self.vol_gate_window = vol_gate_window
        self.regime_lookback = regime_lookback
        self.regime_trend_threshold = regime_trend_threshold
        self.regime_slope_threshold = regime_slope_threshold
        self.regime_slope_offset = regime_slope_offset
        self.leverage = leverage
        self.use_regime_sizing = use_regime_sizing
        self.taker_fee = taker_fee
        self.maintenance_margin_rate = maintenance_margin_rate
        self.base_slippage = base_slippage
        self.vol_slippage_mult = vol_slippage_mult
        self.stop_slippage_atr_mult = stop_slippage_atr_mult
        self.funding_rate = funding_rate
        self.funding_interval_hours = funding_interval_hours
        self.profit_threshold_atr = profit_threshold_atr
        self.initial_stop_atr = initial_stop_atr
        self.profit_trailing_atr = profit_trailing_atr
        self.profit_tiers = tuple(profit_tiers)
        self.regime_multipliers = dict(regime_multipliers or DEFAULT_REGIME_MULTIPLIERS)
        self.regime_position_pct = dict(regime_position_pct or DEFAULT_REGIME_POSITION_PCT)
        self.default_position_pct = default_position_pct
        self.start_date = start_date
        self.end_date = end_date
        self.initial_capital = initial_capital
        self.cache_dir = Path(cache_dir) if cache_dir else Path("binance_cache")
        self.output_dir = Path(output_dir) if output_dir else Path("results")
        self.poll_interval_seconds = poll_interval_seconds
        self.status_interval_minutes = status_interval_minutes
        self.candle_limit = candle_limit
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
