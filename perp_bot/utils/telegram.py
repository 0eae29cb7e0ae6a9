"""Telegram notifications for the forward test. Never log token or chat_id."""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING

import requests

from perp_bot.core.types import ExitReason, Position, Trade

if TYPE_CHECKING:
    from perp_bot.simulation.engine import StatusSnapshot

logger = logging.getLogger("perp_bot.utils.telegram")


def send_telegram(text: str, bot_token: str = "", chat_id: str = "") -> bool:
    """Send message to Telegram. Returns True on success. No-op if not configured."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text}
        r = requests.post(url, json=payload, timeout=10)
        if r.status_code != 200:
            logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
            return False
        return True
    except requests.RequestException as e:
        logger.exception("Telegram error: %s", e)
        return False


def format_status(s: "StatusSnapshot", symbol: str = "") -> str:
    if s.side is None:
        return f"Status {symbol} | No position open | Capital: {s.capital:.2f} | Trades: {s.trades}"
    return "\n".join([
        f"Status {symbol} [{s.time}]",
        f"Position: {s.side.value.upper()} at {s.entry_price:.4f} | Price: {s.price:.4f}",
        f"Stop: {s.trailing_stop:.4f} | Liq: {s.liquidation_price:.4f}",
        f"Profit: {s.profit_atr:.2f} ATR (max {s.max_profit_atr:.2f})",
        "If closed now:",
        f"  Gross P&L: {s.gross_pnl:.2f} | Exit fee: -{s.exit_fee:.2f} | Funding: -{s.funding_cost:.2f}",
        f"  Net P&L: {s.net_pnl:.2f} | Capital: {s.projected_capital:.2f} ({s.total_return * 100:.2f}%)",
    ])


def format_entry(p: Position, symbol: str = "") -> str:
    return (
        f"ENTER {p.side.value.upper()} {symbol} @ {p.entry_price:.4f} | qty {p.quantity:.4f} | "
        f"stop {p.trailing_stop:.4f} | liq {p.liquidation_price:.4f}"
    )


def format_trade(t: Trade, symbol: str = "") -> str:
    tag = "protected" if t.exit_reason is ExitReason.PROFIT_PROTECTION else t.exit_reason.value
    return (
        f"EXIT {t.side.value.upper()} {symbol} @ {t.exit_price:.4f} ({tag}) | "
        f"P&L {t.pnl:.2f} ({t.trade_return * 100:.2f}%) | max profit {t.max_profit_atr:.2f} ATR"
    )


class TelegramNotifier:
    """Observer for ForwardTester: logs every message and forwards it to Telegram if configured."""

    def __init__(self, bot_token: str = "", chat_id: str = "", symbol: str = ""):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.symbol = symbol

    def send(self, text: str) -> bool:
        logger.info(text)
        return send_telegram(text, self.bot_token, self.chat_id)

    def on_status(self, snapshot: "StatusSnapshot") -> None:
        self.send(format_status(snapshot, self.symbol))

    def on_entry(self, position: Position) -> None:
        self.send(format_entry(position, self.symbol))

    def on_trade(self, trade: Trade) -> None:
        self.send(format_trade(trade, self.symbol))
