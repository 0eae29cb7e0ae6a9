"""Utils: Telegram notifications, timeframes."""

from perp_bot.utils.telegram import TelegramNotifier, send_telegram
from perp_bot.utils.timeframes import timeframe_minutes

__all__ = ["TelegramNotifier", "send_telegram", "timeframe_minutes"]
