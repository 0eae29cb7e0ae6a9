"""Binance interval strings to minutes."""


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style interval (e.g. '15m', '1h', '1d', '1w') to minutes."""
    tf = tf.strip()
    if not tf[:-1].isdigit():
        raise ValueError(f"Unsupported timeframe: {tf}")
    n, unit = int(tf[:-1]), tf[-1]
    if unit == "m":
        return n
    if unit == "h":
        return n * 60
    if unit == "d":
        return n * 60 * 24
    if unit == "w":
        return n * 60 * 24 * 7
    raise ValueError(f"Unsupported timeframe: {tf}")
