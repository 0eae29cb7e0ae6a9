"""Leveraged perpetual futures strategy simulator."""

__version__ = "0.1.0"
