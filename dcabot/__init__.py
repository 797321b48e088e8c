"""Dollar-cost-averaging trading bot."""

__version__ = "0.1.0"
