"""
Error types raised by the DCA engine and the brokerage clients.

Per-symbol errors (transient data, session expiry, order rejection) are caught by
the control loop and recorded in the cycle report. FatalConfigError is the only
error that stops the process, and it is raised before the loop starts.
"""


class DCABotError(Exception):
    """Base class for all DCA bot errors."""


class TransientDataError(DCABotError):
    """A quote or position field is unavailable for one symbol this cycle."""

    def __init__(self, symbol: str, reason: str):
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class SessionExpiredError(DCABotError):
    """The brokerage session is no longer authenticated."""


class OrderRejectedError(DCABotError):
    """The brokerage refused an order (market closed, day-trade restriction, ...)."""

    def __init__(self, symbol: str, reason: str):
        super().__init__(f"{symbol}: order rejected: {reason}")
        self.symbol = symbol
        self.reason = reason


class FatalConfigError(DCABotError):
    """Required bot configuration is missing or malformed."""
