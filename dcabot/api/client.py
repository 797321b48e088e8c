"""
Brokerage client capability consumed by the DCA engine.

Implementations own the authenticated session. Data calls raise
TransientDataError when a field is unavailable and SessionExpiredError when the
session has been lost; place_order raises OrderRejectedError on refusal.
"""

from abc import ABC, abstractmethod

from dcabot.models import OrderAck, OrderRequest, Position


class BrokerageClient(ABC):

    @abstractmethod
    def authenticate(self) -> bool:
        """Establish a session. Calling it with a valid session is harmless."""

    @abstractmethod
    def is_session_valid(self) -> bool:
        pass

    @abstractmethod
    def get_quote(self, symbol: str) -> float:
        """Last traded price."""

    @abstractmethod
    def get_position(self, symbol: str, price: float) -> Position:
        """Holdings valued at the given quote price, so one snapshot uses one quote."""

    @abstractmethod
    def has_pending_buy_limit_order(self, symbol: str) -> bool:
        pass

    @abstractmethod
    def place_order(self, request: OrderRequest) -> OrderAck:
        pass
