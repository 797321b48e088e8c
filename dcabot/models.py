"""
Core data model for the DCA engine.

Bot configuration is immutable for the process lifetime. Snapshots, decisions and
outcomes are rebuilt every cycle and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Unit(str, Enum):
    SHARES = "shares"
    NOTIONAL = "notional"


class SizingMode(str, Enum):
    SHARES = "shares"
    NOTIONAL = "notional"
    # Notional amounts measured as if the position were still priced at start_price
    NOTIONAL_AT_START_PRICE = "notional_at_start_price"

    @property
    def unit(self) -> Unit:
        return Unit.SHARES if self is SizingMode.SHARES else Unit.NOTIONAL


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class Duration(str, Enum):
    DAY = "day"
    DAY_EXT = "day_ext"
    GTC = "gtc"
    GTC_EXT = "gtc_ext"

    @property
    def extended_hours(self) -> bool:
        return self in (Duration.DAY_EXT, Duration.GTC_EXT)


@dataclass(frozen=True)
class Quantity:
    """An order or position size with an explicit unit."""
    amount: float
    unit: Unit

    def __str__(self) -> str:
        if self.unit is Unit.NOTIONAL:
            return f"${self.amount:,.2f}"
        return f"{self.amount:g} share(s)"


@dataclass(frozen=True)
class BuyTier:
    size: float
    percent_drop: float


@dataclass(frozen=True)
class BotConfig:
    symbol: str
    start_price: float
    buys: Tuple[BuyTier, ...] = ()
    sizing: SizingMode = SizingMode.SHARES
    percent_take_profit: Optional[float] = None
    hold_back: float = 0.0
    percent_52_week_below: Optional[float] = None

    @property
    def take_profit_enabled(self) -> bool:
        return self.percent_take_profit is not None

    @property
    def range_filter_enabled(self) -> bool:
        return self.percent_52_week_below is not None

    @property
    def start_price_sizing(self) -> bool:
        return self.sizing is SizingMode.NOTIONAL_AT_START_PRICE

    @property
    def schedule_total(self) -> float:
        return sum(tier.size for tier in self.buys)


@dataclass(frozen=True)
class Position:
    """Position fields as reported by the brokerage for one symbol."""
    held_shares: float
    gain_percent: float
    low_52: float
    high_52: float
    market_value: float


@dataclass(frozen=True)
class InstrumentSnapshot:
    symbol: str
    last_price: float
    gain_percent: float
    low_52: float
    high_52: float
    held_shares: float
    market_value: float
    refreshed_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class OrderRequest:
    side: Side
    symbol: str
    size: Quantity
    kind: OrderKind = OrderKind.LIMIT
    limit_price: Optional[float] = None
    duration: Duration = Duration.DAY_EXT

    def describe(self) -> str:
        price = f" at ${self.limit_price}" if self.limit_price is not None else " at market"
        return f"{self.side.value.upper()} {self.size} of {self.symbol}{price} ({self.kind.value}, {self.duration.value})"


@dataclass(frozen=True)
class OrderAck:
    order_id: str
    request: OrderRequest
    state: str = "queued"
    demo: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "side": self.request.side.value,
            "symbol": self.request.symbol,
            "size": self.request.size.amount,
            "unit": self.request.size.unit.value,
            "kind": self.request.kind.value,
            "limit_price": self.request.limit_price,
            "duration": self.request.duration.value,
            "state": self.state,
            "demo": self.demo,
        }


@dataclass(frozen=True)
class Decision:
    """Audit record of a single check with the values it compared."""
    check: str
    met: bool
    message: str
    values: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"check": self.check, "met": self.met, "message": self.message, "values": dict(self.values)}


class OutcomeStatus(str, Enum):
    BOUGHT = "bought"
    SOLD = "sold"
    BOUGHT_AND_SOLD = "bought+sold"
    SKIPPED = "skipped"
    NO_ACTION = "no-action"
    ERROR = "error"


@dataclass
class SymbolOutcome:
    symbol: str
    bought: Optional[OrderAck] = None
    sold: Optional[OrderAck] = None
    skip_reason: Optional[str] = None
    error_kind: Optional[str] = None
    error_detail: Optional[str] = None
    decisions: List[Decision] = field(default_factory=list)

    @property
    def status(self) -> OutcomeStatus:
        if self.error_kind:
            return OutcomeStatus.ERROR
        if self.bought and self.sold:
            return OutcomeStatus.BOUGHT_AND_SOLD
        if self.bought:
            return OutcomeStatus.BOUGHT
        if self.sold:
            return OutcomeStatus.SOLD
        if self.skip_reason:
            return OutcomeStatus.SKIPPED
        return OutcomeStatus.NO_ACTION

    def placed(self) -> List[OrderAck]:
        """Orders that stand for this symbol, even when the outcome is an error."""
        return [ack for ack in (self.sold, self.bought) if ack]

    def skip(self, reason: str):
        # First skip reason wins; later checks never run after a skip anyway
        if self.skip_reason is None:
            self.skip_reason = reason

    def fail(self, kind: str, detail: str):
        self.error_kind = kind
        self.error_detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "status": self.status.value,
            "bought": self.bought.to_dict() if self.bought else None,
            "sold": self.sold.to_dict() if self.sold else None,
            "skip_reason": self.skip_reason,
            "error_kind": self.error_kind,
            "error_detail": self.error_detail,
            "orders_placed": [ack.request.side.value for ack in self.placed()],
            "decisions": [d.to_dict() for d in self.decisions],
        }


@dataclass
class CycleReport:
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    outcomes: Dict[str, SymbolOutcome] = field(default_factory=dict)
    session_recoveries: int = 0
    cancelled: bool = False

    def outcome(self, symbol: str) -> SymbolOutcome:
        if symbol not in self.outcomes:
            self.outcomes[symbol] = SymbolOutcome(symbol=symbol)
        return self.outcomes[symbol]

    def bought(self) -> List[OrderAck]:
        return [o.bought for o in self.outcomes.values() if o.bought]

    def sold(self) -> List[OrderAck]:
        return [o.sold for o in self.outcomes.values() if o.sold]

    def errors(self) -> List[SymbolOutcome]:
        return [o for o in self.outcomes.values() if o.error_kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "session_recoveries": self.session_recoveries,
            "cancelled": self.cancelled,
            "outcomes": [o.to_dict() for o in self.outcomes.values()],
        }
