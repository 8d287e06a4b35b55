from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Optional


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"
    TRAILING_STOP = "trailing_stop"

    @property
    def needs_limit_price(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LIMIT)

    @property
    def needs_stop_price(self) -> bool:
        return self in (OrderType.STOP, OrderType.STOP_LIMIT)


class TimeInForce(str, Enum):
    DAY = "day"
    GTC = "gtc"
    OPG = "opg"
    CLS = "cls"
    IOC = "ioc"
    FOK = "fok"


class LifecycleStage(IntEnum):
    PENDING = 0
    OPEN = 1
    PARTIAL = 2
    TERMINAL = 3


class OrderStatus(str, Enum):
    PENDING_NEW = "pending_new"
    HELD = "held"
    ACCEPTED = "accepted"
    ACCEPTED_FOR_BIDDING = "accepted_for_bidding"
    NEW = "new"
    PENDING_CANCEL = "pending_cancel"
    PENDING_REPLACE = "pending_replace"
    PARTIALLY_FILLED = "partially_filled"
    DONE_FOR_DAY = "done_for_day"
    STOPPED = "stopped"
    SUSPENDED = "suspended"
    CALCULATED = "calculated"
    FILLED = "filled"
    CANCELED = "canceled"
    REJECTED = "rejected"
    EXPIRED = "expired"
    REPLACED = "replaced"

    @property
    def stage(self) -> LifecycleStage:
        return _STAGES[self]

    @property
    def is_terminal(self) -> bool:
        return self.stage == LifecycleStage.TERMINAL


_STAGES = {
    OrderStatus.PENDING_NEW: LifecycleStage.PENDING,
    OrderStatus.HELD: LifecycleStage.PENDING,
    OrderStatus.ACCEPTED: LifecycleStage.PENDING,
    OrderStatus.ACCEPTED_FOR_BIDDING: LifecycleStage.PENDING,
    OrderStatus.NEW: LifecycleStage.OPEN,
    OrderStatus.PENDING_CANCEL: LifecycleStage.OPEN,
    OrderStatus.PENDING_REPLACE: LifecycleStage.OPEN,
    OrderStatus.SUSPENDED: LifecycleStage.OPEN,
    OrderStatus.PARTIALLY_FILLED: LifecycleStage.PARTIAL,
    OrderStatus.DONE_FOR_DAY: LifecycleStage.PARTIAL,
    OrderStatus.STOPPED: LifecycleStage.PARTIAL,
    OrderStatus.CALCULATED: LifecycleStage.PARTIAL,
    OrderStatus.FILLED: LifecycleStage.TERMINAL,
    OrderStatus.CANCELED: LifecycleStage.TERMINAL,
    OrderStatus.REJECTED: LifecycleStage.TERMINAL,
    OrderStatus.EXPIRED: LifecycleStage.TERMINAL,
    OrderStatus.REPLACED: LifecycleStage.TERMINAL,
}


class OrderQueryStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    ALL = "all"


MAX_ORDER_LIST_LIMIT = 500


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    side: OrderSide
    order_type: OrderType
    time_in_force: TimeInForce = TimeInForce.DAY
    quantity: Optional[Decimal] = None
    notional: Optional[Decimal] = None
    limit_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    extended_hours: bool = False
    client_order_id: Optional[str] = None


@dataclass(frozen=True)
class OrderFilter:
    status: OrderQueryStatus = OrderQueryStatus.OPEN
    limit: int = MAX_ORDER_LIST_LIMIT
    symbols: tuple[str, ...] = ()


@dataclass(frozen=True)
class Order:
    order_id: str
    client_order_id: str
    symbol: str
    side: OrderSide
    order_type: OrderType
    time_in_force: TimeInForce
    status: OrderStatus
    quantity: Optional[Decimal]
    notional: Optional[Decimal]
    filled_quantity: Decimal
    created_at: datetime
    limit_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    filled_avg_price: Optional[Decimal] = None
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    filled_at: Optional[datetime] = None
    extended_hours: bool = False
