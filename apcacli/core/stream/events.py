from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from apcacli.core.account.models import Account
from apcacli.core.orders.models import Order


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderEventType(str, Enum):
    NEW = "new"
    PENDING_NEW = "pending_new"
    ACCEPTED = "accepted"
    FILL = "fill"
    PARTIAL_FILL = "partial_fill"
    CANCELED = "canceled"
    EXPIRED = "expired"
    DONE_FOR_DAY = "done_for_day"
    REPLACED = "replaced"
    REJECTED = "rejected"
    STOPPED = "stopped"
    SUSPENDED = "suspended"
    CALCULATED = "calculated"
    PENDING_CANCEL = "pending_cancel"
    PENDING_REPLACE = "pending_replace"
    ORDER_CANCEL_REJECTED = "order_cancel_rejected"
    ORDER_REPLACE_REJECTED = "order_replace_rejected"


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class OrderUpdate:
    order: Order
    event_type: OrderEventType
    timestamp: datetime
    price: Optional[Decimal] = None
    qty: Optional[Decimal] = None
    position_qty: Optional[Decimal] = None


@dataclass(frozen=True)
class AccountUpdate:
    account: Account
    timestamp: datetime

    @classmethod
    def now(cls, account: Account) -> "AccountUpdate":
        return cls(account=account, timestamp=_now())


@dataclass(frozen=True)
class ConnectionStatus:
    status: ConnectionState
    timestamp: datetime
    detail: Optional[str] = None
    attempt: Optional[int] = None

    @classmethod
    def now(
        cls,
        status: ConnectionState,
        *,
        detail: Optional[str] = None,
        attempt: Optional[int] = None,
    ) -> "ConnectionStatus":
        return cls(status=status, timestamp=_now(), detail=detail, attempt=attempt)


StreamEvent = Union[OrderUpdate, AccountUpdate, ConnectionStatus]
