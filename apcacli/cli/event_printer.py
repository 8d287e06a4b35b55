from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from apcacli.core.num import to_display
from apcacli.core.stream.events import (
    AccountUpdate,
    ConnectionState,
    ConnectionStatus,
    OrderEventType,
    OrderUpdate,
    StreamEvent,
)

Echo = Callable[[str], None]

_FILL_EVENTS = {OrderEventType.FILL, OrderEventType.PARTIAL_FILL}


def format_event(event: StreamEvent) -> Optional[str]:
    if isinstance(event, OrderUpdate):
        return _line(event.timestamp, _order_label(event), _order_message(event))
    if isinstance(event, AccountUpdate):
        account = event.account
        return _line(
            event.timestamp,
            "AccountUpdate",
            (
                f"status={account.status.label} cash={to_display(account.cash)} "
                f"buying_power={to_display(account.buying_power)} "
                f"equity={to_display(account.equity)} {account.currency}"
            ),
        )
    if isinstance(event, ConnectionStatus):
        return _line(event.timestamp, "Stream", _connection_message(event))
    return None


def print_event(event: StreamEvent, echo: Echo = print) -> bool:
    line = format_event(event)
    if line is None:
        return False
    echo(line)
    return True


def make_event_printer(echo: Echo = print) -> Callable[[StreamEvent], None]:
    def _handler(event: StreamEvent) -> None:
        print_event(event, echo)

    return _handler


def _order_label(event: OrderUpdate) -> str:
    if event.event_type in _FILL_EVENTS:
        return "OrderFilled"
    return "OrderStatus"


def _order_message(event: OrderUpdate) -> str:
    order = event.order
    amount = to_display(order.quantity) if order.quantity is not None else f"${to_display(order.notional)}"
    parts = [
        f"{order.side.value} {amount} {order.symbol}",
        f"event={event.event_type.value}",
        f"status={order.status.value}",
        f"filled={to_display(order.filled_quantity)}",
    ]
    if event.event_type in _FILL_EVENTS:
        if event.qty is not None:
            parts.append(f"fill_qty={to_display(event.qty)}")
        if event.price is not None:
            parts.append(f"price={to_display(event.price)}")
        if event.position_qty is not None:
            parts.append(f"position={to_display(event.position_qty)}")
    parts.append(f"order_id={order.order_id}")
    return " ".join(parts)


def _connection_message(event: ConnectionStatus) -> str:
    if event.status == ConnectionState.RECONNECTING and event.attempt is not None:
        message = f"reconnecting (attempt {event.attempt})"
    else:
        message = event.status.value
    if event.detail:
        message = f"{message}: {event.detail}"
    return message


def _line(timestamp: Optional[datetime], label: str, message: str) -> str:
    if timestamp:
        return f"[{_format_time(timestamp)}] {label}: {message}"
    return f"{label}: {message}"


def _format_time(timestamp: datetime) -> str:
    return timestamp.strftime("%H:%M:%S.%f")[:-4]
