from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Type, TypeVar

from apcacli.core.account.models import Account, AccountStatus
from apcacli.core.errors import InvalidNumber, UnknownApiError
from apcacli.core.num import parse_optional_decimal, to_display
from apcacli.core.orders.models import (
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    TimeInForce,
)
from apcacli.core.positions.models import Position
from apcacli.core.stream.events import AccountUpdate, OrderEventType, OrderUpdate

_EnumT = TypeVar("_EnumT", bound=Enum)
_T = TypeVar("_T")
_FRACTION = re.compile(r"\.(\d+)")


class PayloadError(ValueError):
    """Raised when a broker payload does not have the expected shape."""


def order_request_body(request: OrderRequest) -> dict[str, Any]:
    body: dict[str, Any] = {
        "symbol": request.symbol,
        "side": request.side.value,
        "type": request.order_type.value,
        "time_in_force": request.time_in_force.value,
    }
    if request.quantity is not None:
        body["qty"] = to_display(request.quantity)
    if request.notional is not None:
        body["notional"] = to_display(request.notional)
    if request.limit_price is not None:
        body["limit_price"] = to_display(request.limit_price)
    if request.stop_price is not None:
        body["stop_price"] = to_display(request.stop_price)
    if request.extended_hours:
        body["extended_hours"] = True
    if request.client_order_id:
        body["client_order_id"] = request.client_order_id
    return body


def parse_order(payload: Mapping[str, Any]) -> Order:
    _require_mapping(payload, "order")
    order_type = payload.get("order_type") or payload.get("type")
    return Order(
        order_id=_required_str(payload, "id"),
        client_order_id=str(payload.get("client_order_id") or ""),
        symbol=_required_str(payload, "symbol"),
        side=_enum(OrderSide, payload.get("side"), "side"),
        order_type=_enum(OrderType, order_type, "order_type"),
        time_in_force=_enum(TimeInForce, payload.get("time_in_force"), "time_in_force"),
        status=_enum(OrderStatus, payload.get("status"), "status"),
        quantity=_decimal(payload, "qty"),
        notional=_decimal(payload, "notional"),
        filled_quantity=_decimal(payload, "filled_qty") or Decimal(0),
        created_at=_required_timestamp(payload, "created_at"),
        limit_price=_decimal(payload, "limit_price"),
        stop_price=_decimal(payload, "stop_price"),
        filled_avg_price=_decimal(payload, "filled_avg_price"),
        updated_at=parse_timestamp(payload.get("updated_at")),
        submitted_at=parse_timestamp(payload.get("submitted_at")),
        filled_at=parse_timestamp(payload.get("filled_at")),
        extended_hours=bool(payload.get("extended_hours") or False),
    )


def parse_position(payload: Mapping[str, Any]) -> Position:
    _require_mapping(payload, "position")
    quantity = _decimal(payload, "qty")
    if quantity is None:
        raise PayloadError("position is missing 'qty'")
    side = str(payload.get("side") or ("short" if quantity < 0 else "long")).lower()
    # the API reports short quantities as negative already; enforce the sign
    if side == "short" and quantity > 0:
        quantity = -quantity
    return Position(
        symbol=_required_str(payload, "symbol"),
        quantity=quantity,
        avg_entry_price=_decimal(payload, "avg_entry_price") or Decimal(0),
        side=side,
        market_value=_decimal(payload, "market_value"),
        current_price=_decimal(payload, "current_price"),
        cost_basis=_decimal(payload, "cost_basis"),
        unrealized_pl=_decimal(payload, "unrealized_pl"),
        unrealized_plpc=_decimal(payload, "unrealized_plpc"),
        asset_class=payload.get("asset_class"),
        exchange=payload.get("exchange"),
    )


def parse_account(payload: Mapping[str, Any]) -> Account:
    _require_mapping(payload, "account")
    cash = _decimal(payload, "cash") or Decimal(0)
    return Account(
        account_id=_required_str(payload, "id"),
        status=_enum(AccountStatus, str(payload.get("status") or "").upper(), "status"),
        currency=str(payload.get("currency") or "USD"),
        buying_power=_coalesce(_decimal(payload, "buying_power"), cash),
        cash=cash,
        equity=_coalesce(_decimal(payload, "equity"), cash),
        account_number=payload.get("account_number"),
        withdrawable_cash=_coalesce(_decimal(payload, "cash_withdrawable"), _decimal(payload, "withdrawable_cash")),
        portfolio_value=_decimal(payload, "portfolio_value"),
        pattern_day_trader=bool(payload.get("pattern_day_trader") or False),
        trading_blocked=bool(payload.get("trading_blocked") or False),
        transfers_blocked=bool(payload.get("transfers_blocked") or False),
        account_blocked=bool(payload.get("account_blocked") or False),
    )


def parse_trade_update(data: Mapping[str, Any]) -> OrderUpdate:
    _require_mapping(data, "trade update")
    order = parse_order(data.get("order") or {})
    timestamp = parse_timestamp(data.get("timestamp")) or order.updated_at or datetime.now(timezone.utc)
    return OrderUpdate(
        order=order,
        event_type=_enum(OrderEventType, data.get("event"), "event"),
        timestamp=timestamp,
        price=_decimal(data, "price"),
        qty=_decimal(data, "qty"),
        position_qty=_decimal(data, "position_qty"),
    )


def parse_account_update(data: Mapping[str, Any]) -> AccountUpdate:
    return AccountUpdate.now(parse_account(data))


def decode(parser: Callable[[Any], _T], payload: Any, what: str) -> _T:
    """Run `parser` on a response body, reporting shape errors as UnknownApiError."""
    try:
        return parser(payload)
    except PayloadError as exc:
        raise UnknownApiError(f"malformed {what}: {exc}") from exc


def decode_list(parser: Callable[[Any], _T], payload: Any, what: str) -> list[_T]:
    if not isinstance(payload, list):
        raise UnknownApiError(f"malformed {what}: expected a list, got {type(payload).__name__}")
    return [decode(parser, item, what) for item in payload]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp; sub-microsecond digits are truncated."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise PayloadError(f"invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_mapping(payload: Any, name: str) -> None:
    if not isinstance(payload, Mapping):
        raise PayloadError(f"{name} payload must be an object, got {type(payload).__name__}")


def _required_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None or str(value) == "":
        raise PayloadError(f"missing {key!r}")
    return str(value)


def _required_timestamp(payload: Mapping[str, Any], key: str) -> datetime:
    value = parse_timestamp(payload.get(key))
    if value is None:
        raise PayloadError(f"missing {key!r}")
    return value


def _decimal(payload: Mapping[str, Any], key: str) -> Optional[Decimal]:
    value = payload.get(key)
    if isinstance(value, float):
        value = Decimal(repr(value))
    try:
        return parse_optional_decimal(value, field=key)
    except InvalidNumber as exc:
        raise PayloadError(f"{key}: {exc}") from exc


def _coalesce(*values: Optional[Decimal]) -> Optional[Decimal]:
    for value in values:
        if value is not None:
            return value
    return None


def _enum(enum_cls: Type[_EnumT], value: Any, key: str) -> _EnumT:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise PayloadError(f"unknown {key}: {value!r}") from exc


__all__ = [
    "PayloadError",
    "decode",
    "decode_list",
    "order_request_body",
    "parse_order",
    "parse_position",
    "parse_account",
    "parse_trade_update",
    "parse_account_update",
    "parse_timestamp",
]
