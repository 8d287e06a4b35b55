from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Type, TypeVar, Union, cast

from apcacli.core.errors import FieldViolation, InvalidNumber, ValidationError
from apcacli.core.num import parse_decimal
from apcacli.core.orders.models import (
    MAX_ORDER_LIST_LIMIT,
    OrderFilter,
    OrderQueryStatus,
    OrderRequest,
    OrderSide,
    OrderType,
    TimeInForce,
)

_EnumT = TypeVar("_EnumT", bound=Enum)

MAX_CLIENT_ORDER_ID_LENGTH = 48
ORDER_TYPES = (OrderType.MARKET, OrderType.LIMIT, OrderType.STOP, OrderType.STOP_LIMIT)


@dataclass(frozen=True)
class PlaceOrder:
    request: OrderRequest


@dataclass(frozen=True)
class CancelOrder:
    order_id: str


@dataclass(frozen=True)
class CancelAllOrders:
    pass


@dataclass(frozen=True)
class GetOrder:
    reference: str

    @property
    def is_order_id(self) -> bool:
        return is_uuid(self.reference)


@dataclass(frozen=True)
class ListOrders:
    order_filter: OrderFilter = field(default_factory=OrderFilter)


@dataclass(frozen=True)
class ListPositions:
    pass


@dataclass(frozen=True)
class GetPosition:
    symbol: str


@dataclass(frozen=True)
class GetAccount:
    pass


@dataclass(frozen=True)
class StreamUpdates:
    pass


Command = Union[
    PlaceOrder,
    CancelOrder,
    CancelAllOrders,
    GetOrder,
    ListOrders,
    ListPositions,
    GetPosition,
    GetAccount,
    StreamUpdates,
]


def build_place_order(
    *,
    symbol: Optional[str],
    side: Optional[str],
    qty: Optional[str] = None,
    notional: Optional[str] = None,
    order_type: Optional[str] = None,
    limit_price: Optional[str] = None,
    stop_price: Optional[str] = None,
    tif: Optional[str] = None,
    extended_hours: bool = False,
    client_order_id: Optional[str] = None,
) -> PlaceOrder:
    """Validate raw order arguments and build a PlaceOrder command.

    When no order type is given it is inferred from the prices supplied:
    both prices make a stop-limit order, a limit price alone a limit order,
    a stop price alone a stop order, and no price a market order.
    """
    violations: list[FieldViolation] = []

    normalized_symbol = _normalize_symbol(symbol)
    if not normalized_symbol:
        violations.append(FieldViolation("symbol", "is required"))

    parsed_side = _parse_enum(OrderSide, side, "side", violations, required=True)
    quantity = _parse_positive(qty, "qty", violations)
    notional_amount = _parse_positive(notional, "notional", violations)
    limit = _parse_positive(limit_price, "limit_price", violations)
    stop = _parse_positive(stop_price, "stop_price", violations)

    qty_given = _given(qty)
    notional_given = _given(notional)
    if qty_given == notional_given:
        reason = "exactly one of qty and notional is required"
        if qty_given:
            reason = "qty and notional are mutually exclusive"
        violations.append(FieldViolation("qty", reason))
        violations.append(FieldViolation("notional", reason))

    if _given(order_type):
        parsed_type = _parse_enum(
            OrderType,
            order_type,
            "type",
            violations,
            accepted=ORDER_TYPES,
        )
    else:
        parsed_type = _infer_order_type(_given(limit_price), _given(stop_price))

    parsed_tif = _parse_enum(TimeInForce, tif, "tif", violations) if _given(tif) else TimeInForce.DAY

    if parsed_type is not None:
        if parsed_type.needs_limit_price and not _given(limit_price):
            violations.append(FieldViolation("limit_price", f"is required for {parsed_type.value} orders"))
        if not parsed_type.needs_limit_price and _given(limit_price):
            violations.append(FieldViolation("limit_price", f"is not valid for {parsed_type.value} orders"))
        if parsed_type.needs_stop_price and not _given(stop_price):
            violations.append(FieldViolation("stop_price", f"is required for {parsed_type.value} orders"))
        if not parsed_type.needs_stop_price and _given(stop_price):
            violations.append(FieldViolation("stop_price", f"is not valid for {parsed_type.value} orders"))

    if notional_given and not qty_given:
        if parsed_type is not None and parsed_type != OrderType.MARKET:
            violations.append(FieldViolation("type", "notional orders must be market orders"))
        if parsed_tif is not None and parsed_tif != TimeInForce.DAY:
            violations.append(FieldViolation("tif", "notional orders must use day"))

    if extended_hours:
        if parsed_type is not None and parsed_type != OrderType.LIMIT:
            violations.append(FieldViolation("extended_hours", "requires a limit order"))
        if parsed_tif is not None and parsed_tif != TimeInForce.DAY:
            violations.append(FieldViolation("extended_hours", "requires tif day"))

    client_id = client_order_id.strip() if client_order_id else None
    if client_order_id is not None and not client_id:
        violations.append(FieldViolation("client_id", "must not be blank"))
    if client_id and len(client_id) > MAX_CLIENT_ORDER_ID_LENGTH:
        violations.append(
            FieldViolation("client_id", f"must be at most {MAX_CLIENT_ORDER_ID_LENGTH} characters")
        )

    if violations:
        raise ValidationError(violations)

    return PlaceOrder(
        OrderRequest(
            symbol=normalized_symbol,
            side=cast(OrderSide, parsed_side),
            order_type=cast(OrderType, parsed_type),
            time_in_force=cast(TimeInForce, parsed_tif),
            quantity=quantity,
            notional=notional_amount,
            limit_price=limit,
            stop_price=stop,
            extended_hours=extended_hours,
            client_order_id=client_id,
        )
    )


def build_cancel_order(order_id: Optional[str]) -> CancelOrder:
    value = (order_id or "").strip()
    if not value:
        raise ValidationError([FieldViolation("id", "is required")])
    if not is_uuid(value):
        raise ValidationError([FieldViolation("id", f"{value!r} is not a valid order id")])
    return CancelOrder(order_id=str(uuid.UUID(value)))


def build_get_order(reference: Optional[str]) -> GetOrder:
    value = (reference or "").strip()
    if not value:
        raise ValidationError([FieldViolation("id", "is required")])
    if is_uuid(value):
        value = str(uuid.UUID(value))
    return GetOrder(reference=value)


def build_list_orders(status: Optional[str] = None, limit: Optional[str] = None) -> ListOrders:
    violations: list[FieldViolation] = []
    parsed_status = OrderQueryStatus.OPEN
    if _given(status):
        parsed_status = _parse_enum(OrderQueryStatus, status, "status", violations)
    parsed_limit = MAX_ORDER_LIST_LIMIT
    if _given(limit):
        try:
            parsed_limit = int(str(limit).strip())
        except ValueError:
            violations.append(FieldViolation("limit", f"{limit!r} is not a whole number"))
        else:
            if not 1 <= parsed_limit <= MAX_ORDER_LIST_LIMIT:
                violations.append(FieldViolation("limit", f"must be between 1 and {MAX_ORDER_LIST_LIMIT}"))
    if violations:
        raise ValidationError(violations)
    return ListOrders(OrderFilter(status=parsed_status, limit=parsed_limit))


def build_get_position(symbol: Optional[str]) -> GetPosition:
    normalized = _normalize_symbol(symbol)
    if not normalized:
        raise ValidationError([FieldViolation("symbol", "is required")])
    return GetPosition(symbol=normalized)


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def new_client_order_id() -> str:
    return str(uuid.uuid4())


def _normalize_symbol(symbol: Optional[str]) -> str:
    return (symbol or "").strip().upper()


def _given(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def _parse_positive(
    raw: Optional[str],
    name: str,
    violations: list[FieldViolation],
) -> Optional[Decimal]:
    if not _given(raw):
        return None
    try:
        value = parse_decimal(raw, field=name)
    except InvalidNumber as exc:
        violations.append(FieldViolation(name, str(exc)))
        return None
    if value <= 0:
        violations.append(FieldViolation(name, "must be greater than zero"))
        return None
    return value


def _parse_enum(
    enum_cls: Type[_EnumT],
    raw: Optional[str],
    name: str,
    violations: list[FieldViolation],
    *,
    required: bool = False,
    accepted: Optional[tuple[_EnumT, ...]] = None,
) -> Optional[_EnumT]:
    choices = accepted or tuple(enum_cls)
    if not _given(raw):
        if required:
            violations.append(FieldViolation(name, "is required"))
        return None
    normalized = str(raw).strip().lower().replace("-", "_")
    for member in choices:
        if member.value == normalized:
            return member
    options = ", ".join(member.value.replace("_", "-") for member in choices)
    violations.append(FieldViolation(name, f"invalid value {raw!r} (use one of: {options})"))
    return None


def _infer_order_type(has_limit: bool, has_stop: bool) -> OrderType:
    if has_limit and has_stop:
        return OrderType.STOP_LIMIT
    if has_limit:
        return OrderType.LIMIT
    if has_stop:
        return OrderType.STOP
    return OrderType.MARKET
