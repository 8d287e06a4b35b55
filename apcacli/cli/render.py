from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from apcacli.core.account.models import Account
from apcacli.core.num import add, to_display
from apcacli.core.orders.models import Order
from apcacli.core.positions.models import Position

ORDER_HEADERS = ["symbol", "side", "qty", "filled", "type", "price", "tif", "status", "id"]
POSITION_HEADERS = ["symbol", "side", "qty", "avg entry", "market value", "unrealized p/l"]


def format_simple_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> list[str]:
    if not rows:
        return []
    widths = [len(label) for label in headers]
    for row in rows:
        for idx, value in enumerate(row):
            widths[idx] = max(widths[idx], len(value))
    header = " | ".join(label.ljust(widths[idx]) for idx, label in enumerate(headers)).rstrip()
    divider = "-+-".join("-" * width for width in widths)
    lines = [header, divider]
    for row in rows:
        lines.append(" | ".join(value.ljust(widths[idx]) for idx, value in enumerate(row)).rstrip())
    return lines


def format_fields(fields: Iterable[tuple[str, str]]) -> list[str]:
    pairs = list(fields)
    if not pairs:
        return []
    width = max(len(label) for label, _ in pairs)
    return [f"{(label + ':').ljust(width + 1)} {value}" for label, value in pairs]


def describe_price(order: Order, currency: str) -> str:
    if order.limit_price is not None and order.stop_price is not None:
        return (
            f"stop @ {to_display(order.stop_price)} {currency}, "
            f"limit @ {to_display(order.limit_price)} {currency}"
        )
    if order.limit_price is not None:
        return f"limit @ {to_display(order.limit_price)} {currency}"
    if order.stop_price is not None:
        return f"stop @ {to_display(order.stop_price)} {currency}"
    return "market"


def describe_amount(order: Order, currency: str) -> str:
    if order.quantity is not None:
        return to_display(order.quantity)
    if order.notional is not None:
        return f"{to_display(order.notional)} {currency}"
    return "-"


def format_order_fields(order: Order, currency: str = "USD") -> list[str]:
    fields = [
        ("id", order.order_id),
        ("client id", order.client_order_id or "-"),
        ("symbol", order.symbol),
        ("side", order.side.value),
        ("type", order.order_type.value),
        ("amount", describe_amount(order, currency)),
        ("price", describe_price(order, currency)),
        ("time in force", order.time_in_force.value),
        ("status", order.status.value),
        ("filled", to_display(order.filled_quantity)),
    ]
    if order.filled_avg_price is not None:
        fields.append(("avg fill price", f"{to_display(order.filled_avg_price)} {currency}"))
    if order.extended_hours:
        fields.append(("extended hours", "yes"))
    fields.append(("created", _format_timestamp(order.created_at)))
    if order.filled_at is not None:
        fields.append(("filled at", _format_timestamp(order.filled_at)))
    return format_fields(fields)


def format_orders_table(orders: Iterable[Order], currency: str = "USD") -> list[str]:
    ordered = sorted(orders, key=lambda order: (order.symbol, order.created_at))
    rows = [
        [
            order.symbol,
            order.side.value,
            describe_amount(order, currency),
            to_display(order.filled_quantity),
            order.order_type.value,
            describe_price(order, currency),
            order.time_in_force.value,
            order.status.value,
            order.order_id,
        ]
        for order in ordered
    ]
    return format_simple_table(ORDER_HEADERS, rows)


def format_positions_table(positions: Iterable[Position], currency: str = "USD") -> list[str]:
    ordered = sorted(positions, key=lambda position: position.symbol)
    if not ordered:
        return []
    rows = [
        [
            position.symbol,
            position.side,
            to_display(position.quantity),
            _money(position.avg_entry_price, currency),
            _money(position.market_value, currency),
            _money(position.unrealized_pl, currency),
        ]
        for position in ordered
    ]
    total_value = _total(position.market_value for position in ordered)
    total_pl = _total(position.unrealized_pl for position in ordered)
    rows.append(["TOTAL", "", "", "", _money(total_value, currency), _money(total_pl, currency)])
    return format_simple_table(POSITION_HEADERS, rows)


def format_position_fields(position: Position, currency: str = "USD") -> list[str]:
    fields = [
        ("symbol", position.symbol),
        ("side", position.side),
        ("quantity", to_display(position.quantity)),
        ("avg entry price", _money(position.avg_entry_price, currency)),
        ("current price", _money(position.current_price, currency)),
        ("market value", _money(position.market_value, currency)),
        ("cost basis", _money(position.cost_basis, currency)),
        ("unrealized p/l", _money(position.unrealized_pl, currency)),
        ("unrealized p/l %", _percent(position.unrealized_plpc)),
    ]
    if position.asset_class:
        fields.append(("asset class", position.asset_class))
    if position.exchange:
        fields.append(("exchange", position.exchange))
    return format_fields(fields)


def format_account_fields(account: Account) -> list[str]:
    currency = account.currency
    return format_fields(
        [
            ("account id", account.account_id),
            ("account number", account.account_number or "-"),
            ("status", account.status.label),
            ("buying power", _money(account.buying_power, currency)),
            ("cash", _money(account.cash, currency)),
            ("withdrawable cash", _money(account.withdrawable_cash, currency)),
            ("portfolio value", _money(account.portfolio_value, currency)),
            ("equity", _money(account.equity, currency)),
            ("day trader", _yes_no(account.pattern_day_trader)),
            ("trading blocked", _yes_no(account.trading_blocked)),
            ("transfers blocked", _yes_no(account.transfers_blocked)),
            ("account blocked", _yes_no(account.account_blocked)),
        ]
    )


def _money(value: Optional[Decimal], currency: str) -> str:
    if value is None:
        return "-"
    return f"{to_display(value, 2)} {currency}"


def _percent(value: Optional[Decimal]) -> str:
    if value is None:
        return "-"
    return f"{to_display(value * 100, 2)}%"


def _total(values: Iterable[Optional[Decimal]]) -> Optional[Decimal]:
    total: Optional[Decimal] = None
    for value in values:
        if value is None:
            continue
        total = value if total is None else add(total, value)
    return total


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def _format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
