from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from apcacli.cli.dispatcher import Dispatcher
from apcacli.core.account.models import Account, AccountStatus
from apcacli.core.commands import (
    CancelAllOrders,
    GetAccount,
    ListPositions,
    StreamUpdates,
    build_cancel_order,
    build_get_order,
    build_list_orders,
    build_place_order,
)
from apcacli.core.errors import (
    ApiValidation,
    CommandFailed,
    DisplayError,
    NotFound,
    RateLimited,
    Transport,
    Unauthorized,
)
from apcacli.core.orders.models import (
    Order,
    OrderQueryStatus,
    OrderSide,
    OrderStatus,
    OrderType,
    TimeInForce,
)
from apcacli.core.positions.models import Position
from apcacli.core.stream.events import OrderEventType, OrderUpdate

_ORDER_ID = "904837e3-3b76-47ec-b432-046db621571b"


def _order(order_id: str = _ORDER_ID, *, symbol: str = "AAPL", client_order_id: str = "client-1") -> Order:
    return Order(
        order_id=order_id,
        client_order_id=client_order_id,
        symbol=symbol,
        side=OrderSide.BUY,
        order_type=OrderType.LIMIT,
        time_in_force=TimeInForce.DAY,
        status=OrderStatus.NEW,
        quantity=Decimal("10"),
        notional=None,
        filled_quantity=Decimal("0"),
        created_at=datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc),
        limit_price=Decimal("190.5"),
    )


def _account(currency: str = "USD") -> Account:
    return Account(
        account_id="acct-1",
        status=AccountStatus.ACTIVE,
        currency=currency,
        buying_power=Decimal("4000"),
        cash=Decimal("1000"),
        equity=Decimal("1500"),
    )


class _FakeGateway:
    """Replays scripted results per operation; exceptions in a script are raised."""

    def __init__(self, **scripts: list) -> None:
        self._scripts = {name: list(results) for name, results in scripts.items()}
        self.calls: list[tuple] = []

    def _next(self, name: str, *args):
        self.calls.append((name, *args))
        result = self._scripts[name].pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def place_order(self, request):
        return self._next("place_order", request)

    async def cancel_order(self, order_id):
        return self._next("cancel_order", order_id)

    async def cancel_all_orders(self):
        return self._next("cancel_all_orders")

    async def get_order(self, order_id):
        return self._next("get_order", order_id)

    async def list_orders(self, order_filter):
        return self._next("list_orders", order_filter)

    async def list_positions(self):
        return self._next("list_positions")

    async def get_position(self, symbol):
        return self._next("get_position", symbol)

    async def get_account(self):
        return self._next("get_account")

    async def subscribe_updates(self):
        for event in self._next("subscribe_updates"):
            yield event

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


class _FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _dispatcher(gateway: _FakeGateway, sleep: _FakeSleep | None = None, **kwargs) -> Dispatcher:
    return Dispatcher(gateway, sleep=sleep or _FakeSleep(), rng=lambda: 0.0, **kwargs)


def _place_command():
    return build_place_order(symbol="AAPL", side="buy", qty="10", limit_price="190.5")


def test_place_order_prints_id_then_fields() -> None:
    gateway = _FakeGateway(place_order=[_order()])

    output = asyncio.run(_dispatcher(gateway).execute(_place_command()))

    assert output.lines[0] == _ORDER_ID
    assert any(line.startswith("symbol:") and "AAPL" in line for line in output.lines)
    assert any("limit @ 190.5 USD" in line for line in output.lines)


def test_place_order_assigns_client_id_once_for_retries() -> None:
    gateway = _FakeGateway(place_order=[Transport("connection reset"), _order()])

    asyncio.run(_dispatcher(gateway).execute(_place_command()))

    first, second = (call[1] for call in gateway.calls)
    assert first.client_order_id
    assert first.client_order_id == second.client_order_id


def test_rate_limited_sleeps_then_retries_exactly_once() -> None:
    sleep = _FakeSleep()
    gateway = _FakeGateway(place_order=[RateLimited("slow down", retry_after=2.0), _order()])

    output = asyncio.run(_dispatcher(gateway, sleep).execute(_place_command()))

    assert output.lines[0] == _ORDER_ID
    assert sleep.delays == [2.0]
    assert gateway.call_names() == ["place_order", "place_order"]


def test_second_rate_limit_is_surfaced() -> None:
    sleep = _FakeSleep()
    gateway = _FakeGateway(
        place_order=[
            RateLimited("slow down", retry_after=2.0),
            RateLimited("still too fast", retry_after=2.0),
            _order(),
        ]
    )

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_dispatcher(gateway, sleep).execute(_place_command()))

    assert isinstance(info.value.error, RateLimited)
    assert gateway.call_names() == ["place_order", "place_order"]
    assert sleep.delays == [2.0]
    assert str(info.value) == "place order failed: rate limited: still too fast"


def test_transport_failures_are_attempted_three_times_with_backoff() -> None:
    sleep = _FakeSleep()
    gateway = _FakeGateway(get_account=[Transport("timeout")] * 3)

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_dispatcher(gateway, sleep).execute(GetAccount()))

    assert isinstance(info.value.error, Transport)
    assert gateway.call_names() == ["get_account"] * 3
    # rng() == 0 gives the lower jitter edge, half of the 0.5s and 1.0s bounds
    assert sleep.delays == [0.25, 0.5]


def test_transport_recovers_on_later_attempt() -> None:
    gateway = _FakeGateway(get_account=[Transport("timeout"), _account()])

    output = asyncio.run(_dispatcher(gateway).execute(GetAccount()))

    assert any(line.startswith("account id:") for line in output.lines)


def test_unauthorized_is_not_retried() -> None:
    sleep = _FakeSleep()
    gateway = _FakeGateway(get_account=[Unauthorized("access key verification failed"), _account()])

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_dispatcher(gateway, sleep).execute(GetAccount()))

    assert isinstance(info.value.error, Unauthorized)
    assert gateway.call_names() == ["get_account"]
    assert sleep.delays == []


def test_validation_rejection_carries_server_message() -> None:
    gateway = _FakeGateway(place_order=[ApiValidation("insufficient buying power")])

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_dispatcher(gateway).execute(_place_command()))

    assert str(info.value) == "place order failed: rejected: insufficient buying power"
    assert len(gateway.calls) == 1


def test_cancel_order_and_cancel_all() -> None:
    gateway = _FakeGateway(cancel_order=[None], cancel_all_orders=[["id-1", "id-2"]])
    dispatcher = _dispatcher(gateway)

    single = asyncio.run(dispatcher.execute(build_cancel_order(_ORDER_ID)))
    every = asyncio.run(dispatcher.execute(CancelAllOrders()))

    assert single.lines == [f"canceled {_ORDER_ID}"]
    assert every.lines == ["canceled id-1", "canceled id-2"]


def test_get_order_by_id_calls_get_order_directly() -> None:
    gateway = _FakeGateway(get_order=[_order()])

    output = asyncio.run(_dispatcher(gateway).execute(build_get_order(_ORDER_ID)))

    assert gateway.call_names() == ["get_order"]
    assert any(_ORDER_ID in line for line in output.lines)


def test_get_order_by_client_id_lists_then_fetches() -> None:
    other = _order("11111111-2222-3333-4444-555555555555", client_order_id="other")
    wanted = _order(client_order_id="my-order")
    gateway = _FakeGateway(list_orders=[[other, wanted]], get_order=[wanted])

    asyncio.run(_dispatcher(gateway).execute(build_get_order("my-order")))

    assert gateway.call_names() == ["list_orders", "get_order"]
    assert gateway.calls[0][1].status == OrderQueryStatus.ALL
    assert gateway.calls[1][1] == _ORDER_ID


def test_get_order_by_unknown_client_id_is_not_found() -> None:
    gateway = _FakeGateway(list_orders=[[_order()]])

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_dispatcher(gateway).execute(build_get_order("missing")))

    assert isinstance(info.value.error, NotFound)
    assert gateway.call_names() == ["list_orders"]


def test_list_orders_uses_account_currency_and_sorts_by_symbol() -> None:
    orders = [
        _order("11111111-2222-3333-4444-555555555555", symbol="TSLA"),
        _order(symbol="AAPL"),
    ]
    gateway = _FakeGateway(get_account=[_account("EUR")], list_orders=[orders])

    output = asyncio.run(_dispatcher(gateway).execute(build_list_orders()))

    assert gateway.call_names() == ["get_account", "list_orders"]
    assert output.lines[2].startswith("AAPL")
    assert output.lines[3].startswith("TSLA")
    assert "limit @ 190.5 EUR" in output.lines[2]


def test_empty_lists() -> None:
    gateway = _FakeGateway(get_account=[_account()], list_orders=[[]], list_positions=[[]])
    dispatcher = _dispatcher(gateway)

    assert asyncio.run(dispatcher.execute(build_list_orders())).lines == ["no orders"]
    assert asyncio.run(dispatcher.execute(ListPositions())).lines == ["no positions"]


def test_render_failure_is_a_display_error(monkeypatch: pytest.MonkeyPatch) -> None:
    import apcacli.cli.dispatcher as dispatcher_module

    def _broken(_account):
        raise KeyError("status")

    monkeypatch.setattr(dispatcher_module, "format_account_fields", _broken)
    gateway = _FakeGateway(get_account=[_account()])

    with pytest.raises(DisplayError):
        asyncio.run(_dispatcher(gateway).execute(GetAccount()))


def test_list_positions_renders_table() -> None:
    positions = [
        Position(symbol="MSFT", quantity=Decimal("3"), avg_entry_price=Decimal("400"), market_value=Decimal("1230")),
        Position(symbol="AAPL", quantity=Decimal("10"), avg_entry_price=Decimal("180"), market_value=Decimal("1900")),
    ]
    gateway = _FakeGateway(list_positions=[positions])

    output = asyncio.run(_dispatcher(gateway).execute(ListPositions()))

    assert output.lines[2].startswith("AAPL")
    assert output.lines[-1].startswith("TOTAL")
    assert "3130.00 USD" in output.lines[-1]


def test_stream_renders_events_through_echo() -> None:
    update = OrderUpdate(
        order=_order(),
        event_type=OrderEventType.NEW,
        timestamp=datetime(2024, 1, 2, 14, 31, tzinfo=timezone.utc),
    )
    gateway = _FakeGateway(subscribe_updates=[[update]])
    printed: list[str] = []

    output = asyncio.run(_dispatcher(gateway, echo=printed.append).execute(StreamUpdates()))

    assert output.lines == []
    assert output.interrupted is False
    assert len(printed) == 1
    assert "OrderStatus" in printed[0]
    assert _ORDER_ID in printed[0]


def test_stream_unauthorized_is_command_failure() -> None:
    gateway = _FakeGateway(subscribe_updates=[Unauthorized("bad key")])

    with pytest.raises(CommandFailed) as info:
        asyncio.run(_dispatcher(gateway, echo=lambda _line: None).execute(StreamUpdates()))

    assert info.value.operation == "stream updates"


def test_stop_before_stream_reports_interrupted() -> None:
    gateway = _FakeGateway(subscribe_updates=[[]])
    dispatcher = _dispatcher(gateway, echo=lambda _line: None)

    dispatcher.stop()
    output = asyncio.run(dispatcher.execute(StreamUpdates()))

    assert output.interrupted is True
