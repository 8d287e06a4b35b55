from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from apcacli.cli.event_printer import Echo, make_event_printer
from apcacli.cli.render import (
    format_account_fields,
    format_order_fields,
    format_orders_table,
    format_position_fields,
    format_positions_table,
)
from apcacli.core.backoff import DISPATCH_BACKOFF, STREAM_BACKOFF, BackoffPolicy
from apcacli.core.commands import (
    CancelAllOrders,
    CancelOrder,
    Command,
    GetAccount,
    GetOrder,
    GetPosition,
    ListOrders,
    ListPositions,
    PlaceOrder,
    StreamUpdates,
    new_client_order_id,
)
from apcacli.core.errors import (
    ApiError,
    CommandFailed,
    DisplayError,
    NotFound,
    RateLimited,
    Transport,
    Unauthorized,
)
from apcacli.core.gateway import TradingGateway
from apcacli.core.orders.models import MAX_ORDER_LIST_LIMIT, Order, OrderFilter, OrderQueryStatus
from apcacli.core.stream.reconciler import StreamEnd, StreamReconciler

_T = TypeVar("_T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RenderedOutput:
    lines: list[str] = field(default_factory=list)
    interrupted: bool = False


class Dispatcher:
    """Run one command against the gateway and render its result.

    Each gateway call is retried according to its failure category: a rate
    limit waits for the advertised delay and retries once, transport failures
    are attempted up to `transport_attempts` times with exponential backoff,
    and everything else fails immediately with CommandFailed.
    """

    def __init__(
        self,
        gateway: TradingGateway,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[Callable[[], float]] = None,
        transport_attempts: int = 3,
        backoff: BackoffPolicy = DISPATCH_BACKOFF,
        stream_backoff: BackoffPolicy = STREAM_BACKOFF,
        echo: Echo = print,
    ) -> None:
        self._gateway = gateway
        self._sleep = sleep
        self._rng = rng
        self._transport_attempts = max(1, transport_attempts)
        self._backoff = backoff
        self._stream_backoff = stream_backoff
        self._echo = echo
        self._reconciler: Optional[StreamReconciler] = None
        self._stop_requested = False

    def stop(self) -> None:
        self._stop_requested = True
        if self._reconciler is not None:
            self._reconciler.stop()

    async def execute(self, command: Command) -> RenderedOutput:
        if isinstance(command, PlaceOrder):
            return await self._place(command)
        if isinstance(command, CancelOrder):
            await self._call("cancel order", lambda: self._gateway.cancel_order(command.order_id))
            return RenderedOutput([f"canceled {command.order_id}"])
        if isinstance(command, CancelAllOrders):
            canceled = await self._call("cancel all orders", self._gateway.cancel_all_orders)
            return RenderedOutput([f"canceled {order_id}" for order_id in canceled])
        if isinstance(command, GetOrder):
            order = await self._get_order(command)
            return self._render(lambda: format_order_fields(order))
        if isinstance(command, ListOrders):
            account = await self._call("get account", self._gateway.get_account)
            orders = await self._call(
                "list orders", lambda: self._gateway.list_orders(command.order_filter)
            )
            if not orders:
                return RenderedOutput(["no orders"])
            return self._render(lambda: format_orders_table(orders, account.currency))
        if isinstance(command, ListPositions):
            positions = await self._call("list positions", self._gateway.list_positions)
            if not positions:
                return RenderedOutput(["no positions"])
            return self._render(lambda: format_positions_table(positions))
        if isinstance(command, GetPosition):
            position = await self._call(
                "get position", lambda: self._gateway.get_position(command.symbol)
            )
            return self._render(lambda: format_position_fields(position))
        if isinstance(command, GetAccount):
            account = await self._call("get account", self._gateway.get_account)
            return self._render(lambda: format_account_fields(account))
        if isinstance(command, StreamUpdates):
            return await self._stream()
        raise TypeError(f"unsupported command: {type(command).__name__}")

    async def _place(self, command: PlaceOrder) -> RenderedOutput:
        request = command.request
        if not request.client_order_id:
            # retries must resubmit under the same client id
            request = dataclasses.replace(request, client_order_id=new_client_order_id())
        order = await self._call("place order", lambda: self._gateway.place_order(request))
        return self._render(lambda: [order.order_id, *format_order_fields(order)])

    async def _get_order(self, command: GetOrder) -> Order:
        if command.is_order_id:
            return await self._call("get order", lambda: self._gateway.get_order(command.reference))
        order_filter = OrderFilter(status=OrderQueryStatus.ALL, limit=MAX_ORDER_LIST_LIMIT)
        orders = await self._call("get order", lambda: self._gateway.list_orders(order_filter))
        for candidate in orders:
            if candidate.client_order_id == command.reference:
                return await self._call("get order", lambda: self._gateway.get_order(candidate.order_id))
        raise CommandFailed("get order", NotFound(f"no order with client id {command.reference!r}"))

    async def _stream(self) -> RenderedOutput:
        reconciler = StreamReconciler(
            self._gateway,
            make_event_printer(self._echo),
            backoff=self._stream_backoff,
            rng=self._rng,
        )
        self._reconciler = reconciler
        if self._stop_requested:
            reconciler.stop()
        try:
            outcome = await reconciler.run()
        except Unauthorized as exc:
            raise CommandFailed("stream updates", exc) from exc
        finally:
            self._reconciler = None
        logger.info(
            "Update stream {}: {} events rendered, {} reconnects, {} anomalies",
            outcome.end.value,
            outcome.events_rendered,
            outcome.reconnects,
            outcome.anomalies,
        )
        return RenderedOutput(interrupted=outcome.end is StreamEnd.STOPPED)

    async def _call(self, operation: str, call: Callable[[], Awaitable[_T]]) -> _T:
        rate_limit_retried = False
        transport_failures = 0
        while True:
            try:
                return await call()
            except RateLimited as exc:
                if rate_limit_retried:
                    raise CommandFailed(operation, exc) from exc
                rate_limit_retried = True
                logger.debug("{} rate limited; retrying in {:.2f}s", operation, exc.retry_after)
                await self._sleep(exc.retry_after)
            except Transport as exc:
                transport_failures += 1
                if transport_failures >= self._transport_attempts:
                    raise CommandFailed(operation, exc) from exc
                delay = self._backoff.delay(transport_failures - 1, self._rng)
                logger.debug(
                    "{} attempt {} failed ({}); retrying in {:.2f}s",
                    operation,
                    transport_failures,
                    exc.describe(),
                    delay,
                )
                await self._sleep(delay)
            except ApiError as exc:
                raise CommandFailed(operation, exc) from exc

    @staticmethod
    def _render(render: Callable[[], list[str]]) -> RenderedOutput:
        try:
            return RenderedOutput(render())
        except DisplayError:
            raise
        except Exception as exc:
            raise DisplayError(f"failed to render output: {exc}") from exc
