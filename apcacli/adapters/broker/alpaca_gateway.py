from __future__ import annotations

from typing import AsyncIterator, Optional

from apcacli.adapters.broker.alpaca_account_port import AlpacaAccountPort
from apcacli.adapters.broker.alpaca_connection import AlpacaConfig, AlpacaConnection
from apcacli.adapters.broker.alpaca_order_port import AlpacaOrderPort
from apcacli.adapters.broker.alpaca_positions_port import AlpacaPositionsPort
from apcacli.adapters.broker.alpaca_update_stream import AlpacaUpdateStream
from apcacli.core.account.models import Account
from apcacli.core.gateway import TradingGateway
from apcacli.core.orders.models import Order, OrderFilter, OrderRequest
from apcacli.core.positions.models import Position
from apcacli.core.stream.events import StreamEvent


class AlpacaGateway(TradingGateway):
    def __init__(
        self,
        config: AlpacaConfig,
        *,
        connection: Optional[AlpacaConnection] = None,
        update_stream: Optional[AlpacaUpdateStream] = None,
    ) -> None:
        self._connection = connection or AlpacaConnection(config)
        self._orders = AlpacaOrderPort(self._connection)
        self._positions = AlpacaPositionsPort(self._connection)
        self._account = AlpacaAccountPort(self._connection)
        self._updates = update_stream or AlpacaUpdateStream(config)

    @classmethod
    def from_env(cls) -> "AlpacaGateway":
        return cls(AlpacaConfig.from_env())

    def close(self) -> None:
        self._connection.close()

    async def place_order(self, request: OrderRequest) -> Order:
        return await self._orders.place_order(request)

    async def cancel_order(self, order_id: str) -> None:
        await self._orders.cancel_order(order_id)

    async def cancel_all_orders(self) -> list[str]:
        return await self._orders.cancel_all_orders()

    async def get_order(self, order_id: str) -> Order:
        return await self._orders.get_order(order_id)

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        return await self._orders.list_orders(order_filter)

    async def list_positions(self) -> list[Position]:
        return await self._positions.list_positions()

    async def get_position(self, symbol: str) -> Position:
        return await self._positions.get_position(symbol)

    async def get_account(self) -> Account:
        return await self._account.get_account()

    def subscribe_updates(self) -> AsyncIterator[StreamEvent]:
        return self._updates.subscribe_updates()
