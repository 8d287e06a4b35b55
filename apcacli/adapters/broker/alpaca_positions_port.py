from __future__ import annotations

from apcacli.adapters.broker._alpaca_payloads import decode, decode_list, parse_position
from apcacli.adapters.broker.alpaca_connection import AlpacaConnection
from apcacli.core.positions.models import Position
from apcacli.core.positions.ports import PositionsPort


class AlpacaPositionsPort(PositionsPort):
    def __init__(self, connection: AlpacaConnection) -> None:
        self._connection = connection

    async def list_positions(self) -> list[Position]:
        payload = await self._connection.request("GET", "/v2/positions")
        return decode_list(parse_position, payload, "position list")

    async def get_position(self, symbol: str) -> Position:
        payload = await self._connection.request("GET", f"/v2/positions/{symbol}")
        return decode(parse_position, payload, "position")
