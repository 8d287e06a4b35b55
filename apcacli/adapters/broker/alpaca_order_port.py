from __future__ import annotations

from typing import Any

from loguru import logger

from apcacli.adapters.broker._alpaca_payloads import (
    decode,
    decode_list,
    order_request_body,
    parse_order,
)
from apcacli.adapters.broker.alpaca_connection import AlpacaConnection
from apcacli.core.errors import UnknownApiError
from apcacli.core.orders.models import Order, OrderFilter, OrderRequest
from apcacli.core.orders.ports import OrderPort


class AlpacaOrderPort(OrderPort):
    def __init__(self, connection: AlpacaConnection) -> None:
        self._connection = connection

    async def place_order(self, request: OrderRequest) -> Order:
        body = order_request_body(request)
        logger.info(
            "Submitting {} {} order for {}",
            request.side.value,
            request.order_type.value,
            request.symbol,
        )
        payload = await self._connection.request("POST", "/v2/orders", json=body)
        return decode(parse_order, payload, "order")

    async def cancel_order(self, order_id: str) -> None:
        await self._connection.request("DELETE", f"/v2/orders/{order_id}")

    async def cancel_all_orders(self) -> list[str]:
        payload = await self._connection.request("DELETE", "/v2/orders")
        return _cancelled_ids(payload or [])

    async def get_order(self, order_id: str) -> Order:
        payload = await self._connection.request("GET", f"/v2/orders/{order_id}")
        return decode(parse_order, payload, "order")

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        params: dict[str, Any] = {
            "status": order_filter.status.value,
            "limit": order_filter.limit,
            "direction": "desc",
        }
        if order_filter.symbols:
            params["symbols"] = ",".join(order_filter.symbols)
        payload = await self._connection.request("GET", "/v2/orders", params=params)
        return decode_list(parse_order, payload, "order list")


def _cancelled_ids(payload: Any) -> list[str]:
    if not isinstance(payload, list):
        raise UnknownApiError(f"malformed cancel response: expected a list, got {type(payload).__name__}")
    ids: list[str] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        order_id = item.get("id")
        status = item.get("status")
        if order_id is None:
            continue
        if isinstance(status, int) and status >= 400:
            logger.warning("Cancel request for {} was refused with HTTP {}", order_id, status)
            continue
        ids.append(str(order_id))
    return ids
