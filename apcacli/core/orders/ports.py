from __future__ import annotations

from typing import Protocol

from apcacli.core.orders.models import Order, OrderFilter, OrderRequest


class OrderPort(Protocol):
    async def place_order(self, request: OrderRequest) -> Order:
        """Submit an order to the broker and return the accepted order."""
        raise NotImplementedError

    async def cancel_order(self, order_id: str) -> None:
        """Request cancellation of an open order."""
        raise NotImplementedError

    async def cancel_all_orders(self) -> list[str]:
        """Request cancellation of every open order; return the affected ids."""
        raise NotImplementedError

    async def get_order(self, order_id: str) -> Order:
        """Fetch a single order by its broker-assigned id."""
        raise NotImplementedError

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        """Return orders matching the filter, newest first."""
        raise NotImplementedError
