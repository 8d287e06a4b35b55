from apcacli.core.orders.models import (
    MAX_ORDER_LIST_LIMIT,
    LifecycleStage,
    Order,
    OrderFilter,
    OrderQueryStatus,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    TimeInForce,
)
from apcacli.core.orders.ports import OrderPort

__all__ = [
    "MAX_ORDER_LIST_LIMIT",
    "LifecycleStage",
    "Order",
    "OrderFilter",
    "OrderQueryStatus",
    "OrderRequest",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "TimeInForce",
    "OrderPort",
]
