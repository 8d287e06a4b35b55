from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from apcacli.core.orders.models import (
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    TimeInForce,
)
from apcacli.core.stream.reconcile import MergeOutcome, merge_order_update

_ORDER_ID = "61e69015-8549-4bfd-b9c3-01e75843f47d"


def _order(status: OrderStatus, filled: str = "0") -> Order:
    return Order(
        order_id=_ORDER_ID,
        client_order_id="client-1",
        symbol="AAPL",
        side=OrderSide.BUY,
        order_type=OrderType.MARKET,
        time_in_force=TimeInForce.DAY,
        status=status,
        quantity=Decimal("10"),
        notional=None,
        filled_quantity=Decimal(filled),
        created_at=datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc),
    )


def test_forward_progress_is_applied_and_late_duplicates_are_dropped() -> None:
    snapshots: dict[str, Order] = {}
    sequence = [
        _order(OrderStatus.NEW),
        _order(OrderStatus.PARTIALLY_FILLED, "4"),
        _order(OrderStatus.FILLED, "10"),
    ]

    outcomes = [merge_order_update(snapshots, order) for order in sequence]
    late = [
        merge_order_update(snapshots, _order(OrderStatus.NEW)),
        merge_order_update(snapshots, _order(OrderStatus.PARTIALLY_FILLED, "4")),
        merge_order_update(snapshots, _order(OrderStatus.FILLED, "10")),
    ]

    assert outcomes == [MergeOutcome.APPLIED] * 3
    assert late == [MergeOutcome.STALE, MergeOutcome.STALE, MergeOutcome.DUPLICATE]
    assert snapshots[_ORDER_ID].status == OrderStatus.FILLED
    assert snapshots[_ORDER_ID].filled_quantity == Decimal("10")


def test_new_after_filled_is_discarded() -> None:
    snapshots: dict[str, Order] = {}

    assert merge_order_update(snapshots, _order(OrderStatus.FILLED, "10")) == MergeOutcome.APPLIED
    assert merge_order_update(snapshots, _order(OrderStatus.NEW)) == MergeOutcome.STALE
    assert snapshots[_ORDER_ID].status == OrderStatus.FILLED


def test_terminal_statuses_are_absorbing() -> None:
    snapshots = {_ORDER_ID: _order(OrderStatus.CANCELED, "3")}

    assert merge_order_update(snapshots, _order(OrderStatus.FILLED, "10")) == MergeOutcome.STALE
    assert snapshots[_ORDER_ID].status == OrderStatus.CANCELED


def test_filled_quantity_never_shrinks_within_a_stage() -> None:
    snapshots = {_ORDER_ID: _order(OrderStatus.PARTIALLY_FILLED, "6")}

    assert merge_order_update(snapshots, _order(OrderStatus.PARTIALLY_FILLED, "4")) == MergeOutcome.STALE
    assert merge_order_update(snapshots, _order(OrderStatus.PARTIALLY_FILLED, "8")) == MergeOutcome.APPLIED
    assert snapshots[_ORDER_ID].filled_quantity == Decimal("8")


def test_identical_update_is_a_duplicate() -> None:
    snapshots: dict[str, Order] = {}
    order = _order(OrderStatus.NEW)

    merge_order_update(snapshots, order)

    assert merge_order_update(snapshots, replace(order)) == MergeOutcome.DUPLICATE


def test_orders_are_tracked_independently() -> None:
    snapshots: dict[str, Order] = {}
    other = replace(_order(OrderStatus.NEW), order_id="other")

    merge_order_update(snapshots, _order(OrderStatus.FILLED, "10"))

    assert merge_order_update(snapshots, other) == MergeOutcome.APPLIED
    assert set(snapshots) == {_ORDER_ID, "other"}


def test_redelivered_status_with_newer_timestamp_is_a_duplicate() -> None:
    first = replace(_order(OrderStatus.NEW), updated_at=datetime(2024, 1, 2, 14, 31, tzinfo=timezone.utc))
    redelivered = replace(first, updated_at=datetime(2024, 1, 2, 14, 35, tzinfo=timezone.utc))
    snapshots: dict[str, Order] = {}

    merge_order_update(snapshots, first)

    assert merge_order_update(snapshots, redelivered) == MergeOutcome.DUPLICATE
    assert snapshots[_ORDER_ID].updated_at == first.updated_at
