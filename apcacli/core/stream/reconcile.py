from __future__ import annotations

from enum import Enum
from typing import MutableMapping

from apcacli.core.orders.models import Order


class MergeOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"


def merge_order_update(snapshots: MutableMapping[str, Order], incoming: Order) -> MergeOutcome:
    """Merge `incoming` into `snapshots` if it is not older than what is stored.

    Statuses only move forward along PENDING < OPEN < PARTIAL < TERMINAL.
    Terminal statuses are absorbing: a repeat of the same terminal status is a
    duplicate, any other status after a terminal one is stale. Within one stage
    the filled quantity must not shrink, and a repeat of the stored status and
    filled quantity is a duplicate whatever its timestamps say.
    """
    current = snapshots.get(incoming.order_id)
    if current is None:
        snapshots[incoming.order_id] = incoming
        return MergeOutcome.APPLIED

    if current.status.is_terminal:
        if incoming.status == current.status:
            return MergeOutcome.DUPLICATE
        return MergeOutcome.STALE

    current_stage = current.status.stage
    incoming_stage = incoming.status.stage
    if incoming_stage < current_stage:
        return MergeOutcome.STALE
    if incoming_stage == current_stage:
        if incoming.filled_quantity < current.filled_quantity:
            return MergeOutcome.STALE
        if incoming.status == current.status and incoming.filled_quantity == current.filled_quantity:
            return MergeOutcome.DUPLICATE

    snapshots[incoming.order_id] = incoming
    return MergeOutcome.APPLIED
