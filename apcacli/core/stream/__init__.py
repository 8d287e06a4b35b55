from apcacli.core.stream.events import (
    AccountUpdate,
    ConnectionState,
    ConnectionStatus,
    OrderEventType,
    OrderUpdate,
    StreamEvent,
)
from apcacli.core.stream.ports import UpdatesPort
from apcacli.core.stream.reconcile import MergeOutcome, merge_order_update
from apcacli.core.stream.reconciler import (
    SessionState,
    StreamEnd,
    StreamOutcome,
    StreamReconciler,
)

__all__ = [
    "AccountUpdate",
    "ConnectionState",
    "ConnectionStatus",
    "OrderEventType",
    "OrderUpdate",
    "StreamEvent",
    "UpdatesPort",
    "MergeOutcome",
    "merge_order_update",
    "SessionState",
    "StreamEnd",
    "StreamOutcome",
    "StreamReconciler",
]
