from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Mapping, Optional

from loguru import logger

from apcacli.core.backoff import STREAM_BACKOFF, BackoffPolicy
from apcacli.core.errors import DisplayError, StreamConnectionError, Unauthorized
from apcacli.core.orders.models import Order
from apcacli.core.stream.events import (
    ConnectionState,
    ConnectionStatus,
    OrderUpdate,
    StreamEvent,
)
from apcacli.core.stream.ports import UpdatesPort
from apcacli.core.stream.reconcile import MergeOutcome, merge_order_update

EventRenderer = Callable[[StreamEvent], None]


class SessionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


class StreamEnd(str, Enum):
    STOPPED = "stopped"
    ENDED = "ended"


@dataclass(frozen=True)
class StreamOutcome:
    end: StreamEnd
    snapshots: dict[str, Order] = field(default_factory=dict)
    reconnects: int = 0
    events_rendered: int = 0
    anomalies: int = 0


class _Signal(Enum):
    STOPPED = "stopped"
    END = "end"


class StreamReconciler:
    """Consume the update stream, keep per-order snapshots and render events.

    Events are rendered synchronously in arrival order. Connection failures
    trigger a reconnect after a jittered exponential backoff; only an explicit
    stop, the end of the stream or a refused authorization terminate the
    session.
    """

    def __init__(
        self,
        port: UpdatesPort,
        render: EventRenderer,
        *,
        backoff: BackoffPolicy = STREAM_BACKOFF,
        rng: Optional[Callable[[], float]] = None,
        snapshots: Optional[Mapping[str, Order]] = None,
    ) -> None:
        self._port = port
        self._render = render
        self._backoff = backoff
        self._rng = rng
        self._snapshots: dict[str, Order] = dict(snapshots or {})
        self._state = SessionState.CONNECTING
        self._history: list[SessionState] = [SessionState.CONNECTING]
        self._stop = asyncio.Event()
        self._attempt = 0
        self._reconnects = 0
        self._rendered = 0
        self._anomalies = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> list[SessionState]:
        return list(self._history)

    @property
    def snapshots(self) -> dict[str, Order]:
        return dict(self._snapshots)

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> StreamOutcome:
        end = StreamEnd.STOPPED
        try:
            while not self._stop.is_set():
                try:
                    stream = self._port.subscribe_updates()
                    self._transition(SessionState.STREAMING)
                    signal = await self._consume(stream)
                except StreamConnectionError as exc:
                    if await self._recover(exc):
                        break
                    continue
                if signal is _Signal.END:
                    end = StreamEnd.ENDED
                break
        except Unauthorized:
            logger.error("Update stream refused the credentials; giving up")
            raise
        finally:
            self._transition(SessionState.TERMINATED)
        return StreamOutcome(
            end=end,
            snapshots=dict(self._snapshots),
            reconnects=self._reconnects,
            events_rendered=self._rendered,
            anomalies=self._anomalies,
        )

    async def _recover(self, exc: StreamConnectionError) -> bool:
        """Move through DISCONNECTED/RECONNECTING; return True when stopped while waiting."""
        self._transition(SessionState.DISCONNECTED)
        self._emit(ConnectionStatus.now(ConnectionState.DISCONNECTED, detail=str(exc) or None))
        self._transition(SessionState.RECONNECTING)
        delay = self._backoff.delay(self._attempt, self._rng)
        self._attempt += 1
        self._reconnects += 1
        self._emit(
            ConnectionStatus.now(
                ConnectionState.RECONNECTING,
                detail=f"retrying in {delay:.1f}s",
                attempt=self._attempt,
            )
        )
        logger.info("Update stream lost ({}); reconnect attempt {} in {:.2f}s", exc, self._attempt, delay)
        return await self._wait_for_stop(delay)

    async def _consume(self, stream: AsyncIterator[StreamEvent]) -> _Signal:
        iterator = stream.__aiter__()
        try:
            while True:
                item = await self._next_or_stop(iterator)
                if isinstance(item, _Signal):
                    return item
                self._attempt = 0
                self._handle(item)
        finally:
            await _close(iterator)

    async def _next_or_stop(self, iterator: AsyncIterator[StreamEvent]) -> StreamEvent | _Signal:
        if self._stop.is_set():
            return _Signal.STOPPED
        next_task = asyncio.ensure_future(iterator.__anext__())
        stop_task = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({next_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()
            if not next_task.done():
                next_task.cancel()
                await asyncio.gather(next_task, return_exceptions=True)
        if self._stop.is_set():
            if next_task.done() and not next_task.cancelled():
                # consume the result so a pending failure is not reported as unretrieved
                next_task.exception()
            return _Signal.STOPPED
        try:
            return next_task.result()
        except StopAsyncIteration:
            return _Signal.END

    async def _wait_for_stop(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _handle(self, event: StreamEvent) -> None:
        if isinstance(event, OrderUpdate):
            previous = self._snapshots.get(event.order.order_id)
            outcome = merge_order_update(self._snapshots, event.order)
            if outcome is MergeOutcome.STALE:
                self._anomalies += 1
                logger.warning(
                    "Dropping out-of-order update for {}: {} after {}",
                    event.order.order_id,
                    event.order.status.value,
                    previous.status.value if previous else "-",
                )
                return
            if outcome is MergeOutcome.DUPLICATE:
                logger.debug("Ignoring duplicate {} update for {}", event.order.status.value, event.order.order_id)
                return
        self._emit(event)

    def _emit(self, event: StreamEvent) -> None:
        try:
            self._render(event)
        except Exception as exc:
            error = DisplayError(f"failed to render {type(event).__name__}: {exc}")
            logger.opt(exception=exc).error("{}", error)
            return
        self._rendered += 1

    def _transition(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug("Stream session {} -> {}", self._state.value, state.value)
        self._state = state
        self._history.append(state)


async def _close(iterator: AsyncIterator[StreamEvent]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except (StreamConnectionError, OSError) as exc:
        logger.debug("Error while closing update stream: {}", exc)
