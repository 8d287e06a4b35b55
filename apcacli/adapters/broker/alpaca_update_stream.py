from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Callable, Iterable, Optional

import websockets
from loguru import logger
from websockets.exceptions import WebSocketException

from apcacli.adapters.broker._alpaca_payloads import (
    PayloadError,
    parse_account_update,
    parse_trade_update,
)
from apcacli.adapters.broker.alpaca_connection import AlpacaConfig
from apcacli.core.errors import StreamConnectionError, Unauthorized
from apcacli.core.stream.events import ConnectionState, ConnectionStatus, StreamEvent
from apcacli.core.stream.ports import UpdatesPort

TRADE_UPDATES = "trade_updates"
ACCOUNT_UPDATES = "account_updates"
DEFAULT_STREAMS = (TRADE_UPDATES, ACCOUNT_UPDATES)

Connector = Callable[..., Any]


class AlpacaUpdateStream(UpdatesPort):
    """Trade and account updates from the streaming endpoint.

    Each call to `subscribe_updates` opens a new websocket, authenticates,
    subscribes and then yields one event per message. A broken or closed
    socket surfaces as StreamConnectionError; refused credentials as
    Unauthorized.
    """

    def __init__(
        self,
        config: AlpacaConfig,
        *,
        streams: Iterable[str] = DEFAULT_STREAMS,
        connect: Optional[Connector] = None,
        ping_interval: float = 20.0,
    ) -> None:
        self._config = config
        self._streams = list(streams)
        self._connect = connect or websockets.connect
        self._ping_interval = ping_interval

    async def subscribe_updates(self) -> AsyncIterator[StreamEvent]:
        url = self._config.stream_url
        try:
            async with self._connect(
                url,
                open_timeout=self._config.timeout,
                ping_interval=self._ping_interval,
            ) as socket:
                await self._authenticate(socket)
                await socket.send(json.dumps({"action": "listen", "data": {"streams": self._streams}}))
                logger.info("Listening for {} on {}", ", ".join(self._streams), url)
                yield ConnectionStatus.now(ConnectionState.CONNECTED, detail=url)
                async for message in socket:
                    for event in _events_from_message(message):
                        yield event
        except StreamConnectionError:
            raise
        except WebSocketException as exc:
            status = _handshake_status(exc)
            if status in (401, 403):
                raise Unauthorized(f"stream handshake refused with HTTP {status}") from exc
            raise StreamConnectionError(f"{type(exc).__name__}: {exc}") from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise StreamConnectionError(f"{type(exc).__name__}: {exc}") from exc
        raise StreamConnectionError("stream closed by server")

    async def _authenticate(self, socket: Any) -> None:
        await socket.send(
            json.dumps(
                {
                    "action": "authenticate",
                    "data": {
                        "key_id": self._config.key_id,
                        "secret_key": self._config.secret_key,
                    },
                }
            )
        )
        raw = await asyncio.wait_for(socket.recv(), timeout=self._config.timeout)
        try:
            reply = _decode(raw)
        except ValueError as exc:
            raise StreamConnectionError(f"undecodable authorization reply: {exc}") from exc
        for payload in _as_list(reply):
            if payload.get("stream") != "authorization":
                continue
            data = payload.get("data") or {}
            if data.get("status") == "authorized":
                return
            raise Unauthorized(str(data.get("message") or data.get("status") or "unauthorized"))
        raise StreamConnectionError(f"unexpected authorization reply: {reply!r}")


def _events_from_message(message: Any) -> list[StreamEvent]:
    try:
        decoded = _decode(message)
    except ValueError as exc:
        logger.warning("Skipping undecodable stream message: {}", exc)
        return []
    events: list[StreamEvent] = []
    for payload in _as_list(decoded):
        stream = payload.get("stream")
        data = payload.get("data") or {}
        try:
            if stream == TRADE_UPDATES:
                events.append(parse_trade_update(data))
            elif stream == ACCOUNT_UPDATES:
                events.append(parse_account_update(data))
            elif stream == "listening":
                logger.debug("Subscribed streams: {}", data.get("streams"))
            else:
                logger.debug("Ignoring message on stream {!r}", stream)
        except PayloadError as exc:
            logger.warning("Skipping malformed {} message: {}", stream, exc)
    return events


def _decode(message: Any) -> Any:
    if isinstance(message, (bytes, bytearray, memoryview)):
        message = bytes(message).decode("utf-8")
    return json.loads(message)


def _as_list(decoded: Any) -> list[dict]:
    items = decoded if isinstance(decoded, list) else [decoded]
    return [item for item in items if isinstance(item, dict)]


def _handshake_status(exc: BaseException) -> Optional[int]:
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    return status
