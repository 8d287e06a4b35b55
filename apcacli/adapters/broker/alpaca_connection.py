from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from loguru import logger

from apcacli.core.errors import (
    ApiError,
    ApiValidation,
    ConfigError,
    NotFound,
    RateLimited,
    Transport,
    Unauthorized,
    UnknownApiError,
)

PAPER_BASE_URL = "https://paper-api.alpaca.markets"
DEFAULT_RETRY_AFTER = 1.0
_AUTH_FAILURE_MESSAGES = {"", "forbidden", "unauthorized", "access key verification failed"}


def stream_url_for(base_url: str) -> str:
    parts = urlsplit(base_url)
    scheme = "ws" if parts.scheme == "http" else "wss"
    return urlunsplit((scheme, parts.netloc, "/stream", "", ""))


@dataclass(frozen=True)
class AlpacaConfig:
    key_id: str
    secret_key: str
    base_url: str = PAPER_BASE_URL
    stream_url: str = ""
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "AlpacaConfig":
        key_id = os.getenv("APCA_API_KEY_ID", "").strip()
        secret_key = os.getenv("APCA_API_SECRET_KEY", "").strip()
        missing = [
            name
            for name, value in (("APCA_API_KEY_ID", key_id), ("APCA_API_SECRET_KEY", secret_key))
            if not value
        ]
        if missing:
            raise ConfigError(f"missing environment variable(s): {', '.join(missing)}")
        base_url = os.getenv("APCA_API_BASE_URL", PAPER_BASE_URL).strip().rstrip("/") or PAPER_BASE_URL
        stream_url = os.getenv("APCA_API_STREAM_URL", "").strip() or stream_url_for(base_url)
        raw_timeout = os.getenv("APCA_TIMEOUT", "10")
        try:
            timeout = float(raw_timeout)
        except ValueError as exc:
            raise ConfigError(f"APCA_TIMEOUT must be a number of seconds, got {raw_timeout!r}") from exc
        return cls(
            key_id=key_id,
            secret_key=secret_key,
            base_url=base_url,
            stream_url=stream_url,
            timeout=timeout,
        )

    @property
    def is_paper(self) -> bool:
        return "paper" in urlsplit(self.base_url).netloc


class AlpacaConnection:
    """Authenticated REST access to the trading API.

    Blocking `requests` calls run in a worker thread so only the awaiting task
    is suspended. Non-2xx responses and transport failures are mapped onto the
    ApiError hierarchy here and nowhere else.
    """

    def __init__(self, config: AlpacaConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "APCA-API-KEY-ID": config.key_id,
                "APCA-API-SECRET-KEY": config.secret_key,
            }
        )

    @property
    def config(self) -> AlpacaConfig:
        return self._config

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        return await asyncio.to_thread(self._request, method, path, params=params, json=json)

    def close(self) -> None:
        self._session.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        url = f"{self._config.base_url}{path}"
        logger.debug("{} {}", method, url)
        try:
            response = self._session.request(
                method,
                url,
                params=dict(params) if params else None,
                json=dict(json) if json is not None else None,
                timeout=self._config.timeout,
            )
        except requests.RequestException as exc:
            raise Transport(cause=exc) from exc
        raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UnknownApiError(
                f"response is not valid JSON: {exc}",
                status_code=response.status_code,
            ) from exc


def raise_for_status(response: requests.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    raise error_for_response(status, error_message(response), response.headers)


def error_for_response(status: int, message: str, headers: Mapping[str, str]) -> ApiError:
    if status == 401:
        return Unauthorized(message)
    if status == 403:
        # 403 is also used for business rejections such as insufficient buying power
        if message.strip(" .").lower() in _AUTH_FAILURE_MESSAGES:
            return Unauthorized(message)
        return ApiValidation(message)
    if status == 404:
        return NotFound(message)
    if status == 429:
        return RateLimited(message, retry_after=retry_after_seconds(headers))
    if status in (400, 409, 422):
        return ApiValidation(message)
    if status >= 500:
        return Transport(f"HTTP {status}: {message}" if message else f"HTTP {status}")
    return UnknownApiError(message, status_code=status)


def error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:500]
    if isinstance(payload, Mapping):
        message = payload.get("message") or payload.get("msg")
        if message:
            return str(message)
    return str(payload)[:500]


def retry_after_seconds(headers: Mapping[str, str], *, now: Optional[float] = None) -> float:
    current = time.time() if now is None else now
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            try:
                return max(parsedate_to_datetime(retry_after).timestamp() - current, 0.0)
            except (TypeError, ValueError):
                pass
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return max(float(reset) - current, 0.0)
        except ValueError:
            pass
    return DEFAULT_RETRY_AFTER
