"""HTTP transport for the Firestore REST API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from armysync._constants import USER_AGENT
from armysync._redact import redact_for_log
from armysync.config import SyncConfig
from armysync.exceptions import RemotePermissionError, RemoteTransportError

_logger = logging.getLogger(__name__)


class FirestoreTransport(Protocol):
    """Structural transport interface used by the Firestore remote store.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        ...


class HttpTransport:
    """aiohttp-backed transport returning decoded JSON bodies.

    Non-2xx responses raise :class:`RemoteTransportError` carrying the
    status code; 401 and 403 raise :class:`RemotePermissionError`.
    """

    def __init__(self, config: SyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _build_headers(self, token: str | None) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"
        params = {"key": self._config.api_key} if self._config.api_key else None
        data = json.dumps(body, separators=(",", ":")) if body is not None else None
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout) if self._config.request_timeout else None

        _logger.debug("%s %s body=%s", method, url, redact_for_log(body))

        try:
            async with self._http.request(
                method,
                url,
                params=params,
                data=data,
                headers=self._build_headers(token),
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise RemoteTransportError(f"Request to {path} failed: {exc}", path=path) from exc
        except TimeoutError as exc:
            raise RemoteTransportError(f"Request to {path} timed out", path=path) from exc

        if status in (401, 403):
            raise RemotePermissionError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                path=path,
            )
        if not 200 <= status < 300:
            raise RemoteTransportError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                path=path,
            )

        if not text.strip():
            return {}
        try:
            result = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteTransportError(f"Invalid JSON from {path}: {text[:200]}", status_code=status, path=path) from exc
        if not isinstance(result, dict):
            raise RemoteTransportError(f"Expected a JSON object from {path}", status_code=status, path=path)

        _logger.debug("%s %s -> %d %s", method, url, status, redact_for_log(result))
        return result
