from __future__ import annotations

from typing import Any

import aiohttp
import pytest
from aiohttp import test_utils, web

from armysync.config import SyncConfig
from armysync.exceptions import RemotePermissionError, RemoteTransportError
from armysync.remote._transport import HttpTransport


async def _serve(handler: Any) -> test_utils.TestServer:
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_request_sends_bearer_token_key_and_json_body() -> None:
    seen: dict[str, Any] = {}

    async def handler(request: web.Request) -> web.Response:
        seen["path"] = request.path
        seen["auth"] = request.headers.get("Authorization")
        seen["key"] = request.query.get("key")
        seen["body"] = await request.json()
        return web.json_response({"commitTime": "2026-03-01T00:00:00Z"})

    server = await _serve(handler)
    try:
        config = SyncConfig(project_id="p", api_key="api-key", base_url=str(server.make_url("/v1")))
        async with aiohttp.ClientSession() as session:
            result = await HttpTransport(config, session).request(
                "POST", "projects/p/databases/(default)/documents:commit", token="tok", body={"writes": []}
            )
    finally:
        await server.close()

    assert result == {"commitTime": "2026-03-01T00:00:00Z"}
    assert seen == {
        "path": "/v1/projects/p/databases/(default)/documents:commit",
        "auth": "Bearer tok",
        "key": "api-key",
        "body": {"writes": []},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error_type"),
    [(401, RemotePermissionError), (403, RemotePermissionError), (404, RemoteTransportError), (500, RemoteTransportError)],
)
async def test_error_statuses_raise(status: int, error_type: type[Exception]) -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({"error": {"code": status}}, status=status)

    server = await _serve(handler)
    try:
        config = SyncConfig(project_id="p", base_url=str(server.make_url("/v1")))
        async with aiohttp.ClientSession() as session:
            with pytest.raises(error_type) as excinfo:
                await HttpTransport(config, session).request("GET", "projects/p/doc")
    finally:
        await server.close()

    assert excinfo.value.status_code == status  # type: ignore[attr-defined]
    assert excinfo.value.path == "projects/p/doc"  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_invalid_json_and_empty_bodies() -> None:
    bodies = iter(["not json", ""])

    async def handler(request: web.Request) -> web.Response:
        return web.Response(text=next(bodies), content_type="application/json")

    server = await _serve(handler)
    try:
        config = SyncConfig(project_id="p", base_url=str(server.make_url("/v1")))
        async with aiohttp.ClientSession() as session:
            transport = HttpTransport(config, session)
            with pytest.raises(RemoteTransportError):
                await transport.request("GET", "projects/p/doc")
            assert await transport.request("GET", "projects/p/doc") == {}
    finally:
        await server.close()
