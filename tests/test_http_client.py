"""
HTTP JSON-RPC client over httpx.MockTransport.
"""

from __future__ import annotations

import json
from typing import Any, Callable, List

import httpx
import pytest

from pallas.config import ClientConfig
from pallas.errors import ErrorCode, RpcError, TransportError
from pallas.rpc.http import HttpClient

URL = "http://node.test:9933"


def _client(handler: Callable[[httpx.Request], httpx.Response], **kw: Any) -> HttpClient:
    return HttpClient(URL, transport=httpx.MockTransport(handler), **kw)


@pytest.mark.asyncio
async def test_result_is_returned() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0xabcd"})

    async with _client(handler) as rpc:
        assert await rpc.request("chain_getBlockHash", [0]) == "0xabcd"
        assert await rpc.request("chain_getFinalizedHead") == "0xabcd"

    first = json.loads(seen[0].content)
    assert first == {"jsonrpc": "2.0", "id": 1, "method": "chain_getBlockHash", "params": [0]}
    assert json.loads(seen[1].content)["params"] == []
    assert seen[0].method == "POST"
    assert seen[0].headers["content-type"] == "application/json"
    assert seen[0].headers["user-agent"].startswith("pallas-py/")


@pytest.mark.asyncio
async def test_configured_headers_are_sent() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None})

    cfg = ClientConfig(http_url=URL, user_agent="pallas-test/2")
    async with HttpClient.from_config(cfg, transport=httpx.MockTransport(handler)) as rpc:
        assert await rpc.request("system_health") is None
    assert seen[0].headers["user-agent"] == "pallas-test/2"


@pytest.mark.asyncio
async def test_error_object_raises_rpc_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": 1010, "message": "Invalid Transaction", "data": "bad"}},
        )

    async with _client(handler) as rpc:
        with pytest.raises(RpcError) as ei:
            await rpc.request("author_submitExtrinsic", ["0x00"])
    assert ei.value.rpc_code == 1010
    assert ei.value.data["rpc_data"] == "bad"


@pytest.mark.asyncio
async def test_http_error_with_json_body_is_still_an_rpc_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32603, "message": "internal"}})

    async with _client(handler) as rpc:
        with pytest.raises(RpcError):
            await rpc.request("state_getMetadata")


@pytest.mark.asyncio
async def test_http_error_without_body() -> None:
    async with _client(lambda request: httpx.Response(502)) as rpc:
        with pytest.raises(TransportError) as ei:
            await rpc.request("state_getMetadata")
    assert ei.value.code == ErrorCode.DISCONNECTED
    assert ei.value.data["status"] == 502


@pytest.mark.asyncio
async def test_non_json_response() -> None:
    async with _client(lambda request: httpx.Response(200, text="<html>gateway</html>")) as rpc:
        with pytest.raises(TransportError) as ei:
            await rpc.request("state_getMetadata")
    assert ei.value.code == ErrorCode.DISCONNECTED


@pytest.mark.asyncio
async def test_non_object_response() -> None:
    async with _client(lambda request: httpx.Response(200, json=[1, 2])) as rpc:
        with pytest.raises(RpcError):
            await rpc.request("state_getMetadata")


@pytest.mark.asyncio
async def test_network_failures_map_to_transport_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    async with _client(refuse) as rpc:
        with pytest.raises(TransportError) as ei:
            await rpc.request("system_health")
        assert ei.value.code == ErrorCode.DISCONNECTED
        assert ei.value.retryable

    async with _client(stall) as rpc:
        with pytest.raises(TransportError) as ei:
            await rpc.request("system_health")
        assert ei.value.code == ErrorCode.TIMEOUT


@pytest.mark.asyncio
async def test_subscriptions_are_unsupported() -> None:
    rpc = HttpClient(URL)
    with pytest.raises(TransportError) as ei:
        await rpc.subscribe("chain_subscribeNewHeads", [], "chain_unsubscribeNewHeads")
    assert ei.value.code == ErrorCode.UNSUPPORTED
    await rpc.close()


def test_from_config_needs_http_url() -> None:
    with pytest.raises(TransportError) as ei:
        HttpClient.from_config(ClientConfig())
    assert ei.value.code == ErrorCode.UNSUPPORTED
