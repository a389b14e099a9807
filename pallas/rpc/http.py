"""
HTTP JSON-RPC client (async) on `httpx`.

Request/response only: subscriptions need the websocket transport, and
`subscribe` raises TransportError(UNSUPPORTED). Like the websocket client it
never retries; a failed request surfaces to the caller.

Example:
    from pallas.rpc.http import HttpClient
    async with HttpClient("http://127.0.0.1:9933") as rpc:
        genesis = await rpc.request("chain_getBlockHash", [0])
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, Mapping, Optional

import httpx

from ..errors import ErrorCode, RpcError, TransportError
from ..version import __version__
from .transport import JSON, Params, Subscription

log = logging.getLogger(__name__)


@dataclass
class HttpClient:
    url: str
    timeout: float = 30.0
    headers: Optional[Mapping[str, str]] = None
    # Injected in tests (e.g. httpx.MockTransport).
    transport: Optional[httpx.AsyncBaseTransport] = None
    _ids: Iterator[int] = field(init=False, default_factory=lambda: count(1))
    _client: Optional[httpx.AsyncClient] = field(init=False, default=None)

    @classmethod
    def from_config(cls, cfg: Any, **kw: Any) -> "HttpClient":
        if not cfg.http_url:
            raise TransportError(ErrorCode.UNSUPPORTED, "no http_url configured")
        return cls(url=cfg.http_url, timeout=cfg.request_timeout, headers=cfg.http_headers(), **kw)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            hdrs: Dict[str, str] = {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"pallas-py/{__version__}",
            }
            if self.headers:
                hdrs.update(dict(self.headers))
            self._client = httpx.AsyncClient(
                timeout=self.timeout, headers=hdrs, transport=self.transport
            )
        return self._client

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: Params = None) -> JSON:
        rid = next(self._ids)
        payload = {"jsonrpc": "2.0", "id": rid, "method": method, "params": params if params is not None else []}
        try:
            resp = await self._http().post(self.url, content=json.dumps(payload, separators=(",", ":")))
        except httpx.TimeoutException as e:
            raise TransportError(
                ErrorCode.TIMEOUT, f"{method} timed out", method=method, url=self.url, cause=e
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                ErrorCode.DISCONNECTED, f"{method} failed: {e}", method=method, url=self.url, cause=e
            ) from e

        if resp.status_code >= 400 and not resp.content:
            raise TransportError(
                ErrorCode.DISCONNECTED,
                f"HTTP {resp.status_code} from {self.url}",
                method=method,
                status=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(
                ErrorCode.DISCONNECTED,
                f"non-JSON response (HTTP {resp.status_code})",
                method=method,
                status=resp.status_code,
                cause=e,
            ) from e
        if not isinstance(body, dict):
            raise RpcError(method, -32603, "malformed JSON-RPC response", rpc_data=body, request_id=rid)
        if body.get("error") is not None:
            raise RpcError.from_jsonrpc(method, body["error"], rid)
        return body.get("result")

    async def subscribe(self, method: str, params: Params, unsubscribe_method: str) -> Subscription:
        raise TransportError(
            ErrorCode.UNSUPPORTED, "subscriptions require the websocket transport", method=method
        )


__all__ = ["HttpClient"]
