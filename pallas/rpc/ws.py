"""
WebSocket JSON-RPC client (async) with subscription multiplexing.

- Uses the `websockets` package (asyncio client).
- One persistent connection; a reader task correlates responses by request id
  and routes notifications by subscription id into per-subscription queues.
- Sends are serialised by a lock; requests never wait on each other's responses.
- A subscription's queue is registered by the reader when the subscribe
  response is processed, before any later frame is looked at.
- No reconnect and no retry: when the connection drops, every pending request
  and every open subscription fails with TransportError(DISCONNECTED).

Example:
    import asyncio
    from pallas.rpc.ws import WsClient

    async def main():
        async with WsClient("ws://127.0.0.1:9944") as ws:
            print(await ws.request("chain_getBlockHash", [0]))
            sub = await ws.subscribe(
                "chain_subscribeFinalizedHeads", [], "chain_unsubscribeFinalizedHeads"
            )
            print(await sub.next())
            await sub.unsubscribe()

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional, Set

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import ErrorCode, RpcError, TransportError
from ..logging import with_fields
from ..version import __version__
from .transport import JSON, Params, Subscription

log = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


@dataclass
class _Pending:
    method: str
    future: asyncio.Future
    unsubscribe_method: Optional[str] = None


@dataclass
class WsClient:
    url: str
    headers: Optional[Mapping[str, str]] = None
    connect_timeout: float = 10.0
    request_timeout: float = 30.0
    ping_interval: Optional[float] = 20.0
    max_message_size: Optional[int] = 2**24
    # Injected in tests: async callable returning an object with send/recv/close.
    connector: Optional[Connector] = None
    _ids: Iterator[int] = field(init=False, default_factory=lambda: count(1))
    _ws: Any = field(init=False, default=None)
    _reader_task: Optional[asyncio.Task] = field(init=False, default=None)
    _send_lock: Optional[asyncio.Lock] = field(init=False, default=None)
    _pending: Dict[int, _Pending] = field(init=False, default_factory=dict)
    _subs: Dict[str, Subscription] = field(init=False, default_factory=dict)
    _closing: bool = field(init=False, default=False)
    _bg: Set[asyncio.Task] = field(init=False, default_factory=set, repr=False)
    _log: Any = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self._log = with_fields(log, endpoint=self.url)

    @classmethod
    def from_config(cls, cfg: Any, **kw: Any) -> "WsClient":
        return cls(
            url=cfg.ws_url,
            headers={"User-Agent": cfg.user_agent},
            connect_timeout=cfg.connect_timeout,
            request_timeout=cfg.request_timeout,
            max_message_size=cfg.max_message_size,
            **kw,
        )

    # ------------- context manager -------------

    async def __aenter__(self) -> "WsClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    # ------------- lifecycle -------------------

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Open the connection and start the reader. Idempotent while connected."""
        if self._ws is not None:
            return
        self._closing = False
        try:
            ws = await asyncio.wait_for(self._open(), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(
                ErrorCode.TIMEOUT, f"connect to {self.url} timed out", url=self.url, cause=e
            ) from e
        except (OSError, WebSocketException) as e:
            raise TransportError(
                ErrorCode.DISCONNECTED, f"connect to {self.url} failed: {e}", url=self.url, cause=e
            ) from e
        self._ws = ws
        self._send_lock = asyncio.Lock()
        self._reader_task = asyncio.create_task(self._reader_loop(ws), name="WsClient.reader")
        self._log.info("websocket connected")

    async def _open(self) -> Any:
        if self.connector is not None:
            return await self.connector(self.url)
        hdrs = {"User-Agent": f"pallas-py/{__version__}"}
        if self.headers:
            hdrs.update(dict(self.headers))
        return await ws_connect(
            self.url,
            additional_headers=hdrs,
            user_agent_header=None,
            ping_interval=self.ping_interval,
            max_size=self.max_message_size,
        )

    async def close(self) -> None:
        """Close the connection; pending requests and subscriptions fail."""
        self._closing = True
        ws, self._ws = self._ws, None
        task, self._reader_task = self._reader_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                self._log.debug("error while closing websocket", extra={"err": str(e)})
        self._fail_all(TransportError(ErrorCode.DISCONNECTED, "client closed", url=self.url))
        if self._bg:
            await asyncio.gather(*list(self._bg), return_exceptions=True)

    # ------------- RPC primitives --------------

    async def request(self, method: str, params: Params = None) -> JSON:
        """Send a JSON-RPC request and await its result."""
        rid = self._register(method)
        return await self._send_and_wait(rid, method, params)

    async def subscribe(self, method: str, params: Params, unsubscribe_method: str) -> Subscription:
        """
        Start a subscription. The returned handle already receives every
        notification sent after the server's response.
        """
        rid = self._register(method, unsubscribe_method)
        return await self._send_and_wait(rid, method, params)

    def forget(self, sub: Subscription) -> None:
        """Stop routing notifications to `sub` (called by Subscription.unsubscribe)."""
        self._subs.pop(str(sub.id), None)

    def _register(self, method: str, unsubscribe_method: Optional[str] = None) -> int:
        if self._ws is None:
            raise TransportError(ErrorCode.DISCONNECTED, "not connected", url=self.url, method=method)
        rid = next(self._ids)
        fut = asyncio.get_running_loop().create_future()
        self._pending[rid] = _Pending(method, fut, unsubscribe_method)
        return rid

    async def _send_and_wait(self, rid: int, method: str, params: Params) -> Any:
        pending = self._pending[rid]
        payload = json.dumps(
            {"jsonrpc": "2.0", "id": rid, "method": method, "params": _norm_params(params)},
            separators=(",", ":"),
        )
        try:
            if self._send_lock is None:
                raise TransportError(ErrorCode.DISCONNECTED, "not connected", method=method)
            async with self._send_lock:
                ws = self._ws
                if ws is None:
                    raise TransportError(ErrorCode.DISCONNECTED, "not connected", method=method)
                await ws.send(payload)
        except (ConnectionClosed, OSError) as e:
            self._pending.pop(rid, None)
            raise TransportError(
                ErrorCode.DISCONNECTED, f"send failed: {e}", method=method, cause=e
            ) from e
        except TransportError:
            self._pending.pop(rid, None)
            raise

        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(
                ErrorCode.TIMEOUT,
                f"{method} timed out after {self.request_timeout}s",
                method=method,
                request_id=rid,
                cause=e,
            ) from e
        finally:
            if not pending.future.done():
                pending.future.cancel()
            # An abandoned subscribe stays registered so a late response can be released.
            if pending.unsubscribe_method is None or not pending.future.cancelled():
                self._pending.pop(rid, None)

    # ------------- internals --------------------

    async def _reader_loop(self, ws: Any) -> None:
        """Read frames until the connection ends, then fail everything outstanding."""
        error = TransportError(ErrorCode.DISCONNECTED, "connection closed", url=self.url)
        try:
            while True:
                raw = await ws.recv()
                self._dispatch(raw)
        except ConnectionClosed as e:
            if not self._closing:
                self._log.warning("websocket closed by peer", extra={"err": str(e)})
            error = TransportError(
                ErrorCode.DISCONNECTED, f"connection closed: {e}", url=self.url, cause=e
            )
        except OSError as e:
            self._log.warning("websocket read failed", extra={"err": str(e)})
            error = TransportError(ErrorCode.DISCONNECTED, f"read failed: {e}", url=self.url, cause=e)
        finally:
            if self._ws is ws:
                self._ws = None
            self._fail_all(error)

    def _dispatch(self, raw: Any) -> None:
        try:
            msg = json.loads(raw)
        except ValueError:
            self._log.warning("dropping non-JSON frame", extra={"size": len(raw)})
            return
        if isinstance(msg, list):
            for item in msg:
                self._dispatch_one(item)
        else:
            self._dispatch_one(msg)

    def _dispatch_one(self, msg: Any) -> None:
        if not isinstance(msg, dict):
            self._log.warning("dropping malformed frame", extra={"kind": type(msg).__name__})
            return

        if msg.get("id") is not None and ("result" in msg or "error" in msg):
            self._on_response(msg)
            return

        params = msg.get("params")
        if "method" in msg and isinstance(params, dict) and "subscription" in params:
            sub_id = str(params["subscription"])
            sub = self._subs.get(sub_id)
            if sub is None:
                self._log.warning(
                    "notification for unknown subscription",
                    extra={"subscription": sub_id, "method": msg.get("method")},
                )
                return
            if params.get("error") is not None:
                sub.fail(RpcError.from_jsonrpc(sub.method, params["error"]))
            else:
                sub.push(params.get("result"))
            return

        self._log.warning("unhandled frame", extra={"method": msg.get("method")})

    def _on_response(self, msg: Dict[str, Any]) -> None:
        rid = msg["id"]
        if isinstance(rid, str) and rid.isdigit():
            rid = int(rid)
        pending = self._pending.pop(rid, None)
        if pending is None:
            self._log.debug("response for unknown request", extra={"request_id": rid})
            return

        err = msg.get("error")
        if err is not None:
            if not pending.future.done():
                pending.future.set_exception(RpcError.from_jsonrpc(pending.method, err, rid))
            return

        result = msg.get("result")
        if pending.unsubscribe_method is None:
            if not pending.future.done():
                pending.future.set_result(result)
            return

        sub = Subscription(
            result,
            method=pending.method,
            unsubscribe_method=pending.unsubscribe_method,
            transport=self,
        )
        self._subs[str(result)] = sub
        if pending.future.done():
            # Caller gave up (timeout / cancellation): release the server side.
            self._spawn(self._release_abandoned(sub))
            return
        pending.future.set_result(sub)
        self._log.debug("subscription opened", extra={"subscription": str(result), "method": pending.method})

    def _spawn(self, coro: Awaitable[Any]) -> None:
        """Run `coro` in the background; `close()` waits for it."""
        task = asyncio.get_running_loop().create_task(coro)
        self._bg.add(task)
        task.add_done_callback(self._bg.discard)

    async def _release_abandoned(self, sub: Subscription) -> None:
        ok = await sub.unsubscribe()
        self._log.debug(
            "abandoned subscription released",
            extra={"subscription": str(sub.id), "method": sub.method, "ok": ok},
        )

    def _fail_all(self, error: TransportError) -> None:
        pending, self._pending = self._pending, {}
        for p in pending.values():
            if not p.future.done():
                p.future.set_exception(error)
                # mark retrieved; the awaiting request (if any) re-raises it
                p.future.exception()
        subs, self._subs = self._subs, {}
        for sub in subs.values():
            sub.fail(error)


def _norm_params(params: Params) -> Any:
    if params is None:
        return []
    if isinstance(params, (list, dict)):
        return params
    if isinstance(params, tuple):
        return list(params)
    return [params]


__all__ = ["WsClient", "Connector"]
