"""
Transport contract shared by the websocket and HTTP clients, and the
subscription handle handed to consumers.

A `Subscription` owns one FIFO queue fed by the transport's reader. It has a
single consumer; items come out in arrival order. When the transport fails,
the queue receives the failure and the next `next()` raises it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Protocol, Union, runtime_checkable

from ..errors import PallasError, RpcError, TransportError

log = logging.getLogger(__name__)

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[list, dict, None]


@runtime_checkable
class RpcTransport(Protocol):
    async def request(self, method: str, params: Params = None) -> JSON: ...

    async def subscribe(
        self, method: str, params: Params, unsubscribe_method: str
    ) -> "Subscription": ...

    async def close(self) -> None: ...


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: PallasError) -> None:
        self.error = error


class Subscription:
    """Handle to a server-side subscription."""

    def __init__(
        self,
        sub_id: Any,
        *,
        method: str,
        unsubscribe_method: str,
        transport: RpcTransport,
    ) -> None:
        self.id = sub_id
        self.method = method
        self.unsubscribe_method = unsubscribe_method
        self._transport = transport
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._unsubscribed = False
        self._failed = False
        self._late: list = []

    # ---------------- Producer side (transport reader) ----------------

    def push(self, item: JSON) -> None:
        if self._failed:
            return
        if self._unsubscribed:
            # still routed until the unsubscribe round-trip completes
            log.debug("notification after unsubscribe", extra={"subscription": str(self.id)})
            self._late.append(item)
            return
        self._queue.put_nowait(item)

    def fail(self, error: PallasError) -> None:
        if self._failed:
            return
        self._failed = True
        self._queue.put_nowait(_Failure(error))

    # ---------------- Consumer side ----------------

    @property
    def closed(self) -> bool:
        return self._unsubscribed or self._failed

    def pending(self) -> int:
        """Number of queued, unconsumed items."""
        return self._queue.qsize()

    async def next(self) -> JSON:
        item = await self._queue.get()
        if isinstance(item, _Failure):
            # keep failing for every later reader
            self._queue.put_nowait(item)
            raise item.error
        return item

    def next_nowait(self) -> JSON:
        """Pop a queued item or raise asyncio.QueueEmpty."""
        item = self._queue.get_nowait()
        if isinstance(item, _Failure):
            self._queue.put_nowait(item)
            raise item.error
        return item

    def pop_late(self) -> list:
        """Notifications that arrived after `unsubscribe()` began, oldest first."""
        late, self._late = self._late, []
        return late

    def _forget(self) -> None:
        forget = getattr(self._transport, "forget", None)
        if forget is not None:
            forget(self)

    async def unsubscribe(self) -> bool:
        """
        Release the server-side subscription. Only the first call sends the
        request; later calls return False.

        The transport keeps routing notifications here until the request
        completes; those land in `pop_late()` instead of the queue.
        """
        if self._unsubscribed:
            return False
        self._unsubscribed = True
        if self._failed:
            self._forget()
            return False
        try:
            ok = await self._transport.request(self.unsubscribe_method, [self.id])
        except (RpcError, TransportError) as e:
            log.warning(
                "unsubscribe failed",
                extra={"subscription": str(self.id), "method": self.unsubscribe_method, "err": str(e)},
            )
            return False
        finally:
            self._forget()
        return bool(ok)

    def __aiter__(self) -> AsyncIterator[JSON]:
        return self

    async def __anext__(self) -> JSON:
        return await self.next()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, method={self.method!r}, pending={self.pending()})"


__all__ = ["JSON", "Params", "RpcTransport", "Subscription"]
