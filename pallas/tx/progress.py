"""
pallas.tx.progress
==================

Track a submitted extrinsic through the transaction pool.

    progress = await submit_and_watch(rpc, signed, metadata=metadata)
    async with progress:
        async for status in progress:
            print(status)

or, with the helpers:

    in_block = await progress.wait_for_finalized()
    events = (await in_block.fetch_events()).check_success()

Ordering rules
--------------
Statuses must follow the pool's transition graph (checked when ``strict``):

    (start)     -> Future | Ready | Broadcast | InBlock | Dropped | Usurped | Invalid
    Future      -> Ready | Dropped | Usurped | Invalid
    Ready       -> Broadcast | InBlock | Dropped | Usurped | Invalid
    Broadcast   -> Broadcast | InBlock | Dropped | Usurped | Invalid
    InBlock     -> Finalized | Retracted | FinalityTimeout
    Retracted   -> Future | Ready | Broadcast | InBlock | Dropped | Usurped
                   | Invalid | FinalityTimeout

Finalized, Dropped, Usurped, Invalid and FinalityTimeout are terminal: the
sequence ends after them and the server-side watch is released. A
notification that was already queued behind a terminal status is reported on
the next pull as LifecycleError(POST_TERMINAL_NOTIFICATION).

The watch is released exactly once: on a terminal status, on `aclose()` /
`cancel()`, when an ``async with`` block exits, or when the consuming task is
cancelled. A lost connection ends the sequence with TransportError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Type, Union

from ..dynamic.codec import DynamicCodec
from ..errors import ErrorCode, LifecycleError, MetadataError, PallasError, TxError
from ..metadata.model import Metadata
from ..rpc.methods import ChainRpc
from ..rpc.transport import Subscription
from ..utils.bytes import BytesLike, ensure_bytes, to_hex
from ..utils.hash import blake2_256
from .builder import SignedExtrinsic
from .events import ExtrinsicEvents, fetch_extrinsic_events
from .status import (
    Broadcast,
    Dropped,
    FinalityTimeout,
    Finalized,
    Future,
    InBlock,
    Invalid,
    Ready,
    Retracted,
    TransactionStatus,
    Usurped,
    is_terminal,
    parse_status,
    status_name,
)

log = logging.getLogger(__name__)

_POOL_EXITS: FrozenSet[Type] = frozenset({Dropped, Usurped, Invalid})

TRANSITIONS: Dict[Optional[Type], FrozenSet[Type]] = {
    None: frozenset({Future, Ready, Broadcast, InBlock}) | _POOL_EXITS,
    Future: frozenset({Ready}) | _POOL_EXITS,
    Ready: frozenset({Broadcast, InBlock}) | _POOL_EXITS,
    Broadcast: frozenset({Broadcast, InBlock}) | _POOL_EXITS,
    InBlock: frozenset({Finalized, Retracted, FinalityTimeout}),
    Retracted: frozenset({Future, Ready, Broadcast, InBlock, FinalityTimeout}) | _POOL_EXITS,
}


def is_legal_transition(current: Optional[TransactionStatus], nxt: TransactionStatus) -> bool:
    key = None if current is None else type(current)
    return type(nxt) in TRANSITIONS.get(key, frozenset())


# ---------------------------------------------------------------------------
# Inclusion
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TxInBlock:
    """An extrinsic known to be included in `block_hash`."""

    block_hash: bytes
    extrinsic_hash: bytes
    rpc: ChainRpc
    metadata: Optional[Metadata] = None
    codec: Optional[DynamicCodec] = None

    async def fetch_events(self, metadata: Optional[Metadata] = None) -> ExtrinsicEvents:
        md = metadata or self.metadata
        if md is None:
            raise MetadataError(ErrorCode.NOT_FOUND, "events need runtime metadata; none was bound")
        return await fetch_extrinsic_events(self.rpc, md, self.block_hash, self.extrinsic_hash, self.codec)

    async def wait_for_success(self) -> ExtrinsicEvents:
        return (await self.fetch_events()).check_success()


# ---------------------------------------------------------------------------
# Progress stream
# ---------------------------------------------------------------------------


class TransactionProgress:
    def __init__(
        self,
        subscription: Subscription,
        extrinsic_hash: bytes,
        *,
        rpc: Optional[ChainRpc] = None,
        metadata: Optional[Metadata] = None,
        codec: Optional[DynamicCodec] = None,
        strict: bool = True,
    ) -> None:
        self.subscription = subscription
        self.extrinsic_hash = extrinsic_hash
        self.rpc = rpc
        self.metadata = metadata
        self.codec = codec
        self.strict = strict
        self.state: Optional[TransactionStatus] = None
        self._finished = False
        self._released = False

    # ---------------- Lifecycle ----------------

    @property
    def finished(self) -> bool:
        return self._finished

    async def aclose(self) -> None:
        """Stop tracking and release the server-side watch."""
        self._finished = True
        await self._release()

    cancel = aclose

    async def __aenter__(self) -> "TransactionProgress":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await asyncio.shield(self.subscription.unsubscribe())
        log.debug("extrinsic watch released", extra={"extrinsic": to_hex(self.extrinsic_hash)})

    # ---------------- Iteration ----------------

    def __aiter__(self) -> "TransactionProgress":
        return self

    async def __anext__(self) -> TransactionStatus:
        if self._finished:
            self._drain()
            raise StopAsyncIteration

        try:
            raw = await self.subscription.next()
        except asyncio.CancelledError:
            self._finished = True
            await self._release()
            raise
        except PallasError:
            self._finished = True
            await self._release()
            raise

        try:
            status = parse_status(raw)
            self._check(status)
        except LifecycleError:
            self._finished = True
            await self._release()
            raise

        self.state = status
        log.debug(
            "extrinsic status",
            extra={"extrinsic": to_hex(self.extrinsic_hash), "status": status_name(status)},
        )
        if is_terminal(status):
            self._finished = True
            await self._release()
        return status

    def _check(self, status: TransactionStatus) -> None:
        if self.strict and not is_legal_transition(self.state, status):
            raise LifecycleError(
                ErrorCode.ILLEGAL_TRANSITION,
                f"illegal status transition {status_name(self.state)} -> {status_name(status)}",
                from_status=status_name(self.state),
                to_status=status_name(status),
                extrinsic_hash=to_hex(self.extrinsic_hash),
            )

    def _drain(self) -> None:
        if not is_terminal(self.state):
            return
        try:
            raw = self.subscription.next_nowait()
        except asyncio.QueueEmpty:
            late = self.subscription.pop_late()
            if not late:
                return
            raw = late[0]
        except PallasError:
            # the connection went away after the outcome was known
            return
        raise LifecycleError(
            ErrorCode.POST_TERMINAL_NOTIFICATION,
            f"notification after terminal status {status_name(self.state)}",
            status=status_name(self.state),
            notification=repr(raw),
            extrinsic_hash=to_hex(self.extrinsic_hash),
        )

    # ---------------- Helpers ----------------

    async def wait_for_in_block(self) -> TxInBlock:
        """
        Wait until the extrinsic is in a block (or finalized) and release the
        watch. Failure outcomes raise TxError.
        """
        try:
            async for status in self:
                if isinstance(status, (InBlock, Finalized)):
                    return self._in_block(status.block_hash)
                self._raise_if_failed(status)
        finally:
            await self.aclose()
        raise self._ended_early()

    async def wait_for_finalized(self) -> TxInBlock:
        """Wait until the block holding the extrinsic is finalized."""
        try:
            async for status in self:
                if isinstance(status, Finalized):
                    return self._in_block(status.block_hash)
                self._raise_if_failed(status)
        finally:
            await self.aclose()
        raise self._ended_early()

    async def wait_for_finalized_success(self) -> ExtrinsicEvents:
        in_block = await self.wait_for_finalized()
        return await in_block.wait_for_success()

    def _in_block(self, block_hash: bytes) -> TxInBlock:
        if self.rpc is None:
            raise TxError(
                "no RPC client bound to this progress stream",
                extrinsic_hash=to_hex(self.extrinsic_hash),
            )
        return TxInBlock(block_hash, self.extrinsic_hash, self.rpc, self.metadata, self.codec)

    def _raise_if_failed(self, status: TransactionStatus) -> None:
        if isinstance(status, (Dropped, Invalid, Usurped, FinalityTimeout)):
            raise TxError(
                f"transaction {status_name(status).lower()}",
                status=status_name(status),
                extrinsic_hash=to_hex(self.extrinsic_hash),
            )

    def _ended_early(self) -> TxError:
        return TxError(
            "status stream ended before the awaited status",
            status=status_name(self.state),
            extrinsic_hash=to_hex(self.extrinsic_hash),
        )

    def __repr__(self) -> str:
        return (
            f"TransactionProgress(extrinsic={to_hex(self.extrinsic_hash)}, "
            f"state={status_name(self.state)}, finished={self._finished})"
        )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def _raw(extrinsic: Union[SignedExtrinsic, BytesLike, str]) -> bytes:
    if isinstance(extrinsic, SignedExtrinsic):
        return extrinsic.encode()
    return ensure_bytes(extrinsic)


async def submit_and_watch(
    rpc: ChainRpc,
    extrinsic: Union[SignedExtrinsic, BytesLike, str],
    *,
    metadata: Optional[Metadata] = None,
    codec: Optional[DynamicCodec] = None,
    strict: bool = True,
) -> TransactionProgress:
    raw = _raw(extrinsic)
    ext_hash = blake2_256(raw)
    sub = await rpc.submit_and_watch_extrinsic(raw)
    log.info("extrinsic submitted", extra={"extrinsic": to_hex(ext_hash), "size": len(raw)})
    return TransactionProgress(sub, ext_hash, rpc=rpc, metadata=metadata, codec=codec, strict=strict)


async def submit(rpc: ChainRpc, extrinsic: Union[SignedExtrinsic, BytesLike, str]) -> bytes:
    """Submit without watching; returns the extrinsic hash reported by the node."""
    raw = _raw(extrinsic)
    ext_hash = await rpc.submit_extrinsic(raw)
    log.info("extrinsic submitted", extra={"extrinsic": to_hex(ext_hash), "size": len(raw)})
    return ext_hash


__all__ = [
    "TRANSITIONS",
    "is_legal_transition",
    "TxInBlock",
    "TransactionProgress",
    "submit_and_watch",
    "submit",
]
