"""
pallas.tx.events
================

Events emitted by one extrinsic.

The runtime keeps every event of a block in ``System.Events`` as a list of
records ``{phase, event, topics}``. Events produced while applying extrinsic
number *i* carry the phase ``ApplyExtrinsic(i)``; the index of our extrinsic
is found by hashing the block's extrinsics and matching our hash.

A failed dispatch is signalled by ``System.ExtrinsicFailed``, whose
``DispatchError::Module`` payload names the pallet error by index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple

from ..dynamic import value as v
from ..dynamic.codec import DynamicCodec
from ..errors import DecodeError, DispatchFailed, ErrorCode, MetadataError, RpcError, TxError
from ..metadata.model import Metadata
from ..rpc.methods import ChainRpc
from ..storage.keys import storage_key
from ..utils.bytes import from_hex, to_hex
from ..utils.hash import blake2_256

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventDetails:
    pallet: str
    variant: str
    pallet_index: int
    variant_index: int
    fields: v.Composite
    phase: v.Value
    topics: Tuple[bytes, ...] = ()

    def matches(self, pallet: str, variant: str) -> bool:
        return self.pallet == pallet and self.variant == variant

    def to_python(self) -> Any:
        return {"pallet": self.pallet, "variant": self.variant, "fields": self.fields.to_python()}


class ExtrinsicEvents:
    """Events of one extrinsic, in emission order."""

    def __init__(
        self,
        events: List[EventDetails],
        *,
        metadata: Metadata,
        extrinsic_hash: bytes,
        extrinsic_index: int,
        block_hash: bytes,
    ) -> None:
        self.events = list(events)
        self.metadata = metadata
        self.extrinsic_hash = extrinsic_hash
        self.extrinsic_index = extrinsic_index
        self.block_hash = block_hash

    def __iter__(self) -> Iterator[EventDetails]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def find(self, pallet: str, variant: str) -> List[EventDetails]:
        return [e for e in self.events if e.matches(pallet, variant)]

    def find_first(self, pallet: str, variant: str) -> Optional[EventDetails]:
        for e in self.events:
            if e.matches(pallet, variant):
                return e
        return None

    def has(self, pallet: str, variant: str) -> bool:
        return self.find_first(pallet, variant) is not None

    def check_success(self) -> "ExtrinsicEvents":
        """Return self, or raise DispatchFailed if the extrinsic's dispatch failed."""
        failed = self.find_first("System", "ExtrinsicFailed")
        if failed is None:
            return self
        dispatch_error = failed.fields.get("dispatch_error") if failed.fields.is_named else None
        if dispatch_error is None and len(failed.fields):
            dispatch_error = failed.fields[0]
        raise dispatch_failure(
            self.metadata,
            dispatch_error,
            extrinsic_hash=to_hex(self.extrinsic_hash),
            block_hash=to_hex(self.block_hash),
        )


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_events(metadata: Metadata, raw: bytes, codec: Optional[DynamicCodec] = None) -> List[EventDetails]:
    codec = codec or DynamicCodec(metadata.registry)
    entry = metadata.lookup_storage_item("System", "Events")
    records = codec.decode_all(entry.value_ty, raw)
    if not isinstance(records, v.Sequence):
        raise MetadataError(ErrorCode.METADATA_INVALID, "System.Events is not a sequence type")
    out: List[EventDetails] = []
    for record in records.items:
        if not isinstance(record, v.Composite):
            raise MetadataError(ErrorCode.METADATA_INVALID, "event record is not a composite")
        out.append(_event_from_record(metadata, record))
    return out


def _event_from_record(metadata: Metadata, record: v.Composite) -> EventDetails:
    phase = record["phase"]
    outer = record["event"]
    if not isinstance(outer, v.Variant) or len(outer.fields) != 1:
        raise MetadataError(ErrorCode.METADATA_INVALID, "event is not a pallet-tagged variant")
    inner = outer.fields[0]
    if not isinstance(inner, v.Variant):
        raise MetadataError(ErrorCode.METADATA_INVALID, f"{outer.name} event payload is not a variant")
    pallet = metadata.pallet(outer.name)
    variant_index = next(
        (e.index for e in metadata.events(pallet.name) if e.name == inner.name), -1
    )
    topics_val = record.get("topics")
    topics: Tuple[bytes, ...] = ()
    if isinstance(topics_val, v.Sequence):
        topics = tuple(b for b in (_raw_bytes(t) for t in topics_val.items) if b is not None)
    return EventDetails(
        pallet=pallet.name,
        variant=inner.name,
        pallet_index=pallet.index,
        variant_index=variant_index,
        fields=inner.fields,
        phase=phase,
        topics=topics,
    )


def _raw_bytes(val: v.Value) -> Optional[bytes]:
    if isinstance(val, v.Bytes):
        return val.value
    if isinstance(val, v.Composite) and len(val) == 1:
        return _raw_bytes(val[0])
    return None


def applies_to(event: EventDetails, extrinsic_index: int) -> bool:
    phase = event.phase
    if not isinstance(phase, v.Variant) or phase.name != "ApplyExtrinsic" or len(phase.fields) != 1:
        return False
    idx = phase.fields[0]
    return isinstance(idx, v.UInt) and idx.value == extrinsic_index


def dispatch_failure(metadata: Metadata, dispatch_error: Optional[v.Value], **data: Any) -> DispatchFailed:
    """Translate a decoded ``DispatchError`` into DispatchFailed."""
    if not isinstance(dispatch_error, v.Variant):
        return DispatchFailed("extrinsic dispatch failed", **data)
    if dispatch_error.name != "Module" or len(dispatch_error.fields) != 1:
        return DispatchFailed(
            f"extrinsic dispatch failed: {dispatch_error.name}", error=dispatch_error.name, **data
        )
    module = dispatch_error.fields[0]
    if not isinstance(module, v.Composite):
        return DispatchFailed("extrinsic dispatch failed: Module", error="Module", **data)
    pallet_index = module.get("index")
    err = module.get("error")
    if not isinstance(pallet_index, v.UInt) or err is None:
        raise DecodeError(
            ErrorCode.INVALID_VALUE,
            "module error needs an integer `index` and an `error` field",
            fields=[name for name, _ in module.fields],
            **data,
        )
    if isinstance(err, v.Bytes):
        error_index = err.value[0] if err.value else 0
    elif isinstance(err, v.UInt):
        error_index = err.value
    else:
        return DispatchFailed("extrinsic dispatch failed: Module", error="Module", **data)
    desc = metadata.lookup_error(pallet_index.value, error_index)
    message = f"{desc.pallet}.{desc.name}"
    if desc.docs:
        message += ": " + " ".join(desc.docs)
    return DispatchFailed(
        message,
        pallet=desc.pallet,
        error=desc.name,
        **data,
    )


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


async def extrinsic_index(rpc: ChainRpc, block_hash: bytes, extrinsic_hash: bytes) -> int:
    block = await rpc.block(block_hash)
    if not block:
        raise TxError(
            "block not found", block_hash=to_hex(block_hash), extrinsic_hash=to_hex(extrinsic_hash)
        )
    try:
        extrinsics = [from_hex(ext) for ext in block["block"]["extrinsics"]]
    except (KeyError, TypeError, ValueError) as e:
        raise RpcError(
            "chain_getBlock",
            -32603,
            f"malformed block body: {e}",
            rpc_data={"block_hash": to_hex(block_hash)},
        ) from e
    for i, ext in enumerate(extrinsics):
        if blake2_256(ext) == extrinsic_hash:
            return i
    raise TxError(
        "extrinsic not found in block",
        block_hash=to_hex(block_hash),
        extrinsic_hash=to_hex(extrinsic_hash),
    )


async def fetch_extrinsic_events(
    rpc: ChainRpc,
    metadata: Metadata,
    block_hash: bytes,
    extrinsic_hash: bytes,
    codec: Optional[DynamicCodec] = None,
) -> ExtrinsicEvents:
    index = await extrinsic_index(rpc, block_hash, extrinsic_hash)
    raw = await rpc.storage(storage_key(metadata, "System", "Events"), block_hash)
    events = decode_events(metadata, raw, codec) if raw is not None else []
    mine = [e for e in events if applies_to(e, index)]
    log.debug(
        "extrinsic events fetched",
        extra={"block": to_hex(block_hash), "index": index, "events": len(mine)},
    )
    return ExtrinsicEvents(
        mine,
        metadata=metadata,
        extrinsic_hash=extrinsic_hash,
        extrinsic_index=index,
        block_hash=block_hash,
    )


__all__ = [
    "EventDetails",
    "ExtrinsicEvents",
    "decode_events",
    "applies_to",
    "dispatch_failure",
    "extrinsic_index",
    "fetch_extrinsic_events",
]
