"""
Storage queries bound to one metadata document and one RPC connection.

    storage = StorageClient(ChainRpc(ws), metadata)
    info = await storage.fetch_value("System", "Account", [account_id])
    async for keys, value in storage.iter_entries("Balances", "Locks"):
        ...

Absent entries come back as None from `fetch`/`fetch_value`;
`fetch_or_default` substitutes the default bytes the metadata declares for
the entry. Byte-level decoding failures propagate as DecodeError.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

from ..dynamic.codec import DynamicCodec
from ..dynamic.value import Value
from ..errors import EncodeError, ErrorCode
from ..metadata.model import Metadata, StorageModifier
from ..metadata.types import TypeId
from ..rpc.methods import ChainRpc
from ..utils.bytes import BytesLike
from .keys import decode_key, entry_key

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class StorageClient:
    def __init__(
        self,
        rpc: ChainRpc,
        metadata: Metadata,
        *,
        codec: Optional[DynamicCodec] = None,
    ) -> None:
        self.rpc = rpc
        self.metadata = metadata
        self.codec = codec or DynamicCodec(metadata.registry)

    # ---------------- Keys ----------------

    def storage_key(self, pallet: str, item: str, key_parts: Sequence[Any] = ()) -> bytes:
        entry = self.metadata.lookup_storage_item(pallet, item)
        return entry_key(self.metadata, entry, key_parts, self.codec)

    # ---------------- Raw access ----------------

    async def fetch(self, key: BytesLike, at: Optional[BytesLike] = None) -> Optional[bytes]:
        """Raw bytes under `key`, or None when the entry is absent."""
        return await self.rpc.storage(key, at)

    def decode(self, raw: bytes, value_ty: TypeId) -> Value:
        return self.codec.decode_all(value_ty, raw)

    async def fetch_keys(
        self,
        prefix: BytesLike,
        count: int = DEFAULT_PAGE_SIZE,
        start_key: Optional[BytesLike] = None,
        at: Optional[BytesLike] = None,
    ) -> List[bytes]:
        return await self.rpc.storage_keys_paged(prefix, count, start_key, at)

    # ---------------- Typed access ----------------

    async def fetch_value(
        self,
        pallet: str,
        item: str,
        key_parts: Sequence[Any] = (),
        at: Optional[BytesLike] = None,
    ) -> Optional[Value]:
        entry = self.metadata.lookup_storage_item(pallet, item)
        if len(key_parts) != len(entry.hashers):
            # a partial key names a prefix, not a value
            raise EncodeError(
                ErrorCode.SHAPE_MISMATCH,
                f"{pallet}.{item} needs {len(entry.hashers)} key part(s), got {len(key_parts)}",
                pallet=pallet,
                item=item,
            )
        raw = await self.fetch(entry_key(self.metadata, entry, key_parts, self.codec), at)
        if raw is None:
            return None
        return self.decode(raw, entry.value_ty)

    async def fetch_or_default(
        self,
        pallet: str,
        item: str,
        key_parts: Sequence[Any] = (),
        at: Optional[BytesLike] = None,
    ) -> Optional[Value]:
        """Like `fetch_value`, but an absent Default-modifier entry decodes its declared default."""
        value = await self.fetch_value(pallet, item, key_parts, at)
        if value is not None:
            return value
        entry = self.metadata.lookup_storage_item(pallet, item)
        if entry.modifier is StorageModifier.OPTIONAL or not entry.default:
            return None
        return self.decode(entry.default, entry.value_ty)

    async def iter_entries(
        self,
        pallet: str,
        item: str,
        *partial_keys: Any,
        page_size: int = DEFAULT_PAGE_SIZE,
        at: Optional[BytesLike] = None,
    ) -> AsyncIterator[Tuple[Tuple[Optional[Value], ...], Value]]:
        """
        Yield ``(key_parts, value)`` for every entry under the prefix given by
        `partial_keys`. Pages are read at a single block: `at`, or the best
        block when the iteration starts.
        """
        entry = self.metadata.lookup_storage_item(pallet, item)
        prefix = entry_key(self.metadata, entry, partial_keys, self.codec)
        if at is None:
            at = await self.rpc.block_hash()
        start: Optional[bytes] = None
        while True:
            keys = await self.fetch_keys(prefix, page_size, start, at)
            if not keys:
                return
            values = dict(await self.rpc.query_storage_at(keys, at))
            for key in keys:
                raw = values.get(key)
                if raw is None:
                    continue
                yield decode_key(self.metadata, entry, key, self.codec), self.decode(raw, entry.value_ty)
            if len(keys) < page_size:
                return
            start = keys[-1]

    # ---------------- Constants ----------------

    def constant(self, pallet: str, name: str) -> Value:
        const = self.metadata.constant(pallet, name)
        return self.decode(const.value, const.type)


__all__ = ["DEFAULT_PAGE_SIZE", "StorageClient"]
