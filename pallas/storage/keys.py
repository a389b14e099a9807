"""
pallas.storage.keys
===================

Storage key derivation.

    key = twox128(pallet_prefix) ++ twox128(item_name) ++ hashed(k0) ++ hashed(k1) ...

Each key part is encoded against its positional key type and hashed with the
positional hasher. Passing fewer parts than hashers yields a prefix that
covers every entry sharing those leading parts.

Concat hashers (Blake2_128Concat, Twox64Concat, Identity) keep the encoded key
after the digest, so `decode_key` can recover those parts from a full key.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ..dynamic.codec import DynamicCodec
from ..dynamic.value import Value, from_python
from ..errors import EncodeError, ErrorCode, MetadataError
from ..metadata.model import Metadata, StorageEntry, StorageHasher
from ..utils.hash import blake2_128, blake2_256, twox_64, twox_128, twox_256

HASHERS: Dict[StorageHasher, Callable[[bytes], bytes]] = {
    StorageHasher.BLAKE2_128: blake2_128,
    StorageHasher.BLAKE2_256: blake2_256,
    StorageHasher.BLAKE2_128_CONCAT: lambda b: blake2_128(b) + b,
    StorageHasher.TWOX_128: twox_128,
    StorageHasher.TWOX_256: twox_256,
    StorageHasher.TWOX_64_CONCAT: lambda b: twox_64(b) + b,
    StorageHasher.IDENTITY: lambda b: b,
}

PREFIX_LEN = 32


def hash_key(hasher: StorageHasher, encoded: bytes) -> bytes:
    return HASHERS[hasher](bytes(encoded))


def storage_prefix(pallet_prefix: str, item: str) -> bytes:
    return twox_128(pallet_prefix.encode()) + twox_128(item.encode())


def entry_key(
    metadata: Metadata,
    entry: StorageEntry,
    key_parts: Sequence[Any] = (),
    codec: Optional[DynamicCodec] = None,
) -> bytes:
    """Key (or prefix) of `entry` for the given leading key parts."""
    if len(key_parts) > len(entry.hashers):
        raise EncodeError(
            ErrorCode.SHAPE_MISMATCH,
            f"{entry.pallet}.{entry.name} takes at most {len(entry.hashers)} key part(s), "
            f"got {len(key_parts)}",
            pallet=entry.pallet,
            item=entry.name,
        )
    codec = codec or DynamicCodec(metadata.registry)
    key_types = entry.key_types(metadata.registry)
    out = bytearray(storage_prefix(entry.prefix, entry.name))
    for i, part in enumerate(key_parts):
        try:
            encoded = codec.encode_value(key_types[i], from_python(part))
        except EncodeError as e:
            raise e.with_context(pallet=entry.pallet, item=entry.name, key_index=i) from e
        out += hash_key(entry.hashers[i], encoded)
    return bytes(out)


def storage_key(
    metadata: Metadata,
    pallet: str,
    item: str,
    key_parts: Sequence[Any] = (),
    codec: Optional[DynamicCodec] = None,
) -> bytes:
    entry = metadata.lookup_storage_item(pallet, item)
    return entry_key(metadata, entry, key_parts, codec)


def decode_key(
    metadata: Metadata,
    entry: StorageEntry,
    key: bytes,
    codec: Optional[DynamicCodec] = None,
) -> Tuple[Optional[Value], ...]:
    """
    Recover key parts from a full storage key. Parts behind non-concat hashers
    cannot be recovered and come back as None.
    """
    key = bytes(key)
    if key[:PREFIX_LEN] != storage_prefix(entry.prefix, entry.name):
        raise MetadataError(
            ErrorCode.NOT_FOUND,
            f"key does not belong to {entry.pallet}.{entry.name}",
            pallet=entry.pallet,
            item=entry.name,
        )
    codec = codec or DynamicCodec(metadata.registry)
    key_types = entry.key_types(metadata.registry)
    off = PREFIX_LEN
    parts = []
    for hasher, ty in zip(entry.hashers, key_types):
        off += hasher.digest_size
        if hasher.is_concat:
            value, off = codec.decode_value(ty, key, off)
            parts.append(value)
        else:
            parts.append(None)
    return tuple(parts)


__all__ = [
    "HASHERS",
    "PREFIX_LEN",
    "hash_key",
    "storage_prefix",
    "entry_key",
    "storage_key",
    "decode_key",
]
