"""
Arena-addressed portable type registry.

Types are stored once, keyed by TypeId; descriptors refer to each other only
by id. The registry is read-only after construction and can be shared freely
between codecs, builders and storage queries.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Optional, Tuple

from ..errors import ErrorCode, MetadataError
from .types import (
    BitSequence,
    Composite,
    Primitive,
    PortableType,
    PrimitiveKind,
    TypeDescriptor,
    TypeId,
    Variant,
    referenced_ids,
)

log = logging.getLogger(__name__)

_BIT_STORES = {
    PrimitiveKind.U8: 8,
    PrimitiveKind.U16: 16,
    PrimitiveKind.U32: 32,
    PrimitiveKind.U64: 64,
}


class TypeRegistry:
    __slots__ = ("_types",)

    def __init__(self, types: Iterable[PortableType]) -> None:
        arena: Dict[TypeId, PortableType] = {}
        for t in types:
            if t.id in arena:
                raise MetadataError(
                    ErrorCode.DUPLICATE_ENTRY, f"type id {t.id} registered twice", type_id=t.id
                )
            arena[t.id] = t
        self._types = MappingProxyType(arena)

    # ---------------- Lookup ----------------

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._types

    def __iter__(self) -> Iterator[PortableType]:
        return iter(self._types.values())

    def resolve(self, type_id: TypeId) -> PortableType:
        try:
            return self._types[type_id]
        except KeyError:
            raise MetadataError(
                ErrorCode.DANGLING_TYPE_ID, f"unknown type id {type_id}", type_id=type_id
            ) from None

    def descriptor(self, type_id: TypeId) -> TypeDescriptor:
        return self.resolve(type_id).descriptor

    def find_by_path(self, *path: str) -> Optional[PortableType]:
        """First type whose Rust path ends with `path` (e.g. ("AccountId32",))."""
        n = len(path)
        for t in self._types.values():
            if t.path[-n:] == tuple(path):
                return t
        return None

    # ---------------- Validation ----------------

    def validate(self) -> None:
        """
        Check the whole arena: every referenced id exists, variant names and
        indices are unique, bit sequences have a well-formed store and order.
        """
        for t in self._types.values():
            for ref in referenced_ids(t.descriptor):
                if ref not in self._types:
                    raise MetadataError(
                        ErrorCode.DANGLING_TYPE_ID,
                        f"type {t.id} ({t.name}) references unknown type id {ref}",
                        type_id=ref,
                        referenced_by=t.id,
                    )
            for p in t.params:
                if p.type is not None and p.type not in self._types:
                    raise MetadataError(
                        ErrorCode.DANGLING_TYPE_ID,
                        f"type {t.id} parameter {p.name!r} references unknown type id {p.type}",
                        type_id=p.type,
                        referenced_by=t.id,
                    )
            desc = t.descriptor
            if isinstance(desc, Variant):
                _check_unique_variants(t.id, desc)
            elif isinstance(desc, BitSequence):
                self.bit_sequence_format(desc)
        log.debug("type registry validated", extra={"types": len(self._types)})

    def bit_sequence_format(self, desc: BitSequence) -> Tuple[int, bool]:
        """Return ``(store_bits, msb0)`` for a bit sequence descriptor."""
        store = self.descriptor(desc.bit_store_type)
        if not isinstance(store, Primitive) or store.kind not in _BIT_STORES:
            raise MetadataError(
                ErrorCode.METADATA_INVALID,
                "bit sequence store must be u8, u16, u32 or u64",
                type_id=desc.bit_store_type,
            )
        order = self.resolve(desc.bit_order_type)
        name = order.path[-1] if order.path else ""
        if name not in ("Lsb0", "Msb0"):
            raise MetadataError(
                ErrorCode.METADATA_INVALID,
                f"unknown bit order {order.name!r}",
                type_id=desc.bit_order_type,
            )
        return _BIT_STORES[store.kind], name == "Msb0"

    def variant(self, type_id: TypeId) -> Variant:
        desc = self.descriptor(type_id)
        if not isinstance(desc, Variant):
            raise MetadataError(
                ErrorCode.METADATA_INVALID,
                f"type {type_id} is not a variant type",
                type_id=type_id,
            )
        return desc

    def composite(self, type_id: TypeId) -> Composite:
        desc = self.descriptor(type_id)
        if not isinstance(desc, Composite):
            raise MetadataError(
                ErrorCode.METADATA_INVALID,
                f"type {type_id} is not a composite type",
                type_id=type_id,
            )
        return desc


def _check_unique_variants(type_id: TypeId, desc: Variant) -> None:
    names, indices = set(), set()
    for v in desc.variants:
        if v.name in names:
            raise MetadataError(
                ErrorCode.DUPLICATE_ENTRY,
                f"type {type_id} declares variant {v.name!r} twice",
                type_id=type_id,
                variant=v.name,
            )
        if v.index in indices:
            raise MetadataError(
                ErrorCode.DUPLICATE_ENTRY,
                f"type {type_id} declares variant index {v.index} twice",
                type_id=type_id,
                index=v.index,
            )
        names.add(v.name)
        indices.add(v.index)


__all__ = ["TypeRegistry"]
