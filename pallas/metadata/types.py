"""
Type descriptors of the portable type registry.

A descriptor never embeds another descriptor: it refers to other types by
`TypeId` (an int key into the registry arena), so recursive types such as
`enum Tree { Leaf, Node(Vec<Tree>) }` are representable without eager
expansion.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

TypeId = int


class PrimitiveKind(str, Enum):
    BOOL = "bool"
    CHAR = "char"
    STR = "str"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    U256 = "u256"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    I128 = "i128"
    I256 = "i256"

    @property
    def is_unsigned(self) -> bool:
        return self.value.startswith("u")

    @property
    def is_signed(self) -> bool:
        return self.value.startswith("i")

    @property
    def byte_width(self) -> Optional[int]:
        if self.is_unsigned or self.is_signed:
            return int(self.value[1:]) // 8
        return None


# Order of the primitive tag in the encoded registry.
PRIMITIVE_TAGS: Tuple[PrimitiveKind, ...] = (
    PrimitiveKind.BOOL,
    PrimitiveKind.CHAR,
    PrimitiveKind.STR,
    PrimitiveKind.U8,
    PrimitiveKind.U16,
    PrimitiveKind.U32,
    PrimitiveKind.U64,
    PrimitiveKind.U128,
    PrimitiveKind.U256,
    PrimitiveKind.I8,
    PrimitiveKind.I16,
    PrimitiveKind.I32,
    PrimitiveKind.I64,
    PrimitiveKind.I128,
    PrimitiveKind.I256,
)


@dataclass(frozen=True)
class Field:
    name: Optional[str]
    type: TypeId
    type_name: Optional[str] = None
    docs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VariantDef:
    name: str
    index: int
    fields: Tuple[Field, ...] = ()
    docs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Primitive:
    kind: PrimitiveKind


@dataclass(frozen=True)
class Composite:
    fields: Tuple[Field, ...] = ()

    @property
    def is_named(self) -> bool:
        return bool(self.fields) and all(f.name is not None for f in self.fields)


@dataclass(frozen=True)
class Variant:
    variants: Tuple[VariantDef, ...] = ()

    def by_name(self, name: str) -> Optional[VariantDef]:
        for v in self.variants:
            if v.name == name:
                return v
        return None

    def by_index(self, index: int) -> Optional[VariantDef]:
        for v in self.variants:
            if v.index == index:
                return v
        return None


@dataclass(frozen=True)
class Sequence:
    type: TypeId


@dataclass(frozen=True)
class Array:
    len: int
    type: TypeId


@dataclass(frozen=True)
class Tuple_:
    types: Tuple[TypeId, ...] = ()


@dataclass(frozen=True)
class Compact:
    type: TypeId


@dataclass(frozen=True)
class BitSequence:
    bit_store_type: TypeId
    bit_order_type: TypeId


TypeDescriptor = Union[Primitive, Composite, Variant, Sequence, Array, Tuple_, Compact, BitSequence]


@dataclass(frozen=True)
class TypeParam:
    name: str
    type: Optional[TypeId]


@dataclass(frozen=True)
class PortableType:
    """One registry entry: the descriptor plus its Rust path and generics."""

    id: TypeId
    descriptor: TypeDescriptor
    path: Tuple[str, ...] = ()
    params: Tuple[TypeParam, ...] = ()
    docs: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return "::".join(self.path) if self.path else type(self.descriptor).__name__.rstrip("_")

    def param(self, name: str) -> Optional[TypeId]:
        for p in self.params:
            if p.name == name:
                return p.type
        return None


def referenced_ids(desc: TypeDescriptor) -> Tuple[TypeId, ...]:
    """All TypeIds a descriptor points at (used by registry validation)."""
    if isinstance(desc, Composite):
        return tuple(f.type for f in desc.fields)
    if isinstance(desc, Variant):
        return tuple(f.type for v in desc.variants for f in v.fields)
    if isinstance(desc, (Sequence, Array, Compact)):
        return (desc.type,)
    if isinstance(desc, Tuple_):
        return desc.types
    if isinstance(desc, BitSequence):
        return (desc.bit_store_type, desc.bit_order_type)
    return ()


__all__ = [
    "TypeId",
    "PrimitiveKind",
    "PRIMITIVE_TAGS",
    "Field",
    "VariantDef",
    "Primitive",
    "Composite",
    "Variant",
    "Sequence",
    "Array",
    "Tuple_",
    "Compact",
    "BitSequence",
    "TypeDescriptor",
    "TypeParam",
    "PortableType",
    "referenced_ids",
]
