"""
Decoded runtime metadata: pallets, calls, storage, events, errors, constants
and the extrinsic format, all backed by one TypeRegistry.

`Metadata` is immutable once built. Construct it with `pallas.metadata.load`
(or `Metadata.from_bytes`); the constructor validates cross references and
uniqueness so every later lookup can trust the document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..errors import ErrorCode, MetadataError
from .registry import TypeRegistry
from .types import Field, Tuple_, TypeId, Variant, VariantDef

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageHasher(str, Enum):
    BLAKE2_128 = "Blake2_128"
    BLAKE2_256 = "Blake2_256"
    BLAKE2_128_CONCAT = "Blake2_128Concat"
    TWOX_128 = "Twox128"
    TWOX_256 = "Twox256"
    TWOX_64_CONCAT = "Twox64Concat"
    IDENTITY = "Identity"

    @property
    def is_concat(self) -> bool:
        """Hashers whose output ends with the raw encoded key."""
        return self in (
            StorageHasher.BLAKE2_128_CONCAT,
            StorageHasher.TWOX_64_CONCAT,
            StorageHasher.IDENTITY,
        )

    @property
    def digest_size(self) -> int:
        return _HASHER_DIGEST[self]


_HASHER_DIGEST = {
    StorageHasher.BLAKE2_128: 16,
    StorageHasher.BLAKE2_256: 32,
    StorageHasher.BLAKE2_128_CONCAT: 16,
    StorageHasher.TWOX_128: 16,
    StorageHasher.TWOX_256: 32,
    StorageHasher.TWOX_64_CONCAT: 8,
    StorageHasher.IDENTITY: 0,
}

# Order of the hasher tag in the encoded document.
HASHER_TAGS: Tuple[StorageHasher, ...] = (
    StorageHasher.BLAKE2_128,
    StorageHasher.BLAKE2_256,
    StorageHasher.BLAKE2_128_CONCAT,
    StorageHasher.TWOX_128,
    StorageHasher.TWOX_256,
    StorageHasher.TWOX_64_CONCAT,
    StorageHasher.IDENTITY,
)


class StorageModifier(str, Enum):
    OPTIONAL = "Optional"
    DEFAULT = "Default"


@dataclass(frozen=True)
class StorageEntry:
    pallet: str
    prefix: str
    name: str
    modifier: StorageModifier
    value_ty: TypeId
    hashers: Tuple[StorageHasher, ...] = ()
    key_ty: Optional[TypeId] = None
    default: bytes = b""
    docs: Tuple[str, ...] = ()

    @property
    def is_map(self) -> bool:
        return bool(self.hashers)

    def key_types(self, registry: TypeRegistry) -> Tuple[TypeId, ...]:
        """
        Positional key type per hasher. A map with several hashers declares its
        key as a tuple whose elements line up with the hashers.
        """
        if not self.hashers:
            return ()
        if self.key_ty is None:
            raise MetadataError(
                ErrorCode.METADATA_INVALID,
                f"storage map {self.pallet}.{self.name} declares hashers but no key type",
                pallet=self.pallet,
                item=self.name,
            )
        if len(self.hashers) == 1:
            return (self.key_ty,)
        desc = registry.descriptor(self.key_ty)
        if not isinstance(desc, Tuple_) or len(desc.types) != len(self.hashers):
            raise MetadataError(
                ErrorCode.METADATA_INVALID,
                f"{self.pallet}.{self.name}: {len(self.hashers)} hashers but key type "
                f"{self.key_ty} is not a tuple of that arity",
                type_id=self.key_ty,
            )
        return desc.types


# ---------------------------------------------------------------------------
# Calls / events / errors / constants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VariantItem:
    """A call, event or error of a pallet: one variant of the pallet's enum type."""

    pallet: str
    pallet_index: int
    name: str
    index: int
    fields: Tuple[Field, ...] = ()
    docs: Tuple[str, ...] = ()

    @property
    def args(self) -> Tuple[Tuple[Optional[str], TypeId], ...]:
        return tuple((f.name, f.type) for f in self.fields)

    @classmethod
    def from_variant(cls, pallet: "PalletMetadata", v: VariantDef) -> "VariantItem":
        return cls(
            pallet=pallet.name,
            pallet_index=pallet.index,
            name=v.name,
            index=v.index,
            fields=v.fields,
            docs=v.docs,
        )


class CallDescriptor(VariantItem):
    @property
    def call_index(self) -> int:
        return self.index


class EventDescriptor(VariantItem):
    pass


class ErrorDescriptor(VariantItem):
    pass


@dataclass(frozen=True)
class ConstantEntry:
    name: str
    type: TypeId
    value: bytes
    docs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PalletMetadata:
    name: str
    index: int
    storage_prefix: Optional[str] = None
    storage: Mapping[str, StorageEntry] = field(default_factory=dict)
    call_ty: Optional[TypeId] = None
    event_ty: Optional[TypeId] = None
    error_ty: Optional[TypeId] = None
    constants: Mapping[str, ConstantEntry] = field(default_factory=dict)
    docs: Tuple[str, ...] = ()

    def referenced_ids(self) -> Tuple[TypeId, ...]:
        ids = [t for t in (self.call_ty, self.event_ty, self.error_ty) if t is not None]
        for s in self.storage.values():
            ids.append(s.value_ty)
            if s.key_ty is not None:
                ids.append(s.key_ty)
        ids.extend(c.type for c in self.constants.values())
        return tuple(ids)


# ---------------------------------------------------------------------------
# Extrinsic & runtime APIs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignedExtensionMetadata:
    identifier: str
    type: TypeId
    additional_signed: TypeId


@dataclass(frozen=True)
class ExtrinsicMetadata:
    version: int
    signed_extensions: Tuple[SignedExtensionMetadata, ...] = ()
    type: Optional[TypeId] = None
    address_ty: Optional[TypeId] = None
    call_ty: Optional[TypeId] = None
    signature_ty: Optional[TypeId] = None
    extra_ty: Optional[TypeId] = None

    def referenced_ids(self) -> Tuple[TypeId, ...]:
        ids = [
            t
            for t in (self.type, self.address_ty, self.call_ty, self.signature_ty, self.extra_ty)
            if t is not None
        ]
        for ext in self.signed_extensions:
            ids.extend((ext.type, ext.additional_signed))
        return tuple(ids)


@dataclass(frozen=True)
class RuntimeApiMethod:
    name: str
    inputs: Tuple[Tuple[str, TypeId], ...]
    output: TypeId
    docs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RuntimeApi:
    name: str
    methods: Tuple[RuntimeApiMethod, ...] = ()
    docs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OuterEnums:
    call_ty: TypeId
    event_ty: TypeId
    error_ty: TypeId


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class Metadata:
    """Validated, read-only view over one runtime metadata document."""

    def __init__(
        self,
        *,
        version: int,
        registry: TypeRegistry,
        pallets: Sequence[PalletMetadata],
        extrinsic: ExtrinsicMetadata,
        runtime_ty: Optional[TypeId] = None,
        apis: Sequence[RuntimeApi] = (),
        outer_enums: Optional[OuterEnums] = None,
        custom: Optional[Mapping[str, Tuple[TypeId, bytes]]] = None,
    ) -> None:
        self.version = version
        self.registry = registry
        self.extrinsic = extrinsic
        self.runtime_ty = runtime_ty
        self.apis = tuple(apis)
        self.outer_enums = outer_enums
        self.custom: Mapping[str, Tuple[TypeId, bytes]] = MappingProxyType(dict(custom or {}))

        by_name: Dict[str, PalletMetadata] = {}
        by_index: Dict[int, PalletMetadata] = {}
        for p in pallets:
            if p.name in by_name:
                raise MetadataError(
                    ErrorCode.DUPLICATE_ENTRY, f"pallet {p.name!r} declared twice", pallet=p.name
                )
            if p.index in by_index:
                raise MetadataError(
                    ErrorCode.DUPLICATE_ENTRY,
                    f"pallet index {p.index} used by {by_index[p.index].name!r} and {p.name!r}",
                    pallet=p.name,
                    index=p.index,
                )
            by_name[p.name] = p
            by_index[p.index] = p
        self._pallets = MappingProxyType(by_name)
        self._pallets_by_index = MappingProxyType(by_index)
        self._validate()

    # ---------------- Construction ----------------

    @classmethod
    def from_bytes(cls, document: bytes, *, strict_compact: bool = True) -> "Metadata":
        from .decode import load

        return load(document, strict_compact=strict_compact)

    @classmethod
    def from_hex(cls, document: str, *, strict_compact: bool = True) -> "Metadata":
        from ..utils.bytes import from_hex

        return cls.from_bytes(from_hex(document), strict_compact=strict_compact)

    def _validate(self) -> None:
        self.registry.validate()
        for p in self._pallets.values():
            for ref in p.referenced_ids():
                self._require_type(ref, pallet=p.name)
            for ty in (p.call_ty, p.event_ty, p.error_ty):
                if ty is not None:
                    self.registry.variant(ty)
            for entry in p.storage.values():
                entry.key_types(self.registry)
        for ref in self.extrinsic.referenced_ids():
            self._require_type(ref, section="extrinsic")
        if self.runtime_ty is not None:
            self._require_type(self.runtime_ty, section="runtime")
        for api in self.apis:
            for m in api.methods:
                for _, ty in m.inputs:
                    self._require_type(ty, api=api.name, method=m.name)
                self._require_type(m.output, api=api.name, method=m.name)
        if self.outer_enums is not None:
            for ty in (self.outer_enums.call_ty, self.outer_enums.event_ty, self.outer_enums.error_ty):
                self._require_type(ty, section="outer_enums")
        for name, (ty, _) in self.custom.items():
            self._require_type(ty, custom=name)

    def _require_type(self, type_id: TypeId, **where: Any) -> None:
        if type_id not in self.registry:
            raise MetadataError(
                ErrorCode.DANGLING_TYPE_ID,
                f"unknown type id {type_id} referenced from {where}",
                type_id=type_id,
                **where,
            )

    # ---------------- Pallets ----------------

    @property
    def pallets(self) -> Tuple[PalletMetadata, ...]:
        return tuple(sorted(self._pallets.values(), key=lambda p: p.index))

    def pallet(self, name: str) -> PalletMetadata:
        try:
            return self._pallets[name]
        except KeyError:
            raise MetadataError(
                ErrorCode.NOT_FOUND, f"pallet {name!r} not found", pallet=name
            ) from None

    def pallet_by_index(self, index: int) -> PalletMetadata:
        try:
            return self._pallets_by_index[index]
        except KeyError:
            raise MetadataError(
                ErrorCode.NOT_FOUND, f"no pallet with index {index}", index=index
            ) from None

    # ---------------- Calls ----------------

    def calls(self, pallet: str) -> Tuple[CallDescriptor, ...]:
        p = self.pallet(pallet)
        if p.call_ty is None:
            return ()
        return tuple(
            CallDescriptor.from_variant(p, v) for v in self.registry.variant(p.call_ty).variants
        )

    def lookup_call(self, pallet: str, call: str) -> CallDescriptor:
        p = self.pallet(pallet)
        v = self._variant_of(p.call_ty, call)
        if v is None:
            raise MetadataError(
                ErrorCode.NOT_FOUND, f"call {pallet}.{call} not found", pallet=pallet, call=call
            )
        return CallDescriptor.from_variant(p, v)

    # ---------------- Storage ----------------

    def lookup_storage_item(self, pallet: str, item: str) -> StorageEntry:
        p = self.pallet(pallet)
        try:
            return p.storage[item]
        except KeyError:
            raise MetadataError(
                ErrorCode.NOT_FOUND,
                f"storage item {pallet}.{item} not found",
                pallet=pallet,
                item=item,
            ) from None

    # ---------------- Events / errors ----------------

    def events(self, pallet: str) -> Tuple[EventDescriptor, ...]:
        p = self.pallet(pallet)
        if p.event_ty is None:
            return ()
        return tuple(
            EventDescriptor.from_variant(p, v) for v in self.registry.variant(p.event_ty).variants
        )

    def lookup_event(self, pallet_index: int, event_index: int) -> EventDescriptor:
        p = self.pallet_by_index(pallet_index)
        v = None
        if p.event_ty is not None:
            v = self.registry.variant(p.event_ty).by_index(event_index)
        if v is None:
            raise MetadataError(
                ErrorCode.NOT_FOUND,
                f"pallet {p.name} has no event with index {event_index}",
                pallet=p.name,
                index=event_index,
            )
        return EventDescriptor.from_variant(p, v)

    def lookup_error(self, pallet_index: int, error_index: int) -> ErrorDescriptor:
        p = self.pallet_by_index(pallet_index)
        v = None
        if p.error_ty is not None:
            v = self.registry.variant(p.error_ty).by_index(error_index)
        if v is None:
            raise MetadataError(
                ErrorCode.NOT_FOUND,
                f"pallet {p.name} has no error with index {error_index}",
                pallet=p.name,
                index=error_index,
            )
        return ErrorDescriptor.from_variant(p, v)

    # ---------------- Constants ----------------

    def constant(self, pallet: str, name: str) -> ConstantEntry:
        p = self.pallet(pallet)
        try:
            return p.constants[name]
        except KeyError:
            raise MetadataError(
                ErrorCode.NOT_FOUND,
                f"constant {pallet}.{name} not found",
                pallet=pallet,
                constant=name,
            ) from None

    # ---------------- Extrinsic types ----------------

    @property
    def address_ty(self) -> Optional[TypeId]:
        return self._extrinsic_type(self.extrinsic.address_ty, "Address")

    @property
    def signature_ty(self) -> Optional[TypeId]:
        return self._extrinsic_type(self.extrinsic.signature_ty, "Signature")

    @property
    def call_ty(self) -> Optional[TypeId]:
        return self._extrinsic_type(self.extrinsic.call_ty, "Call")

    def _extrinsic_type(self, explicit: Optional[TypeId], param: str) -> Optional[TypeId]:
        if explicit is not None:
            return explicit
        if self.extrinsic.type is None:
            return None
        return self.registry.resolve(self.extrinsic.type).param(param)

    def _variant_of(self, type_id: Optional[TypeId], name: str) -> Optional[VariantDef]:
        if type_id is None:
            return None
        desc = self.registry.descriptor(type_id)
        return desc.by_name(name) if isinstance(desc, Variant) else None

    def __repr__(self) -> str:
        return f"Metadata(v{self.version}, pallets={len(self._pallets)}, types={len(self.registry)})"


__all__ = [
    "StorageHasher",
    "HASHER_TAGS",
    "StorageModifier",
    "StorageEntry",
    "VariantItem",
    "CallDescriptor",
    "EventDescriptor",
    "ErrorDescriptor",
    "ConstantEntry",
    "PalletMetadata",
    "SignedExtensionMetadata",
    "ExtrinsicMetadata",
    "RuntimeApiMethod",
    "RuntimeApi",
    "OuterEnums",
    "Metadata",
]
