"""
Parser for the SCALE-encoded runtime metadata document (versions 14 and 15).

Layout
------
    b"meta" ++ u8 version ++ RuntimeMetadataV14 | RuntimeMetadataV15

    V14 = types ++ Vec<Pallet> ++ ExtrinsicV14 ++ Compact<TypeId>
    V15 = types ++ Vec<Pallet> ++ ExtrinsicV15 ++ Compact<TypeId>
          ++ Vec<RuntimeApi> ++ OuterEnums ++ Map<str, CustomValue>

Any byte-level failure is reported as MetadataError(METADATA_INVALID) with the
offending offset and the underlying CodecError as cause.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, List, Tuple

from ..codec.scale import Reader
from ..errors import CodecError, ErrorCode, MetadataError
from ..utils.bytes import BytesLike
from .model import (
    HASHER_TAGS,
    ConstantEntry,
    ExtrinsicMetadata,
    Metadata,
    OuterEnums,
    PalletMetadata,
    RuntimeApi,
    RuntimeApiMethod,
    SignedExtensionMetadata,
    StorageEntry,
    StorageModifier,
)
from .registry import TypeRegistry
from .types import (
    PRIMITIVE_TAGS,
    Array,
    BitSequence,
    Compact,
    Composite,
    Field,
    PortableType,
    Primitive,
    Sequence,
    Tuple_,
    TypeDescriptor,
    TypeParam,
    Variant,
    VariantDef,
)

log = logging.getLogger(__name__)

MAGIC = b"meta"
SUPPORTED_VERSIONS = (14, 15)


def load(document: BytesLike, *, strict_compact: bool = True) -> Metadata:
    """Parse and validate a metadata document (as returned by state_getMetadata)."""
    data = bytes(document)
    if len(data) < len(MAGIC) + 1:
        raise MetadataError(
            ErrorCode.METADATA_INVALID, "metadata document is shorter than its header", size=len(data)
        )
    if data[:4] != MAGIC:
        raise MetadataError(
            ErrorCode.BAD_MAGIC, f"bad metadata magic 0x{data[:4].hex()}", magic=data[:4]
        )
    version = data[4]
    if version not in SUPPORTED_VERSIONS:
        raise MetadataError(
            ErrorCode.VERSION_UNSUPPORTED,
            f"metadata version {version} is not supported (expected one of {SUPPORTED_VERSIONS})",
            version=version,
        )

    r = Reader(data, 5, strict=strict_compact)
    try:
        registry = TypeRegistry(r.vec(lambda: _portable_type(r)))
        pallets = r.vec(lambda: _pallet(r, version))
        extrinsic = _extrinsic_v15(r) if version >= 15 else _extrinsic_v14(r)
        runtime_ty = r.compact()
        apis: List[RuntimeApi] = []
        outer = None
        custom: Dict[str, Tuple[int, bytes]] = {}
        if version >= 15:
            apis = r.vec(lambda: _runtime_api(r))
            outer = OuterEnums(call_ty=r.compact(), event_ty=r.compact(), error_ty=r.compact())
            for _ in range(r.compact()):
                key = r.str()
                custom[key] = (r.compact(), r.bytes())
        r.finish()
    except CodecError as e:
        raise MetadataError(
            ErrorCode.METADATA_INVALID,
            f"malformed v{version} metadata: {e.message}",
            offset=e.offset,
            version=version,
            cause=e,
        ) from e

    md = Metadata(
        version=version,
        registry=registry,
        pallets=pallets,
        extrinsic=extrinsic,
        runtime_ty=runtime_ty,
        apis=apis,
        outer_enums=outer,
        custom=custom,
    )
    log.debug(
        "metadata loaded",
        extra={"version": version, "pallets": len(pallets), "types": len(registry)},
    )
    return md


# ---------------------------------------------------------------------------
# Type registry
# ---------------------------------------------------------------------------


def _portable_type(r: Reader) -> PortableType:
    type_id = r.compact()
    path = r.strings()
    params = tuple(r.vec(lambda: TypeParam(name=r.str(), type=r.option(r.compact))))
    desc = _type_def(r)
    docs = r.strings()
    return PortableType(id=type_id, descriptor=desc, path=path, params=params, docs=docs)


def _field(r: Reader) -> Field:
    return Field(
        name=r.option(r.str),
        type=r.compact(),
        type_name=r.option(r.str),
        docs=r.strings(),
    )


def _variant_def(r: Reader) -> VariantDef:
    name = r.str()
    fields = tuple(r.vec(lambda: _field(r)))
    index = r.u8()
    return VariantDef(name=name, index=index, fields=fields, docs=r.strings())


def _type_def(r: Reader) -> TypeDescriptor:
    offset = r.offset
    tag = r.u8()
    if tag == 0:
        return Composite(fields=tuple(r.vec(lambda: _field(r))))
    if tag == 1:
        return Variant(variants=tuple(r.vec(lambda: _variant_def(r))))
    if tag == 2:
        return Sequence(type=r.compact())
    if tag == 3:
        length = r.u32()
        return Array(len=length, type=r.compact())
    if tag == 4:
        return Tuple_(types=tuple(r.vec(r.compact)))
    if tag == 5:
        prim_offset = r.offset
        kind = r.u8()
        if kind >= len(PRIMITIVE_TAGS):
            raise CodecError(
                ErrorCode.INVALID_DISCRIMINANT,
                f"unknown primitive tag {kind}",
                offset=prim_offset,
            )
        return Primitive(kind=PRIMITIVE_TAGS[kind])
    if tag == 6:
        return Compact(type=r.compact())
    if tag == 7:
        store = r.compact()
        return BitSequence(bit_store_type=store, bit_order_type=r.compact())
    raise CodecError(ErrorCode.INVALID_DISCRIMINANT, f"unknown type def tag {tag}", offset=offset)


# ---------------------------------------------------------------------------
# Pallets
# ---------------------------------------------------------------------------


def _pallet(r: Reader, version: int) -> PalletMetadata:
    name = r.str()
    storage = r.option(lambda: _storage(r, name))
    call_ty = r.option(r.compact)
    event_ty = r.option(r.compact)
    constants: Dict[str, ConstantEntry] = {}
    for c in r.vec(lambda: _constant(r)):
        if c.name in constants:
            raise MetadataError(
                ErrorCode.DUPLICATE_ENTRY,
                f"pallet {name} declares constant {c.name!r} twice",
                pallet=name,
                constant=c.name,
            )
        constants[c.name] = c
    error_ty = r.option(r.compact)
    index = r.u8()
    docs = r.strings() if version >= 15 else ()
    prefix, entries = storage if storage is not None else (None, {})
    return PalletMetadata(
        name=name,
        index=index,
        storage_prefix=prefix,
        storage=MappingProxyType(entries),
        call_ty=call_ty,
        event_ty=event_ty,
        error_ty=error_ty,
        constants=MappingProxyType(constants),
        docs=docs,
    )


def _storage(r: Reader, pallet: str) -> Tuple[str, Dict[str, StorageEntry]]:
    prefix = r.str()
    entries: Dict[str, StorageEntry] = {}
    for _ in range(r.compact()):
        entry = _storage_entry(r, pallet, prefix)
        if entry.name in entries:
            raise MetadataError(
                ErrorCode.DUPLICATE_ENTRY,
                f"pallet {pallet} declares storage item {entry.name!r} twice",
                pallet=pallet,
                item=entry.name,
            )
        entries[entry.name] = entry
    return prefix, entries


def _storage_entry(r: Reader, pallet: str, prefix: str) -> StorageEntry:
    name = r.str()
    offset = r.offset
    modifier = r.u8()
    if modifier > 1:
        raise CodecError(
            ErrorCode.INVALID_DISCRIMINANT, f"unknown storage modifier {modifier}", offset=offset
        )
    offset = r.offset
    kind = r.u8()
    if kind == 0:
        hashers: Tuple = ()
        key_ty = None
        value_ty = r.compact()
    elif kind == 1:
        hashers = tuple(r.vec(lambda: _hasher(r)))
        key_ty = r.compact()
        value_ty = r.compact()
    else:
        raise CodecError(
            ErrorCode.INVALID_DISCRIMINANT, f"unknown storage entry kind {kind}", offset=offset
        )
    default = r.bytes()
    docs = r.strings()
    return StorageEntry(
        pallet=pallet,
        prefix=prefix,
        name=name,
        modifier=StorageModifier.OPTIONAL if modifier == 0 else StorageModifier.DEFAULT,
        value_ty=value_ty,
        hashers=hashers,
        key_ty=key_ty,
        default=default,
        docs=docs,
    )


def _hasher(r: Reader):
    offset = r.offset
    tag = r.u8()
    if tag >= len(HASHER_TAGS):
        raise CodecError(ErrorCode.INVALID_DISCRIMINANT, f"unknown storage hasher {tag}", offset=offset)
    return HASHER_TAGS[tag]


def _constant(r: Reader) -> ConstantEntry:
    return ConstantEntry(name=r.str(), type=r.compact(), value=r.bytes(), docs=r.strings())


# ---------------------------------------------------------------------------
# Extrinsic / runtime APIs
# ---------------------------------------------------------------------------


def _signed_extension(r: Reader) -> SignedExtensionMetadata:
    return SignedExtensionMetadata(
        identifier=r.str(), type=r.compact(), additional_signed=r.compact()
    )


def _extrinsic_v14(r: Reader) -> ExtrinsicMetadata:
    ty = r.compact()
    version = r.u8()
    exts = tuple(r.vec(lambda: _signed_extension(r)))
    return ExtrinsicMetadata(version=version, signed_extensions=exts, type=ty)


def _extrinsic_v15(r: Reader) -> ExtrinsicMetadata:
    version = r.u8()
    address_ty = r.compact()
    call_ty = r.compact()
    signature_ty = r.compact()
    extra_ty = r.compact()
    exts = tuple(r.vec(lambda: _signed_extension(r)))
    return ExtrinsicMetadata(
        version=version,
        signed_extensions=exts,
        address_ty=address_ty,
        call_ty=call_ty,
        signature_ty=signature_ty,
        extra_ty=extra_ty,
    )


def _runtime_api(r: Reader) -> RuntimeApi:
    name = r.str()
    methods = tuple(r.vec(lambda: _runtime_api_method(r)))
    return RuntimeApi(name=name, methods=methods, docs=r.strings())


def _runtime_api_method(r: Reader) -> RuntimeApiMethod:
    name = r.str()
    inputs = tuple(r.vec(lambda: (r.str(), r.compact())))
    output = r.compact()
    return RuntimeApiMethod(name=name, inputs=inputs, output=output, docs=r.strings())


__all__ = ["MAGIC", "SUPPORTED_VERSIONS", "load"]
