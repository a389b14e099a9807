"""
Signed extensions: the `extra` bytes carried in the extrinsic and the
`additional_signed` bytes that are only signed over.

The runtime declares its extensions (identifier, extra type, additional type)
in the extrinsic metadata, in order. Each known identifier contributes:

    identifier                 extra                        additional_signed
    CheckSpecVersion           -                            u32 spec_version
    CheckTxVersion             -                            u32 transaction_version
    CheckGenesis               -                            genesis hash
    CheckMortality / CheckEra  era                          checkpoint hash
    CheckNonce                 Compact<nonce>               -
    ChargeTransactionPayment   Compact<tip>                 -
    ChargeAssetTxPayment       Compact<tip> ++ Option<asset> -
    CheckMetadataHash          mode byte                    Option<[u8; 32]>

Identifiers whose declared types are both empty (CheckNonZeroSender,
CheckWeight, ...) contribute nothing. Any other identifier is rejected.
With no declared extensions the classic layout is used:
extra = era ++ Compact(nonce) ++ Compact(tip),
additional = spec ++ tx_version ++ genesis ++ checkpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..codec import scale
from ..dynamic.codec import DynamicCodec
from ..dynamic.value import Value
from ..errors import ErrorCode, ExtrinsicError
from ..metadata.model import Metadata, SignedExtensionMetadata
from ..metadata.registry import TypeRegistry
from ..metadata.types import Composite, Tuple_, TypeId, Variant
from .era import Era

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionParams:
    era: Era
    checkpoint_hash: bytes
    nonce: int
    tip: int
    genesis_hash: bytes
    spec_version: int
    transaction_version: int
    asset_id: Optional[Value] = None
    metadata_hash: Optional[bytes] = None


Contribution = Tuple[bytes, bytes]
_Handler = Callable[[ExtensionParams, SignedExtensionMetadata, DynamicCodec], Contribution]


def _spec_version(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    return b"", scale.encode_uint(p.spec_version, 4)


def _tx_version(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    return b"", scale.encode_uint(p.transaction_version, 4)


def _genesis(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    return b"", bytes(p.genesis_hash)


def _mortality(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    return p.era.encode(), bytes(p.checkpoint_hash)


def _nonce(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    return scale.encode_compact(p.nonce), b""


def _payment(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    return scale.encode_compact(p.tip), b""


def _asset_payment(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    extra = scale.encode_compact(p.tip)
    asset_ty = _field_type(codec.registry, ext.type, "asset_id")
    if p.asset_id is None:
        return extra + b"\x00", b""
    if asset_ty is None:
        raise ExtrinsicError(
            ErrorCode.UNSUPPORTED_EXTENSION,
            "ChargeAssetTxPayment declares no asset_id field",
            identifier=ext.identifier,
        )
    inner = _option_inner(codec.registry, asset_ty)
    return extra + b"\x01" + codec.encode_value(inner, p.asset_id), b""


def _metadata_hash(p: ExtensionParams, ext: SignedExtensionMetadata, codec: DynamicCodec) -> Contribution:
    if p.metadata_hash is None:
        return b"\x00", b"\x00"
    return b"\x01", b"\x01" + bytes(p.metadata_hash)


KNOWN_EXTENSIONS: Dict[str, _Handler] = {
    "CheckSpecVersion": _spec_version,
    "CheckTxVersion": _tx_version,
    "CheckGenesis": _genesis,
    "CheckMortality": _mortality,
    "CheckEra": _mortality,
    "CheckNonce": _nonce,
    "ChargeTransactionPayment": _payment,
    "ChargeAssetTxPayment": _asset_payment,
    "CheckMetadataHash": _metadata_hash,
}


def encode_extensions(metadata: Metadata, params: ExtensionParams, codec: Optional[DynamicCodec] = None) -> Contribution:
    """Return ``(extra, additional_signed)`` for the runtime's declared extensions."""
    declared = metadata.extrinsic.signed_extensions
    if not declared:
        return default_extensions(params)

    codec = codec or DynamicCodec(metadata.registry)
    extra = bytearray()
    additional = bytearray()
    for ext in declared:
        handler = KNOWN_EXTENSIONS.get(ext.identifier)
        if handler is None:
            if _is_empty(metadata.registry, ext.type) and _is_empty(
                metadata.registry, ext.additional_signed
            ):
                continue
            raise ExtrinsicError(
                ErrorCode.UNSUPPORTED_EXTENSION,
                f"signed extension {ext.identifier!r} carries data this client cannot provide",
                identifier=ext.identifier,
            )
        e, a = handler(params, ext, codec)
        extra += e
        additional += a
    log.debug(
        "signed extensions encoded",
        extra={"extensions": [x.identifier for x in declared], "extra_len": len(extra)},
    )
    return bytes(extra), bytes(additional)


def default_extensions(params: ExtensionParams) -> Contribution:
    extra = params.era.encode() + scale.encode_compact(params.nonce) + scale.encode_compact(params.tip)
    additional = (
        scale.encode_uint(params.spec_version, 4)
        + scale.encode_uint(params.transaction_version, 4)
        + bytes(params.genesis_hash)
        + bytes(params.checkpoint_hash)
    )
    return extra, additional


# ---------------------------------------------------------------------------
# Type helpers
# ---------------------------------------------------------------------------


def _is_empty(registry: TypeRegistry, type_id: TypeId, depth: int = 0) -> bool:
    """True when values of `type_id` always encode to zero bytes."""
    if depth > 32:
        return False
    desc = registry.descriptor(type_id)
    if isinstance(desc, Composite):
        return all(_is_empty(registry, f.type, depth + 1) for f in desc.fields)
    if isinstance(desc, Tuple_):
        return all(_is_empty(registry, t, depth + 1) for t in desc.types)
    return False


def _field_type(registry: TypeRegistry, type_id: TypeId, name: str) -> Optional[TypeId]:
    desc = registry.descriptor(type_id)
    if isinstance(desc, Composite):
        for f in desc.fields:
            if f.name == name:
                return f.type
    return None


def _option_inner(registry: TypeRegistry, type_id: TypeId) -> TypeId:
    desc = registry.descriptor(type_id)
    if isinstance(desc, Variant):
        some = desc.by_name("Some")
        if some is not None and len(some.fields) == 1:
            return some.fields[0].type
    return type_id


__all__ = ["ExtensionParams", "KNOWN_EXTENSIONS", "encode_extensions", "default_extensions"]
