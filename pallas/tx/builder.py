"""
pallas.tx.builder
=================

Build calls from metadata, attach signed extensions, sign, and produce the
canonical extrinsic bytes.

Layout (format version 4)
-------------------------
    signed:    Compact(len) ++ 0x84 ++ address ++ signature ++ extra ++ call
    unsigned:  Compact(len) ++ 0x04 ++ call
    call:      u8 pallet_index ++ u8 call_index ++ args

The signer signs ``call ++ extra ++ additional_signed``; when that payload is
longer than 256 bytes its BLAKE2b-256 digest is signed instead.

The builder keeps no nonce state: the caller passes the account nonce for each
signature, and a rejected signature leaves nothing behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Sequence, Union

from ..codec import scale
from ..dynamic.codec import DynamicCodec
from ..dynamic import value as v
from ..errors import EncodeError, ErrorCode, MetadataError, SignError
from ..metadata.model import Metadata
from ..metadata.types import Variant
from ..utils.bytes import to_hex
from ..utils.hash import blake2_256
from .era import Immortal, Mortal, Mortality
from .extensions import ExtensionParams, encode_extensions
from .signer import SignatureScheme, Signer, call_signer

log = logging.getLogger(__name__)

EXTRINSIC_FORMAT_VERSION = 4
SIGNED_FLAG = 0b1000_0000
SIGNING_PAYLOAD_HASH_THRESHOLD = 256

_SCHEME_VARIANT = {
    SignatureScheme.ED25519: "Ed25519",
    SignatureScheme.SR25519: "Sr25519",
    SignatureScheme.ECDSA: "Ecdsa",
}

Args = Union[v.Composite, v.Tuple, Mapping[str, Any], Sequence[Any]]


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainParams:
    """Per-runtime values every signature commits to."""

    genesis_hash: bytes
    spec_version: int
    transaction_version: int


@dataclass(frozen=True)
class Call:
    pallet: str
    name: str
    pallet_index: int
    call_index: int
    args: bytes = b""

    def encode(self) -> bytes:
        return bytes((self.pallet_index, self.call_index)) + self.args


@dataclass(frozen=True)
class UnsignedExtrinsicPayload:
    call: Call
    extra: bytes = b""
    additional_signed: bytes = b""

    def signing_payload(self) -> bytes:
        raw = self.call.encode() + self.extra + self.additional_signed
        if len(raw) > SIGNING_PAYLOAD_HASH_THRESHOLD:
            return blake2_256(raw)
        return raw


@dataclass(frozen=True)
class SignatureBlock:
    address: bytes
    signature: bytes
    extra: bytes


@dataclass(frozen=True)
class SignedExtrinsic:
    call: Call
    signature: Optional[SignatureBlock] = None
    version: int = EXTRINSIC_FORMAT_VERSION

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    def encode(self) -> bytes:
        if self.signature is None:
            body = bytes((self.version,)) + self.call.encode()
        else:
            s = self.signature
            body = (
                bytes((self.version | SIGNED_FLAG,))
                + s.address
                + s.signature
                + s.extra
                + self.call.encode()
            )
        return scale.encode_compact(len(body)) + body

    @property
    def hash(self) -> bytes:
        return blake2_256(self.encode())

    def to_hex(self) -> str:
        return to_hex(self.encode())


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class ExtrinsicBuilder:
    def __init__(
        self,
        metadata: Metadata,
        chain: ChainParams,
        *,
        codec: Optional[DynamicCodec] = None,
    ) -> None:
        self.metadata = metadata
        self.chain = chain
        self.codec = codec or DynamicCodec(metadata.registry)

    # ---------------- Calls ----------------

    def build_call(self, pallet: str, call: str, args: Args = ()) -> Call:
        desc = self.metadata.lookup_call(pallet, call)
        p = self.metadata.pallet(pallet)
        if p.call_ty is None:
            raise MetadataError(
                ErrorCode.NOT_FOUND, f"pallet {pallet} has no calls", pallet=pallet, call=call
            )
        fields = _as_fields(args)
        try:
            encoded = self.codec.encode_value(p.call_ty, v.Variant(call, fields))
        except EncodeError as e:
            raise e.with_context(pallet=pallet, call=call) from e
        return Call(
            pallet=pallet,
            name=call,
            pallet_index=desc.pallet_index,
            call_index=desc.call_index,
            args=encoded[1:],
        )

    def build_unsigned(self, pallet: str, call: str, args: Args = ()) -> UnsignedExtrinsicPayload:
        return UnsignedExtrinsicPayload(call=self.build_call(pallet, call, args))

    def unsigned(self, payload: Union[UnsignedExtrinsicPayload, Call]) -> SignedExtrinsic:
        """Extrinsic without a signature block (inherents, unsigned calls)."""
        call = payload.call if isinstance(payload, UnsignedExtrinsicPayload) else payload
        return SignedExtrinsic(call=call)

    # ---------------- Extensions ----------------

    def with_extensions(
        self,
        payload: UnsignedExtrinsicPayload,
        account_nonce: int,
        mortality: Mortality = Immortal(),
        tip: int = 0,
        *,
        asset_id: Optional[v.Value] = None,
        metadata_hash: Optional[bytes] = None,
    ) -> UnsignedExtrinsicPayload:
        checkpoint = mortality.checkpoint_hash if isinstance(mortality, Mortal) else self.chain.genesis_hash
        params = ExtensionParams(
            era=mortality.era(),
            checkpoint_hash=checkpoint,
            nonce=account_nonce,
            tip=tip,
            genesis_hash=self.chain.genesis_hash,
            spec_version=self.chain.spec_version,
            transaction_version=self.chain.transaction_version,
            asset_id=asset_id,
            metadata_hash=metadata_hash,
        )
        extra, additional = encode_extensions(self.metadata, params, self.codec)
        return replace(payload, extra=extra, additional_signed=additional)

    # ---------------- Signing ----------------

    async def sign(
        self,
        payload: UnsignedExtrinsicPayload,
        signer: Signer,
        account_nonce: int,
        mortality: Mortality = Immortal(),
        tip: int = 0,
        *,
        asset_id: Optional[v.Value] = None,
        metadata_hash: Optional[bytes] = None,
    ) -> SignedExtrinsic:
        prepared = self.with_extensions(
            payload,
            account_nonce,
            mortality,
            tip,
            asset_id=asset_id,
            metadata_hash=metadata_hash,
        )
        account = bytes(signer.account_id)
        to_sign = prepared.signing_payload()
        try:
            sig = await call_signer(signer, to_sign)
        except SignError:
            raise
        except Exception as e:
            raise SignError(
                f"signer raised {type(e).__name__}", account=account, cause=e
            ) from e
        if sig is None:
            raise SignError("signer declined to sign", account=account)

        sig = bytes(sig)
        scheme = SignatureScheme(signer.scheme)
        if len(sig) != scheme.signature_length:
            raise SignError(
                f"{scheme.name} signature must be {scheme.signature_length} bytes, got {len(sig)}",
                account=account,
            )
        ext = SignedExtrinsic(
            call=prepared.call,
            signature=SignatureBlock(
                address=self.encode_address(account),
                signature=self.encode_signature(scheme, sig),
                extra=prepared.extra,
            ),
        )
        log.debug(
            "extrinsic signed",
            extra={
                "pallet": prepared.call.pallet,
                "call": prepared.call.name,
                "nonce": account_nonce,
                "extrinsic": to_hex(ext.hash),
            },
        )
        return ext

    def encode_address(self, account_id: bytes) -> bytes:
        ty = self.metadata.address_ty
        if ty is None:
            return b"\x00" + account_id
        desc = self.metadata.registry.descriptor(ty)
        if isinstance(desc, Variant) and desc.by_name("Id") is not None:
            return self.codec.encode_value(ty, v.Variant.of("Id", v.Bytes(account_id)))
        return self.codec.encode_value(ty, v.Bytes(account_id))

    def encode_signature(self, scheme: SignatureScheme, signature: bytes) -> bytes:
        ty = self.metadata.signature_ty
        if ty is None:
            return bytes((int(scheme),)) + signature
        desc = self.metadata.registry.descriptor(ty)
        if isinstance(desc, Variant):
            return self.codec.encode_value(ty, v.Variant.of(_SCHEME_VARIANT[scheme], v.Bytes(signature)))
        return self.codec.encode_value(ty, v.Bytes(signature))


def build_unsigned(metadata: Metadata, pallet: str, call: str, args: Args = ()) -> UnsignedExtrinsicPayload:
    """Encode a call without chain parameters (they are only needed to sign)."""
    builder = ExtrinsicBuilder(metadata, ChainParams(b"\x00" * 32, 0, 0))
    return builder.build_unsigned(pallet, call, args)


def _as_fields(args: Args) -> v.Composite:
    if isinstance(args, v.Composite):
        return args
    if isinstance(args, v.Tuple):
        return v.Composite.unnamed(*args.items)
    if isinstance(args, Mapping):
        return v.Composite(tuple((str(k), v.from_python(x)) for k, x in args.items()))
    if isinstance(args, (list, tuple)):
        return v.Composite.unnamed(*(v.from_python(x) for x in args))
    raise EncodeError(
        ErrorCode.SHAPE_MISMATCH,
        f"call arguments must be a Composite, Tuple, mapping or sequence, got {type(args).__name__}",
    )


__all__ = [
    "EXTRINSIC_FORMAT_VERSION",
    "SIGNING_PAYLOAD_HASH_THRESHOLD",
    "ChainParams",
    "Call",
    "UnsignedExtrinsicPayload",
    "SignatureBlock",
    "SignedExtrinsic",
    "ExtrinsicBuilder",
    "build_unsigned",
]
