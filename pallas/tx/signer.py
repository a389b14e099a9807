"""
pallas.tx.signer
================

The signing capability consumed by the extrinsic builder.

A signer is anything with an ``account_id`` (32 raw bytes), a ``scheme`` and a
``sign(payload)`` method returning the raw signature, or ``None`` to decline.
``sign`` may be a plain function or a coroutine (hardware wallets, remote
keystores). Key derivation is out of scope; `Ed25519Signer` wraps a raw
32-byte seed via the `cryptography` package for tests and scripts.

`Keyring` models the capability boundary "payload + account id -> signature
or decline": it hands out signers only for accounts it holds keys for.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Dict, Optional, Protocol, Union, runtime_checkable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.exceptions import InvalidSignature

from ..utils.bytes import to_hex

__all__ = [
    "SignatureScheme",
    "Signer",
    "Ed25519Signer",
    "Keyring",
    "call_signer",
    "verify_ed25519",
]


class SignatureScheme(IntEnum):
    """Discriminant of the runtime's MultiSignature enum."""

    ED25519 = 0
    SR25519 = 1
    ECDSA = 2

    @property
    def signature_length(self) -> int:
        return 65 if self is SignatureScheme.ECDSA else 64


@runtime_checkable
class Signer(Protocol):
    account_id: bytes
    scheme: SignatureScheme

    def sign(self, payload: bytes) -> Union[Optional[bytes], Awaitable[Optional[bytes]]]: ...


async def call_signer(signer: Signer, payload: bytes) -> Optional[bytes]:
    """Invoke `signer.sign`, awaiting it when it returns an awaitable."""
    out: Any = signer.sign(payload)
    if inspect.isawaitable(out):
        out = await out
    return out


@dataclass
class Ed25519Signer:
    """Ed25519 signer over a raw 32-byte seed."""

    seed: bytes = field(repr=False)
    scheme: SignatureScheme = field(default=SignatureScheme.ED25519, init=False)
    _key: Ed25519PrivateKey = field(init=False, repr=False)
    account_id: bytes = field(init=False)

    def __post_init__(self) -> None:
        if len(self.seed) != 32:
            raise ValueError("Ed25519 seed must be 32 bytes")
        self._key = Ed25519PrivateKey.from_private_bytes(bytes(self.seed))
        self.account_id = self._key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def generate(cls) -> "Ed25519Signer":
        key = Ed25519PrivateKey.generate()
        seed = key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(seed)

    def sign(self, payload: bytes) -> bytes:
        return self._key.sign(bytes(payload))

    def __repr__(self) -> str:
        return f"Ed25519Signer(account_id={to_hex(self.account_id)})"


def verify_ed25519(account_id: bytes, payload: bytes, signature: bytes) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(bytes(account_id)).verify(bytes(signature), bytes(payload))
    except InvalidSignature:
        return False
    return True


class Keyring:
    """
    Holds signers by account id. `signer_for` returns a signer that declines
    (returns None) for accounts the keyring does not hold, so the builder
    reports SIGNER_REJECTED instead of falling back to another key.
    """

    def __init__(self, *signers: Signer) -> None:
        self._signers: Dict[bytes, Signer] = {}
        for s in signers:
            self.add(s)

    def add(self, signer: Signer) -> None:
        self._signers[bytes(signer.account_id)] = signer

    def __contains__(self, account_id: object) -> bool:
        return isinstance(account_id, (bytes, bytearray)) and bytes(account_id) in self._signers

    def __len__(self) -> int:
        return len(self._signers)

    def signer_for(
        self, account_id: bytes, scheme: SignatureScheme = SignatureScheme.ED25519
    ) -> Signer:
        held = self._signers.get(bytes(account_id))
        if held is not None:
            return held
        return _Declining(bytes(account_id), scheme)


@dataclass
class _Declining:
    account_id: bytes
    scheme: SignatureScheme

    def sign(self, payload: bytes) -> Optional[bytes]:
        return None
