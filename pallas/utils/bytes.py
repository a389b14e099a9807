"""
Byte/hex conversions shared by the codec, RPC and CLI layers.

Nodes speak lowercase 0x-prefixed hex on the wire; everything inside pallas
works on `bytes`.
"""

from __future__ import annotations

from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]
HexOrBytes = Union[BytesLike, str]


def to_hex(b: BytesLike, prefix: bool = True) -> str:
    s = bytes(b).hex()
    return "0x" + s if prefix else s


def from_hex(s: str) -> bytes:
    """
    Parse a hex string, with or without a 0x prefix.

    Raises TypeError for non-strings and ValueError for odd-length or
    non-hex input; an empty string (or bare ``0x``) is ``b""``.
    """
    if not isinstance(s, str):
        raise TypeError(f"from_hex expects str, got {type(s).__name__}")
    body = s[2:] if s[:2] in ("0x", "0X") else s
    if len(body) % 2:
        raise ValueError(f"odd-length hex string ({len(body)} digits)")
    try:
        return bytes.fromhex(body)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def ensure_bytes(data: HexOrBytes) -> bytes:
    """bytes-like values pass through; strings are parsed as hex."""
    if isinstance(data, str):
        return from_hex(data)
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"expected bytes or hex str, got {type(data).__name__}")


def as_hex(data: HexOrBytes) -> str:
    """Normalise bytes or hex input to the canonical 0x-lowercase wire form."""
    return to_hex(ensure_bytes(data))


__all__ = ["BytesLike", "HexOrBytes", "ensure_bytes", "to_hex", "from_hex", "as_hex"]
