"""
Utility helpers.

Re-exports:
- bytes: hex helpers
- hash: BLAKE2b and twox (xxHash64) digests
"""

from .bytes import BytesLike, as_hex, ensure_bytes, from_hex, to_hex
from .hash import blake2_128, blake2_256, twox_64, twox_128, twox_256

__all__ = [
    # bytes
    "BytesLike",
    "as_hex",
    "ensure_bytes",
    "from_hex",
    "to_hex",
    # hash
    "blake2_128",
    "blake2_256",
    "twox_64",
    "twox_128",
    "twox_256",
]
