"""
Hash functions used for storage keys, signing payloads and extrinsic hashes.

- BLAKE2b (128/256-bit digests) from hashlib.
- xxHash64 "twox" family from the `xxhash` package: a 128-bit twox hash is two
  xxh64 digests with seeds 0 and 1, each little-endian, concatenated; 256-bit
  uses seeds 0..3.
"""

from __future__ import annotations

import hashlib

import xxhash

from .bytes import BytesLike


def blake2_128(data: BytesLike) -> bytes:
    return hashlib.blake2b(bytes(data), digest_size=16).digest()


def blake2_256(data: BytesLike) -> bytes:
    return hashlib.blake2b(bytes(data), digest_size=32).digest()


def _twox(data: BytesLike, rounds: int) -> bytes:
    raw = bytes(data)
    return b"".join(
        xxhash.xxh64(raw, seed=seed).intdigest().to_bytes(8, "little")
        for seed in range(rounds)
    )


def twox_64(data: BytesLike) -> bytes:
    return _twox(data, 1)


def twox_128(data: BytesLike) -> bytes:
    return _twox(data, 2)


def twox_256(data: BytesLike) -> bytes:
    return _twox(data, 4)


__all__ = ["blake2_128", "blake2_256", "twox_64", "twox_128", "twox_256"]
