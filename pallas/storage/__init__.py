"""
Storage keys and queries.
"""

from .client import DEFAULT_PAGE_SIZE, StorageClient
from .keys import HASHERS, decode_key, entry_key, hash_key, storage_key, storage_prefix

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "StorageClient",
    "HASHERS",
    "hash_key",
    "storage_prefix",
    "entry_key",
    "storage_key",
    "decode_key",
]
