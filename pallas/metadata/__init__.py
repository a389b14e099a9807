"""
Runtime metadata: the portable type registry plus pallet/call/storage lookups.

    md = pallas.metadata.load(raw_bytes)
    call = md.lookup_call("Balances", "transfer")
    entry = md.lookup_storage_item("System", "Account")
    md.registry.resolve(entry.value_ty)
"""

from .decode import MAGIC, SUPPORTED_VERSIONS, load
from .model import (
    CallDescriptor,
    ConstantEntry,
    ErrorDescriptor,
    EventDescriptor,
    ExtrinsicMetadata,
    Metadata,
    PalletMetadata,
    SignedExtensionMetadata,
    StorageEntry,
    StorageHasher,
    StorageModifier,
)
from .registry import TypeRegistry
from .types import PortableType, PrimitiveKind, TypeId

__all__ = [
    "MAGIC",
    "SUPPORTED_VERSIONS",
    "load",
    "Metadata",
    "PalletMetadata",
    "CallDescriptor",
    "EventDescriptor",
    "ErrorDescriptor",
    "ConstantEntry",
    "StorageEntry",
    "StorageHasher",
    "StorageModifier",
    "ExtrinsicMetadata",
    "SignedExtensionMetadata",
    "TypeRegistry",
    "PortableType",
    "PrimitiveKind",
    "TypeId",
]
