"""
pallas: a metadata-driven client for Substrate-style nodes.

Subpackages
-----------
- pallas.codec     SCALE primitives
- pallas.metadata  runtime metadata (V14/V15) and the portable type registry
- pallas.dynamic   dynamic values encoded/decoded against registry types
- pallas.tx        extrinsic builder, signers, submission and status tracking
- pallas.rpc       websocket/HTTP JSON-RPC transports and typed chain calls
- pallas.storage   storage keys and queries
"""

from .client import Client
from .config import ClientConfig
from .errors import (
    CodecError,
    ConfigError,
    DecodeError,
    DispatchFailed,
    EncodeError,
    ErrorCode,
    ExtrinsicError,
    LifecycleError,
    MetadataError,
    PallasError,
    RpcError,
    SignError,
    TransportError,
    TxError,
)
from .metadata import Metadata
from .version import __version__

__all__ = [
    "__version__",
    "Client",
    "ClientConfig",
    "Metadata",
    # errors
    "ErrorCode",
    "PallasError",
    "CodecError",
    "DecodeError",
    "MetadataError",
    "EncodeError",
    "SignError",
    "ExtrinsicError",
    "LifecycleError",
    "TxError",
    "DispatchFailed",
    "TransportError",
    "RpcError",
    "ConfigError",
]
