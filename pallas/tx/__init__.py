"""
Extrinsics: build, sign, submit and track.

Re-exports:
- builder: ChainParams, Call, UnsignedExtrinsicPayload, SignedExtrinsic, ExtrinsicBuilder
- era: Era, Immortal, Mortal
- signer: SignatureScheme, Signer, Ed25519Signer, Keyring
- status / progress: TransactionStatus variants, TransactionProgress, submit_and_watch
- events: ExtrinsicEvents, EventDetails
"""

from .builder import (
    EXTRINSIC_FORMAT_VERSION,
    SIGNING_PAYLOAD_HASH_THRESHOLD,
    Call,
    ChainParams,
    ExtrinsicBuilder,
    SignatureBlock,
    SignedExtrinsic,
    UnsignedExtrinsicPayload,
    build_unsigned,
)
from .era import Era, Immortal, Mortal, Mortality
from .events import EventDetails, ExtrinsicEvents
from .extensions import ExtensionParams, encode_extensions
from .progress import TransactionProgress, TxInBlock, submit, submit_and_watch
from .signer import Ed25519Signer, Keyring, SignatureScheme, Signer
from .status import (
    Broadcast,
    Dropped,
    FinalityTimeout,
    Finalized,
    Future,
    InBlock,
    Invalid,
    Ready,
    Retracted,
    TransactionStatus,
    Usurped,
    parse_status,
)

__all__ = [
    # builder
    "EXTRINSIC_FORMAT_VERSION",
    "SIGNING_PAYLOAD_HASH_THRESHOLD",
    "Call",
    "ChainParams",
    "ExtrinsicBuilder",
    "SignatureBlock",
    "SignedExtrinsic",
    "UnsignedExtrinsicPayload",
    "build_unsigned",
    # era
    "Era",
    "Immortal",
    "Mortal",
    "Mortality",
    # extensions
    "ExtensionParams",
    "encode_extensions",
    # signer
    "SignatureScheme",
    "Signer",
    "Ed25519Signer",
    "Keyring",
    # status / progress
    "TransactionStatus",
    "Future",
    "Ready",
    "Broadcast",
    "InBlock",
    "Retracted",
    "FinalityTimeout",
    "Finalized",
    "Usurped",
    "Dropped",
    "Invalid",
    "parse_status",
    "TransactionProgress",
    "TxInBlock",
    "submit",
    "submit_and_watch",
    # events
    "EventDetails",
    "ExtrinsicEvents",
]
