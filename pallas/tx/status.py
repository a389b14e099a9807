"""
Transaction pool statuses as reported by `author_submitAndWatchExtrinsic`.

The node sends either a bare string ("future", "ready", "dropped", "invalid")
or a single-key object ({"inBlock": "0x.."}, {"broadcast": ["peer", ...]}).
`parse_status` turns one notification into a status value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type, Union

from ..errors import ErrorCode, LifecycleError
from ..utils.bytes import from_hex, to_hex


@dataclass(frozen=True)
class Future:
    terminal = False


@dataclass(frozen=True)
class Ready:
    terminal = False


@dataclass(frozen=True)
class Broadcast:
    peers: Tuple[str, ...] = ()
    terminal = False


@dataclass(frozen=True)
class InBlock:
    block_hash: bytes
    terminal = False


@dataclass(frozen=True)
class Retracted:
    block_hash: bytes
    terminal = False


@dataclass(frozen=True)
class FinalityTimeout:
    block_hash: bytes
    terminal = True


@dataclass(frozen=True)
class Finalized:
    block_hash: bytes
    terminal = True


@dataclass(frozen=True)
class Usurped:
    """Replaced in the pool by another transaction; carries its hash."""

    extrinsic_hash: bytes
    terminal = True


@dataclass(frozen=True)
class Dropped:
    terminal = True


@dataclass(frozen=True)
class Invalid:
    terminal = True


TransactionStatus = Union[
    Future, Ready, Broadcast, InBlock, Retracted, FinalityTimeout, Finalized, Usurped, Dropped, Invalid
]

_BARE: Dict[str, Type[Any]] = {
    "future": Future,
    "ready": Ready,
    "dropped": Dropped,
    "invalid": Invalid,
}

_WITH_HASH: Dict[str, Type[Any]] = {
    "inBlock": InBlock,
    "retracted": Retracted,
    "finalityTimeout": FinalityTimeout,
    "finalized": Finalized,
    "usurped": Usurped,
}


def is_terminal(status: Optional[TransactionStatus]) -> bool:
    return status is not None and status.terminal


def status_name(status: Optional[TransactionStatus]) -> str:
    return "None" if status is None else type(status).__name__


def parse_status(raw: Any) -> TransactionStatus:
    if isinstance(raw, str):
        cls = _BARE.get(raw)
        if cls is None:
            raise LifecycleError(ErrorCode.MALFORMED_STATUS, f"unknown status {raw!r}", raw=raw)
        return cls()
    if isinstance(raw, dict) and len(raw) == 1:
        (key, val), = raw.items()
        if key == "broadcast" and isinstance(val, list):
            return Broadcast(tuple(str(p) for p in val))
        cls = _WITH_HASH.get(key)
        if cls is not None and isinstance(val, str):
            try:
                return cls(from_hex(val))
            except ValueError as e:
                raise LifecycleError(
                    ErrorCode.MALFORMED_STATUS, f"bad hash in {key!r} status", raw=raw
                ) from e
    raise LifecycleError(ErrorCode.MALFORMED_STATUS, "unrecognised status notification", raw=repr(raw))


def status_to_json(status: TransactionStatus) -> Any:
    """Inverse of `parse_status`, for logs and fixtures."""
    for name, cls in _BARE.items():
        if isinstance(status, cls):
            return name
    if isinstance(status, Broadcast):
        return {"broadcast": list(status.peers)}
    for name, cls in _WITH_HASH.items():
        if isinstance(status, cls):
            return {name: to_hex(status.extrinsic_hash if isinstance(status, Usurped) else status.block_hash)}
    raise TypeError(f"not a transaction status: {status!r}")


__all__ = [
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
    "TransactionStatus",
    "is_terminal",
    "status_name",
    "parse_status",
    "status_to_json",
]
