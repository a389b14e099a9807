"""
pallas.errors
-------------

Error system for the codec, metadata, signing, lifecycle and transport layers.

Design goals
------------
- One root `PallasError` with a machine-friendly `code` and optional `data`.
- One subclass per failure family so callers can `except` the layer they care
  about (codec, metadata, encode, sign, lifecycle, transport, rpc).
- Safe JSON representation (`to_dict`) suitable for logs.
- Codec errors always carry the byte `offset`; value errors carry the
  `type_id` (and value `path` where known).

No error in this package is silently converted into a default value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    # Binary codec
    UNEXPECTED_END = "CODEC/UNEXPECTED_END"
    INVALID_DISCRIMINANT = "CODEC/INVALID_DISCRIMINANT"
    NON_CANONICAL = "CODEC/NON_CANONICAL"
    INVALID_VALUE = "CODEC/INVALID_VALUE"
    OUT_OF_RANGE = "CODEC/OUT_OF_RANGE"
    TRAILING_BYTES = "CODEC/TRAILING_BYTES"

    # Metadata document
    BAD_MAGIC = "METADATA/BAD_MAGIC"
    VERSION_UNSUPPORTED = "METADATA/VERSION_UNSUPPORTED"
    METADATA_INVALID = "METADATA/INVALID"
    DANGLING_TYPE_ID = "METADATA/DANGLING_TYPE_ID"
    DUPLICATE_ENTRY = "METADATA/DUPLICATE_ENTRY"
    NOT_FOUND = "METADATA/NOT_FOUND"

    # Dynamic values
    SHAPE_MISMATCH = "VALUE/SHAPE_MISMATCH"
    TOO_DEEP = "VALUE/TOO_DEEP"

    # Extrinsics & signing
    SIGNER_REJECTED = "SIGN/SIGNER_REJECTED"
    UNSUPPORTED_EXTENSION = "EXTRINSIC/UNSUPPORTED_EXTENSION"

    # Transaction lifecycle
    ILLEGAL_TRANSITION = "LIFECYCLE/ILLEGAL_TRANSITION"
    POST_TERMINAL_NOTIFICATION = "LIFECYCLE/POST_TERMINAL_NOTIFICATION"
    MALFORMED_STATUS = "LIFECYCLE/MALFORMED_STATUS"
    TX_FAILED = "TX/FAILED"
    DISPATCH_FAILED = "TX/DISPATCH_FAILED"

    # Transport / RPC
    DISCONNECTED = "TRANSPORT/DISCONNECTED"
    TIMEOUT = "TRANSPORT/TIMEOUT"
    UNSUPPORTED = "TRANSPORT/UNSUPPORTED"
    RPC = "TRANSPORT/RPC_ERROR"

    # Configuration
    CONFIG = "CONFIG/INVALID"


# ---------------------------------------------------------------------------
# Root error
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class PallasError(Exception):
    """
    Root error for pallas.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Optional machine data (offsets, type ids, hashes). JSON-serializable.
    retryable: bool
        Whether the operation may succeed if the caller tries again with the
        same inputs. pallas itself never retries.
    cause: Optional[BaseException]
        Wrapped original exception; not included in comparisons.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{_code_str(self.code)}: {self.message}")
        if self.cause is not None and self.__cause__ is None:
            self.__cause__ = self.cause

    # ---------------- Public API ----------------

    def with_context(self, **ctx: Any) -> "PallasError":
        """Return a copy with extra context merged into `data`."""
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.args = self.args
        clone.data = {**self.data, **_jsonmap(ctx)}
        return clone

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": _code_str(self.code),
            "message": self.message,
            "data": _coerce_json(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:
        parts = [f"{_code_str(self.code)}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------


class CodecError(PallasError):
    """Malformed or out-of-range bytes at the binary codec level."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.INVALID_VALUE,
        message: str = "malformed input",
        *,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data), cause=cause)

    @property
    def offset(self) -> Optional[int]:
        return self.data.get("offset")


class DecodeError(CodecError):
    """A metadata-typed decode failed; carries the type id being decoded."""

    @property
    def type_id(self) -> Optional[int]:
        return self.data.get("type_id")


class MetadataError(PallasError):
    def __init__(
        self,
        code: ErrorCode = ErrorCode.METADATA_INVALID,
        message: str = "invalid metadata",
        *,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data), cause=cause)


class EncodeError(PallasError):
    """A value does not fit the type it is being encoded against."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.SHAPE_MISMATCH,
        message: str = "value does not match type",
        *,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data), cause=cause)

    @property
    def type_id(self) -> Optional[int]:
        return self.data.get("type_id")

    @property
    def path(self) -> Optional[str]:
        return self.data.get("path")


class SignError(PallasError):
    def __init__(
        self,
        message: str = "signer rejected the payload",
        *,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(
            code=ErrorCode.SIGNER_REJECTED,
            message=message,
            data=_jsonmap(data),
            cause=cause,
        )


class ExtrinsicError(PallasError):
    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNSUPPORTED_EXTENSION,
        message: str = "cannot build extrinsic",
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data))


class LifecycleError(PallasError):
    """The status stream of a submitted transaction violated its ordering rules."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.ILLEGAL_TRANSITION,
        message: str = "illegal status transition",
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data))


class TxError(PallasError):
    """A transaction reached a failure outcome (dropped, invalid, dispatch error...)."""

    def __init__(
        self,
        message: str = "transaction failed",
        *,
        code: ErrorCode = ErrorCode.TX_FAILED,
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data))

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")

    @property
    def extrinsic_hash(self) -> Optional[str]:
        return self.data.get("extrinsic_hash")


class DispatchFailed(TxError):
    """The extrinsic was included but its dispatch returned an error."""

    def __init__(
        self,
        message: str = "extrinsic dispatch failed",
        *,
        pallet: Optional[str] = None,
        error: Optional[str] = None,
        **data: Any,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.DISPATCH_FAILED, pallet=pallet, error=error, **data
        )

    @property
    def pallet(self) -> Optional[str]:
        return self.data.get("pallet")

    @property
    def error(self) -> Optional[str]:
        return self.data.get("error")


class TransportError(PallasError):
    def __init__(
        self,
        code: ErrorCode = ErrorCode.DISCONNECTED,
        message: str = "connection lost",
        *,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            data=_jsonmap(data),
            retryable=code in (ErrorCode.DISCONNECTED, ErrorCode.TIMEOUT),
            cause=cause,
        )


class RpcError(PallasError):
    """
    JSON-RPC error object returned by the node.

    `rpc_code` is the numeric JSON-RPC code; `code` stays ErrorCode.RPC so that
    all pallas errors share one code namespace.
    """

    def __init__(
        self,
        method: str,
        rpc_code: int,
        message: str,
        rpc_data: Any = None,
        request_id: Any = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RPC,
            message=message,
            data=_jsonmap(
                {
                    "method": method,
                    "rpc_code": rpc_code,
                    "rpc_data": rpc_data,
                    "request_id": request_id,
                }
            ),
        )

    @property
    def method(self) -> str:
        return self.data["method"]

    @property
    def rpc_code(self) -> int:
        return self.data["rpc_code"]

    @classmethod
    def from_jsonrpc(
        cls, method: str, error_obj: Mapping[str, Any], request_id: Any = None
    ) -> "RpcError":
        code = error_obj.get("code", -32603)
        try:
            code = int(code)
        except (TypeError, ValueError):
            code = -32603
        return cls(
            method=method,
            rpc_code=code,
            message=str(error_obj.get("message", "JSON-RPC error")),
            rpc_data=error_obj.get("data"),
            request_id=request_id,
        )


class ConfigError(PallasError):
    def __init__(self, message: str = "invalid configuration", **data: Any) -> None:
        super().__init__(code=ErrorCode.CONFIG, message=message, data=_jsonmap(data))


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _code_str(code: Any) -> str:
    return code.value if isinstance(code, Enum) else str(code)


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return "0x" + bytes(v).hex()
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, Mapping):
        return {str(k): _coerce_json(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set, frozenset)):
        return [_coerce_json(x) for x in v]
    return repr(v)


def _jsonmap(m: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in m.items()}


def _preview(v: Any, limit: int = 64) -> str:
    s = str(v)
    return s if len(s) <= limit else s[: limit - 3] + "..."


__all__ = [
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
