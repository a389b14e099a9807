"""
Test helpers:
- MetadataBuilder: writes small but complete V14/V15 metadata documents
- sample_metadata(): a runtime with System (index 0) and Balances (index 5)
- FakeConnection: in-memory websocket for WsClient(connector=...)
- FakeTransport: request/subscribe stub with scripted results
- FixedSigner / RecordingSigner: deterministic signers
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from websockets.exceptions import ConnectionClosed

from pallas.codec import scale
from pallas.metadata import Metadata
from pallas.rpc.transport import Subscription
from pallas.tx.signer import SignatureScheme

GENESIS = b"\xaa" * 32
SPEC_VERSION = 100
TX_VERSION = 1

ALICE = b"\x33" * 32
BOB = b"\x11" * 32

# ---------------------------------------------------------------------------
# Metadata documents
# ---------------------------------------------------------------------------

PRIM = {
    "bool": 0, "char": 1, "str": 2, "u8": 3, "u16": 4, "u32": 5, "u64": 6,
    "u128": 7, "u256": 8, "i8": 9, "i16": 10, "i32": 11, "i64": 12, "i128": 13, "i256": 14,
}
HASHER = {
    "Blake2_128": 0, "Blake2_256": 1, "Blake2_128Concat": 2, "Twox128": 3,
    "Twox256": 4, "Twox64Concat": 5, "Identity": 6,
}

FieldSpec = Tuple[Optional[str], int]


def _vec(items: Iterable[bytes]) -> bytes:
    items = list(items)
    return scale.encode_compact(len(items)) + b"".join(items)


def _strings(xs: Sequence[str]) -> bytes:
    return _vec(scale.encode_str(x) for x in xs)


def _opt_str(x: Optional[str]) -> bytes:
    return scale.encode_option(x, scale.encode_str)


def _opt_compact(x: Optional[int]) -> bytes:
    return scale.encode_option(x, scale.encode_compact)


def _fields(fields: Sequence[FieldSpec]) -> bytes:
    return _vec(_opt_str(name) + scale.encode_compact(ty) + _opt_str(None) + _strings([]) for name, ty in fields)


def prim(kind: str) -> bytes:
    return b"\x05" + bytes([PRIM[kind]])


def composite(*fields: FieldSpec) -> bytes:
    return b"\x00" + _fields(fields)


def variant(*variants: Tuple[str, int, Sequence[FieldSpec]], docs: Optional[Dict[str, List[str]]] = None) -> bytes:
    docs = docs or {}
    return b"\x01" + _vec(
        scale.encode_str(name) + _fields(fields) + bytes([index]) + _strings(docs.get(name, []))
        for name, index, fields in variants
    )


def seq(ty: int) -> bytes:
    return b"\x02" + scale.encode_compact(ty)


def array(n: int, ty: int) -> bytes:
    return b"\x03" + scale.encode_uint(n, 4) + scale.encode_compact(ty)


def tuple_(*types: int) -> bytes:
    return b"\x04" + _vec(scale.encode_compact(t) for t in types)


def compact(ty: int) -> bytes:
    return b"\x06" + scale.encode_compact(ty)


def bitseq(store: int, order: int) -> bytes:
    return b"\x07" + scale.encode_compact(store) + scale.encode_compact(order)


class MetadataBuilder:
    def __init__(self) -> None:
        self.types: List[bytes] = []
        self.pallets: List[Tuple[str, int, Dict[str, Any]]] = []
        self.extensions: List[Tuple[str, int, int]] = []
        self.extrinsic_ty = 0
        self.extrinsic_version = 4
        self.runtime_ty = 0
        self.v15_types: Dict[str, int] = {}

    def type(
        self,
        type_id: int,
        desc: bytes,
        path: Sequence[str] = (),
        params: Sequence[Tuple[str, Optional[int]]] = (),
    ) -> "MetadataBuilder":
        self.types.append(
            scale.encode_compact(type_id)
            + _strings(path)
            + _vec(scale.encode_str(n) + _opt_compact(t) for n, t in params)
            + desc
            + _strings([])
        )
        return self

    def pallet(self, name: str, index: int, **parts: Any) -> "MetadataBuilder":
        self.pallets.append((name, index, parts))
        return self

    def extension(self, identifier: str, ty: int, additional: int) -> "MetadataBuilder":
        self.extensions.append((identifier, ty, additional))
        return self

    # storage entries: (name, modifier, value_ty, hashers, key_ty, default)
    @staticmethod
    def _storage(prefix: str, entries: Sequence[Tuple[Any, ...]]) -> bytes:
        out = []
        for name, modifier, value_ty, hashers, key_ty, default in entries:
            body = scale.encode_str(name) + bytes([0 if modifier == "Optional" else 1])
            if not hashers:
                body += b"\x00" + scale.encode_compact(value_ty)
            else:
                body += (
                    b"\x01"
                    + _vec(bytes([HASHER[h]]) for h in hashers)
                    + scale.encode_compact(key_ty)
                    + scale.encode_compact(value_ty)
                )
            body += scale.encode_bytes(default) + _strings([])
            out.append(body)
        return scale.encode_str(prefix) + _vec(out)

    def _pallet_bytes(self, name: str, index: int, parts: Dict[str, Any], version: int) -> bytes:
        storage = parts.get("storage")
        out = scale.encode_str(name)
        out += scale.encode_option(storage, lambda s: self._storage(name, s))
        out += _opt_compact(parts.get("calls"))
        out += _opt_compact(parts.get("events"))
        out += _vec(
            scale.encode_str(c) + scale.encode_compact(t) + scale.encode_bytes(v) + _strings([])
            for c, t, v in parts.get("constants", ())
        )
        out += _opt_compact(parts.get("errors"))
        out += bytes([index])
        if version >= 15:
            out += _strings(parts.get("docs", []))
        return out

    def build(self, version: int = 14) -> bytes:
        out = bytearray(b"meta" + bytes([version]))
        out += _vec(self.types)
        out += _vec(self._pallet_bytes(n, i, p, version) for n, i, p in self.pallets)
        exts = _vec(
            scale.encode_str(ident) + scale.encode_compact(t) + scale.encode_compact(a)
            for ident, t, a in self.extensions
        )
        if version >= 15:
            t = self.v15_types
            out += bytes([self.extrinsic_version])
            for key in ("address", "call", "signature", "extra"):
                out += scale.encode_compact(t[key])
            out += exts
        else:
            out += scale.encode_compact(self.extrinsic_ty) + bytes([self.extrinsic_version]) + exts
        out += scale.encode_compact(self.runtime_ty)
        if version >= 15:
            out += _vec([])  # runtime apis
            out += scale.encode_compact(t["call"]) + scale.encode_compact(t["event"]) + scale.encode_compact(t["error"])
            out += scale.encode_compact(0)  # custom map
        return bytes(out)


# Type ids of the sample runtime
T_U8, T_H256_RAW, T_ACCOUNT, T_U128, T_COMPACT_U128 = 0, 1, 2, 3, 4
T_MULTIADDRESS, T_BALANCES_CALL, T_BYTES, T_U32, T_U64, T_BOOL = 5, 6, 7, 8, 9, 10
T_SYSTEM_CALL, T_ACCOUNT_INFO, T_ACCOUNT_DATA, T_PHASE, T_H256, T_TOPICS = 11, 12, 13, 14, 15, 16
T_BALANCES_EVENT, T_DISPATCH_INFO, T_MODULE_ERROR, T_ERR_BYTES, T_DISPATCH_ERROR = 17, 18, 19, 20, 21
T_SYSTEM_EVENT, T_RUNTIME_EVENT, T_EVENT_RECORD, T_EVENTS = 22, 23, 24, 25
T_BALANCES_ERROR, T_SYSTEM_ERROR, T_UNIT, T_RUNTIME_CALL, T_MULTISIG = 26, 27, 28, 29, 30
T_SIG64, T_SIG65, T_UNCHECKED, T_APPROVAL_KEY, T_U16, T_COMPACT_U32 = 31, 32, 33, 34, 35, 36
T_RUNTIME, T_OPTION_U32, T_BITS, T_LSB0, T_STR, T_I32, T_RUNTIME_ERROR = 37, 38, 39, 40, 41, 42, 43

STANDARD_EXTENSIONS = (
    ("CheckNonZeroSender", T_UNIT, T_UNIT),
    ("CheckSpecVersion", T_UNIT, T_U32),
    ("CheckTxVersion", T_UNIT, T_U32),
    ("CheckGenesis", T_UNIT, T_H256),
    ("CheckMortality", T_UNIT, T_H256),
    ("CheckNonce", T_COMPACT_U32, T_UNIT),
    ("CheckWeight", T_UNIT, T_UNIT),
    ("ChargeTransactionPayment", T_COMPACT_U128, T_UNIT),
)

ACCOUNT_INFO_DEFAULT = b"\x00" * (4 * 4 + 4 * 16)


def sample_builder(extensions: Sequence[Tuple[str, int, int]] = ()) -> MetadataBuilder:
    b = MetadataBuilder()
    b.type(T_U8, prim("u8"))
    b.type(T_H256_RAW, array(32, T_U8))
    b.type(T_ACCOUNT, composite((None, T_H256_RAW)), path=("sp_core", "crypto", "AccountId32"))
    b.type(T_U128, prim("u128"))
    b.type(T_COMPACT_U128, compact(T_U128))
    b.type(
        T_MULTIADDRESS,
        variant(("Id", 0, [(None, T_ACCOUNT)]), ("Raw", 2, [(None, T_BYTES)])),
        path=("sp_runtime", "multiaddress", "MultiAddress"),
        params=(("AccountId", T_ACCOUNT), ("AccountIndex", None)),
    )
    b.type(
        T_BALANCES_CALL,
        variant(
            ("transfer", 0, [("dest", T_MULTIADDRESS), ("value", T_COMPACT_U128)]),
            ("transfer_keep_alive", 3, [("dest", T_MULTIADDRESS), ("value", T_COMPACT_U128)]),
        ),
        path=("pallet_balances", "pallet", "Call"),
    )
    b.type(T_BYTES, seq(T_U8))
    b.type(T_U32, prim("u32"))
    b.type(T_U64, prim("u64"))
    b.type(T_BOOL, prim("bool"))
    b.type(
        T_SYSTEM_CALL,
        variant(("remark", 0, [("remark", T_BYTES)]), ("set_heap_pages", 1, [("pages", T_U64)])),
        path=("frame_system", "pallet", "Call"),
    )
    b.type(
        T_ACCOUNT_INFO,
        composite(
            ("nonce", T_U32), ("consumers", T_U32), ("providers", T_U32),
            ("sufficients", T_U32), ("data", T_ACCOUNT_DATA),
        ),
        path=("frame_system", "AccountInfo"),
    )
    b.type(
        T_ACCOUNT_DATA,
        composite(("free", T_U128), ("reserved", T_U128), ("frozen", T_U128), ("flags", T_U128)),
        path=("pallet_balances", "types", "AccountData"),
    )
    b.type(
        T_PHASE,
        variant(("ApplyExtrinsic", 0, [(None, T_U32)]), ("Finalization", 1, []), ("Initialization", 2, [])),
        path=("frame_system", "Phase"),
    )
    b.type(T_H256, composite((None, T_H256_RAW)), path=("primitive_types", "H256"))
    b.type(T_TOPICS, seq(T_H256))
    b.type(
        T_BALANCES_EVENT,
        variant(
            ("Transfer", 2, [("from", T_ACCOUNT), ("to", T_ACCOUNT), ("amount", T_U128)]),
            ("Deposit", 7, [("who", T_ACCOUNT), ("amount", T_U128)]),
        ),
        path=("pallet_balances", "pallet", "Event"),
    )
    b.type(T_DISPATCH_INFO, composite(("weight", T_U64), ("pays_fee", T_BOOL)))
    b.type(T_MODULE_ERROR, composite(("index", T_U8), ("error", T_ERR_BYTES)))
    b.type(T_ERR_BYTES, array(4, T_U8))
    b.type(
        T_DISPATCH_ERROR,
        variant(("Other", 0, []), ("CannotLookup", 1, []), ("BadOrigin", 2, []), ("Module", 3, [(None, T_MODULE_ERROR)])),
        path=("sp_runtime", "DispatchError"),
    )
    b.type(
        T_SYSTEM_EVENT,
        variant(
            ("ExtrinsicSuccess", 0, [("dispatch_info", T_DISPATCH_INFO)]),
            ("ExtrinsicFailed", 1, [("dispatch_error", T_DISPATCH_ERROR), ("dispatch_info", T_DISPATCH_INFO)]),
        ),
        path=("frame_system", "pallet", "Event"),
    )
    b.type(
        T_RUNTIME_EVENT,
        variant(("System", 0, [(None, T_SYSTEM_EVENT)]), ("Balances", 5, [(None, T_BALANCES_EVENT)])),
        path=("node_runtime", "RuntimeEvent"),
    )
    b.type(
        T_EVENT_RECORD,
        composite(("phase", T_PHASE), ("event", T_RUNTIME_EVENT), ("topics", T_TOPICS)),
        path=("frame_system", "EventRecord"),
    )
    b.type(T_EVENTS, seq(T_EVENT_RECORD))
    b.type(
        T_BALANCES_ERROR,
        variant(
            ("VestingBalance", 0, []),
            ("InsufficientBalance", 2, []),
            docs={"InsufficientBalance": ["Balance too low to send value."]},
        ),
        path=("pallet_balances", "pallet", "Error"),
    )
    b.type(T_SYSTEM_ERROR, variant(("InvalidSpecName", 0, [])), path=("frame_system", "pallet", "Error"))
    b.type(T_UNIT, tuple_())
    b.type(
        T_RUNTIME_CALL,
        variant(("System", 0, [(None, T_SYSTEM_CALL)]), ("Balances", 5, [(None, T_BALANCES_CALL)])),
        path=("node_runtime", "RuntimeCall"),
    )
    b.type(
        T_MULTISIG,
        variant(("Ed25519", 0, [(None, T_SIG64)]), ("Sr25519", 1, [(None, T_SIG64)]), ("Ecdsa", 2, [(None, T_SIG65)])),
        path=("sp_runtime", "MultiSignature"),
    )
    b.type(T_SIG64, array(64, T_U8))
    b.type(T_SIG65, array(65, T_U8))
    b.type(
        T_UNCHECKED,
        composite((None, T_BYTES)),
        path=("sp_runtime", "generic", "unchecked_extrinsic", "UncheckedExtrinsic"),
        params=(("Address", T_MULTIADDRESS), ("Call", T_RUNTIME_CALL), ("Signature", T_MULTISIG), ("Extra", T_UNIT)),
    )
    b.type(T_APPROVAL_KEY, tuple_(T_ACCOUNT, T_U32))
    b.type(T_U16, prim("u16"))
    b.type(T_COMPACT_U32, compact(T_U32))
    b.type(T_RUNTIME, composite(), path=("node_runtime", "Runtime"))
    b.type(T_OPTION_U32, variant(("None", 0, []), ("Some", 1, [(None, T_U32)])), path=("Option",), params=(("T", T_U32),))
    b.type(T_BITS, bitseq(T_U8, T_LSB0))
    b.type(T_LSB0, composite(), path=("bitvec", "order", "Lsb0"))
    b.type(T_STR, prim("str"))
    b.type(T_I32, prim("i32"))
    b.type(
        T_RUNTIME_ERROR,
        variant(("System", 0, [(None, T_SYSTEM_ERROR)]), ("Balances", 5, [(None, T_BALANCES_ERROR)])),
        path=("node_runtime", "RuntimeError"),
    )

    b.pallet(
        "System",
        0,
        storage=[
            ("Account", "Default", T_ACCOUNT_INFO, ["Blake2_128Concat"], T_ACCOUNT, ACCOUNT_INFO_DEFAULT),
            ("Number", "Default", T_U32, [], None, b"\x00" * 4),
            ("Events", "Default", T_EVENTS, [], None, b"\x00"),
            ("BlockHash", "Default", T_H256, ["Twox64Concat"], T_U32, b"\x00" * 32),
        ],
        calls=T_SYSTEM_CALL,
        events=T_SYSTEM_EVENT,
        constants=[("SS58Prefix", T_U16, scale.encode_uint(42, 2))],
        errors=T_SYSTEM_ERROR,
    )
    b.pallet(
        "Balances",
        5,
        storage=[
            ("TotalIssuance", "Default", T_U128, [], None, b"\x00" * 16),
            ("Approvals", "Optional", T_U128, ["Blake2_128Concat", "Twox64Concat"], T_APPROVAL_KEY, b"\x00"),
        ],
        calls=T_BALANCES_CALL,
        events=T_BALANCES_EVENT,
        constants=[("ExistentialDeposit", T_U128, scale.encode_uint(500, 16))],
        errors=T_BALANCES_ERROR,
    )
    b.extrinsic_ty = T_UNCHECKED
    b.runtime_ty = T_RUNTIME
    b.v15_types = {
        "address": T_MULTIADDRESS,
        "call": T_RUNTIME_CALL,
        "signature": T_MULTISIG,
        "extra": T_UNIT,
        "event": T_RUNTIME_EVENT,
        "error": T_RUNTIME_ERROR,
    }
    for ext in extensions:
        b.extension(*ext)
    return b


def sample_document(version: int = 14, extensions: Sequence[Tuple[str, int, int]] = ()) -> bytes:
    return sample_builder(extensions).build(version)


def sample_metadata(version: int = 14, extensions: Sequence[Tuple[str, int, int]] = ()) -> Metadata:
    return Metadata.from_bytes(sample_document(version, extensions))


# ---------------------------------------------------------------------------
# Event records
# ---------------------------------------------------------------------------


def event_record(phase_index: Optional[int], pallet_index: int, event_bytes: bytes) -> bytes:
    """One EventRecord: phase ++ RuntimeEvent ++ topics (empty)."""
    if phase_index is None:
        phase = b"\x01"  # Finalization
    else:
        phase = b"\x00" + scale.encode_uint(phase_index, 4)
    return phase + bytes([pallet_index]) + event_bytes + scale.encode_compact(0)


def events_blob(*records: bytes) -> bytes:
    return _vec(records)


def extrinsic_success() -> bytes:
    # System.ExtrinsicSuccess { weight: u64, pays_fee: bool }
    return b"\x00" + scale.encode_uint(1_000, 8) + b"\x01"


def extrinsic_failed_module(pallet_index: int, error_index: int) -> bytes:
    return (
        b"\x01"  # ExtrinsicFailed
        + b"\x03"  # DispatchError::Module
        + bytes([pallet_index])
        + bytes([error_index, 0, 0, 0])
        + scale.encode_uint(1_000, 8)
        + b"\x01"
    )


def balances_transfer_event(src: bytes, dst: bytes, amount: int) -> bytes:
    return b"\x02" + src + dst + scale.encode_uint(amount, 16)


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class FakeConnection:
    """
    In-memory websocket. `responder(msg)` returns the frames to deliver in
    reply to a sent request (dicts are JSON-encoded); `feed()` delivers
    unsolicited frames; `drop()` simulates the peer closing the socket.
    """

    def __init__(self, responder: Optional[Callable[[Dict[str, Any]], List[Any]]] = None) -> None:
        self.responder = responder
        self.sent: List[Dict[str, Any]] = []
        self.incoming: "asyncio.Queue[Any]" = asyncio.Queue()
        self.closed = False

    async def send(self, payload: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        msg = json.loads(payload)
        self.sent.append(msg)
        if self.responder is not None:
            for frame in self.responder(msg):
                self.feed(frame)

    def feed(self, frame: Any) -> None:
        self.incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        self.incoming.put_nowait(None)

    async def recv(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            self.closed = True
            raise ConnectionClosed(None, None)
        return frame

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)

    def methods(self) -> List[str]:
        return [m["method"] for m in self.sent]


def connector_for(conn: FakeConnection):
    async def _connect(url: str) -> FakeConnection:
        return conn

    return _connect


class FakeTransport:
    """
    RpcTransport stub. `results` maps a method name to a value or to a
    callable taking the params. Subscriptions are handed out with ids
    "sub-1", "sub-2", ... and can be fed through `.subscriptions`.
    """

    def __init__(self, results: Optional[Dict[str, Any]] = None) -> None:
        self.results = dict(results or {})
        self.calls: List[Tuple[str, Any]] = []
        self.subscriptions: List[Subscription] = []
        self.closed = False

    async def request(self, method: str, params: Any = None) -> Any:
        self.calls.append((method, params))
        if method not in self.results:
            raise AssertionError(f"unexpected RPC call {method}")
        res = self.results[method]
        return res(params) if callable(res) else res

    async def subscribe(self, method: str, params: Any, unsubscribe_method: str) -> Subscription:
        self.calls.append((method, params))
        sub = Subscription(
            f"sub-{len(self.subscriptions) + 1}",
            method=method,
            unsubscribe_method=unsubscribe_method,
            transport=self,
        )
        self.subscriptions.append(sub)
        return sub

    async def close(self) -> None:
        self.closed = True

    def methods(self) -> List[str]:
        return [m for m, _ in self.calls]


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------


class FixedSigner:
    """Returns a constant signature and records what it was asked to sign."""

    def __init__(
        self,
        account_id: bytes = ALICE,
        signature: Optional[bytes] = b"\x22" * 64,
        scheme: SignatureScheme = SignatureScheme.ED25519,
    ) -> None:
        self.account_id = account_id
        self.scheme = scheme
        self.signature = signature
        self.seen: List[bytes] = []

    def sign(self, payload: bytes) -> Optional[bytes]:
        self.seen.append(bytes(payload))
        return self.signature


class AsyncFixedSigner(FixedSigner):
    async def sign(self, payload: bytes) -> Optional[bytes]:  # type: ignore[override]
        await asyncio.sleep(0)
        return FixedSigner.sign(self, payload)


class ExplodingSigner(FixedSigner):
    def sign(self, payload: bytes) -> Optional[bytes]:
        raise RuntimeError("hardware wallet unplugged")
