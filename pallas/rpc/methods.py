"""
pallas.rpc.methods
==================

Typed wrappers over the node's JSON-RPC surface. Hashes and storage keys go
in as bytes (or 0x-hex) and come back as bytes; everything else is returned
as the node's JSON.

Methods used
------------
state_getMetadata, chain_getBlockHash, chain_getFinalizedHead,
chain_getHeader, chain_getBlock, state_getRuntimeVersion, state_getStorage,
state_getKeysPaged, state_queryStorageAt, system_accountNextIndex,
author_submitExtrinsic, author_submitAndWatchExtrinsic (released with
author_unwatchExtrinsic).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import RpcError
from ..utils.bytes import BytesLike, as_hex, from_hex
from .transport import RpcTransport, Subscription

log = logging.getLogger(__name__)

UNWATCH_EXTRINSIC = "author_unwatchExtrinsic"


@dataclass(frozen=True)
class RuntimeVersion:
    spec_name: str
    spec_version: int
    transaction_version: int
    impl_version: int = 0
    raw: Optional[Dict[str, Any]] = None

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "RuntimeVersion":
        return cls(
            spec_name=str(obj.get("specName", "")),
            spec_version=int(obj["specVersion"]),
            transaction_version=int(obj.get("transactionVersion", 0)),
            impl_version=int(obj.get("implVersion", 0)),
            raw=dict(obj),
        )


class ChainRpc:
    """Thin typed facade; owns no state besides the transport."""

    def __init__(self, transport: RpcTransport) -> None:
        self.transport = transport

    async def _call(self, method: str, params: Optional[list] = None) -> Any:
        return await self.transport.request(method, params or [])

    # ---------------- Chain ----------------

    async def metadata(self, at: Optional[BytesLike] = None) -> bytes:
        res = await self._call("state_getMetadata", _at(at))
        return _bytes_result("state_getMetadata", res)

    async def block_hash(self, number: Optional[int] = None) -> Optional[bytes]:
        res = await self._call("chain_getBlockHash", [] if number is None else [int(number)])
        return None if res is None else _bytes_result("chain_getBlockHash", res)

    async def genesis_hash(self) -> bytes:
        h = await self.block_hash(0)
        if h is None:
            raise RpcError("chain_getBlockHash", -32603, "node returned no genesis hash")
        return h

    async def finalized_head(self) -> bytes:
        res = await self._call("chain_getFinalizedHead")
        return _bytes_result("chain_getFinalizedHead", res)

    async def header(self, at: Optional[BytesLike] = None) -> Optional[Dict[str, Any]]:
        return await self._call("chain_getHeader", _at(at))

    async def block(self, at: Optional[BytesLike] = None) -> Optional[Dict[str, Any]]:
        return await self._call("chain_getBlock", _at(at))

    async def runtime_version(self, at: Optional[BytesLike] = None) -> RuntimeVersion:
        res = await self._call("state_getRuntimeVersion", _at(at))
        if not isinstance(res, dict):
            raise RpcError("state_getRuntimeVersion", -32603, "malformed runtime version", rpc_data=res)
        return RuntimeVersion.from_json(res)

    # ---------------- State ----------------

    async def storage(self, key: BytesLike, at: Optional[BytesLike] = None) -> Optional[bytes]:
        res = await self._call("state_getStorage", [as_hex(key)] + _at(at))
        return None if res is None else _bytes_result("state_getStorage", res)

    async def storage_keys_paged(
        self,
        prefix: BytesLike,
        count: int,
        start_key: Optional[BytesLike] = None,
        at: Optional[BytesLike] = None,
    ) -> List[bytes]:
        params: list = [as_hex(prefix), int(count), None if start_key is None else as_hex(start_key)]
        if at is not None:
            params.append(as_hex(at))
        res = await self._call("state_getKeysPaged", params)
        return [_bytes_result("state_getKeysPaged", k) for k in (res or [])]

    async def query_storage_at(
        self, keys: Sequence[BytesLike], at: Optional[BytesLike] = None
    ) -> List[Tuple[bytes, Optional[bytes]]]:
        """Values for `keys` at one block, in the node's change-set order."""
        res = await self._call("state_queryStorageAt", [[as_hex(k) for k in keys]] + _at(at))
        out: List[Tuple[bytes, Optional[bytes]]] = []
        for change_set in res or []:
            for key, value in change_set.get("changes", []):
                out.append((from_hex(key), None if value is None else from_hex(value)))
        return out

    # ---------------- Accounts / author ----------------

    async def account_next_index(self, account: str) -> int:
        res = await self._call("system_accountNextIndex", [account])
        return int(res)

    async def submit_extrinsic(self, extrinsic: BytesLike) -> bytes:
        res = await self._call("author_submitExtrinsic", [as_hex(extrinsic)])
        return _bytes_result("author_submitExtrinsic", res)

    async def submit_and_watch_extrinsic(self, extrinsic: BytesLike) -> Subscription:
        return await self.transport.subscribe(
            "author_submitAndWatchExtrinsic", [as_hex(extrinsic)], UNWATCH_EXTRINSIC
        )


def _at(at: Optional[BytesLike]) -> list:
    return [] if at is None else [as_hex(at)]


def _bytes_result(method: str, res: Any) -> bytes:
    if not isinstance(res, str):
        raise RpcError(method, -32603, f"expected hex string, got {type(res).__name__}", rpc_data=res)
    try:
        return from_hex(res)
    except ValueError as e:
        raise RpcError(method, -32603, f"malformed hex result: {e}", rpc_data=res) from e


__all__ = ["ChainRpc", "RuntimeVersion", "UNWATCH_EXTRINSIC"]
