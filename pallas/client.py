"""
pallas.client
=============

One object per node session: it connects, reads the runtime metadata, the
genesis hash and the runtime version once, and hands out the builder and the
storage engine bound to them.

    async with await Client.connect("ws://127.0.0.1:9944") as client:
        signer = Ed25519Signer(seed)
        progress = await client.sign_and_submit_then_watch(
            "Balances", "transfer", {"dest": {"Id": dest}, "value": 1_000}, signer
        )
        in_block = await progress.wait_for_finalized()
        (await in_block.fetch_events()).check_success()

A runtime upgrade invalidates the cached metadata; call `refresh()` (or open
a new client) after one.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .config import ClientConfig
from .dynamic.codec import DynamicCodec
from .dynamic.value import Composite, UInt, Value
from .errors import ErrorCode, MetadataError
from .metadata.model import Metadata
from .rpc.methods import ChainRpc, RuntimeVersion
from .rpc.transport import RpcTransport
from .rpc.ws import WsClient
from .storage.client import StorageClient
from .tx.builder import Args, ChainParams, ExtrinsicBuilder, SignedExtrinsic
from .tx.era import Immortal, Mortal, Mortality
from .tx.progress import TransactionProgress, submit, submit_and_watch
from .tx.signer import Signer
from .utils.bytes import to_hex

log = logging.getLogger(__name__)


class Client:
    def __init__(
        self,
        transport: RpcTransport,
        metadata: Metadata,
        genesis_hash: bytes,
        runtime: RuntimeVersion,
        *,
        config: Optional[ClientConfig] = None,
    ) -> None:
        self.transport = transport
        self.rpc = ChainRpc(transport)
        self.config = config or ClientConfig()
        self.genesis_hash = genesis_hash
        self._bind(metadata, runtime)

    def _bind(self, metadata: Metadata, runtime: RuntimeVersion) -> None:
        self.metadata = metadata
        self.runtime = runtime
        self.codec = DynamicCodec(
            metadata.registry,
            strict_compact=self.config.strict_compact,
            max_depth=self.config.max_depth,
        )
        self.tx = ExtrinsicBuilder(
            metadata,
            ChainParams(self.genesis_hash, runtime.spec_version, runtime.transaction_version),
            codec=self.codec,
        )
        self.storage = StorageClient(self.rpc, metadata, codec=self.codec)

    # ---------------- Construction ----------------

    @classmethod
    async def connect(
        cls,
        url: Optional[str] = None,
        *,
        config: Optional[ClientConfig] = None,
        transport: Optional[RpcTransport] = None,
    ) -> "Client":
        cfg = config or ClientConfig.from_env()
        if url is not None:
            cfg = cfg.with_overrides(ws_url=url)
        if transport is None:
            ws = WsClient.from_config(cfg)
            await ws.connect()
            transport = ws
        rpc = ChainRpc(transport)
        try:
            metadata = Metadata.from_bytes(await rpc.metadata(), strict_compact=cfg.strict_compact)
            genesis = await rpc.genesis_hash()
            runtime = await rpc.runtime_version()
        except BaseException:
            await transport.close()
            raise
        log.info(
            "connected",
            extra={
                "endpoint": cfg.ws_url,
                "spec": runtime.spec_name,
                "spec_version": runtime.spec_version,
                "pallets": len(metadata.pallets),
            },
        )
        return cls(transport, metadata, genesis, runtime, config=cfg)

    async def refresh(self) -> None:
        """Re-read metadata and runtime version (after a runtime upgrade)."""
        metadata = Metadata.from_bytes(
            await self.rpc.metadata(), strict_compact=self.config.strict_compact
        )
        runtime = await self.rpc.runtime_version()
        self._bind(metadata, runtime)
        log.info("runtime refreshed", extra={"spec_version": runtime.spec_version})

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    # ---------------- Accounts ----------------

    async def account_nonce(self, account_id: bytes) -> int:
        """Next nonce from ``System.Account`` at the best block."""
        info = await self.storage.fetch_or_default("System", "Account", [account_id])
        if info is None:
            return 0
        nonce = info.get("nonce") if isinstance(info, Composite) else None
        if not isinstance(nonce, UInt):
            raise MetadataError(
                ErrorCode.METADATA_INVALID, "System.Account value has no integer nonce field"
            )
        return nonce.value

    async def mortality(self, period: Optional[int]) -> Mortality:
        """Mortal era anchored at the finalized head, or Immortal when `period` is None."""
        if period is None:
            return Immortal()
        head = await self.rpc.finalized_head()
        header = await self.rpc.header(head) or {}
        number = int(str(header.get("number", "0x0")), 16)
        return Mortal(period, number, head)

    # ---------------- Transactions ----------------

    async def create_signed(
        self,
        pallet: str,
        call: str,
        args: Args,
        signer: Signer,
        *,
        nonce: Optional[int] = None,
        period: Optional[int] = None,
        tip: int = 0,
        asset_id: Optional[Value] = None,
    ) -> SignedExtrinsic:
        payload = self.tx.build_unsigned(pallet, call, args)
        if nonce is None:
            nonce = await self.account_nonce(bytes(signer.account_id))
        return await self.tx.sign(
            payload, signer, nonce, await self.mortality(period), tip, asset_id=asset_id
        )

    async def sign_and_submit_then_watch(
        self, pallet: str, call: str, args: Args, signer: Signer, **kw: Any
    ) -> TransactionProgress:
        ext = await self.create_signed(pallet, call, args, signer, **kw)
        return await submit_and_watch(self.rpc, ext, metadata=self.metadata, codec=self.codec)

    async def sign_and_submit(
        self, pallet: str, call: str, args: Args, signer: Signer, **kw: Any
    ) -> bytes:
        ext = await self.create_signed(pallet, call, args, signer, **kw)
        return await submit(self.rpc, ext)

    def __repr__(self) -> str:
        return (
            f"Client(spec={self.runtime.spec_name}/{self.runtime.spec_version}, "
            f"genesis={to_hex(self.genesis_hash)})"
        )


__all__ = ["Client"]
