"""
pallas.cli
==========

`pallas`: inspect runtime metadata and derive storage keys from the shell.

Examples
--------
    $ pallas fetch-metadata --out runtime.scale
    $ pallas inspect runtime.scale
    $ pallas inspect runtime.scale --pallet Balances
    $ pallas storage-key runtime.scale System Account '["0xd435...a27d"]'

A metadata file may hold the raw document (starting with ``meta``), its hex
form, or a saved ``state_getMetadata`` JSON-RPC response.

Configuration
-------------
- Node URL : `--url` or env `PALLAS_WS_URL` (default: ws://127.0.0.1:9944)
- Timeout  : `--timeout` or env `PALLAS_TIMEOUT` seconds (default: 30)
- Logging  : `--log-level` / `--log-format` or env `PALLAS_LOG_LEVEL` / `PALLAS_LOG_FORMAT`
  (off unless one of them is set)
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from . import logging as plog
from .config import ClientConfig
from .errors import PallasError
from .metadata.decode import MAGIC
from .metadata.model import Metadata, PalletMetadata
from .rpc.methods import ChainRpc
from .rpc.ws import WsClient
from .storage.keys import storage_key
from .utils.bytes import from_hex, to_hex
from .version import version as version_string

app = typer.Typer(
    name="pallas",
    help="Pallas: metadata-driven client for Substrate-style nodes.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main", "load_metadata_file"]


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def load_metadata_file(path: Path) -> Metadata:
    data = path.read_bytes()
    if data.startswith(MAGIC):
        return Metadata.from_bytes(data)
    text = data.decode("utf-8").strip()
    if text.startswith("{"):
        text = json.loads(text)["result"]
    return Metadata.from_bytes(from_hex(text))


def _pallet_summary(md: Metadata, p: PalletMetadata) -> Dict[str, Any]:
    return {
        "name": p.name,
        "index": p.index,
        "calls": len(md.calls(p.name)),
        "storage": len(p.storage),
        "events": len(md.events(p.name)),
        "constants": len(p.constants),
    }


def _pallet_detail(md: Metadata, p: PalletMetadata) -> Dict[str, Any]:
    return {
        "name": p.name,
        "index": p.index,
        "calls": [
            {"name": c.name, "index": c.index, "args": [name for name, _ in c.args]}
            for c in md.calls(p.name)
        ],
        "storage": [
            {
                "name": s.name,
                "modifier": s.modifier.value,
                "hashers": [h.value for h in s.hashers],
                "value_ty": s.value_ty,
            }
            for s in p.storage.values()
        ],
        "events": [e.name for e in md.events(p.name)],
        "constants": sorted(p.constants),
    }


# --- Commands -----------------------------------------------------------------


@app.callback()
def _setup(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", envvar="PALLAS_LOG_LEVEL", help="Enable logging at this level."
    ),
    log_format: Optional[str] = typer.Option(None, "--log-format", envvar="PALLAS_LOG_FORMAT", help="json or text."),
) -> None:
    if log_level is None and log_format is None:
        return
    plog.configure(json=None if log_format is None else log_format.lower() == "json", level=log_level)


@app.command("version")
def version() -> None:
    """Print the pallas version."""
    typer.echo(f"pallas {version_string()}")


@app.command("env")
def env() -> None:
    """Show the effective client configuration."""
    _print_json(ClientConfig.from_env().to_dict())


@app.command("inspect")
def inspect(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Metadata file."),
    pallet: Optional[str] = typer.Option(None, "--pallet", "-p", help="Show one pallet in detail."),
) -> None:
    """List the pallets of a metadata document, or the calls/storage of one pallet."""
    md = load_metadata_file(path)
    if pallet is not None:
        _print_json(_pallet_detail(md, md.pallet(pallet)))
        return
    _print_json(
        {
            "version": md.version,
            "types": len(md.registry),
            "pallets": [_pallet_summary(md, p) for p in md.pallets],
        }
    )


@app.command("storage-key")
def storage_key_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Metadata file."),
    pallet: str = typer.Argument(..., help="Pallet name, e.g. System."),
    item: str = typer.Argument(..., help="Storage item, e.g. Account."),
    keys: str = typer.Argument("[]", help="JSON list of key parts (hex strings, numbers, objects)."),
) -> None:
    """Compute the storage key (or iteration prefix) for an item."""
    md = load_metadata_file(path)
    try:
        parts: List[Any] = json.loads(keys)
    except ValueError as e:
        raise typer.BadParameter(f"key parts must be JSON: {e}") from e
    if not isinstance(parts, list):
        raise typer.BadParameter("key parts must be a JSON list")
    typer.echo(to_hex(storage_key(md, pallet, item, parts)))


@app.command("fetch-metadata")
def fetch_metadata(
    url: Optional[str] = typer.Option(None, "--url", help="Node websocket URL.", envvar="PALLAS_WS_URL"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the raw document here."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Request timeout (s).", envvar="PALLAS_TIMEOUT"),
) -> None:
    """Download the runtime metadata from a node."""
    cfg = ClientConfig.from_env().with_overrides(ws_url=url, request_timeout=timeout)

    async def _run() -> bytes:
        async with WsClient.from_config(cfg) as ws:
            return await ChainRpc(ws).metadata()

    raw = asyncio.run(_run())
    md = Metadata.from_bytes(raw)
    if out is not None:
        out.write_bytes(raw)
        typer.echo(f"wrote {len(raw)} bytes (v{md.version}, {len(md.pallets)} pallets) to {out}")
    else:
        typer.echo(to_hex(raw))


# --- Entrypoints --------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        rv = app(prog_name="pallas", standalone_mode=False, args=argv)
        return rv if isinstance(rv, int) else 0
    except typer.Exit as e:
        return int(e.exit_code)
    except typer.BadParameter as e:
        typer.echo(f"error: {e.format_message()}", err=True)
        return 2
    except PallasError as e:
        typer.echo(f"error: {e}", err=True)
        return 2
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
