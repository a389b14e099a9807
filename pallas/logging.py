"""
pallas.logging
--------------

Opt-in structured logging for client sessions.

Library modules only call ``logging.getLogger(__name__)`` and pass structured
data through ``extra={...}``; nothing here touches the root logger unless the
application (or the ``pallas`` CLI) calls :func:`configure`.

What this adds on top of stdlib logging:

- session fields held in a ``ContextVar`` (``trace_id``, ``endpoint``,
  ``extrinsic``, ``subscription``...), merged into every record a formatter
  renders;
- a JSON formatter (one object per line) and a compact text formatter;
- value coercion: bytes become 0x-hex, dynamic values their ``to_python()``
  form, dataclasses dicts.

Usage
-----
    from pallas import logging as plog

    plog.configure(json=False, level="INFO")
    with plog.trace_scope():
        plog.bind(endpoint="ws://127.0.0.1:9944")
        plog.get_logger(__name__).info("connected")

Environment
-----------
PALLAS_LOG_FORMAT = json | text   (default: text on a TTY, json otherwise)
PALLAS_LOG_LEVEL  = DEBUG | INFO | WARNING | ...   (default: INFO)
"""

from __future__ import annotations

import datetime as _dt
import enum
import json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

ENV_FORMAT = "PALLAS_LOG_FORMAT"
ENV_LEVEL = "PALLAS_LOG_LEVEL"

# Third-party loggers that are chatty below WARNING (websockets logs frames).
NOISY_LOGGERS = ("asyncio", "websockets", "httpx", "httpcore")

_FIELDS: ContextVar[Mapping[str, Any]] = ContextVar("pallas_log_fields", default={})

# Attributes every LogRecord carries; anything else on a record came from `extra`.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


# --------------------------------------------------------------------------- #
# Session fields
# --------------------------------------------------------------------------- #


def context() -> Dict[str, Any]:
    """Copy of the fields bound in the current context."""
    return dict(_FIELDS.get())


def bind(**fields: Any) -> None:
    _FIELDS.set({**_FIELDS.get(), **{k: jsonable(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _FIELDS.set({k: v for k, v in _FIELDS.get().items() if k not in keys})


def clear_context() -> None:
    _FIELDS.set({})


def short_uuid() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """Bind a trace id (fresh unless given) and restore the previous fields on exit."""
    token = _FIELDS.set({**_FIELDS.get(), "trace_id": trace_id or short_uuid()})
    try:
        yield _FIELDS.get()["trace_id"]
    finally:
        _FIELDS.reset(token)


# --------------------------------------------------------------------------- #
# Rendering
# --------------------------------------------------------------------------- #


def jsonable(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return "0x" + bytes(v).hex()
    if isinstance(v, enum.Enum):
        return jsonable(v.value)
    if isinstance(v, (list, tuple)):
        return [jsonable(x) for x in v]
    if isinstance(v, dict):
        return {str(k): jsonable(x) for k, x in v.items()}
    if callable(getattr(v, "to_python", None)):
        return jsonable(v.to_python())
    if is_dataclass(v) and not isinstance(v, type):
        return jsonable(asdict(v))
    if isinstance(v, _dt.datetime):
        return (v if v.tzinfo else v.replace(tzinfo=_dt.timezone.utc)).isoformat()
    if isinstance(v, Path):
        return str(v)
    return str(v)


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Bound context first, then the record's own extras (context wins on clashes)."""
    out = context()
    for k, v in record.__dict__.items():
        if k in _STANDARD_ATTRS or k.startswith("_") or k in out:
            continue
        out[k] = jsonable(v)
    return out


def _timestamp(record: logging.LogRecord) -> str:
    ts = _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc)
    return ts.isoformat(timespec="milliseconds")


def _format_exc(record: logging.LogRecord) -> Optional[str]:
    if not record.exc_info:
        return None
    return "".join(traceback.format_exception(*record.exc_info)).rstrip()


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, then fields, then err."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in record_fields(record).items():
            payload.setdefault(k, v)
        err = _format_exc(record)
        if err:
            payload["err"] = err
        return json.dumps(payload, default=str, separators=(",", ":"))


_ANSI = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;35m",
}
_ANSI_RESET = "\x1b[0m"


def _is_tty(stream: Any) -> bool:
    try:
        return bool(stream.isatty()) and "NO_COLOR" not in os.environ
    except (AttributeError, ValueError):
        return False


class TextFormatter(logging.Formatter):
    """
    ``<ts> | LEVEL | logger | k=v k=v | message``; the level is colored only
    when the target stream is a terminal.
    """

    def __init__(self, stream: Any = None) -> None:
        super().__init__()
        self.color = stream is not None and _is_tty(stream)

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<5}"
        if self.color:
            level = _ANSI.get(record.levelno, "") + level + _ANSI_RESET
        parts = [_timestamp(record), level, record.name]
        fields = record_fields(record)
        if fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))
        parts.append(record.getMessage())
        line = " | ".join(parts)
        err = _format_exc(record)
        return f"{line}\n{err}" if err else line


# --------------------------------------------------------------------------- #
# Setup
# --------------------------------------------------------------------------- #


def parse_level(level: Union[str, int, None]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _want_json(flag: Optional[bool], stream: Any) -> bool:
    if flag is not None:
        return flag
    fmt = os.environ.get(ENV_FORMAT, "").strip().lower()
    if fmt in ("json", "text"):
        return fmt == "json"
    return not _is_tty(stream)


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int, None] = None,
    stream: Any = None,
    file_path: Union[str, Path, None] = None,
    keep_handlers: bool = False,
) -> logging.Logger:
    """
    Install one console handler on the root logger (replacing existing ones
    unless ``keep_handlers``), optionally a JSON file handler, and raise
    ``NOISY_LOGGERS`` to at least WARNING. Returns the root logger.
    """
    stream = sys.stderr if stream is None else stream
    lvl = parse_level(level if level is not None else os.environ.get(ENV_LEVEL))
    root = logging.getLogger()
    if not keep_handlers:
        for h in list(root.handlers):
            root.removeHandler(h)
    root.setLevel(lvl)

    console = logging.StreamHandler(stream)
    console.setFormatter(JSONFormatter() if _want_json(json, stream) else TextFormatter(stream))
    root.addHandler(console)

    if file_path:
        path = Path(file_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(lvl, logging.WARNING))
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "pallas")


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed fields to every call; per-call ``extra`` overrides them."""

    def process(self, msg: Any, kwargs: Any) -> Tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def with_fields(logger: logging.Logger, **fields: Any) -> ContextAdapter:
    return ContextAdapter(logger, {k: jsonable(v) for k, v in fields.items()})


__all__ = [
    "ENV_FORMAT",
    "ENV_LEVEL",
    "NOISY_LOGGERS",
    "ContextAdapter",
    "JSONFormatter",
    "TextFormatter",
    "bind",
    "clear_context",
    "configure",
    "context",
    "get_logger",
    "jsonable",
    "parse_level",
    "record_fields",
    "short_uuid",
    "trace_scope",
    "unbind",
    "with_fields",
]
