"""
Client configuration: node endpoints, timeouts and codec strictness.

- Loads sane defaults and supports overrides via environment variables (PALLAS_*).
- Validates endpoint schemes before anything tries to connect.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from .errors import ConfigError
from .version import __version__

_DEFAULT_WS = "ws://127.0.0.1:9944"
_DEFAULT_HTTP = "http://127.0.0.1:9933"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _parse_bool(name: str, val: Optional[str], default: bool) -> bool:
    if val is None:
        return default
    s = val.strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {val!r}", key=name)


def _parse_number(name: str, val: Optional[str], default: Any, kind: type) -> Any:
    if val is None:
        return default
    try:
        return kind(val)
    except ValueError as e:
        raise ConfigError(f"{name} must be {kind.__name__}, got {val!r}", key=name) from e


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ConfigError(f"URL must start with {allowed}, got: {url!r}", url=url)
    return url


@dataclass(slots=True)
class ClientConfig:
    # Endpoints
    ws_url: str = _DEFAULT_WS
    http_url: Optional[str] = None
    # Transport behavior
    request_timeout: float = 30.0
    connect_timeout: float = 10.0
    max_message_size: int = 2**24
    # Codec behavior
    strict_compact: bool = True
    max_depth: int = 256
    # Identity
    user_agent: str = field(default_factory=lambda: f"pallas-py/{__version__}")

    def __post_init__(self) -> None:
        _ensure_scheme(self.ws_url, ("ws", "wss"))
        _ensure_scheme(self.http_url, ("http", "https"))
        if self.request_timeout <= 0 or self.connect_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self.max_depth < 1:
            raise ConfigError("max_depth must be >= 1", max_depth=self.max_depth)

    @classmethod
    def from_env(cls, prefix: str = "PALLAS_") -> "ClientConfig":
        """
        Create config from environment variables:

        PALLAS_WS_URL            (ws/wss)
        PALLAS_HTTP_URL          (http/https) optional
        PALLAS_TIMEOUT           (float seconds, per request)
        PALLAS_CONNECT_TIMEOUT   (float seconds, WS handshake)
        PALLAS_MAX_MESSAGE_SIZE  (int bytes, WS frames)
        PALLAS_STRICT_COMPACT    (bool, reject non-minimal compact integers)
        PALLAS_MAX_DEPTH         (int, value nesting guard)
        PALLAS_USER_AGENT        (str)
        """
        return cls(
            ws_url=_env(f"{prefix}WS_URL", _DEFAULT_WS) or _DEFAULT_WS,
            http_url=_env(f"{prefix}HTTP_URL"),
            request_timeout=_parse_number(
                f"{prefix}TIMEOUT", _env(f"{prefix}TIMEOUT"), 30.0, float
            ),
            connect_timeout=_parse_number(
                f"{prefix}CONNECT_TIMEOUT", _env(f"{prefix}CONNECT_TIMEOUT"), 10.0, float
            ),
            max_message_size=_parse_number(
                f"{prefix}MAX_MESSAGE_SIZE", _env(f"{prefix}MAX_MESSAGE_SIZE"), 2**24, int
            ),
            strict_compact=_parse_bool(
                f"{prefix}STRICT_COMPACT", _env(f"{prefix}STRICT_COMPACT"), True
            ),
            max_depth=_parse_number(f"{prefix}MAX_DEPTH", _env(f"{prefix}MAX_DEPTH"), 256, int),
            user_agent=_env(f"{prefix}USER_AGENT", f"pallas-py/{__version__}")
            or f"pallas-py/{__version__}",
        )

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        """
        Copy of this config with keyword overrides applied. Unknown keys are
        rejected; None values are ignored.
        """
        data = self.to_dict()
        for k, v in overrides.items():
            if k not in data:
                raise ConfigError(f"unknown config key {k!r}", key=k)
            if v is not None:
                data[k] = v
        return ClientConfig(**data)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


__all__ = ["ClientConfig"]
