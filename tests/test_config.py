"""
Client configuration and the error model.
"""

from __future__ import annotations

import json

import pytest

from pallas.config import ClientConfig
from pallas.errors import (
    CodecError,
    ConfigError,
    DecodeError,
    EncodeError,
    ErrorCode,
    PallasError,
    RpcError,
    SignError,
    TransportError,
)


# -- Config ----------------------------------------------------------------------------


def test_defaults() -> None:
    cfg = ClientConfig()
    assert cfg.ws_url == "ws://127.0.0.1:9944"
    assert cfg.http_url is None
    assert cfg.strict_compact is True
    assert cfg.user_agent.startswith("pallas-py/")


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PALLAS_WS_URL", "wss://rpc.example")
    monkeypatch.setenv("PALLAS_HTTP_URL", "https://rpc.example")
    monkeypatch.setenv("PALLAS_TIMEOUT", "2.5")
    monkeypatch.setenv("PALLAS_MAX_DEPTH", "64")
    monkeypatch.setenv("PALLAS_STRICT_COMPACT", "off")
    monkeypatch.setenv("PALLAS_USER_AGENT", "")
    cfg = ClientConfig.from_env()
    assert cfg.ws_url == "wss://rpc.example"
    assert cfg.http_url == "https://rpc.example"
    assert cfg.request_timeout == 2.5
    assert cfg.max_depth == 64
    assert cfg.strict_compact is False
    # empty values fall back to defaults
    assert cfg.user_agent.startswith("pallas-py/")


def test_from_env_with_custom_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NODE_WS_URL", "ws://10.0.0.2:9944")
    assert ClientConfig.from_env(prefix="NODE_").ws_url == "ws://10.0.0.2:9944"


@pytest.mark.parametrize(
    "name, value",
    [("PALLAS_STRICT_COMPACT", "maybe"), ("PALLAS_TIMEOUT", "soon"), ("PALLAS_MAX_DEPTH", "1.5")],
)
def test_from_env_rejects_bad_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError) as ei:
        ClientConfig.from_env()
    assert ei.value.code == ErrorCode.CONFIG
    assert ei.value.data["key"] == name


@pytest.mark.parametrize(
    "kw",
    [
        {"ws_url": "http://127.0.0.1:9944"},
        {"http_url": "ws://127.0.0.1:9933"},
        {"request_timeout": 0},
        {"connect_timeout": -1.0},
        {"max_depth": 0},
    ],
)
def test_validation(kw: dict) -> None:
    with pytest.raises(ConfigError):
        ClientConfig(**kw)


def test_with_overrides() -> None:
    base = ClientConfig()
    cfg = base.with_overrides(ws_url="wss://other:443", request_timeout=None)
    assert cfg.ws_url == "wss://other:443"
    assert cfg.request_timeout == base.request_timeout
    assert base.ws_url == "ws://127.0.0.1:9944"
    with pytest.raises(ConfigError) as ei:
        base.with_overrides(retries=3)
    assert ei.value.data["key"] == "retries"


def test_http_headers_and_dict() -> None:
    cfg = ClientConfig(user_agent="pallas-test/3")
    assert cfg.http_headers()["User-Agent"] == "pallas-test/3"
    d = cfg.to_dict()
    assert d["user_agent"] == "pallas-test/3"
    assert ClientConfig(**d) == cfg


# -- Errors ----------------------------------------------------------------------------


def test_error_string_and_dict() -> None:
    err = CodecError(ErrorCode.UNEXPECTED_END, "need 4 bytes", offset=10, raw=b"\x01\x02")
    assert isinstance(err, PallasError)
    assert err.offset == 10
    assert str(err).startswith(f"{ErrorCode.UNEXPECTED_END.value}: need 4 bytes")
    d = err.to_dict()
    assert d["code"] == ErrorCode.UNEXPECTED_END.value
    assert d["data"] == {"offset": 10, "raw": "0x0102"}
    assert d["retryable"] is False
    json.dumps(d)


def test_with_context_copies() -> None:
    err = EncodeError(ErrorCode.OUT_OF_RANGE, "too big", type_id=3, path="$.value")
    richer = err.with_context(pallet="Balances")
    assert type(richer) is EncodeError
    assert richer.data == {"type_id": 3, "path": "$.value", "pallet": "Balances"}
    assert err.data == {"type_id": 3, "path": "$.value"}
    assert richer.type_id == 3
    assert richer.path == "$.value"


def test_decode_error_is_a_codec_error() -> None:
    err = DecodeError(ErrorCode.INVALID_DISCRIMINANT, "no variant 9", type_id=21, offset=4)
    assert isinstance(err, CodecError)
    assert (err.type_id, err.offset) == (21, 4)


def test_cause_is_reported_only_on_request() -> None:
    cause = RuntimeError("device unplugged")
    err = SignError("signer raised RuntimeError", cause=cause, account=b"\x01" * 2)
    assert err.__cause__ is cause
    assert err.data["account"] == "0x0101"
    assert "cause" not in err.to_dict()
    assert err.to_dict(include_cause=True)["cause"] == {"type": "RuntimeError", "message": "device unplugged"}


def test_transport_errors_are_retryable_by_kind() -> None:
    assert TransportError(ErrorCode.DISCONNECTED).retryable
    assert TransportError(ErrorCode.TIMEOUT).retryable
    assert not TransportError(ErrorCode.UNSUPPORTED).retryable


def test_rpc_error_from_jsonrpc() -> None:
    err = RpcError.from_jsonrpc("author_submitExtrinsic", {"code": "1010", "message": "Invalid", "data": "x"}, 7)
    assert err.rpc_code == 1010
    assert err.method == "author_submitExtrinsic"
    assert err.data["request_id"] == 7
    odd = RpcError.from_jsonrpc("m", {"code": None})
    assert odd.rpc_code == -32603
    assert odd.message == "JSON-RPC error"
