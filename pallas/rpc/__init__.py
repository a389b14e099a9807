"""
JSON-RPC transports (websocket with subscriptions, plain HTTP) and typed
chain wrappers.
"""

from .http import HttpClient
from .methods import UNWATCH_EXTRINSIC, ChainRpc, RuntimeVersion
from .transport import JSON, Params, RpcTransport, Subscription
from .ws import WsClient

__all__ = [
    "JSON",
    "Params",
    "RpcTransport",
    "Subscription",
    "WsClient",
    "HttpClient",
    "ChainRpc",
    "RuntimeVersion",
    "UNWATCH_EXTRINSIC",
]
