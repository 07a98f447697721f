"""Stratum JSON-RPC message dataclasses and ethproxy payload builders."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

JSONRPC_VERSION = "2.0"

# JSON-RPC ids are numbers, strings or null
MessageId = Union[int, str, None]


@dataclass
class StratumRequest:
    """A JSON-RPC request from client to server."""

    id: MessageId
    method: str
    params: List[Any] = field(default_factory=list)
    jsonrpc: Optional[str] = JSONRPC_VERSION

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        obj = {"id": self.id, "method": self.method, "params": self.params}
        if self.jsonrpc is not None:
            obj["jsonrpc"] = self.jsonrpc
        return obj


# Stratum style [code, message, traceback] or JSON-RPC 2.0 style {"code": N, "message": "..."}
StratumError = Union[List[Any], dict]


@dataclass
class StratumResponse:
    """A JSON-RPC response from server to client."""

    id: MessageId
    result: Any
    error: Optional[StratumError] = None
    jsonrpc: Optional[str] = JSONRPC_VERSION

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        obj = {"id": self.id, "result": self.result, "error": self.error}
        if self.jsonrpc is not None:
            obj["jsonrpc"] = self.jsonrpc
        return obj

    @property
    def is_error(self) -> bool:
        """Check if this is an error response."""
        return self.error is not None

    @property
    def is_work(self) -> bool:
        """Check if the result carries [headerHash, seedHash, shareTarget]."""
        return isinstance(self.result, list) and len(self.result) >= 3


@dataclass
class StratumNotification:
    """A JSON-RPC notification (null id, no response expected)."""

    method: str
    params: List[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": None,
            "method": self.method,
            "params": self.params,
        }


StratumMessage = Union[StratumRequest, StratumResponse, StratumNotification]


class StratumMethods:
    """Constants for method names used by the bridge."""

    # ethproxy dialect
    ETH_SUBMIT_LOGIN = "eth_submitLogin"
    ETH_GET_WORK = "eth_getWork"
    ETH_SUBMIT_WORK = "eth_submitWork"

    # Classic stratum dialect
    MINING_SUBSCRIBE = "mining.subscribe"

    # Local query API
    ETH_GET_WORK_ID = "eth_getWorkId"
    ETH_GET_DIFFICULTY = "eth_getDifficulty"


class StratumErrors:
    """JSON-RPC error codes returned by the local query API."""

    METHOD_NOT_FOUND = (-32601, "Method not found")
    NO_WORK = (-32000, "No work available")

    @staticmethod
    def as_dict(error: tuple) -> dict:
        """Render an error tuple as a JSON-RPC 2.0 error object."""
        code, message = error
        return {"code": code, "message": message}


STRATUM_PROTOCOL_ETHPROXY = "STRATUM_PROTOCOL_ETHPROXY"
STRATUM_PROTOCOL_STRATUM = "STRATUM_PROTOCOL_STRATUM"

PROTOCOL_NAMES = {
    "ethproxy": STRATUM_PROTOCOL_ETHPROXY,
    "stratum": STRATUM_PROTOCOL_STRATUM,
}

# Fixed subscribe payloads; login fields are filled in by build_subscribe()
StratumSubscribe = {
    STRATUM_PROTOCOL_ETHPROXY: {
        "id": 1,
        "jsonrpc": JSONRPC_VERSION,
        "method": StratumMethods.ETH_SUBMIT_LOGIN,
        "params": [],
        "worker": "",
    },
    STRATUM_PROTOCOL_STRATUM: {
        "id": 1,
        "jsonrpc": JSONRPC_VERSION,
        "method": StratumMethods.MINING_SUBSCRIBE,
        "params": ["hybrid-bridge", "EthereumStratum/1.0.0"],
    },
}


def build_subscribe(protocol: str, login: str = "", worker: str = "", password: str = "x") -> dict:
    """
    Build the handshake payload for a subscribe dialect.

    Args:
        protocol: Dialect name from the server config ("ethproxy" or "stratum").
        login: Wallet/login for eth_submitLogin.
        worker: Worker name.
        password: Pool password.

    Returns:
        A fresh payload dict safe to mutate.
    """
    key = PROTOCOL_NAMES[protocol]
    payload = copy.deepcopy(StratumSubscribe[key])
    if key == STRATUM_PROTOCOL_ETHPROXY:
        payload["params"] = [login, password] if login else []
        payload["worker"] = worker
    return payload


def build_get_work() -> dict:
    """Build the periodic eth_getWork poll request."""
    return {
        "id": 1,
        "jsonrpc": JSONRPC_VERSION,
        "method": StratumMethods.ETH_GET_WORK,
        "params": [],
    }
