"""Stratum protocol handling module."""

from hybrid_bridge.stratum.protocol import (
    StratumProtocol,
    StratumProtocolError,
    StreamReframer,
    has_valid_id,
)
from hybrid_bridge.stratum.messages import (
    StratumMessage,
    StratumMethods,
    StratumNotification,
    StratumRequest,
    StratumResponse,
)

__all__ = [
    "StratumProtocol",
    "StratumProtocolError",
    "StreamReframer",
    "has_valid_id",
    "StratumMessage",
    "StratumMethods",
    "StratumNotification",
    "StratumRequest",
    "StratumResponse",
]
