"""Bridge client core module."""

from hybrid_bridge.bridge.aggregator import PendingQueue, VirtualBlockAggregator
from hybrid_bridge.bridge.broadcaster import SubmissionBroadcaster, SubmissionPayload
from hybrid_bridge.bridge.client import BridgeClient
from hybrid_bridge.bridge.connection import ConnectionState, PoolConnection, PoolConnectionError
from hybrid_bridge.bridge.handlers import ClientHandler
from hybrid_bridge.bridge.stats import BridgeStats
from hybrid_bridge.bridge.work import WorkRecord, WorkStateStore

__all__ = [
    "BridgeClient",
    "BridgeStats",
    "ClientHandler",
    "ConnectionState",
    "PendingQueue",
    "PoolConnection",
    "PoolConnectionError",
    "SubmissionBroadcaster",
    "SubmissionPayload",
    "VirtualBlockAggregator",
    "WorkRecord",
    "WorkStateStore",
]
