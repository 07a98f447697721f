"""Fan-out of aggregated virtual-block submissions to every pool connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from loguru import logger

from hybrid_bridge.bridge.constants import SUBMISSION_ID
from hybrid_bridge.stratum.messages import JSONRPC_VERSION, StratumMethods
from hybrid_bridge.stratum.protocol import StratumProtocol, StratumProtocolError

if TYPE_CHECKING:
    from hybrid_bridge.bridge.aggregator import PendingQueue
    from hybrid_bridge.bridge.connection import PoolConnection
    from hybrid_bridge.bridge.stats import BridgeStats


@dataclass
class SubmissionPayload:
    """
    An ``eth_submitWork``-shaped submission carrying virtual blocks.

    ``miner`` and ``txs`` are placeholders; ``for_peer`` fills them in for
    each destination.
    """

    params: List[Any]
    virtual_blocks: List[Any]
    miner: str = ""
    txs: List[Any] = field(default_factory=list)
    id: int = SUBMISSION_ID
    jsonrpc: str = JSONRPC_VERSION
    method: str = StratumMethods.ETH_SUBMIT_WORK

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "jsonrpc": self.jsonrpc,
            "method": self.method,
            "params": list(self.params),
            "miner": self.miner,
            "virtualBlocks": list(self.virtual_blocks),
            "txs": list(self.txs),
        }

    def for_peer(self, miner: str, txs: List[Any]) -> dict:
        """Render the payload stamped for one destination."""
        obj = self.to_dict()
        obj["miner"] = miner
        obj["txs"] = list(txs)
        return obj


class SubmissionBroadcaster:
    """
    Writes a submission to every open pool connection.

    Each connection receives the same params and virtual blocks, its own
    identity token as ``miner``, and the whole pending queue as ``txs``.
    Writes are handed to each transport without waiting for it to drain and
    are not acknowledged by the pool. Queued batches are cleared only once at
    least one transport accepted the write; a broadcast that reached nobody
    leaves them for the next one.
    """

    def __init__(
        self,
        queue: PendingQueue,
        connections: Mapping[int, PoolConnection],
        stats: Optional[BridgeStats] = None,
    ):
        """
        Initialize the broadcaster.

        Args:
            queue: Pending virtual-block queue.
            connections: Live mapping of peer id to connection, owned by the client.
            stats: Optional counters.
        """
        self.queue = queue
        self._connections = connections
        self._stats = stats
        self._protocol = StratumProtocol()

    async def send_virtual_blocks(self, payload: SubmissionPayload) -> int:
        """
        Broadcast ``payload`` to every open connection.

        Args:
            payload: Submission to send.

        Returns:
            Number of connections the submission was written to.
        """
        batches = self.queue.snapshot()
        txs = [batch.blocks for batch in batches]
        # Copy so connections closing mid-broadcast don't change the iteration
        targets = [(peer_id, conn) for peer_id, conn in self._connections.items() if conn.is_open]

        written = 0
        for peer_id, conn in targets:
            try:
                data = self._protocol.encode(payload.for_peer(conn.identity, txs))
            except StratumProtocolError as e:
                logger.error(f"Cannot encode submission for peer {peer_id}: {e}")
                break
            if conn.write(data):
                written += 1

        if written:
            self.queue.remove(batches)
            logger.info(
                f"Broadcast {len(payload.virtual_blocks)} virtual blocks "
                f"({len(txs)} pending batches) to {written}/{len(targets)} peers"
            )
        elif batches:
            logger.warning(f"Broadcast reached no peers, keeping {len(batches)} pending batches")

        if self._stats:
            self._stats.record_broadcast(written)
        return written
