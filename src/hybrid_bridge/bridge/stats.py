"""Statistics tracking for pool connections, work and broadcasts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict

from hybrid_bridge.logging.setup import stats_logger


@dataclass
class PeerStats:
    """Statistics for a single pool peer."""

    peer_id: int
    connections: int = 0
    reconnections: int = 0
    disconnections: int = 0
    work_updates: int = 0


class BridgeStats:
    """
    Counters for one bridge client.

    All updates happen on the event loop thread, so plain attribute
    increments are enough.
    """

    def __init__(self):
        self.start_time = datetime.now(timezone.utc).astimezone()
        self.dropped_messages = 0
        self.broadcasts = 0
        self.empty_broadcasts = 0
        self.submissions_written = 0
        self._peer_stats: Dict[int, PeerStats] = {}

    def _get_peer_stats(self, peer_id: int) -> PeerStats:
        stats = self._peer_stats.get(peer_id)
        if stats is None:
            stats = self._peer_stats[peer_id] = PeerStats(peer_id=peer_id)
        return stats

    def peer(self, peer_id: int) -> PeerStats:
        """Get (creating if needed) the counters for one peer."""
        return self._get_peer_stats(peer_id)

    def record_connect(self, peer_id: int, reconnect: bool = False) -> None:
        stats = self._get_peer_stats(peer_id)
        if reconnect:
            stats.reconnections += 1
        else:
            stats.connections += 1

    def record_disconnect(self, peer_id: int) -> None:
        self._get_peer_stats(peer_id).disconnections += 1

    def record_work(self, peer_id: int) -> None:
        self._get_peer_stats(peer_id).work_updates += 1

    def record_dropped(self, count: int = 1) -> None:
        self.dropped_messages += count

    def record_broadcast(self, written: int) -> None:
        """Record one broadcast that reached ``written`` peers."""
        if written:
            self.broadcasts += 1
            self.submissions_written += written
        else:
            self.empty_broadcasts += 1

    def get_uptime(self) -> str:
        """Get formatted uptime string."""
        delta = datetime.now(timezone.utc).astimezone() - self.start_time
        hours, remainder = divmod(delta.seconds, 3600)
        minutes = remainder // 60

        parts = []
        if delta.days > 0:
            parts.append(f"{delta.days}d")
        if hours > 0 or delta.days > 0:
            parts.append(f"{hours}h")
        parts.append(f"{minutes}m")
        return " ".join(parts)

    def log_stats(self) -> None:
        """Log current statistics to the console and the stats sink."""
        log = stats_logger()
        log.info("=" * 60)
        log.info(f"BRIDGE STATISTICS (uptime: {self.get_uptime()})")
        log.info("=" * 60)
        log.info(
            f"Broadcasts: {self.broadcasts} sent | {self.empty_broadcasts} reached no peer | "
            f"{self.submissions_written} submissions written"
        )
        log.info(f"Dropped messages: {self.dropped_messages}")

        if not self._peer_stats:
            log.info("No peer statistics yet")
        for peer_id, stats in sorted(self._peer_stats.items()):
            log.info(
                f"  peer:{peer_id} connections={stats.connections} "
                f"reconnections={stats.reconnections} disconnections={stats.disconnections} "
                f"work={stats.work_updates}"
            )
        log.info("=" * 60)


async def run_stats_logger(stats: BridgeStats, stop_event: asyncio.Event, interval: float) -> None:
    """
    Log stats every ``interval`` seconds until ``stop_event`` is set.

    Args:
        stats: Counters to log.
        stop_event: Event to signal shutdown.
        interval: Seconds between summaries.
    """
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            break
        except asyncio.TimeoutError:
            stats.log_stats()
