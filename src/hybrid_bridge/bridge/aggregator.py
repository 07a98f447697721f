"""Pending virtual-block queue and the aggregator feeding the broadcaster."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

from loguru import logger

from hybrid_bridge.bridge.broadcaster import SubmissionBroadcaster, SubmissionPayload


@dataclass(frozen=True)
class PendingBatch:
    """One batch of virtual blocks waiting to be broadcast."""

    seq: int
    blocks: List[Any]


class PendingQueue:
    """
    Ordered batches accumulated since the last successful broadcast.

    Memory only. Batches are removed by sequence number, so a broadcast
    only clears what it actually sent even when newer batches were queued
    while its writes were draining.
    """

    def __init__(self):
        self._batches: List[PendingBatch] = []
        self._seq = itertools.count(1)

    def __len__(self) -> int:
        return len(self._batches)

    def append(self, blocks: Sequence[Any]) -> PendingBatch:
        """Queue a batch and return its entry."""
        batch = PendingBatch(seq=next(self._seq), blocks=list(blocks))
        self._batches.append(batch)
        return batch

    def snapshot(self) -> List[PendingBatch]:
        """Current batches in queue order."""
        return list(self._batches)

    @property
    def pending(self) -> List[List[Any]]:
        """Block lists of the current batches, in queue order."""
        return [batch.blocks for batch in self._batches]

    def remove(self, batches: Iterable[PendingBatch]) -> int:
        """
        Remove the given batches.

        Returns:
            Number of batches removed.
        """
        seqs = {batch.seq for batch in batches}
        before = len(self._batches)
        self._batches = [batch for batch in self._batches if batch.seq not in seqs]
        return before - len(self._batches)


class VirtualBlockAggregator:
    """
    Accumulates virtual blocks derived from work and triggers broadcasts.

    Every non-empty batch triggers its own broadcast; there is no periodic
    flush. Each broadcast carries every batch not yet cleared.
    """

    def __init__(self, queue: PendingQueue, broadcaster: SubmissionBroadcaster):
        self.queue = queue
        self.broadcaster = broadcaster

    async def submit_virtual_blocks(self, blocks: Optional[Sequence[Any]], result: Sequence[Any]) -> None:
        """
        Queue a batch of virtual blocks and broadcast.

        Args:
            blocks: Blocks derived from one work unit; None is ignored.
            result: The originating work ``[headerHash, seedHash, shareTarget]``.
        """
        if blocks is None:
            return
        if not isinstance(blocks, (list, tuple)):
            logger.warning(f"Ignoring virtual blocks of type {type(blocks).__name__}")
            return
        if not blocks:
            return

        self.queue.append(blocks)
        await self.prepare_to_send_blocks(blocks, result)

    async def prepare_to_send_blocks(self, blocks: Sequence[Any], result: Sequence[Any]) -> int:
        """
        Build a submission for ``blocks`` and hand it to the broadcaster.

        Returns:
            Number of connections written to.
        """
        header_hash, seed_hash, share_target = (list(result[:3]) + [None] * 3)[:3]
        payload = SubmissionPayload(
            # The share target is the shared difficulty from the mining pool
            params=[header_hash, seed_hash, share_target],
            virtual_blocks=list(blocks),
        )
        return await self.broadcaster.send_virtual_blocks(payload)
