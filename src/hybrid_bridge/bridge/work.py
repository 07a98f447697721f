"""Single-slot store for the most recent shared work."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from loguru import logger

from hybrid_bridge.stratum.protocol import deserialize, serialize


@dataclass(frozen=True)
class WorkRecord:
    """
    The most recently received piece of shared work.

    ``raw`` is the serialized message the record was built from; accessors
    used by the query API read from it so they always agree with what was
    stored.
    """

    raw: str
    work_id: Any = None
    header_hash: Optional[str] = None
    seed_hash: Optional[str] = None
    share_target: Optional[str] = None
    peer_id: Optional[int] = None

    @classmethod
    def from_message(cls, raw: str, msg: Optional[dict], peer_id: Optional[int] = None) -> "WorkRecord":
        """Build a record from a serialized message and its decoded form."""
        result = msg.get("result") if msg else None
        fields = list(result[:3]) if isinstance(result, list) else []
        fields += [None] * (3 - len(fields))
        return cls(
            raw=raw,
            work_id=msg.get("id") if msg else None,
            header_hash=fields[0],
            seed_hash=fields[1],
            share_target=fields[2],
            peer_id=peer_id,
        )

    @property
    def params(self) -> list:
        """Work fields in submission order."""
        return [self.header_hash, self.seed_hash, self.share_target]


class WorkStateStore:
    """
    Holds the single current work record, shared by every pool connection.

    Writes are last-write-wins and never merge. The record is immutable and
    replaced with one assignment, so readers see either the old or the new
    record, never a mix.
    """

    def __init__(self):
        self._current: Optional[WorkRecord] = None

    @property
    def current(self) -> Optional[WorkRecord]:
        """The stored record, or None before the first write."""
        return self._current

    def set_current_work(self, msg: Union[dict, str], peer_id: Optional[int] = None) -> WorkRecord:
        """
        Overwrite the stored work.

        Args:
            msg: A decoded message (serialized internally) or its serialized form.
            peer_id: Id of the peer that supplied the work.

        Returns:
            The new record.
        """
        if isinstance(msg, str):
            raw = msg
            decoded = deserialize(msg)
        else:
            raw = serialize(msg)
            decoded = msg

        record = WorkRecord.from_message(raw, decoded, peer_id)
        self._current = record
        logger.debug(f"Current work set by peer {peer_id}: id={record.work_id} target={record.share_target}")
        return record

    def get_current_work(self) -> Optional[str]:
        """Serialized form of the stored work message."""
        record = self._current
        return record.raw if record else None

    def get_current_work_id(self) -> Any:
        """The ``id`` of the stored work message."""
        record = self._current
        return record.work_id if record else None

    def get_current_difficulty(self) -> Optional[str]:
        """The share target (``result[2]``) of the stored work message."""
        record = self._current
        return record.share_target if record else None

    def get_current_work_peer_id(self) -> Optional[int]:
        """Id of the peer that last wrote the work."""
        record = self._current
        return record.peer_id if record else None
