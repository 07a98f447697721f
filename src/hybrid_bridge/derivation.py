"""Lambda derivation: turns shared work into a seed and virtual blocks."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Any, List, Optional, Union

from hybrid_bridge.stratum.protocol import deserialize

if TYPE_CHECKING:
    from hybrid_bridge.bridge.work import WorkRecord

LAMBDA_BYTES = 32

# Ethash boundaries are 2**256 / difficulty
_ETHASH_SPACE = 2 ** 256


def sha256d(data: bytes) -> bytes:
    """Double SHA256 hash."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _field_bytes(value: Any) -> bytes:
    """Bytes of a work field; hex strings are decoded, anything else is UTF-8 text."""
    text = str(value) if value is not None else ""
    hex_text = text[2:] if text[:2].lower() == "0x" else text
    if len(hex_text) % 2:
        hex_text = "0" + hex_text
    try:
        return bytes.fromhex(hex_text)
    except ValueError:
        return text.encode("utf-8")


def boundary_to_difficulty(share_target: Any) -> Optional[int]:
    """
    Convert an ethash share boundary to a difficulty.

    Returns:
        The difficulty, or None if the target isn't a positive hex number.
    """
    try:
        target = int(str(share_target), 16)
    except (TypeError, ValueError):
        return None
    if target <= 0:
        return None
    return _ETHASH_SPACE // target


class LambdaDerivation:
    """
    Derives the lambda seed and virtual blocks from a unit of shared work.

    lambda is ``sha256d(headerHash || seedHash || shareTarget)``. The 32
    lambda bytes are split evenly into ``virtual_block_count`` virtual
    blocks, each carrying its slice as ``seal``.
    """

    def __init__(self, virtual_block_count: int = 4):
        if virtual_block_count < 1 or LAMBDA_BYTES % virtual_block_count:
            raise ValueError(f"virtual_block_count must divide {LAMBDA_BYTES}, got {virtual_block_count}")
        self.virtual_block_count = virtual_block_count

    @staticmethod
    def lambda_bytes(header_hash: Any, seed_hash: Any, share_target: Any) -> bytes:
        return sha256d(_field_bytes(header_hash) + _field_bytes(seed_hash) + _field_bytes(share_target))

    def compute_lambda(self, work: WorkRecord) -> str:
        """Hex lambda for a stored work record."""
        return "0x" + self.lambda_bytes(work.header_hash, work.seed_hash, work.share_target).hex()

    def build_puzzle(self, work: WorkRecord) -> dict:
        """Describe the difficulty structure callers solve against lambda."""
        return {
            "headerHash": work.header_hash,
            "seedHash": work.seed_hash,
            "shareTarget": work.share_target,
            "difficulty": boundary_to_difficulty(work.share_target),
            "virtualBlocks": self.virtual_block_count,
        }

    def derive_virtual_blocks(self, raw_payload: Union[str, bytes, dict]) -> Optional[List[dict]]:
        """
        Split the lambda of a work message into virtual blocks.

        Args:
            raw_payload: The work message, serialized or decoded.

        Returns:
            The virtual blocks, or None if the payload carries no work.
        """
        msg = deserialize(raw_payload)
        if msg is None:
            return None
        result = msg.get("result")
        if not isinstance(result, list) or len(result) < 3:
            return None

        header_hash, seed_hash, share_target = result[:3]
        seed = self.lambda_bytes(header_hash, seed_hash, share_target)
        lam = "0x" + seed.hex()
        size = LAMBDA_BYTES // self.virtual_block_count
        return [
            {
                "index": index,
                "workId": msg.get("id"),
                "headerHash": header_hash,
                "lambda": lam,
                "seal": "0x" + seed[index * size:(index + 1) * size].hex(),
            }
            for index in range(self.virtual_block_count)
        ]
