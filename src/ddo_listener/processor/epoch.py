"""Start-epoch derivation for deal activation."""

from __future__ import annotations


def compute_start_epoch(block_number: int | None, offset: int | None) -> int | None:
    """Return block_number + offset, or None.

    None when the offset is not configured (feature disabled), or when the
    block number is unknown. The second case is degraded: callers should warn.
    """
    if offset is None or block_number is None:
        return None
    return int(block_number) + int(offset)
