"""Contract event models decoded from the EVM log stream."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AllocationEvent:
    """Emitted when a client creates a storage allocation (AllocationCreated).

    ``provider`` is None when the log carried no provider value; such events
    are never dispatched to the pipeline.
    """

    client: str  # checksummed 0x address
    allocation_id: int
    provider: int | None
    data: bytes  # binary piece CID
    size: int  # bytes
    term_min: int  # epochs
    term_max: int  # epochs
    expiration: int  # epoch
    download_url: str
    block_number: int | None = None
    transaction_hash: str | None = None
    log_index: int | None = None
    is_past_event: bool = False

    @property
    def label(self) -> str:
        return "PAST EVENT" if self.is_past_event else "NEW EVENT"
