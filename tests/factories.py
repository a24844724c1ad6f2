"""Synthetic event and log factories for testing."""

from __future__ import annotations

from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address

from ddo_listener.chain.abi import ALLOCATION_CREATED_TOPIC, DATA_TYPES
from ddo_listener.models.events import AllocationEvent

CLIENT = to_checksum_address("0x1234567890abcdef1234567890abcdef12345678")
CONTRACT = "0x00000000000000000000000000000000000000Cc"

# CIDv1 prefix: version 1, fil-commitment-unsealed, sha2-256-trunc254-padded, 32 bytes
PIECE_CID_PREFIX = bytes([0x01, 0x81, 0xE2, 0x03, 0x92, 0x20, 0x20])


def piece_cid_bytes(seed: int = 7) -> bytes:
    """A structurally valid binary piece CID (CommP)."""
    digest = bytes((seed + i) % 256 for i in range(32))
    return PIECE_CID_PREFIX + digest


def make_allocation_event(
    allocation_id: int = 1,
    provider: int | None = 1000,
    data: bytes | None = None,
    size: int = 2048,
    download_url: str = "http://127.0.0.1:1/allocation.car",
    block_number: int | None = 1000,
    client: str = CLIENT,
    term_min: int = 518400,
    term_max: int = 5256000,
    expiration: int = 1_200_000,
    transaction_hash: str | None = "0xabc",
    is_past_event: bool = False,
) -> AllocationEvent:
    return AllocationEvent(
        client=client,
        allocation_id=allocation_id,
        provider=provider,
        data=piece_cid_bytes() if data is None else data,
        size=size,
        term_min=term_min,
        term_max=term_max,
        expiration=expiration,
        download_url=download_url,
        block_number=block_number,
        transaction_hash=transaction_hash,
        is_past_event=is_past_event,
    )


def _topic(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def make_raw_log(
    allocation_id: int = 1,
    provider: int | None = 1000,
    block_number: int | None = 100,
    log_index: int = 0,
    data: bytes | None = None,
    size: int = 2048,
    download_url: str = "http://example.com/a.car",
    client: str = CLIENT,
    removed: bool = False,
) -> dict:
    """An eth_getLogs entry as returned by a JSON-RPC node."""
    topics = [ALLOCATION_CREATED_TOPIC, _topic(int(client, 16)), _topic(allocation_id)]
    if provider is not None:
        topics.append(_topic(provider))
    body = abi_encode(
        list(DATA_TYPES),
        [piece_cid_bytes() if data is None else data, size, 518400, 5256000, 1_200_000, download_url],
    )
    return {
        "address": CONTRACT,
        "topics": topics,
        "data": "0x" + body.hex(),
        "blockNumber": hex(block_number) if block_number is not None else None,
        "transactionHash": "0x" + f"{allocation_id:064x}",
        "logIndex": hex(log_index),
        "removed": removed,
    }
