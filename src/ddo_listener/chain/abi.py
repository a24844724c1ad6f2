"""AllocationCreated event ABI and raw log decoding."""

from __future__ import annotations

from typing import Any, Mapping

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, keccak, to_checksum_address

from ddo_listener.models.events import AllocationEvent

# event AllocationCreated(
#     address indexed client, uint64 indexed allocationId, uint64 indexed provider,
#     bytes data, uint64 size, int64 termMin, int64 termMax, int64 expiration,
#     string downloadURL)
ALLOCATION_CREATED_SIGNATURE = (
    "AllocationCreated(address,uint64,uint64,bytes,uint64,int64,int64,int64,string)"
)
ALLOCATION_CREATED_TOPIC = "0x" + keccak(text=ALLOCATION_CREATED_SIGNATURE).hex()

# Non-indexed fields, in declaration order
DATA_TYPES = ("bytes", "uint64", "int64", "int64", "int64", "string")

_UINT64_MAX = 2**64 - 1


class MalformedLogError(ValueError):
    """A log that cannot be decoded into an AllocationEvent."""


def _topic_bytes(topic: Any) -> bytes:
    try:
        raw = decode_hex(topic) if isinstance(topic, str) else bytes(topic)
    except (TypeError, ValueError) as exc:
        raise MalformedLogError(f"bad topic {topic!r}: {exc}") from exc
    if len(raw) != 32:
        raise MalformedLogError(f"topic must be 32 bytes, got {len(raw)}")
    return raw


def _topic_uint64(topic: Any, name: str) -> int:
    value = int.from_bytes(_topic_bytes(topic), "big")
    if value > _UINT64_MAX:
        raise MalformedLogError(f"{name} does not fit in uint64: {value}")
    return value


def _quantity(value: Any) -> int | None:
    """JSON-RPC quantity (hex string or int) -> int; None stays None."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value, 16)
    except (TypeError, ValueError) as exc:
        raise MalformedLogError(f"bad quantity {value!r}") from exc


def is_allocation_created(raw: Mapping[str, Any]) -> bool:
    topics = raw.get("topics") or []
    return bool(topics) and str(topics[0]).lower() == ALLOCATION_CREATED_TOPIC


def decode_log(raw: Mapping[str, Any], is_past_event: bool = False) -> AllocationEvent:
    """Decode one eth_getLogs entry.

    Raises MalformedLogError if the log is not an AllocationCreated log or any
    required field is missing or undecodable. A missing provider topic is not
    an error: the event is returned with ``provider=None``.
    """
    if not is_allocation_created(raw):
        raise MalformedLogError("not an AllocationCreated log")

    topics = list(raw["topics"])
    if len(topics) < 3:
        raise MalformedLogError(
            f"expected indexed client and allocationId topics, got {len(topics) - 1}"
        )

    client = to_checksum_address("0x" + _topic_bytes(topics[1])[-20:].hex())
    allocation_id = _topic_uint64(topics[2], "allocationId")
    provider = None
    if len(topics) > 3 and topics[3] is not None:
        provider = _topic_uint64(topics[3], "provider")

    try:
        data, size, term_min, term_max, expiration, download_url = abi_decode(
            list(DATA_TYPES), decode_hex(raw.get("data") or "0x"),
        )
    except (DecodingError, TypeError, ValueError) as exc:
        raise MalformedLogError(f"cannot decode event data: {exc}") from exc

    return AllocationEvent(
        client=client,
        allocation_id=allocation_id,
        provider=provider,
        data=bytes(data),
        size=size,
        term_min=term_min,
        term_max=term_max,
        expiration=expiration,
        download_url=download_url,
        block_number=_quantity(raw.get("blockNumber")),
        transaction_hash=raw.get("transactionHash"),
        log_index=_quantity(raw.get("logIndex")),
        is_past_event=is_past_event,
    )


def provider_topic(provider_id: int) -> str:
    """Indexed-topic encoding of a provider id, for eth_getLogs filters."""
    return "0x" + int(provider_id).to_bytes(32, "big").hex()
