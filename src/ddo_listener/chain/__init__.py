"""EVM chain integration - event ABI, JSON-RPC session, event source."""

from ddo_listener.chain.abi import (
    ALLOCATION_CREATED_TOPIC,
    MalformedLogError,
    decode_log,
    provider_topic,
)
from ddo_listener.chain.session import ChainConnectionError, ChainRpcError, JsonRpcSession
from ddo_listener.chain.source import AllocationEventSource

__all__ = [
    "ALLOCATION_CREATED_TOPIC",
    "AllocationEventSource",
    "ChainConnectionError",
    "ChainRpcError",
    "JsonRpcSession",
    "MalformedLogError",
    "decode_log",
    "provider_topic",
]
