"""ChainSession protocol - the single owned connection to the chain."""

from __future__ import annotations

from typing import Any, Protocol, Sequence


class ChainSession(Protocol):
    """Explicit start/stop lifecycle around one RPC connection."""

    async def start(self) -> int:
        """Open the connection and return the chain id. Failure is fatal."""
        ...

    async def block_number(self) -> int:
        """Current chain head."""
        ...

    async def get_logs(
        self,
        address: str,
        topics: Sequence[str | None],
        from_block: int,
        to_block: int,
    ) -> list[dict[str, Any]]:
        """Raw logs for address/topics in the inclusive block range."""
        ...

    async def close(self) -> None:
        """Release the connection."""
        ...
