"""FileFetcher protocol - downloads allocation content to local storage."""

from __future__ import annotations

from typing import Protocol

from ddo_listener.models.records import FetchResult


class FileFetcher(Protocol):
    """Transfers a remote resource into the download directory."""

    async def fetch(self, url: str, allocation_id: int) -> FetchResult:
        """GET url and write it to allocation_<id>.car. Never leaves a partial file."""
        ...
