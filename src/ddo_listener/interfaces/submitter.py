"""DealSubmitter protocol - hands a downloaded allocation to the deal tool."""

from __future__ import annotations

from typing import Protocol

from ddo_listener.models.records import SubmitResult


class DealSubmitter(Protocol):
    """Runs the external deal-submission command for one allocation."""

    async def submit(
        self,
        allocation_id: int,
        piece_cid: str,
        file_path: str,
        start_epoch: int | None = None,
    ) -> SubmitResult:
        """Execute the import and report success/failure with captured output."""
        ...
