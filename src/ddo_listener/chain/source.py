"""Allocation event source - backfill plus live polling as one ordered stream."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from ddo_listener.chain.abi import (
    ALLOCATION_CREATED_TOPIC,
    MalformedLogError,
    decode_log,
    provider_topic,
)
from ddo_listener.interfaces.session import ChainSession
from ddo_listener.models.events import AllocationEvent

log = logging.getLogger(__name__)


def _order_key(raw: dict[str, Any]) -> tuple[int, int]:
    def q(value: Any) -> int:
        if value is None:
            return -1
        return value if isinstance(value, int) else int(value, 16)

    try:
        return q(raw.get("blockNumber")), q(raw.get("logIndex"))
    except (TypeError, ValueError):
        return -1, -1


class AllocationEventSource:
    """Yields AllocationCreated events addressed to one storage provider.

    ``events()`` first reads the chain head (the subscription point). If
    ``start_block`` is set, historical logs from start_block to that head are
    yielded in ascending (block, log index) order, tagged ``is_past_event``.
    It then polls for new heads and yields live logs from head+1 onwards.

    The node is asked for logs matching the event topic and our provider id;
    the provider filter is applied again locally, and an event without a
    provider is dropped. Malformed logs are logged and dropped.

    A failed backfill chunk is retried ``backfill_retries`` times after
    ``error_backoff``; if it keeps failing the rest of the backfill is skipped
    and live polling starts anyway. A failed live poll is logged and retried
    after ``error_backoff`` on the same session.
    """

    def __init__(
        self,
        session: ChainSession,
        contract_address: str,
        provider_id: int,
        start_block: int | None = None,
        poll_interval: float = 5.0,
        error_backoff: float = 30.0,
        max_block_range: int = 2000,
        backfill_retries: int = 3,
    ) -> None:
        self._session = session
        self._contract = contract_address
        self._provider_id = int(provider_id)
        self._topics = [
            ALLOCATION_CREATED_TOPIC, None, None, provider_topic(self._provider_id),
        ]
        self._start_block = start_block
        self._poll_interval = poll_interval
        self._error_backoff = error_backoff
        self._max_block_range = max(1, max_block_range)
        self._backfill_retries = max(0, backfill_retries)
        self._stopped = asyncio.Event()
        self._next_block: int | None = None

    @property
    def next_block(self) -> int | None:
        """First block the live poller has not scanned yet."""
        return self._next_block

    def stop(self) -> None:
        self._stopped.set()

    def matches_provider(self, event: AllocationEvent) -> bool:
        # Provider 0 is a valid id; only a missing value is skipped
        if event.provider is None:
            log.warning(
                "Allocation %d has no provider id. Skipping event.", event.allocation_id,
            )
            return False
        if event.provider != self._provider_id:
            log.info(
                "Provider %d does not match configured provider %d. Ignoring allocation %d.",
                event.provider, self._provider_id, event.allocation_id,
            )
            return False
        log.info("Provider matches configured provider (%d)", self._provider_id)
        return True

    async def events(self) -> AsyncIterator[AllocationEvent]:
        head = await self._session.block_number()
        self._next_block = head + 1

        if self._start_block is not None:
            log.info("Fetching past events from block %d to %d", self._start_block, head)
            try:
                async for event in self._scan(self._start_block, head, is_past_event=True):
                    yield event
                    if self._stopped.is_set():
                        return
            except Exception as exc:
                log.error(
                    "Error fetching past events: %s. Continuing with live events.", exc,
                )
            if self._stopped.is_set():
                return

        log.info("Event listener is now active, waiting for events from block %d", self._next_block)
        while not self._stopped.is_set():
            if await self._wait(self._poll_interval):
                return
            try:
                head = await self._session.block_number()
            except Exception as exc:
                log.error("Head poll failed: %s", exc)
                if await self._wait(self._error_backoff):
                    return
                continue

            if head < self._next_block:
                continue
            try:
                async for event in self._scan(self._next_block, head, is_past_event=False):
                    yield event
            except Exception as exc:
                # _next_block only advances past fully scanned chunks
                log.error("Log poll failed: %s", exc)
                if await self._wait(self._error_backoff):
                    return

    async def _scan(
        self, from_block: int, to_block: int, is_past_event: bool,
    ) -> AsyncIterator[AllocationEvent]:
        """Yield matching events in [from_block, to_block], chunked."""
        retries = self._backfill_retries if is_past_event else 0
        start = from_block
        while start <= to_block:
            end = min(start + self._max_block_range - 1, to_block)
            raw_logs = await self._get_logs(start, end, retries)
            if raw_logs is None:
                return
            for raw in sorted(raw_logs, key=_order_key):
                event = self._decode(raw, is_past_event)
                if event is not None:
                    yield event
            start = end + 1
            if not is_past_event:
                self._next_block = start

    async def _get_logs(
        self, start: int, end: int, retries: int,
    ) -> list[dict[str, Any]] | None:
        """eth_getLogs with up to ``retries`` retries; None if stopped meanwhile."""
        attempt = 0
        while True:
            try:
                return await self._session.get_logs(self._contract, self._topics, start, end)
            except Exception as exc:
                if attempt >= retries:
                    raise
                attempt += 1
                log.warning(
                    "eth_getLogs for blocks %d-%d failed (retry %d/%d in %ss): %s",
                    start, end, attempt, retries, self._error_backoff, exc,
                )
            if await self._wait(self._error_backoff):
                return None

    def _decode(self, raw: dict[str, Any], is_past_event: bool) -> AllocationEvent | None:
        if raw.get("removed"):
            log.debug("Skipping removed log %s", raw.get("transactionHash"))
            return None
        try:
            event = decode_log(raw, is_past_event=is_past_event)
        except MalformedLogError as exc:
            log.error("Dropping malformed log (tx %s): %s", raw.get("transactionHash"), exc)
            return None

        log.info(
            "[%s] AllocationCreated: allocation=%d provider=%s client=%s size=%d "
            "term=%d..%d expiration=%d block=%s tx=%s url=%s",
            event.label, event.allocation_id, event.provider, event.client, event.size,
            event.term_min, event.term_max, event.expiration,
            event.block_number if event.block_number is not None else "N/A",
            event.transaction_hash or "N/A", event.download_url,
        )
        if not self.matches_provider(event):
            return None
        return event

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to seconds; True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
