"""Main daemon loop - wires the event source to the allocation pipeline."""

from __future__ import annotations

import asyncio
import logging
import signal

from ddo_listener.chain.session import JsonRpcSession
from ddo_listener.chain.source import AllocationEventSource
from ddo_listener.interfaces.session import ChainSession
from ddo_listener.models.config import ListenerConfig
from ddo_listener.models.events import AllocationEvent
from ddo_listener.models.records import PipelineResult
from ddo_listener.processor.pipeline import AllocationPipeline

log = logging.getLogger(__name__)


class ListenerDaemon:
    """DDO storage provider event listener.

    Consumes the AllocationCreated stream in one loop and runs one pipeline
    task per matching event. Up to ``max_concurrent`` pipelines run at once
    (0 = unrestricted); they never collide because every artifact is named by
    its allocation id. An unexpected exception inside a pipeline stops the
    daemon and is re-raised from ``start()``.
    """

    def __init__(
        self,
        cfg: ListenerConfig,
        session: ChainSession | None = None,
        pipeline: AllocationPipeline | None = None,
    ) -> None:
        self._cfg = cfg
        self.session: ChainSession = session or JsonRpcSession(cfg.rpc_url)
        self.pipeline = pipeline or AllocationPipeline(cfg.processor_config())
        self.source = AllocationEventSource(
            self.session,
            cfg.contract_address,
            cfg.provider_id if cfg.provider_id is not None else 0,
            start_block=cfg.start_block,
            poll_interval=cfg.poll_interval,
            error_backoff=cfg.error_backoff,
            max_block_range=cfg.max_block_range,
            backfill_retries=cfg.backfill_retries,
        )
        self._limit = (
            asyncio.Semaphore(cfg.max_concurrent) if cfg.max_concurrent > 0 else None
        )
        self._tasks: set[asyncio.Task] = set()
        self._fatal: BaseException | None = None
        self._stopping = False
        self.processed = 0
        self.failed = 0

    async def start(self) -> None:
        """Connect, then consume events until stop() or a fatal fault."""
        log.info("Starting DDO storage provider event listener")
        log.info("  Network: %s", self._cfg.network_name)
        log.info("  RPC: %s", self._cfg.rpc_url)
        log.info("  Contract: %s", self._cfg.contract_address)
        log.info("  Provider ID: %s", self._cfg.provider_id)
        if self._cfg.start_block is not None:
            log.info("  Backfill from block: %d", self._cfg.start_block)
        log.info(
            "  Max concurrent pipelines: %s",
            self._cfg.max_concurrent or "unrestricted",
        )

        chain_id = await self.session.start()
        log.info("Connected to %s (chain id %d)", self._cfg.network_name, chain_id)
        self.pipeline.initialize()

        try:
            async for event in self.source.events():
                if self._stopping:
                    break
                self._dispatch(event)
            if self._tasks and not self._stopping:
                await asyncio.gather(*self._tasks, return_exceptions=True)
        finally:
            await self._shutdown()

        if self._fatal is not None:
            raise self._fatal

    async def stop(self) -> None:
        """Signal the daemon to stop gracefully."""
        if self._stopping:
            return
        log.info("Stop requested")
        self._stopping = True
        self.source.stop()

    async def handle(self, event: AllocationEvent) -> PipelineResult:
        """Run one event through the pipeline under the concurrency cap."""
        if self._limit is None:
            result = await self.pipeline.process(event)
        else:
            async with self._limit:
                result = await self.pipeline.process(event)

        if result.success:
            self.processed += 1
        else:
            self.failed += 1
        return result

    def _dispatch(self, event: AllocationEvent) -> None:
        task = asyncio.create_task(
            self.handle(event), name=f"allocation:{event.allocation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self._fatal is None:
            log.critical("Unhandled error in %s: %r", task.get_name(), exc, exc_info=exc)
            self._fatal = exc
            self._stopping = True
            self.source.stop()

    async def _shutdown(self) -> None:
        self.source.stop()
        if self._tasks:
            log.info("Abandoning %d in-flight pipeline(s)", len(self._tasks))
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.pipeline.retention.shutdown(flush=self._cfg.flush_cleanup_on_exit)
        await self.session.close()
        log.info(
            "Listener shut down cleanly (%d succeeded, %d failed)",
            self.processed, self.failed,
        )


async def run_daemon(cfg: ListenerConfig) -> None:
    """Entry point for running the daemon."""
    daemon = ListenerDaemon(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler(sig: signal.Signals) -> None:
        log.info("Received %s. Gracefully shutting down...", sig.name)
        asyncio.ensure_future(daemon.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler, sig)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await daemon.start()
