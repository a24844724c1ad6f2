"""Allocation pipeline - validate, fetch, and submit one allocation."""

from __future__ import annotations

import logging
from pathlib import Path

from ddo_listener.interfaces.fetcher import FileFetcher
from ddo_listener.interfaces.submitter import DealSubmitter
from ddo_listener.models.config import ProcessorConfig
from ddo_listener.models.events import AllocationEvent
from ddo_listener.models.records import PipelineResult, PipelineStage
from ddo_listener.processor import cid as cid_codec
from ddo_listener.processor.epoch import compute_start_epoch
from ddo_listener.processor.fetcher import HttpFileFetcher
from ddo_listener.processor.retention import RetentionScheduler
from ddo_listener.processor.sizes import accepts, format_bytes
from ddo_listener.processor.submitter import BoostdDealSubmitter

log = logging.getLogger(__name__)


class AllocationPipeline:
    """Drives one AllocationEvent through the fixed stage order.

    received -> size_checked -> cid_decoded -> downloaded -> epoch_computed
    -> submitted -> retained | discarded

    Expected failures end the run with ``success=False`` and never raise.
    Nothing is remembered between runs, so replaying an event repeats every
    stage and overwrites the same CAR file.
    """

    def __init__(
        self,
        config: ProcessorConfig,
        fetcher: FileFetcher | None = None,
        submitter: DealSubmitter | None = None,
        retention: RetentionScheduler | None = None,
    ) -> None:
        self._cfg = config
        self.fetcher = fetcher or HttpFileFetcher(
            config.download_dir, timeout=config.download_timeout,
        )
        self.submitter = submitter or BoostdDealSubmitter(
            config.fil_client_address, config.boostd_command,
        )
        self.retention = retention or RetentionScheduler(config.delayed_cleanup_hours)

    @property
    def config(self) -> ProcessorConfig:
        return self._cfg

    def initialize(self) -> None:
        """Create the download directory and report the effective limits."""
        Path(self._cfg.download_dir).mkdir(parents=True, exist_ok=True)
        log.info("Download directory ready: %s", self._cfg.download_dir)
        log.info(
            "Size limits: %s - %s",
            format_bytes(self._cfg.min_size), format_bytes(self._cfg.max_size),
        )
        log.info("Filecoin client address: %s", self._cfg.fil_client_address)
        if self._cfg.start_epoch_offset is not None:
            log.info("Start epoch offset: %d blocks", self._cfg.start_epoch_offset)
        else:
            log.info("Start epoch: not configured (will run without --start-epoch)")
        if self._cfg.delayed_cleanup_hours is not None:
            log.info("Delayed cleanup: %s hours after submission", self._cfg.delayed_cleanup_hours)
        else:
            log.info("Delayed cleanup: disabled (files are retained)")

    async def process(self, event: AllocationEvent) -> PipelineResult:
        alloc_id = event.allocation_id
        result = PipelineResult(
            allocation_id=alloc_id, success=False, stage=PipelineStage.RECEIVED,
        )
        log.info("Processing allocation %d", alloc_id)

        # 1. Size
        result.stage = PipelineStage.SIZE_CHECKED
        if not accepts(event.size, self._cfg.min_size, self._cfg.max_size):
            result.error = (
                f"size {format_bytes(event.size)} outside allowed range "
                f"{format_bytes(self._cfg.min_size)} - {format_bytes(self._cfg.max_size)}"
            )
            return self._fail(result)
        log.info("Size %s is within allowed range", format_bytes(event.size))

        # 2. Piece CID
        result.stage = PipelineStage.CID_DECODED
        try:
            result.piece_cid = cid_codec.to_string(event.data)
        except cid_codec.CidDecodeError as exc:
            result.error = f"cid_decode: {exc}"
            return self._fail(result)
        log.info("Piece CID: %s", result.piece_cid)

        # 3. Download
        result.stage = PipelineStage.DOWNLOADED
        fetched = await self.fetcher.fetch(event.download_url, alloc_id)
        if not fetched.success or fetched.path is None:
            result.error = f"download: {fetched.error}"
            return self._fail(result)
        result.file_path = fetched.path
        log.info("File downloaded: %s", fetched.path)

        # 4. Start epoch
        result.stage = PipelineStage.EPOCH_COMPUTED
        offset = self._cfg.start_epoch_offset
        result.start_epoch = compute_start_epoch(event.block_number, offset)
        if offset is not None and result.start_epoch is None:
            warning = (
                f"start_epoch_offset configured ({offset}) but block number "
                "unavailable - running without --start-epoch"
            )
            log.warning("Allocation %d: %s", alloc_id, warning)
            result.warnings.append(warning)
        elif result.start_epoch is not None:
            log.info(
                "Calculated start epoch: %d (block %d + %d)",
                result.start_epoch, event.block_number, offset,
            )

        # 5. Submit
        result.stage = PipelineStage.SUBMITTED
        submitted = await self.submitter.submit(
            alloc_id, result.piece_cid, fetched.path, result.start_epoch,
        )
        if not submitted.success:
            result.error = f"submit: {submitted.error}"
            self.retention.on_failure(fetched.path)
            return self._fail(result)

        # 6. Retention
        if self.retention.on_success(fetched.path) is None:
            result.stage = PipelineStage.RETAINED
        else:
            result.stage = PipelineStage.DISCARDED

        result.success = True
        log.info("Allocation %d processed successfully", alloc_id)
        return result

    def _fail(self, result: PipelineResult) -> PipelineResult:
        log.error(
            "Allocation %d failed at stage %s: %s",
            result.allocation_id, result.stage.value, result.error,
        )
        return result
