"""Result records for pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PipelineStage(str, Enum):
    """Stages of the allocation pipeline, in the order they are reached."""

    RECEIVED = "received"
    SIZE_CHECKED = "size_checked"
    CID_DECODED = "cid_decoded"
    DOWNLOADED = "downloaded"
    EPOCH_COMPUTED = "epoch_computed"
    SUBMITTED = "submitted"
    RETAINED = "retained"  # file kept indefinitely
    DISCARDED = "discarded"  # file scheduled for deletion


@dataclass
class FetchResult:
    """Result of downloading an allocation's CAR file."""

    success: bool
    allocation_id: int
    path: str | None = None
    bytes_written: int | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass
class SubmitResult:
    """Result of a ``boostd import-direct`` invocation."""

    success: bool
    allocation_id: int
    command: list[str] = field(default_factory=list)
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None


@dataclass
class PipelineResult:
    """Outcome of one pass of an allocation through the pipeline.

    ``stage`` is the last stage reached. On failure it is the stage that
    failed, and no later stage ran.
    """

    allocation_id: int
    success: bool
    stage: PipelineStage
    error: str | None = None
    piece_cid: str | None = None
    file_path: str | None = None
    start_epoch: int | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class CleanupReport:
    """Summary of an age-based sweep of the download directory."""

    deleted: int = 0
    skipped: int = 0
    failed: int = 0
