"""Allocation processing - size, CID, download, epoch, submit, retention."""

from ddo_listener.processor.fetcher import HttpFileFetcher
from ddo_listener.processor.pipeline import AllocationPipeline
from ddo_listener.processor.retention import RetentionScheduler
from ddo_listener.processor.submitter import BoostdDealSubmitter

__all__ = [
    "AllocationPipeline",
    "BoostdDealSubmitter",
    "HttpFileFetcher",
    "RetentionScheduler",
]
