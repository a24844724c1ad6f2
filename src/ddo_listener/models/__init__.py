"""Data models for the ddo_listener daemon."""

from ddo_listener.models.events import AllocationEvent
from ddo_listener.models.records import (
    CleanupReport,
    FetchResult,
    PipelineResult,
    PipelineStage,
    SubmitResult,
)
from ddo_listener.models.config import ConfigError, ListenerConfig, ProcessorConfig

__all__ = [
    "AllocationEvent",
    "CleanupReport", "FetchResult", "PipelineResult", "PipelineStage", "SubmitResult",
    "ConfigError", "ListenerConfig", "ProcessorConfig",
]
