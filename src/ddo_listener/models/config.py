"""Configuration models for the listener daemon."""

from __future__ import annotations

from dataclasses import dataclass, field


class ConfigError(ValueError):
    """Raised when the configuration is missing or invalid. Fatal at startup."""


@dataclass(frozen=True)
class ProcessorConfig:
    """Read-only settings for the allocation pipeline.

    Validated on construction; an invalid combination raises ConfigError.
    """

    min_size: int
    max_size: int
    fil_client_address: str
    download_dir: str = "./downloads"
    start_epoch_offset: int | None = None  # None disables --start-epoch
    delayed_cleanup_hours: float | None = None  # None keeps files forever
    boostd_command: tuple[str, ...] = ("boostd",)
    download_timeout: float | None = None  # seconds, None = no read timeout

    def __post_init__(self) -> None:
        if not self.fil_client_address:
            raise ConfigError("fil_client_address is required")
        if self.min_size <= 0 or self.max_size <= 0:
            raise ConfigError("min_size and max_size must be positive")
        if self.min_size >= self.max_size:
            raise ConfigError(
                f"min_size ({self.min_size}) must be less than max_size ({self.max_size})"
            )
        if self.start_epoch_offset is not None and self.start_epoch_offset < 0:
            raise ConfigError("start_epoch_offset must be non-negative")
        if self.delayed_cleanup_hours is not None and self.delayed_cleanup_hours < 0:
            raise ConfigError("delayed_cleanup_hours must be non-negative")
        if not self.boostd_command:
            raise ConfigError("boostd_command must not be empty")


@dataclass
class ListenerConfig:
    """Complete daemon configuration."""

    # Chain
    rpc_url: str = ""
    contract_address: str = ""
    provider_id: int | None = None
    start_block: int | None = None  # backfill from this block when set
    network_name: str = "Unknown"  # cosmetic
    poll_interval: float = 5.0  # seconds
    error_backoff: float = 30.0  # seconds
    max_block_range: int = 2000  # blocks per eth_getLogs call
    backfill_retries: int = 3  # per chunk, then backfill is skipped

    # Processor
    min_size: int | None = None
    max_size: int | None = None
    fil_client_address: str = ""
    download_dir: str = "./downloads"
    start_epoch_offset: int | None = None
    delayed_cleanup_hours: float | None = None
    boostd_command: list[str] = field(default_factory=lambda: ["boostd"])
    download_timeout: float | None = None

    # Daemon
    max_concurrent: int = 4  # 0 = unrestricted
    flush_cleanup_on_exit: bool = False
    log_level: str = "info"

    # Cleanup job
    cleanup_max_age_hours: float = 24.0

    def processor_config(self) -> ProcessorConfig:
        if self.min_size is None or self.max_size is None:
            raise ConfigError("min_size and max_size are required")
        return ProcessorConfig(
            min_size=self.min_size,
            max_size=self.max_size,
            fil_client_address=self.fil_client_address,
            download_dir=self.download_dir,
            start_epoch_offset=self.start_epoch_offset,
            delayed_cleanup_hours=self.delayed_cleanup_hours,
            boostd_command=tuple(self.boostd_command),
            download_timeout=self.download_timeout,
        )
