"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Any, Callable, Mapping

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from ddo_listener.models.config import ConfigError, ListenerConfig

__all__ = ["ConfigError", "load_config", "validate_config"]

_TRUE = {"1", "true", "yes", "on"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE


def _to_command(value: Any) -> list[str]:
    if isinstance(value, str):
        return shlex.split(value)
    return [str(v) for v in value]


def _convert(name: str, value: Any, conv: Callable[[Any], Any]) -> Any:
    try:
        return conv(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {name}: {value!r}") from exc


def _apply(
    cfg: ListenerConfig,
    section: Mapping[str, Any],
    fields: Mapping[str, Callable[[Any], Any]],
    prefix: str,
) -> None:
    for key, conv in fields.items():
        value = section.get(key)
        if value is None or value == "":
            continue
        setattr(cfg, key, _convert(f"{prefix}.{key}", value, conv))


_CHAIN_FIELDS = {
    "rpc_url": str,
    "contract_address": str,
    "provider_id": int,
    "start_block": int,
    "network_name": str,
    "poll_interval": float,
    "error_backoff": float,
    "max_block_range": int,
    "backfill_retries": int,
}
_PROCESSOR_FIELDS = {
    "min_size": int,
    "max_size": int,
    "fil_client_address": str,
    "download_dir": str,
    "start_epoch_offset": int,
    "delayed_cleanup_hours": float,
    "boostd_command": _to_command,
    "download_timeout": float,
}
_DAEMON_FIELDS = {
    "max_concurrent": int,
    "flush_cleanup_on_exit": _to_bool,
    "log_level": str,
}

# env suffix -> config field
_ENV_FIELDS = {
    "RPC_URL": ("rpc_url", str),
    "CONTRACT_ADDRESS": ("contract_address", str),
    "PROVIDER_ID": ("provider_id", int),
    "START_BLOCK": ("start_block", int),
    "NETWORK_NAME": ("network_name", str),
    "MIN_SIZE": ("min_size", int),
    "MAX_SIZE": ("max_size", int),
    "FIL_CLIENT_ADDRESS": ("fil_client_address", str),
    "DOWNLOAD_DIR": ("download_dir", str),
    "START_EPOCH_OFFSET": ("start_epoch_offset", int),
    "DELAYED_CLEANUP_HOURS": ("delayed_cleanup_hours", float),
    "BOOSTD_COMMAND": ("boostd_command", _to_command),
    "LOG_LEVEL": ("log_level", str),
    "CLEANUP_MAX_AGE_HOURS": ("cleanup_max_age_hours", float),
}


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "DDO_",
    environ: Mapping[str, str] | None = None,
) -> ListenerConfig:
    """Load listener configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (DDO_RPC_URL, DDO_MIN_SIZE, etc.)
        2. TOML config file ([chain], [processor], [daemon], [cleanup])
        3. Defaults from ListenerConfig

    Malformed numbers raise ConfigError. Completeness is checked separately
    by validate_config().
    """
    env = os.environ if environ is None else environ
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if not p.exists():
            raise ConfigError(f"config file not found: {p}")
        with open(p, "rb") as f:
            try:
                raw = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"invalid TOML in {p}: {exc}") from exc

    cfg = ListenerConfig()

    # ── TOML sections ──────────────────────────────────────
    _apply(cfg, raw.get("chain", {}), _CHAIN_FIELDS, "chain")
    _apply(cfg, raw.get("processor", {}), _PROCESSOR_FIELDS, "processor")
    _apply(cfg, raw.get("daemon", {}), _DAEMON_FIELDS, "daemon")
    cleanup = raw.get("cleanup", {})
    if cleanup.get("max_age_hours") is not None:
        cfg.cleanup_max_age_hours = _convert(
            "cleanup.max_age_hours", cleanup["max_age_hours"], float,
        )

    # ── Environment variable overrides (highest priority) ──
    for suffix, (attr, conv) in _ENV_FIELDS.items():
        name = f"{env_prefix}{suffix}"
        value = env.get(name)
        if value:
            setattr(cfg, attr, _convert(name, value, conv))

    # Expand ~ in paths
    cfg.download_dir = str(Path(cfg.download_dir).expanduser())

    return cfg


def validate_config(cfg: ListenerConfig) -> None:
    """Check everything the daemon needs before startup.

    Collects every problem into a single ConfigError.
    """
    problems: list[str] = []
    if not cfg.rpc_url:
        problems.append("rpc_url is required")
    elif cfg.rpc_url.startswith(("ws://", "wss://")):
        problems.append("rpc_url must be an http(s) endpoint; websocket URLs are not supported")
    elif not cfg.rpc_url.startswith(("http://", "https://")):
        problems.append(f"rpc_url must start with http:// or https://: {cfg.rpc_url}")
    if not cfg.contract_address:
        problems.append("contract_address is required")
    if cfg.provider_id is None:
        problems.append("provider_id is required")
    elif cfg.provider_id < 0:
        problems.append("provider_id must be non-negative")
    if cfg.start_block is not None and cfg.start_block < 0:
        problems.append("start_block must be non-negative")
    if cfg.max_concurrent < 0:
        problems.append("max_concurrent must be >= 0 (0 = unrestricted)")
    if cfg.poll_interval <= 0:
        problems.append("poll_interval must be positive")

    try:
        cfg.processor_config()
    except ConfigError as exc:
        problems.append(str(exc))

    if problems:
        raise ConfigError("; ".join(problems))
