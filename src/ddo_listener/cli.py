"""CLI entry point for the ddo_listener daemon."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from ddo_listener.chain.session import ChainConnectionError
from ddo_listener.cleanup import cleanup_old_files
from ddo_listener.config import ConfigError, load_config, validate_config
from ddo_listener.daemon import run_daemon
from ddo_listener.processor.sizes import format_bytes


def _load(ctx: click.Context, validate: bool = True):
    """Load config, exiting with an error message if it is invalid."""
    try:
        cfg = load_config(ctx.obj["config_path"])
        if validate:
            validate_config(cfg)
    except ConfigError as exc:
        click.echo(f"Error: invalid configuration: {exc}", err=True)
        sys.exit(1)
    level = logging.getLevelName(cfg.log_level.upper())
    if not ctx.obj["verbose"] and isinstance(level, int):
        logging.getLogger().setLevel(level)
    return cfg


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """ddo-listener - DDO storage provider allocation listener."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Daemon ─────────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Listen for AllocationCreated events and process our allocations."""
    cfg = _load(ctx)

    click.echo(f"Starting ddo-listener (network: {cfg.network_name}, provider: {cfg.provider_id})")
    try:
        asyncio.run(run_daemon(cfg))
    except ChainConnectionError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective configuration."""
    cfg = _load(ctx, validate=False)
    offset = cfg.start_epoch_offset
    cleanup = cfg.delayed_cleanup_hours
    click.echo(f"Network:       {cfg.network_name}")
    click.echo(f"RPC URL:       {cfg.rpc_url or '(not set)'}")
    click.echo(f"Contract:      {cfg.contract_address or '(not set)'}")
    click.echo(f"Provider ID:   {cfg.provider_id if cfg.provider_id is not None else '(not set)'}")
    click.echo(f"Start block:   {cfg.start_block if cfg.start_block is not None else '(live only)'}")
    if cfg.min_size is not None and cfg.max_size is not None:
        click.echo(f"Size limits:   {format_bytes(cfg.min_size)} - {format_bytes(cfg.max_size)}")
    else:
        click.echo("Size limits:   (not set)")
    click.echo(f"Client addr:   {cfg.fil_client_address or '(not set)'}")
    click.echo(f"Download dir:  {cfg.download_dir}")
    click.echo(f"Epoch offset:  {offset if offset is not None else '(disabled)'}")
    click.echo(f"Cleanup after: {f'{cleanup} hours' if cleanup is not None else '(disabled)'}")
    click.echo(f"boostd:        {' '.join(cfg.boostd_command)}")

    try:
        validate_config(cfg)
    except ConfigError as exc:
        click.echo(f"\nConfiguration is incomplete: {exc}", err=True)
        sys.exit(1)


# ── Maintenance ────────────────────────────────────────


@cli.command()
@click.option(
    "--max-age-hours", type=float, default=None,
    help="Delete .car files older than this (default: config or 24)",
)
@click.option("--download-dir", default=None, help="Directory to sweep (default: config)")
@click.pass_context
def cleanup(ctx: click.Context, max_age_hours: float | None, download_dir: str | None) -> None:
    """Delete downloaded CAR files older than a maximum age."""
    cfg = _load(ctx, validate=False)
    max_age = max_age_hours if max_age_hours is not None else cfg.cleanup_max_age_hours
    root = download_dir or cfg.download_dir

    try:
        report = cleanup_old_files(root, max_age)
    except OSError as exc:
        click.echo(f"Cleanup failed: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"Cleanup complete: {report.deleted} deleted, "
        f"{report.skipped} skipped, {report.failed} failed"
    )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
