"""Age-based cleanup of downloaded CAR files.

Runs independently of the daemon (e.g. from cron) against the same download
directory, for deployments that keep files after submission.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from ddo_listener.models.records import CleanupReport

log = logging.getLogger(__name__)


def cleanup_old_files(
    download_dir: str | Path,
    max_age_hours: float = 24.0,
    now: float | None = None,
) -> CleanupReport:
    """Delete ``*.car`` files whose mtime is older than max_age_hours.

    Raises FileNotFoundError if download_dir does not exist. A file that
    cannot be deleted is counted as failed and the sweep continues.
    """
    root = Path(download_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"download directory not found: {root}")

    now = time.time() if now is None else now
    report = CleanupReport()
    log.info("Starting cleanup of files older than %s hours in %s", max_age_hours, root)

    for path in sorted(root.glob("*.car")):
        try:
            age_hours = (now - path.stat().st_mtime) / 3600
        except FileNotFoundError:
            continue
        if age_hours <= max_age_hours:
            log.info("Skipped: %s (%.1f hours old)", path.name, age_hours)
            report.skipped += 1
            continue
        try:
            path.unlink()
        except OSError as exc:
            log.error("Failed to delete %s: %s", path.name, exc)
            report.failed += 1
            continue
        log.info("Deleted: %s (%.1f hours old)", path.name, age_hours)
        report.deleted += 1

    log.info(
        "Cleanup complete: %d deleted, %d skipped, %d failed",
        report.deleted, report.skipped, report.failed,
    )
    return report
