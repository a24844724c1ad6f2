"""Retention policy for submitted CAR files."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

log = logging.getLogger(__name__)


def _delete_if_present(path: Path) -> bool:
    """Remove path; a file that is already gone is not an error."""
    try:
        path.unlink()
    except FileNotFoundError:
        log.info("File already removed: %s", path)
        return False
    log.info("Cleaned up file: %s", path)
    return True


class RetentionScheduler:
    """Decides what happens to a CAR file once its allocation is submitted.

    boostd schedules ``import-direct`` asynchronously, so the file must outlive
    the command. With ``delayed_cleanup_hours`` unset, files are never deleted.
    Otherwise each successful submission gets its own cancellable task that
    deletes the file after the delay.
    """

    def __init__(self, delayed_cleanup_hours: float | None = None) -> None:
        self._delay_hours = delayed_cleanup_hours
        self._tasks: dict[asyncio.Task, Path] = {}

    @property
    def enabled(self) -> bool:
        return self._delay_hours is not None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def on_success(self, file_path: str | Path) -> asyncio.Task | None:
        """Schedule deletion of file_path, or keep it when cleanup is disabled."""
        path = Path(file_path)
        if self._delay_hours is None:
            log.info("File retained for boostd import: %s", path)
            return None

        log.info("Scheduling cleanup of %s in %s hours", path, self._delay_hours)
        task = asyncio.create_task(
            self._delete_later(path, self._delay_hours * 3600),
            name=f"cleanup:{path.name}",
        )
        self._tasks[task] = path
        task.add_done_callback(self._forget)
        return task

    def on_failure(self, file_path: str | Path) -> None:
        log.info("File kept for debugging: %s", file_path)

    async def shutdown(self, flush: bool = False) -> None:
        """Cancel pending deletions. With flush=True, delete their files now."""
        if not self._tasks:
            return
        pending = dict(self._tasks)
        log.info(
            "%s %d pending cleanup(s)", "Flushing" if flush else "Abandoning", len(pending),
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if flush:
            for path in pending.values():
                _delete_if_present(path)

    async def _delete_later(self, path: Path, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        try:
            if _delete_if_present(path):
                log.info("Delayed cleanup completed for: %s", path)
        except OSError as exc:
            log.error("Delayed cleanup failed for %s: %s", path, exc)

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.pop(task, None)
