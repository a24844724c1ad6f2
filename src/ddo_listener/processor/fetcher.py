"""HTTP file fetcher - downloads allocation CAR files into the download dir."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import IO

import httpx

from ddo_listener.models.records import FetchResult
from ddo_listener.processor.sizes import format_bytes

log = logging.getLogger(__name__)


def allocation_filename(allocation_id: int) -> str:
    return f"allocation_{allocation_id}.car"


def _commit(handle: IO[bytes], temp_path: Path, target: Path) -> None:
    """Flush, fsync and close the temp file, then rename it over target."""
    try:
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    temp_path.replace(target)


def _discard(temp_path: Path | None) -> None:
    if temp_path is not None:
        temp_path.unlink(missing_ok=True)


class HttpFileFetcher:
    """Streams one GET response into ``<download_dir>/allocation_<id>.car``.

    The body is written to a temporary file in the same directory and renamed
    over the target only once complete, so a failed or cancelled transfer
    never leaves a partial CAR behind. No retries: HTTP and local
    filesystem errors are reported as a failed FetchResult.
    """

    def __init__(
        self,
        download_dir: str | Path,
        timeout: float | None = None,
        connect_timeout: float = 30.0,
    ) -> None:
        self._download_dir = Path(download_dir)
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)

    @property
    def download_dir(self) -> Path:
        return self._download_dir

    def target_path(self, allocation_id: int) -> Path:
        return self._download_dir / allocation_filename(allocation_id)

    async def fetch(self, url: str, allocation_id: int) -> FetchResult:
        log.info("Downloading allocation %d from %s", allocation_id, url)
        start = time.monotonic()
        target = self.target_path(allocation_id)
        temp_path: Path | None = None
        total = 0
        try:
            self._download_dir.mkdir(parents=True, exist_ok=True)
            handle = tempfile.NamedTemporaryFile(
                "wb",
                dir=str(self._download_dir),
                prefix=f".{target.name}.",
                suffix=".part",
                delete=False,
            )
            temp_path = Path(handle.name)
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, follow_redirects=True,
                ) as client:
                    async with client.stream("GET", url) as resp:
                        resp.raise_for_status()
                        async for chunk in resp.aiter_bytes():
                            handle.write(chunk)
                            total += len(chunk)
            except BaseException:
                handle.close()
                raise
            # Blocking fsync + rename run off the event loop
            await asyncio.to_thread(_commit, handle, temp_path, target)

        except httpx.HTTPStatusError as exc:
            _discard(temp_path)
            error = (
                f"HTTP {exc.response.status_code}: {exc.response.reason_phrase}"
            )
            log.error("Download failed for allocation %d: %s", allocation_id, error)
            return FetchResult(
                success=False,
                allocation_id=allocation_id,
                error=error,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            _discard(temp_path)
            log.error("Download failed for allocation %d: %s", allocation_id, exc)
            return FetchResult(
                success=False,
                allocation_id=allocation_id,
                error=str(exc) or type(exc).__name__,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        except BaseException:
            # Cancellation or an unexpected fault: drop the partial file, propagate
            _discard(temp_path)
            raise

        duration = int((time.monotonic() - start) * 1000)
        log.info(
            "File saved: %s (%s) in %dms", target, format_bytes(total), duration,
        )
        return FetchResult(
            success=True,
            allocation_id=allocation_id,
            path=str(target),
            bytes_written=total,
            duration_ms=duration,
        )
