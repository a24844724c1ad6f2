"""boostd deal submitter - runs ``boostd import-direct`` for an allocation."""

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Sequence

from ddo_listener.models.records import SubmitResult

log = logging.getLogger(__name__)


class BoostdDealSubmitter:
    """Submits a downloaded allocation to boost via ``import-direct``.

    Success contract: the process must start, exit 0, AND write nothing to
    stderr. boostd reports some problems as stderr warnings with a zero exit
    status; any stderr output is therefore treated as a failure so the CAR
    file is kept for inspection.
    """

    def __init__(
        self,
        client_address: str,
        command: Sequence[str] = ("boostd",),
    ) -> None:
        self._client_address = client_address
        self._command = list(command)

    def build_command(
        self,
        allocation_id: int,
        piece_cid: str,
        file_path: str,
        start_epoch: int | None = None,
    ) -> list[str]:
        argv = [*self._command, "import-direct", f"--client-addr={self._client_address}"]
        if start_epoch is not None:
            argv.append(f"--start-epoch={start_epoch}")
        argv += [f"--allocation-id={allocation_id}", piece_cid, file_path]
        return argv

    async def submit(
        self,
        allocation_id: int,
        piece_cid: str,
        file_path: str,
        start_epoch: int | None = None,
    ) -> SubmitResult:
        argv = self.build_command(allocation_id, piece_cid, file_path, start_epoch)
        log.info("Executing command: %s", shlex.join(argv))

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            out, err = await proc.communicate()
        except OSError as exc:
            log.error("boostd command failed to start for allocation %d: %s", allocation_id, exc)
            return SubmitResult(
                success=False,
                allocation_id=allocation_id,
                command=argv,
                error=f"exec_failed: {exc}",
            )

        stdout = out.decode("utf-8", errors="replace")
        stderr = err.decode("utf-8", errors="replace")
        if stdout:
            log.info("Command output:\n%s", stdout.rstrip())

        if proc.returncode != 0:
            error = f"exit status {proc.returncode}"
        elif stderr:
            error = "stderr output"
        else:
            error = None

        if error is not None:
            if stderr:
                log.warning("Command stderr:\n%s", stderr.rstrip())
            log.error("boostd command failed for allocation %d: %s", allocation_id, error)
            return SubmitResult(
                success=False,
                allocation_id=allocation_id,
                command=argv,
                exit_code=proc.returncode,
                stdout=stdout,
                stderr=stderr,
                error=error,
            )

        log.info("boostd command executed successfully for allocation %d", allocation_id)
        return SubmitResult(
            success=True,
            allocation_id=allocation_id,
            command=argv,
            exit_code=proc.returncode,
            stdout=stdout,
        )
