"""Subprocess execution shared by the automation backends and the shell tool.

No timeout is applied. A child process runs until it exits or the
run's CancelToken fires, which kills it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from deskhand.errors import RunCancelledError

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation flag for one agent run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError("Run cancelled")

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class ProcessResult:
    """Captured outcome of a finished child process."""

    returncode: int
    stdout: str
    stderr: str


async def run_process(
    argv: list[str],
    *,
    stdin: str | None = None,
    cancel: CancelToken | None = None,
) -> ProcessResult:
    """Spawn argv, optionally feed stdin, and wait for it to exit.

    Raises OSError if the executable cannot be spawned and
    RunCancelledError if the token fires before or during the run.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()

    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    payload = stdin.encode("utf-8") if stdin is not None else None

    if cancel is None:
        stdout, stderr = await proc.communicate(payload)
    else:
        communicate = asyncio.ensure_future(proc.communicate(payload))
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {communicate, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancelled.cancel()
        if communicate not in done:
            logger.info("Cancelling child process %s (pid %s)", argv[0], proc.pid)
            proc.kill()
            await communicate
            raise RunCancelledError("Run cancelled")
        stdout, stderr = communicate.result()

    return ProcessResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
