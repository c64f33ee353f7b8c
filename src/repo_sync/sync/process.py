"""Async subprocess execution with cancellation and guaranteed cleanup."""

import asyncio
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog

from repo_sync.core.exceptions import CancelledError, ProcessError
from repo_sync.sync.cancellation import CancellationToken

logger = structlog.get_logger(__name__)

TERMINATE_GRACE_SECONDS = 5.0

_URL_CREDENTIALS = re.compile(r"(://)[^/@\s]+@")


def redact(command: Sequence[str]) -> list[str]:
    """Hide credentials embedded in URLs before a command is logged or raised."""
    return [_URL_CREDENTIALS.sub(r"\1***@", arg) for arg in command]


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a successful process."""

    stdout: str
    stderr: str


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Ask the process to stop, killing it if it ignores the request."""
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Process did not terminate, killing", pid=process.pid)
        process.kill()
        await process.wait()


async def run_process(
    args: Sequence[str],
    cwd: str | None = None,
    token: CancellationToken | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessResult:
    """Run ``args`` to completion and capture its output.

    Raises:
        ProcessError: The process could not be launched or exited non-zero.
        CancelledError: ``token`` was signalled before the process finished;
            the process has been terminated.
    """
    command = [str(arg) for arg in args]
    shown = redact(command)
    if token is not None and token.cancelled:
        raise CancelledError(f"{command[0]} was cancelled before it started", command=shown)

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProcessError(f"Failed to launch {command[0]}: {exc}", command=shown) from exc

    communicate = asyncio.ensure_future(process.communicate())
    cancel_wait = asyncio.ensure_future(token.wait()) if token is not None else None
    try:
        if cancel_wait is not None:
            await asyncio.wait({communicate, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if not communicate.done():
                logger.info("Cancelling process", command=shown[0], pid=process.pid)
                raise CancelledError(f"{command[0]} was cancelled", command=shown)
        stdout_bytes, stderr_bytes = await communicate
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()
        if process.returncode is None:
            await _terminate(process)
        if not communicate.done():
            communicate.cancel()

    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise ProcessError(
            f"{command[0]} exited with status {process.returncode}: {stderr.strip()}",
            command=shown,
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )
    return ProcessResult(stdout=stdout, stderr=stderr)
