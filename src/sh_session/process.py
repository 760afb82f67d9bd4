"""Child shell process spawn and teardown helpers."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from pathlib import Path

from sh_session.errors import ShellSpawnError

logger = logging.getLogger(__name__)


def spawn_shell(shell_path: Path) -> subprocess.Popen[bytes]:
    """Start the shell with piped stdin and stderr merged into stdout.

    The child leads its own process group so that it can be killed together
    with whatever command it is running.
    """

    try:
        return subprocess.Popen(  # noqa: S603
            [str(shell_path)],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    except FileNotFoundError as error:
        raise ShellSpawnError(f"Shell executable not found: {shell_path}") from error
    except OSError as error:
        raise ShellSpawnError(f"Shell failed to start: {error}") from error


def kill_process_group(process: subprocess.Popen[bytes]) -> None:
    """Kill the shell and every process in its group, ignoring already-dead ones."""

    if process.poll() is not None:
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    except OSError as error:
        logger.warning("Failed to kill shell process group %s: %s", process.pid, error)
        try:
            process.kill()
        except OSError:
            return


def reap_process(process: subprocess.Popen[bytes], *, timeout_seconds: float) -> int | None:
    """Wait for the shell to exit and close its pipes; return the exit status if known."""

    try:
        returncode = process.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        logger.warning("Shell process %s did not exit within %.1fs", process.pid, timeout_seconds)
        returncode = None
    for stream in (process.stdin, process.stdout):
        if stream is None:
            continue
        try:
            stream.close()
        except OSError:
            logger.debug("Closing shell pipe failed", exc_info=True)
    return returncode
