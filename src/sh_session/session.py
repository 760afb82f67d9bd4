"""Persistent ``/bin/sh`` session with one framed response per submission."""

from __future__ import annotations

import itertools
import logging
import queue
import sys
import threading
import time

from sh_session import commands
from sh_session.config import SessionSettings
from sh_session.errors import (
    SessionClosedError,
    ShellError,
    ShellSpawnError,
    ShellTimeoutError,
    ShellWriteError,
)
from sh_session.framing import build_request
from sh_session.process import kill_process_group, reap_process, spawn_shell
from sh_session.reader import ShellReader, ShellResponse

logger = logging.getLogger(__name__)

_PACKAGE_LOGGER = "sh_session"
_DEBUG_HANDLER_NAME = "sh-session-debug"
_LIVENESS_POLL_SECONDS = 0.5


class ShellSession:
    """Long-lived shell child that runs submitted commands one at a time.

    Environment changes, ``cd`` and sourced scripts persist between
    submissions. Call :meth:`close` (or use the session as a context manager)
    to release the child; nothing is cleaned up implicitly.
    """

    def __init__(self, settings: SessionSettings | None = None) -> None:
        self._settings = settings or SessionSettings.from_env()
        self._settings.validate()
        if self._settings.debug:
            enable_debug_tracing()

        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._closed = False
        self._process = spawn_shell(self._settings.shell_path)
        stdin, stdout = self._process.stdin, self._process.stdout
        if stdin is None or stdout is None:
            kill_process_group(self._process)
            raise ShellSpawnError("Shell was started without stdin/stdout pipes")
        self._stdin = stdin
        self._reader = ShellReader(
            fd=stdout.fileno(),
            on_quit=self._kill,
            chunk_size=self._settings.read_chunk_bytes,
            name=f"sh-session-reader-{self._process.pid}",
        )
        self._reader.start()
        logger.debug("Shell %s started: pid=%s", self._settings.shell_path, self._process.pid)

        try:
            self.setenv("TERM", self._settings.term)
        except ShellError as error:
            self.close()
            raise ShellSpawnError(f"Shell failed to initialise: {error}") from error

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def settings(self) -> SessionSettings:
        return self._settings

    def submit(self, command: str, *, timeout_seconds: float | None = None) -> ShellResponse:
        """Run ``command`` in the shell and return its output and status.

        Failures of the command or of the pipes are reported in
        ``ShellResponse.error``. A write failure or an expired deadline also
        closes the session, since the shell's output can no longer be framed.
        """

        timeout = timeout_seconds if timeout_seconds is not None else self._settings.timeout_seconds
        with self._lock:
            if self._closed:
                raise SessionClosedError("Shell session is closed")
            submission_id = next(self._ids)
            self._reader.request(submission_id)
            request = build_request(command, submission_id)
            logger.debug("%03d >>> %r", submission_id, request)
            try:
                self._stdin.write(request)
                self._stdin.flush()
            except OSError as error:
                logger.warning("Writing submission %d to shell failed: %s", submission_id, error)
                self._abort()
                return ShellResponse(
                    submission_id=submission_id,
                    payload=b"",
                    error=ShellWriteError(f"Writing to shell stdin failed: {error}"),
                )

            response = self._wait_response(submission_id, timeout)
            if response is not None:
                return response

            logger.warning(
                "Submission %d exceeded %.1fs deadline; killing shell",
                submission_id,
                timeout,
            )
            pending = self._abort()
            partial = pending.payload if pending is not None else b""
            return ShellResponse(
                submission_id=submission_id,
                payload=partial,
                error=ShellTimeoutError(timeout, payload=partial),
            )

    def close(self) -> None:
        """Stop the reader, kill the shell and release its pipes."""

        if self._closed:
            return
        self._closed = True
        self._reader.stop()
        # Unblocks a reader parked in a read; in-flight responses are not awaited.
        self._kill()
        self._reader.join(timeout_seconds=self._settings.close_timeout_seconds)
        returncode = reap_process(
            self._process,
            timeout_seconds=self._settings.close_timeout_seconds,
        )
        logger.debug("Shell %s closed: returncode=%s", self._process.pid, returncode)

    def __enter__(self) -> ShellSession:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # -- convenience wrappers -------------------------------------------------

    def setenv(self, key: str, value: str) -> None:
        """Export ``key`` with ``value`` in the shell."""

        self.submit(commands.setenv_command(key, value)).raise_for_error()

    def getenv(self, key: str) -> str:
        """Return the shell's value for ``key``; empty when unset."""

        payload = self.submit(commands.getenv_command(key)).raise_for_error()
        return commands.parse_getenv(payload)

    def source(self, script: str, *args: str) -> bytes:
        """Source ``script`` with ``args`` and return its combined output."""

        return self.submit(commands.source_command(script, args)).raise_for_error()

    def run(self, command: str, *args: str) -> bytes:
        """Run ``command`` with ``args`` and return its combined output."""

        return self.submit(commands.run_command(command, args)).raise_for_error()

    def chdir(self, directory: str) -> None:
        self.submit(commands.chdir_command(directory)).raise_for_error()

    def getwd(self) -> str:
        payload = self.submit(commands.getwd_command()).raise_for_error()
        return commands.parse_getwd(payload)

    def environ(self) -> list[str]:
        """Return the shell's exported environment as ``KEY=VALUE`` strings."""

        payload = self.submit(commands.environ_command()).raise_for_error()
        return commands.parse_environ(payload)

    def clearenv(self) -> None:
        """Unset every exported variable in the shell."""

        command = commands.clearenv_command(self.environ())
        self.submit(command).raise_for_error()

    # -- internals --------------------------------------------------------------

    def _kill(self) -> None:
        kill_process_group(self._process)

    def _wait_response(
        self,
        submission_id: int,
        timeout: float | None,
    ) -> ShellResponse | None:
        """Wait for the reader's response; ``None`` means the deadline expired.

        Waits in short slices so a reader that exited without answering (the
        session was closed from another thread) does not block the caller.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = _LIVENESS_POLL_SECONDS
            if deadline is not None:
                wait = min(wait, max(0.0, deadline - time.monotonic()))
            try:
                return self._reader.wait_response(wait)
            except queue.Empty:
                logger.debug("%d: no response after %.2fs", submission_id, wait)
            if not self._reader.is_alive:
                # The reader may hand over its last response on the way out.
                response = self._reader.drain_response(0.0)
                if response is not None:
                    return response
                self.close()
                return ShellResponse(
                    submission_id=submission_id,
                    payload=b"",
                    error=SessionClosedError("Shell session closed before the response arrived"),
                )
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def _abort(self) -> ShellResponse | None:
        """Kill the shell, collect the reader's pending response, close the session."""

        self._kill()
        pending = self._reader.drain_response(self._settings.close_timeout_seconds)
        self.close()
        return pending


def enable_debug_tracing() -> None:
    """Write protocol traces of every session to the host's stderr."""

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    if any(handler.get_name() == _DEBUG_HANDLER_NAME for handler in package_logger.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_DEBUG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    package_logger.addHandler(handler)
