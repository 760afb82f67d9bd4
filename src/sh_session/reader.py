"""Single background reader that frames the shell's output into responses."""

from __future__ import annotations

import contextlib
import logging
import os
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import cast

from sh_session.errors import ShellError, ShellReadError
from sh_session.framing import (
    DEFAULT_READ_CHUNK_BYTES,
    classify_exit_code,
    resume_offset,
    try_decode,
)

logger = logging.getLogger(__name__)

_QUIT = object()


@dataclass(slots=True)
class ShellResponse:
    """Outcome of one submission."""

    submission_id: int
    payload: bytes
    error: ShellError | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")

    def raise_for_error(self) -> bytes:
        """Return the payload, or raise the response error if there is one."""

        if self.error is not None:
            raise self.error
        return self.payload


class ShellReader:
    """Owns the shell's stdout and turns it into one response per submission id.

    Callers publish an id with :meth:`request` before writing the matching
    submission, then collect the response with :meth:`wait_response`. Bytes
    that arrive after a marker are kept and prefixed to the next response.
    """

    def __init__(
        self,
        *,
        fd: int,
        on_quit: Callable[[], None],
        chunk_size: int = DEFAULT_READ_CHUNK_BYTES,
        name: str = "sh-session-reader",
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        self._fd = fd
        self._on_quit = on_quit
        self._chunk_size = chunk_size
        self._name = name
        self._remainder = b""
        self._requests: queue.Queue[object] = queue.Queue()
        self._responses: queue.Queue[ShellResponse] = queue.Queue(maxsize=1)
        self._quit = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Reader already started")
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()
        logger.debug("Reader thread %s started", self._name)

    def request(self, submission_id: int) -> None:
        """Wake the reader to frame the response for ``submission_id``."""

        self._requests.put(submission_id)

    def wait_response(self, timeout_seconds: float | None = None) -> ShellResponse:
        """Block until the next response is delivered.

        Raises ``queue.Empty`` when ``timeout_seconds`` elapses first.
        """

        return self._responses.get(timeout=timeout_seconds)

    def drain_response(self, timeout_seconds: float) -> ShellResponse | None:
        try:
            return self._responses.get(timeout=timeout_seconds)
        except queue.Empty:
            return None

    def stop(self) -> None:
        """Signal the reader to kill the shell and exit."""

        self._quit.set()
        self._requests.put(_QUIT)

    def join(self, timeout_seconds: float | None = None) -> None:
        if self._thread is None:
            return
        self._thread.join(timeout=timeout_seconds)
        if self._thread.is_alive():
            logger.warning("Reader thread %s did not stop in time", self._name)

    def _run(self) -> None:
        while True:
            item = self._requests.get()
            if item is _QUIT or self._quit.is_set():
                logger.debug("quit...")
                self._on_quit()
                return

            response = self._read_response(cast(int, item))
            if self._quit.is_set():
                # Teardown does not wait for a consumer; hand over if one is waiting.
                with contextlib.suppress(queue.Full):
                    self._responses.put_nowait(response)
                logger.debug("quit while %d was in flight", response.submission_id)
                self._on_quit()
                return
            self._responses.put(response)

    def _read_response(self, submission_id: int) -> ShellResponse:
        buffer = bytearray(self._remainder)
        self._remainder = b""
        logger.debug("%d: ==> rem=%r", submission_id, bytes(buffer))

        frame = try_decode(buffer, submission_id)
        scan_from = 0
        while frame is None:
            scan_from = resume_offset(buffer, scan_from)
            try:
                chunk = os.read(self._fd, self._chunk_size)
            except OSError as error:
                logger.debug("%d: read failed: %s", submission_id, error)
                return ShellResponse(
                    submission_id=submission_id,
                    payload=bytes(buffer),
                    error=ShellReadError(f"Reading shell output failed: {error}"),
                )
            if not chunk:
                logger.debug("%d: EOF with %d buffered bytes", submission_id, len(buffer))
                return ShellResponse(
                    submission_id=submission_id,
                    payload=bytes(buffer),
                    error=ShellReadError("Shell output closed before the response marker"),
                )
            buffer.extend(chunk)
            logger.debug("%d: ..acc.. n=%d total=%d", submission_id, len(chunk), len(buffer))
            frame = try_decode(buffer, submission_id, start=scan_from)

        self._remainder = frame.remainder
        error = classify_exit_code(frame.exit_code, payload=frame.payload)
        logger.debug(
            "%d: <<< %r rc=%s rem=%r",
            submission_id,
            frame.payload,
            frame.exit_code,
            frame.remainder,
        )
        return ShellResponse(submission_id=submission_id, payload=frame.payload, error=error)
