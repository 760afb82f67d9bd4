"""Sentinel framing over the shell's merged stdout/stderr byte stream.

Every submission is followed by a trailer line that makes the shell print a
marker carrying the submission id and the exit status of the command::

    <command>
    echo __@@GOSH@@__{{<id>:$?}}

The shell answers with ``__@@GOSH@@__{{<id>:<rc>}}\\n``. Everything written
before that marker belongs to the submission; everything after it belongs to
the next one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sh_session.errors import ShellExitError

MARKER_PREFIX = "__@@GOSH@@__"
DEFAULT_READ_CHUNK_BYTES = 512

_TRAILER_TEMPLATE = "echo " + MARKER_PREFIX + "{{{{{submission_id}:$?}}}}"
_MARKER = rb"__@@GOSH@@__\{\{(\d+):(\d+)\}\}"
_LINE_END = rb"\r?\n"

_PREFIX_BYTES = MARKER_PREFIX.encode("ascii")

LEADING_MARKER_RE = re.compile(rb"\A" + _MARKER + _LINE_END)
MARKER_LINE_RE = re.compile(_MARKER + _LINE_END)
# A marker line cut off by the end of the buffer.
_OPEN_MARKER_RE = re.compile(
    rb"__@@GOSH@@__(?:\{(?:\{(?:\d+(?::(?:\d+(?:\}(?:\}\r?)?)?)?)?)?)?)?\Z",
)


@dataclass(slots=True, frozen=True)
class DecodedFrame:
    """One complete response cut out of the output stream."""

    submission_id: int
    exit_code: str
    payload: bytes
    remainder: bytes


def build_trailer(submission_id: int) -> str:
    """Return the shell line that emits the marker for ``submission_id``."""

    if submission_id < 0:
        raise ValueError(f"submission id must be non-negative: {submission_id}")
    return _TRAILER_TEMPLATE.format(submission_id=submission_id)


def build_request(command: str, submission_id: int) -> bytes:
    """Return the exact bytes written to the shell's stdin for one submission."""

    return f"{command}\n{build_trailer(submission_id)}\n".encode()


def try_decode(
    buffer: bytes | bytearray,
    expected_id: int,
    *,
    start: int = 0,
) -> DecodedFrame | None:
    """Cut the response for ``expected_id`` out of ``buffer``, or return ``None``.

    The leading-marker form (no payload) is tried before scanning for marker
    lines. A marker only ends a frame once its line terminator has arrived,
    and markers carrying any other id are ordinary payload bytes.

    ``start`` skips bytes already known to hold no complete marker line; use
    :func:`resume_offset` to compute it after an incomplete decode.
    """

    if start == 0:
        leading = LEADING_MARKER_RE.match(buffer)
        if leading is not None and int(leading.group(1)) == expected_id:
            return _frame(buffer, leading)

    # Greedy capture: the last marker with the awaited id ends the frame.
    last = None
    for match in MARKER_LINE_RE.finditer(buffer, start):
        if int(match.group(1)) == expected_id:
            last = match
    if last is None:
        return None
    return _frame(buffer, last)


def resume_offset(buffer: bytes | bytearray, start: int = 0) -> int:
    """Return where the next :func:`try_decode` scan of a growing ``buffer`` begins.

    Bytes before the offset cannot be part of a marker line that is still
    arriving, so each read is scanned once plus a marker-sized overlap.
    """

    tail = buffer.rfind(_PREFIX_BYTES, start)
    if tail != -1 and _OPEN_MARKER_RE.match(buffer, tail) is not None:
        return tail
    return max(start, len(buffer) - len(_PREFIX_BYTES) + 1)


def classify_exit_code(rc: str, *, payload: bytes = b"") -> ShellExitError | None:
    """Map the literal ``$?`` string to ``None`` on success or an exit error."""

    if rc == "0":
        return None
    return ShellExitError(rc, payload=payload)


def _frame(buffer: bytes | bytearray, match: re.Match[bytes]) -> DecodedFrame:
    return DecodedFrame(
        submission_id=int(match.group(1)),
        exit_code=match.group(2).decode("ascii"),
        payload=bytes(buffer[: match.start()]),
        remainder=bytes(buffer[match.end() :]),
    )

