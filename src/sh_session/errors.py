"""Error types surfaced by shell sessions."""

from __future__ import annotations


class ShellError(RuntimeError):
    """Base class for every failure a shell session reports."""


class ShellSpawnError(ShellError):
    """The child shell could not be started or initialised."""


class ShellWriteError(ShellError):
    """Writing a submission to the shell's stdin failed."""


class ShellReadError(ShellError):
    """The shell's output failed or closed before a response marker arrived."""


class SessionClosedError(ShellError):
    """A submission was attempted on a closed session."""


class ShellExitError(ShellError):
    """Submitted command finished with a non-zero exit status."""

    def __init__(self, rc: str, *, payload: bytes = b"") -> None:
        super().__init__(f"exit status {rc}")
        self.rc = rc
        self.exit_code = int(rc)
        self.payload = payload


class ShellTimeoutError(ShellError):
    """Submitted command did not finish before its deadline."""

    def __init__(self, timeout_seconds: float, *, payload: bytes = b"") -> None:
        super().__init__(f"shell command did not finish within {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds
        self.payload = payload
