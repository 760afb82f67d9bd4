"""Persistent POSIX shell sessions with framed request/response submissions."""

from sh_session.config import SessionSettings
from sh_session.errors import (
    SessionClosedError,
    ShellError,
    ShellExitError,
    ShellReadError,
    ShellSpawnError,
    ShellTimeoutError,
    ShellWriteError,
)
from sh_session.reader import ShellResponse
from sh_session.session import ShellSession

__version__ = "0.1.0"

__all__ = [
    "SessionClosedError",
    "SessionSettings",
    "ShellError",
    "ShellExitError",
    "ShellReadError",
    "ShellResponse",
    "ShellSession",
    "ShellSpawnError",
    "ShellTimeoutError",
    "ShellWriteError",
    "__version__",
]
