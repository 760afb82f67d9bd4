"""Runtime configuration for shell sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sh_session.framing import DEFAULT_READ_CHUNK_BYTES

DEBUG_ENV_VAR = "GO_SHELL_DEBUG"


@dataclass(slots=True)
class SessionSettings:
    """Settings for one shell session."""

    shell_path: Path = Path("/bin/sh")
    term: str = "vt100"
    read_chunk_bytes: int = DEFAULT_READ_CHUNK_BYTES
    timeout_seconds: float | None = None
    close_timeout_seconds: float = 2.0
    debug: bool = False

    @classmethod
    def from_env(cls) -> SessionSettings:
        """Load settings from environment with defaults matching a plain ``/bin/sh``."""

        return cls(
            shell_path=Path(os.getenv("SH_SESSION_SHELL", "/bin/sh")),
            term=os.getenv("SH_SESSION_TERM", "vt100"),
            read_chunk_bytes=_env_int(
                "SH_SESSION_READ_CHUNK_BYTES",
                default=DEFAULT_READ_CHUNK_BYTES,
            ),
            timeout_seconds=_env_timeout("SH_SESSION_TIMEOUT_SECONDS"),
            close_timeout_seconds=_env_float("SH_SESSION_CLOSE_TIMEOUT_SECONDS", default=2.0),
            debug=os.getenv(DEBUG_ENV_VAR) == "1",
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        if not str(self.shell_path).strip():
            raise ValueError("SH_SESSION_SHELL must not be empty.")
        if not self.term.strip():
            raise ValueError("SH_SESSION_TERM must not be empty.")
        if self.read_chunk_bytes <= 0:
            raise ValueError("SH_SESSION_READ_CHUNK_BYTES must be > 0.")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("SH_SESSION_TIMEOUT_SECONDS must be > 0.")
        if self.close_timeout_seconds <= 0:
            raise ValueError("SH_SESSION_CLOSE_TIMEOUT_SECONDS must be > 0.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid number for {name}: {raw!r}") from error


def _env_timeout(name: str) -> float | None:
    value = _env_float(name, default=0.0)
    if value == 0:
        return None
    return value
