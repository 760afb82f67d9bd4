"""Shell command strings for the session convenience wrappers.

Each builder returns the exact text submitted to the shell; the parsers turn a
response payload back into a Python value. Values are not validated: keys,
scripts and arguments reach the shell as given.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

PRINTENV_PATH = "/usr/bin/printenv"

_SHELL_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def double_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def setenv_command(key: str, value: str) -> str:
    return f"export {key}={double_quote(value)}"


def getenv_command(key: str) -> str:
    return f"echo ${{{key}}}"


def source_command(script: str, args: Iterable[str] = ()) -> str:
    return f". {script} {' '.join(args)}"


def run_command(command: str, args: Iterable[str] = ()) -> str:
    return " ".join([command, *args])


def chdir_command(directory: str) -> str:
    return f"cd {double_quote(directory)}"


def environ_command() -> str:
    return PRINTENV_PATH


def getwd_command() -> str:
    return "pwd"


def clearenv_command(environ: Iterable[str]) -> str:
    """Build one ``unset KEY;`` statement per ``KEY=VALUE`` entry.

    Entries whose key is not a shell name (continuation lines of multi-line
    values, exported functions) are skipped: ``unset`` on them would make a
    non-interactive shell exit.
    """

    keys = (entry.split("=", 1)[0] for entry in environ if "=" in entry)
    return "".join(f"unset {key};" for key in keys if _SHELL_NAME_RE.fullmatch(key))


def parse_getenv(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace").strip("\r\n")


def parse_getwd(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace").strip("\n")


def parse_environ(payload: bytes) -> list[str]:
    text = payload.decode("utf-8", errors="replace").strip("\n")
    if not text:
        return []
    return text.split("\n")
