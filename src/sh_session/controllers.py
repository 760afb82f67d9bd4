"""Controllers for sh-session CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace

from sh_session.config import SessionSettings
from sh_session.session import ShellSession


@dataclass(slots=True)
class ExecCommand:
    """CLI input for running commands in one session."""

    commands: tuple[str, ...]
    keep_going: bool
    timeout_seconds: float | None


@dataclass(slots=True)
class EnvCommand:
    """CLI input for listing the session environment."""

    timeout_seconds: float | None = None


@dataclass(slots=True)
class PwdCommand:
    """CLI input for printing the session working directory."""

    chdir: str | None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class ExecResult:
    """Exec report to render in CLI."""

    lines: list[str]
    success: bool


class SessionCliController:
    """Runs CLI operations against a fresh shell session."""

    def exec_commands(self, command: ExecCommand) -> ExecResult:
        lines: list[str] = []
        failures = 0
        with _session(command.timeout_seconds) as session:
            for shell_command in command.commands:
                response = session.submit(shell_command)
                lines.extend(_payload_lines(response.text))
                if response.is_success:
                    continue
                failures += 1
                lines.append(
                    f"[{response.submission_id}] {shell_command!r} failed: {response.error}",
                )
                if session.closed or not command.keep_going:
                    break

        return ExecResult(lines=lines, success=failures == 0)

    def env(self, command: EnvCommand) -> list[str]:
        with _session(command.timeout_seconds) as session:
            return session.environ()

    def pwd(self, command: PwdCommand) -> list[str]:
        with _session(command.timeout_seconds) as session:
            if command.chdir is not None:
                session.chdir(command.chdir)
            return [session.getwd()]


@contextmanager
def _session(timeout_seconds: float | None) -> Iterator[ShellSession]:
    settings = SessionSettings.from_env()
    if timeout_seconds is not None:
        settings = replace(settings, timeout_seconds=timeout_seconds)
    session = ShellSession(settings)
    try:
        yield session
    finally:
        session.close()


def _payload_lines(text: str) -> list[str]:
    if not text:
        return []
    return text.removesuffix("\n").split("\n")

