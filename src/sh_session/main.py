"""CLI entrypoint for sh-session."""

from collections.abc import Callable
from typing import TypeVar

import rich_click as click

from sh_session import __version__
from sh_session.controllers import (
    EnvCommand,
    ExecCommand,
    PwdCommand,
    SessionCliController,
)
from sh_session.errors import ShellError

click.rich_click.USE_MARKDOWN = True
SESSION_CONTROLLER = SessionCliController()

_T = TypeVar("_T")

_TIMEOUT_OPTION = click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-command deadline in seconds. Defaults to SH_SESSION_TIMEOUT_SECONDS.",
)


@click.group()
@click.version_option(version=__version__, prog_name="sh-session")
def sh_session() -> None:
    """Persistent shell session CLI."""


@sh_session.command("exec")
@click.argument("commands", nargs=-1, required=True)
@click.option(
    "--keep-going/--stop-on-error",
    default=False,
    show_default=True,
    help="Continue with the next command after a failure.",
)
@_TIMEOUT_OPTION
def exec_commands(
    commands: tuple[str, ...],
    keep_going: bool,
    timeout_seconds: float | None,
) -> None:
    """Run each COMMAND in order inside one shell session.

    State carries over, so `cd /tmp` followed by `pwd` prints `/tmp`.
    """

    result = _run(
        lambda: SESSION_CONTROLLER.exec_commands(
            ExecCommand(
                commands=commands,
                keep_going=keep_going,
                timeout_seconds=timeout_seconds,
            ),
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("One or more shell commands failed.")


@sh_session.command("env")
@_TIMEOUT_OPTION
def env(timeout_seconds: float | None) -> None:
    """Print the environment seen by a fresh shell session."""

    _emit_lines(_run(lambda: SESSION_CONTROLLER.env(EnvCommand(timeout_seconds=timeout_seconds))))


@sh_session.command("pwd")
@click.option("--chdir", "chdir", default=None, help="Change into this directory first.")
@_TIMEOUT_OPTION
def pwd(chdir: str | None, timeout_seconds: float | None) -> None:
    """Print the working directory of a fresh shell session."""

    _emit_lines(
        _run(
            lambda: SESSION_CONTROLLER.pwd(
                PwdCommand(chdir=chdir, timeout_seconds=timeout_seconds),
            ),
        ),
    )


def _run(action: Callable[[], _T]) -> _T:
    try:
        return action()
    except (ShellError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    sh_session()
