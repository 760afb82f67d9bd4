"""Shared test fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from sh_session.config import SessionSettings
from sh_session.session import ShellSession

# Keeps a broken framing from hanging the whole run.
_TEST_TIMEOUT_SECONDS = 30.0


@pytest.fixture()
def settings() -> SessionSettings:
    return SessionSettings(timeout_seconds=_TEST_TIMEOUT_SECONDS)


@pytest.fixture()
def session(settings: SessionSettings) -> Iterator[ShellSession]:
    shell = ShellSession(settings)
    try:
        yield shell
    finally:
        shell.close()


@pytest.fixture()
def restore_package_logger() -> Iterator[logging.Logger]:
    package_logger = logging.getLogger("sh_session")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    try:
        yield package_logger
    finally:
        for handler in list(package_logger.handlers):
            if handler not in handlers:
                package_logger.removeHandler(handler)
        package_logger.setLevel(level)
