from __future__ import annotations

import os
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass

import allure
import pytest

from sh_session.errors import ShellExitError, ShellReadError
from sh_session.reader import ShellReader, ShellResponse

pytestmark = [
    allure.epic("Shell Session"),
    allure.feature("Reader Loop"),
]

_WAIT_SECONDS = 5.0


@dataclass(slots=True)
class _PipeReader:
    reader: ShellReader
    write_fd: int
    quit_called: threading.Event

    def feed(self, data: bytes) -> None:
        os.write(self.write_fd, data)

    def close_writer(self) -> None:
        if self.write_fd >= 0:
            os.close(self.write_fd)
            self.write_fd = -1


def _open_reader(chunk_size: int = 512) -> tuple[_PipeReader, int]:
    read_fd, write_fd = os.pipe()
    quit_called = threading.Event()
    reader = ShellReader(fd=read_fd, on_quit=quit_called.set, chunk_size=chunk_size)
    return _PipeReader(reader=reader, write_fd=write_fd, quit_called=quit_called), read_fd


@pytest.fixture()
def pipe_reader() -> Iterator[_PipeReader]:
    handle, read_fd = _open_reader()
    handle.reader.start()
    try:
        yield handle
    finally:
        handle.reader.stop()
        handle.close_writer()
        handle.reader.join(_WAIT_SECONDS)
        os.close(read_fd)


@pytest.fixture()
def byte_reader() -> Iterator[_PipeReader]:
    handle, read_fd = _open_reader(chunk_size=1)
    handle.reader.start()
    try:
        yield handle
    finally:
        handle.reader.stop()
        handle.close_writer()
        handle.reader.join(_WAIT_SECONDS)
        os.close(read_fd)


def test_reader_carries_bytes_after_marker_into_next_response(pipe_reader: _PipeReader) -> None:
    pipe_reader.feed(b"one\n__@@GOSH@@__{{1:0}}\ntwo\n__@@GOSH@@__{{2:3}}\n")

    pipe_reader.reader.request(1)
    first = pipe_reader.reader.wait_response(_WAIT_SECONDS)
    pipe_reader.reader.request(2)
    second = pipe_reader.reader.wait_response(_WAIT_SECONDS)

    assert first.submission_id == 1
    assert first.payload == b"one\n"
    assert first.is_success
    assert second.submission_id == 2
    assert second.payload == b"two\n"
    assert isinstance(second.error, ShellExitError)
    assert second.error.rc == "3"


def test_reader_reassembles_single_byte_reads(byte_reader: _PipeReader) -> None:
    payload = b"x" * 300 + b"\n"
    byte_reader.feed(payload + b"__@@GOSH@@__{{1:0}}\n__@@GOSH@@__{{2:0}}\n")

    byte_reader.reader.request(1)
    first = byte_reader.reader.wait_response(_WAIT_SECONDS)
    byte_reader.reader.request(2)
    second = byte_reader.reader.wait_response(_WAIT_SECONDS)

    assert first.payload == payload
    assert second.payload == b""
    assert second.is_success


def test_reader_waits_for_output_written_after_request(pipe_reader: _PipeReader) -> None:
    pipe_reader.reader.request(1)
    with pytest.raises(queue.Empty):
        pipe_reader.reader.wait_response(0.05)

    pipe_reader.feed(b"late\n")
    pipe_reader.feed(b"__@@GOSH@@__{{1:0}}\n")

    response = pipe_reader.reader.wait_response(_WAIT_SECONDS)
    assert response.payload == b"late\n"


def test_reader_reports_end_of_output_with_accumulated_payload(pipe_reader: _PipeReader) -> None:
    pipe_reader.feed(b"partial")
    pipe_reader.close_writer()

    pipe_reader.reader.request(1)
    response = pipe_reader.reader.wait_response(_WAIT_SECONDS)

    assert isinstance(response.error, ShellReadError)
    assert response.payload == b"partial"


def test_reader_stop_runs_quit_callback_and_exits(pipe_reader: _PipeReader) -> None:
    pipe_reader.reader.stop()
    pipe_reader.reader.join(_WAIT_SECONDS)

    assert pipe_reader.quit_called.is_set()
    assert not pipe_reader.reader.is_alive


def test_reader_stop_releases_in_flight_read(pipe_reader: _PipeReader) -> None:
    pipe_reader.reader.request(1)
    with pytest.raises(queue.Empty):
        pipe_reader.reader.wait_response(0.2)
    pipe_reader.reader.stop()
    pipe_reader.close_writer()
    pipe_reader.reader.join(_WAIT_SECONDS)

    assert pipe_reader.quit_called.is_set()
    response = pipe_reader.reader.drain_response(_WAIT_SECONDS)
    assert response is not None
    assert isinstance(response.error, ShellReadError)


def test_reader_rejects_non_positive_chunk_size() -> None:
    with pytest.raises(ValueError, match="chunk_size"):
        ShellReader(fd=0, on_quit=lambda: None, chunk_size=0)


def test_reader_cannot_start_twice(pipe_reader: _PipeReader) -> None:
    with pytest.raises(RuntimeError, match="already started"):
        pipe_reader.reader.start()


def test_response_raise_for_error_returns_payload_or_raises() -> None:
    ok = ShellResponse(submission_id=1, payload=b"caf\xc3\xa9\n")
    failed = ShellResponse(submission_id=2, payload=b"", error=ShellExitError("1"))

    assert ok.raise_for_error() == b"caf\xc3\xa9\n"
    assert ok.text == "café\n"
    with pytest.raises(ShellExitError):
        failed.raise_for_error()
