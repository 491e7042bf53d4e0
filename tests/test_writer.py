import io
from pathlib import Path

import pytest

from substack_wxr.errors import IOStateError
from substack_wxr.writer import BufferWriter, FileWriter, open_writer


def test_buffer_writer_accumulates_text_without_extra_whitespace() -> None:
    writer = BufferWriter().open()
    writer.write("<a>")
    writer.write("b")
    writer.write("</a>")

    assert writer.getvalue() == "<a>b</a>"
    assert writer.tell() == 8


def test_buffer_writer_reopens_shared_buffer_and_appends() -> None:
    buffer = io.StringIO()
    with open_writer(buffer) as writer:
        writer.write("first")
    with open_writer(buffer) as writer:
        writer.write("-second")

    assert buffer.getvalue() == "first-second"


def test_write_after_close_raises_io_state_error() -> None:
    writer = BufferWriter().open()
    writer.close()

    with pytest.raises(IOStateError):
        writer.write("late")
    with pytest.raises(IOStateError):
        writer.tell()


def test_truncate_drops_tail_and_later_writes_append(tmp_path: Path) -> None:
    path = tmp_path / "out.xml"
    with open_writer(path) as writer:
        writer.write("committed|partial")
        writer.truncate(len("committed|"))
        writer.write("redo")
        assert writer.tell() == len("committed|redo")

    assert path.read_text(encoding="utf-8") == "committed|redo"


def test_file_writer_counts_bytes_for_non_ascii(tmp_path: Path) -> None:
    path = tmp_path / "out.xml"
    with open_writer(path) as writer:
        writer.write("é")
        assert writer.tell() == 2


def test_open_writer_releases_file_handle_on_error(tmp_path: Path) -> None:
    path = tmp_path / "out.xml"
    captured: list[FileWriter] = []

    with pytest.raises(RuntimeError):
        with open_writer(path) as writer:
            assert isinstance(writer, FileWriter)
            captured.append(writer)
            writer.write("x")
            raise RuntimeError("boom")

    assert captured[0].closed
    assert path.read_text(encoding="utf-8") == "x"


def test_file_writer_reports_unopenable_target(tmp_path: Path) -> None:
    with pytest.raises(IOStateError):
        FileWriter().open(tmp_path)
