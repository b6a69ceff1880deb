# tests/test_lifecycle.py
import io

import pytest

from razip import ArchiveMode, ZipArchive, ZipDisposedError


@pytest.mark.parametrize("leave_open, expected_closes", [(True, 0), (False, 1)])
def test_dispose_closes_underlying_stream_once(make_zip, counting_stream, leave_open, expected_closes):
    stream = counting_stream(make_zip([("a.txt", b"a")]))
    archive = ZipArchive(stream, leave_open=leave_open)
    archive.close()
    archive.close()
    archive.dispose()
    assert stream.close_count == expected_closes


@pytest.mark.parametrize("mode", [ArchiveMode.READ, ArchiveMode.UPDATE])
def test_dispose_counting_in_other_modes(make_zip, counting_stream, mode):
    stream = counting_stream(make_zip([("a.txt", b"a")]))
    with ZipArchive(stream, mode=mode, leave_open=False):
        pass
    assert stream.close_count == 1


def test_create_mode_leave_open_keeps_output(counting_stream):
    stream = counting_stream()
    with ZipArchive(stream, mode=ArchiveMode.CREATE, leave_open=True) as archive:
        archive.add_bytes("a.txt", b"alpha")
    assert stream.close_count == 0
    assert not stream.closed

    stream.seek(0)
    with ZipArchive(stream, leave_open=True) as archive:
        with archive.get_entry("a.txt").open() as s:
            assert s.read() == b"alpha"


def test_context_manager_disposes(make_zip):
    stream = io.BytesIO(make_zip([("a.txt", b"a")]))
    with ZipArchive(stream) as archive:
        assert len(archive.entries) == 1
    assert stream.closed
    with pytest.raises(ZipDisposedError):
        archive.entries


def test_archive_opened_from_path_closes_its_file(tmp_path, make_zip):
    path = tmp_path / "a.zip"
    path.write_bytes(make_zip([("a.txt", b"a")]))
    archive = ZipArchive(path, leave_open=True)
    storage_file = archive._storage._file
    archive.close()
    assert storage_file.closed
    assert archive._storage.released


def test_create_mode_writes_after_existing_content(counting_stream):
    stream = counting_stream(b"")
    stream.write(b"prefix data " * 10)
    with ZipArchive(stream, mode=ArchiveMode.CREATE, leave_open=True) as archive:
        archive.add_bytes("a.txt", b"alpha")

    data = stream.getvalue()
    assert data.startswith(b"prefix data ")
    with ZipArchive(io.BytesIO(data)) as archive:
        with archive.get_entry("a.txt").open() as s:
            assert s.read() == b"alpha"
