# tests/test_modes.py
import io
from datetime import datetime

import pytest

from razip import (
    ArchiveMode,
    StreamCapability,
    ZipArchive,
    ZipDisposedError,
    ZipEntryStateError,
    ZipNotSupportedError,
)


@pytest.fixture
def readable_zip(make_zip):
    return make_zip([("a.txt", b"alpha"), ("b.txt", b"beta")])


def test_mode_strings_are_accepted(readable_zip):
    with ZipArchive(io.BytesIO(readable_zip), mode="r") as archive:
        assert archive.mode is ArchiveMode.READ
    with ZipArchive(io.BytesIO(), mode="w") as archive:
        assert archive.mode is ArchiveMode.CREATE
    with ZipArchive(io.BytesIO(readable_zip), mode="a") as archive:
        assert archive.mode is ArchiveMode.UPDATE


def test_unknown_mode():
    with pytest.raises(ValueError):
        ZipArchive(io.BytesIO(), mode="x")


def test_read_mode_invalid_operations(readable_zip):
    archive = ZipArchive(io.BytesIO(readable_zip))
    entry = archive.entries[0]

    with pytest.raises(ZipNotSupportedError):
        archive.create_entry("new.txt")
    with pytest.raises(ZipNotSupportedError):
        entry.delete()
    with pytest.raises(ZipNotSupportedError):
        entry.last_write_time = datetime(2020, 1, 1)
    with pytest.raises(ZipNotSupportedError):
        archive.comment = b"comment"

    s = entry.open()
    with pytest.raises(ZipNotSupportedError):
        s.flush()
    with pytest.raises(ZipNotSupportedError):
        s.write(b"x")
    with pytest.raises(ZipNotSupportedError):
        s.seek(0)
    with pytest.raises(ZipNotSupportedError):
        s.truncate(0)

    archive.close()

    with pytest.raises(ZipDisposedError):
        archive.entries
    with pytest.raises(ZipNotSupportedError):
        archive.create_entry("new.txt")
    with pytest.raises(ZipDisposedError):
        entry.open()
    with pytest.raises(ZipNotSupportedError):
        entry.delete()
    with pytest.raises(ZipDisposedError):
        entry.last_write_time = datetime(2020, 1, 1)
    with pytest.raises(ZipNotSupportedError):
        s.read(1)


def test_metadata_after_dispose(readable_zip):
    archive = ZipArchive(io.BytesIO(readable_zip))
    entry = archive.entries[0]
    archive.close()

    with pytest.raises(ZipDisposedError):
        entry.length
    with pytest.raises(ZipDisposedError):
        entry.last_write_time
    with pytest.raises(ZipDisposedError):
        entry.is_encrypted
    with pytest.raises(ZipDisposedError):
        archive.get_entry("a.txt")
    with pytest.raises(ZipDisposedError):
        archive.comment
    assert entry.full_name == "a.txt"


def test_disposed_is_distinct_from_not_supported(readable_zip):
    archive = ZipArchive(io.BytesIO(readable_zip))
    archive.close()
    with pytest.raises(ZipDisposedError) as excinfo:
        archive.entries
    assert not isinstance(excinfo.value, ZipNotSupportedError)


def test_create_mode_stream_is_write_only():
    with ZipArchive(io.BytesIO(), mode=ArchiveMode.CREATE) as archive:
        entry = archive.create_entry("new.txt")
        with entry.open() as s:
            assert s.capabilities == StreamCapability.WRITE
            assert s.writable()
            assert not s.readable()
            assert not s.seekable()
            s.write(b"data")
            s.flush()
            with pytest.raises(ZipNotSupportedError):
                s.read(1)
            with pytest.raises(ZipNotSupportedError):
                s.seek(0)
            with pytest.raises(ZipNotSupportedError):
                s.tell()


def test_create_mode_entry_opens_once():
    with ZipArchive(io.BytesIO(), mode=ArchiveMode.CREATE) as archive:
        entry = archive.create_entry("once.txt")
        with entry.open() as s:
            s.write(b"1")
        with pytest.raises(ZipEntryStateError):
            entry.open()

        written = archive.add_bytes("bytes.txt", b"2")
        with pytest.raises(ZipEntryStateError):
            written.open()


def test_create_mode_cannot_delete():
    with ZipArchive(io.BytesIO(), mode=ArchiveMode.CREATE) as archive:
        entry = archive.create_entry("a.txt")
        with pytest.raises(ZipNotSupportedError):
            entry.delete()


def test_update_mode_stream_capabilities(readable_zip):
    with ZipArchive(io.BytesIO(readable_zip), mode=ArchiveMode.UPDATE) as archive:
        entry = archive.get_entry("a.txt")
        with entry.open() as s:
            assert s.capabilities == StreamCapability.READ | StreamCapability.WRITE | StreamCapability.SEEK
            assert s.read() == b"alpha"
            s.seek(0)
            assert s.tell() == 0
            assert s.read(2) == b"al"


def test_update_mode_one_stream_per_entry(readable_zip):
    with ZipArchive(io.BytesIO(readable_zip), mode=ArchiveMode.UPDATE) as archive:
        entry = archive.get_entry("a.txt")
        s = entry.open()
        with pytest.raises(ZipEntryStateError):
            entry.open()
        with pytest.raises(ZipEntryStateError):
            entry.delete()
        s.close()
        with entry.open() as again:
            assert again.read() == b"alpha"


def test_update_mode_requires_seekable_storage(readable_zip, non_seekable):
    with pytest.raises(ZipNotSupportedError):
        ZipArchive(non_seekable(readable_zip), mode=ArchiveMode.UPDATE)


def test_read_mode_requires_readable_storage():
    class WriteOnly(io.RawIOBase):
        def writable(self):
            return True

        def write(self, b):
            return len(b)

    with pytest.raises(ZipNotSupportedError):
        ZipArchive(WriteOnly())


def test_closed_entry_stream_raises_value_error(readable_zip):
    with ZipArchive(io.BytesIO(readable_zip)) as archive:
        s = archive.entries[0].open()
        s.close()
        with pytest.raises(ValueError):
            s.read(1)
