# tests/test_write.py
import io
import os
import struct
import zipfile
from datetime import datetime

import pytest

from razip import (
    ArchiveMode,
    EncryptionMethod,
    ZipArchive,
    ZipFormatError,
    ZipUnsupportedFeature,
)

MEMBERS = [
    ("deflated.txt", b"deflate me " * 200, "deflate"),
    ("stored.bin", bytes(range(256)), "stored"),
    ("bzipped.txt", b"bzip2 me " * 200, "bzip2"),
    ("empty.txt", b"", "deflate"),
    ("ünïcödé/名前.txt", "unicode".encode("utf-8"), "deflate"),
]


def _create(members):
    stream = io.BytesIO()
    with ZipArchive(stream, mode=ArchiveMode.CREATE, leave_open=True) as archive:
        for name, data, compression in members:
            archive.add_bytes(name, data, compression)
    return stream.getvalue()


def _contents(data):
    with ZipArchive(io.BytesIO(data)) as archive:
        result = {}
        for entry in archive.entries:
            with entry.open() as s:
                result[entry.full_name] = s.read()
        return result


def test_create_then_read():
    data = _create(MEMBERS)
    assert _contents(data) == {name: contents for name, contents, _ in MEMBERS}


def test_created_archive_is_readable_by_zipfile():
    data = _create(MEMBERS)
    with zipfile.ZipFile(io.BytesIO(data)) as z:
        assert z.testzip() is None
        assert z.namelist() == [name for name, _, _ in MEMBERS]
        for name, contents, _ in MEMBERS:
            assert z.read(name) == contents


def test_create_records_compression_methods():
    data = _create(MEMBERS)
    with ZipArchive(io.BytesIO(data)) as archive:
        methods = {e.full_name: e.compression_method for e in archive.entries}
    assert methods["deflated.txt"] == 8
    assert methods["stored.bin"] == 0
    assert methods["bzipped.txt"] == 12
    # Empty content is always stored
    assert methods["empty.txt"] == 0


def test_create_entry_through_stream():
    stream = io.BytesIO()
    with ZipArchive(stream, mode="w", leave_open=True) as archive:
        entry = archive.create_entry("streamed.txt")
        with entry.open() as s:
            s.write(b"part one, ")
            s.write(b"part two")
        assert entry.length == len(b"part one, part two")
    assert _contents(stream.getvalue()) == {"streamed.txt": b"part one, part two"}


def test_open_streams_are_committed_on_close():
    stream = io.BytesIO()
    archive = ZipArchive(stream, mode="w", leave_open=True)
    s = archive.create_entry("left-open.txt").open()
    s.write(b"still committed")
    archive.close()
    assert s.closed
    assert _contents(stream.getvalue()) == {"left-open.txt": b"still committed"}


def test_directory_entries():
    stream = io.BytesIO()
    with ZipArchive(stream, mode="w", leave_open=True) as archive:
        archive.create_entry("folder/")
        archive.add_bytes("folder/file.txt", b"x")

    with zipfile.ZipFile(io.BytesIO(stream.getvalue())) as z:
        assert z.getinfo("folder/").is_dir()
    with ZipArchive(io.BytesIO(stream.getvalue())) as archive:
        assert archive.get_entry("folder/").is_directory
        assert not archive.get_entry("folder/file.txt").is_directory


def test_archive_comment_written():
    stream = io.BytesIO()
    with ZipArchive(stream, mode="w", leave_open=True) as archive:
        archive.comment = b"hello comment"
        archive.add_bytes("a.txt", b"a")
    with zipfile.ZipFile(io.BytesIO(stream.getvalue())) as z:
        assert z.comment == b"hello comment"


def test_add_file(tmp_path):
    source = tmp_path / "source.txt"
    source.write_bytes(b"from disk")
    target = tmp_path / "out.zip"

    with ZipArchive(target, mode="w") as archive:
        archive.add_file("copied.txt", str(source))

    assert _contents(target.read_bytes()) == {"copied.txt": b"from disk"}


def test_add_file_missing_source(tmp_path):
    with ZipArchive(io.BytesIO(), mode="w") as archive:
        with pytest.raises(ZipFormatError):
            archive.add_file("missing.txt", str(tmp_path / "nope.txt"))


def test_invalid_entry_names_and_methods():
    with ZipArchive(io.BytesIO(), mode="w") as archive:
        with pytest.raises(ZipFormatError):
            archive.create_entry("")
        with pytest.raises(ZipFormatError):
            archive.create_entry("bad\x00name")
        with pytest.raises(ZipUnsupportedFeature):
            archive.create_entry("a.txt", compression="lzma")


def test_update_modify_delete_add(make_zip):
    original = make_zip([("keep.txt", b"keep me"), ("change.txt", b"old"), ("drop.txt", b"drop me")])
    stream = io.BytesIO(original)

    with ZipArchive(stream, mode=ArchiveMode.UPDATE, leave_open=True) as archive:
        with archive.get_entry("change.txt").open() as s:
            assert s.read() == b"old"
            s.seek(0)
            s.truncate()
            s.write(b"brand new contents")
        archive.get_entry("drop.txt").delete()
        archive.add_bytes("added.txt", b"added")
        assert [e.full_name for e in archive.entries] == ["keep.txt", "change.txt", "added.txt"]
        assert archive.get_entry("drop.txt") is None

    assert _contents(stream.getvalue()) == {
        "keep.txt": b"keep me",
        "change.txt": b"brand new contents",
        "added.txt": b"added",
    }
    with zipfile.ZipFile(io.BytesIO(stream.getvalue())) as z:
        assert z.testzip() is None


def test_update_shrinks_file(make_zip):
    original = make_zip([("big.bin", os.urandom(20000)), ("small.txt", b"s")])
    stream = io.BytesIO(original)
    with ZipArchive(stream, mode="a", leave_open=True) as archive:
        archive.get_entry("big.bin").delete()
    assert len(stream.getvalue()) < len(original)
    assert _contents(stream.getvalue()) == {"small.txt": b"s"}


def test_update_preserves_prepended_stub(make_zip):
    stub = b"#!/bin/sh\necho self-extractor\n" + b"\x00" * 200
    stream = io.BytesIO(stub + make_zip([("a.txt", b"alpha")]))

    with ZipArchive(stream, mode="a", leave_open=True) as archive:
        archive.add_bytes("b.txt", b"beta")

    data = stream.getvalue()
    assert data.startswith(stub)
    assert _contents(data) == {"a.txt": b"alpha", "b.txt": b"beta"}


def test_update_without_changes_leaves_bytes_alone(make_zip):
    original = make_zip([("a.txt", b"alpha")], comment=b"keep")
    stream = io.BytesIO(original)
    with ZipArchive(stream, mode="a", leave_open=True) as archive:
        with archive.get_entry("a.txt").open() as s:
            assert s.read() == b"alpha"
    assert stream.getvalue() == original


def test_update_timestamp(make_zip):
    stream = io.BytesIO(make_zip([("a.txt", b"alpha")]))
    stamp = datetime(1999, 12, 31, 23, 59, 58)
    with ZipArchive(stream, mode="a", leave_open=True) as archive:
        archive.get_entry("a.txt").last_write_time = stamp

    stream.seek(0)
    with ZipArchive(stream) as archive:
        entry = archive.get_entry("a.txt")
        assert entry.last_write_time == stamp
        with entry.open() as s:
            assert s.read() == b"alpha"


def test_update_empty_storage_creates_archive(tmp_path):
    path = tmp_path / "new.zip"
    with ZipArchive(path, mode=ArchiveMode.UPDATE) as archive:
        assert archive.entries == ()
        archive.add_bytes("a.txt", b"alpha")
    assert _contents(path.read_bytes()) == {"a.txt": b"alpha"}


def test_update_from_path(tmp_path, make_zip):
    path = tmp_path / "existing.zip"
    path.write_bytes(make_zip([("a.txt", b"alpha")]))
    with ZipArchive(path, mode="a") as archive:
        archive.add_bytes("b.txt", b"beta")
    assert _contents(path.read_bytes()) == {"a.txt": b"alpha", "b.txt": b"beta"}


def test_update_preserves_encrypted_entries(make_raw_zip):
    aes_extra = struct.pack("<HHH2sBH", 0x9901, 7, 2, b"AE", 3, 8)
    secret = b"\xa5" * 40
    original = make_raw_zip(
        [
            {"name": "secret.txt", "data": secret, "flags": 0x0001, "method": 99, "extra": aes_extra},
            {"name": "plain.txt", "data": b"plain"},
        ]
    )
    stream = io.BytesIO(original)
    with ZipArchive(stream, mode="a", leave_open=True) as archive:
        archive.add_bytes("new.txt", b"new")

    data = stream.getvalue()
    assert secret in data
    with ZipArchive(io.BytesIO(data)) as archive:
        entry = archive.get_entry("secret.txt")
        assert entry.is_encrypted
        assert entry.encryption_method is EncryptionMethod.AES_256
        assert entry.compressed_length == len(secret)
        with archive.get_entry("plain.txt").open() as s:
            assert s.read() == b"plain"


def test_update_comment(make_zip):
    stream = io.BytesIO(make_zip([("a.txt", b"a")]))
    with ZipArchive(stream, mode="a", leave_open=True) as archive:
        archive.comment = b"new comment"
    stream.seek(0)
    with ZipArchive(stream) as archive:
        assert archive.comment == b"new comment"
