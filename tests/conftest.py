# tests/conftest.py
import io
import struct
import zipfile
import zlib

import pytest

NORMAL_MEMBERS = [
    ("first.txt", b"The first file in the archive.\n" * 40),
    ("folder/second.bin", bytes(range(256)) * 8),
    ("folder/nested/third.txt", b"third\n"),
    ("empty.txt", b""),
]

SMALL_MEMBERS = [("small.txt", b"x")]

UNICODE_MEMBERS = [
    ("ünïcödé/файл.txt", "Привет, мир".encode("utf-8")),
    ("日本語.txt", "こんにちは".encode("utf-8")),
]


def _zipfile_bytes(members, compression=zipfile.ZIP_DEFLATED, comment=b""):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as z:
        for name, data in members:
            z.writestr(name, data)
        z.comment = comment
    return buf.getvalue()


def _raw_zip_bytes(entries, prefix=b"", fake64=False, comment=b""):
    """Assemble an archive record by record.

    Each entry is a dict with 'name' (str or bytes) and 'data', and optionally
    'flags', 'method', 'extra', 'crc', 'size' (declared sizes) and 'date'/'time'.
    Offsets are relative to the start of the archive, after 'prefix'.
    """
    body = bytearray()
    central = bytearray()
    for e in entries:
        name = e["name"] if isinstance(e["name"], bytes) else e["name"].encode("utf-8")
        data = e["data"]
        flags = e.get("flags", 0)
        method = e.get("method", 0)
        extra = e.get("extra", b"")
        crc = e.get("crc", zlib.crc32(data) & 0xFFFFFFFF)
        size = e.get("size", len(data))
        dos_date = e.get("date", 0x21)
        dos_time = e.get("time", 0)
        offset = len(body)
        body += struct.pack(
            "<IHHHHHIIIHH", 0x04034B50, 20, flags, method, dos_time, dos_date,
            crc, size, size, len(name), len(extra),
        )
        body += name + extra + data
        central += struct.pack(
            "<IHHHHHHIIIHHHHHII", 0x02014B50, 20, 20, flags, method, dos_time, dos_date,
            crc, size, size, len(name), len(extra), 0, 0, 0, 0, offset,
        )
        central += name + extra

    count = len(entries)
    cd_offset = len(body)
    cd_size = len(central)
    tail = b""
    if fake64:
        zip64_pos = cd_offset + cd_size
        tail += struct.pack(
            "<IQHHIIQQQQ", 0x06064B50, 44, 45, 45, 0, 0, count, count, cd_size, cd_offset
        )
        tail += struct.pack("<IIQI", 0x07064B50, 0, zip64_pos, 1)
    eocd = struct.pack(
        "<IHHHHIIH", 0x06054B50, 0, 0, count, count, cd_size, cd_offset, len(comment)
    )
    return prefix + bytes(body) + bytes(central) + tail + eocd + comment


@pytest.fixture
def make_zip():
    """Factory building an archive with the standard library zipfile module."""
    return _zipfile_bytes


@pytest.fixture
def make_raw_zip():
    """Factory building an archive from hand-assembled records."""
    return _raw_zip_bytes


SAMPLE_KINDS = ["normal", "fake64", "empty", "appended", "prepended", "emptydir", "small", "unicode"]


def _sample(kind):
    if kind == "normal":
        return _zipfile_bytes(NORMAL_MEMBERS), NORMAL_MEMBERS
    if kind == "fake64":
        members = NORMAL_MEMBERS
        return _raw_zip_bytes([{"name": n, "data": d} for n, d in members], fake64=True), members
    if kind == "empty":
        return _zipfile_bytes([]), []
    if kind == "appended":
        return _zipfile_bytes(NORMAL_MEMBERS) + b"trailing bytes after the archive" * 3, NORMAL_MEMBERS
    if kind == "prepended":
        return b"#!/bin/sh\nexit 0\n" + b"\x00" * 500 + _zipfile_bytes(NORMAL_MEMBERS), NORMAL_MEMBERS
    if kind == "emptydir":
        members = [("emptydir/", b"")]
        return _zipfile_bytes(members), members
    if kind == "small":
        return _zipfile_bytes(SMALL_MEMBERS), SMALL_MEMBERS
    if kind == "unicode":
        return _zipfile_bytes(UNICODE_MEMBERS), UNICODE_MEMBERS
    raise ValueError(kind)


@pytest.fixture(params=SAMPLE_KINDS)
def sample_archive(request):
    """(archive bytes, expected [(name, contents)]) for each sample layout."""
    return _sample(request.param)


class NonSeekableReader(io.RawIOBase):
    """Forward-only stream over bytes that records whether it was closed."""

    def __init__(self, data):
        super().__init__()
        self._inner = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, b):
        return self._inner.readinto(b)


class CloseCountingStream(io.BytesIO):
    """BytesIO that counts close() calls."""

    def __init__(self, data=b""):
        super().__init__(data)
        self.close_count = 0

    def close(self):
        self.close_count += 1
        super().close()


@pytest.fixture
def non_seekable():
    return NonSeekableReader


@pytest.fixture
def counting_stream():
    return CloseCountingStream
