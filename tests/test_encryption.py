# tests/test_encryption.py
import io
import struct

import pytest

from razip import EncryptionMethod, ZipArchive
from razip.encryption import describe_encryption, is_encrypted

NAMES = ["file1-encrypted.txt", "file2-unencrypted.txt", "file3-encrypted.txt", "file4-unencrypted.txt"]


def _aes_extra(strength, method=8):
    return struct.pack("<HHH2sBH", 0x9901, 7, 2, b"AE", strength, method)


def _entry(name, scheme):
    if "unencrypted" in name:
        return {"name": name, "data": b"plain text\n"}
    if scheme == "weak":
        return {"name": name, "data": b"\x5a" * 23, "flags": 0x0001}
    return {"name": name, "data": b"\xa5" * 40, "flags": 0x0001, "method": 99, "extra": _aes_extra(3)}


def _archive(make_raw_zip, schemes):
    return make_raw_zip([_entry(name, scheme) for name, scheme in zip(NAMES, schemes)])


@pytest.mark.parametrize(
    "schemes",
    [
        ["weak"] * 4,
        ["aes256"] * 4,
        ["weak", "weak", "aes256", "aes256"],
    ],
    ids=["weak", "aes256", "mixed"],
)
def test_identify_encrypted_entries(make_raw_zip, schemes):
    with ZipArchive(io.BytesIO(_archive(make_raw_zip, schemes))) as archive:
        for entry in archive.entries:
            assert entry.is_encrypted == ("-encrypted" in entry.full_name)


def test_mixed_archive_reports_methods(make_raw_zip):
    data = _archive(make_raw_zip, ["weak", "weak", "aes256", "aes256"])
    with ZipArchive(io.BytesIO(data)) as archive:
        methods = {e.full_name: e.encryption_method for e in archive.entries}
        aes_entry = archive.get_entry("file3-encrypted.txt")
        assert aes_entry.compression_method == 8
        with archive.get_entry("file4-unencrypted.txt").open() as s:
            assert s.read() == b"plain text\n"

    assert methods == {
        "file1-encrypted.txt": EncryptionMethod.ZIP_CRYPTO,
        "file2-unencrypted.txt": EncryptionMethod.NONE,
        "file3-encrypted.txt": EncryptionMethod.AES_256,
        "file4-unencrypted.txt": EncryptionMethod.NONE,
    }


def test_entries_not_encrypted_by_default(make_zip):
    data = make_zip([("a.txt", b"a"), ("b/c.txt", b"c")])
    with ZipArchive(io.BytesIO(data)) as archive:
        for entry in archive.entries:
            assert not entry.is_encrypted
            assert entry.encryption_method is EncryptionMethod.NONE


@pytest.mark.parametrize(
    "strength, expected",
    [(1, EncryptionMethod.AES_128), (2, EncryptionMethod.AES_192), (3, EncryptionMethod.AES_256)],
)
def test_aes_strengths(strength, expected):
    info = describe_encryption(0x0001, _aes_extra(strength, method=12), 99)
    assert info.method is expected
    assert info.compression_method == 12
    assert info.is_encrypted
    assert info.method.is_strong


def test_strong_encryption_header():
    extra = struct.pack("<HH", 0x0017, 8) + b"\x00" * 8
    info = describe_encryption(0x0001, extra, 8)
    assert info.method is EncryptionMethod.STRONG


def test_strong_encryption_flag():
    info = describe_encryption(0x0001 | 0x0040, b"", 8)
    assert info.method is EncryptionMethod.STRONG


def test_weak_encryption():
    info = describe_encryption(0x0001, b"", 8)
    assert info.method is EncryptionMethod.ZIP_CRYPTO
    assert not info.method.is_strong


def test_extra_field_ignored_without_encryption_flag():
    info = describe_encryption(0x0800, _aes_extra(3), 8)
    assert info.method is EncryptionMethod.NONE
    assert not info.is_encrypted
    assert info.compression_method == 8


def test_is_encrypted_checks_bit_zero():
    assert is_encrypted(0x0001)
    assert is_encrypted(0x0809)
    assert not is_encrypted(0x0800)
    assert not is_encrypted(0x0040)
