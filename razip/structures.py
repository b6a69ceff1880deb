"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
ZIP structure definitions and parsing functions.

This module defines dataclasses for the ZIP records the engine reads:
local file headers, central directory headers, end of central directory
records, ZIP64 extensions and extra-field blocks.

Every parser reads from a file-like object through the exact-read helpers,
so the same code runs over a file, a BytesIO slice or the central
directory window reader.
"""

import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

from .constants import (
    CENTRAL_DIR_HEADER,
    END_OF_CENTRAL_DIR,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    MAX_CD_OFFSET,
    MAX_FILE_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_EXTRA_FIELD_TAG,
)
from .errors import ZipFormatError
from .utils import (
    read_exact,
    read_uint16,
    read_uint32,
    read_uint64,
)


@dataclass
class LocalFileHeader:
    """Local file header structure.

    This header appears before each file's compressed data in the ZIP archive.
    """

    signature: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename_len: int
    extra_len: int
    filename: bytes
    extra: bytes

    @property
    def header_size(self) -> int:
        """Total size of the header including its variable-length blocks."""
        return LOCAL_FILE_HEADER_SIZE + self.filename_len + self.extra_len


@dataclass
class CentralDirectoryHeader:
    """Central directory header structure.

    This header appears in the central directory and contains information
    about a file entry, including a pointer to the local file header.
    """

    signature: int
    version_made_by: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename_len: int
    extra_len: int
    comment_len: int
    disk_num: int
    internal_attrs: int
    external_attrs: int
    local_header_offset: int
    filename: bytes
    extra: bytes
    comment: bytes


@dataclass
class EndOfCentralDirectory:
    """End of Central Directory record.

    This record marks the end of the central directory and contains
    information needed to locate the central directory.
    """

    signature: int
    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int
    comment_len: int
    comment: bytes


@dataclass
class Zip64EndOfCentralDirectory:
    """ZIP64 End of Central Directory record."""

    signature: int
    size: int
    version_made_by: int
    version_needed: int
    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int


@dataclass
class Zip64Locator:
    """ZIP64 End of Central Directory Locator.

    This record points to the ZIP64 End of Central Directory record.
    """

    signature: int
    disk_num: int
    zip64_eocd_offset: int
    total_disks: int


@dataclass
class Zip64ExtraField:
    """ZIP64 extra field data.

    Only the values whose 32-bit counterpart is saturated are present.
    """

    original_size: Optional[int] = None
    compressed_size: Optional[int] = None
    local_header_offset: Optional[int] = None
    disk_start: Optional[int] = None


@dataclass
class ExtraField:
    """One tagged block of an extra-field area."""

    tag: int
    data: bytes


def parse_local_file_header(f: BinaryIO) -> LocalFileHeader:
    """Parse a local file header from the current file position.

    Args:
        f: Binary file-like object positioned at the start of a local file header.

    Returns:
        LocalFileHeader object.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    signature = read_uint32(f)
    if signature != LOCAL_FILE_HEADER:
        raise ZipFormatError(
            f"Invalid local file header signature: 0x{signature:08X}, "
            f"expected 0x{LOCAL_FILE_HEADER:08X}"
        )

    version = read_uint16(f)
    flags = read_uint16(f)
    compression_method = read_uint16(f)
    mod_time = read_uint16(f)
    mod_date = read_uint16(f)
    crc32 = read_uint32(f)
    compressed_size = read_uint32(f)
    uncompressed_size = read_uint32(f)
    filename_len = read_uint16(f)
    extra_len = read_uint16(f)

    filename = read_exact(f, filename_len)
    extra = read_exact(f, extra_len)

    return LocalFileHeader(
        signature=signature,
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc32,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        filename_len=filename_len,
        extra_len=extra_len,
        filename=filename,
        extra=extra,
    )


def parse_central_directory_header(f: BinaryIO) -> CentralDirectoryHeader:
    """Parse a central directory header from the current file position.

    The fixed 46-byte portion is consumed first; the name, extra and
    comment lengths it carries decide how many bytes are pulled next.

    Args:
        f: Binary file-like object positioned at the start of a central directory header.

    Returns:
        CentralDirectoryHeader object.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    signature = read_uint32(f)
    if signature != CENTRAL_DIR_HEADER:
        raise ZipFormatError(
            f"Invalid central directory header signature: 0x{signature:08X}, "
            f"expected 0x{CENTRAL_DIR_HEADER:08X}"
        )

    version_made_by = read_uint16(f)
    version = read_uint16(f)
    flags = read_uint16(f)
    compression_method = read_uint16(f)
    mod_time = read_uint16(f)
    mod_date = read_uint16(f)
    crc32 = read_uint32(f)
    compressed_size = read_uint32(f)
    uncompressed_size = read_uint32(f)
    filename_len = read_uint16(f)
    extra_len = read_uint16(f)
    comment_len = read_uint16(f)
    disk_num = read_uint16(f)
    internal_attrs = read_uint16(f)
    external_attrs = read_uint32(f)
    local_header_offset = read_uint32(f)

    filename = read_exact(f, filename_len)
    extra = read_exact(f, extra_len)
    comment = read_exact(f, comment_len)

    return CentralDirectoryHeader(
        signature=signature,
        version_made_by=version_made_by,
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc32,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        filename_len=filename_len,
        extra_len=extra_len,
        comment_len=comment_len,
        disk_num=disk_num,
        internal_attrs=internal_attrs,
        external_attrs=external_attrs,
        local_header_offset=local_header_offset,
        filename=filename,
        extra=extra,
        comment=comment,
    )


def parse_eocd(f: BinaryIO) -> EndOfCentralDirectory:
    """Parse an End of Central Directory record from the current file position.

    Args:
        f: Binary file-like object positioned at the start of an EOCD record.

    Returns:
        EndOfCentralDirectory object.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    signature = read_uint32(f)
    if signature != END_OF_CENTRAL_DIR:
        raise ZipFormatError(
            f"Invalid EOCD signature: 0x{signature:08X}, "
            f"expected 0x{END_OF_CENTRAL_DIR:08X}"
        )

    disk_num = read_uint16(f)
    cd_disk = read_uint16(f)
    cd_records_on_disk = read_uint16(f)
    cd_records_total = read_uint16(f)
    cd_size = read_uint32(f)
    cd_offset = read_uint32(f)
    comment_len = read_uint16(f)
    comment = read_exact(f, comment_len)

    return EndOfCentralDirectory(
        signature=signature,
        disk_num=disk_num,
        cd_disk=cd_disk,
        cd_records_on_disk=cd_records_on_disk,
        cd_records_total=cd_records_total,
        cd_size=cd_size,
        cd_offset=cd_offset,
        comment_len=comment_len,
        comment=comment,
    )


def parse_zip64_eocd(f: BinaryIO) -> Zip64EndOfCentralDirectory:
    """Parse a ZIP64 End of Central Directory record from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    signature = read_uint32(f)
    if signature != ZIP64_END_OF_CENTRAL_DIR:
        raise ZipFormatError(
            f"Invalid ZIP64 EOCD signature: 0x{signature:08X}, "
            f"expected 0x{ZIP64_END_OF_CENTRAL_DIR:08X}"
        )

    size = read_uint64(f)
    version_made_by = read_uint16(f)
    version_needed = read_uint16(f)
    disk_num = read_uint32(f)
    cd_disk = read_uint32(f)
    cd_records_on_disk = read_uint64(f)
    cd_records_total = read_uint64(f)
    cd_size = read_uint64(f)
    cd_offset = read_uint64(f)

    return Zip64EndOfCentralDirectory(
        signature=signature,
        size=size,
        version_made_by=version_made_by,
        version_needed=version_needed,
        disk_num=disk_num,
        cd_disk=cd_disk,
        cd_records_on_disk=cd_records_on_disk,
        cd_records_total=cd_records_total,
        cd_size=cd_size,
        cd_offset=cd_offset,
    )


def parse_zip64_locator(f: BinaryIO) -> Zip64Locator:
    """Parse a ZIP64 locator from the current file position.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    signature = read_uint32(f)
    if signature != ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
        raise ZipFormatError(
            f"Invalid ZIP64 locator signature: 0x{signature:08X}, "
            f"expected 0x{ZIP64_END_OF_CENTRAL_DIR_LOCATOR:08X}"
        )

    disk_num = read_uint32(f)
    zip64_eocd_offset = read_uint64(f)
    total_disks = read_uint32(f)

    return Zip64Locator(
        signature=signature,
        disk_num=disk_num,
        zip64_eocd_offset=zip64_eocd_offset,
        total_disks=total_disks,
    )


def iter_extra_fields(extra_data: bytes) -> Iterator[ExtraField]:
    """Iterate over the tagged blocks of an extra-field area.

    A trailing block whose declared size runs past the area ends the
    iteration; some writers pad the area with a few stray bytes.
    """
    pos = 0
    while pos + 4 <= len(extra_data):
        tag, size = struct.unpack_from("<HH", extra_data, pos)
        pos += 4
        if pos + size > len(extra_data):
            break
        yield ExtraField(tag=tag, data=extra_data[pos : pos + size])
        pos += size


def find_extra_field(extra_data: bytes, tag: int) -> Optional[ExtraField]:
    """Return the first extra-field block carrying 'tag', if any."""
    for field in iter_extra_fields(extra_data):
        if field.tag == tag:
            return field
    return None


def parse_zip64_extra_field(
    extra_data: bytes,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: int = 0,
    disk_num: int = 0,
) -> Optional[Zip64ExtraField]:
    """Parse the ZIP64 extra field for a header with the given 32-bit values.

    The ZIP64 block stores a 64-bit value only for each header field that is
    saturated (0xFFFFFFFF, or 0xFFFF for the disk number), in the fixed
    order: original size, compressed size, local header offset, disk start.

    Args:
        extra_data: Raw extra field bytes.
        uncompressed_size: 32-bit uncompressed size from the header.
        compressed_size: 32-bit compressed size from the header.
        local_header_offset: 32-bit local header offset from the header.
        disk_num: 16-bit disk number from the header.

    Returns:
        Zip64ExtraField object if found, None otherwise.

    Raises:
        ZipFormatError: If the block is too short for the saturated fields.
    """
    field = find_extra_field(extra_data, ZIP64_EXTRA_FIELD_TAG)
    if field is None:
        return None

    data = field.data
    zip64_extra = Zip64ExtraField()
    pos = 0

    def take(size: int, fmt: str) -> int:
        nonlocal pos
        if pos + size > len(data):
            raise ZipFormatError(
                f"ZIP64 extra field too short: need {pos + size} bytes, have {len(data)}"
            )
        value = struct.unpack_from(fmt, data, pos)[0]
        pos += size
        return value

    if uncompressed_size == MAX_FILE_SIZE:
        zip64_extra.original_size = take(8, "<Q")
    if compressed_size == MAX_FILE_SIZE:
        zip64_extra.compressed_size = take(8, "<Q")
    if local_header_offset == MAX_CD_OFFSET:
        zip64_extra.local_header_offset = take(8, "<Q")
    if disk_num == 0xFFFF:
        zip64_extra.disk_start = take(4, "<I")

    return zip64_extra
