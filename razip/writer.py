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
ZIP archive serializer.

ArchiveWriter lays out a complete archive on a storage handle: local file
headers and payloads in order, then the central directory and the End of
Central Directory record, switching to ZIP64 records when sizes, offsets or
the entry count outgrow the classic 32-bit fields. Create mode and Update
mode both finish by handing their entries to it.

All offsets written are relative to the position the writer started at,
so an archive rewritten after a prepended stub stays self-consistent.
"""

import bz2
import logging
import struct
import zlib
from dataclasses import dataclass, field
from typing import Optional

from .constants import (
    CENTRAL_DIR_HEADER,
    CENTRAL_DIR_HEADER_SIZE,
    COMP_BZIP2,
    COMP_DEFLATE,
    COMP_STORED,
    DATA_DESCRIPTOR,
    DATA_DESCRIPTOR_SIZE,
    END_OF_CENTRAL_DIR,
    END_OF_CENTRAL_DIR_SIZE,
    FLAG_UTF8,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_ENTRIES,
    MAX_FILE_SIZE,
    VERSION_BZIP2,
    VERSION_DEFAULT,
    VERSION_MADE_BY_DEFAULT,
    VERSION_STORED,
    VERSION_ZIP64,
    ZIP64_DATA_DESCRIPTOR_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_EXTRA_FIELD_TAG,
    ZIP64_LOCATOR_SIZE,
)
from .errors import ZipCompressionError, ZipFormatError, ZipUnsupportedFeature
from .storage import StorageHandle
from .structures import iter_extra_fields
from .utils import write_exact, write_uint16, write_uint32, write_uint64

logger = logging.getLogger(__name__)


def compress_payload(data: bytes, method: int) -> bytes:
    """Compress data using the given compression method id.

    Raises:
        ZipUnsupportedFeature: If the compression method is not supported.
        ZipCompressionError: If the codec fails.
    """
    if method == COMP_STORED:
        return data
    try:
        if method == COMP_DEFLATE:
            compressor = zlib.compressobj(level=zlib.Z_DEFAULT_COMPRESSION, wbits=-zlib.MAX_WBITS)
            return compressor.compress(data) + compressor.flush()
        if method == COMP_BZIP2:
            return bz2.compress(data)
    except (zlib.error, ValueError) as e:
        raise ZipCompressionError(f"Compression with method {method} failed: {e}") from e
    raise ZipUnsupportedFeature(f"Unsupported compression method: {method}")


def strip_zip64_extra(extra: bytes) -> bytes:
    """Drop any ZIP64 block from an extra-field area; the writer adds its own."""
    kept = bytearray()
    for block in iter_extra_fields(extra):
        if block.tag == ZIP64_EXTRA_FIELD_TAG:
            continue
        kept += struct.pack("<HH", block.tag, len(block.data)) + block.data
    return bytes(kept)


def _version_needed(method: int, name: str, needs_zip64: bool) -> int:
    if needs_zip64:
        return VERSION_ZIP64
    if method == COMP_BZIP2:
        return VERSION_BZIP2
    if method == COMP_DEFLATE:
        return VERSION_DEFAULT
    return VERSION_STORED if not name.endswith("/") else VERSION_DEFAULT


@dataclass
class PendingEntry:
    """Everything needed to write one entry, payload already compressed."""

    name: str
    payload: bytes
    compression_method: int
    crc32: int
    uncompressed_size: int
    mod_date: int
    mod_time: int
    flags: int = FLAG_UTF8
    external_attrs: int = 0
    internal_attrs: int = 0
    version_made_by: int = VERSION_MADE_BY_DEFAULT
    extra: bytes = b""
    comment: bytes = b""
    data_descriptor: bool = False
    raw_name: Optional[bytes] = None
    local_header_offset: int = field(default=0, init=False)

    @property
    def compressed_size(self) -> int:
        return len(self.payload)

    @property
    def name_bytes(self) -> bytes:
        if self.raw_name is not None:
            return self.raw_name
        if self.flags & FLAG_UTF8:
            return self.name.encode("utf-8")
        return self.name.encode("cp437")

    @property
    def needs_zip64_sizes(self) -> bool:
        return self.uncompressed_size > MAX_FILE_SIZE or self.compressed_size > MAX_FILE_SIZE


class ArchiveWriter:
    """Serializer for ZIP and ZIP64 archives.

    Example:
        writer = ArchiveWriter(storage)
        for entry in entries:
            writer.write_entry(entry)
        writer.finish(comment=b"")
    """

    def __init__(self, storage: StorageHandle):
        self._storage = storage
        self._written: list[PendingEntry] = []
        self._current_offset: int = 0
        self._finished: bool = False
        self._needs_zip64: bool = False

    def _write_zip64_extra_field(self, values: list[int]) -> bytes:
        """Build a ZIP64 extra field holding the given 64-bit values in order."""
        field_data = b"".join(struct.pack("<Q", value) for value in values)
        return struct.pack("<HH", ZIP64_EXTRA_FIELD_TAG, len(field_data)) + field_data

    def _write_bytes(self, data: bytes) -> None:
        write_exact(self._storage, data)
        self._current_offset += len(data)

    def _write_data_descriptor(self, entry: PendingEntry, is_zip64: bool) -> None:
        """Write the signed data descriptor that follows a preserved payload."""
        write_uint32(self._storage, DATA_DESCRIPTOR)
        write_uint32(self._storage, entry.crc32)
        if is_zip64:
            write_uint64(self._storage, entry.compressed_size)
            write_uint64(self._storage, entry.uncompressed_size)
            self._current_offset += ZIP64_DATA_DESCRIPTOR_SIZE
        else:
            write_uint32(self._storage, entry.compressed_size)
            write_uint32(self._storage, entry.uncompressed_size)
            self._current_offset += DATA_DESCRIPTOR_SIZE

    def write_entry(self, entry: PendingEntry) -> None:
        """Write the local file header and payload of one entry.

        Raises:
            ZipFormatError: If the writer is finished or the name is invalid.
        """
        if self._finished:
            raise ZipFormatError("Archive writer is already finished")

        name_bytes = entry.name_bytes
        if len(name_bytes) > 0xFFFF:
            raise ZipFormatError(f"Entry name too long: {len(name_bytes)} bytes")

        entry.local_header_offset = self._current_offset
        needs_zip64 = entry.needs_zip64_sizes
        if needs_zip64 or entry.local_header_offset > MAX_FILE_SIZE:
            self._needs_zip64 = True

        extra = strip_zip64_extra(entry.extra)
        if needs_zip64:
            # Local ZIP64 blocks always carry both sizes
            extra = self._write_zip64_extra_field([entry.uncompressed_size, entry.compressed_size]) + extra
            stored_compressed_size = MAX_FILE_SIZE
            stored_uncompressed_size = MAX_FILE_SIZE
        else:
            stored_compressed_size = entry.compressed_size
            stored_uncompressed_size = entry.uncompressed_size

        write_uint32(self._storage, LOCAL_FILE_HEADER)
        write_uint16(self._storage, _version_needed(entry.compression_method, entry.name, needs_zip64))
        write_uint16(self._storage, entry.flags)
        write_uint16(self._storage, entry.compression_method)
        write_uint16(self._storage, entry.mod_time)
        write_uint16(self._storage, entry.mod_date)
        write_uint32(self._storage, entry.crc32)
        write_uint32(self._storage, stored_compressed_size)
        write_uint32(self._storage, stored_uncompressed_size)
        write_uint16(self._storage, len(name_bytes))
        write_uint16(self._storage, len(extra))
        self._current_offset += LOCAL_FILE_HEADER_SIZE

        self._write_bytes(name_bytes)
        self._write_bytes(extra)
        self._write_bytes(entry.payload)
        if entry.data_descriptor:
            self._write_data_descriptor(entry, needs_zip64)

        self._written.append(entry)

    def _write_central_directory(self) -> tuple[int, int]:
        """Write the central directory containing all entry headers.

        Returns:
            Tuple of (cd_offset, cd_size).
        """
        cd_start_offset = self._current_offset

        for entry in self._written:
            name_bytes = entry.name_bytes

            zip64_values = []
            stored_uncompressed_size = entry.uncompressed_size
            stored_compressed_size = entry.compressed_size
            stored_local_header_offset = entry.local_header_offset
            if entry.uncompressed_size > MAX_FILE_SIZE:
                zip64_values.append(entry.uncompressed_size)
                stored_uncompressed_size = MAX_FILE_SIZE
            if entry.compressed_size > MAX_FILE_SIZE:
                zip64_values.append(entry.compressed_size)
                stored_compressed_size = MAX_FILE_SIZE
            if entry.local_header_offset > MAX_CD_OFFSET:
                zip64_values.append(entry.local_header_offset)
                stored_local_header_offset = MAX_CD_OFFSET

            extra = strip_zip64_extra(entry.extra)
            if zip64_values:
                extra = self._write_zip64_extra_field(zip64_values) + extra

            comment = entry.comment[:MAX_COMMENT_LENGTH]

            write_uint32(self._storage, CENTRAL_DIR_HEADER)
            write_uint16(self._storage, entry.version_made_by)
            write_uint16(
                self._storage,
                _version_needed(entry.compression_method, entry.name, bool(zip64_values)),
            )
            write_uint16(self._storage, entry.flags)
            write_uint16(self._storage, entry.compression_method)
            write_uint16(self._storage, entry.mod_time)
            write_uint16(self._storage, entry.mod_date)
            write_uint32(self._storage, entry.crc32)
            write_uint32(self._storage, stored_compressed_size)
            write_uint32(self._storage, stored_uncompressed_size)
            write_uint16(self._storage, len(name_bytes))
            write_uint16(self._storage, len(extra))
            write_uint16(self._storage, len(comment))
            write_uint16(self._storage, 0)  # Disk number start
            write_uint16(self._storage, entry.internal_attrs)
            write_uint32(self._storage, entry.external_attrs)
            write_uint32(self._storage, stored_local_header_offset)
            self._current_offset += CENTRAL_DIR_HEADER_SIZE

            self._write_bytes(name_bytes)
            self._write_bytes(extra)
            self._write_bytes(comment)

        cd_size = self._current_offset - cd_start_offset
        return cd_start_offset, cd_size

    def _check_needs_zip64(self, cd_offset: int, cd_size: int) -> bool:
        return (
            self._needs_zip64
            or len(self._written) >= MAX_ENTRIES
            or cd_size >= MAX_CD_SIZE
            or cd_offset >= MAX_CD_OFFSET
        )

    def _write_zip64_eocd(self, cd_offset: int, cd_size: int) -> None:
        """Write ZIP64 End of Central Directory record."""
        num_entries = len(self._written)

        write_uint32(self._storage, ZIP64_END_OF_CENTRAL_DIR)
        # Size of the record excluding signature and this field
        write_uint64(self._storage, ZIP64_END_OF_CENTRAL_DIR_SIZE - 12)
        write_uint16(self._storage, VERSION_MADE_BY_DEFAULT)
        write_uint16(self._storage, VERSION_ZIP64)
        write_uint32(self._storage, 0)  # Number of this disk
        write_uint32(self._storage, 0)  # Disk with start of central directory
        write_uint64(self._storage, num_entries)  # Entries on this disk
        write_uint64(self._storage, num_entries)  # Total entries
        write_uint64(self._storage, cd_size)
        write_uint64(self._storage, cd_offset)
        self._current_offset += ZIP64_END_OF_CENTRAL_DIR_SIZE

    def _write_zip64_locator(self, zip64_eocd_offset: int) -> None:
        """Write ZIP64 End of Central Directory Locator."""
        write_uint32(self._storage, ZIP64_END_OF_CENTRAL_DIR_LOCATOR)
        write_uint32(self._storage, 0)  # Disk with the ZIP64 EOCD
        write_uint64(self._storage, zip64_eocd_offset)
        write_uint32(self._storage, 1)  # Total number of disks
        self._current_offset += ZIP64_LOCATOR_SIZE

    def _write_eocd(self, cd_offset: int, cd_size: int, comment: bytes) -> None:
        """Write the End of Central Directory record, preceded by ZIP64 records if needed."""
        num_entries = len(self._written)

        if self._check_needs_zip64(cd_offset, cd_size):
            zip64_eocd_offset = self._current_offset
            self._write_zip64_eocd(cd_offset, cd_size)
            self._write_zip64_locator(zip64_eocd_offset)
            num_entries = min(num_entries, MAX_ENTRIES)
            cd_size = min(cd_size, MAX_CD_SIZE)
            cd_offset = min(cd_offset, MAX_CD_OFFSET)

        write_uint32(self._storage, END_OF_CENTRAL_DIR)
        write_uint16(self._storage, 0)  # Number of this disk
        write_uint16(self._storage, 0)  # Disk with start of central directory
        write_uint16(self._storage, num_entries)  # Entries on this disk
        write_uint16(self._storage, num_entries)  # Total entries
        write_uint32(self._storage, cd_size)
        write_uint32(self._storage, cd_offset)
        write_uint16(self._storage, len(comment))
        self._current_offset += END_OF_CENTRAL_DIR_SIZE
        self._write_bytes(comment)

    def finish(self, comment: Optional[bytes] = None) -> int:
        """Write the central directory and EOCD.

        Returns:
            Total number of bytes written by this writer.
        """
        if self._finished:
            raise ZipFormatError("Archive writer is already finished")
        comment = (comment or b"")[:MAX_COMMENT_LENGTH]

        cd_offset, cd_size = self._write_central_directory()
        self._write_eocd(cd_offset, cd_size, comment)
        self._finished = True

        logger.debug(
            "Wrote %d entries, directory at %d (%d bytes), %d bytes total",
            len(self._written),
            cd_offset,
            cd_size,
            self._current_offset,
        )
        return self._current_offset
