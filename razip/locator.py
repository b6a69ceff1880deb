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
End of Central Directory location.

Finds the EOCD record near the end of storage, follows the ZIP64 locator
when present, and computes the base offset correction that lets archives
with a prepended stub (self-extractors, concatenated files) resolve every
offset stored in their directory.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional

from .constants import (
    BACKWARDS_SCAN_CHUNK,
    END_OF_CENTRAL_DIR_MAGIC,
    END_OF_CENTRAL_DIR_SIZE,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_ENTRIES,
    MAX_ENTRY_COUNT,
    CENTRAL_DIR_HEADER_SIZE,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_LOCATOR_SIZE,
)
from .errors import ZipFormatError, ZipUnsupportedFeature
from .storage import StorageHandle
from .structures import (
    EndOfCentralDirectory,
    Zip64EndOfCentralDirectory,
    parse_eocd,
    parse_zip64_eocd,
    parse_zip64_locator,
)

logger = logging.getLogger(__name__)


@dataclass
class DirectoryLocation:
    """Where the central directory lives, as resolved at open time.

    'cd_start' is already corrected; 'base_offset' must be added to every
    offset read from directory records.
    """

    eocd: EndOfCentralDirectory
    zip64_eocd: Optional[Zip64EndOfCentralDirectory]
    eocd_position: int
    entry_count: int
    cd_size: int
    cd_start: int
    base_offset: int

    @property
    def comment(self) -> bytes:
        return self.eocd.comment


def _scan_for_eocd(storage: StorageHandle, file_size: int) -> int:
    """Return the absolute position of the last plausible EOCD signature."""
    if file_size < END_OF_CENTRAL_DIR_SIZE:
        raise ZipFormatError(
            f"File too small to be a ZIP archive: {file_size} bytes"
        )

    scan_floor = max(0, file_size - (END_OF_CENTRAL_DIR_SIZE + MAX_COMMENT_LENGTH))
    window_end = file_size
    # Bytes kept from the previous (later) chunk so a signature split across
    # the chunk boundary is still seen.
    carry = b""

    while window_end > scan_floor:
        window_start = max(scan_floor, window_end - BACKWARDS_SCAN_CHUNK)
        chunk = storage.read_exact_at(window_start, window_end - window_start) + carry
        pos = chunk.rfind(END_OF_CENTRAL_DIR_MAGIC)
        while pos != -1:
            candidate = window_start + pos
            if candidate + END_OF_CENTRAL_DIR_SIZE <= file_size:
                return candidate
            pos = chunk.rfind(END_OF_CENTRAL_DIR_MAGIC, 0, pos)
        carry = chunk[: len(END_OF_CENTRAL_DIR_MAGIC) - 1]
        window_end = window_start

    raise ZipFormatError("End of Central Directory record not found")


def _read_eocd(storage: StorageHandle, position: int, file_size: int) -> EndOfCentralDirectory:
    fixed = storage.read_exact_at(position, END_OF_CENTRAL_DIR_SIZE)
    comment_len = int.from_bytes(fixed[-2:], "little")
    # Trailing bytes after the comment are tolerated; a comment running past
    # the end of storage is clipped to what is there.
    available = file_size - position - END_OF_CENTRAL_DIR_SIZE
    if comment_len > available:
        logger.warning(
            "EOCD comment length %d exceeds the %d bytes left in storage",
            comment_len,
            available,
        )
        comment_len = available
    elif comment_len < available:
        logger.warning(
            "%d bytes of trailing data after the End of Central Directory record",
            available - comment_len,
        )
    comment = storage.read_exact_at(position + END_OF_CENTRAL_DIR_SIZE, comment_len)
    record = fixed[:-2] + comment_len.to_bytes(2, "little") + comment
    return parse_eocd(io.BytesIO(record))


def _read_zip64_eocd(
    storage: StorageHandle, eocd_position: int
) -> Optional[tuple[Zip64EndOfCentralDirectory, int]]:
    """Return the ZIP64 EOCD and its actual position, if a locator precedes the EOCD."""
    locator_pos = eocd_position - ZIP64_LOCATOR_SIZE
    if locator_pos < 0:
        return None
    try:
        locator = parse_zip64_locator(
            io.BytesIO(storage.read_exact_at(locator_pos, ZIP64_LOCATOR_SIZE))
        )
    except ZipFormatError:
        # No ZIP64 locator, this is a classic ZIP
        return None

    if locator.total_disks > 1:
        raise ZipUnsupportedFeature("Archives spanning multiple disks are not supported")

    # The ZIP64 EOCD sits right before its locator; the offset stored in the
    # locator is only trusted when nothing was prepended to the archive.
    zip64_pos = locator_pos - ZIP64_END_OF_CENTRAL_DIR_SIZE
    if zip64_pos < 0:
        zip64_pos = locator.zip64_eocd_offset
    try:
        zip64_eocd = parse_zip64_eocd(
            io.BytesIO(storage.read_exact_at(zip64_pos, ZIP64_END_OF_CENTRAL_DIR_SIZE))
        )
    except ZipFormatError:
        zip64_pos = locator.zip64_eocd_offset
        zip64_eocd = parse_zip64_eocd(
            io.BytesIO(storage.read_exact_at(zip64_pos, ZIP64_END_OF_CENTRAL_DIR_SIZE))
        )
    return zip64_eocd, zip64_pos


def locate_central_directory(storage: StorageHandle) -> DirectoryLocation:
    """Find the central directory of the archive held in 'storage'.

    Args:
        storage: Seekable, readable storage handle.

    Returns:
        DirectoryLocation with corrected directory start and base offset.

    Raises:
        ZipFormatError: If no EOCD is found or its fields are inconsistent.
        ZipUnsupportedFeature: If the archive spans multiple disks.
    """
    file_size = storage.size()
    eocd_position = _scan_for_eocd(storage, file_size)
    eocd = _read_eocd(storage, eocd_position, file_size)

    if eocd.disk_num != eocd.cd_disk or eocd.cd_records_on_disk != eocd.cd_records_total:
        raise ZipUnsupportedFeature("Archives spanning multiple disks are not supported")

    entry_count = eocd.cd_records_total
    cd_size = eocd.cd_size
    cd_offset = eocd.cd_offset
    directory_end = eocd_position

    zip64 = _read_zip64_eocd(storage, eocd_position)
    zip64_eocd = None
    if zip64 is not None:
        zip64_eocd, zip64_pos = zip64
        if (
            zip64_eocd.disk_num != zip64_eocd.cd_disk
            or zip64_eocd.cd_records_on_disk != zip64_eocd.cd_records_total
        ):
            raise ZipUnsupportedFeature("Archives spanning multiple disks are not supported")
        entry_count = zip64_eocd.cd_records_total
        cd_size = zip64_eocd.cd_size
        cd_offset = zip64_eocd.cd_offset
        directory_end = zip64_pos
    elif (
        eocd.cd_records_total == MAX_ENTRIES
        or eocd.cd_size == MAX_CD_SIZE
        or eocd.cd_offset == MAX_CD_OFFSET
    ):
        logger.warning(
            "EOCD has saturated fields but no ZIP64 record; treating %d entries, "
            "directory size %d and offset %d as literal values",
            entry_count,
            cd_size,
            cd_offset,
        )

    if entry_count > MAX_ENTRY_COUNT:
        raise ZipFormatError(f"Entry count too large: {entry_count} (max {MAX_ENTRY_COUNT:,})")

    cd_start = directory_end - cd_size
    if cd_start < 0:
        raise ZipFormatError(
            f"Central directory size {cd_size} exceeds the space before the EOCD at {directory_end}"
        )
    if entry_count * CENTRAL_DIR_HEADER_SIZE > cd_size:
        raise ZipFormatError(
            f"Central directory of {cd_size} bytes cannot hold {entry_count} entries"
        )

    base_offset = cd_start - cd_offset
    if base_offset < 0:
        raise ZipFormatError(
            f"Central directory offset {cd_offset} lies beyond its actual position {cd_start}"
        )
    if base_offset:
        logger.debug("Archive data starts %d bytes into storage", base_offset)
    logger.debug(
        "EOCD at %d: %d entries, directory at %d (%d bytes)",
        eocd_position,
        entry_count,
        cd_start,
        cd_size,
    )

    return DirectoryLocation(
        eocd=eocd,
        zip64_eocd=zip64_eocd,
        eocd_position=eocd_position,
        entry_count=entry_count,
        cd_size=cd_size,
        cd_start=cd_start,
        base_offset=base_offset,
    )
