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
Central directory reader.

The directory is consumed through a fixed-capacity window over storage
instead of being loaded in one piece. Records routinely straddle a window
boundary; the window reader hands the record parser exactly the bytes it
asks for, re-filling behind its back, so the parser never has to know
where one window ended.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from .constants import DIRECTORY_BUFFER_SIZE, FLAG_UTF8
from .errors import ZipFormatError
from .locator import DirectoryLocation
from .storage import StorageHandle
from .structures import (
    CentralDirectoryHeader,
    Zip64ExtraField,
    parse_central_directory_header,
    parse_zip64_extra_field,
)

logger = logging.getLogger(__name__)


class WindowReader:
    """File-like reader over a byte range of storage, buffered in fixed windows.

    Only 'read' is provided, which is all the record parsers need.
    """

    def __init__(
        self,
        storage: StorageHandle,
        start: int,
        length: int,
        capacity: int = DIRECTORY_BUFFER_SIZE,
    ):
        if capacity <= 0:
            raise ValueError(f"Window capacity must be positive, got {capacity}")
        self._storage = storage
        self._next_offset = start
        self._end = start + length
        self._capacity = capacity
        self._window = b""
        self._pos = 0
        self.refills = 0

    @property
    def remaining(self) -> int:
        """Bytes of the range not yet handed out."""
        return (len(self._window) - self._pos) + (self._end - self._next_offset)

    def _refill(self) -> bool:
        """Pull the next window, keeping unconsumed bytes of the current one."""
        want = min(self._capacity, self._end - self._next_offset)
        if want <= 0:
            return False
        chunk = self._storage.read_at(self._next_offset, want)
        if not chunk:
            return False
        self._next_offset += len(chunk)
        self._window = self._window[self._pos :] + chunk
        self._pos = 0
        self.refills += 1
        return True

    def read(self, size: int = -1) -> bytes:
        """Return up to 'size' bytes; fewer only when the range is exhausted."""
        if size is None or size < 0:
            size = self.remaining
        while len(self._window) - self._pos < size:
            if not self._refill():
                break
        data = self._window[self._pos : self._pos + size]
        self._pos += len(data)
        return data


@dataclass
class DirectoryRecord:
    """A parsed central directory header with its ZIP64 values applied."""

    header: CentralDirectoryHeader
    name: str
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    zip64_extra: Optional[Zip64ExtraField]


def decode_entry_name(raw: bytes, flags: int, encoding: Optional[str] = None) -> str:
    """Decode an entry name.

    UTF-8 when the language encoding flag is set; otherwise the caller's
    encoding, or strict UTF-8 falling back to CP437 (the historical ZIP
    code page).
    """
    if flags & FLAG_UTF8:
        return raw.decode("utf-8", errors="replace")
    if encoding is not None:
        return raw.decode(encoding, errors="replace")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("cp437")


def _to_record(header: CentralDirectoryHeader, encoding: Optional[str]) -> DirectoryRecord:
    zip64_extra = parse_zip64_extra_field(
        header.extra,
        header.uncompressed_size,
        header.compressed_size,
        header.local_header_offset,
        header.disk_num,
    )

    uncompressed_size = header.uncompressed_size
    compressed_size = header.compressed_size
    local_header_offset = header.local_header_offset
    if zip64_extra:
        if zip64_extra.original_size is not None:
            uncompressed_size = zip64_extra.original_size
        if zip64_extra.compressed_size is not None:
            compressed_size = zip64_extra.compressed_size
        if zip64_extra.local_header_offset is not None:
            local_header_offset = zip64_extra.local_header_offset

    return DirectoryRecord(
        header=header,
        name=decode_entry_name(header.filename, header.flags, encoding),
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        local_header_offset=local_header_offset,
        zip64_extra=zip64_extra,
    )


def read_central_directory(
    storage: StorageHandle,
    location: DirectoryLocation,
    encoding: Optional[str] = None,
    capacity: int = DIRECTORY_BUFFER_SIZE,
) -> Iterator[DirectoryRecord]:
    """Yield exactly 'location.entry_count' records in directory order.

    Args:
        storage: Storage handle holding the archive.
        location: Result of locate_central_directory().
        encoding: Encoding for names without the UTF-8 flag.
        capacity: Window size in bytes.

    Raises:
        ZipFormatError: If a record is malformed or the directory ends early.
    """
    reader = WindowReader(storage, location.cd_start, location.cd_size, capacity)
    for index in range(location.entry_count):
        try:
            header = parse_central_directory_header(reader)
        except ZipFormatError as e:
            raise ZipFormatError(f"Central directory record {index} is corrupt: {e}") from e
        yield _to_record(header, encoding)

    logger.debug(
        "Read %d directory records using %d window refills",
        location.entry_count,
        reader.refills,
    )
