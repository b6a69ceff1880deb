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
Entry streams.

An EntryStream is one view over one entry. What it may do is fixed when it
is created, as a set of capabilities derived from the archive mode:

- Read mode streams are READ only and decode the payload straight from
  storage with their own absolute offset, so any number of them can be read
  interleaved.
- Create mode streams are WRITE only; bytes are buffered and handed to the
  archive when the stream closes.
- Update mode streams are READ | WRITE | SEEK over an in-memory copy.

Every operation outside the capability set raises ZipNotSupportedError.
"""

import bz2
import enum
import io
import logging
import zlib
from typing import Callable, Optional

from .constants import COMP_BZIP2, COMP_DEFLATE, COMP_STORED, READ_CHUNK_SIZE
from .errors import (
    ZipCompressionError,
    ZipCrcError,
    ZipFormatError,
    ZipNotSupportedError,
    ZipUnsupportedFeature,
)
from .storage import StorageCursor, StorageHandle
from .structures import parse_local_file_header
from .utils import crc32

logger = logging.getLogger(__name__)


class StreamCapability(enum.Flag):
    """What an entry stream is allowed to do."""

    NONE = 0
    READ = enum.auto()
    WRITE = enum.auto()
    SEEK = enum.auto()


def locate_payload(storage: StorageHandle, header_offset: int) -> int:
    """Return the absolute offset of the first payload byte of an entry.

    Parses the local file header at 'header_offset' (already corrected by
    the archive's base offset). The local header is authoritative for where
    the payload starts; its size fields are ignored in favour of the
    directory record.

    Raises:
        ZipFormatError: If no valid local header is found there.
    """
    cursor = StorageCursor(storage, header_offset)
    try:
        header = parse_local_file_header(cursor)
    except ZipFormatError as e:
        raise ZipFormatError(f"Local file header at offset {header_offset} is invalid: {e}") from e
    return header_offset + header.header_size


def _make_decompressor(method: int):
    if method == COMP_STORED:
        return None
    if method == COMP_DEFLATE:
        return zlib.decompressobj(-zlib.MAX_WBITS)
    if method == COMP_BZIP2:
        return bz2.BZ2Decompressor()
    raise ZipUnsupportedFeature(f"Unsupported compression method: {method}")


class PayloadDecoder:
    """Decompresses one entry's payload with positioned reads.

    The decoder owns its cursor ('_offset') and never relies on the storage
    handle's file position. Reads never pass 'payload_end', the offset of
    the record that follows the entry; declared bytes beyond it count as
    truncation.
    """

    def __init__(
        self,
        storage: StorageHandle,
        name: str,
        payload_start: int,
        compressed_size: int,
        uncompressed_size: int,
        compression_method: int,
        expected_crc: int,
        payload_end: Optional[int] = None,
    ):
        self._storage = storage
        self._name = name
        self._offset = payload_start
        self._compressed_left = compressed_size
        self._left = uncompressed_size
        self._method = compression_method
        self._decompressor = _make_decompressor(compression_method)
        self._expected_crc = expected_crc
        self._running_crc = 0
        self._pending = b""
        self._truncated = False
        self._input_done = compressed_size == 0
        self._eof = False

        limit = storage.size()
        if payload_end is not None:
            limit = min(limit, payload_end)
        available = limit - payload_start
        if available < compressed_size:
            logger.warning(
                "Entry '%s' is truncated: %d of %d compressed bytes present",
                name,
                max(available, 0),
                compressed_size,
            )
            self._compressed_left = max(available, 0)
            self._truncated = True

    def _decompress(self, data: bytes) -> bytes:
        if self._decompressor is None:
            return data
        if self._method == COMP_BZIP2 and self._decompressor.eof:
            return b""
        try:
            return self._decompressor.decompress(data)
        except (zlib.error, OSError, EOFError) as e:
            raise ZipCompressionError(f"Decompression of '{self._name}' failed: {e}") from e

    def _pull(self) -> bytes:
        """Produce the next run of decompressed bytes, b'' when input is exhausted."""
        if self._compressed_left > 0:
            chunk = self._storage.read_at(self._offset, min(READ_CHUNK_SIZE, self._compressed_left))
            if not chunk:
                self._truncated = True
                self._compressed_left = 0
                self._input_done = True
                return b""
            self._offset += len(chunk)
            self._compressed_left -= len(chunk)
            return self._decompress(chunk)

        self._input_done = True
        if self._method == COMP_DEFLATE:
            try:
                return self._decompressor.flush()
            except zlib.error as e:
                raise ZipCompressionError(f"Decompression of '{self._name}' failed: {e}") from e
        return b""

    def _finish(self) -> None:
        self._eof = True
        if self._truncated:
            logger.warning("CRC check skipped for truncated entry '%s'", self._name)
            return
        if self._running_crc != self._expected_crc:
            raise ZipCrcError(
                f"CRC32 mismatch for '{self._name}': expected 0x{self._expected_crc:08X}, "
                f"got 0x{self._running_crc:08X}"
            )

    def read(self, size: int) -> bytes:
        """Return up to 'size' decompressed bytes; b'' at end of entry."""
        self._storage.ensure_available()
        if self._eof or size <= 0:
            return b""

        while len(self._pending) < size and self._left > len(self._pending):
            if self._input_done:
                break
            self._pending += self._pull()

        budget = min(size, self._left)
        data = self._pending[:budget]
        self._pending = self._pending[budget:]
        self._left -= len(data)
        self._running_crc = crc32(data, self._running_crc)

        if self._left == 0 or (self._input_done and not self._pending):
            self._finish()
        return data


class EntryStream(io.RawIOBase):
    """A capability-checked stream over one archive entry.

    Example:
        with archive.get_entry("first.txt").open() as s:
            data = s.read()
    """

    def __init__(
        self,
        name: str,
        capabilities: StreamCapability,
        decoder: Optional[PayloadDecoder] = None,
        buffer: Optional[io.BytesIO] = None,
        on_close: Optional[Callable[["EntryStream"], None]] = None,
    ):
        super().__init__()
        self.name = name
        self._capabilities = capabilities
        self._decoder = decoder
        self._buffer = buffer
        self._on_close = on_close
        self._closing = False
        self.modified = False

    @property
    def capabilities(self) -> StreamCapability:
        return self._capabilities

    def _require(self, capability: StreamCapability, operation: str) -> None:
        if self.closed:
            raise ValueError(f"I/O operation on closed entry stream '{self.name}'")
        if capability not in self._capabilities:
            raise ZipNotSupportedError(
                f"Entry stream for '{self.name}' does not support {operation}"
            )

    def readable(self) -> bool:
        return StreamCapability.READ in self._capabilities

    def writable(self) -> bool:
        return StreamCapability.WRITE in self._capabilities

    def seekable(self) -> bool:
        return StreamCapability.SEEK in self._capabilities

    def readinto(self, b) -> int:
        self._require(StreamCapability.READ, "reading")
        if self._decoder is not None:
            data = self._decoder.read(len(b))
            n = len(data)
            b[:n] = data
            return n
        return self._buffer.readinto(b)

    def write(self, b) -> int:
        self._require(StreamCapability.WRITE, "writing")
        self.modified = True
        return self._buffer.write(b)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._require(StreamCapability.SEEK, "seeking")
        return self._buffer.seek(offset, whence)

    def tell(self) -> int:
        self._require(StreamCapability.SEEK, "position queries")
        return self._buffer.tell()

    def truncate(self, size: Optional[int] = None) -> int:
        self._require(StreamCapability.SEEK, "resizing")
        self._require(StreamCapability.WRITE, "resizing")
        self.modified = True
        return self._buffer.truncate(size)

    def flush(self) -> None:
        if self._closing or self.closed:
            return
        self._require(StreamCapability.WRITE, "flushing")

    def getvalue(self) -> bytes:
        """Contents written so far (write-capable streams only)."""
        return self._buffer.getvalue()

    def close(self) -> None:
        if self.closed:
            return
        self._closing = True
        try:
            if self._on_close is not None:
                self._on_close(self)
        finally:
            self._decoder = None
            super().close()


def open_read_stream(
    storage: StorageHandle,
    name: str,
    header_offset: int,
    compressed_size: int,
    uncompressed_size: int,
    compression_method: int,
    expected_crc: int,
    payload_end: Optional[int] = None,
) -> EntryStream:
    """Open a READ-only stream decoding an entry payload from storage.

    Args:
        storage: Storage handle of the archive.
        name: Entry name (for messages).
        header_offset: Corrected absolute offset of the local file header.
        compressed_size: Compressed size from the directory record.
        uncompressed_size: Uncompressed size from the directory record.
        compression_method: Compression method id.
        expected_crc: CRC32 from the directory record.
        payload_end: Absolute offset the payload may not extend past.
    """
    payload_start = locate_payload(storage, header_offset)
    decoder = PayloadDecoder(
        storage,
        name,
        payload_start,
        compressed_size,
        uncompressed_size,
        compression_method,
        expected_crc,
        payload_end,
    )
    return EntryStream(name, StreamCapability.READ, decoder=decoder)


def open_buffer_stream(
    name: str,
    capabilities: StreamCapability,
    initial: bytes = b"",
    on_close: Optional[Callable[[EntryStream], None]] = None,
) -> EntryStream:
    """Open a stream over an in-memory copy of an entry's contents."""
    return EntryStream(name, capabilities, buffer=io.BytesIO(initial), on_close=on_close)
