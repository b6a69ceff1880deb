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
ZIP archive and entry objects.

This module provides the ZipArchive class, which opens an archive in one of
three modes for its whole lifetime:

- READ: the central directory is parsed once at open; entries are opened
  as read-only streams that decode straight from storage.
- CREATE: entries are created and written, and the archive is serialized
  when it is closed.
- UPDATE: an existing archive is parsed as in READ mode; entries can be
  rewritten, added, deleted and re-timestamped, and the archive is
  rewritten in place when it is closed.
"""

import bisect
import enum
import logging
import os
from datetime import datetime
from typing import BinaryIO, Optional

from .constants import (
    COMP_DEFLATE,
    COMP_STORED,
    COMPRESSION_DEFLATE,
    COMPRESSION_METHODS,
    FLAG_DATA_DESCRIPTOR,
    FLAG_UTF8,
    UNIX_DIRECTORY_ATTRS,
    UNIX_FILE_ATTRS,
    VERSION_MADE_BY_DEFAULT,
)
from .directory import DirectoryRecord, read_central_directory
from .encryption import EncryptionInfo, EncryptionMethod, describe_encryption
from .errors import (
    ZipDisposedError,
    ZipEntryStateError,
    ZipFormatError,
    ZipNotSupportedError,
    ZipUnsupportedFeature,
)
from .locator import locate_central_directory
from .storage import StorageHandle
from .stream import (
    EntryStream,
    StreamCapability,
    locate_payload,
    open_buffer_stream,
    open_read_stream,
)
from .utils import crc32, dos_datetime_to_timestamp, timestamp_to_dos_datetime
from .writer import ArchiveWriter, PendingEntry, compress_payload

logger = logging.getLogger(__name__)

# MS-DOS directory attribute, kept next to the Unix mode bits
_DOS_DIRECTORY_ATTR = 0x10


class ArchiveMode(enum.Enum):
    """Mode an archive is opened in; fixed for the archive's lifetime."""

    READ = "r"
    CREATE = "w"
    UPDATE = "a"

    @classmethod
    def coerce(cls, mode: "ArchiveMode | str") -> "ArchiveMode":
        """Accept an ArchiveMode or one of the strings 'r', 'w', 'a'."""
        if isinstance(mode, cls):
            return mode
        try:
            return cls(mode)
        except ValueError:
            raise ValueError(f"Unsupported mode: {mode!r} (expected 'r', 'w' or 'a')") from None


class ZipArchiveEntry:
    """One entry of a ZipArchive.

    Entries are created by the archive, either from a central directory
    record or by create_entry(); they are never constructed directly.
    """

    def __init__(self, archive: "ZipArchive", full_name: str):
        self._archive = archive
        self._full_name = full_name
        self._raw_name: Optional[bytes] = None

        self._flags = FLAG_UTF8
        self._stored_method = COMP_STORED
        self._compression = COMP_STORED
        # Method used the next time new contents are committed
        self._requested_method = COMP_DEFLATE
        self._encryption = EncryptionInfo(EncryptionMethod.NONE, COMP_STORED)
        self._crc32 = 0
        self._length = 0
        self._compressed_length = 0
        self._mod_date, self._mod_time = timestamp_to_dos_datetime(datetime.now())
        if full_name.endswith("/"):
            self._external_attrs = UNIX_DIRECTORY_ATTRS | _DOS_DIRECTORY_ATTR
        else:
            self._external_attrs = UNIX_FILE_ATTRS
        self._internal_attrs = 0
        self._version_made_by = VERSION_MADE_BY_DEFAULT
        self._extra = b""
        self._comment = b""
        # Offset as stored in the directory, before base offset correction
        self._local_header_offset: Optional[int] = None

        # Compressed payload for new or rewritten content; None while the
        # entry still refers to its original bytes in storage.
        self._payload: Optional[bytes] = None
        self._content: Optional[bytes] = None
        self._opened_for_write = False
        self._stream: Optional[EntryStream] = None
        self._deleted = False

    @classmethod
    def _from_record(cls, archive: "ZipArchive", record: DirectoryRecord) -> "ZipArchiveEntry":
        header = record.header
        entry = cls(archive, record.name)
        entry._raw_name = header.filename
        entry._flags = header.flags
        entry._stored_method = header.compression_method
        entry._encryption = describe_encryption(header.flags, header.extra, header.compression_method)
        entry._compression = entry._encryption.compression_method
        entry._requested_method = entry._compression
        entry._crc32 = header.crc32
        entry._length = record.uncompressed_size
        entry._compressed_length = record.compressed_size
        entry._mod_date = header.mod_date
        entry._mod_time = header.mod_time
        entry._external_attrs = header.external_attrs
        entry._internal_attrs = header.internal_attrs
        entry._version_made_by = header.version_made_by
        entry._extra = header.extra
        entry._comment = header.comment
        entry._local_header_offset = record.local_header_offset
        return entry

    def __repr__(self) -> str:
        return f"<ZipArchiveEntry {self._full_name!r}>"

    @property
    def archive(self) -> "ZipArchive":
        return self._archive

    @property
    def full_name(self) -> str:
        """Relative path of the entry as stored in the archive."""
        return self._full_name

    @property
    def name(self) -> str:
        """Last path segment of full_name."""
        return self._full_name.replace("\\", "/").rsplit("/", 1)[-1]

    @property
    def is_directory(self) -> bool:
        self._archive._ensure_open()
        return self._full_name.endswith("/") or bool(self._external_attrs & _DOS_DIRECTORY_ATTR)

    @property
    def length(self) -> int:
        """Uncompressed size in bytes."""
        self._archive._ensure_open()
        return self._length

    @property
    def compressed_length(self) -> int:
        self._archive._ensure_open()
        return self._compressed_length

    @property
    def crc32(self) -> int:
        self._archive._ensure_open()
        return self._crc32

    @property
    def compression_method(self) -> int:
        """Actual compression method id (the one behind WinZip AES, if any)."""
        self._archive._ensure_open()
        return self._compression

    @property
    def flags(self) -> int:
        self._archive._ensure_open()
        return self._flags

    @property
    def is_encrypted(self) -> bool:
        self._archive._ensure_open()
        return self._encryption.is_encrypted

    @property
    def encryption_method(self) -> EncryptionMethod:
        self._archive._ensure_open()
        return self._encryption.method

    @property
    def external_attributes(self) -> int:
        self._archive._ensure_open()
        return self._external_attrs

    @property
    def comment(self) -> bytes:
        self._archive._ensure_open()
        return self._comment

    @property
    def last_write_time(self) -> datetime:
        """Modification time; zeroed or invalid stored values read as 1980-01-01."""
        self._archive._ensure_open()
        return dos_datetime_to_timestamp(self._mod_date, self._mod_time)

    @last_write_time.setter
    def last_write_time(self, value: datetime) -> None:
        self._archive._ensure_open()
        self._archive._ensure_mode("setting the last write time", ArchiveMode.CREATE, ArchiveMode.UPDATE)
        self._mod_date, self._mod_time = timestamp_to_dos_datetime(value)
        self._archive._modified = True

    def open(self) -> EntryStream:
        """Open a stream over the entry's contents.

        The stream's capabilities follow the archive mode: READ in Read
        mode, WRITE in Create mode, READ | WRITE | SEEK in Update mode.

        Returns:
            EntryStream for the entry.

        Raises:
            ZipDisposedError: If the archive is closed.
            ZipEntryStateError: If the entry cannot be opened again now.
            ZipUnsupportedFeature: If the entry is encrypted or uses an
                unsupported compression method.
            ZipFormatError: If the local file header is invalid.
        """
        self._archive._ensure_open()
        if self._deleted:
            raise ZipEntryStateError(f"Entry '{self._full_name}' was deleted")

        mode = self._archive.mode
        if mode is ArchiveMode.READ:
            return self._open_for_read()
        if mode is ArchiveMode.CREATE:
            return self._open_for_write()
        return self._open_for_update()

    def delete(self) -> None:
        """Remove the entry from the archive (Update mode only).

        Raises:
            ZipNotSupportedError: If the archive is not in Update mode.
            ZipDisposedError: If the archive is closed.
            ZipEntryStateError: If a stream on the entry is still open.
        """
        self._archive._ensure_mode("deleting entries", ArchiveMode.UPDATE)
        self._archive._ensure_open()
        if self._deleted:
            return
        if self._stream is not None:
            raise ZipEntryStateError(f"Entry '{self._full_name}' is open and cannot be deleted")
        self._archive._remove_entry(self)
        self._deleted = True

    def _open_for_read(self) -> EntryStream:
        if self._encryption.is_encrypted:
            raise ZipUnsupportedFeature(
                f"Entry '{self._full_name}' is encrypted ({self._encryption.method.value})"
            )
        header_offset = self._local_header_offset + self._archive._base_offset
        return open_read_stream(
            self._archive._storage,
            self._full_name,
            header_offset,
            self._compressed_length,
            self._length,
            self._compression,
            self._crc32,
            self._archive._payload_end(header_offset),
        )

    def _open_for_write(self) -> EntryStream:
        if self._opened_for_write:
            raise ZipEntryStateError(
                f"Entry '{self._full_name}' can only be opened once in Create mode"
            )
        self._opened_for_write = True
        self._stream = open_buffer_stream(
            self._full_name, StreamCapability.WRITE, on_close=self._stream_closed
        )
        return self._stream

    def _open_for_update(self) -> EntryStream:
        if self._stream is not None:
            raise ZipEntryStateError(f"Entry '{self._full_name}' is already open")
        self._stream = open_buffer_stream(
            self._full_name,
            StreamCapability.READ | StreamCapability.WRITE | StreamCapability.SEEK,
            initial=self._read_content(),
            on_close=self._stream_closed,
        )
        return self._stream

    def _read_content(self) -> bytes:
        """Decompressed contents, from the pending rewrite or from storage."""
        if self._content is not None:
            return self._content
        if self._local_header_offset is None:
            return b""
        with self._open_for_read() as stream:
            return stream.read()

    def _stream_closed(self, stream: EntryStream) -> None:
        self._stream = None
        if stream.modified or self._archive.mode is ArchiveMode.CREATE:
            self._commit(stream.getvalue())

    def _commit(self, data: bytes) -> None:
        """Replace the entry's contents with 'data', compressed with its method."""
        method = self._requested_method if data else COMP_STORED
        self._payload = compress_payload(data, method)
        self._content = data
        self._stored_method = method
        self._compression = method
        self._encryption = EncryptionInfo(EncryptionMethod.NONE, method)
        self._flags = FLAG_UTF8
        self._extra = b""
        self._raw_name = None
        self._crc32 = crc32(data)
        self._length = len(data)
        self._compressed_length = len(self._payload)
        self._archive._modified = True

    def _to_pending(self) -> PendingEntry:
        """Describe the entry for the writer, reading preserved payloads from storage."""
        flags = self._flags
        data_descriptor = False
        if self._payload is not None:
            payload = self._payload
        elif self._local_header_offset is not None:
            storage = self._archive._storage
            payload_start = locate_payload(storage, self._local_header_offset + self._archive._base_offset)
            payload = storage.read_exact_at(payload_start, self._compressed_length)
            # Encrypted payloads may depend on the descriptor flag; keep it and
            # write the descriptor, otherwise sizes go in the local header.
            if flags & FLAG_DATA_DESCRIPTOR:
                if self._encryption.is_encrypted:
                    data_descriptor = True
                else:
                    flags &= ~FLAG_DATA_DESCRIPTOR
        else:
            self._commit(b"")
            payload = self._payload

        return PendingEntry(
            name=self._full_name,
            payload=payload,
            compression_method=self._stored_method,
            crc32=self._crc32,
            uncompressed_size=self._length,
            mod_date=self._mod_date,
            mod_time=self._mod_time,
            flags=flags,
            external_attrs=self._external_attrs,
            internal_attrs=self._internal_attrs,
            version_made_by=self._version_made_by,
            extra=self._extra,
            comment=self._comment,
            data_descriptor=data_descriptor,
            raw_name=self._raw_name,
        )


class ZipArchive:
    """Random-access ZIP archive.

    Example:
        with ZipArchive("archive.zip") as archive:
            for entry in archive.entries:
                with entry.open() as s:
                    data = s.read()
    """

    def __init__(
        self,
        file: str | os.PathLike | BinaryIO,
        mode: ArchiveMode | str = ArchiveMode.READ,
        leave_open: bool = False,
        entry_name_encoding: Optional[str] = None,
    ):
        """Open an archive from a path or a binary file-like object.

        Args:
            file: Path to the archive or binary file-like object.
            mode: ArchiveMode (or 'r', 'w', 'a').
            leave_open: If True, closing the archive does not close 'file'.
                Ignored for paths; a file the archive opened is always closed.
            entry_name_encoding: Encoding for entry names stored without the
                UTF-8 flag. Defaults to UTF-8 with a CP437 fallback.

        Raises:
            ZipFormatError: If the archive is corrupt.
            ZipNotSupportedError: If 'file' lacks a capability the mode needs.
            ZipUnsupportedFeature: If the archive spans multiple disks.
        """
        self._mode = ArchiveMode.coerce(mode)
        self._entry_name_encoding = entry_name_encoding
        self._entries: list[ZipArchiveEntry] = []
        self._entries_by_name: dict[str, ZipArchiveEntry] = {}
        self._read_only_entries: Optional[tuple[ZipArchiveEntry, ...]] = None
        self._comment = b""
        self._base_offset = 0
        self._directory_start = 0
        self._header_offsets: list[int] = []
        self._disposed = False
        self._modified = False

        # Handle Path objects
        if hasattr(file, "__fspath__"):
            file = os.fspath(file)

        if isinstance(file, str):
            self._storage = StorageHandle.open_path(file, self._path_mode(file))
            owns_file = True
        else:
            self._storage = StorageHandle(file, leave_open=leave_open)
            owns_file = False

        # If opening fails, close the file only if we opened it
        try:
            self._check_capabilities()
            if self._mode is ArchiveMode.CREATE:
                self._modified = True
            elif self._mode is ArchiveMode.UPDATE and self._storage.size() == 0:
                self._modified = True
            else:
                self._read_directory()
        except Exception:
            self._storage.release(close_file=owns_file)
            self._disposed = True
            raise

        logger.debug("Opened archive in %s mode with %d entries", self._mode.name, len(self._entries))

    def _path_mode(self, path: str) -> str:
        if self._mode is ArchiveMode.READ:
            return "rb"
        if self._mode is ArchiveMode.CREATE:
            return "wb"
        return "r+b" if os.path.exists(path) else "w+b"

    def _check_capabilities(self) -> None:
        storage = self._storage
        if self._mode is ArchiveMode.READ:
            if not storage.readable:
                raise ZipNotSupportedError("Read mode requires a readable file")
            if not storage.seekable:
                storage.buffer_in_memory()
        elif self._mode is ArchiveMode.CREATE:
            if not storage.writable:
                raise ZipNotSupportedError("Create mode requires a writable file")
        elif not (storage.readable and storage.writable and storage.seekable):
            raise ZipNotSupportedError("Update mode requires a readable, writable and seekable file")

    def _read_directory(self) -> None:
        location = locate_central_directory(self._storage)
        self._base_offset = location.base_offset
        self._comment = location.comment

        offsets = set()
        for record in read_central_directory(self._storage, location, self._entry_name_encoding):
            header_offset = record.local_header_offset + self._base_offset
            if header_offset >= location.cd_start:
                raise ZipFormatError(
                    f"Local header offset {record.local_header_offset} of '{record.name}' "
                    f"does not point before the central directory"
                )
            self._add_entry(ZipArchiveEntry._from_record(self, record))
            offsets.add(header_offset)

        self._directory_start = location.cd_start
        self._header_offsets = sorted(offsets)

        if self._mode is ArchiveMode.READ:
            self._read_only_entries = tuple(self._entries)

    def _payload_end(self, header_offset: int) -> int:
        """Offset of the first local header after 'header_offset', else the directory start."""
        index = bisect.bisect_right(self._header_offsets, header_offset)
        if index < len(self._header_offsets):
            return self._header_offsets[index]
        return self._directory_start

    def _add_entry(self, entry: ZipArchiveEntry) -> None:
        self._entries.append(entry)
        # First entry wins when names repeat
        self._entries_by_name.setdefault(entry.full_name, entry)

    def _remove_entry(self, entry: ZipArchiveEntry) -> None:
        self._entries.remove(entry)
        self._entries_by_name = {}
        for remaining in self._entries:
            self._entries_by_name.setdefault(remaining.full_name, remaining)
        self._modified = True

    def _ensure_open(self) -> None:
        if self._disposed:
            raise ZipDisposedError("Archive is closed")

    def _ensure_mode(self, operation: str, *modes: ArchiveMode) -> None:
        if self._mode not in modes:
            raise ZipNotSupportedError(f"{operation.capitalize()} is not supported in {self._mode.name} mode")

    @property
    def mode(self) -> ArchiveMode:
        return self._mode

    @property
    def entries(self) -> tuple[ZipArchiveEntry, ...]:
        """Entries in central directory order."""
        self._ensure_open()
        if self._read_only_entries is not None:
            return self._read_only_entries
        return tuple(self._entries)

    @property
    def comment(self) -> bytes:
        self._ensure_open()
        return self._comment

    @comment.setter
    def comment(self, value: bytes) -> None:
        self._ensure_mode("setting the archive comment", ArchiveMode.CREATE, ArchiveMode.UPDATE)
        self._ensure_open()
        self._comment = bytes(value)
        self._modified = True

    def get_entry(self, name: str) -> Optional[ZipArchiveEntry]:
        """Get an entry by its exact full name.

        Returns:
            The first entry with that name, or None if there is none.
        """
        self._ensure_open()
        return self._entries_by_name.get(name)

    def create_entry(self, name: str, compression: str = COMPRESSION_DEFLATE) -> ZipArchiveEntry:
        """Create an empty entry (Create and Update modes).

        Args:
            name: Entry name (path within the archive).
            compression: Compression method ("stored", "deflate", "bzip2").

        Returns:
            The new entry; open() it to write its contents.

        Raises:
            ZipNotSupportedError: If the archive is in Read mode.
            ZipDisposedError: If the archive is closed.
            ZipFormatError: If the name is invalid.
            ZipUnsupportedFeature: If the compression method is not supported.
        """
        self._ensure_mode("creating entries", ArchiveMode.CREATE, ArchiveMode.UPDATE)
        self._ensure_open()

        if not name:
            raise ZipFormatError("Entry name cannot be empty")
        if "\x00" in name:
            raise ZipFormatError("Entry name cannot contain null bytes")
        if compression not in COMPRESSION_METHODS:
            raise ZipUnsupportedFeature(f"Unsupported compression method: {compression}")

        entry = ZipArchiveEntry(self, name)
        entry._requested_method = COMPRESSION_METHODS[compression]
        self._add_entry(entry)
        self._modified = True
        return entry

    def add_bytes(self, name: str, data: bytes, compression: str = COMPRESSION_DEFLATE) -> ZipArchiveEntry:
        """Create an entry holding 'data'.

        Raises:
            ZipNotSupportedError: If the archive is in Read mode.
            ZipDisposedError: If the archive is closed.
        """
        entry = self.create_entry(name, compression)
        with entry.open() as stream:
            stream.write(data)
        return entry

    def add_file(self, name_in_zip: str, source_path: str, compression: str = COMPRESSION_DEFLATE) -> ZipArchiveEntry:
        """Create an entry from a file on disk.

        Raises:
            ZipFormatError: If the source file cannot be read.
        """
        self._ensure_mode("creating entries", ArchiveMode.CREATE, ArchiveMode.UPDATE)
        self._ensure_open()

        if not os.path.exists(source_path):
            raise ZipFormatError(f"Source file not found: {source_path}")

        try:
            with open(source_path, "rb") as f:
                data = f.read()
        except PermissionError as e:
            raise ZipFormatError(f"Permission denied reading file: {source_path}") from e
        except OSError as e:
            raise ZipFormatError(f"Error reading file {source_path}: {e}") from e

        entry = self.add_bytes(name_in_zip, data, compression)
        entry.last_write_time = datetime.fromtimestamp(os.path.getmtime(source_path))
        return entry

    def _close_open_streams(self) -> None:
        for entry in self._entries:
            if entry._stream is not None:
                entry._stream.close()

    def _write_archive(self, start: Optional[int]) -> None:
        # Preserved payloads must all be read before the first byte is overwritten
        pending = [entry._to_pending() for entry in self._entries]
        if start is not None:
            self._storage.seek(start)

        writer = ArchiveWriter(self._storage)
        for item in pending:
            writer.write_entry(item)
        written = writer.finish(self._comment)

        if self._mode is ArchiveMode.UPDATE:
            self._storage.truncate()
        self._storage.flush()
        logger.debug("Wrote %d entries (%d bytes) at offset %s", len(pending), written, start or 0)

    def close(self) -> None:
        """Write pending changes and release storage. Safe to call repeatedly."""
        if self._disposed:
            return

        # Release storage even if writing fails
        try:
            if self._mode is not ArchiveMode.READ:
                self._close_open_streams()
            if self._mode is ArchiveMode.CREATE:
                self._write_archive(None)
            elif self._mode is ArchiveMode.UPDATE and self._modified:
                self._write_archive(self._base_offset)
        finally:
            self._disposed = True
            self._storage.release()

    dispose = close

    def __enter__(self) -> "ZipArchive":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
