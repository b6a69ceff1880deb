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
Storage handle shared by an archive and all of its entry streams.

The handle never exposes an implicit cursor to readers: every read names
its absolute offset and is served by a seek+read pair executed under a
lock, so any number of entry streams can interleave their reads over one
file object.
"""

import io
import logging
import os
import threading
from typing import BinaryIO

from .errors import ZipFormatError, ZipNotSupportedError
from .utils import write_exact

logger = logging.getLogger(__name__)


def _supports(file: BinaryIO, probe: str, method: str) -> bool:
    check = getattr(file, probe, None)
    if check is not None:
        try:
            return bool(check())
        except (OSError, ValueError):
            # Closed io objects raise instead of answering
            return False
    return callable(getattr(file, method, None))


class StorageHandle:
    """Positioned access to the byte source behind an archive.

    Example:
        storage = StorageHandle(open("archive.zip", "rb"))
        header = storage.read_at(0, 30)
        storage.release()
    """

    def __init__(self, file: BinaryIO, leave_open: bool = False):
        """Wrap a binary file-like object.

        Args:
            file: Binary file-like object.
            leave_open: If True, release() does not close 'file'.
        """
        self._file = file
        self._backing = file
        self._leave_open = leave_open
        self._lock = threading.Lock()
        self._released = False

        self.readable = _supports(file, "readable", "read")
        self.writable = _supports(file, "writable", "write")
        self.seekable = _supports(file, "seekable", "seek") and callable(
            getattr(file, "tell", None)
        )

    @classmethod
    def open_path(cls, path: str | os.PathLike, file_mode: str) -> "StorageHandle":
        """Open a file on disk; the handle owns it and always closes it."""
        return cls(open(path, file_mode), leave_open=False)

    @property
    def released(self) -> bool:
        return self._released

    def buffer_in_memory(self) -> None:
        """Drain a forward-only source into memory so it can be read at random.

        The original object stays attached and is still closed on release
        unless the handle was created with leave_open.
        """
        self.ensure_available()
        data = self._file.read()
        if data is None:
            raise ZipFormatError("Non-seekable source returned no data")
        logger.debug("Buffered %d bytes from non-seekable source", len(data))
        self._backing = io.BytesIO(data)
        self.seekable = True

    def size(self) -> int:
        """Total number of bytes in storage."""
        self.ensure_available()
        with self._lock:
            self._backing.seek(0, io.SEEK_END)
            return self._backing.tell()

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to 'size' bytes starting at absolute 'offset'.

        Fewer bytes are returned only when storage ends first.
        """
        self.ensure_available()
        if offset < 0 or size < 0:
            raise ZipFormatError(f"Invalid read at offset {offset}, size {size}")
        with self._lock:
            self._backing.seek(offset)
            chunks = []
            remaining = size
            while remaining > 0:
                chunk = self._backing.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
            return b"".join(chunks)

    def read_exact_at(self, offset: int, size: int) -> bytes:
        """Read exactly 'size' bytes at 'offset', raising ZipFormatError on short read."""
        data = self.read_at(offset, size)
        if len(data) != size:
            raise ZipFormatError(
                f"Unexpected end of file at offset {offset}: expected {size} bytes, got {len(data)}"
            )
        return data

    def seek(self, offset: int) -> None:
        self.ensure_available()
        with self._lock:
            self._backing.seek(offset)

    def write(self, data: bytes) -> None:
        self.ensure_available()
        with self._lock:
            write_exact(self._backing, data)

    def truncate(self) -> None:
        """Cut storage at the current write position."""
        self.ensure_available()
        with self._lock:
            self._backing.truncate()

    def flush(self) -> None:
        flush = getattr(self._backing, "flush", None)
        if flush is not None:
            with self._lock:
                flush()

    def release(self, close_file: bool = True) -> None:
        """Stop serving reads and close the underlying object unless left open.

        Safe to call more than once; the underlying object is closed at most
        once. With close_file=False the object is detached without closing,
        whatever leave_open says.
        """
        if self._released:
            return
        self._released = True

        if self._backing is not self._file:
            self._backing.close()
        self._backing = None

        if close_file and not self._leave_open:
            logger.debug("Closing underlying storage")
            self._file.close()

    def ensure_available(self) -> None:
        """Raise ZipNotSupportedError once the handle has been released."""
        if self._released:
            raise ZipNotSupportedError("Archive storage is no longer readable")


class StorageCursor:
    """Minimal file-like reader with a private position over a StorageHandle.

    Lets the record parsers run directly against storage without touching
    the handle's shared file position.
    """

    def __init__(self, storage: StorageHandle, offset: int):
        self._storage = storage
        self._pos = offset

    def tell(self) -> int:
        return self._pos

    def read(self, size: int) -> bytes:
        data = self._storage.read_at(self._pos, size)
        self._pos += len(data)
        return data
