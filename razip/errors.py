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
Custom exception classes for RAZIP.

This module defines specific exception types for the error conditions that
can occur when opening, reading or rewriting ZIP archives. Callers can tell
"wrong mode" (ZipNotSupportedError) apart from "archive already gone"
(ZipDisposedError).
"""

import io


class ZipError(Exception):
    """Base exception class for all ZIP-related errors."""

    pass


class ZipFormatError(ZipError):
    """Raised when a ZIP file has an invalid format or structure.

    This exception is raised when:
    - The End of Central Directory record cannot be found
    - Required signatures are missing or incorrect
    - Directory fields are inconsistent with the storage size
    """

    pass


class ZipDisposedError(ZipError, ValueError):
    """Raised when an archive, or an entry of it, is used after close."""

    pass


class ZipNotSupportedError(ZipError, io.UnsupportedOperation):
    """Raised when an operation is not legal for the archive or stream mode.

    This exception is raised when:
    - Entries are created, deleted or re-timestamped in Read mode
    - A Read-mode entry stream is written, seeked, flushed or truncated
    - A stream is read after its archive released the storage
    """

    pass


class ZipUnsupportedFeature(ZipError):
    """Raised when encountering an unsupported ZIP feature.

    This exception is raised when:
    - Compression method is not supported
    - An encrypted entry is opened for reading
    - The archive spans multiple disks
    """

    pass


class ZipEntryStateError(ZipError):
    """Raised when an entry cannot be opened in its current state."""

    pass


class ZipCrcError(ZipError):
    """Raised when CRC32 checksum validation fails.

    This exception is raised when the computed CRC32 of decompressed data
    does not match the expected CRC32 stored in the archive.
    """

    pass


class ZipCompressionError(ZipError):
    """Raised when compression or decompression fails."""

    pass
