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
RAZIP - Random-access ZIP archive engine.

This library reads, creates and updates standard ZIP and ZIP64 archives
using only Python standard library modules. Entries are exposed as streams
whose capabilities follow the archive mode, and any number of entry streams
can be read interleaved over one file.
"""

from .archive import ArchiveMode, ZipArchive, ZipArchiveEntry
from .encryption import EncryptionMethod
from .errors import (
    ZipCompressionError,
    ZipCrcError,
    ZipDisposedError,
    ZipEntryStateError,
    ZipError,
    ZipFormatError,
    ZipNotSupportedError,
    ZipUnsupportedFeature,
)
from .stream import EntryStream, StreamCapability

__all__ = [
    "ArchiveMode",
    "EncryptionMethod",
    "EntryStream",
    "StreamCapability",
    "ZipArchive",
    "ZipArchiveEntry",
    "ZipCompressionError",
    "ZipCrcError",
    "ZipDisposedError",
    "ZipEntryStateError",
    "ZipError",
    "ZipFormatError",
    "ZipNotSupportedError",
    "ZipUnsupportedFeature",
]

__version__ = "0.1.0"
