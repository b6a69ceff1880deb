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
ZIP format constants including signatures, compression methods, flags,
extra-field tags and the engine's buffer sizes.

This module defines all the constants used throughout RAZIP for locating,
parsing and writing ZIP and ZIP64 archives.
"""

from datetime import datetime

# ZIP file signatures (magic numbers)
LOCAL_FILE_HEADER = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIR_HEADER = 0x02014B50  # "PK\x01\x02"
END_OF_CENTRAL_DIR = 0x06054B50  # "PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIR = 0x06064B50  # "PK\x06\x06"
ZIP64_END_OF_CENTRAL_DIR_LOCATOR = 0x07064B50  # "PK\x06\x07"
DATA_DESCRIPTOR = 0x08074B50  # "PK\x07\x08"

END_OF_CENTRAL_DIR_MAGIC = b"PK\x05\x06"

# Compression methods
COMP_STORED = 0  # No compression
COMP_DEFLATE = 8  # Deflate compression (zlib)
COMP_BZIP2 = 12  # BZIP2 compression

# Compression method names (for API)
COMPRESSION_STORED = "stored"
COMPRESSION_DEFLATE = "deflate"
COMPRESSION_BZIP2 = "bzip2"

# Compression methods the engine can both read and write
COMPRESSION_METHODS = {
    COMPRESSION_STORED: COMP_STORED,
    COMPRESSION_DEFLATE: COMP_DEFLATE,
    COMPRESSION_BZIP2: COMP_BZIP2,
}

# General purpose bit flags
FLAG_ENCRYPTED = 0x0001  # File is encrypted
FLAG_DATA_DESCRIPTOR = 0x0008  # Data descriptor follows file data
FLAG_STRONG_ENCRYPTION = 0x0040  # Strong encryption used
FLAG_UTF8 = 0x0800  # UTF-8 encoding for filename/comment

# ZIP version constants
VERSION_DEFAULT = 20  # Default version needed to extract
VERSION_STORED = 10  # Version needed for stored entries and directories
VERSION_BZIP2 = 46  # Version needed for BZIP2 entries
VERSION_ZIP64 = 45  # ZIP64 format version
VERSION_MADE_BY_DEFAULT = 0x033F  # Made by: Unix, APPNOTE 6.3

# Classic ZIP limits (32-bit)
MAX_FILE_SIZE = 0xFFFFFFFF  # 4 GiB - 1
MAX_ENTRIES = 0xFFFF  # 65535 entries
MAX_CD_SIZE = 0xFFFFFFFF  # 4 GiB - 1
MAX_CD_OFFSET = 0xFFFFFFFF  # 4 GiB - 1
MAX_COMMENT_LENGTH = 0xFFFF

# Upper bound on directory entries accepted from a ZIP64 record
MAX_ENTRY_COUNT = 10_000_000

# Extra field tags
ZIP64_EXTRA_FIELD_TAG = 0x0001
STRONG_ENCRYPTION_EXTRA_FIELD_TAG = 0x0017
AES_EXTRA_FIELD_TAG = 0x9901

# Record sizes (fixed part)
LOCAL_FILE_HEADER_SIZE = 30
CENTRAL_DIR_HEADER_SIZE = 46
END_OF_CENTRAL_DIR_SIZE = 22
ZIP64_END_OF_CENTRAL_DIR_SIZE = 56
ZIP64_LOCATOR_SIZE = 20
DATA_DESCRIPTOR_SIZE = 16
ZIP64_DATA_DESCRIPTOR_SIZE = 24

# Engine buffer sizes
DIRECTORY_BUFFER_SIZE = 4096  # Window over the central directory
BACKWARDS_SCAN_CHUNK = 4096  # Chunk used while scanning for the EOCD
READ_CHUNK_SIZE = 64 * 1024  # Compressed bytes pulled per positioned read

# Value reported for zeroed or unparseable DOS timestamps
DOS_FLOOR_TIMESTAMP = datetime(1980, 1, 1, 0, 0, 0)
DOS_CEILING_TIMESTAMP = datetime(2107, 12, 31, 23, 59, 58)

# Unix mode bits stored in the high word of the external attributes
UNIX_DIRECTORY_ATTRS = 0o040755 << 16
UNIX_FILE_ATTRS = 0o100644 << 16
