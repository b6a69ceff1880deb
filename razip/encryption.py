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
Entry encryption classification.

An entry is encrypted exactly when bit 0 of its general purpose flags is
set. Which scheme is in use is read from the extra field: a WinZip AES
block (0x9901) or a PKWARE strong encryption header (0x0017) overrides the
legacy ZipCrypto interpretation.
"""

import enum
import struct
from dataclasses import dataclass

from .constants import (
    AES_EXTRA_FIELD_TAG,
    FLAG_ENCRYPTED,
    FLAG_STRONG_ENCRYPTION,
    STRONG_ENCRYPTION_EXTRA_FIELD_TAG,
)
from .structures import iter_extra_fields


class EncryptionMethod(enum.Enum):
    """Encryption scheme of an entry."""

    NONE = "none"
    ZIP_CRYPTO = "zipcrypto"
    AES_128 = "aes128"
    AES_192 = "aes192"
    AES_256 = "aes256"
    STRONG = "strong"

    @property
    def is_strong(self) -> bool:
        return self not in (EncryptionMethod.NONE, EncryptionMethod.ZIP_CRYPTO)


_AES_STRENGTHS = {
    1: EncryptionMethod.AES_128,
    2: EncryptionMethod.AES_192,
    3: EncryptionMethod.AES_256,
}


@dataclass(frozen=True)
class EncryptionInfo:
    """Encryption scheme plus the compression method hidden behind it.

    WinZip AES entries store method 99 in their headers and the real
    compression method inside the AES extra field.
    """

    method: EncryptionMethod
    compression_method: int

    @property
    def is_encrypted(self) -> bool:
        return self.method is not EncryptionMethod.NONE


def is_encrypted(flags: int) -> bool:
    """Return True if the general purpose flags mark the entry as encrypted."""
    return bool(flags & FLAG_ENCRYPTED)


def describe_encryption(flags: int, extra: bytes, compression_method: int) -> EncryptionInfo:
    """Classify the encryption of an entry from its directory record.

    Args:
        flags: General purpose bit flags.
        extra: Raw extra field bytes.
        compression_method: Compression method stored in the header.

    Returns:
        EncryptionInfo for the entry.
    """
    if not is_encrypted(flags):
        return EncryptionInfo(EncryptionMethod.NONE, compression_method)

    for field in iter_extra_fields(extra):
        if field.tag == AES_EXTRA_FIELD_TAG and len(field.data) >= 7:
            # vendor version (2), vendor id "AE" (2), strength (1), method (2)
            strength = field.data[4]
            actual_method = struct.unpack_from("<H", field.data, 5)[0]
            return EncryptionInfo(
                _AES_STRENGTHS.get(strength, EncryptionMethod.STRONG),
                actual_method,
            )
        if field.tag == STRONG_ENCRYPTION_EXTRA_FIELD_TAG:
            return EncryptionInfo(EncryptionMethod.STRONG, compression_method)

    if flags & FLAG_STRONG_ENCRYPTION:
        return EncryptionInfo(EncryptionMethod.STRONG, compression_method)

    return EncryptionInfo(EncryptionMethod.ZIP_CRYPTO, compression_method)
