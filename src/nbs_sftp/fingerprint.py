"""
Host fingerprint classification and canonical encodings.

Users paste fingerprints in whatever form their tooling printed:
- MD5 with colons:      "9d:38:5b:83:a9:17:52:92:56:1a:5e:c4:d4:81:8e:0a"
- MD5 without colons:   "9d385b83a9175292561a5ec4d4818e0a"
- SHA-256 hex:          64 hex characters
- SHA-256 base64:       "sdvA1...Ib0=" (with or without the trailing "=")

classify() inspects the string once and returns an ExpectedFingerprint
tagged with its format, so verification can dispatch on the tag instead
of re-sniffing the string.
"""
from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from enum import Enum

_MD5_HEX = re.compile(r"^[0-9a-fA-F]{32}$")
_SHA256_HEX = re.compile(r"^[0-9a-fA-F]{64}$")


class FingerprintFormat(str, Enum):
    """Shape of a user-supplied fingerprint."""
    MD5_COLON_HEX = "md5_colon_hex"
    MD5_HEX = "md5_hex"
    SHA256_HEX = "sha256_hex"
    SHA256_BASE64 = "sha256_base64"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ExpectedFingerprint:
    """A fingerprint string together with its classified format."""
    format: FingerprintFormat
    value: str

    @property
    def is_md5(self) -> bool:
        return self.format in (FingerprintFormat.MD5_COLON_HEX, FingerprintFormat.MD5_HEX)

    @property
    def is_sha256(self) -> bool:
        return self.format in (FingerprintFormat.SHA256_HEX, FingerprintFormat.SHA256_BASE64)


def strip_separators(value: str) -> str:
    """Remove ':' and '-' separators."""
    return value.replace(":", "").replace("-", "")


def is_md5(value: str) -> bool:
    """True if value is 32 hex characters once separators are removed."""
    if not value:
        return False
    return bool(_MD5_HEX.match(strip_separators(value)))


def is_sha256_hex(value: str) -> bool:
    return bool(value) and bool(_SHA256_HEX.match(value))


def is_sha256(value: str) -> bool:
    """
    True if value is 64 hex characters or decodes as base64.

    A single '=' is appended when missing, which is how OpenSSH-style
    "SHA256:..." fingerprints with stripped padding become decodable.
    """
    if not value:
        return False
    if is_sha256_hex(value):
        return True
    padded = value if value.endswith("=") else value + "="
    try:
        base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def classify(value: str) -> ExpectedFingerprint:
    """
    Classify a fingerprint string.

    MD5 is checked first, so a 32-character hex string is always MD5
    even though it would also decode as base64.
    """
    if is_md5(value):
        if ":" in value:
            return ExpectedFingerprint(FingerprintFormat.MD5_COLON_HEX, value)
        return ExpectedFingerprint(FingerprintFormat.MD5_HEX, value)
    if is_sha256(value):
        if is_sha256_hex(value):
            return ExpectedFingerprint(FingerprintFormat.SHA256_HEX, value)
        return ExpectedFingerprint(FingerprintFormat.SHA256_BASE64, value)
    return ExpectedFingerprint(FingerprintFormat.UNSUPPORTED, value)


def to_hex(digest: bytes) -> str:
    """Lowercase hex, no separators."""
    return digest.hex()


def to_colon_hex(digest: bytes) -> str:
    """Lowercase hex pairs joined by ':' (the classic MD5 display form)."""
    return ":".join(f"{b:02x}" for b in digest)


def to_base64(digest: bytes) -> str:
    """Padded standard base64."""
    return base64.b64encode(digest).decode("ascii")


def parse_colon_hex(value: str) -> bytes:
    """
    Parse "aa:bb:..." into bytes.

    Raises:
        ValueError: If any segment is not a hex byte
    """
    try:
        return bytes(int(part, 16) for part in value.split(":"))
    except ValueError as e:
        raise ValueError(f"Invalid colon-separated fingerprint: {value!r}") from e
