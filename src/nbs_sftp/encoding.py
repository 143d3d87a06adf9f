"""
Character encoding selection for remote file names and file contents.

The table is deliberately small: UTF-8 (with or without BOM), ASCII, the
platform default ("ANSI"), Windows-1252, or any codec Python knows by name.
"""
from __future__ import annotations

import codecs
import locale
from dataclasses import dataclass
from enum import Enum

from nbs_sftp.errors import ConfigurationError


class FileEncoding(str, Enum):
    """Supported encoding choices."""
    UTF8 = "utf8"
    ASCII = "ascii"
    ANSI = "ansi"
    WINDOWS1252 = "windows1252"
    OTHER = "other"


@dataclass(frozen=True)
class ResolvedEncoding:
    """
    A concrete codec.

    Attributes:
        codec: Python codec name used for decoding and encoding text
        bom: Whether encoded text starts with a byte order mark
    """
    codec: str
    bom: bool = False

    @property
    def path_codec(self) -> str:
        """Codec for file names; a BOM never belongs in a path."""
        return "utf-8" if self.codec == "utf-8-sig" else self.codec

    def encode(self, text: str) -> bytes:
        return text.encode(self.codec)

    def decode(self, data: bytes) -> str:
        return data.decode(self.codec)


def resolve_encoding(
    encoding: FileEncoding | str = FileEncoding.UTF8,
    enable_bom: bool = False,
    encoding_name: str | None = None,
) -> ResolvedEncoding:
    """
    Map a FileEncoding choice to a Python codec.

    Args:
        encoding: The encoding choice
        enable_bom: Only meaningful for UTF8
        encoding_name: Codec name, required for OTHER

    Raises:
        ConfigurationError: If the choice or the named codec is unknown
    """
    try:
        encoding = FileEncoding(encoding)
    except ValueError as e:
        raise ConfigurationError(f"Unknown Encoding type: '{encoding}'.") from e

    if encoding == FileEncoding.UTF8:
        return ResolvedEncoding("utf-8-sig", bom=True) if enable_bom else ResolvedEncoding("utf-8")
    if encoding == FileEncoding.ASCII:
        return ResolvedEncoding("ascii")
    if encoding == FileEncoding.ANSI:
        return ResolvedEncoding(codecs.lookup(locale.getpreferredencoding(False)).name)
    if encoding == FileEncoding.WINDOWS1252:
        return ResolvedEncoding("cp1252")

    if not encoding_name:
        raise ConfigurationError("Encoding name is required when the encoding is 'other'.")
    try:
        info = codecs.lookup(encoding_name)
    except LookupError as e:
        raise ConfigurationError(
            f"Encoding string {encoding_name} is not a valid code page name."
        ) from e
    return ResolvedEncoding(info.name)
