"""
Remote directory listing with glob filtering and optional recursion.

Provides:
- IncludeType: Which entry kinds to report
- DirectoryEntry: One listed file or directory
- glob_to_regex() / matches_pattern(): File mask matching
- walk(): List a directory through anything with an async readdir()
"""
from __future__ import annotations

import logging
import posixpath
import re
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Protocol, Sequence

import asyncssh

from nbs_sftp.cancellation import CancellationToken, check_cancelled
from nbs_sftp.errors import PathNotFound, RemoteOperationError

logger = logging.getLogger(__name__)

REGEX_PREFIX = "<regex>"

# SFTP v4+ file type codes, used when a server omits permissions
_FILEXFER_TYPE_REGULAR = 1
_FILEXFER_TYPE_DIRECTORY = 2


class IncludeType(str, Enum):
    """Entry kinds reported by walk()."""
    FILE = "file"
    DIRECTORY = "directory"
    BOTH = "both"


class DirectoryLister(Protocol):
    async def readdir(self, path: str) -> Sequence[asyncssh.SFTPName]: ...


@dataclass(frozen=True)
class DirectoryEntry:
    """
    A remote file or directory.

    Times are reported both in UTC and converted to the local timezone.
    """
    name: str
    full_path: str
    is_directory: bool
    is_file: bool
    size: int
    last_write_time_utc: datetime
    last_access_time_utc: datetime

    @property
    def last_write_time(self) -> datetime:
        return self.last_write_time_utc.astimezone()

    @property
    def last_access_time(self) -> datetime:
        return self.last_access_time_utc.astimezone()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "full_path": self.full_path,
            "is_directory": self.is_directory,
            "is_file": self.is_file,
            "size": self.size,
            "last_write_time_utc": self.last_write_time_utc.isoformat(),
            "last_access_time_utc": self.last_access_time_utc.isoformat(),
            "last_write_time": self.last_write_time.isoformat(),
            "last_access_time": self.last_access_time.isoformat(),
        }


@lru_cache(maxsize=128)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Translate a file mask to an anchored, case-insensitive regex.

    '*' matches any run of characters, '?' matches one or more
    characters, and everything else is literal. A mask starting with
    '<regex>' is used as a raw regular expression instead.
    """
    if pattern.startswith(REGEX_PREFIX):
        return re.compile(pattern[len(REGEX_PREFIX):], re.IGNORECASE)

    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".+")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE)


def matches_pattern(name: str, pattern: str) -> bool:
    """True if name matches the mask; an empty mask matches everything."""
    if not pattern or name == pattern:
        return True
    return glob_to_regex(pattern).search(name) is not None


def _timestamp(value: int | float | None) -> datetime:
    return datetime.fromtimestamp(value or 0, tz=timezone.utc)


def _is_directory(attrs: asyncssh.SFTPAttrs) -> bool:
    if attrs.permissions is not None:
        return stat.S_ISDIR(attrs.permissions)
    return attrs.type == _FILEXFER_TYPE_DIRECTORY


def _is_regular_file(attrs: asyncssh.SFTPAttrs) -> bool:
    if attrs.permissions is not None:
        return stat.S_ISREG(attrs.permissions)
    return attrs.type == _FILEXFER_TYPE_REGULAR


def entry_from_sftp_name(directory: str, name: asyncssh.SFTPName) -> DirectoryEntry:
    """Build a DirectoryEntry from one readdir() result."""
    filename = name.filename
    if isinstance(filename, bytes):
        filename = filename.decode("utf-8", errors="replace")
    attrs = name.attrs
    return DirectoryEntry(
        name=filename,
        full_path=posixpath.join(directory, filename),
        is_directory=_is_directory(attrs),
        is_file=_is_regular_file(attrs),
        size=attrs.size or 0,
        last_write_time_utc=_timestamp(attrs.mtime),
        last_access_time_utc=_timestamp(attrs.atime),
    )


def _wanted(entry: DirectoryEntry, include_type: IncludeType) -> bool:
    if include_type == IncludeType.FILE:
        return entry.is_file
    if include_type == IncludeType.DIRECTORY:
        return entry.is_directory
    return True


async def _readdir(lister: DirectoryLister, path: str) -> Sequence[asyncssh.SFTPName]:
    try:
        return await lister.readdir(path)
    except asyncssh.SFTPNoSuchFile as e:
        raise PathNotFound(f"No such directory '{path}'.", path=path) from e
    except asyncssh.SFTPError as e:
        raise RemoteOperationError(f"Failed to list '{path}': {e.reason}") from e


async def _walk_directory(
    lister: DirectoryLister,
    directory: str,
    include_type: IncludeType,
    pattern: str,
    recursive: bool,
    cancel_token: CancellationToken | None,
    results: list[DirectoryEntry],
) -> None:
    for name in await _readdir(lister, directory):
        check_cancelled(cancel_token)
        if name.filename in (".", "..", b".", b".."):
            continue
        entry = entry_from_sftp_name(directory, name)

        if _wanted(entry, include_type) and matches_pattern(entry.name, pattern):
            results.append(entry)
        if recursive and entry.is_directory:
            await _walk_directory(
                lister, entry.full_path, include_type, pattern, recursive, cancel_token, results,
            )


async def walk(
    lister: DirectoryLister,
    path: str,
    include_type: IncludeType = IncludeType.BOTH,
    pattern: str = "",
    recursive: bool = False,
    cancel_token: CancellationToken | None = None,
) -> list[DirectoryEntry]:
    """
    List a remote directory.

    Args:
        lister: Object with async readdir(path), e.g. asyncssh.SFTPClient
        path: Directory to list
        include_type: Which kinds of entry to report
        pattern: File mask matched against bare names ("" matches all)
        recursive: Also list subdirectories (regardless of include_type)
        cancel_token: Checked before each entry

    Returns:
        Entries in listing order. With recursive=True a subdirectory's
        entries follow it directly, ahead of its later siblings.

    Raises:
        PathNotFound: path does not exist
        OperationCancelled: The token fired
    """
    results: list[DirectoryEntry] = []
    await _walk_directory(
        lister, path, IncludeType(include_type), pattern, recursive, cancel_token, results,
    )
    logger.debug("Listed %s: %d entries (recursive=%s)", path, len(results), recursive)
    return results
