"""
Destination conflict resolution for moves, renames and uploads.

Policies:
- THROW: refuse if the destination exists
- OVERWRITE: keep the destination; the caller removes the old file
- RENAME: pick "{stem}({n}){ext}" for the smallest free n >= 1

Existence checks are injected, so the same logic serves local tests
(sync predicate) and a live SFTP session (async predicate).
"""
from __future__ import annotations

import posixpath
from collections import Counter
from enum import Enum
from typing import Awaitable, Callable, Iterable, Iterator, Sequence

from nbs_sftp.errors import BatchConflict, RenameLimitExceeded, TargetExists

MAX_RENAME_ATTEMPTS = 10000


class FileConflictPolicy(str, Enum):
    """What to do when the destination path is taken."""
    THROW = "throw"
    OVERWRITE = "overwrite"
    RENAME = "rename"


def candidate_paths(
    source_path: str,
    dest_path: str,
    limit: int = MAX_RENAME_ATTEMPTS,
) -> Iterator[str]:
    """
    Yield rename candidates next to dest_path.

    The stem and extension come from the source file name, so moving
    "/in/test.txt" onto "/out/test.txt" yields "/out/test(1).txt",
    "/out/test(2).txt", ...
    """
    directory = posixpath.dirname(dest_path)
    stem, ext = posixpath.splitext(posixpath.basename(source_path))
    for n in range(1, limit + 1):
        yield posixpath.join(directory, f"{stem}({n}){ext}")


def _target_exists(dest_path: str) -> TargetExists:
    return TargetExists(f"File '{dest_path}' already exists.", path=dest_path)


def _limit_exceeded(dest_path: str, limit: int) -> RenameLimitExceeded:
    return RenameLimitExceeded(
        f"Could not find a free name for '{dest_path}' after {limit} attempts.",
        path=dest_path,
        attempts=limit,
    )


def resolve(
    policy: FileConflictPolicy,
    source_path: str,
    dest_path: str,
    exists: Callable[[str], bool],
    limit: int = MAX_RENAME_ATTEMPTS,
) -> str:
    """
    Decide the final destination path.

    Args:
        policy: Conflict policy
        source_path: File being moved/uploaded (names RENAME candidates)
        dest_path: Requested destination
        exists: Returns True if a path is taken

    Raises:
        TargetExists: THROW and dest_path exists
        RenameLimitExceeded: RENAME found no free name within limit
    """
    policy = FileConflictPolicy(policy)
    if policy == FileConflictPolicy.OVERWRITE:
        return dest_path
    if not exists(dest_path):
        return dest_path
    if policy == FileConflictPolicy.THROW:
        raise _target_exists(dest_path)

    for candidate in candidate_paths(source_path, dest_path, limit):
        if not exists(candidate):
            return candidate
    raise _limit_exceeded(dest_path, limit)


async def resolve_remote(
    policy: FileConflictPolicy,
    source_path: str,
    dest_path: str,
    exists: Callable[[str], Awaitable[bool]],
    limit: int = MAX_RENAME_ATTEMPTS,
) -> str:
    """resolve() with an async existence check, e.g. SFTPClient.exists."""
    policy = FileConflictPolicy(policy)
    if policy == FileConflictPolicy.OVERWRITE:
        return dest_path
    if not await exists(dest_path):
        return dest_path
    if policy == FileConflictPolicy.THROW:
        raise _target_exists(dest_path)

    for candidate in candidate_paths(source_path, dest_path, limit):
        if not await exists(candidate):
            return candidate
    raise _limit_exceeded(dest_path, limit)


def find_duplicate_targets(targets: Iterable[str]) -> list[str]:
    """Destinations that more than one source would write to, in first-seen order."""
    counts = Counter(targets)
    return [path for path, count in counts.items() if count > 1]


async def check_batch(
    targets: Sequence[str],
    exists: Callable[[str], Awaitable[bool]],
) -> None:
    """
    Reject a THROW batch before anything is moved.

    Raises:
        BatchConflict: Two sources share a destination, or a
                       destination already exists
    """
    duplicates = find_duplicate_targets(targets)
    if duplicates:
        raise BatchConflict(
            f"Multiple files written to {', '.join(duplicates)}. "
            "The files would get overwritten. No files moved.",
            paths=duplicates,
        )

    for target in targets:
        if await exists(target):
            raise BatchConflict(
                f"File '{target}' already exists. No files moved.",
                paths=[target],
            )
