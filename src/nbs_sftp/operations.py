"""
Task-level SFTP operations.

Every operation takes an open SFTPConnection (anything exposing .sftp
works; events and cancellation are picked up when present) and returns
a small result dataclass.

Operations:
- list_files(): Directory listing with mask and recursion
- move_files(): Move matching files into a target directory
- rename_file(): Rename one file within its directory
- delete_files(): Delete explicit paths, or files matching a mask
- delete_directory(): Remove a directory tree
- read_file(): Fetch one file as text or bytes
- write_file(): Append to, overwrite or create one file
- upload_file(): Copy a local file into a remote directory
- download_file(): Copy a remote file into a local directory
- create_directories(): mkdir -p
"""
from __future__ import annotations

import logging
import os
import posixpath
import stat
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

import asyncssh

from nbs_sftp.cancellation import CancellationToken, check_cancelled
from nbs_sftp.conflict import FileConflictPolicy, check_batch, resolve, resolve_remote
from nbs_sftp.encoding import ResolvedEncoding
from nbs_sftp.errors import (
    BatchOperationError,
    OperationCancelled,
    PathNotFound,
    RemoteOperationError,
    SFTPError,
    TargetExists,
)
from nbs_sftp.events import EventEmitter, EventType
from nbs_sftp.validation import validate_remote_path
from nbs_sftp.walker import DirectoryEntry, IncludeType, walk

logger = logging.getLogger(__name__)

NO_MATCHES_MESSAGE = "No files were found matching the given pattern."


class WriteBehaviour(str, Enum):
    """What write_file() does when the file already exists."""
    APPEND = "append"
    OVERWRITE = "overwrite"
    ERROR = "error"


class NotExistsAction(str, Enum):
    """What delete_directory() does when the directory is missing."""
    SKIP = "skip"
    THROW = "throw"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class TransferOutcome:
    """One file moved, renamed or uploaded."""
    source_path: str
    destination_path: str
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_path": self.source_path,
            "destination_path": self.destination_path,
            "success": self.success,
        }


@dataclass
class ListResult:
    count: int
    files: list[DirectoryEntry]

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "files": [f.to_dict() for f in self.files]}


@dataclass
class MoveResult:
    files: list[TransferOutcome]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"files": [f.to_dict() for f in self.files], "message": self.message}


@dataclass
class RenameResult:
    path: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path}


@dataclass
class DeleteFilesResult:
    files: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"files": list(self.files)}


@dataclass
class DeleteDirectoryResult:
    """
    Result of delete_directory().

    deleted may be non-empty even when success is False: it lists what
    was removed before the failure.
    """
    success: bool
    deleted: list[str] = field(default_factory=list)
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "deleted": list(self.deleted),
            "error_message": self.error_message,
        }


@dataclass
class ReadResult:
    """Contents of one remote file; exactly one of the content fields is set."""
    path: str
    size_in_megabytes: float
    last_write_time: datetime
    text_content: str | None = None
    binary_content: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "path": self.path,
            "size_in_megabytes": self.size_in_megabytes,
            "last_write_time": self.last_write_time.isoformat(),
        }
        if self.text_content is not None:
            result["text_content"] = self.text_content
        else:
            result["binary_size"] = len(self.binary_content or b"")
        return result


@dataclass
class WriteResult:
    path: str
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "success": self.success}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sftp(conn: Any) -> asyncssh.SFTPClient:
    return conn.sftp


def _emitter(conn: Any) -> EventEmitter:
    emitter = getattr(conn, "emitter", None)
    return emitter if emitter is not None else EventEmitter()


def _token(conn: Any, cancel_token: CancellationToken | None) -> CancellationToken | None:
    if cancel_token is not None:
        return cancel_token
    return getattr(conn, "cancel_token", None)


def _encoding(conn: Any, encoding: ResolvedEncoding | None) -> ResolvedEncoding:
    if encoding is not None:
        return encoding
    conn_encoding = getattr(conn, "encoding", None)
    return conn_encoding if conn_encoding is not None else ResolvedEncoding("utf-8")


def _block_size(conn: Any) -> int:
    return getattr(conn, "block_size", 32 * 1024)


def _remote_error(action: str, path: str, exc: asyncssh.SFTPError) -> SFTPError:
    if isinstance(exc, asyncssh.SFTPNoSuchFile):
        return PathNotFound(f"No such file or directory '{path}'.", path=path)
    return RemoteOperationError(f"Failed to {action} '{path}': {exc.reason}")


async def _is_directory(sftp: asyncssh.SFTPClient, path: str) -> bool:
    try:
        attrs = await sftp.stat(path)
    except asyncssh.SFTPNoSuchFile:
        return False
    return attrs.permissions is not None and stat.S_ISDIR(attrs.permissions)


async def create_directories(sftp: asyncssh.SFTPClient, path: str) -> list[str]:
    """
    Create path and any missing parents, top-down.

    Existing segments are left alone; a segment that exists as a file is
    an error.

    Returns:
        The directories that were created, outermost first
    """
    path = validate_remote_path(path)
    absolute = path.startswith("/")
    segments = [s for s in path.split("/") if s]
    created: list[str] = []
    current = "/" if absolute else ""

    for segment in segments:
        current = posixpath.join(current, segment) if current else segment
        if await sftp.exists(current):
            if not await sftp.isdir(current):
                raise RemoteOperationError(
                    f"Cannot create directory '{current}': a file with that name exists."
                )
            continue
        try:
            await sftp.mkdir(current)
        except asyncssh.SFTPError as e:
            raise _remote_error("create directory", current, e) from e
        created.append(current)

    if created:
        logger.debug("Created directories: %s", ", ".join(created))
    return created


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def list_files(
    conn: Any,
    directory: str,
    include_type: IncludeType = IncludeType.BOTH,
    pattern: str = "",
    recursive: bool = False,
    cancel_token: CancellationToken | None = None,
) -> ListResult:
    """List a remote directory; see walker.walk() for the matching rules."""
    directory = validate_remote_path(directory, "directory")
    with _emitter(conn).timed_event(
        EventType.LIST, path=directory, pattern=pattern, recursive=recursive,
    ) as data:
        entries = await walk(
            _sftp(conn),
            directory,
            include_type=include_type,
            pattern=pattern,
            recursive=recursive,
            cancel_token=_token(conn, cancel_token),
        )
        data["count"] = len(entries)
    return ListResult(count=len(entries), files=entries)


async def move_files(
    conn: Any,
    directory: str,
    pattern: str,
    target_directory: str,
    if_target_exists: FileConflictPolicy = FileConflictPolicy.THROW,
    create_target_directories: bool = True,
    cancel_token: CancellationToken | None = None,
) -> MoveResult:
    """
    Move every file in directory matching pattern into target_directory.

    Under THROW the whole batch is checked first, so either every file
    moves or none does. Under OVERWRITE an existing target is removed
    before the rename. Under RENAME the file gets the next free
    "name(n).ext".

    Raises:
        PathNotFound: directory is missing, or target_directory is
                      missing and create_target_directories is False
        BatchConflict: THROW and a target exists or is shared
        BatchOperationError: A move failed part way; outcomes lists the
                             files already moved
    """
    directory = validate_remote_path(directory, "directory")
    target_directory = validate_remote_path(target_directory, "target_directory")
    policy = FileConflictPolicy(if_target_exists)
    sftp = _sftp(conn)
    token = _token(conn, cancel_token)
    emitter = _emitter(conn)

    entries = await walk(sftp, directory, IncludeType.FILE, pattern, cancel_token=token)
    if not entries:
        logger.info("No files in %s match %r", directory, pattern)
        return MoveResult(files=[], message=NO_MATCHES_MESSAGE)

    if not await sftp.exists(target_directory):
        if not create_target_directories:
            raise PathNotFound(
                f"Target directory {target_directory} does not exist.",
                path=target_directory,
            )
        await create_directories(sftp, target_directory)

    targets = [posixpath.join(target_directory, entry.name) for entry in entries]
    if policy == FileConflictPolicy.THROW:
        await check_batch(targets, sftp.exists)

    outcomes: list[TransferOutcome] = []
    for entry, target in zip(entries, targets):
        try:
            check_cancelled(token)
            destination = await resolve_remote(policy, entry.full_path, target, sftp.exists)
            if policy == FileConflictPolicy.OVERWRITE and await sftp.exists(destination):
                await sftp.remove(destination)
            await sftp.rename(entry.full_path, destination)
        except OperationCancelled as e:
            raise OperationCancelled(str(e), outcomes=outcomes) from e
        except (SFTPError, asyncssh.SFTPError) as e:
            reason = e.reason if isinstance(e, asyncssh.SFTPError) else str(e)
            emitter.emit(
                EventType.ERROR,
                error_type="move_failed",
                message=reason,
                source_path=entry.full_path,
                completed=len(outcomes),
            )
            raise BatchOperationError(
                f"Failed to move '{entry.full_path}' after {len(outcomes)} of "
                f"{len(entries)} files: {reason}",
                outcomes=outcomes,
            ) from e

        outcomes.append(TransferOutcome(entry.full_path, destination))
        emitter.emit(
            EventType.TRANSFER,
            operation="move",
            source_path=entry.full_path,
            destination_path=destination,
        )

    message = f"Successfully moved {len(outcomes)} files to {target_directory}."
    logger.info(message)
    return MoveResult(files=outcomes, message=message)


async def rename_file(
    conn: Any,
    path: str,
    new_file_name: str,
    behaviour: FileConflictPolicy = FileConflictPolicy.THROW,
) -> RenameResult:
    """
    Rename a file within its own directory.

    Raises:
        PathNotFound: path does not exist
        TargetExists: THROW and the new name is taken
    """
    path = validate_remote_path(path)
    assert new_file_name and "/" not in new_file_name, \
        f"new_file_name must be a bare file name, got {new_file_name!r}"
    policy = FileConflictPolicy(behaviour)
    sftp = _sftp(conn)

    if not await sftp.exists(path):
        raise PathNotFound(f"No such file '{path}'.", path=path)

    new_path = posixpath.join(posixpath.dirname(path), new_file_name)

    if policy == FileConflictPolicy.THROW:
        if await sftp.exists(new_path):
            raise TargetExists(f"File already exists {new_path}. No file renamed.", path=new_path)
    else:
        new_path = await resolve_remote(policy, path, new_path, sftp.exists)
        if policy == FileConflictPolicy.OVERWRITE and await sftp.exists(new_path):
            await sftp.remove(new_path)

    try:
        await sftp.rename(path, new_path)
    except asyncssh.SFTPError as e:
        raise _remote_error("rename", path, e) from e

    _emitter(conn).emit(
        EventType.TRANSFER, operation="rename", source_path=path, destination_path=new_path,
    )
    return RenameResult(path=new_path)


async def delete_files(
    conn: Any,
    directory: str = "/",
    file_mask: str = "",
    file_paths: Sequence[str] | None = None,
    cancel_token: CancellationToken | None = None,
) -> DeleteFilesResult:
    """
    Delete files.

    When file_paths is given it is used as-is and directory/file_mask
    are ignored. Otherwise every file (never a directory) in directory
    whose name matches file_mask is deleted.

    Raises:
        PathNotFound: directory does not exist
        BatchOperationError: A delete failed part way; outcomes lists
                             the paths already deleted
    """
    sftp = _sftp(conn)
    token = _token(conn, cancel_token)
    emitter = _emitter(conn)

    if file_paths:
        paths = [validate_remote_path(p, "file_paths") for p in file_paths]
    else:
        directory = validate_remote_path(directory, "directory")
        try:
            entries = await walk(sftp, directory, IncludeType.FILE, file_mask, cancel_token=token)
        except PathNotFound as e:
            raise PathNotFound(f"No such Directory '{directory}'.", path=directory) from e
        paths = [entry.full_path for entry in entries]

    deleted: list[str] = []
    for path in paths:
        try:
            check_cancelled(token)
        except OperationCancelled as e:
            raise OperationCancelled(str(e), outcomes=deleted) from e
        try:
            await sftp.remove(path)
        except asyncssh.SFTPError as e:
            raise BatchOperationError(
                f"Failed to delete '{path}' after {len(deleted)} files: {e.reason}",
                outcomes=deleted,
            ) from e
        deleted.append(path)
        emitter.emit(EventType.DELETE, path=path, kind="file")

    logger.info("Deleted %d files", len(deleted))
    return DeleteFilesResult(files=deleted)


async def _delete_tree(
    sftp: asyncssh.SFTPClient,
    directory: str,
    deleted: list[str],
    emitter: EventEmitter,
    token: CancellationToken | None,
) -> None:
    entries = await walk(sftp, directory, IncludeType.BOTH, cancel_token=token)
    for entry in entries:
        check_cancelled(token)
        if entry.is_directory:
            await _delete_tree(sftp, entry.full_path, deleted, emitter, token)
            continue
        try:
            await sftp.remove(entry.full_path)
        except asyncssh.SFTPError as e:
            raise _remote_error("delete", entry.full_path, e) from e
        deleted.append(entry.full_path)
        emitter.emit(EventType.DELETE, path=entry.full_path, kind="file")

    try:
        await sftp.rmdir(directory)
    except asyncssh.SFTPError as e:
        raise _remote_error("delete directory", directory, e) from e
    deleted.append(directory)
    emitter.emit(EventType.DELETE, path=directory, kind="directory")


async def delete_directory(
    conn: Any,
    directory: str,
    if_not_exists: NotExistsAction = NotExistsAction.SKIP,
    throw_exception_on_error: bool = True,
    cancel_token: CancellationToken | None = None,
) -> DeleteDirectoryResult:
    """
    Delete a directory and everything below it.

    Contents are removed depth-first, then the directory itself. With
    throw_exception_on_error=False a failure is reported in the result
    (success=False, error_message) instead of raised, and deleted lists
    what was removed before it.

    Raises:
        PathNotFound: The directory is missing and if_not_exists is THROW
        BatchOperationError: A delete failed part way; outcomes lists what
                             was already removed
        OperationCancelled: The token fired; outcomes as above
    """
    directory = validate_remote_path(directory, "directory")
    if_not_exists = NotExistsAction(if_not_exists)
    sftp = _sftp(conn)
    missing_message = f"Directory {directory} does not exists."

    if not await sftp.exists(directory):
        if if_not_exists == NotExistsAction.THROW:
            raise PathNotFound(missing_message, path=directory)
        return DeleteDirectoryResult(success=True, deleted=[], error_message=missing_message)

    deleted: list[str] = []
    try:
        await _delete_tree(sftp, directory, deleted, _emitter(conn), _token(conn, cancel_token))
    except SFTPError as e:
        message = str(e)
        if throw_exception_on_error:
            if isinstance(e, OperationCancelled):
                raise OperationCancelled(message, outcomes=deleted) from e
            raise BatchOperationError(
                f"Failed to delete directory '{directory}' after {len(deleted)} items: {message}",
                outcomes=deleted,
            ) from e
        logger.warning("Deleting %s failed after %d items: %s", directory, len(deleted), message)
        return DeleteDirectoryResult(success=False, deleted=deleted, error_message=message)

    return DeleteDirectoryResult(success=True, deleted=deleted)


async def read_file(
    conn: Any,
    path: str,
    encoding: ResolvedEncoding | None = None,
    binary: bool = False,
) -> ReadResult:
    """
    Read a whole remote file.

    Args:
        encoding: Text codec; defaults to the connection's file encoding
        binary: Return bytes in binary_content instead of decoding

    Raises:
        PathNotFound: path does not exist
    """
    path = validate_remote_path(path)
    sftp = _sftp(conn)

    with _emitter(conn).timed_event(EventType.READ, path=path, binary=binary) as data:
        try:
            attrs = await sftp.stat(path)
            async with sftp.open(path, "rb", block_size=_block_size(conn)) as f:
                content = await f.read()
        except asyncssh.SFTPError as e:
            raise _remote_error("read", path, e) from e
        data["size"] = len(content)

    result = ReadResult(
        path=path,
        size_in_megabytes=round(len(content) / (1024 * 1024), 3),
        last_write_time=datetime.fromtimestamp(attrs.mtime or 0, tz=timezone.utc).astimezone(),
    )
    if binary:
        result.binary_content = content
    else:
        result.text_content = _encoding(conn, encoding).decode(content)
    return result


async def write_file(
    conn: Any,
    path: str,
    content: str | bytes,
    write_behaviour: WriteBehaviour = WriteBehaviour.ERROR,
    encoding: ResolvedEncoding | None = None,
) -> WriteResult:
    """
    Write text or bytes to a remote file.

    Raises:
        TargetExists: ERROR and the file exists
    """
    path = validate_remote_path(path)
    write_behaviour = WriteBehaviour(write_behaviour)
    sftp = _sftp(conn)
    resolved = _encoding(conn, encoding)
    exists = await sftp.exists(path)

    if exists and write_behaviour == WriteBehaviour.ERROR:
        raise TargetExists(f"File already exists: {path}", path=path)

    if isinstance(content, str):
        # A BOM belongs only at the start of the file
        if exists and write_behaviour == WriteBehaviour.APPEND and resolved.bom:
            data = content.encode(resolved.path_codec)
        else:
            data = resolved.encode(content)
    else:
        data = content

    mode = "ab" if write_behaviour == WriteBehaviour.APPEND else "wb"
    with _emitter(conn).timed_event(
        EventType.WRITE, path=path, mode=write_behaviour.value, size=len(data),
    ):
        try:
            async with sftp.open(path, mode, block_size=_block_size(conn)) as f:
                await f.write(data)
        except asyncssh.SFTPError as e:
            raise _remote_error("write", path, e) from e

    return WriteResult(path=path, success=True)


async def upload_file(
    conn: Any,
    local_path: Path | str,
    remote_directory: str,
    if_target_exists: FileConflictPolicy = FileConflictPolicy.THROW,
) -> TransferOutcome:
    """
    Copy a local file into a remote directory under the same name.

    The conflict policy applies to the remote file name. The remote
    directory is created if missing.

    Raises:
        FileNotFoundError: local_path does not exist
        TargetExists: THROW and the remote file exists
    """
    local_path = Path(local_path)
    if not local_path.is_file():
        raise FileNotFoundError(f"Local file not found: {local_path}")

    remote_directory = validate_remote_path(remote_directory, "remote_directory")
    sftp = _sftp(conn)
    policy = FileConflictPolicy(if_target_exists)

    if not await _is_directory(sftp, remote_directory):
        await create_directories(sftp, remote_directory)

    target = posixpath.join(remote_directory, local_path.name)
    destination = await resolve_remote(policy, local_path.name, target, sftp.exists)

    with _emitter(conn).timed_event(
        EventType.TRANSFER,
        operation="upload",
        source_path=str(local_path),
        destination_path=destination,
    ):
        try:
            await sftp.put(str(local_path), destination, block_size=_block_size(conn))
        except asyncssh.SFTPError as e:
            raise _remote_error("upload to", destination, e) from e

    return TransferOutcome(str(local_path), destination)


async def download_file(
    conn: Any,
    remote_path: str,
    local_directory: Path | str,
    if_target_exists: FileConflictPolicy = FileConflictPolicy.THROW,
    create_local_directories: bool = False,
) -> TransferOutcome:
    """
    Copy one remote file into a local directory under the same name.

    The conflict policy applies to the local file: THROW refuses an
    existing file, OVERWRITE replaces it and RENAME picks the next free
    "name(n).ext" beside it.

    Raises:
        PathNotFound: remote_path does not exist, or local_directory is
                      missing and create_local_directories is False
        TargetExists: THROW and the local file exists
    """
    remote_path = validate_remote_path(remote_path, "remote_path")
    local_directory = Path(local_directory)
    policy = FileConflictPolicy(if_target_exists)
    sftp = _sftp(conn)

    if not local_directory.is_dir():
        if not create_local_directories:
            raise PathNotFound(
                f"Destination directory '{local_directory}' was not found.",
                path=str(local_directory),
            )
        local_directory.mkdir(parents=True)

    if not await sftp.exists(remote_path):
        raise PathNotFound(f"No such file '{remote_path}'.", path=remote_path)

    name = posixpath.basename(remote_path)
    target = (local_directory / name).as_posix()
    destination = resolve(policy, remote_path, target, os.path.exists)

    with _emitter(conn).timed_event(
        EventType.TRANSFER,
        operation="download",
        source_path=remote_path,
        destination_path=destination,
    ):
        try:
            await sftp.get(remote_path, destination, block_size=_block_size(conn))
        except asyncssh.SFTPError as e:
            raise _remote_error("download", remote_path, e) from e

    return TransferOutcome(remote_path, destination)
