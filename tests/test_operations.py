"""
Integration tests for task operations against MockSFTPServer.

Tests cover:
- list_files: flat and recursive listings, masks, include types
- move_files: THROW batch checks, OVERWRITE, RENAME numbering, no matches
- rename_file: every conflict policy
- delete_files: explicit paths and mask-based deletion
- delete_directory: recursive removal, missing directory handling
- read_file / write_file: text, binary, BOM handling, write behaviours
- upload_file, download_file and create_directories
- Partial results on mid-batch cancellation and failures
"""
from __future__ import annotations

import codecs
from pathlib import Path
from typing import AsyncGenerator, Callable

import asyncssh
import pytest

from nbs_sftp.cancellation import CancellationToken
from nbs_sftp.config import ConnectionDescriptor
from nbs_sftp.conflict import FileConflictPolicy
from nbs_sftp.connection import SFTPConnection
from nbs_sftp.encoding import FileEncoding
from nbs_sftp.errors import (
    BatchConflict,
    BatchOperationError,
    OperationCancelled,
    PathNotFound,
    RemoteOperationError,
    TargetExists,
)
from nbs_sftp.events import EventCollector, EventType
from nbs_sftp.operations import (
    NO_MATCHES_MESSAGE,
    NotExistsAction,
    WriteBehaviour,
    create_directories,
    delete_directory,
    delete_files,
    download_file,
    list_files,
    move_files,
    read_file,
    rename_file,
    upload_file,
    write_file,
)
from nbs_sftp.walker import IncludeType


@pytest.fixture
async def conn(
    make_descriptor: Callable[..., ConnectionDescriptor],
    event_collector: EventCollector,
) -> AsyncGenerator[SFTPConnection, None]:
    """An open connection to mock_sftp_server."""
    async with SFTPConnection(make_descriptor(), event_collector) as connection:
        yield connection


@pytest.fixture
def scenario_dir(sftp_root: Path) -> Path:
    """/data with three files and a subdirectory holding three more."""
    data = sftp_root / "data"
    sub = data / "subDir"
    sub.mkdir(parents=True)
    for name in ("test1.txt", "test2.txt", "test3.txt"):
        (data / name).write_text(name)
    for name in ("sub1.txt", "sub2.txt", "sub3.log"):
        (sub / name).write_text(name)
    return data


class _Conn:
    """Bare connection stand-in: operations only need .sftp."""

    def __init__(self, sftp: object) -> None:
        self.sftp = sftp


class _WrappedSFTP:
    """Delegates to a real SFTP client, with some methods replaced."""

    def __init__(self, sftp: object, **replacements: Callable) -> None:
        self._sftp = sftp
        for name, func in replacements.items():
            setattr(self, name, func)

    def __getattr__(self, name: str) -> object:
        return getattr(self._sftp, name)


# ---------------------------------------------------------------------------
# list_files
# ---------------------------------------------------------------------------

class TestListFiles:
    """Test list_files()."""

    @pytest.mark.asyncio
    async def test_flat(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await list_files(conn, "/data", IncludeType.BOTH, "", recursive=False)

        assert result.count == 4
        assert sorted(f.name for f in result.files) == ["subDir", "test1.txt", "test2.txt", "test3.txt"]

    @pytest.mark.asyncio
    async def test_recursive(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await list_files(conn, "/data", IncludeType.BOTH, "", recursive=True)

        assert result.count == 7
        assert "/data/subDir/sub3.log" in {f.full_path for f in result.files}

    @pytest.mark.asyncio
    async def test_mask_and_type(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await list_files(conn, "/data", IncludeType.FILE, "*.TXT", recursive=True)
        assert result.count == 5

    @pytest.mark.asyncio
    async def test_entry_details(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await list_files(conn, "/data", IncludeType.FILE, "test1.txt")

        [entry] = result.files
        assert entry.size == len("test1.txt")
        assert entry.is_file
        assert entry.last_write_time_utc.year >= 2024

    @pytest.mark.asyncio
    async def test_missing(self, conn: SFTPConnection) -> None:
        with pytest.raises(PathNotFound):
            await list_files(conn, "/nope")

    @pytest.mark.asyncio
    async def test_emits_list_event(
        self, conn: SFTPConnection, scenario_dir: Path, event_collector: EventCollector,
    ) -> None:
        await list_files(conn, "/data")

        [event] = event_collector.get_by_type(EventType.LIST)
        assert event.data["count"] == 4
        assert "duration_ms" in event.data


# ---------------------------------------------------------------------------
# move_files
# ---------------------------------------------------------------------------

class TestMoveFiles:
    """Test move_files()."""

    @pytest.mark.asyncio
    async def test_move_creates_target(
        self, conn: SFTPConnection, scenario_dir: Path, sftp_root: Path,
    ) -> None:
        result = await move_files(conn, "/data", "*.txt", "/out/nested")

        assert len(result.files) == 3
        assert result.message == "Successfully moved 3 files to /out/nested."
        assert sorted(p.name for p in (sftp_root / "out" / "nested").iterdir()) == [
            "test1.txt", "test2.txt", "test3.txt",
        ]
        assert not (scenario_dir / "test1.txt").exists()
        assert (scenario_dir / "subDir" / "sub1.txt").exists()

    @pytest.mark.asyncio
    async def test_no_matches(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await move_files(conn, "/data", "*.csv", "/out")

        assert result.files == []
        assert result.message == NO_MATCHES_MESSAGE

    @pytest.mark.asyncio
    async def test_missing_target_without_create(
        self, conn: SFTPConnection, scenario_dir: Path,
    ) -> None:
        with pytest.raises(PathNotFound, match="Target directory /out does not exist."):
            await move_files(conn, "/data", "*.txt", "/out", create_target_directories=False)

    @pytest.mark.asyncio
    async def test_throw_moves_nothing(
        self, conn: SFTPConnection, scenario_dir: Path, sftp_root: Path,
    ) -> None:
        out = sftp_root / "out"
        out.mkdir()
        (out / "test2.txt").write_text("existing")

        with pytest.raises(BatchConflict, match="No files moved."):
            await move_files(conn, "/data", "*.txt", "/out", FileConflictPolicy.THROW)

        assert (scenario_dir / "test1.txt").exists()
        assert not (out / "test1.txt").exists()

    @pytest.mark.asyncio
    async def test_overwrite(
        self, conn: SFTPConnection, scenario_dir: Path, sftp_root: Path,
    ) -> None:
        out = sftp_root / "out"
        out.mkdir()
        (out / "test1.txt").write_text("old")

        await move_files(conn, "/data", "test1.txt", "/out", FileConflictPolicy.OVERWRITE)

        assert (out / "test1.txt").read_text() == "test1.txt"

    @pytest.mark.asyncio
    async def test_rename_numbering(self, conn: SFTPConnection, sftp_root: Path) -> None:
        """test.txt lands as test(1).txt, and a second one as test(2).txt."""
        source = sftp_root / "in"
        out = sftp_root / "out"
        source.mkdir()
        out.mkdir()
        (out / "test.txt").write_text("original")

        (source / "test.txt").write_text("first")
        first = await move_files(conn, "/in", "test.txt", "/out", FileConflictPolicy.RENAME)

        (source / "test.txt").write_text("second")
        second = await move_files(conn, "/in", "test.txt", "/out", FileConflictPolicy.RENAME)

        assert first.files[0].destination_path == "/out/test(1).txt"
        assert second.files[0].destination_path == "/out/test(2).txt"
        assert (out / "test.txt").read_text() == "original"
        assert (out / "test(2).txt").read_text() == "second"

    @pytest.mark.asyncio
    async def test_transfer_events(
        self, conn: SFTPConnection, scenario_dir: Path, event_collector: EventCollector,
    ) -> None:
        await move_files(conn, "/data", "*.txt", "/out")

        transfers = event_collector.get_by_type(EventType.TRANSFER)
        assert len(transfers) == 3
        assert all(e.data["operation"] == "move" for e in transfers)

    @pytest.mark.asyncio
    async def test_cancelled(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            await move_files(conn, "/data", "*.txt", "/out", cancel_token=token)

        assert (scenario_dir / "test1.txt").exists()

    @pytest.mark.asyncio
    async def test_cancelled_mid_batch_keeps_outcomes(
        self, conn: SFTPConnection, scenario_dir: Path, sftp_root: Path,
    ) -> None:
        """Files moved before the token fired are reported on the error."""
        token = CancellationToken()
        real_rename = conn.sftp.rename

        async def rename_then_cancel(source: str, destination: str) -> None:
            await real_rename(source, destination)
            token.cancel("stop")

        sftp = _WrappedSFTP(conn.sftp, rename=rename_then_cancel)

        with pytest.raises(OperationCancelled) as exc_info:
            await move_files(_Conn(sftp), "/data", "*.txt", "/out", cancel_token=token)

        [outcome] = exc_info.value.outcomes
        assert exc_info.value.context.extra["completed"] == 1
        moved_name = Path(outcome.destination_path).name
        assert (sftp_root / "out" / moved_name).exists()
        assert not (scenario_dir / moved_name).exists()
        assert len(list((sftp_root / "out").iterdir())) == 1


# ---------------------------------------------------------------------------
# rename_file
# ---------------------------------------------------------------------------

class TestRenameFile:
    """Test rename_file()."""

    @pytest.mark.asyncio
    async def test_rename(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await rename_file(conn, "/data/test1.txt", "renamed.txt")

        assert result.path == "/data/renamed.txt"
        assert (scenario_dir / "renamed.txt").read_text() == "test1.txt"

    @pytest.mark.asyncio
    async def test_missing_source(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        with pytest.raises(PathNotFound):
            await rename_file(conn, "/data/nope.txt", "x.txt")

    @pytest.mark.asyncio
    async def test_throw(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        with pytest.raises(TargetExists, match="File already exists /data/test2.txt. No file renamed."):
            await rename_file(conn, "/data/test1.txt", "test2.txt", FileConflictPolicy.THROW)

    @pytest.mark.asyncio
    async def test_overwrite(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        await rename_file(conn, "/data/test1.txt", "test2.txt", FileConflictPolicy.OVERWRITE)

        assert (scenario_dir / "test2.txt").read_text() == "test1.txt"
        assert not (scenario_dir / "test1.txt").exists()

    @pytest.mark.asyncio
    async def test_rename_policy(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await rename_file(conn, "/data/test1.txt", "test2.txt", FileConflictPolicy.RENAME)

        assert result.path == "/data/test1(1).txt"
        assert (scenario_dir / "test2.txt").read_text() == "test2.txt"


# ---------------------------------------------------------------------------
# delete_files / delete_directory
# ---------------------------------------------------------------------------

class TestDeleteFiles:
    """Test delete_files()."""

    @pytest.mark.asyncio
    async def test_by_mask(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await delete_files(conn, "/data", "test?.txt")

        assert sorted(result.files) == ["/data/test1.txt", "/data/test2.txt", "/data/test3.txt"]
        assert (scenario_dir / "subDir").is_dir()

    @pytest.mark.asyncio
    async def test_explicit_paths_win(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await delete_files(
            conn, "/data", "*.txt", file_paths=["/data/subDir/sub3.log"],
        )

        assert result.files == ["/data/subDir/sub3.log"]
        assert (scenario_dir / "test1.txt").exists()

    @pytest.mark.asyncio
    async def test_missing_directory(self, conn: SFTPConnection) -> None:
        with pytest.raises(PathNotFound, match="No such Directory '/nope'."):
            await delete_files(conn, "/nope", "*")

    @pytest.mark.asyncio
    async def test_partial_failure(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        with pytest.raises(BatchOperationError) as exc_info:
            await delete_files(conn, file_paths=["/data/test1.txt", "/data/missing.txt"])

        assert exc_info.value.outcomes == ["/data/test1.txt"]

    @pytest.mark.asyncio
    async def test_cancelled_mid_batch_keeps_outcomes(
        self, conn: SFTPConnection, scenario_dir: Path,
    ) -> None:
        token = CancellationToken()
        real_remove = conn.sftp.remove

        async def remove_then_cancel(path: str) -> None:
            await real_remove(path)
            token.cancel("stop")

        sftp = _WrappedSFTP(conn.sftp, remove=remove_then_cancel)

        with pytest.raises(OperationCancelled) as exc_info:
            await delete_files(
                _Conn(sftp),
                file_paths=["/data/test1.txt", "/data/test2.txt"],
                cancel_token=token,
            )

        assert exc_info.value.outcomes == ["/data/test1.txt"]
        assert not (scenario_dir / "test1.txt").exists()
        assert (scenario_dir / "test2.txt").exists()

    @pytest.mark.asyncio
    async def test_delete_events(
        self, conn: SFTPConnection, scenario_dir: Path, event_collector: EventCollector,
    ) -> None:
        await delete_files(conn, "/data", "test1.txt")

        [event] = event_collector.get_by_type(EventType.DELETE)
        assert event.data == {"path": "/data/test1.txt", "kind": "file"}


class TestDeleteDirectory:
    """Test delete_directory()."""

    @pytest.mark.asyncio
    async def test_recursive(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        result = await delete_directory(conn, "/data")

        assert result.success
        assert len(result.deleted) == 8
        assert result.deleted[-1] == "/data"
        assert not scenario_dir.exists()

    @pytest.mark.asyncio
    async def test_missing_skip(self, conn: SFTPConnection) -> None:
        result = await delete_directory(conn, "/nope", NotExistsAction.SKIP)

        assert result.success
        assert result.deleted == []
        assert result.error_message == "Directory /nope does not exists."

    @pytest.mark.asyncio
    async def test_missing_throw(self, conn: SFTPConnection) -> None:
        with pytest.raises(PathNotFound, match="Directory /nope does not exists."):
            await delete_directory(conn, "/nope", NotExistsAction.THROW)

    @pytest.mark.asyncio
    async def test_soft_failure(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        """A cancelled delete is reported, not raised, when throwing is off."""
        token = CancellationToken()
        token.cancel("stop")

        result = await delete_directory(
            conn, "/data", throw_exception_on_error=False, cancel_token=token,
        )

        assert not result.success
        assert result.error_message == "Operation was cancelled: stop"
        assert scenario_dir.exists()

    @pytest.mark.asyncio
    async def test_remove_failure_raises_with_deleted(
        self, conn: SFTPConnection, scenario_dir: Path, sftp_root: Path,
    ) -> None:
        real_remove = conn.sftp.remove

        async def remove(path: str) -> None:
            if path == "/data/test2.txt":
                raise asyncssh.SFTPPermissionDenied("Permission denied")
            await real_remove(path)

        sftp = _WrappedSFTP(conn.sftp, remove=remove)

        with pytest.raises(BatchOperationError, match="Permission denied") as exc_info:
            await delete_directory(_Conn(sftp), "/data")

        error = exc_info.value
        assert isinstance(error.__cause__, RemoteOperationError)
        assert "/data/test2.txt" in str(error.__cause__)
        assert "/data/test2.txt" not in error.outcomes
        assert (scenario_dir / "test2.txt").exists()
        for path in error.outcomes:
            assert not (sftp_root / path.lstrip("/")).exists()

    @pytest.mark.asyncio
    async def test_rmdir_failure_keeps_deleted(
        self, conn: SFTPConnection, scenario_dir: Path,
    ) -> None:
        """Everything below the directory was removed before its own rmdir failed."""
        real_rmdir = conn.sftp.rmdir

        async def rmdir(path: str) -> None:
            if path == "/data":
                raise asyncssh.SFTPPermissionDenied("Permission denied")
            await real_rmdir(path)

        sftp = _WrappedSFTP(conn.sftp, rmdir=rmdir)

        with pytest.raises(BatchOperationError) as exc_info:
            await delete_directory(_Conn(sftp), "/data")

        assert len(exc_info.value.outcomes) == 7
        assert "/data/subDir" in exc_info.value.outcomes
        assert scenario_dir.exists()
        assert list(scenario_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_remove_failure_soft(self, conn: SFTPConnection, scenario_dir: Path) -> None:
        real_rmdir = conn.sftp.rmdir

        async def rmdir(path: str) -> None:
            if path == "/data":
                raise asyncssh.SFTPPermissionDenied("Permission denied")
            await real_rmdir(path)

        result = await delete_directory(
            _Conn(_WrappedSFTP(conn.sftp, rmdir=rmdir)), "/data", throw_exception_on_error=False,
        )

        assert not result.success
        assert result.error_message == "Failed to delete directory '/data': Permission denied"
        assert len(result.deleted) == 7

    @pytest.mark.asyncio
    async def test_cancelled_keeps_deleted(
        self, conn: SFTPConnection, scenario_dir: Path,
    ) -> None:
        token = CancellationToken()
        real_remove = conn.sftp.remove

        async def remove_then_cancel(path: str) -> None:
            await real_remove(path)
            token.cancel("stop")

        sftp = _WrappedSFTP(conn.sftp, remove=remove_then_cancel)

        with pytest.raises(OperationCancelled) as exc_info:
            await delete_directory(_Conn(sftp), "/data", cancel_token=token)

        assert len(exc_info.value.outcomes) == 1
        assert scenario_dir.exists()


# ---------------------------------------------------------------------------
# read_file / write_file
# ---------------------------------------------------------------------------

class TestReadWrite:
    """Test read_file() and write_file()."""

    @pytest.mark.asyncio
    async def test_read_text(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "note.txt").write_text("héllo", encoding="utf-8")

        result = await read_file(conn, "/note.txt")

        assert result.text_content == "héllo"
        assert result.binary_content is None
        assert result.size_in_megabytes == 0.0

    @pytest.mark.asyncio
    async def test_read_binary(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "blob.bin").write_bytes(b"\x00\x01\xff")

        result = await read_file(conn, "/blob.bin", binary=True)

        assert result.binary_content == b"\x00\x01\xff"
        assert result.text_content is None

    @pytest.mark.asyncio
    async def test_read_missing(self, conn: SFTPConnection) -> None:
        with pytest.raises(PathNotFound):
            await read_file(conn, "/missing.txt")

    @pytest.mark.asyncio
    async def test_read_failure_event(
        self, conn: SFTPConnection, event_collector: EventCollector,
    ) -> None:
        with pytest.raises(PathNotFound):
            await read_file(conn, "/missing.txt")

        [event] = event_collector.get_by_type(EventType.READ)
        assert event.data["status"] == "failed"
        assert event.data["error_type"] == "PathNotFound"

    @pytest.mark.asyncio
    async def test_write_new(self, conn: SFTPConnection, sftp_root: Path) -> None:
        result = await write_file(conn, "/new.txt", "content")

        assert result.success
        assert (sftp_root / "new.txt").read_text() == "content"

    @pytest.mark.asyncio
    async def test_write_error_when_exists(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "new.txt").write_text("old")

        with pytest.raises(TargetExists, match="File already exists: /new.txt"):
            await write_file(conn, "/new.txt", "content", WriteBehaviour.ERROR)

    @pytest.mark.asyncio
    async def test_overwrite(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "new.txt").write_text("old content")

        await write_file(conn, "/new.txt", "new", WriteBehaviour.OVERWRITE)

        assert (sftp_root / "new.txt").read_text() == "new"

    @pytest.mark.asyncio
    async def test_append(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "log.txt").write_text("a")

        await write_file(conn, "/log.txt", "b", WriteBehaviour.APPEND)

        assert (sftp_root / "log.txt").read_text() == "ab"

    @pytest.mark.asyncio
    async def test_bytes(self, conn: SFTPConnection, sftp_root: Path) -> None:
        await write_file(conn, "/raw.bin", b"\x00\x01")
        assert (sftp_root / "raw.bin").read_bytes() == b"\x00\x01"

    @pytest.mark.asyncio
    async def test_bom_written_once(
        self,
        make_descriptor: Callable[..., ConnectionDescriptor],
        sftp_root: Path,
    ) -> None:
        descriptor = make_descriptor(file_encoding=FileEncoding.UTF8, enable_bom=True)

        async with SFTPConnection(descriptor) as bom_conn:
            await write_file(bom_conn, "/bom.txt", "one")
            await write_file(bom_conn, "/bom.txt", "two", WriteBehaviour.APPEND)
            result = await read_file(bom_conn, "/bom.txt")

        raw = (sftp_root / "bom.txt").read_bytes()
        assert raw == codecs.BOM_UTF8 + b"onetwo"
        assert result.text_content == "onetwo"

    @pytest.mark.asyncio
    async def test_write_events(
        self, conn: SFTPConnection, event_collector: EventCollector,
    ) -> None:
        await write_file(conn, "/new.txt", "content")

        [event] = event_collector.get_by_type(EventType.WRITE)
        assert event.data["size"] == len("content")
        assert event.data["mode"] == "error"


# ---------------------------------------------------------------------------
# upload_file / create_directories
# ---------------------------------------------------------------------------

class TestUpload:
    """Test upload_file()."""

    @pytest.mark.asyncio
    async def test_upload_creates_directory(
        self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path,
    ) -> None:
        local = tmp_path / "report.csv"
        local.write_text("a,b\n")

        outcome = await upload_file(conn, local, "/incoming/2024")

        assert outcome.destination_path == "/incoming/2024/report.csv"
        assert (sftp_root / "incoming" / "2024" / "report.csv").read_text() == "a,b\n"

    @pytest.mark.asyncio
    async def test_upload_rename(
        self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path,
    ) -> None:
        (sftp_root / "report.csv").write_text("old")
        local = tmp_path / "report.csv"
        local.write_text("new")

        outcome = await upload_file(conn, local, "/", FileConflictPolicy.RENAME)

        assert outcome.destination_path == "/report(1).csv"
        assert (sftp_root / "report.csv").read_text() == "old"

    @pytest.mark.asyncio
    async def test_upload_throw(
        self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path,
    ) -> None:
        (sftp_root / "report.csv").write_text("old")
        local = tmp_path / "report.csv"
        local.write_text("new")

        with pytest.raises(TargetExists):
            await upload_file(conn, local, "/")

    @pytest.mark.asyncio
    async def test_missing_local_file(self, conn: SFTPConnection, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await upload_file(conn, tmp_path / "missing", "/")


class TestDownload:
    """Test download_file()."""

    @pytest.mark.asyncio
    async def test_download(
        self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path,
    ) -> None:
        (sftp_root / "report.csv").write_text("a,b\n")
        inbox = tmp_path / "inbox"
        inbox.mkdir()

        outcome = await download_file(conn, "/report.csv", inbox)

        assert outcome.source_path == "/report.csv"
        assert outcome.destination_path == (inbox / "report.csv").as_posix()
        assert (inbox / "report.csv").read_text() == "a,b\n"
        assert (sftp_root / "report.csv").exists()

    @pytest.mark.asyncio
    async def test_missing_local_directory(
        self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path,
    ) -> None:
        (sftp_root / "report.csv").write_text("a,b\n")

        with pytest.raises(PathNotFound, match="was not found"):
            await download_file(conn, "/report.csv", tmp_path / "inbox")

    @pytest.mark.asyncio
    async def test_create_local_directories(
        self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path,
    ) -> None:
        (sftp_root / "report.csv").write_text("a,b\n")
        inbox = tmp_path / "inbox" / "2024"

        await download_file(conn, "/report.csv", inbox, create_local_directories=True)

        assert (inbox / "report.csv").read_text() == "a,b\n"

    @pytest.mark.asyncio
    async def test_missing_remote_file(self, conn: SFTPConnection, tmp_path: Path) -> None:
        with pytest.raises(PathNotFound, match="No such file '/missing.csv'."):
            await download_file(conn, "/missing.csv", tmp_path)

    @pytest.mark.asyncio
    async def test_throw(self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path) -> None:
        (sftp_root / "report.csv").write_text("new")
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        (inbox / "report.csv").write_text("old")

        with pytest.raises(TargetExists):
            await download_file(conn, "/report.csv", inbox, FileConflictPolicy.THROW)

        assert (inbox / "report.csv").read_text() == "old"

    @pytest.mark.asyncio
    async def test_overwrite(self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path) -> None:
        (sftp_root / "report.csv").write_text("new")
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        (inbox / "report.csv").write_text("old")

        await download_file(conn, "/report.csv", inbox, FileConflictPolicy.OVERWRITE)

        assert (inbox / "report.csv").read_text() == "new"

    @pytest.mark.asyncio
    async def test_rename(self, conn: SFTPConnection, sftp_root: Path, tmp_path: Path) -> None:
        (sftp_root / "report.csv").write_text("new")
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        (inbox / "report.csv").write_text("old")
        (inbox / "report(1).csv").write_text("older")

        outcome = await download_file(conn, "/report.csv", inbox, FileConflictPolicy.RENAME)

        assert outcome.destination_path == (inbox / "report(2).csv").as_posix()
        assert (inbox / "report(2).csv").read_text() == "new"
        assert (inbox / "report.csv").read_text() == "old"

    @pytest.mark.asyncio
    async def test_transfer_event(
        self,
        conn: SFTPConnection,
        sftp_root: Path,
        tmp_path: Path,
        event_collector: EventCollector,
    ) -> None:
        (sftp_root / "report.csv").write_text("a,b\n")

        await download_file(conn, "/report.csv", tmp_path)

        [event] = event_collector.get_by_type(EventType.TRANSFER)
        assert event.data["operation"] == "download"
        assert event.data["source_path"] == "/report.csv"
        assert event.data["status"] == "completed"


class TestCreateDirectories:
    """Test create_directories()."""

    @pytest.mark.asyncio
    async def test_creates_missing_segments(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "a").mkdir()

        created = await create_directories(conn.sftp, "/a/b/c")

        assert created == ["/a/b", "/a/b/c"]
        assert (sftp_root / "a" / "b" / "c").is_dir()

    @pytest.mark.asyncio
    async def test_existing_is_noop(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "a").mkdir()
        assert await create_directories(conn.sftp, "/a") == []

    @pytest.mark.asyncio
    async def test_file_in_the_way(self, conn: SFTPConnection, sftp_root: Path) -> None:
        (sftp_root / "a").write_text("file")

        with pytest.raises(RemoteOperationError, match="a file with that name exists"):
            await create_directories(conn.sftp, "/a/b")
