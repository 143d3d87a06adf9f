"""
Pytest fixtures for nbs-sftp tests.

Provides:
- SFTP server fixture (MockSFTPServer serving a temporary directory)
- Descriptor fixture pinned to the mock server's host key
- Client key fixture for public key authentication
- Event capture fixture for asserting event sequences
"""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, AsyncGenerator, Callable, Generator

import asyncssh
import pytest

if TYPE_CHECKING:
    from nbs_sftp.config import ConnectionDescriptor
    from nbs_sftp.events import EventCollector
    from nbs_sftp.testing.mock_server import MockSFTPServer


@pytest.fixture
def sftp_root(tmp_path: Path) -> Path:
    """Local directory the mock server exposes as '/'."""
    root = tmp_path / "sftp_root"
    root.mkdir()
    return root


@pytest.fixture
async def mock_sftp_server(sftp_root: Path) -> AsyncGenerator["MockSFTPServer", None]:
    """
    MockSFTPServer accepting test/test over password auth.

    Usage:
        @pytest.mark.asyncio
        async def test_example(mock_sftp_server, make_descriptor):
            async with SFTPConnection(make_descriptor()) as conn:
                ...
    """
    from nbs_sftp.testing.mock_server import MockServerConfig, MockSFTPServer

    config = MockServerConfig(username="test", password="test", sftp_root=sftp_root)
    async with MockSFTPServer(config) as server:
        yield server


@pytest.fixture
def make_descriptor(
    mock_sftp_server: "MockSFTPServer",
) -> Callable[..., "ConnectionDescriptor"]:
    """Factory for password descriptors pointing at mock_sftp_server."""
    from nbs_sftp.auth import create_password_descriptor

    def factory(**overrides) -> "ConnectionDescriptor":
        kwargs = {
            "port": mock_sftp_server.port,
            "server_fingerprint": mock_sftp_server.host_key_event.sha256_base64,
            "connection_timeout": 10,
        }
        kwargs.update(overrides)
        password = kwargs.pop("password", "test")
        return create_password_descriptor("localhost", "test", password, **kwargs)

    return factory


@pytest.fixture(scope="session")
def client_key() -> asyncssh.SSHKey:
    """An Ed25519 key pair for public key authentication tests."""
    return asyncssh.generate_private_key("ssh-ed25519")


@pytest.fixture
def client_key_file(tmp_path: Path, client_key: asyncssh.SSHKey) -> Path:
    """client_key written to disk in OpenSSH format."""
    path = tmp_path / "id_ed25519"
    path.write_bytes(client_key.export_private_key())
    path.chmod(0o600)
    return path


@pytest.fixture
def event_collector() -> Generator["EventCollector", None, None]:
    """
    Fixture for capturing and asserting event sequences.

    Usage:
        def test_example(event_collector):
            async with SFTPConnection(descriptor, event_collector=event_collector):
                ...
            assert event_collector.events[0].event_type == "CONNECT"
    """
    from nbs_sftp.events import EventCollector

    collector = EventCollector()
    yield collector
    collector.clear()


@pytest.fixture
def temp_jsonl_path(tmp_path: Path) -> Path:
    """Provide a temporary path for JSONL event log output."""
    return tmp_path / "events.jsonl"
