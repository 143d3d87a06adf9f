"""
Testing utilities for nbs-sftp.

Provides MockSFTPServer for integration tests without an external server.
"""
from nbs_sftp.testing.mock_server import MockServerConfig, MockSFTPServer

__all__ = ["MockSFTPServer", "MockServerConfig"]
