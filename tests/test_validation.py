"""
Tests for input validation.

Tests cover:
- Addresses: IPv4, IPv6 (with and without brackets), host names
- Rejection of control characters and shell metacharacters
- Username and port bounds
- Remote path normalisation
"""
from __future__ import annotations

import pytest

from nbs_sftp.validation import (
    MAX_HOSTNAME_LENGTH,
    MAX_USERNAME_LENGTH,
    validate_address,
    validate_port,
    validate_remote_path,
    validate_username,
)


# ---------------------------------------------------------------------------
# Address
# ---------------------------------------------------------------------------

class TestValidateAddress:
    """Test validate_address()."""

    @pytest.mark.parametrize("address", ["127.0.0.1", "::1", "sftp.example.com", "my_host-1"])
    def test_valid(self, address: str) -> None:
        assert validate_address(address) == address

    def test_ipv6_brackets_removed(self) -> None:
        assert validate_address("[::1]") == "::1"

    def test_hostname_lowercased(self) -> None:
        assert validate_address("SFTP.Example.COM") == "sftp.example.com"

    @pytest.mark.parametrize(
        "address,fragment",
        [
            ("", "must not be empty"),
            ("host\x00name", "null byte"),
            ("host name", "space"),
            ("host;rm", "';'"),
            ("a..b", "empty label"),
            ("-bad.example", "invalid characters"),
        ],
    )
    def test_invalid(self, address: str, fragment: str) -> None:
        with pytest.raises(ValueError, match=fragment):
            validate_address(address)

    def test_too_long(self) -> None:
        with pytest.raises(ValueError, match="maximum length"):
            validate_address("a." * (MAX_HOSTNAME_LENGTH // 2 + 1) + "com")

    def test_long_label(self) -> None:
        with pytest.raises(ValueError, match="label"):
            validate_address("a" * 64 + ".com")

    def test_not_a_string(self) -> None:
        with pytest.raises(ValueError, match="must be a string"):
            validate_address(None)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Username / port / path
# ---------------------------------------------------------------------------

class TestValidateUsername:
    """Test validate_username()."""

    @pytest.mark.parametrize("username", ["alice", "DOMAIN\\alice", "alice@realm", "first last"])
    def test_valid(self, username: str) -> None:
        assert validate_username(username) == username

    def test_empty(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            validate_username("")

    def test_newline(self) -> None:
        with pytest.raises(ValueError, match="newline"):
            validate_username("alice\nroot")

    def test_too_long(self) -> None:
        with pytest.raises(ValueError, match="maximum length"):
            validate_username("a" * (MAX_USERNAME_LENGTH + 1))


class TestValidatePort:
    """Test validate_port()."""

    @pytest.mark.parametrize("port", [1, 22, 65535])
    def test_valid(self, port: int) -> None:
        assert validate_port(port) == port

    @pytest.mark.parametrize("port,fragment", [(0, "at least 1"), (65536, "at most 65535")])
    def test_out_of_range(self, port: int, fragment: str) -> None:
        with pytest.raises(ValueError, match=fragment):
            validate_port(port)

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValueError, match="got bool"):
            validate_port(True)

    def test_string_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be an integer"):
            validate_port("22")  # type: ignore[arg-type]


class TestValidateRemotePath:
    """Test validate_remote_path()."""

    def test_backslashes_normalised(self) -> None:
        assert validate_remote_path("\\in\\sub") == "/in/sub"

    def test_empty(self) -> None:
        with pytest.raises(ValueError, match="directory must not be empty"):
            validate_remote_path("", "directory")

    def test_control_character(self) -> None:
        with pytest.raises(ValueError, match="tab"):
            validate_remote_path("/in/\tfile")
