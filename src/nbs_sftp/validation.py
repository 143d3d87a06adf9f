"""
Input validation for SFTP connection parameters and remote paths.

Rejects values that would never be valid on the wire (control
characters, null bytes, out-of-range ports) with a ValueError naming
the offending field. Runs before any network I/O.
"""

import ipaddress
import re
from typing import Final

MAX_HOSTNAME_LENGTH: Final[int] = 253
MAX_LABEL_LENGTH: Final[int] = 63
MAX_USERNAME_LENGTH: Final[int] = 256

# Characters that must never appear in a host, user, or path.
CONTROL_CHARS: Final[frozenset[str]] = frozenset("\x00\n\r\t")

# Host names may additionally not contain shell metacharacters.
DANGEROUS_HOST_CHARS: Final[frozenset[str]] = CONTROL_CHARS | frozenset(
    "`$(){}|;&<>\\'\" "
)

_LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z0-9_]([a-zA-Z0-9_-]*[a-zA-Z0-9_])?$"
)

_CHAR_NAMES: Final[dict[str, str]] = {
    "\x00": "null byte",
    "\n": "newline",
    "\r": "carriage return",
    "\t": "tab",
    " ": "space",
}


def _check_chars(value: str, forbidden: frozenset[str], field_name: str) -> None:
    for char in value:
        if char in forbidden:
            char_desc = _CHAR_NAMES.get(char, repr(char))
            raise ValueError(f"{field_name} contains forbidden character: {char_desc}")


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value.strip("[]"))
    except ValueError:
        return False
    return True


def validate_address(address: str) -> str:
    """
    Validate a server address: an IPv4/IPv6 literal or a DNS host name.

    Returns:
        The address with surrounding brackets removed from IPv6 literals
        and host names lowercased

    Raises:
        ValueError: If the address is invalid
    """
    if not isinstance(address, str):
        raise ValueError(f"address must be a string, got {type(address).__name__}")
    if not address:
        raise ValueError("address must not be empty")

    if _is_ip_address(address):
        return address.strip("[]")

    _check_chars(address, DANGEROUS_HOST_CHARS, "address")

    if len(address) > MAX_HOSTNAME_LENGTH:
        raise ValueError(
            f"address exceeds maximum length of {MAX_HOSTNAME_LENGTH} characters "
            f"(got {len(address)})"
        )

    for label in address.split("."):
        if not label:
            raise ValueError(f"address {address!r} contains an empty label")
        if len(label) > MAX_LABEL_LENGTH:
            raise ValueError(
                f"address label '{label}' exceeds maximum length of "
                f"{MAX_LABEL_LENGTH} characters (got {len(label)})"
            )
        if not _LABEL_PATTERN.match(label):
            raise ValueError(
                f"address label '{label}' contains invalid characters "
                "(only alphanumeric, underscore and hyphens allowed)"
            )

    return address.lower()


def validate_username(username: str) -> str:
    """
    Validate a remote login name.

    SFTP servers accept far more than POSIX names (domain accounts such
    as "DOMAIN\\user" or "user@realm"), so only control characters and
    length are checked.

    Raises:
        ValueError: If the username is invalid
    """
    if not isinstance(username, str):
        raise ValueError(f"username must be a string, got {type(username).__name__}")
    if not username:
        raise ValueError("username must not be empty")
    _check_chars(username, CONTROL_CHARS, "username")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValueError(
            f"username exceeds maximum length of {MAX_USERNAME_LENGTH} characters "
            f"(got {len(username)})"
        )
    return username


def validate_port(port: int) -> int:
    """
    Validate a TCP port number.

    Raises:
        ValueError: If the port is not an int in 1-65535
    """
    # bool is a subclass of int
    if isinstance(port, bool):
        raise ValueError("port must be an integer, got bool")
    if not isinstance(port, int):
        raise ValueError(f"port must be an integer, got {type(port).__name__}")
    if port < 1:
        raise ValueError(f"port must be at least 1, got {port}")
    if port > 65535:
        raise ValueError(f"port must be at most 65535, got {port}")
    return port


def validate_remote_path(path: str, field_name: str = "path") -> str:
    """
    Validate a remote path.

    Backslashes are normalised to '/', since SFTP paths are always
    slash-separated regardless of the client platform.

    Raises:
        ValueError: If the path is empty or contains control characters
    """
    if not isinstance(path, str):
        raise ValueError(f"{field_name} must be a string, got {type(path).__name__}")
    if not path:
        raise ValueError(f"{field_name} must not be empty")
    _check_chars(path, CONTROL_CHARS, field_name)
    return path.replace("\\", "/")
