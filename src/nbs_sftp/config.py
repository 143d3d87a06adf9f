"""
Declarative SFTP connection settings.

Provides:
- AuthenticationType: The five supported credential combinations
- HostKeyAlgorithm: Optional restriction of the server host key type
- PromptResponse: One (prompt substring -> response) pair for
  keyboard-interactive authentication
- ConnectionDescriptor: Immutable description of one connection

A descriptor is built per operation and never mutated. Secrets are kept
out of to_dict() so descriptors can be logged.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from nbs_sftp.encoding import FileEncoding, ResolvedEncoding, resolve_encoding
from nbs_sftp.validation import validate_address, validate_port, validate_username

DEFAULT_PORT = 22
DEFAULT_CONNECTION_TIMEOUT = 60
DEFAULT_KEEPALIVE_INTERVAL = -1
DEFAULT_KEEPALIVE_COUNT_MAX = 3
DEFAULT_BUFFER_SIZE_KB = 32


class AuthenticationType(str, Enum):
    """Credential combinations a descriptor can ask for."""
    USERNAME_PASSWORD = "username_password"
    USERNAME_PRIVATE_KEY_FILE = "username_private_key_file"
    USERNAME_PRIVATE_KEY_STRING = "username_private_key_string"
    USERNAME_PASSWORD_PRIVATE_KEY_FILE = "username_password_private_key_file"
    USERNAME_PASSWORD_PRIVATE_KEY_STRING = "username_password_private_key_string"

    @property
    def uses_password(self) -> bool:
        return self in (
            AuthenticationType.USERNAME_PASSWORD,
            AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_FILE,
            AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_STRING,
        )

    @property
    def uses_key_file(self) -> bool:
        return self in (
            AuthenticationType.USERNAME_PRIVATE_KEY_FILE,
            AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_FILE,
        )

    @property
    def uses_key_string(self) -> bool:
        return self in (
            AuthenticationType.USERNAME_PRIVATE_KEY_STRING,
            AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_STRING,
        )


class HostKeyAlgorithm(str, Enum):
    """Host key algorithm the client will accept from the server."""
    ANY = "any"
    RSA = "rsa"
    ED25519 = "ed25519"
    DSS = "dss"
    NISTP256 = "nistp256"
    NISTP384 = "nistp384"
    NISTP521 = "nistp521"

    def to_asyncssh_algs(self) -> list[str] | None:
        """SSH algorithm names for asyncssh's server_host_key_algs, or None for ANY."""
        return _HOST_KEY_ALGS.get(self)


_HOST_KEY_ALGS: dict[HostKeyAlgorithm, list[str]] = {
    HostKeyAlgorithm.RSA: ["rsa-sha2-512", "rsa-sha2-256", "ssh-rsa"],
    HostKeyAlgorithm.ED25519: ["ssh-ed25519"],
    HostKeyAlgorithm.DSS: ["ssh-dss"],
    HostKeyAlgorithm.NISTP256: ["ecdsa-sha2-nistp256"],
    HostKeyAlgorithm.NISTP384: ["ecdsa-sha2-nistp384"],
    HostKeyAlgorithm.NISTP521: ["ecdsa-sha2-nistp521"],
}


@dataclass(frozen=True)
class PromptResponse:
    """Answer `response` to any keyboard-interactive prompt containing `prompt`."""
    prompt: str
    response: str

    def __post_init__(self) -> None:
        assert self.prompt, "PromptResponse.prompt must not be empty"


@dataclass(frozen=True)
class ConnectionDescriptor:
    """
    Everything needed to open one authenticated SFTP session.

    Key material is not checked here: a descriptor asking for a private
    key with no key given is still constructible, and build_auth_chain()
    rejects it before any socket is opened.

    Usage:
        descriptor = ConnectionDescriptor(
            address="sftp.example.com",
            username="alice",
            authentication=AuthenticationType.USERNAME_PASSWORD,
            password="secret",
            server_fingerprint="9d:38:5b:83:a9:17:52:92:56:1a:5e:c4:d4:81:8e:0a",
        )
    """
    address: str
    username: str
    authentication: AuthenticationType = AuthenticationType.USERNAME_PASSWORD
    port: int = DEFAULT_PORT
    password: str | None = None
    private_key_file: str | None = None
    private_key_string: str | None = None
    private_key_passphrase: str | None = None
    use_keyboard_interactive: bool = False
    prompt_and_response: tuple[PromptResponse, ...] = ()
    server_fingerprint: str | None = None
    host_key_algorithm: HostKeyAlgorithm = HostKeyAlgorithm.ANY
    connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT
    # Seconds between keepalives; <= 0 disables them
    keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL
    keepalive_count_max: int = DEFAULT_KEEPALIVE_COUNT_MAX
    buffer_size: int = DEFAULT_BUFFER_SIZE_KB
    file_encoding: FileEncoding = FileEncoding.UTF8
    enable_bom: bool = False
    encoding_name: str | None = None
    extra_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate and normalise fields."""
        object.__setattr__(self, "address", validate_address(self.address))
        object.__setattr__(self, "username", validate_username(self.username))
        validate_port(self.port)

        # Enum coercion lets from_dict() and the CLI pass plain strings.
        # An unknown authentication value is left as-is; build_auth_chain()
        # reports it as UnsupportedAuthentication.
        try:
            object.__setattr__(self, "authentication", AuthenticationType(self.authentication))
        except ValueError:
            pass
        object.__setattr__(self, "host_key_algorithm", HostKeyAlgorithm(self.host_key_algorithm))
        object.__setattr__(self, "file_encoding", FileEncoding(self.file_encoding))
        object.__setattr__(
            self,
            "prompt_and_response",
            tuple(
                p if isinstance(p, PromptResponse) else PromptResponse(**p)
                for p in self.prompt_and_response
            ),
        )

        assert self.connection_timeout > 0, \
            f"connection_timeout must be positive, got {self.connection_timeout}"
        assert self.keepalive_count_max > 0, \
            f"keepalive_count_max must be positive, got {self.keepalive_count_max}"
        assert self.buffer_size > 0, \
            f"buffer_size must be positive, got {self.buffer_size}"

    @property
    def keepalive_enabled(self) -> bool:
        return self.keepalive_interval > 0

    @property
    def block_size(self) -> int:
        """SFTP read/write block size in bytes."""
        return self.buffer_size * 1024

    def resolve_encoding(self) -> ResolvedEncoding:
        return resolve_encoding(self.file_encoding, self.enable_bom, self.encoding_name)

    def to_asyncssh_options(self) -> dict[str, Any]:
        """
        Transport options that do not depend on authentication.

        Returns:
            Dict of asyncssh.connect() keyword arguments.
        """
        options: dict[str, Any] = {
            "host": self.address,
            "port": self.port,
            "username": self.username,
            "connect_timeout": self.connection_timeout,
        }
        if self.keepalive_enabled:
            options["keepalive_interval"] = self.keepalive_interval
            options["keepalive_count_max"] = self.keepalive_count_max
        algs = self.host_key_algorithm.to_asyncssh_algs()
        if algs is not None:
            options["server_host_key_algs"] = algs
        options.update(self.extra_options)
        return options

    def with_changes(self, **changes: Any) -> "ConnectionDescriptor":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging (excludes secrets)."""
        result: dict[str, Any] = {
            "address": self.address,
            "port": self.port,
            "username": self.username,
            "authentication": getattr(self.authentication, "value", self.authentication),
            "use_keyboard_interactive": self.use_keyboard_interactive,
            "host_key_algorithm": self.host_key_algorithm.value,
            "connection_timeout": self.connection_timeout,
        }
        if self.private_key_file:
            result["private_key_file"] = self.private_key_file
        if self.server_fingerprint:
            result["server_fingerprint"] = self.server_fingerprint
        if self.prompt_and_response:
            result["prompts"] = [p.prompt for p in self.prompt_and_response]
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConnectionDescriptor":
        """
        Build a descriptor from a plain mapping (e.g. parsed JSON).

        Unknown keys are rejected so typos do not silently fall back to
        defaults.
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown connection settings: {sorted(unknown)}")
        return cls(**data)


def load_descriptor(path: Path | str, **overrides: Any) -> ConnectionDescriptor:
    """
    Load a descriptor from a JSON file.

    Args:
        path: JSON file containing a single object of descriptor fields
        **overrides: Fields that take precedence over the file (None is ignored)
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    assert isinstance(data, dict), f"Connection file {path} must contain a JSON object"
    data.update({k: v for k, v in overrides.items() if v is not None})
    return ConnectionDescriptor.from_dict(data)
