"""
Authentication negotiation: descriptor -> ordered method chain.

Provides:
- AuthStepKind enum: KEYBOARD_INTERACTIVE, PASSWORD, PUBLIC_KEY
- AuthStep / AuthMethodChain: Immutable, ordered list of methods to offer
- build_auth_chain(): Validate key material and decode keys up front
- load_private_key(): Decode key bytes with proper error handling
- create_*_descriptor(): Shorthand constructors for common setups

Everything here runs before any network I/O. A descriptor that asks
for a private key without supplying one fails immediately.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

import asyncssh

from nbs_sftp.config import AuthenticationType, ConnectionDescriptor, PromptResponse
from nbs_sftp.errors import KeyLoadError, MissingKeyMaterial, UnsupportedAuthentication

logger = logging.getLogger(__name__)


class AuthStepKind(str, Enum):
    """SSH user authentication methods, named as on the wire."""
    KEYBOARD_INTERACTIVE = "keyboard-interactive"
    PASSWORD = "password"
    PUBLIC_KEY = "publickey"


@dataclass(frozen=True)
class AuthStep:
    """One method in the chain, with the material it needs."""
    kind: AuthStepKind
    password: str | None = None
    key: asyncssh.SSHKey | None = None

    def __post_init__(self) -> None:
        if self.kind == AuthStepKind.PUBLIC_KEY:
            assert self.key is not None, "PUBLIC_KEY step requires a key"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging (excludes secrets)."""
        result: dict[str, Any] = {"method": self.kind.value}
        if self.key is not None:
            result["key_algorithm"] = self.key.get_algorithm()
        return result


@dataclass(frozen=True)
class AuthMethodChain:
    """
    Ordered authentication methods for one connection.

    Order is fixed: keyboard-interactive (if enabled), then password,
    then private key. The server decides which of them it accepts, or
    whether it requires several.
    """
    steps: tuple[AuthStep, ...]

    def __post_init__(self) -> None:
        assert self.steps, "AuthMethodChain must contain at least one step"

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def kinds(self) -> list[AuthStepKind]:
        return [step.kind for step in self.steps]

    @property
    def uses_keyboard_interactive(self) -> bool:
        return AuthStepKind.KEYBOARD_INTERACTIVE in self.kinds

    @property
    def password(self) -> str | None:
        for step in self.steps:
            if step.kind == AuthStepKind.PASSWORD:
                return step.password
        return None

    @property
    def keys(self) -> list[asyncssh.SSHKey]:
        return [step.key for step in self.steps if step.key is not None]

    def to_asyncssh_options(self) -> dict[str, Any]:
        """
        Convert to asyncssh.connect() keyword arguments.

        Returns:
            Dict with preferred_auth, password and client_keys keys.
            Methods not in the chain are switched off explicitly so
            asyncssh does not fall back to default keys or an agent.
        """
        return {
            "preferred_auth": [kind.value for kind in self.kinds],
            "password": self.password,
            "client_keys": self.keys or None,
            "agent_path": None,
        }

    def describe(self) -> str:
        return ",".join(kind.value for kind in self.kinds)


def load_private_key(
    data: bytes,
    passphrase: str | None = None,
    source: str | None = None,
) -> asyncssh.SSHKey:
    """
    Decode a private key.

    Args:
        data: Key bytes in any format asyncssh understands (OpenSSH, PEM, PKCS#8)
        passphrase: Passphrase for encrypted keys; None tries it unencrypted
        source: Where the key came from, for error messages

    Returns:
        Decoded SSH key

    Raises:
        KeyLoadError: If the key cannot be decoded
    """
    label = source or "private key string"
    try:
        return asyncssh.import_private_key(data, passphrase)
    except asyncssh.KeyImportError as e:
        error_msg = str(e).lower()
        if "passphrase" in error_msg or "decrypt" in error_msg:
            reason = "wrong_passphrase"
        elif "format" in error_msg or "invalid" in error_msg:
            reason = "invalid_format"
        else:
            reason = "import_error"
        raise KeyLoadError(
            f"Failed to load private key from {label}: {e}",
            key_path=source,
            reason=reason,
        ) from e


def load_private_key_file(
    key_path: Path | str,
    passphrase: str | None = None,
) -> asyncssh.SSHKey:
    """
    Read and decode a private key file from the local filesystem.

    Raises:
        KeyLoadError: If the file is missing, unreadable, or not a key
    """
    key_path = Path(key_path).expanduser()

    if not key_path.exists():
        raise KeyLoadError(
            f"Private key file not found: {key_path}",
            key_path=str(key_path),
            reason="file_not_found",
        )

    if not os.access(key_path, os.R_OK):
        raise KeyLoadError(
            f"Private key file not readable: {key_path}",
            key_path=str(key_path),
            reason="permission_denied",
        )

    return load_private_key(key_path.read_bytes(), passphrase, source=str(key_path))


def _key_from_descriptor(descriptor: ConnectionDescriptor) -> asyncssh.SSHKey | None:
    """Check and decode the private key the descriptor asks for, if any."""
    auth = descriptor.authentication
    passphrase = descriptor.private_key_passphrase

    if auth.uses_key_file:
        if not descriptor.private_key_file:
            raise MissingKeyMaterial("Private key file path was not given.")
        return load_private_key_file(descriptor.private_key_file, passphrase)

    if auth.uses_key_string:
        if not descriptor.private_key_string:
            raise MissingKeyMaterial("Private key string was not given.")
        return load_private_key(descriptor.private_key_string.encode("utf-8"), passphrase)

    return None


def build_auth_chain(descriptor: ConnectionDescriptor) -> AuthMethodChain:
    """
    Build the ordered authentication chain for a descriptor.

    Args:
        descriptor: Connection settings

    Returns:
        AuthMethodChain ready to hand to the transport

    Raises:
        UnsupportedAuthentication: Unknown authentication type
        MissingKeyMaterial: A key is required but no key source was given
        KeyLoadError: The key could not be decoded
    """
    if not isinstance(descriptor.authentication, AuthenticationType):
        raise UnsupportedAuthentication(
            f"Unknown Authentication type: '{descriptor.authentication}'."
        )

    key = _key_from_descriptor(descriptor)
    steps: list[AuthStep] = []

    if descriptor.use_keyboard_interactive:
        steps.append(AuthStep(AuthStepKind.KEYBOARD_INTERACTIVE, password=descriptor.password))

    if descriptor.authentication.uses_password:
        steps.append(AuthStep(AuthStepKind.PASSWORD, password=descriptor.password))

    if key is not None:
        steps.append(AuthStep(AuthStepKind.PUBLIC_KEY, key=key))

    chain = AuthMethodChain(tuple(steps))
    logger.debug(
        "Auth chain for %s@%s: %s",
        descriptor.username,
        descriptor.address,
        chain.describe(),
    )
    return chain


def create_password_descriptor(
    address: str,
    username: str,
    password: str,
    **kwargs: Any,
) -> ConnectionDescriptor:
    """Create a descriptor for plain password authentication."""
    return ConnectionDescriptor(
        address=address,
        username=username,
        authentication=AuthenticationType.USERNAME_PASSWORD,
        password=password,
        **kwargs,
    )


def create_key_file_descriptor(
    address: str,
    username: str,
    private_key_file: Path | str,
    passphrase: str | None = None,
    password: str | None = None,
    **kwargs: Any,
) -> ConnectionDescriptor:
    """
    Create a descriptor for private key file authentication.

    If password is given, the descriptor offers both password and key
    (USERNAME_PASSWORD_PRIVATE_KEY_FILE).
    """
    authentication = (
        AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_FILE
        if password is not None
        else AuthenticationType.USERNAME_PRIVATE_KEY_FILE
    )
    return ConnectionDescriptor(
        address=address,
        username=username,
        authentication=authentication,
        password=password,
        private_key_file=str(private_key_file),
        private_key_passphrase=passphrase,
        **kwargs,
    )


def create_key_string_descriptor(
    address: str,
    username: str,
    private_key: str,
    passphrase: str | None = None,
    password: str | None = None,
    **kwargs: Any,
) -> ConnectionDescriptor:
    """
    Create a descriptor for an inline private key.

    Useful when the key comes from a secret store rather than a file.
    """
    authentication = (
        AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_STRING
        if password is not None
        else AuthenticationType.USERNAME_PRIVATE_KEY_STRING
    )
    return ConnectionDescriptor(
        address=address,
        username=username,
        authentication=authentication,
        password=password,
        private_key_string=private_key,
        private_key_passphrase=passphrase,
        **kwargs,
    )


def create_keyboard_interactive_descriptor(
    address: str,
    username: str,
    password: str | None = None,
    prompts: Sequence[PromptResponse] | dict[str, str] = (),
    **kwargs: Any,
) -> ConnectionDescriptor:
    """
    Create a descriptor that tries keyboard-interactive first.

    Args:
        password: Used for password-like prompts and for the password step
        prompts: PromptResponse pairs, or a {prompt: response} dict

    Example:
        descriptor = create_keyboard_interactive_descriptor(
            "sftp.example.com", "alice",
            password="secret",
            prompts={"Verification code": "123456"},
        )
    """
    if isinstance(prompts, dict):
        prompts = [PromptResponse(prompt=p, response=r) for p, r in prompts.items()]
    return ConnectionDescriptor(
        address=address,
        username=username,
        authentication=AuthenticationType.USERNAME_PASSWORD,
        password=password,
        use_keyboard_interactive=True,
        prompt_and_response=tuple(prompts),
        **kwargs,
    )
