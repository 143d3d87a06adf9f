"""
SFTP error taxonomy with structured data for JSONL logging.

Every failure the library raises is an SFTPError carrying an ErrorContext,
so callers can branch on the exception type and log the context as-is.

Error hierarchy:
- SFTPError (base)
  - ConfigurationError (detected before any network I/O)
    - MissingKeyMaterial
    - UnsupportedAuthentication
    - KeyLoadError
  - TrustError (host identity rejected, handshake aborted)
    - HostKeyMismatch
    - UnsupportedFingerprintFormat
  - AuthenticationError
    - AuthFailed (server rejected the credentials)
    - InteractiveAuthError (unanswered keyboard-interactive prompt)
  - PathNotFound
  - ConflictError
    - TargetExists
    - BatchConflict
    - RenameLimitExceeded
  - BatchOperationError (carries partial outcomes)
  - OperationCancelled
  - RemoteOperationError
  - SFTPConnectionError
    - ConnectionRefused
    - ConnectionTimeout
    - HostUnreachable
    - NoMutualKex
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Sequence


class DisconnectReason(str, Enum):
    """Why an SFTP session ended, as reported in DISCONNECT events."""
    NORMAL = "normal"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class ErrorContext:
    """
    Structured context attached to every SFTPError.

    Only fields that were populated end up in to_dict(), which keeps
    the JSONL records compact.
    """
    host: str | None = None
    port: int | None = None
    username: str | None = None
    auth_method: str | None = None
    path: str | None = None
    original_error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.port is not None:
            assert isinstance(self.port, int) and 1 <= self.port <= 65535, (
                f"Port must be between 1 and 65535, got {self.port}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if key == "extra":
                field_names = {f.name for f in fields(self)} - {"extra"}
                collisions = field_names & value.keys()
                assert not collisions, (
                    f"Extra keys collide with context fields: {collisions}"
                )
                result.update(value)
            else:
                result[key] = value
        return result


class SFTPError(Exception):
    """Base exception for all errors raised by nbs_sftp."""

    def __init__(self, message: str, context: ErrorContext | None = None) -> None:
        assert isinstance(message, str) and message.strip(), (
            f"SFTPError message must be a non-empty string, got {message!r}"
        )
        super().__init__(message)
        self.context = context or ErrorContext()

    @property
    def error_type(self) -> str:
        """Return the error type name for logging."""
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSONL logging."""
        return {
            "error_type": self.error_type,
            "message": str(self),
            **self.context.to_dict(),
        }


# ---------------------------------------------------------------------------
# Configuration Errors
# ---------------------------------------------------------------------------

class ConfigurationError(SFTPError):
    """Invalid connection or operation settings. Never retried."""
    pass


class MissingKeyMaterial(ConfigurationError):
    """The authentication mode needs a private key but none was given."""
    pass


class UnsupportedAuthentication(ConfigurationError):
    """The authentication mode is not one the negotiator knows."""
    pass


class KeyLoadError(ConfigurationError):
    """
    Failed to decode a private key.

    Raised when:
    - Key file does not exist or is not readable
    - Key data is not a recognised private key format
    - Passphrase is missing or wrong for an encrypted key
    """

    def __init__(
        self,
        message: str,
        key_path: str | None = None,
        reason: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        if key_path:
            context.extra["key_path"] = key_path
        if reason:
            context.extra["reason"] = reason
        super().__init__(message, context)
        self.key_path = key_path
        self.reason = reason


# ---------------------------------------------------------------------------
# Trust Errors
# ---------------------------------------------------------------------------

class TrustError(SFTPError):
    """The server's host key was not trusted; the handshake was aborted."""
    pass


class HostKeyMismatch(TrustError):
    """
    The server fingerprint does not match the expected one.

    Could mean a man-in-the-middle, or simply a rotated host key.
    """

    def __init__(
        self,
        message: str,
        expected: str | None = None,
        actual: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        if expected is not None:
            context.extra["expected_fingerprint"] = expected
        if actual is not None:
            context.extra["actual_fingerprint"] = actual
        super().__init__(message, context)
        self.expected = expected
        self.actual = actual


class UnsupportedFingerprintFormat(TrustError):
    """The expected fingerprint is neither MD5- nor SHA-256-shaped."""
    pass


# ---------------------------------------------------------------------------
# Authentication Errors
# ---------------------------------------------------------------------------

class AuthenticationError(SFTPError):
    """Base class for authentication failures."""
    pass


class AuthFailed(AuthenticationError):
    """The server rejected every offered authentication method."""
    pass


class InteractiveAuthError(AuthenticationError):
    """No configured response matched a keyboard-interactive prompt."""

    def __init__(
        self,
        message: str,
        prompt: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        if prompt is not None:
            context.extra["prompt"] = prompt
        super().__init__(message, context)
        self.prompt = prompt


# ---------------------------------------------------------------------------
# Path and Conflict Errors
# ---------------------------------------------------------------------------

class PathNotFound(SFTPError):
    """A remote file or directory does not exist."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.path = path
        super().__init__(message, context)
        self.path = path


class ConflictError(SFTPError):
    """A destination path collides with an existing or planned file."""
    pass


class TargetExists(ConflictError):
    """The destination already exists and the policy forbids touching it."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.path = path
        super().__init__(message, context)
        self.path = path


class BatchConflict(ConflictError):
    """A batch was rejected up front; no file was touched."""

    def __init__(
        self,
        message: str,
        paths: Sequence[str] = (),
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.extra["conflicting_paths"] = list(paths)
        super().__init__(message, context)
        self.paths = list(paths)


class RenameLimitExceeded(ConflictError):
    """No free name was found within the rename attempt limit."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        attempts: int = 0,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.path = path
        context.extra["attempts"] = attempts
        super().__init__(message, context)
        self.path = path
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Operation Errors
# ---------------------------------------------------------------------------

class BatchOperationError(SFTPError):
    """
    A batch failed part way through.

    outcomes holds everything that had already succeeded, so the caller
    can tell which files were moved or deleted before the failure.
    """

    def __init__(
        self,
        message: str,
        outcomes: Sequence[Any] = (),
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.extra["completed"] = len(outcomes)
        super().__init__(message, context)
        self.outcomes = list(outcomes)


class OperationCancelled(SFTPError):
    """
    A cancellation token was triggered.

    When a batch is cancelled part way, outcomes holds what it had
    already completed.
    """

    def __init__(
        self,
        message: str,
        outcomes: Sequence[Any] = (),
        context: ErrorContext | None = None,
    ) -> None:
        if outcomes:
            context = context or ErrorContext()
            context.extra["completed"] = len(outcomes)
        super().__init__(message, context)
        self.outcomes = list(outcomes)


class RemoteOperationError(SFTPError):
    """An SFTP request failed for a reason other than a missing path."""
    pass


# ---------------------------------------------------------------------------
# Connection Errors
# ---------------------------------------------------------------------------

class SFTPConnectionError(SFTPError):
    """Base class for transport-level errors."""
    pass


class ConnectionRefused(SFTPConnectionError):
    """Server actively refused the connection."""
    pass


class ConnectionTimeout(SFTPConnectionError):
    """Connection attempt timed out."""
    pass


class HostUnreachable(SFTPConnectionError):
    """Host could not be reached."""
    pass


class NoMutualKex(SFTPConnectionError):
    """Client and server share no key exchange or host key algorithm."""
    pass
