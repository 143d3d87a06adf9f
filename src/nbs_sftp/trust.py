"""
Host key trust decisions against a caller-supplied fingerprint.

Provides:
- HostKeyEvent: The received host key blob plus its MD5/SHA-256 digests
- TrustDecision: Outcome of a verification (trusted flag + explanation)
- verify(): Pure function deciding whether a host key matches
- TrustVerifier: Holds one classified fingerprint for a connection attempt

The digests are computed over the SSH wire-format public key blob
(asyncssh exposes it as SSHKey.public_data), the same bytes OpenSSH
hashes for `ssh-keygen -l`.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

import asyncssh

from nbs_sftp.fingerprint import (
    ExpectedFingerprint,
    FingerprintFormat,
    classify,
    parse_colon_hex,
    strip_separators,
    to_base64,
    to_colon_hex,
    to_hex,
)

UNSUPPORTED_FORMAT_MESSAGE = "Expected server fingerprint was given in unsupported format."


def mismatch_message(expected: str, actual: str) -> str:
    return (
        "Can't trust SFTP server. The server fingerprint does not match. "
        f"Expected fingerprint: '{expected}', but was: '{actual}'."
    )


@dataclass(frozen=True)
class HostKeyEvent:
    """
    A host key as received during one handshake.

    Attributes:
        host_key: Raw public key blob
        md5: MD5 digest of host_key
        sha256: SHA-256 digest of host_key
    """
    host_key: bytes
    md5: bytes
    sha256: bytes

    @classmethod
    def from_bytes(cls, host_key: bytes) -> "HostKeyEvent":
        return cls(
            host_key=host_key,
            md5=hashlib.md5(host_key).digest(),
            sha256=hashlib.sha256(host_key).digest(),
        )

    @classmethod
    def from_key(cls, key: asyncssh.SSHKey) -> "HostKeyEvent":
        """Build from an asyncssh key (uses the public key blob)."""
        return cls.from_bytes(key.public_data)

    @property
    def md5_colon_hex(self) -> str:
        return to_colon_hex(self.md5)

    @property
    def md5_hex(self) -> str:
        return to_hex(self.md5)

    @property
    def sha256_hex(self) -> str:
        return to_hex(self.sha256)

    @property
    def sha256_base64(self) -> str:
        return to_base64(self.sha256)

    def to_dict(self) -> dict[str, str]:
        """Display forms for event logging."""
        return {
            "md5": self.md5_colon_hex,
            "sha256_hex": self.sha256_hex,
            "sha256_base64": self.sha256_base64,
        }


@dataclass(frozen=True)
class TrustDecision:
    """
    Result of checking a host key.

    message is None when trusted; otherwise it explains the rejection and
    names both fingerprints in the form that was compared.
    """
    trusted: bool
    message: str | None = None
    compared_as: FingerprintFormat | None = None
    expected: str | None = None
    actual: str | None = None

    @classmethod
    def skipped(cls) -> "TrustDecision":
        return cls(trusted=True)


def _decide(
    matched: bool,
    fmt: FingerprintFormat,
    expected: str,
    actual: str,
) -> TrustDecision:
    if matched:
        return TrustDecision(trusted=True, compared_as=fmt, expected=expected, actual=actual)
    return TrustDecision(
        trusted=False,
        message=mismatch_message(expected, actual),
        compared_as=fmt,
        expected=expected,
        actual=actual,
    )


def verify(
    host_key: bytes | HostKeyEvent,
    expected: str | ExpectedFingerprint | None,
) -> TrustDecision:
    """
    Decide whether a host key matches the expected fingerprint.

    Args:
        host_key: Raw public key blob, or an already-digested HostKeyEvent
        expected: Fingerprint string (any supported format), a classified
                  ExpectedFingerprint, or None/"" to skip verification

    Returns:
        TrustDecision. Untrusted decisions must abort the handshake.
    """
    if expected is None or (isinstance(expected, str) and not expected):
        return TrustDecision.skipped()

    event = host_key if isinstance(host_key, HostKeyEvent) else HostKeyEvent.from_bytes(host_key)
    fp = expected if isinstance(expected, ExpectedFingerprint) else classify(expected)

    if fp.format == FingerprintFormat.MD5_COLON_HEX:
        try:
            matched = parse_colon_hex(fp.value) == event.md5
        except ValueError:
            matched = False
        return _decide(matched, fp.format, fp.value, event.md5_colon_hex)

    if fp.format == FingerprintFormat.MD5_HEX:
        matched = strip_separators(fp.value).lower() == event.md5_hex
        return _decide(matched, fp.format, fp.value, event.md5_hex)

    if fp.format == FingerprintFormat.SHA256_HEX:
        matched = fp.value.lower() == event.sha256_hex
        return _decide(matched, fp.format, fp.value, event.sha256_hex)

    if fp.format == FingerprintFormat.SHA256_BASE64:
        actual = event.sha256_base64
        matched = fp.value == actual or fp.value == actual.replace("=", "")
        return _decide(matched, fp.format, fp.value, actual)

    return TrustDecision(
        trusted=False,
        message=UNSUPPORTED_FORMAT_MESSAGE,
        compared_as=FingerprintFormat.UNSUPPORTED,
        expected=fp.value,
    )


class TrustVerifier:
    """
    Per-connection gate around verify().

    The expected fingerprint is classified once at construction. The
    last HostKeyEvent and TrustDecision are kept so the connection can
    report why asyncssh aborted the handshake.

    Usage:
        verifier = TrustVerifier("SHA256-base64-fingerprint=")
        if not verifier.check(key.public_data):
            ...  # abort
    """

    def __init__(self, expected: str) -> None:
        assert expected, "TrustVerifier requires a non-empty fingerprint"
        self._expected = classify(expected)
        self._event: HostKeyEvent | None = None
        self._decision: TrustDecision | None = None

    @property
    def expected(self) -> ExpectedFingerprint:
        return self._expected

    @property
    def last_event(self) -> HostKeyEvent | None:
        return self._event

    @property
    def last_decision(self) -> TrustDecision | None:
        return self._decision

    def check(self, host_key: bytes) -> bool:
        """Verify a raw host key blob and record the decision."""
        self._event = HostKeyEvent.from_bytes(host_key)
        self._decision = verify(self._event, self._expected)
        return self._decision.trusted
