"""
SFTP session over asyncssh with JSONL event logging.

Provides:
- SFTPConnection: Async context manager yielding an open SFTP client

The connection wires the pure pieces into asyncssh's callbacks:
- build_auth_chain() runs before any socket is opened
- TrustVerifier decides validate_host_public_key()
- InteractivePromptResolver answers keyboard-interactive challenges

Errors raised inside those callbacks cannot cross asyncssh's protocol
handler, so they are stored on the client and re-raised once asyncssh
gives up on the handshake.
"""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

import asyncssh

from nbs_sftp.auth import AuthMethodChain, build_auth_chain
from nbs_sftp.cancellation import CancellationToken
from nbs_sftp.config import ConnectionDescriptor
from nbs_sftp.encoding import ResolvedEncoding
from nbs_sftp.errors import (
    AuthenticationError,
    AuthFailed,
    ConfigurationError,
    ConnectionRefused,
    ConnectionTimeout,
    DisconnectReason,
    ErrorContext,
    HostKeyMismatch,
    HostUnreachable,
    NoMutualKex,
    SFTPConnectionError,
    SFTPError,
    UnsupportedFingerprintFormat,
)
from nbs_sftp.events import EventCollector, EventEmitter, EventType
from nbs_sftp.fingerprint import FingerprintFormat
from nbs_sftp.prompts import InteractivePromptResolver
from nbs_sftp.trust import HostKeyEvent, TrustDecision, TrustVerifier

logger = logging.getLogger(__name__)


class _GatedSSHClient(asyncssh.SSHClient):
    """
    asyncssh client that gates the handshake on our own checks.

    Host keys are checked against the expected fingerprint (when one
    is configured) and keyboard-interactive prompts are answered by the
    resolver (when keyboard-interactive is in the chain).
    """

    def __init__(
        self,
        verifier: TrustVerifier | None = None,
        resolver: InteractivePromptResolver | None = None,
    ) -> None:
        super().__init__()
        self._verifier = verifier
        self._resolver = resolver
        self._auth_error: SFTPError | None = None
        self._challenge_count = 0

    @property
    def auth_error(self) -> SFTPError | None:
        """Error raised by the prompt resolver, if any."""
        return self._auth_error

    @property
    def challenge_count(self) -> int:
        return self._challenge_count

    def validate_host_public_key(
        self,
        host: str,
        addr: tuple[str, int],
        port: int,
        key: asyncssh.SSHKey,
    ) -> bool:
        if self._verifier is None:
            return True
        return self._verifier.check(key.public_data)

    def kbdint_auth_requested(self) -> str | None:
        if self._resolver is None:
            return None
        return ""

    def kbdint_challenge_received(
        self,
        name: str,
        instructions: str,
        lang: str,
        prompts: list[tuple[str, bool]],
    ) -> list[str] | None:
        if self._resolver is None:
            return None

        self._challenge_count += 1
        # An empty challenge is the server asking whether we are still there
        if not prompts:
            return []

        try:
            return self._resolver.respond_all([prompt for prompt, _echo in prompts])
        except SFTPError as e:
            self._auth_error = e
            return None


class SFTPConnection:
    """
    Authenticated SFTP session for one logical operation.

    Usage:
        descriptor = create_password_descriptor("sftp.example.com", "alice", "secret")
        async with SFTPConnection(descriptor) as conn:
            names = await conn.sftp.listdir("/in")

    Events emitted:
    - CONNECT: initiating, then connected
    - TRUST: fingerprint check result (or skipped)
    - AUTH: success or failure of the method chain
    - DISCONNECT: On close
    - ERROR: On any failure while connecting
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        event_collector: EventCollector | None = None,
        event_log_path: Path | str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """
        Args:
            descriptor: Connection settings
            event_collector: Optional in-memory event sink
            event_log_path: Optional JSONL event log file
            cancel_token: Checked while answering prompts and by task operations
        """
        assert isinstance(descriptor, ConnectionDescriptor), \
            f"Expected ConnectionDescriptor, got {type(descriptor)}"

        self._descriptor = descriptor
        self._cancel_token = cancel_token
        self._emitter = EventEmitter(collector=event_collector, jsonl_path=event_log_path)

        self._conn: asyncssh.SSHClientConnection | None = None
        self._sftp: asyncssh.SFTPClient | None = None
        self._encoding: ResolvedEncoding | None = None
        self._verifier: TrustVerifier | None = None
        self._host_key: HostKeyEvent | None = None
        self._disconnect_reason = DisconnectReason.NORMAL

    # ---- Properties ----

    @property
    def descriptor(self) -> ConnectionDescriptor:
        return self._descriptor

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    @property
    def cancel_token(self) -> CancellationToken | None:
        return self._cancel_token

    @property
    def encoding(self) -> ResolvedEncoding:
        if self._encoding is None:
            self._encoding = self._descriptor.resolve_encoding()
        return self._encoding

    @property
    def block_size(self) -> int:
        return self._descriptor.block_size

    @property
    def host_key(self) -> HostKeyEvent | None:
        """The server's host key, once connected."""
        return self._host_key

    @property
    def trust_decision(self) -> TrustDecision | None:
        if self._verifier is None:
            return None
        return self._verifier.last_decision

    @property
    def connected(self) -> bool:
        return self._sftp is not None

    @property
    def sftp(self) -> asyncssh.SFTPClient:
        assert self._sftp is not None, "Not connected. Use 'async with SFTPConnection(...)'."
        return self._sftp

    # ---- Lifecycle ----

    async def __aenter__(self) -> "SFTPConnection":
        try:
            await self._connect()
        except BaseException:
            self._disconnect_reason = DisconnectReason.ERROR
            await self._disconnect()
            raise
        return self

    async def __aexit__(self, exc_type: Any, *args: Any) -> None:
        if exc_type is not None:
            if issubclass(exc_type, asyncio.CancelledError):
                self._disconnect_reason = DisconnectReason.CANCELLED
            else:
                self._disconnect_reason = DisconnectReason.ERROR
        await self._disconnect()

    def _connect_data(self) -> dict[str, Any]:
        return {
            "host": self._descriptor.address,
            "port": self._descriptor.port,
            "username": self._descriptor.username,
        }

    def _error_context(self, chain: AuthMethodChain | None = None) -> ErrorContext:
        return ErrorContext(
            host=self._descriptor.address,
            port=self._descriptor.port,
            username=self._descriptor.username,
            auth_method=chain.describe() if chain is not None else None,
        )

    def _emit_error(self, error: SFTPError) -> None:
        self._emitter.emit(
            EventType.ERROR,
            error_type=error.error_type,
            message=str(error),
            **self._connect_data(),
        )

    async def _connect(self) -> None:
        """Negotiate, connect, verify the host and open the SFTP subsystem."""
        descriptor = self._descriptor
        connect_data = self._connect_data()
        self._emitter.emit(EventType.CONNECT, status="initiating", **connect_data)

        try:
            chain = build_auth_chain(descriptor)
            encoding = self.encoding
        except ConfigurationError as e:
            e.context.host = descriptor.address
            e.context.port = descriptor.port
            e.context.username = descriptor.username
            self._emit_error(e)
            raise

        error_ctx = self._error_context(chain)

        if descriptor.server_fingerprint:
            self._verifier = TrustVerifier(descriptor.server_fingerprint)

        resolver: InteractivePromptResolver | None = None
        if chain.uses_keyboard_interactive:
            resolver = InteractivePromptResolver(
                password=descriptor.password,
                prompt_and_response=descriptor.prompt_and_response,
                cancel_token=self._cancel_token,
            )

        options = descriptor.to_asyncssh_options()
        options.update(chain.to_asyncssh_options())
        # An empty known_hosts list makes asyncssh defer to validate_host_public_key
        options["known_hosts"] = () if self._verifier is not None else None

        client = _GatedSSHClient(verifier=self._verifier, resolver=resolver)
        logger.info(
            "Connecting to %s:%d as %s (auth: %s)",
            descriptor.address,
            descriptor.port,
            descriptor.username,
            chain.describe(),
        )

        auth_start_ms = time.time() * 1000
        try:
            self._conn = await asyncssh.connect(client_factory=lambda: client, **options)
        except Exception as e:
            mapped = self._map_connect_failure(e, client, error_ctx)
            self._emit_trust()
            if isinstance(mapped, AuthenticationError):
                self._emit_auth("failed", chain, auth_start_ms, error=mapped)
            self._emit_error(mapped)
            raise mapped from e

        self._emit_trust()

        if client.auth_error is not None:
            # The server accepted a later method in the chain, but an
            # unanswerable prompt is still fatal
            error = client.auth_error
            error.context.host = error_ctx.host
            error.context.port = error_ctx.port
            error.context.username = error_ctx.username
            self._emit_auth("failed", chain, auth_start_ms, error=error)
            self._emit_error(error)
            raise error

        self._emit_auth("success", chain, auth_start_ms)

        if self._host_key is None:
            server_key = self._conn.get_server_host_key()
            if server_key is not None:
                self._host_key = HostKeyEvent.from_key(server_key)

        try:
            self._sftp = await self._conn.start_sftp_client(path_encoding=encoding.path_codec)
        except Exception as e:
            mapped = self._map_exception(e, error_ctx)
            self._emit_error(mapped)
            raise mapped from e

        self._emitter.emit(
            EventType.CONNECT,
            status="connected",
            auth_method=chain.describe(),
            **connect_data,
        )
        logger.info("Connected to %s:%d", descriptor.address, descriptor.port)

    def _emit_auth(
        self,
        status: str,
        chain: AuthMethodChain,
        start_ms: float,
        error: SFTPError | None = None,
    ) -> None:
        data: dict[str, Any] = {
            "status": status,
            "methods": [kind.value for kind in chain.kinds],
            "username": self._descriptor.username,
            "duration_ms": (time.time() * 1000) - start_ms,
        }
        if error is not None:
            data["error_type"] = error.error_type
            data["error_message"] = str(error)
        self._emitter.emit(EventType.AUTH, **data)

    def _emit_trust(self) -> None:
        if self._verifier is None:
            self._emitter.emit(EventType.TRUST, status="skipped", host=self._descriptor.address)
            return

        event = self._verifier.last_event
        decision = self._verifier.last_decision
        if event is None or decision is None:
            # Connection failed before the host key arrived
            return

        self._host_key = event
        data: dict[str, Any] = {
            "status": "trusted" if decision.trusted else "rejected",
            "host": self._descriptor.address,
            "compared_as": decision.compared_as.value if decision.compared_as else None,
            **event.to_dict(),
        }
        if decision.message:
            data["message"] = decision.message
        self._emitter.emit(EventType.TRUST, **data)

    def _map_connect_failure(
        self,
        exc: Exception,
        client: _GatedSSHClient,
        ctx: ErrorContext,
    ) -> SFTPError:
        """Prefer the detailed error recorded by our callbacks over asyncssh's."""
        if isinstance(exc, asyncssh.HostKeyNotVerifiable) and self._verifier is not None:
            decision = self._verifier.last_decision
            if decision is not None and not decision.trusted:
                ctx.original_error = str(exc)
                if decision.compared_as == FingerprintFormat.UNSUPPORTED:
                    return UnsupportedFingerprintFormat(decision.message or str(exc), context=ctx)
                return HostKeyMismatch(
                    decision.message or str(exc),
                    expected=decision.expected,
                    actual=decision.actual,
                    context=ctx,
                )

        if client.auth_error is not None:
            error = client.auth_error
            error.context.host = ctx.host
            error.context.port = ctx.port
            error.context.username = ctx.username
            error.context.auth_method = ctx.auth_method
            error.context.original_error = str(exc)
            return error

        return self._map_exception(exc, ctx)

    def _map_exception(self, exc: Exception, ctx: ErrorContext) -> SFTPError:
        """Map asyncssh and socket exceptions to our error taxonomy."""
        if isinstance(exc, SFTPError):
            return exc

        ctx.original_error = str(exc)

        if isinstance(exc, asyncssh.PermissionDenied):
            return AuthFailed(f"Authentication failed: {exc}", context=ctx)

        if isinstance(exc, asyncssh.HostKeyNotVerifiable):
            return HostKeyMismatch(f"Host key verification failed: {exc}", context=ctx)

        if isinstance(exc, asyncssh.KeyExchangeFailed):
            return NoMutualKex(f"Key exchange failed: {exc}", context=ctx)

        if isinstance(exc, asyncssh.ConnectionLost):
            return SFTPConnectionError(f"Connection lost: {exc}", context=ctx)

        if isinstance(exc, asyncssh.ChannelOpenError):
            return SFTPConnectionError(f"Could not open SFTP subsystem: {exc}", context=ctx)

        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            return ConnectionTimeout(f"Connection timed out: {exc}", context=ctx)

        if isinstance(exc, OSError):
            error_str = str(exc).lower()
            if isinstance(exc, ConnectionRefusedError) or "connection refused" in error_str:
                return ConnectionRefused(f"Connection refused: {exc}", context=ctx)
            if "timed out" in error_str or "timeout" in error_str:
                return ConnectionTimeout(f"Connection timed out: {exc}", context=ctx)
            if "unreachable" in error_str or "no route" in error_str:
                return HostUnreachable(f"Host unreachable: {exc}", context=ctx)
            return SFTPConnectionError(f"Connection failed: {exc}", context=ctx)

        if isinstance(exc, asyncssh.Error):
            return SFTPConnectionError(f"SSH error: {exc}", context=ctx)

        return SFTPError(f"Unexpected error: {exc}", context=ctx)

    async def _disconnect(self, reason: DisconnectReason | None = None) -> None:
        """Close the SFTP client and the SSH connection."""
        if reason is not None:
            self._disconnect_reason = reason

        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None

        if self._conn is not None:
            self._emitter.emit(
                EventType.DISCONNECT,
                host=self._descriptor.address,
                port=self._descriptor.port,
                reason=self._disconnect_reason.value,
            )
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None
            logger.info("Disconnected from %s (%s)", self._descriptor.address,
                        self._disconnect_reason.value)

        self._emitter.close()
