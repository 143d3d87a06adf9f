"""
Cooperative cancellation for long-running SFTP operations.

A CancellationToken is checked at every loop boundary (per prompt, per
file, per directory entry). Nothing is interrupted from outside.
"""
from __future__ import annotations

from nbs_sftp.errors import OperationCancelled


class CancellationToken:
    """
    One-shot cancellation flag shared between a caller and an operation.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(move_files(conn, ..., cancel_token=token))
        token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Calling it again keeps the first reason."""
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if cancel() has been called."""
        if self._cancelled:
            message = "Operation was cancelled"
            if self._reason:
                message = f"{message}: {self._reason}"
            raise OperationCancelled(message)


def check_cancelled(token: CancellationToken | None) -> None:
    """Check an optional token."""
    if token is not None:
        token.raise_if_cancelled()
