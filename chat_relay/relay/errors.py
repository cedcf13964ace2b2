"""Error taxonomy for the chat-turn relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base error carrying the HTTP status reported to the caller."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(RelayError):
    """Caller identity is missing, expired, or rejected by the store."""

    status_code = 401


class PersistenceError(RelayError):
    """The user turn could not be written; nothing was sent upstream."""

    status_code = 500


class UpstreamError(RelayError):
    """The completion provider rejected the request with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Upstream error {status_code}: {body}", status_code=status_code)
        self.body = body


class StreamDecodeError(RelayError):
    """A stream payload could not be parsed. Swallowed by the decoder."""


class StreamFatalError(RelayError):
    """Reading the upstream stream failed after the response was committed."""


class StoreError(RelayError):
    """A store request failed or returned an unusable body."""

    status_code = 500


class DetachedOperationError(RelayError):
    """A fire-and-forget operation failed after the response was delivered. Logged only."""
