"""Failures forwarding a payload to the remote endpoint."""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for forwarding failures."""

    pass


class RemoteUnauthorizedError(RelayError):
    """Raised when the remote rejects the bearer token (HTTP 401)."""

    pass


class RemoteStatusError(RelayError):
    """Raised when the remote answers with any other non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        excerpt = body.strip()[:200]
        message = f"Remote returned {status_code}"
        if excerpt:
            message = f"{message}: {excerpt}"
        super().__init__(message)


class RemoteTransportError(RelayError):
    """Raised when the remote cannot be reached or its reply cannot be read."""

    pass
