"""Token records and token endpoint request/response models for OAuth 2.1."""

from __future__ import annotations

import time
from dataclasses import dataclass

from pydantic import BaseModel

DEFAULT_TOKEN_LIFETIME = 3600
# Subtracted from the declared lifetime so expires_at is always early.
EXPIRY_SAFETY_MARGIN = 30
# A cached token is only reused if it stays valid at least this long.
FRESHNESS_WINDOW = 60


class TokenRecord(BaseModel):
    """Persisted token state for the remote endpoint.

    ``expires_at`` is an absolute epoch-seconds estimate that already has
    the safety margin taken off, so it errs on the early side.
    """

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    expires_at: int

    def is_fresh(self, now: float | None = None) -> bool:
        """True if the token stays valid for more than the freshness window."""
        if now is None:
            now = time.time()
        return self.expires_at > now + FRESHNESS_WINDOW

    def can_refresh(self) -> bool:
        """Check if token can be refreshed."""
        return bool(self.refresh_token)


@dataclass(frozen=True)
class TokenRequest:
    """OAuth 2.1 token exchange request parameters (RFC 6749 Section 4.1.3).

    Immutable request parameters for exchanging authorization codes for
    access tokens, including the PKCE code_verifier (RFC 7636).
    """

    token_endpoint: str
    code: str
    redirect_uri: str
    client_id: str
    code_verifier: str

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        """
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": self.code_verifier,
            "client_id": self.client_id,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """OAuth 2.1 refresh token request parameters (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str
    client_id: str

    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        return {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
        }


class TokenResponse(BaseModel):
    """OAuth 2.1 token response (RFC 6749 Section 5).

    Represents the response from a token endpoint, including both
    successful responses (Section 5.1) and error responses (Section 5.2).
    """

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: float | None = None  # Seconds until expiry, may be fractional
    refresh_token: str | None = None
    scope: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def describe_error(self) -> str:
        if self.error_description:
            return f"{self.error} - {self.error_description}"
        return self.error or "missing access_token"

    def calculate_expires_at(self, now: float | None = None) -> int:
        """Absolute expiry with the safety margin applied.

        Falls back to a one hour lifetime when ``expires_in`` is absent.
        """
        if now is None:
            now = time.time()
        lifetime = (
            self.expires_in if self.expires_in is not None else DEFAULT_TOKEN_LIFETIME
        )
        return int(now) + int(lifetime) - EXPIRY_SAFETY_MARGIN

    def to_token_record(
        self, now: float | None = None, previous_refresh_token: str | None = None
    ) -> TokenRecord:
        """Convert a successful response into the record to persist.

        Args:
            now: Issue time, defaults to the current time
            previous_refresh_token: Kept when the server does not rotate it

        Raises:
            ValueError: If response is not successful
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to TokenRecord")

        return TokenRecord(
            access_token=self.access_token,
            refresh_token=self.refresh_token or previous_refresh_token,
            token_type=self.token_type,
            scope=self.scope,
            expires_at=self.calculate_expires_at(now),
        )
