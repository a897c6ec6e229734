"""Client registration models for OAuth 2.0 Dynamic Client Registration.

Contains the registration request body (RFC 7591) and the persisted
registration record.
"""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")


class ClientMetadata(BaseModel):
    """OAuth 2.0 Client Metadata for dynamic registration (RFC 7591).

    The relay always registers as a public native client: no secret, the
    authorization code grant with refresh tokens, and code-only responses.
    """

    client_name: str
    redirect_uris: list[str] = Field(min_length=1)
    scope: str | None = None

    application_type: str = "native"
    token_endpoint_auth_method: str = "none"  # Public client
    grant_types: list[str] = Field(default=["authorization_code", "refresh_token"])
    response_types: list[str] = Field(default=["code"])

    @field_validator("redirect_uris")
    @classmethod
    def validate_redirect_uris(cls, v: list[str]) -> list[str]:
        """Validate redirect URIs meet OAuth 2.1 security requirements."""
        for uri in v:
            parsed = urlparse(uri)
            # Must be HTTPS or a loopback address (RFC 8252 Section 7.3)
            if parsed.scheme == "http" and parsed.hostname not in LOOPBACK_HOSTS:
                raise ValueError(f"Redirect URI must use HTTPS or loopback: {uri}")
        return v


class ClientRegistration(BaseModel):
    """Registered client identity, bound to the issuer that issued it.

    A registration only applies while its ``issuer`` matches the current
    discovery document's issuer.
    """

    issuer: str
    client_id: str
    redirect_uris: list[str]

    def matches(self, issuer: str) -> bool:
        return self.issuer == issuer
