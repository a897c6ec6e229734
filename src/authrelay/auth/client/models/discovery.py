"""Discovery-related models for OAuth 2.1 server metadata.

Contains models for Protected Resource Metadata (RFC 9728) and the
authorization server endpoint set (RFC 8414) the relay persists as its
discovery document.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728).

    Published by the remote endpoint to name its authorization server. Real
    deployments vary in how they do that, so the list form, a singular
    ``authorization_server`` and a bare ``issuer`` are all accepted.
    """

    model_config = ConfigDict(extra="ignore")

    resource: str | None = None
    authorization_servers: list[str] | None = None
    authorization_server: str | None = None
    issuer: str | None = None

    # Optional fields from RFC 9728
    bearer_methods_supported: list[str] | None = None
    scopes_supported: list[str] | None = None

    def candidate_issuer(self) -> str | None:
        """First non-empty issuer reference, in priority order."""
        candidates = [
            self.authorization_servers[0] if self.authorization_servers else None,
            self.authorization_server,
            self.issuer,
        ]
        for candidate in candidates:
            if candidate:
                return candidate
        return None


class DiscoveryDocument(BaseModel):
    """Authorization server endpoints resolved for the remote endpoint.

    ``issuer`` is the identity key client registrations are bound to.
    Persisted as-is in the key-value cache and reused across runs.
    """

    model_config = ConfigDict(extra="ignore")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str

    # Dynamic registration (RFC 7591)
    registration_endpoint: str | None = None

    # Informational, kept when the server advertises them
    scopes_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] | None = None
