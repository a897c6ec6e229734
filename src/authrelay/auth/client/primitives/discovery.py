"""OAuth 2.1 server discovery primitive.

Implements RFC 9728 (Protected Resource Metadata) and RFC 8414
(Authorization Server Metadata) discovery to find the OAuth endpoints
guarding the remote endpoint. The resolved endpoint set is cached and
reused for as long as the relay points at the same remote endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from authrelay.auth.client.models.discovery import (
    DiscoveryDocument,
    ProtectedResourceMetadata,
)
from authrelay.auth.client.models.errors import (
    AuthorizationServerMetadataError,
    ProtectedResourceMetadataError,
)
from authrelay.storage.cache import DISCOVERY_KEY, KeyValueCache

logger = logging.getLogger(__name__)

PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"
OAUTH_METADATA_PATH = "/.well-known/oauth-authorization-server"
OIDC_METADATA_PATH = "/.well-known/openid-configuration"


def build_metadata_url(issuer: str, well_known: str = OAUTH_METADATA_PATH) -> str:
    """Derive a metadata URL from an issuer identifier.

    RFC 8414 Section 3.1: the well-known segment goes between the host and
    the issuer's path component, so ``https://idp/tenants/acme`` becomes
    ``https://idp/.well-known/oauth-authorization-server/tenants/acme``.
    """
    parsed = urlparse(issuer)
    base_url = f"{parsed.scheme}://{parsed.netloc}"
    path = parsed.path.rstrip("/")
    return f"{base_url}{well_known}{path}"


class OAuth2Discovery:
    """Resolves the discovery document for the remote endpoint.

    Implements the two-step discovery process:
    1. Protected Resource Metadata (RFC 9728) - find the issuer
    2. Authorization Server Metadata (RFC 8414) - find OAuth endpoints

    A cached document is returned without any network call. Concurrent
    cold-start callers wait for a single fetch.
    """

    def __init__(
        self,
        remote_url: str,
        cache: KeyValueCache,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OAuth discovery.

        Args:
            remote_url: The remote endpoint the relay forwards to
            cache: Key-value cache holding the discovery document
            timeout: HTTP request timeout in seconds
            http_client: Shared client; one is created when omitted
        """
        self.remote_url = remote_url
        self.timeout = timeout
        self._cache = cache
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._lock = asyncio.Lock()

    async def resolve(self) -> DiscoveryDocument:
        """Return the discovery document, fetching it on first use.

        Returns:
            DiscoveryDocument with at least the authorization and token
            endpoints

        Raises:
            DiscoveryError: If metadata is unreachable, unparsable or
                missing required endpoints
        """
        cached = self._load_cached()
        if cached is not None:
            return cached

        async with self._lock:
            cached = self._load_cached()
            if cached is not None:
                return cached
            return await self._discover()

    async def _discover(self) -> DiscoveryDocument:
        prm = await self._fetch_protected_resource_metadata(
            self._protected_resource_url()
        )
        issuer = prm.candidate_issuer()
        if not issuer:
            raise ProtectedResourceMetadataError(
                "Protected resource metadata does not name an authorization server"
            )
        logger.debug(f"Protected resource metadata names issuer {issuer}")

        metadata = await self._discover_authorization_server_metadata(issuer)
        if not metadata.get("issuer"):
            metadata["issuer"] = issuer

        document = self._validate_document(metadata, issuer)
        self._cache.put(DISCOVERY_KEY, document.model_dump(mode="json"))

        logger.info(
            f"Resolved authorization server {document.issuer} "
            f"(registration: {'yes' if document.registration_endpoint else 'no'})"
        )
        return document

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    def _load_cached(self) -> DiscoveryDocument | None:
        record = self._cache.get(DISCOVERY_KEY)
        if record is None:
            return None
        try:
            return DiscoveryDocument.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Discarding invalid cached discovery document: {e}")
            return None

    def _protected_resource_url(self) -> str:
        parsed = urlparse(self.remote_url)
        return f"{parsed.scheme}://{parsed.netloc}{PROTECTED_RESOURCE_PATH}"

    async def _fetch_protected_resource_metadata(
        self, metadata_url: str
    ) -> ProtectedResourceMetadata:
        """Fetch and parse protected resource metadata.

        Raises:
            ProtectedResourceMetadataError: If fetch or parsing fails
        """
        logger.debug(f"Fetching protected resource metadata from: {metadata_url}")
        try:
            response = await self._http_client.get(
                metadata_url, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as e:
            raise ProtectedResourceMetadataError(
                f"Failed to fetch protected resource metadata from {metadata_url}: {e}"
            ) from e

        if response.status_code != 200:
            raise ProtectedResourceMetadataError(
                f"Protected resource metadata request to {metadata_url} "
                f"returned HTTP {response.status_code}"
            )

        try:
            return ProtectedResourceMetadata.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProtectedResourceMetadataError(
                f"Invalid protected resource metadata from {metadata_url}: {e}"
            ) from e

    async def _discover_authorization_server_metadata(
        self, issuer: str
    ) -> dict[str, Any]:
        """Fetch authorization server metadata for an issuer.

        Candidate URLs are tried in order while they answer with a 4xx.
        Anything else (success, server error, network failure) ends the
        search.

        Raises:
            AuthorizationServerMetadataError: If no candidate yields metadata
        """
        discovery_urls = self._build_discovery_urls(issuer)

        for url in discovery_urls:
            logger.debug(f"Trying authorization server metadata discovery: {url}")
            try:
                response = await self._http_client.get(
                    url, headers={"Accept": "application/json"}
                )
            except httpx.HTTPError as e:
                raise AuthorizationServerMetadataError(
                    f"Failed to fetch authorization server metadata from {url}: {e}"
                ) from e

            if response.status_code == 200:
                try:
                    metadata = response.json()
                except ValueError as e:
                    raise AuthorizationServerMetadataError(
                        f"Authorization server metadata from {url} is not JSON: {e}"
                    ) from e
                if not isinstance(metadata, dict):
                    raise AuthorizationServerMetadataError(
                        f"Authorization server metadata from {url} is not an object"
                    )
                logger.debug(f"Discovered authorization server metadata from: {url}")
                return metadata
            elif response.status_code >= 500:
                # Server error - don't try other URLs
                break

        raise AuthorizationServerMetadataError(
            f"Failed to discover authorization server metadata for {issuer}. "
            f"Tried URLs: {discovery_urls}"
        )

    def _build_discovery_urls(self, issuer: str) -> list[str]:
        """Build ordered list of discovery URLs to try.

        The RFC 8414 path-aware URL comes first, followed by the OpenID
        Connect equivalents many providers publish instead.
        """
        urls = [
            build_metadata_url(issuer, OAUTH_METADATA_PATH),
            build_metadata_url(issuer, OIDC_METADATA_PATH),
        ]

        # OpenID Connect Discovery 1.0 appends to the issuer instead
        oidc_appended = f"{issuer.rstrip('/')}{OIDC_METADATA_PATH}"
        if oidc_appended not in urls:
            urls.append(oidc_appended)

        return urls

    def _validate_document(
        self, metadata: dict[str, Any], issuer: str
    ) -> DiscoveryDocument:
        missing = [
            field
            for field in ("authorization_endpoint", "token_endpoint")
            if not metadata.get(field)
        ]
        if missing:
            raise AuthorizationServerMetadataError(
                f"Authorization server metadata for {issuer} is missing "
                f"{', '.join(missing)}"
            )

        try:
            document = DiscoveryDocument.model_validate(metadata)
        except ValidationError as e:
            raise AuthorizationServerMetadataError(
                f"Invalid authorization server metadata for {issuer}: {e}"
            ) from e

        methods = document.code_challenge_methods_supported
        if methods is not None and "S256" not in methods:
            logger.warning(
                f"Authorization server {document.issuer} does not advertise S256 "
                "PKCE support; attempting S256 anyway"
            )
        return document

