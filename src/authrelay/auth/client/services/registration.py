"""OAuth 2.1 dynamic client registration service.

Implements RFC 7591 (OAuth 2.0 Dynamic Client Registration Protocol)
to obtain a public client identity for the relay, reusing a cached
registration for as long as the issuer stays the same.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from authrelay.auth.client.models.discovery import DiscoveryDocument
from authrelay.auth.client.models.errors import RegistrationError
from authrelay.auth.client.models.registration import (
    ClientMetadata,
    ClientRegistration,
)
from authrelay.storage.cache import CLIENT_KEY, KeyValueCache

logger = logging.getLogger(__name__)


class OAuth2Registration:
    """Obtains or reuses the relay's OAuth client registration.

    There is no manual client-provisioning fallback: without a cached
    registration for the current issuer, the authorization server must
    advertise a registration endpoint. Concurrent callers share one
    registration: the cache is re-read under a lock before registering.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        client_metadata: ClientMetadata,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OAuth registration.

        Args:
            cache: Key-value cache holding the registration record
            client_metadata: Fixed registration payload sent to the server
            timeout: HTTP request timeout in seconds
            http_client: Shared client; one is created when omitted
        """
        self.client_metadata = client_metadata
        self.timeout = timeout
        self._cache = cache
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._lock = asyncio.Lock()

    async def ensure_client(self, document: DiscoveryDocument) -> ClientRegistration:
        """Return a registration valid for the document's issuer.

        Args:
            document: Resolved discovery document

        Returns:
            Cached registration when its issuer matches, else a new one

        Raises:
            RegistrationError: If no registration endpoint is advertised, or
                registration fails
        """
        cached = self._load_cached()
        if cached is not None and cached.matches(document.issuer):
            return cached

        async with self._lock:
            cached = self._load_cached()
            if cached is not None:
                if cached.matches(document.issuer):
                    logger.debug(f"Client {cached.client_id} was registered concurrently")
                    return cached
                logger.info(
                    f"Cached client {cached.client_id} belongs to issuer "
                    f"{cached.issuer}; registering with {document.issuer}"
                )

            if not document.registration_endpoint:
                raise RegistrationError(
                    f"Authorization server {document.issuer} does not advertise a "
                    "registration_endpoint; dynamic client registration is required"
                )

            registration = await self.register_client(
                document.registration_endpoint, document.issuer
            )
            self._cache.put(CLIENT_KEY, registration.model_dump(mode="json"))
            return registration

    async def register_client(
        self, registration_endpoint: str, issuer: str
    ) -> ClientRegistration:
        """Register a new public client with the authorization server.

        Args:
            registration_endpoint: Client registration endpoint URL
            issuer: Issuer the registration will be bound to

        Returns:
            The registration record to persist

        Raises:
            RegistrationError: If registration fails
        """
        logger.debug(f"Registering client at {registration_endpoint}")

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = await self._http_client.post(
                registration_endpoint,
                json=self.client_metadata.model_dump(exclude_none=True, mode="json"),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise RegistrationError(f"HTTP error during registration: {e}") from e

        if not 200 <= response.status_code < 300:
            self._handle_registration_error(response)

        return self._handle_successful_registration(
            response, registration_endpoint, issuer
        )

    def _handle_successful_registration(
        self, response: httpx.Response, registration_endpoint: str, issuer: str
    ) -> ClientRegistration:
        """Build the registration record from a 2xx response.

        Raises:
            RegistrationError: If the response lacks a client_id
        """
        try:
            response_data = response.json()
        except ValueError as e:
            raise RegistrationError(f"Invalid registration response format: {e}") from e

        if not isinstance(response_data, dict) or not response_data.get("client_id"):
            raise RegistrationError("Registration response missing required client_id")

        try:
            registration = ClientRegistration(
                issuer=issuer,
                client_id=response_data["client_id"],
                redirect_uris=response_data.get("redirect_uris")
                or self.client_metadata.redirect_uris,
            )
        except ValidationError as e:
            raise RegistrationError(f"Invalid registration response format: {e}") from e

        logger.info(
            f"Successfully registered client {registration.client_id} "
            f"at {registration_endpoint}"
        )
        return registration

    def _handle_registration_error(self, response: httpx.Response) -> None:
        """Raise a RegistrationError describing a non-2xx response.

        Raises:
            RegistrationError: Always raises with appropriate error message
        """
        try:
            error_data = response.json()
            error_code = error_data.get("error", "unknown_error")
            error_description = error_data.get(
                "error_description", "No description provided"
            )
        except (ValueError, AttributeError):
            # Fallback for non-JSON error responses
            raise RegistrationError(
                f"Registration failed with HTTP {response.status_code}: {response.text}"
            )

        logger.error(
            f"Client registration failed with {response.status_code}: "
            f"{error_code} - {error_description}"
        )

        # Map common OAuth error codes to more specific messages
        if error_code == "invalid_client_metadata":
            raise RegistrationError(f"Invalid client metadata: {error_description}")
        elif error_code == "invalid_redirect_uri":
            raise RegistrationError(f"Invalid redirect URI: {error_description}")
        elif response.status_code == 401:
            raise RegistrationError(
                "Registration endpoint requires authentication (initial access token)"
            )
        elif response.status_code == 403:
            raise RegistrationError(
                "Registration forbidden - check authorization server policy"
            )
        else:
            raise RegistrationError(
                f"Registration failed ({response.status_code}): {error_code} - "
                f"{error_description}"
            )

    def _load_cached(self) -> ClientRegistration | None:
        record = self._cache.get(CLIENT_KEY)
        if record is None:
            return None
        try:
            return ClientRegistration.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Discarding invalid cached client registration: {e}")
            return None

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
