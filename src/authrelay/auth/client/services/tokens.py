"""OAuth 2.1 token exchange and refresh service.

Implements the RFC 6749 token endpoint interactions with PKCE (RFC 7636)
for a public client, and persists every token it obtains.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import httpx
from pydantic import ValidationError

from authrelay.auth.client.models.discovery import DiscoveryDocument
from authrelay.auth.client.models.errors import (
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from authrelay.auth.client.models.registration import ClientRegistration
from authrelay.auth.client.models.tokens import (
    RefreshTokenRequest,
    TokenRecord,
    TokenRequest,
    TokenResponse,
)
from authrelay.storage.cache import TOKENS_KEY, KeyValueCache

logger = logging.getLogger(__name__)


class OAuth2TokenManager:
    """Manages OAuth 2.1 token exchange and refresh operations.

    Handles the token endpoint interactions including:
    - Authorization code to access token exchange (RFC 6749 Section 4.1.3)
    - Access token refresh (RFC 6749 Section 6)
    - PKCE code verification (RFC 7636)

    Every successful exchange replaces the cached token record.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize OAuth token manager.

        Args:
            cache: Key-value cache holding the token record
            timeout: HTTP request timeout in seconds
            http_client: Shared client; one is created when omitted
            clock: Source of the current epoch time
        """
        self.timeout = timeout
        self._cache = cache
        self._clock = clock
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    def load_cached(self) -> TokenRecord | None:
        """Read the current token record from the cache."""
        record = self._cache.get(TOKENS_KEY)
        if record is None:
            return None
        try:
            return TokenRecord.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Discarding invalid cached token record: {e}")
            return None

    async def exchange_code_for_token(
        self,
        document: DiscoveryDocument,
        client: ClientRegistration,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> TokenRecord:
        """Exchange an authorization code for tokens and persist them.

        Raises:
            TokenExchangeError: If the token endpoint rejects the code or
                cannot be reached
        """
        token_request = TokenRequest(
            token_endpoint=document.token_endpoint,
            code=code,
            redirect_uri=redirect_uri,
            client_id=client.client_id,
            code_verifier=code_verifier,
        )
        logger.debug(f"Exchanging authorization code at {document.token_endpoint}")

        response = await self._request_token(
            token_request.token_endpoint,
            token_request.to_form_data(),
            TokenExchangeError,
        )
        return self._store(response)

    async def refresh_access_token(
        self,
        document: DiscoveryDocument,
        client: ClientRegistration,
        refresh_token: str,
    ) -> TokenRecord:
        """Obtain a new access token with a refresh token and persist it.

        Raises:
            TokenRefreshError: If the token endpoint rejects the refresh or
                cannot be reached
        """
        refresh_request = RefreshTokenRequest(
            token_endpoint=document.token_endpoint,
            refresh_token=refresh_token,
            client_id=client.client_id,
        )
        logger.debug(f"Refreshing access token at {document.token_endpoint}")

        response = await self._request_token(
            refresh_request.token_endpoint,
            refresh_request.to_form_data(),
            TokenRefreshError,
        )
        return self._store(response, previous_refresh_token=refresh_token)

    async def _request_token(
        self,
        token_endpoint: str,
        form_data: dict[str, str],
        error_cls: type[TokenError],
    ) -> TokenResponse:
        """POST a form-encoded token request and parse the response.

        Raises:
            error_cls: On network errors, non-200 responses or responses
                without an access token
        """
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}"
        )

        try:
            response = await self._http_client.post(
                token_endpoint, data=form_data, headers=headers
            )
        except httpx.HTTPError as e:
            raise error_cls(f"HTTP error at token endpoint: {e}") from e

        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise error_cls(
                f"Invalid token response ({response.status_code}): {e}"
            ) from e

        if response.status_code != 200 or not token_response.is_success():
            logger.warning(
                f"Token request failed with {response.status_code}: "
                f"{token_response.describe_error()}"
            )
            raise error_cls(
                f"Token endpoint returned {response.status_code}: "
                f"{token_response.describe_error()}"
            )

        return token_response

    def _store(
        self, response: TokenResponse, previous_refresh_token: str | None = None
    ) -> TokenRecord:
        record = response.to_token_record(
            now=self._clock(), previous_refresh_token=previous_refresh_token
        )
        self._cache.put(TOKENS_KEY, record.model_dump(mode="json"))
        logger.info(f"Stored access token valid until {record.expires_at}")
        return record

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
