"""Complete OAuth 2.1 client orchestration for the relay.

Coordinates discovery, registration and the token lifecycle so callers can
ask for a usable access token in one call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import httpx

from authrelay.auth.client.lifecycle import TokenLifecycleManager
from authrelay.auth.client.models.registration import ClientMetadata
from authrelay.auth.client.models.tokens import TokenRecord
from authrelay.auth.client.primitives.browser import open_in_browser
from authrelay.auth.client.primitives.discovery import OAuth2Discovery
from authrelay.auth.client.services.flow import OAuth2FlowManager
from authrelay.auth.client.services.registration import OAuth2Registration
from authrelay.auth.client.services.tokens import OAuth2TokenManager
from authrelay.config import RelayConfig
from authrelay.storage.cache import KeyValueCache

logger = logging.getLogger(__name__)


class OAuth2Client:
    """OAuth 2.1 client for the relay's remote endpoint.

    Owns the service components and the HTTP client they share. The
    key-value cache is the source of truth: every call re-reads it.
    """

    def __init__(
        self,
        remote_url: str,
        cache: KeyValueCache,
        client_metadata: ClientMetadata,
        redirect_uri: str,
        scope: str | None = None,
        timeout: float = 30.0,
        login_timeout: float = 300.0,
        open_url: Callable[[str], bool] = open_in_browser,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize OAuth client.

        Args:
            remote_url: Remote endpoint requiring bearer authentication
            cache: Key-value cache for discovery, client and token records
            client_metadata: Payload for dynamic client registration
            redirect_uri: Loopback redirect URI for the login callback
            scope: Space-separated scopes to request
            timeout: HTTP request timeout
            login_timeout: Seconds to wait for the login callback
            open_url: Opens the authorization URL for the user
            http_client: Shared client; one is created when omitted
            clock: Source of the current epoch time
        """
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

        # Initialize service components
        self.discovery = OAuth2Discovery(
            remote_url, cache, timeout=timeout, http_client=self._http_client
        )
        self.registration = OAuth2Registration(
            cache, client_metadata, timeout=timeout, http_client=self._http_client
        )
        self.token_manager = OAuth2TokenManager(
            cache, timeout=timeout, http_client=self._http_client, clock=clock
        )
        self.flow_manager = OAuth2FlowManager(
            self.token_manager,
            redirect_uri,
            scope=scope,
            open_url=open_url,
            login_timeout=login_timeout,
        )
        self.lifecycle = TokenLifecycleManager(
            self.token_manager, self.flow_manager, clock=clock
        )

    @classmethod
    def from_config(
        cls,
        config: RelayConfig,
        cache: KeyValueCache,
        http_client: httpx.AsyncClient | None = None,
        open_url: Callable[[str], bool] = open_in_browser,
    ) -> OAuth2Client:
        client_metadata = ClientMetadata(
            client_name=config.client_name,
            redirect_uris=[config.redirect_uri],
            scope=config.scopes or None,
        )
        return cls(
            remote_url=config.remote_url,
            cache=cache,
            client_metadata=client_metadata,
            redirect_uri=config.redirect_uri,
            scope=config.scopes or None,
            timeout=config.http_timeout,
            login_timeout=config.login_timeout,
            open_url=open_url,
            http_client=http_client,
        )

    async def authenticate(self, stale_access_token: str | None = None) -> TokenRecord:
        """Resolve discovery, ensure a client and return a usable token.

        Args:
            stale_access_token: Access token the remote just rejected

        Raises:
            DiscoveryError: If the authorization server cannot be resolved
            RegistrationError: If no client registration can be obtained
            OAuth2Error: If no token can be obtained
        """
        document = await self.discovery.resolve()
        client = await self.registration.ensure_client(document)
        return await self.lifecycle.ensure_token(
            document, client, stale_access_token=stale_access_token
        )

    async def close(self) -> None:
        """Close the shared HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
