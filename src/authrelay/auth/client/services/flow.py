"""OAuth 2.1 interactive authorization flow.

Runs the authorization code flow with PKCE end to end: generates the
single-use PKCE parameters and state, starts the local callback listener,
sends the user to the authorization endpoint and exchanges the returned
code for tokens.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from authrelay.auth.client.models.discovery import DiscoveryDocument
from authrelay.auth.client.models.flow import AuthorizationRequest
from authrelay.auth.client.models.registration import ClientRegistration
from authrelay.auth.client.models.security import PKCEParameters
from authrelay.auth.client.models.tokens import TokenRecord
from authrelay.auth.client.primitives.browser import open_in_browser
from authrelay.auth.client.primitives.callback import CallbackListener
from authrelay.auth.client.primitives.pkce import PKCEManager
from authrelay.auth.client.services.tokens import OAuth2TokenManager

logger = logging.getLogger(__name__)


class OAuth2FlowManager:
    """Orchestrates interactive OAuth 2.1 logins for the relay.

    Only one login runs at a time: the redirect URI names a fixed local
    port, so a second login waits for the first to finish instead of
    binding the same port again.
    """

    def __init__(
        self,
        token_manager: OAuth2TokenManager,
        redirect_uri: str,
        scope: str | None = None,
        open_url: Callable[[str], bool] = open_in_browser,
        login_timeout: float = 300.0,
        listener_factory: Callable[[str, str], CallbackListener] = CallbackListener,
    ):
        """Initialize the OAuth flow manager.

        Args:
            token_manager: Performs the code exchange and persists tokens
            redirect_uri: Loopback URI the listener binds and the server
                redirects to
            scope: Space-separated scopes to request
            open_url: Opens the authorization URL for the user
            login_timeout: Seconds to wait for the callback
            listener_factory: Builds the callback listener for one attempt
        """
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.login_timeout = login_timeout
        self._token_manager = token_manager
        self._open_url = open_url
        self._listener_factory = listener_factory
        self._pkce_manager = PKCEManager()
        self._login_lock = asyncio.Lock()

    def build_authorization_url(
        self,
        document: DiscoveryDocument,
        client: ClientRegistration,
        pkce_params: PKCEParameters,
    ) -> str:
        auth_request = AuthorizationRequest(
            authorization_endpoint=document.authorization_endpoint,
            client_id=client.client_id,
            redirect_uri=self.redirect_uri,
            code_challenge=pkce_params.code_challenge,
            code_challenge_method=pkce_params.code_challenge_method,
            state=pkce_params.state,
            scope=self.scope,
        )
        return auth_request.build_authorization_url()

    async def login(
        self, document: DiscoveryDocument, client: ClientRegistration
    ) -> TokenRecord:
        """Run one interactive login and return the resulting tokens.

        Args:
            document: Resolved discovery document
            client: Registration for the document's issuer

        Returns:
            The newly persisted token record

        Raises:
            AuthorizationError: If the listener cannot start, the provider
                denies access or the callback times out
            AuthorizationCallbackError: If the callback is missing the code
                or carries the wrong state
            TokenExchangeError: If the code cannot be exchanged
        """
        if self._login_lock.locked():
            logger.info("Waiting for the login already in progress")

        async with self._login_lock:
            pkce_params = self._pkce_manager.generate_parameters()
            authorization_url = self.build_authorization_url(
                document, client, pkce_params
            )

            async with self._listener_factory(
                self.redirect_uri, pkce_params.state
            ) as listener:
                logger.info(f"Opening browser for login: {authorization_url}")
                await asyncio.to_thread(self._open_url, authorization_url)
                code = await listener.wait_for_code(self.login_timeout)

            logger.info("Authorization code received - exchanging for tokens")
            return await self._token_manager.exchange_code_for_token(
                document,
                client,
                code=code,
                code_verifier=pkce_params.code_verifier,
                redirect_uri=self.redirect_uri,
            )
