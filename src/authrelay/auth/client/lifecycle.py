"""Token lifecycle decisions: reuse, refresh, or log in again."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from authrelay.auth.client.models.discovery import DiscoveryDocument
from authrelay.auth.client.models.errors import TokenError
from authrelay.auth.client.models.registration import ClientRegistration
from authrelay.auth.client.models.tokens import TokenRecord
from authrelay.auth.client.services.flow import OAuth2FlowManager
from authrelay.auth.client.services.tokens import OAuth2TokenManager

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """Returns a usable access token with as little user interruption as possible.

    Decision order against the cached token record:
    1. a token valid for more than the freshness window is reused as-is;
    2. otherwise a refresh token, if present, is tried silently;
    3. otherwise (or if refresh fails) an interactive login runs.

    Steps 2 and 3 run under one lock, and the cache is re-read after the
    lock is acquired, so concurrent callers share a single refresh or login.
    """

    def __init__(
        self,
        token_manager: OAuth2TokenManager,
        flow_manager: OAuth2FlowManager,
        clock: Callable[[], float] = time.time,
    ):
        self._token_manager = token_manager
        self._flow_manager = flow_manager
        self._clock = clock
        self._lock = asyncio.Lock()

    async def ensure_token(
        self,
        document: DiscoveryDocument,
        client: ClientRegistration,
        stale_access_token: str | None = None,
    ) -> TokenRecord:
        """Return a token record whose access token can be used now.

        Args:
            document: Resolved discovery document
            client: Registration for the document's issuer
            stale_access_token: An access token the remote just rejected.
                A cached token equal to it is never reused.

        Raises:
            OAuth2Error: If the interactive login fails
        """
        token = self._usable(self._token_manager.load_cached(), stale_access_token)
        if token is not None:
            return token

        async with self._lock:
            cached = self._token_manager.load_cached()
            token = self._usable(cached, stale_access_token)
            if token is not None:
                logger.debug("Token was renewed by a concurrent request")
                return token

            if cached is not None and cached.can_refresh():
                try:
                    token = await self._token_manager.refresh_access_token(
                        document, client, cached.refresh_token
                    )
                    logger.info("Refreshed access token")
                    return token
                except TokenError as e:
                    logger.warning(f"Token refresh failed; interactive login next: {e}")

            return await self._flow_manager.login(document, client)

    def _usable(
        self, token: TokenRecord | None, stale_access_token: str | None
    ) -> TokenRecord | None:
        if token is None:
            return None
        if stale_access_token is not None and token.access_token == stale_access_token:
            return None
        if not token.is_fresh(self._clock()):
            return None
        return token
