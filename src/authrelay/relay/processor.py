"""Per-request relay logic: authenticate, forward, retry once on 401."""

from __future__ import annotations

import logging
from typing import Any

from authrelay.auth.client.models.errors import OAuth2Error
from authrelay.auth.client.oauth_client import OAuth2Client
from authrelay.relay.errors import (
    RemoteStatusError,
    RemoteTransportError,
    RemoteUnauthorizedError,
)
from authrelay.relay.forwarder import RemoteForwarder
from authrelay.relay.messages import (
    AUTH_ERROR,
    FORWARD_ERROR,
    error_response,
    request_id_of,
)

logger = logging.getLogger(__name__)


class RelayProcessor:
    """Turns one inbound payload into the response to write back.

    Every failure becomes a JSON-RPC error response carrying the request's
    id; nothing raised while handling a payload escapes this class.
    """

    def __init__(self, auth: OAuth2Client, forwarder: RemoteForwarder):
        self._auth = auth
        self._forwarder = forwarder

    async def handle_message(self, payload: Any) -> Any | None:
        """Forward ``payload`` and return the reply to write, if any.

        Returns:
            The remote's JSON body, an error response, or None when the
            remote sent nothing back
        """
        request_id = request_id_of(payload)

        try:
            return await self._authenticate_and_forward(payload)
        except OAuth2Error as e:
            logger.error(f"Authentication failed for request {request_id!r}: {e}")
            return error_response(request_id, AUTH_ERROR, str(e))
        except RemoteUnauthorizedError:
            logger.error(
                f"Remote rejected request {request_id!r} again after re-authentication"
            )
            return error_response(
                request_id,
                AUTH_ERROR,
                "Remote rejected the access token after re-authentication",
            )
        except RemoteStatusError as e:
            logger.error(f"Request {request_id!r} failed: {e}")
            return error_response(request_id, AUTH_ERROR, str(e))
        except RemoteTransportError as e:
            logger.error(f"Request {request_id!r} failed: {e}")
            return error_response(request_id, FORWARD_ERROR, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error relaying request {request_id!r}")
            return error_response(request_id, FORWARD_ERROR, f"Relay error: {e}")

    async def _authenticate_and_forward(self, payload: Any) -> Any | None:
        token = await self._auth.authenticate()
        try:
            return await self._forwarder.forward(payload, token.access_token)
        except RemoteUnauthorizedError:
            logger.info("Remote rejected the access token - re-authenticating once")

        token = await self._auth.authenticate(stale_access_token=token.access_token)
        return await self._forwarder.forward(payload, token.access_token)
