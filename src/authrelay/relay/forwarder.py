"""Forwards relayed payloads to the remote endpoint with a bearer token."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from authrelay.relay.errors import (
    RemoteStatusError,
    RemoteTransportError,
    RemoteUnauthorizedError,
)

logger = logging.getLogger(__name__)


class RemoteForwarder:
    """POSTs JSON payloads to the remote endpoint."""

    def __init__(
        self,
        remote_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.remote_url = remote_url
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def forward(self, payload: Any, access_token: str) -> Any | None:
        """Send ``payload`` and return the decoded JSON reply.

        Returns:
            The remote's JSON body, or None when it sent no body (as for
            notifications)

        Raises:
            RemoteUnauthorizedError: On HTTP 401
            RemoteStatusError: On any other non-2xx status
            RemoteTransportError: On network failure or a non-JSON body
        """
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
        }

        try:
            response = await self._http_client.post(
                self.remote_url, json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise RemoteTransportError(
                f"Request to {self.remote_url} failed: {e}"
            ) from e

        logger.debug(f"Remote answered {response.status_code}")

        if response.status_code == 401:
            raise RemoteUnauthorizedError("Remote rejected the access token (401)")
        if not 200 <= response.status_code < 300:
            raise RemoteStatusError(response.status_code, response.text)

        if response.status_code in (202, 204) or not response.content.strip():
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RemoteTransportError(
                f"Remote returned a non-JSON body "
                f"({response.headers.get('content-type', 'unknown type')})"
            ) from e

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
