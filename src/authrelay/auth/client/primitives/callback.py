"""Local HTTP listener receiving the OAuth authorization callback.

One listener serves one login attempt. It binds the redirect URI's host and
port, accepts the first request to the redirect path, resolves the pending
login with the authorization code (or fails it), and is torn down when the
login finishes either way.
"""

from __future__ import annotations

import asyncio
import html
import logging
import socket
from types import TracebackType
from typing import Self
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, PlainTextResponse, Response
from starlette.routing import Route

from authrelay.auth.client.models.errors import (
    AuthorizationCallbackError,
    AuthorizationError,
    LoginTimeoutError,
    OAuth2Error,
)
from authrelay.auth.client.models.flow import AuthorizationResponse
from authrelay.auth.client.services.security import validate_state

logger = logging.getLogger(__name__)

# Non-GET requests to the callback path are answered 404, not 405
_ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _page(title: str, message: str) -> str:
    return (
        "<!doctype html><html><head><meta charset='utf-8'>"
        f"<title>{html.escape(title)}</title></head>"
        f"<body><h2>{html.escape(title)}</h2><p>{html.escape(message)}</p>"
        "</body></html>"
    )


class CallbackListener:
    """Single-use listener for the authorization redirect.

    Usage::

        async with CallbackListener(redirect_uri, state) as listener:
            open_url(authorization_url)
            code = await listener.wait_for_code(timeout=300)

    Must be created inside a running event loop.
    """

    def __init__(self, redirect_uri: str, expected_state: str) -> None:
        parsed = urlparse(redirect_uri)
        self.host = parsed.hostname or "127.0.0.1"
        self.port = parsed.port or (443 if parsed.scheme == "https" else 80)
        self.path = parsed.path or "/"

        self._expected_state = expected_state
        self._result: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        self.app = Starlette(
            routes=[Route(self.path, self._handle_callback, methods=_ANY_METHOD)]
        )
        # Anything but the exact callback path is a 404
        self.app.router.redirect_slashes = False

        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None

    @property
    def completed(self) -> bool:
        """True once a callback has resolved or failed the login."""
        return self._result.done()

    async def start(self) -> None:
        """Bind the callback address and start serving.

        Raises:
            AuthorizationError: If the address cannot be bound
        """
        sock = self._bind()
        config = uvicorn.Config(
            app=self.app,
            log_level="warning",
            lifespan="off",
            access_log=False,
            timeout_graceful_shutdown=2,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[sock]), name="oauth-callback-listener"
        )

        while not self._server.started:
            if self._serve_task.done():
                await self._serve_task
                raise AuthorizationError("Callback listener exited during startup")
            await asyncio.sleep(0.01)

        logger.debug(f"Listening for OAuth callback on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Shut the listener down. Safe to call more than once."""
        if self._server is None or self._serve_task is None:
            return

        self._server.should_exit = True
        try:
            await self._serve_task
        except Exception as e:
            logger.warning(f"Callback listener did not shut down cleanly: {e}")
        finally:
            self._server = None
            self._serve_task = None
            logger.debug("Callback listener stopped")

    async def wait_for_code(self, timeout: float | None = None) -> str:
        """Wait for the callback and return the authorization code.

        Raises:
            LoginTimeoutError: If no callback arrives within ``timeout``
            AuthorizationError: If the provider reported an error
            AuthorizationCallbackError: If the callback lacked a code or
                carried the wrong state
        """
        try:
            return await asyncio.wait_for(self._result, timeout)
        except asyncio.TimeoutError as e:
            raise LoginTimeoutError(
                f"No authorization callback received within {timeout:.0f}s"
            ) from e

    async def _handle_callback(self, request: Request) -> Response:
        if request.method != "GET":
            return PlainTextResponse("Not Found", status_code=404)

        if self._result.done():
            return HTMLResponse(
                _page("Login already handled", "You can close this window."),
                status_code=400,
            )

        params = request.query_params
        auth_response = AuthorizationResponse(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
            error_description=params.get("error_description"),
        )

        try:
            self._validate(auth_response)
        except OAuth2Error as e:
            logger.warning(f"Rejected authorization callback: {e}")
            self._result.set_exception(e)
            return HTMLResponse(_page("Login failed", str(e)), status_code=400)

        self._result.set_result(auth_response.code)
        return HTMLResponse(
            _page("Login complete", "You can close this window."), status_code=200
        )

    def _validate(self, auth_response: AuthorizationResponse) -> None:
        # User/server denied authorization
        if auth_response.is_error():
            detail = auth_response.error
            if auth_response.error_description:
                detail = f"{detail} ({auth_response.error_description})"
            raise AuthorizationError(f"Authorization failed: {detail}")

        validate_state(self._expected_state, auth_response.state)

        if not auth_response.code:
            raise AuthorizationCallbackError("Callback missing authorization code")

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise AuthorizationError(
                f"Cannot listen for the OAuth callback on {self.host}:{self.port}: {e}"
            ) from e
        return sock

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
