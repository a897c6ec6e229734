"""Tests for the interactive authorization code flow."""

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest

from authrelay.auth.client.models.errors import LoginTimeoutError
from authrelay.auth.client.models.security import PKCEParameters
from authrelay.auth.client.models.tokens import TokenRecord
from authrelay.auth.client.primitives.pkce import compute_code_challenge
from authrelay.auth.client.services.flow import OAuth2FlowManager

REDIRECT_URI = "http://127.0.0.1:38573/callback"


class FakeListener:
    """Stands in for the callback listener; answers with a fixed outcome."""

    instances: list["FakeListener"] = []

    def __init__(self, redirect_uri, expected_state, code="auth-code", error=None):
        self.redirect_uri = redirect_uri
        self.expected_state = expected_state
        self.code = code
        self.error = error
        self.entered = False
        self.exited = False
        FakeListener.instances.append(self)

    async def wait_for_code(self, timeout=None):
        if self.error is not None:
            raise self.error
        return self.code

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, *exc_info):
        self.exited = True


class TestAuthorizationURL:
    def test_url_carries_pkce_and_state(self, document, client):
        # Arrange
        flow_manager = OAuth2FlowManager(
            MagicMock(), REDIRECT_URI, scope="openid profile mcp"
        )
        verifier = "a" * 64
        pkce_params = PKCEParameters(
            code_verifier=verifier,
            code_challenge=compute_code_challenge(verifier),
            state="state-xyz",
        )

        # Act
        url = flow_manager.build_authorization_url(document, client, pkce_params)

        # Assert
        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://idp.example.com/authorize"
        )
        assert params == {
            "response_type": ["code"],
            "client_id": ["client-123"],
            "redirect_uri": [REDIRECT_URI],
            "scope": ["openid profile mcp"],
            "code_challenge_method": ["S256"],
            "code_challenge": [compute_code_challenge(verifier)],
            "state": ["state-xyz"],
        }

    def test_existing_query_is_extended(self, document, client):
        flow_manager = OAuth2FlowManager(MagicMock(), REDIRECT_URI)
        document = document.model_copy(
            update={"authorization_endpoint": "https://idp.example.com/authorize?tenant=acme"}
        )
        pkce_params = PKCEParameters(
            code_verifier="b" * 64,
            code_challenge=compute_code_challenge("b" * 64),
            state="s",
        )

        url = flow_manager.build_authorization_url(document, client, pkce_params)

        assert url.startswith("https://idp.example.com/authorize?tenant=acme&response_type=code")
        assert "scope=" not in url


class TestLogin:
    def setup_method(self):
        # Arrange
        FakeListener.instances = []
        self.token_manager = MagicMock()
        self.token_manager.exchange_code_for_token = AsyncMock(
            return_value=TokenRecord(access_token="access-1", expires_at=2_000_000_000)
        )
        self.opened_urls: list[str] = []

    def make_flow_manager(self, listener_factory=FakeListener) -> OAuth2FlowManager:
        return OAuth2FlowManager(
            self.token_manager,
            REDIRECT_URI,
            scope="openid",
            open_url=lambda url: self.opened_urls.append(url) or True,
            login_timeout=5,
            listener_factory=listener_factory,
        )

    async def test_login_exchanges_code_with_matching_verifier(self, document, client):
        # Arrange
        flow_manager = self.make_flow_manager()

        # Act
        record = await flow_manager.login(document, client)

        # Assert
        assert record.access_token == "access-1"
        listener = FakeListener.instances[0]
        assert listener.entered and listener.exited
        assert listener.redirect_uri == REDIRECT_URI

        (url,) = self.opened_urls
        params = parse_qs(urlparse(url).query)
        assert params["state"] == [listener.expected_state]

        kwargs = self.token_manager.exchange_code_for_token.call_args.kwargs
        assert kwargs["code"] == "auth-code"
        assert kwargs["redirect_uri"] == REDIRECT_URI
        assert compute_code_challenge(kwargs["code_verifier"]) == (
            params["code_challenge"][0]
        )

    async def test_each_login_uses_fresh_parameters(self, document, client):
        flow_manager = self.make_flow_manager()

        await flow_manager.login(document, client)
        await flow_manager.login(document, client)

        first, second = FakeListener.instances
        assert first.expected_state != second.expected_state
        verifiers = [
            c.kwargs["code_verifier"]
            for c in self.token_manager.exchange_code_for_token.call_args_list
        ]
        assert verifiers[0] != verifiers[1]

    async def test_callback_failure_skips_exchange(self, document, client):
        # Arrange
        def failing_listener(redirect_uri, state):
            return FakeListener(
                redirect_uri, state, error=LoginTimeoutError("no callback")
            )

        flow_manager = self.make_flow_manager(listener_factory=failing_listener)

        # Act & Assert
        with pytest.raises(LoginTimeoutError):
            await flow_manager.login(document, client)

        assert FakeListener.instances[0].exited
        self.token_manager.exchange_code_for_token.assert_not_awaited()
