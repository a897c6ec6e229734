import pytest

from authrelay.auth.client.models.discovery import DiscoveryDocument
from authrelay.auth.client.models.registration import ClientRegistration


@pytest.fixture
def document() -> DiscoveryDocument:
    return DiscoveryDocument(
        issuer="https://idp.example.com",
        authorization_endpoint="https://idp.example.com/authorize",
        token_endpoint="https://idp.example.com/token",
        registration_endpoint="https://idp.example.com/register",
    )


@pytest.fixture
def client() -> ClientRegistration:
    return ClientRegistration(
        issuer="https://idp.example.com",
        client_id="client-123",
        redirect_uris=["http://127.0.0.1:38573/callback"],
    )
