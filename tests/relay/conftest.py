import json
from collections import defaultdict

import httpx
import pytest

ISSUER = "https://idp.example.com"


class FakeRemote:
    """Remote endpoint plus its authorization server, behind one MockTransport.

    Remote replies are queued per test; anything unqueued echoes the request
    as a JSON-RPC result.
    """

    def __init__(self, registration_endpoint: bool = True):
        self.registration_endpoint = registration_endpoint
        self.remote_replies: list[httpx.Response] = []
        self.token_replies: list[httpx.Response] = []
        self.requests: dict[str, list[httpx.Request]] = defaultdict(list)

    def calls(self, path: str) -> list[httpx.Request]:
        return self.requests[path]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = f"{request.url.host}{request.url.path}"
        self.requests[path].append(request)

        if path == "mcp.example.com/.well-known/oauth-protected-resource":
            return httpx.Response(200, json={"authorization_servers": [ISSUER]})
        if path == "idp.example.com/.well-known/oauth-authorization-server":
            metadata = {
                "issuer": ISSUER,
                "authorization_endpoint": f"{ISSUER}/authorize",
                "token_endpoint": f"{ISSUER}/token",
                "code_challenge_methods_supported": ["S256"],
            }
            if self.registration_endpoint:
                metadata["registration_endpoint"] = f"{ISSUER}/register"
            return httpx.Response(200, json=metadata)
        if path == "idp.example.com/register":
            return httpx.Response(201, json={"client_id": "client-123"})
        if path == "idp.example.com/token":
            if self.token_replies:
                return self.token_replies.pop(0)
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{len(self.calls(path))}",
                    "refresh_token": "refresh-1",
                    "expires_in": 3600,
                },
            )
        if path == "mcp.example.com/v1/mcp":
            if self.remote_replies:
                return self.remote_replies.pop(0)
            body = json.loads(request.content)
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": body.get("id"), "result": {}}
            )
        return httpx.Response(404)


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()
