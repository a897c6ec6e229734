"""PKCE (Proof Key for Code Exchange) manager for OAuth 2.1 security.

Implements RFC 7636 parameter generation to prevent authorization code
interception attacks. This is required for OAuth 2.1 public clients.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

from authrelay.auth.client.models.errors import PKCEError
from authrelay.auth.client.models.security import PKCEParameters
from authrelay.auth.client.services.security import generate_state


class PKCEManager:
    """Generates fresh PKCE parameters for each authorization attempt.

    This implementation follows RFC 7636 requirements:
    - Uses S256 code challenge method (SHA256 + base64url)
    - Generates cryptographically secure code verifiers
    - Pairs every verifier with a fresh state parameter for CSRF protection
    """

    def generate_parameters(self) -> PKCEParameters:
        """Generate new PKCE parameters for an authorization flow.

        Returns:
            PKCEParameters: Immutable parameters for the authorization flow

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            code_verifier = self._generate_code_verifier()
            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=compute_code_challenge(code_verifier),
                code_challenge_method="S256",
                state=generate_state(),
            )
        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e

    def _generate_code_verifier(self) -> str:
        """Generate a cryptographically secure code verifier.

        RFC 7636 Section 4.1: code verifier must be 43-128 characters long
        and use only unreserved characters:
            [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

        Returns:
            A 128-character code verifier (maximum length for best security)
        """
        alphabet = string.ascii_letters + string.digits + "-._~"
        return "".join(secrets.choice(alphabet) for _ in range(128))


def compute_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    with the padding stripped.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
