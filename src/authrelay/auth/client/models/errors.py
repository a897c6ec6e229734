"""Exception hierarchy for obtaining the relay's access token.

One type per stage of the token lifecycle. The relay treats a failed
refresh as recoverable and falls back to an interactive login; everything
else ends up in the error response for the request that needed the token.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for every authentication failure."""

    pass


class DiscoveryError(OAuth2Error):
    """Raised when the remote's authorization server cannot be resolved."""

    pass


class ProtectedResourceMetadataError(DiscoveryError):
    """Raised when the remote's resource metadata is unreachable or unusable."""

    pass


class AuthorizationServerMetadataError(DiscoveryError):
    """Raised when no usable authorization server metadata is found."""

    pass


class RegistrationError(OAuth2Error):
    """Raised when no client registration can be obtained for the issuer."""

    pass


class TokenError(OAuth2Error):
    """Raised when the token endpoint does not issue a token."""

    pass


class TokenRefreshError(TokenError):
    pass


class TokenExchangeError(TokenError):
    pass


class AuthorizationError(OAuth2Error):
    """Raised when the interactive login does not produce a code."""

    pass


class LoginTimeoutError(AuthorizationError):
    """Raised when no callback arrives before the login deadline."""

    pass


class PKCEError(OAuth2Error):
    pass


class AuthorizationCallbackError(OAuth2Error):
    """Raised when the request hitting the callback listener is unusable.

    The fault lies with whoever made the request (the authorization server
    or something else on the loopback interface), not with the listener.
    """

    pass


class StateValidationError(AuthorizationCallbackError):
    """Raised when the callback's state is missing or does not match.

    Either the provider dropped the parameter or the callback did not come
    from the login this listener was started for.
    """

    pass
