"""Exceptions raised by the authentication package"""

from typing import Optional


class OAuthError(Exception):
    """Base class for OAuth login and refresh failures"""


class CallbackPortInUseError(OAuthError):
    """The loopback callback listener could not bind its port"""

    def __init__(self, port: int):
        self.port = port
        super().__init__(f"Failed to bind to port {port}. Is another process using it?")


class AuthorizationTimeoutError(OAuthError):
    """No authorization code arrived before the callback deadline"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__("Authorization timed out. Please try again.")


class TokenEndpointError(OAuthError):
    """The token endpoint rejected a request or could not be reached

    Attributes:
        status: HTTP status code, or None for transport/parse failures
        body: Raw response body as returned by the server
    """

    action = "Token request"

    def __init__(self, status: Optional[int], body: str = "", detail: Optional[str] = None):
        self.status = status
        self.body = body
        if detail is None:
            detail = f"({status}): {body}"
        super().__init__(f"{self.action} failed {detail}")


class TokenExchangeError(TokenEndpointError):
    action = "Token exchange"


class TokenRefreshError(TokenEndpointError):
    action = "Token refresh"


class CredentialStoreError(Exception):
    """The OS keyring refused or failed a credential operation"""


class ProfileStoreError(Exception):
    """The profile registry file could not be read or written"""
