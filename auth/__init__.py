"""Authentication package for Bitbucket Cloud and Server/DC

Covers the credential model, the browser-based OAuth login with PKCE,
keyring storage and account profiles.
"""

from .credentials import (
    AppPassword,
    Basic,
    Credential,
    CredentialAuth,
    CredentialKind,
    OAuthToken,
    PersonalAccessToken,
    apply_to_request,
    can_refresh,
    credential_kind,
    dump_credential,
    is_expired,
    load_credential,
    mask_secret,
)
from .errors import (
    AuthorizationTimeoutError,
    CallbackPortInUseError,
    CredentialStoreError,
    OAuthError,
    ProfileStoreError,
    TokenExchangeError,
    TokenRefreshError,
)
from .keyring_store import FileCredentialStore, KeyringStore, refresh_key
from .oauth import (
    OAuthConfig,
    OAuthLogin,
    OAuthState,
    OAuthTokenResponse,
    build_authorization_url,
    exchange_code_for_tokens,
    oauth_login,
    refresh_credential,
    refresh_oauth_token,
)
from .pkce import PKCEChallenge
from .profile import Profile, ProfileManager

__all__ = [
    "AppPassword",
    "Basic",
    "Credential",
    "CredentialAuth",
    "CredentialKind",
    "OAuthToken",
    "PersonalAccessToken",
    "apply_to_request",
    "can_refresh",
    "credential_kind",
    "dump_credential",
    "is_expired",
    "load_credential",
    "mask_secret",
    "AuthorizationTimeoutError",
    "CallbackPortInUseError",
    "CredentialStoreError",
    "OAuthError",
    "ProfileStoreError",
    "TokenExchangeError",
    "TokenRefreshError",
    "FileCredentialStore",
    "KeyringStore",
    "refresh_key",
    "OAuthConfig",
    "OAuthLogin",
    "OAuthState",
    "OAuthTokenResponse",
    "build_authorization_url",
    "exchange_code_for_tokens",
    "oauth_login",
    "refresh_credential",
    "refresh_oauth_token",
    "PKCEChallenge",
    "Profile",
    "ProfileManager",
]
