"""OAuth 2.0 Authorization Code flow with PKCE for Bitbucket Cloud

One login attempt moves through these states:

    IDLE -> AWAITING_AUTHORIZATION -> AWAITING_CALLBACK -> EXCHANGING_CODE
         -> COMPLETE | FAILED | TIMED_OUT

Refreshing a token is a separate one-shot request that needs neither the
browser nor the callback listener.
"""

import datetime
import json
import logging
import webbrowser
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode, urlparse

import httpx
from pydantic import BaseModel, ValidationError, model_validator
from rich.console import Console

import settings
from .callback_server import CallbackServer
from .credentials import OAuthToken, can_refresh
from .errors import (
    AuthorizationTimeoutError,
    CallbackPortInUseError,
    TokenEndpointError,
    TokenExchangeError,
    TokenRefreshError,
)
from .pkce import PKCEChallenge

logger = logging.getLogger(__name__)


@dataclass
class OAuthConfig:
    """OAuth client settings for one login attempt

    Defaults come from ``settings`` at construction time so tests can pass
    their own values without touching module globals.
    """
    client_id: str = field(default_factory=lambda: settings.OAUTH_CLIENT_ID)
    client_secret: Optional[str] = field(default_factory=lambda: settings.OAUTH_CLIENT_SECRET)
    redirect_uri: str = field(default_factory=lambda: settings.OAUTH_REDIRECT_URI)
    scopes: List[str] = field(default_factory=lambda: list(settings.OAUTH_SCOPES))
    authorize_url: str = settings.AUTHORIZE_URL
    token_url: str = settings.TOKEN_URL
    callback_timeout: float = field(default_factory=lambda: settings.OAUTH_CALLBACK_TIMEOUT)

    @property
    def callback_port(self) -> int:
        """Port of the redirect URI, 8085 when the URI names none"""
        port = urlparse(self.redirect_uri).port
        return port if port is not None else settings.DEFAULT_CALLBACK_PORT


class OAuthTokenResponse(BaseModel):
    """Token endpoint response

    ``expires_in`` is kept relative, as sent by the server. Use
    :meth:`to_credential` to get a credential with an absolute expiry.
    """
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    scopes: List[str] = []

    @model_validator(mode="before")
    @classmethod
    def _split_scopes(cls, data: Any) -> Any:
        # Bitbucket sends "scopes", RFC 6749 says "scope"; both are space separated
        if isinstance(data, dict):
            data = dict(data)
            raw = data.pop("scopes", None)
            if raw is None:
                raw = data.pop("scope", None)
            else:
                data.pop("scope", None)
            if isinstance(raw, str):
                data["scopes"] = raw.split()
            elif raw is not None:
                data["scopes"] = raw
        return data

    def to_credential(self, now: Optional[datetime.datetime] = None) -> OAuthToken:
        expires_at = None
        if self.expires_in is not None:
            if now is None:
                now = datetime.datetime.now(datetime.timezone.utc)
            expires_at = now + datetime.timedelta(seconds=self.expires_in)
        return OAuthToken(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=expires_at,
        )


class OAuthState(str, Enum):
    IDLE = "idle"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING_CODE = "exchanging_code"
    COMPLETE = "complete"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


def build_authorization_url(config: OAuthConfig, pkce: PKCEChallenge) -> str:
    """Construct the authorize URL for a PKCE login

    Args:
        config: OAuth client settings
        pkce: Challenge for this attempt

    Returns:
        Full authorization URL
    """
    params = {
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_uri,
        "code_challenge": pkce.challenge,
        "code_challenge_method": "S256",
    }
    if config.scopes:
        params["scope"] = " ".join(config.scopes)
    return f"{config.authorize_url}?{urlencode(params)}"


async def _post_token_request(
    token_url: str,
    form: Dict[str, str],
    client_id: str,
    client_secret: Optional[str],
    error_cls: type,
) -> OAuthTokenResponse:
    """POST a grant to the token endpoint and parse the response

    With a client secret the client authenticates with HTTP Basic,
    otherwise ``client_id`` goes into the form (public PKCE client).
    """
    form = dict(form)
    auth = None
    if client_secret:
        auth = httpx.BasicAuth(client_id, client_secret)
    else:
        form["client_id"] = client_id

    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.REQUEST_TIMEOUT, connect=settings.CONNECT_TIMEOUT),
            headers={"User-Agent": settings.USER_AGENT},
        ) as client:
            response = await client.post(
                token_url,
                data=form,
                auth=auth,
                headers={"Accept": "application/json"},
            )
    except httpx.RequestError as e:
        logger.error(f"{error_cls.action} request failed: {e}")
        raise error_cls(None, detail=f"(network error): {e}") from e

    if not response.is_success:
        logger.error(f"{error_cls.action} failed with status {response.status_code}: {response.text}")
        raise error_cls(response.status_code, response.text)

    try:
        return OAuthTokenResponse.model_validate(response.json())
    except (json.JSONDecodeError, ValidationError) as e:
        raise error_cls(
            response.status_code,
            response.text,
            detail=f"(unparseable token response): {e}",
        ) from e


async def exchange_code_for_tokens(
    config: OAuthConfig,
    code: str,
    code_verifier: str,
) -> OAuthTokenResponse:
    """Exchange an authorization code for tokens

    Args:
        config: OAuth client settings
        code: Authorization code from the callback
        code_verifier: PKCE verifier of the same attempt

    Raises:
        TokenExchangeError: On transport failure, non-2xx status or bad body
    """
    logger.info(f"Exchanging authorization code for tokens at {config.token_url}")
    tokens = await _post_token_request(
        config.token_url,
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri,
            "code_verifier": code_verifier,
        },
        config.client_id,
        config.client_secret,
        TokenExchangeError,
    )
    logger.info("Successfully exchanged authorization code for tokens")
    return tokens


async def refresh_oauth_token(
    refresh_token: str,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    token_url: Optional[str] = None,
) -> OAuthTokenResponse:
    """Obtain a new access token from a refresh token

    Args:
        refresh_token: Previously issued refresh token
        client_id: OAuth client id (default: configured client id)
        client_secret: Client secret (default: configured client secret)
        token_url: Token endpoint (default: Bitbucket Cloud)

    Raises:
        TokenRefreshError: On transport failure, non-2xx status or bad body
    """
    logger.info("Attempting to refresh OAuth tokens...")
    tokens = await _post_token_request(
        token_url or settings.TOKEN_URL,
        {"grant_type": "refresh_token", "refresh_token": refresh_token},
        client_id or settings.OAUTH_CLIENT_ID,
        client_secret or settings.OAUTH_CLIENT_SECRET,
        TokenRefreshError,
    )
    logger.info("Successfully refreshed OAuth tokens")
    return tokens


async def refresh_credential(
    credential: OAuthToken,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    now: Optional[datetime.datetime] = None,
) -> OAuthToken:
    """Refresh an OAuth credential and return its replacement

    The previous refresh token is kept when the server does not rotate it.

    Raises:
        ValueError: If the credential cannot be refreshed
        TokenRefreshError: If the token endpoint refuses
    """
    if not can_refresh(credential):
        raise ValueError("Credential has no refresh token")
    tokens = await refresh_oauth_token(credential.refresh_token, client_id, client_secret)
    refreshed = tokens.to_credential(now=now)
    if refreshed.refresh_token is None:
        refreshed = OAuthToken(
            access_token=refreshed.access_token,
            refresh_token=credential.refresh_token,
            expires_at=refreshed.expires_at,
        )
    return refreshed


class OAuthLogin:
    """One browser-based login attempt

    Attributes:
        state: Current OAuthState
        authorization_url: URL the user is sent to, set once started
    """

    def __init__(
        self,
        config: Optional[OAuthConfig] = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        console: Optional[Console] = None,
    ):
        self.config = config or OAuthConfig()
        self.open_browser = open_browser
        self.console = console or Console(stderr=True)
        self.state = OAuthState.IDLE
        self.authorization_url: Optional[str] = None
        self._pkce: Optional[PKCEChallenge] = None

    def _launch_browser(self) -> None:
        """Open the authorize URL; failure only means the user opens it by hand"""
        self.console.print("Opening browser for authentication...")
        self.console.print("If the browser doesn't open, visit this URL:")
        self.console.print(self.authorization_url, markup=False, highlight=False, soft_wrap=True)
        self.console.print()
        try:
            opened = self.open_browser(self.authorization_url)
        except (webbrowser.Error, OSError) as e:
            logger.warning(f"Could not open browser: {e}")
            opened = False
        if opened is False:
            self.console.print("[yellow]Warning: Could not open browser.[/yellow]")
            self.console.print("Please manually visit the URL above.")

    async def run(self) -> OAuthTokenResponse:
        """Run the attempt to completion

        Returns:
            Parsed token response

        Raises:
            CallbackPortInUseError: If the callback port is taken
            AuthorizationTimeoutError: If the browser never redirected back
            TokenExchangeError: If the code could not be exchanged
        """
        if self.state is not OAuthState.IDLE:
            raise RuntimeError(f"Login attempt already used (state: {self.state.value})")

        self._pkce = PKCEChallenge.generate()
        self.authorization_url = build_authorization_url(self.config, self._pkce)

        server = CallbackServer(port=self.config.callback_port)
        try:
            await server.start()
        except CallbackPortInUseError:
            self.state = OAuthState.FAILED
            self._pkce = None
            raise

        try:
            self.state = OAuthState.AWAITING_AUTHORIZATION
            self._launch_browser()

            self.state = OAuthState.AWAITING_CALLBACK
            self.console.print("Waiting for authorization...")
            try:
                code = await server.wait_for_code(self.config.callback_timeout)
            except AuthorizationTimeoutError:
                self.state = OAuthState.TIMED_OUT
                self._pkce = None
                raise
        finally:
            await server.stop()

        self.state = OAuthState.EXCHANGING_CODE
        self.console.print("Authorization received. Exchanging code for tokens...")
        verifier, self._pkce = self._pkce.verifier, None
        try:
            tokens = await exchange_code_for_tokens(self.config, code, verifier)
        except TokenEndpointError:
            self.state = OAuthState.FAILED
            raise

        self.state = OAuthState.COMPLETE
        return tokens


async def oauth_login(
    config: Optional[OAuthConfig] = None,
    open_browser: Callable[[str], bool] = webbrowser.open,
    console: Optional[Console] = None,
) -> OAuthTokenResponse:
    """Run a complete browser login and return the tokens"""
    return await OAuthLogin(config, open_browser=open_browser, console=console).run()
