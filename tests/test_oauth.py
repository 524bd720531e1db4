"""Tests for the OAuth PKCE login, code exchange and refresh."""

import asyncio
import base64
import datetime
import io
import socket
from urllib.parse import parse_qs, parse_qsl, urlparse

import aiohttp
import httpx
import pytest
from rich.console import Console

import settings
from auth.credentials import OAuthToken, PersonalAccessToken
from auth.errors import (
    AuthorizationTimeoutError,
    CallbackPortInUseError,
    TokenExchangeError,
    TokenRefreshError,
)
from auth.oauth import (
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
from auth.pkce import PKCEChallenge, challenge_for

TOKEN_URL = "https://bitbucket.org/site/oauth2/access_token"

TOKEN_BODY = {
    "access_token": "a",
    "refresh_token": "r",
    "token_type": "bearer",
    "expires_in": 7200,
    "scopes": "repository account",
}


def _form(request: httpx.Request) -> dict:
    return dict(parse_qsl(request.content.decode()))


@pytest.fixture
def quiet_console():
    return Console(file=io.StringIO(), width=200)


class TestAuthorizationUrl:

    def test_contains_pkce_parameters(self):
        config = OAuthConfig(client_id="cid", redirect_uri="http://localhost:8085/callback", scopes=["repository", "account"])
        pkce = PKCEChallenge.generate()

        url = build_authorization_url(config, pkce)

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://bitbucket.org/site/oauth2/authorize"
        query = parse_qs(parsed.query)
        assert query["client_id"] == ["cid"]
        assert query["response_type"] == ["code"]
        assert query["redirect_uri"] == ["http://localhost:8085/callback"]
        assert query["code_challenge"] == [pkce.challenge]
        assert query["code_challenge_method"] == ["S256"]
        assert query["scope"] == ["repository account"]

    def test_scope_omitted_when_empty(self):
        url = build_authorization_url(OAuthConfig(scopes=[]), PKCEChallenge.generate())
        assert "scope" not in parse_qs(urlparse(url).query)

    def test_defaults_come_from_settings(self):
        config = OAuthConfig()
        assert config.client_id == settings.OAUTH_CLIENT_ID
        assert config.scopes == settings.OAUTH_SCOPES
        assert config.callback_port == 8085

    def test_callback_port_from_redirect_uri(self):
        assert OAuthConfig(redirect_uri="http://localhost:9999/cb").callback_port == 9999
        assert OAuthConfig(redirect_uri="http://localhost/cb").callback_port == 8085


class TestTokenResponse:

    def test_parses_space_separated_scopes(self):
        """Bitbucket's token body should parse into a scope list."""
        tokens = OAuthTokenResponse.model_validate(TOKEN_BODY)
        assert tokens.access_token == "a"
        assert tokens.refresh_token == "r"
        assert tokens.scopes == ["repository", "account"]
        assert tokens.expires_in == 7200

    def test_accepts_rfc_scope_field(self):
        tokens = OAuthTokenResponse.model_validate({"access_token": "a", "scope": "repository"})
        assert tokens.scopes == ["repository"]

    def test_token_type_defaults_to_bearer(self):
        tokens = OAuthTokenResponse.model_validate({"access_token": "a"})
        assert tokens.token_type == "bearer"
        assert tokens.scopes == []

    def test_to_credential_sets_absolute_expiry(self):
        now = datetime.datetime(2026, 1, 12, tzinfo=datetime.timezone.utc)
        credential = OAuthTokenResponse.model_validate(TOKEN_BODY).to_credential(now=now)
        assert credential == OAuthToken(
            access_token="a",
            refresh_token="r",
            expires_at=now + datetime.timedelta(hours=2),
        )


class TestExchange:

    def test_public_client_sends_client_id_in_form(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=TOKEN_BODY)
        config = OAuthConfig(client_id="cid", client_secret=None, redirect_uri="http://localhost:8085/callback")

        tokens = asyncio.run(exchange_code_for_tokens(config, "the-code", "the-verifier"))

        assert tokens.scopes == ["repository", "account"]
        request = httpx_mock.get_request()
        assert _form(request) == {
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": "http://localhost:8085/callback",
            "code_verifier": "the-verifier",
            "client_id": "cid",
        }
        assert "Authorization" not in request.headers

    def test_confidential_client_uses_basic_auth(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=TOKEN_BODY)
        config = OAuthConfig(client_id="cid", client_secret="shh")

        asyncio.run(exchange_code_for_tokens(config, "code", "verifier"))

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"cid:shh").decode()
        assert "client_id" not in _form(request)

    def test_error_status_carries_body(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=400, text='{"error": "invalid_grant"}')

        with pytest.raises(TokenExchangeError) as excinfo:
            asyncio.run(exchange_code_for_tokens(OAuthConfig(client_secret=None), "code", "verifier"))

        assert excinfo.value.status == 400
        assert excinfo.value.body == '{"error": "invalid_grant"}'
        assert "Token exchange failed (400)" in str(excinfo.value)

    def test_network_failure(self, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=TOKEN_URL)

        with pytest.raises(TokenExchangeError) as excinfo:
            asyncio.run(exchange_code_for_tokens(OAuthConfig(client_secret=None), "code", "verifier"))

        assert excinfo.value.status is None
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    def test_unparseable_body(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, text="<html>oops</html>")

        with pytest.raises(TokenExchangeError, match="unparseable"):
            asyncio.run(exchange_code_for_tokens(OAuthConfig(client_secret=None), "code", "verifier"))


class TestRefresh:

    def test_refresh_posts_refresh_grant(self, httpx_mock, monkeypatch):
        monkeypatch.setattr(settings, "OAUTH_CLIENT_SECRET", None)
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "new", "expires_in": 3600})

        tokens = asyncio.run(refresh_oauth_token("old-refresh"))

        assert tokens.access_token == "new"
        form = _form(httpx_mock.get_request())
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "old-refresh"
        assert form["client_id"] == settings.OAUTH_CLIENT_ID

    def test_refresh_uses_configured_client_secret(self, httpx_mock, monkeypatch):
        """A confidential client should refresh with HTTP Basic, like the code exchange."""
        monkeypatch.setattr(settings, "OAUTH_CLIENT_ID", "cid")
        monkeypatch.setattr(settings, "OAUTH_CLIENT_SECRET", "shh")
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "new"})

        asyncio.run(refresh_oauth_token("old-refresh"))

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"cid:shh").decode()
        assert "client_id" not in _form(request)

    def test_refresh_rejected(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=401, text="bad refresh token")

        with pytest.raises(TokenRefreshError) as excinfo:
            asyncio.run(refresh_oauth_token("old-refresh"))

        assert excinfo.value.status == 401
        assert str(excinfo.value) == "Token refresh failed (401): bad refresh token"

    def test_refresh_credential_keeps_refresh_token(self, httpx_mock):
        """A response without a new refresh token should keep the old one."""
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "new", "expires_in": 60})
        now = datetime.datetime(2026, 1, 12, tzinfo=datetime.timezone.utc)

        refreshed = asyncio.run(refresh_credential(OAuthToken(access_token="old", refresh_token="r1"), now=now))

        assert refreshed.access_token == "new"
        assert refreshed.refresh_token == "r1"
        assert refreshed.expires_at == now + datetime.timedelta(seconds=60)

    def test_refresh_credential_rejects_pat(self):
        with pytest.raises(ValueError):
            asyncio.run(refresh_credential(PersonalAccessToken(token="t")))


class TestOAuthLogin:

    def test_full_login(self, httpx_mock, free_port, quiet_console):
        """Browser redirect with a code should end in COMPLETE with parsed tokens."""
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=TOKEN_BODY)
        config = OAuthConfig(
            client_id="cid",
            client_secret=None,
            redirect_uri=f"http://localhost:{free_port}/callback",
            callback_timeout=5,
        )
        visits = []

        async def visit(url):
            async with aiohttp.ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{free_port}/callback?code=granted") as response:
                    return response.status

        def fake_browser(url):
            visits.append(url)
            visits.append(asyncio.get_running_loop().create_task(visit(url)))
            return True

        async def scenario():
            login = OAuthLogin(config, open_browser=fake_browser, console=quiet_console)
            tokens = await login.run()
            status = await visits[1]
            return login, tokens, status

        login, tokens, status = asyncio.run(scenario())

        assert login.state is OAuthState.COMPLETE
        assert tokens.access_token == "a"
        assert status == 200
        assert visits[0] == login.authorization_url
        form = _form(httpx_mock.get_request())
        assert form["code"] == "granted"
        assert form["redirect_uri"] == config.redirect_uri
        challenge = parse_qs(urlparse(login.authorization_url).query)["code_challenge"][0]
        assert challenge_for(form["code_verifier"]) == challenge
        assert login.authorization_url in quiet_console.file.getvalue().replace("\n", "")

    def test_timeout_when_browser_never_returns(self, free_port, quiet_console):
        """A browser that cannot be opened is only a warning; no redirect is a timeout."""
        config = OAuthConfig(redirect_uri=f"http://localhost:{free_port}/callback", callback_timeout=0.2)
        login = OAuthLogin(config, open_browser=lambda url: False, console=quiet_console)

        with pytest.raises(AuthorizationTimeoutError):
            asyncio.run(login.run())

        assert login.state is OAuthState.TIMED_OUT
        assert "Could not open browser" in quiet_console.file.getvalue()

    def test_port_in_use_fails(self, free_port, quiet_console):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", free_port))
        blocker.listen(1)
        config = OAuthConfig(redirect_uri=f"http://localhost:{free_port}/callback", callback_timeout=1)
        try:
            with pytest.raises(CallbackPortInUseError) as excinfo:
                asyncio.run(oauth_login(config, open_browser=lambda url: True, console=quiet_console))
        finally:
            blocker.close()

        assert excinfo.value.port == free_port

    def test_login_attempt_is_single_use(self, free_port, quiet_console):
        config = OAuthConfig(redirect_uri=f"http://localhost:{free_port}/callback", callback_timeout=0.05)
        login = OAuthLogin(config, open_browser=lambda url: True, console=quiet_console)
        with pytest.raises(AuthorizationTimeoutError):
            asyncio.run(login.run())

        with pytest.raises(RuntimeError, match="already used"):
            asyncio.run(login.run())
