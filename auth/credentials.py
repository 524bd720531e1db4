"""Credential model for Bitbucket Cloud and Server/DC

A credential is one of four variants. The set is closed, so behaviour is
implemented as module functions that dispatch on the variant type instead of
methods on a class hierarchy.

    OAuthToken           Bearer   (Cloud, refreshable)
    AppPassword          Basic    (Cloud, legacy)
    PersonalAccessToken  Bearer   (Server/DC)
    Basic                Basic    (username/password)
"""

import base64
import datetime
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generator, Optional, Union

import httpx

logger = logging.getLogger(__name__)


class CredentialKind(str, Enum):
    """Authentication method recorded on profiles and in stored credentials"""
    OAUTH = "oauth"
    APP_PASSWORD = "app_password"
    PAT = "pat"
    BASIC = "basic"


@dataclass(frozen=True)
class OAuthToken:
    """OAuth 2.0 access token

    Attributes:
        access_token: Bearer token sent with every request
        refresh_token: Token used to obtain a new access token, if issued
        expires_at: Absolute expiry; None means the token is treated as
            non-expiring (no server-side revocation check is made)
    """
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime.datetime] = None


@dataclass(frozen=True)
class AppPassword:
    username: str
    password: str


@dataclass(frozen=True)
class PersonalAccessToken:
    token: str


@dataclass(frozen=True)
class Basic:
    username: str
    password: str


Credential = Union[OAuthToken, AppPassword, PersonalAccessToken, Basic]

_KIND_BY_TYPE = {
    OAuthToken: CredentialKind.OAUTH,
    AppPassword: CredentialKind.APP_PASSWORD,
    PersonalAccessToken: CredentialKind.PAT,
    Basic: CredentialKind.BASIC,
}


def credential_kind(credential: Credential) -> CredentialKind:
    """Return the kind tag for a credential instance

    Raises:
        TypeError: If the object is not one of the credential variants
    """
    try:
        return _KIND_BY_TYPE[type(credential)]
    except KeyError:
        raise TypeError(f"Not a credential: {type(credential).__name__}") from None


def _basic_value(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def authorization_header(credential: Credential) -> str:
    """Build the value of the Authorization header for a credential"""
    if isinstance(credential, OAuthToken):
        return f"Bearer {credential.access_token}"
    if isinstance(credential, PersonalAccessToken):
        return f"Bearer {credential.token}"
    if isinstance(credential, (AppPassword, Basic)):
        return _basic_value(credential.username, credential.password)
    raise TypeError(f"Not a credential: {type(credential).__name__}")


def apply_to_request(credential: Credential, request: httpx.Request) -> httpx.Request:
    """Inject exactly one Authorization header into the request

    Any Authorization header already present is replaced.

    Args:
        credential: Credential to apply
        request: Outgoing httpx request

    Returns:
        The same request, for chaining
    """
    request.headers["Authorization"] = authorization_header(credential)
    return request


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def is_expired(credential: Credential, now: Optional[datetime.datetime] = None) -> bool:
    """True only for an OAuth token whose known expiry lies in the past

    PATs, app passwords, basic credentials and OAuth tokens without an
    expiry are never considered expired here.
    """
    if not isinstance(credential, OAuthToken) or credential.expires_at is None:
        return False
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    return _as_utc(credential.expires_at) < _as_utc(now)


def can_refresh(credential: Credential) -> bool:
    """True only for an OAuth token that carries a refresh token"""
    return isinstance(credential, OAuthToken) and credential.refresh_token is not None


class CredentialAuth(httpx.Auth):
    """httpx auth hook that applies a credential to each outgoing request"""

    def __init__(self, credential: Credential):
        self.credential = credential

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        apply_to_request(self.credential, request)
        yield request


def dump_credential(credential: Credential) -> str:
    """Serialize a credential to the string kept in the keyring"""
    kind = credential_kind(credential)
    data = {"type": kind.value}
    if isinstance(credential, OAuthToken):
        data["access_token"] = credential.access_token
        data["refresh_token"] = credential.refresh_token
        data["expires_at"] = (
            _as_utc(credential.expires_at).isoformat() if credential.expires_at else None
        )
    elif isinstance(credential, PersonalAccessToken):
        data["token"] = credential.token
    else:
        data["username"] = credential.username
        data["password"] = credential.password
    return json.dumps(data)


def load_credential(raw: str) -> Credential:
    """Parse a stored credential string

    Values written by older versions are a bare token rather than JSON;
    those load as a PersonalAccessToken, which authenticates the same way
    (Bearer) as the OAuth access token they usually are.

    Raises:
        ValueError: If the value is JSON of an unknown or incomplete shape
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = None

    if not isinstance(data, dict):
        return PersonalAccessToken(token=raw.strip())

    try:
        kind = CredentialKind(data.get("type"))
        if kind is CredentialKind.OAUTH:
            expires_at = data.get("expires_at")
            return OAuthToken(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token"),
                expires_at=_as_utc(datetime.datetime.fromisoformat(expires_at)) if expires_at else None,
            )
        if kind is CredentialKind.PAT:
            return PersonalAccessToken(token=data["token"])
        if kind is CredentialKind.APP_PASSWORD:
            return AppPassword(username=data["username"], password=data["password"])
        return Basic(username=data["username"], password=data["password"])
    except (KeyError, ValueError) as e:
        raise ValueError(f"Invalid stored credential: {e}") from e


def mask_secret(secret: str) -> str:
    """Show only the first and last four characters of a secret"""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"
