"""Token checks against Bitbucket Cloud and Server/DC

Validation answers one of three things: the server accepted the token, the
server rejected it with 401, or the check could not be completed. The last
case is never reported as "invalid".
"""

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO

import httpx

import settings
from config.hosts import normalize_host

logger = logging.getLogger(__name__)

CLOUD_USER_URL = f"{settings.CLOUD_API_BASE}/user"


class TokenStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    INCONCLUSIVE = "inconclusive"


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of a validation call

    Attributes:
        status: Verdict
        detail: Why the check was inconclusive, if it was
    """
    status: TokenStatus
    detail: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status is TokenStatus.VALID

    @property
    def is_invalid(self) -> bool:
        return self.status is TokenStatus.INVALID


def validate_token_format(token: str) -> bool:
    """A token is non-empty and contains no whitespace"""
    return bool(token) and not any(ch.isspace() for ch in token)


def read_token_from_stdin(stream: Optional[TextIO] = None) -> str:
    """Read one line from stdin (or the given stream), trimmed"""
    stream = stream or sys.stdin
    return stream.readline().strip()


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.REQUEST_TIMEOUT, connect=settings.CONNECT_TIMEOUT),
        headers={"User-Agent": settings.USER_AGENT},
    )


def _verdict(response: httpx.Response) -> Optional[TokenValidation]:
    if response.is_success:
        return TokenValidation(TokenStatus.VALID)
    if response.status_code == 401:
        return TokenValidation(TokenStatus.INVALID)
    return None


async def validate_server_token(token: str, host: str) -> TokenValidation:
    """Check a Server/DC personal access token

    ``application-properties`` is tried first; some servers allow it
    anonymously or restrict it, so a non-401 failure falls back to listing
    one project.

    Args:
        token: Personal access token
        host: Server host, with or without scheme

    Returns:
        TokenValidation verdict
    """
    base = normalize_host(host)
    headers = {"Authorization": f"Bearer {token}"}
    try:
        async with _http_client() as client:
            response = await client.get(
                f"{base}{settings.SERVER_API_PATH}/application-properties",
                headers=headers,
            )
            verdict = _verdict(response)
            if verdict is not None:
                return verdict

            response = await client.get(
                f"{base}{settings.SERVER_API_PATH}/projects",
                params={"limit": "1"},
                headers=headers,
            )
            verdict = _verdict(response)
            if verdict is not None:
                return verdict
    except httpx.RequestError as e:
        logger.warning(f"Could not reach {base} to validate token: {e}")
        return TokenValidation(TokenStatus.INCONCLUSIVE, f"Failed to connect to Bitbucket server: {e}")

    detail = f"Unexpected response ({response.status_code}): {response.text}"
    logger.warning(f"Token validation against {base} inconclusive: {detail}")
    return TokenValidation(TokenStatus.INCONCLUSIVE, detail)


async def validate_cloud_token(token: str) -> TokenValidation:
    """Check a Cloud OAuth access token against ``/2.0/user``"""
    try:
        async with _http_client() as client:
            response = await client.get(CLOUD_USER_URL, headers={"Authorization": f"Bearer {token}"})
    except httpx.RequestError as e:
        logger.warning(f"Could not reach Bitbucket Cloud to validate token: {e}")
        return TokenValidation(TokenStatus.INCONCLUSIVE, f"Failed to connect to Bitbucket Cloud: {e}")

    verdict = _verdict(response)
    if verdict is not None:
        return verdict
    return TokenValidation(
        TokenStatus.INCONCLUSIVE,
        f"Unexpected response ({response.status_code}): {response.text}",
    )


async def get_server_username(token: str, host: str) -> Optional[str]:
    """Look up the username behind a Server/DC token

    Best effort: any failure, 401 included, yields None.
    """
    url = f"{normalize_host(host)}/plugins/servlet/applinks/whoami"
    try:
        async with _http_client() as client:
            response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
    except httpx.RequestError as e:
        logger.debug(f"Username lookup failed: {e}")
        return None

    if not response.is_success:
        logger.debug(f"Username lookup returned {response.status_code}")
        return None

    username = response.text.strip()
    if not username or username == "anonymous":
        return None
    return username


async def get_cloud_username(token: str) -> Optional[str]:
    """Look up the Cloud username for an access token, None on any failure"""
    try:
        async with _http_client() as client:
            response = await client.get(CLOUD_USER_URL, headers={"Authorization": f"Bearer {token}"})
    except httpx.RequestError as e:
        logger.debug(f"Username lookup failed: {e}")
        return None

    if not response.is_success:
        return None
    try:
        return response.json().get("username")
    except (ValueError, AttributeError):
        return None
