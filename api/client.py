"""HTTP client for the Bitbucket Cloud and Server/DC REST APIs

The platform is decided once, when the client is built, from the host string:
``bitbucket.org`` and ``api.bitbucket.org`` are Cloud, every other host is a
Server/DC instance.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

import settings
from auth.credentials import Credential, CredentialAuth
from config.hosts import BITBUCKET_API, HostConfig, extract_host_key, is_cloud_host
from .errors import AuthRequired, NetworkError, ResponseDecodeError, error_for_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostType:
    """Cloud, or Server/DC with an optional known version string"""
    is_cloud: bool
    version: Optional[str] = None

    @classmethod
    def cloud(cls) -> "HostType":
        return cls(is_cloud=True)

    @classmethod
    def server(cls, version: Optional[str] = None) -> "HostType":
        return cls(is_cloud=False, version=version)

    def __str__(self) -> str:
        if self.is_cloud:
            return "cloud"
        return f"server ({self.version})" if self.version else "server"


class BitbucketClient:
    """Async client bound to one host and, optionally, one credential

    Use :meth:`cloud`, :meth:`server` or :meth:`from_config` to build one.
    The client owns an ``httpx.AsyncClient`` unless one is passed in; close
    it with :meth:`aclose` or by using the client as an async context manager.
    """

    def __init__(
        self,
        host: str,
        host_type: HostType,
        credential: Optional[Credential] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self._host = host
        self._host_type = host_type
        self.credential = credential
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.REQUEST_TIMEOUT, connect=settings.CONNECT_TIMEOUT),
            headers={"User-Agent": settings.USER_AGENT, "Accept": "application/json"},
        )

    @classmethod
    def cloud(cls, http: Optional[httpx.AsyncClient] = None) -> "BitbucketClient":
        return cls(BITBUCKET_API, HostType.cloud(), http=http)

    @classmethod
    def server(
        cls,
        host: str,
        version: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> "BitbucketClient":
        """Client for a Server/DC host; scheme and trailing slash are dropped"""
        return cls(extract_host_key(host), HostType.server(version), http=http)

    @classmethod
    def from_config(cls, config: HostConfig, http: Optional[httpx.AsyncClient] = None) -> "BitbucketClient":
        if is_cloud_host(config.host):
            return cls.cloud(http=http)
        return cls.server(config.host, version=config.api_version, http=http)

    def with_auth(self, credential: Credential) -> "BitbucketClient":
        """Attach a credential and return the same client"""
        self.credential = credential
        return self

    @property
    def host(self) -> str:
        return self._host

    @property
    def host_type(self) -> HostType:
        return self._host_type

    def is_cloud(self) -> bool:
        return self._host_type.is_cloud

    def is_server(self) -> bool:
        return not self._host_type.is_cloud

    def base_url(self) -> str:
        if self.is_cloud():
            return settings.CLOUD_API_BASE
        return f"https://{self._host}{settings.SERVER_API_PATH}"

    def require_auth(self) -> Credential:
        """Return the attached credential

        Raises:
            AuthRequired: If the client has none
        """
        if self.credential is None:
            raise AuthRequired()
        return self.credential

    async def get(self, path: str, model: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("GET", self.base_url() + path, model=model, params=params)

    async def get_url(self, url: str, model: Any = None) -> Any:
        """GET an absolute URL as given, e.g. a Cloud ``next`` link"""
        return await self._request("GET", url, model=model)

    async def post(self, path: str, body: Any, model: Any = None) -> Any:
        return await self._request("POST", self.base_url() + path, model=model, json=_jsonable(body))

    async def put(self, path: str, body: Any, model: Any = None) -> Any:
        return await self._request("PUT", self.base_url() + path, model=model, json=_jsonable(body))

    async def delete(self, path: str) -> None:
        await self._request("DELETE", self.base_url() + path)

    async def _request(self, method: str, url: str, model: Any = None, **kwargs) -> Any:
        """Execute one request and decode the response

        Raises:
            NetworkError: If the request could not be sent or answered
            ApiError: A status-specific subclass for non-2xx responses
            ResponseDecodeError: If a 2xx body does not match ``model``
        """
        auth = CredentialAuth(self.credential) if self.credential is not None else None
        logger.debug(f"{method} {url}")
        try:
            response = await self._http.request(method, url, auth=auth, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(str(e)) from e

        if not response.is_success:
            logger.debug(f"{method} {url} returned {response.status_code}")
            raise error_for_status(response.status_code, response.text)

        return _decode(response, model)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "BitbucketClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def _jsonable(body: Any) -> Any:
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", by_alias=True, exclude_none=True)
    return body


def _decode(response: httpx.Response, model: Any) -> Any:
    if not response.content.strip():
        if model is not None:
            raise ResponseDecodeError("empty response body", response.status_code)
        return None

    try:
        data = response.json()
    except ValueError as e:
        raise ResponseDecodeError(f"invalid JSON: {e}", response.status_code) from e

    if model is None:
        return data
    try:
        return TypeAdapter(model).validate_python(data)
    except ValidationError as e:
        raise ResponseDecodeError(str(e), response.status_code) from e
