"""Host configuration values and host-string helpers"""

from dataclasses import dataclass
from typing import Optional

BITBUCKET_CLOUD = "bitbucket.org"
BITBUCKET_API = "api.bitbucket.org"

CLOUD_HOSTS = (BITBUCKET_CLOUD, BITBUCKET_API)


@dataclass
class HostConfig:
    """Per-host configuration handed to the API client

    Attributes:
        host: Host key, e.g. ``bitbucket.org`` or ``bitbucket.company.com``
        user: Username recorded at login time
        default_workspace: Cloud workspace used when none is given
        default_project: Server project key used when none is given
        api_version: Known API version string ("2.0" or "1.0")
    """
    host: str
    user: Optional[str] = None
    default_workspace: Optional[str] = None
    default_project: Optional[str] = None
    api_version: Optional[str] = None


def is_cloud_host(host: str) -> bool:
    """Exact, case-sensitive match against the known Cloud hostnames"""
    return host in CLOUD_HOSTS


def cloud_host_config() -> HostConfig:
    return HostConfig(host=BITBUCKET_CLOUD, api_version="2.0")


def normalize_host(host: str) -> str:
    """Turn user input into a base URL: https by default, no trailing slash

    ``"bitbucket.company.com/"`` -> ``"https://bitbucket.company.com"``
    """
    host = host.strip()
    if not host.startswith(("http://", "https://")):
        host = f"https://{host}"
    return host.rstrip("/")


def extract_host_key(host: str) -> str:
    """Reduce a URL or host string to the key credentials are stored under

    The scheme and trailing slash are dropped and the hostname is lowercased.
    A context path is kept, so ``https://Git.Acme.io/bitbucket/`` becomes
    ``git.acme.io/bitbucket``.
    """
    host = host.strip()
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme):]
            break
    name, sep, path = host.rstrip("/").partition("/")
    return name.lower() + sep + path
