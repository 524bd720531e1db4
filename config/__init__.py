"""Configuration management package for bb"""

from .loader import ConfigLoader, get_config_loader
from .hosts import (
    BITBUCKET_API,
    BITBUCKET_CLOUD,
    CLOUD_HOSTS,
    HostConfig,
    cloud_host_config,
    extract_host_key,
    is_cloud_host,
    normalize_host,
)

__all__ = [
    "ConfigLoader",
    "get_config_loader",
    "BITBUCKET_API",
    "BITBUCKET_CLOUD",
    "CLOUD_HOSTS",
    "HostConfig",
    "cloud_host_config",
    "extract_host_key",
    "is_cloud_host",
    "normalize_host",
]
