"""Bitbucket API client package"""

from .client import BitbucketClient, HostType
from .errors import (
    ApiError,
    AuthFailed,
    AuthRequired,
    BadRequest,
    Forbidden,
    NetworkError,
    NotFound,
    RateLimited,
    ResponseDecodeError,
    ServerError,
    UnknownApiError,
    error_for_status,
    format_api_error,
)
from .pagination import CursorPage, OffsetPage, collect_all, iter_cursor_pages, iter_offset_pages

__all__ = [
    "BitbucketClient",
    "HostType",
    "ApiError",
    "AuthFailed",
    "AuthRequired",
    "BadRequest",
    "Forbidden",
    "NetworkError",
    "NotFound",
    "RateLimited",
    "ResponseDecodeError",
    "ServerError",
    "UnknownApiError",
    "error_for_status",
    "format_api_error",
    "CursorPage",
    "OffsetPage",
    "collect_all",
    "iter_cursor_pages",
    "iter_offset_pages",
]
