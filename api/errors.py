"""API error taxonomy and error-envelope parsing

Three failure families are kept apart so callers can tell them apart:

- NetworkError: the server could not be reached
- the status-derived ApiError subclasses: the server said no
- ResponseDecodeError: the server answered 2xx with something unreadable
"""

import json
from typing import Optional


class ApiError(Exception):
    """Base class for errors raised by the API client

    Attributes:
        message: User-facing message
        status: HTTP status code when one was received
    """

    prefix = "API error"

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(f"{self.prefix}: {message}" if self.prefix else message)


class AuthRequired(ApiError):
    prefix = ""

    def __init__(self, message: str = "Authentication required", status: Optional[int] = None):
        super().__init__(message, status)


class AuthFailed(ApiError):
    prefix = "Authentication failed"


class NotFound(ApiError):
    prefix = "Resource not found"


class RateLimited(ApiError):
    prefix = "Rate limit exceeded"


class Forbidden(ApiError):
    prefix = "Permission denied"


class BadRequest(ApiError):
    prefix = "Bad request"


class ServerError(ApiError):
    prefix = "Server error"


class UnknownApiError(ApiError):
    prefix = "Unknown error"


class NetworkError(ApiError):
    """Transport failure: DNS, connect, TLS, timeout"""
    prefix = "Network error"


class ResponseDecodeError(ApiError):
    """A successful response whose body does not match the expected shape"""
    prefix = "Could not parse response"


def format_api_error(status: int, body: str) -> str:
    """Extract a user-facing message from an error response body

    Tried in order:
        1. {"error": {"message": ...}}     Cloud
        2. {"errors": [{"message": ...}]}  Server, first entry
        3. {"error": {"detail": ...}}      Cloud, alternate
        4. {"message": ...}                generic
        5. "API error (<status>): <body>"

    Args:
        status: HTTP status code
        body: Raw response body

    Returns:
        The message string
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]

        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict) and isinstance(first.get("message"), str):
                return first["message"]

        if isinstance(error, dict) and isinstance(error.get("detail"), str):
            return error["detail"]

        if isinstance(data.get("message"), str):
            return data["message"]

    return f"API error ({status}): {body}"


def error_for_status(status: int, body: str) -> ApiError:
    """Build the ApiError subclass matching an HTTP status"""
    message = format_api_error(status, body)
    if status == 401:
        return AuthFailed(message, status)
    if status == 403:
        return Forbidden(message, status)
    if status == 404:
        return NotFound(message, status)
    if status == 429:
        return RateLimited(message, status)
    if status in (400, 409, 422):
        return BadRequest(message, status)
    if status >= 500:
        return ServerError(message, status)
    return UnknownApiError(message, status)
