"""
Error taxonomy for fn-bridge.

Upstream failures from the Cloud Functions API, the Cloud Logging API and
plain HTTP calls are classified into a small set of typed errors.  The
original exception is always kept as ``cause`` and chained with ``from``
so nothing about the upstream failure is lost.
"""

from __future__ import annotations

import requests
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions


class BridgeError(Exception):
    """Base class for every error raised by fn-bridge."""

    kind = "bridge_error"


class ConfigError(BridgeError):
    """Raised when the bridge configuration cannot be resolved."""

    kind = "config_error"


class LocalValidationError(BridgeError):
    """Raised for bad input detected before any network call is made."""

    kind = "local_validation_error"


class ToolNotAllowedError(BridgeError):
    """Raised when a tool name does not match any allowlisted tool."""

    kind = "tool_not_allowed"


class UpstreamError(BridgeError):
    """A failure reported by (or while talking to) a remote service."""

    kind = "upstream_error"

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class UpstreamAuthError(UpstreamError):
    kind = "upstream_auth_error"


class UpstreamPermissionError(UpstreamError):
    kind = "upstream_permission_error"


class UpstreamNotFoundError(UpstreamError):
    kind = "upstream_not_found_error"


class UpstreamTransientError(UpstreamError):
    kind = "upstream_transient_error"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_AUTH_ERRORS = (
    api_exceptions.Unauthorized,
    auth_exceptions.DefaultCredentialsError,
    auth_exceptions.RefreshError,
)

_TRANSIENT_ERRORS = (
    api_exceptions.ServerError,
    api_exceptions.TooManyRequests,
    api_exceptions.RetryError,
    auth_exceptions.TransportError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


def classify_upstream_error(exc: BaseException) -> type[UpstreamError]:
    """Return the UpstreamError subclass matching a raw upstream exception."""
    if isinstance(exc, _AUTH_ERRORS):
        return UpstreamAuthError
    if isinstance(exc, api_exceptions.Forbidden):
        return UpstreamPermissionError
    if isinstance(exc, api_exceptions.NotFound):
        return UpstreamNotFoundError
    if isinstance(exc, _TRANSIENT_ERRORS):
        return UpstreamTransientError
    return UpstreamError


def wrap_upstream_error(exc: BaseException) -> BridgeError:
    """Convert *exc* into a typed BridgeError.

    BridgeErrors pass through unchanged.
    """
    if isinstance(exc, BridgeError):
        return exc
    error_cls = classify_upstream_error(exc)
    message = str(exc) or type(exc).__name__
    return error_cls(message, cause=exc)
