"""Errors raised by the ride services.

Transient errors (network, quota, backend hiccups) are worth retrying.
Permanent ones describe bad input or state and never succeed on retry.
"""

from typing import Any


class RideshareError(Exception):
    """Base exception for all ride service errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(RideshareError):
    """Errors that may succeed on retry."""


class NetworkError(TransientError):
    """Connection to an external API failed or timed out."""


class ServiceUnavailableError(TransientError):
    """An external API answered 429 or 5xx.

    ``details["retry_after"]`` holds the server backoff hint in seconds, if any.
    """


class BackendError(TransientError):
    """A backend query, RPC or edge function call failed.

    ``code`` carries the vendor error code (e.g. PostgREST ``PGRST116``)
    when the backend reported one.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.code = code


class PermanentError(RideshareError):
    """Errors that will not succeed on retry."""


class ValidationError(PermanentError):
    """Input rejected before it reached the backend."""


class NotFoundError(PermanentError):
    """Booking, trip or other row does not exist."""


class StateError(PermanentError):
    """Operation not allowed for the booking or ride status."""


class AuthorizationError(PermanentError):
    """User is neither passenger nor driver on the ride."""


class ConfigurationError(PermanentError):
    """Missing API key, secret or other setting."""


class MapsApiError(PermanentError):
    """Google Maps answered with a non-OK status."""

    def __init__(self, message: str, status: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.status = status
