"""
Error taxonomy shared by every handler.

Library exceptions (jose, redis, resend) are translated into one of these at
the module that calls the library. Routers never inspect third-party
exception types; the exception handler in ``mailrelay.main`` switches on
``ErrorKind`` to build the response.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    AUTH = "auth"
    VALIDATION = "validation"
    PROVIDER = "provider"
    RATE_LIMITED = "rate_limited"


class RelayError(Exception):
    """Base class for errors that map to a specific HTTP response."""

    kind: ErrorKind = ErrorKind.CONFIGURATION
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        # Only exposed to clients in development mode
        self.details = details


class ConfigurationError(RelayError):
    """A required secret or address is missing. Operator-actionable, never retried."""

    kind = ErrorKind.CONFIGURATION
    status_code = 500


class StoreConnectionError(RelayError):
    """The Redis store could not be reached after the client's own retries."""

    kind = ErrorKind.CONNECTION
    status_code = 500


class AuthError(RelayError):
    """Missing, invalid or expired token, or a bad webhook signature."""

    kind = ErrorKind.AUTH
    status_code = 401


class ValidationError(RelayError):
    """Malformed caller input."""

    kind = ErrorKind.VALIDATION
    status_code = 400


class ProviderError(RelayError):
    """The delivery provider rejected the request; its message is passed through."""

    kind = ErrorKind.PROVIDER
    status_code = 400


class RateLimitedError(RelayError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after
