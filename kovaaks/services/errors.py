"""
Service layer exceptions and the error taxonomy.

Every failure surfaced by the client is a KovaaksError carrying one ErrorKind.
Callers should branch on ``error.kind`` rather than on HTTP status codes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Flat error taxonomy."""

    # Network errors
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"

    # Server errors
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"

    # Client errors
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"

    # Raised locally, never by the transport
    PARAMETER_ERROR = "parameter_error"
    CONFIGURATION_ERROR = "configuration_error"

    UNKNOWN_ERROR = "unknown_error"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.SERVER_ERROR,
        ErrorKind.RATE_LIMITED,
    }
)

NON_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.AUTHENTICATION_ERROR,
        ErrorKind.AUTHORIZATION_ERROR,
        ErrorKind.VALIDATION_ERROR,
        ErrorKind.NOT_FOUND,
        ErrorKind.PARAMETER_ERROR,
        ErrorKind.CONFIGURATION_ERROR,
    }
)


@dataclass(frozen=True)
class RawOutcome:
    """Transport-level description of a failed call, input to classify()."""

    status: int | None = None
    message: str | None = None
    code: str | None = None
    data: Any = None


@dataclass(frozen=True)
class RequestContext:
    """The request a classified error belongs to."""

    method: str | None = None
    url: str | None = None
    params: dict[str, Any] | None = field(default=None, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method, "url": self.url, "params": self.params}


class KovaaksError(Exception):
    """Base exception for all client errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        status: int | None = None,
        retryable: bool = False,
        attempts: int = 0,
        context: RequestContext | None = None,
        data: Any = None,
    ):
        self.message = message
        self.status = status
        self.retryable = retryable
        self.attempts = attempts
        self.context = context or RequestContext()
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
            "retryable": self.retryable,
            "attempts": self.attempts,
            "context": self.context.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, status={self.status}, "
            f"attempts={self.attempts}, message={self.message!r})"
        )


class NetworkError(KovaaksError):
    """No response was received from the server."""

    kind = ErrorKind.NETWORK_ERROR


class RequestTimeoutError(KovaaksError):
    """Request timed out."""

    kind = ErrorKind.TIMEOUT


class ServerError(KovaaksError):
    """Server answered with a 5xx status."""

    kind = ErrorKind.SERVER_ERROR


class RateLimitError(KovaaksError):
    """Rate limit exceeded."""

    kind = ErrorKind.RATE_LIMITED


class AuthenticationError(KovaaksError):
    kind = ErrorKind.AUTHENTICATION_ERROR


class AuthorizationError(KovaaksError):
    kind = ErrorKind.AUTHORIZATION_ERROR


class ValidationError(KovaaksError):
    kind = ErrorKind.VALIDATION_ERROR


class NotFoundError(KovaaksError):
    kind = ErrorKind.NOT_FOUND


class ParameterError(KovaaksError):
    """Bad caller input, detected before any request is made."""

    kind = ErrorKind.PARAMETER_ERROR


class ConfigurationError(KovaaksError):
    """Bad client setup."""

    kind = ErrorKind.CONFIGURATION_ERROR


class UnknownApiError(KovaaksError):
    kind = ErrorKind.UNKNOWN_ERROR


ERROR_CLASSES: dict[ErrorKind, type[KovaaksError]] = {
    ErrorKind.NETWORK_ERROR: NetworkError,
    ErrorKind.TIMEOUT: RequestTimeoutError,
    ErrorKind.SERVER_ERROR: ServerError,
    ErrorKind.RATE_LIMITED: RateLimitError,
    ErrorKind.AUTHENTICATION_ERROR: AuthenticationError,
    ErrorKind.AUTHORIZATION_ERROR: AuthorizationError,
    ErrorKind.VALIDATION_ERROR: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.PARAMETER_ERROR: ParameterError,
    ErrorKind.CONFIGURATION_ERROR: ConfigurationError,
    ErrorKind.UNKNOWN_ERROR: UnknownApiError,
}


class TransportError(Exception):
    """Raised by the HTTP transport; carries the raw outcome to classify."""

    def __init__(self, outcome: RawOutcome):
        self.outcome = outcome
        super().__init__(outcome.message or "Unknown error occurred")
