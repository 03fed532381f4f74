"""
Error classification - maps a failed call outcome to an ErrorKind.

classify() is total: it never raises and always returns a kind.
"""

from typing import Any

import httpx

from kovaaks.services.errors import (
    ERROR_CLASSES,
    RETRYABLE_KINDS,
    ErrorKind,
    KovaaksError,
    RawOutcome,
    RequestContext,
)

TIMEOUT_CODE = "ECONNABORTED"

_STATUS_KINDS = {
    401: ErrorKind.AUTHENTICATION_ERROR,
    403: ErrorKind.AUTHORIZATION_ERROR,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.VALIDATION_ERROR,
    429: ErrorKind.RATE_LIMITED,
}


def classify(outcome: RawOutcome) -> ErrorKind:
    """Classify a raw outcome. First matching rule wins."""
    status = outcome.status
    message = (outcome.message or "").lower()

    if not status:
        if "timeout" in message or "timed out" in message:
            return ErrorKind.TIMEOUT
        return ErrorKind.NETWORK_ERROR

    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]

    if status >= 500:
        return ErrorKind.SERVER_ERROR

    if outcome.code == TIMEOUT_CODE:
        return ErrorKind.TIMEOUT

    return ErrorKind.UNKNOWN_ERROR


def build_error(
    outcome: RawOutcome,
    context: RequestContext | None = None,
    attempts: int = 1,
    retryable: bool | None = None,
    kind: ErrorKind | None = None,
) -> KovaaksError:
    """Create the final classified exception for an outcome."""
    kind = kind or classify(outcome)
    if retryable is None:
        retryable = kind in RETRYABLE_KINDS
    return ERROR_CLASSES[kind](
        outcome.message or "Unknown error occurred",
        status=outcome.status or None,
        retryable=retryable,
        attempts=attempts,
        context=context,
        data=outcome.data,
    )


def outcome_from_exception(exc: Exception) -> RawOutcome:
    """Describe an httpx failure as a RawOutcome."""
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        data = _response_body(response)
        return RawOutcome(
            status=response.status_code,
            message=_api_message(data)
            or "An error occurred while processing your request",
            data=data,
        )

    if isinstance(exc, httpx.TimeoutException):
        return RawOutcome(
            message=(
                "No response received from server - "
                f"the request timed out ({type(exc).__name__})"
            ),
            code=TIMEOUT_CODE,
        )

    if isinstance(exc, httpx.RequestError):
        return RawOutcome(message=str(exc) or type(exc).__name__)

    return RawOutcome(message=str(exc) or "Error setting up request")


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _api_message(data: Any) -> str | None:
    """Extract ``error[0].msg`` from an API error body, if present."""
    if not isinstance(data, dict):
        return None
    errors = data.get("error")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        msg = errors[0].get("msg")
        return str(msg) if msg else None
    if isinstance(errors, str):
        return errors
    return None
