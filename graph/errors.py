"""
Error taxonomy for the tutor router.

Every error that can cross the Router boundary derives from RouterError and
knows how to render itself as the normalized payload returned to callers:

    {"code": "SERVICE_UNAVAILABLE", "message": "...", "httpStatus": 503}

Per-candidate ProviderErrors are caught inside the Router and never reach
the end caller individually.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    MISSING_CONFIG = "MISSING_CONFIG"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


# Kinds that are transient regardless of HTTP status
_RETRYABLE_KINDS = {
    ErrorCode.RATE_LIMITED,
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE,
}


class RouterError(Exception):
    """Base class for errors with a normalized wire representation."""

    code: ErrorCode = ErrorCode.UNKNOWN
    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "httpStatus": self.http_status,
        }


class MissingConfigError(RouterError):
    """No provider credentials are configured; nothing can be attempted."""

    code = ErrorCode.MISSING_CONFIG
    http_status = 503


class ServiceUnavailableError(RouterError):
    """Terminal: every candidate was tried and failed."""

    code = ErrorCode.SERVICE_UNAVAILABLE
    http_status = 503


class ProviderError(RouterError):
    """
    A single (provider, model) call failed.

    is_retryable is derived from the kind and the HTTP status:
    rate limits, timeouts, network failures and any status >= 500 are
    transient; authentication errors, malformed responses and other 4xx
    are fatal.
    """

    http_status = 502

    def __init__(
        self,
        message: str,
        kind: ErrorCode = ErrorCode.UNKNOWN,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.code = kind
        self.status_code = status_code
        self.provider = provider
        self.is_retryable = kind in _RETRYABLE_KINDS or (
            status_code is not None and status_code >= 500
        )

    def __repr__(self) -> str:
        return (
            f"ProviderError(kind={self.kind.value}, status_code={self.status_code}, "
            f"provider={self.provider}, message={self.message!r})"
        )


class PromptValidationError(RouterError):
    """
    Raised by the prompt enhancer before any network I/O.

    code holds the sub-kind (MISSING_REQUEST, INVALID_TYPE, EMPTY_REQUEST,
    REQUEST_TOO_LONG); the wire code is always VALIDATION_ERROR.
    """

    http_status = 400

    def __init__(self, message: str, code: str, field: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": ErrorCode.VALIDATION_ERROR.value,
            "kind": self.code,
            "field": self.field,
            "message": self.message,
            "httpStatus": self.http_status,
        }
