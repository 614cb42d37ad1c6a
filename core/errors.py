"""
Errors and Results - Failure taxonomy shared by the catalog, session and broker layers.

Pure algorithms raise the exceptions defined here. Public boundaries catch
them, log a diagnostic and hand an ApiResult back to the caller instead.
"""

from typing import Any, Optional
from dataclasses import dataclass
from enum import Enum


class KiteClientError(Exception):
    """Base class for all client errors."""
    pass


class InstrumentDataError(KiteClientError):
    """Raised when the instrument dataset or token file cannot be read."""
    pass


class ValidationError(KiteClientError):
    """Raised when a query is missing required fields."""
    pass


class NotFoundError(KiteClientError):
    """Raised when a catalog query matches no rows."""
    pass


class AuthenticationError(KiteClientError):
    """Raised when login or two-factor verification is rejected."""
    pass


class TransportError(KiteClientError):
    """Raised on network failures and timeouts talking to the broker."""
    pass


class ErrorKind(Enum):
    """Failure kind carried by a failed ApiResult."""
    IO = "io"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    TRANSPORT = "transport"
    BROKER = "broker"  # broker answered with its own error envelope


_KIND_BY_ERROR = {
    InstrumentDataError: ErrorKind.IO,
    ValidationError: ErrorKind.VALIDATION,
    NotFoundError: ErrorKind.NOT_FOUND,
    AuthenticationError: ErrorKind.AUTH,
    TransportError: ErrorKind.TRANSPORT,
}


@dataclass
class ApiResult:
    """Outcome of a query or an authenticated broker call."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    status_code: Optional[int] = None

    @classmethod
    def ok(cls, data: Any = None, status_code: Optional[int] = None) -> "ApiResult":
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        error: str,
        status_code: Optional[int] = None
    ) -> "ApiResult":
        return cls(success=False, error=error, error_kind=kind, status_code=status_code)

    @classmethod
    def from_exception(cls, exc: KiteClientError) -> "ApiResult":
        """Build a failed result from one of the client exceptions."""
        kind = _KIND_BY_ERROR.get(type(exc), ErrorKind.TRANSPORT)
        return cls.fail(kind, str(exc))

    def __bool__(self) -> bool:
        return self.success
