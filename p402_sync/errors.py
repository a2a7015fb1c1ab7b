"""
Error taxonomy for the p402 sync runtime.

Stores never raise these past their own boundary on read fetches; they
record them in ``last_error`` (or per-agent ``task_errors``) instead.
Write operations and the chat service raise them to the caller.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Coarse classification the UI can branch on."""

    AUTH_REQUIRED = "auth_required"
    NETWORK = "network"
    NOT_FOUND = "not_found"
    MAPPING = "mapping"
    TOKEN_ACQUISITION = "token_acquisition"


class SyncError(Exception):
    """Base exception for all p402 sync errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error (optional).
        status_code: HTTP status of the failed request, when there was one.
    """

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\nDetails: {self.details}"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class AuthRequired(SyncError):
    """No valid access token at call time.

    Not fatal: the caller should wait for authentication and try again.
    """

    kind = ErrorKind.AUTH_REQUIRED

    def __init__(self, message: str = "Authentication required", **kwargs) -> None:
        super().__init__(message, **kwargs)


class NetworkError(SyncError):
    """Remote call failed, timed out, or returned a non-success status."""

    kind = ErrorKind.NETWORK


class NotFound(SyncError):
    """Referenced agent, task, or thread does not exist server-side."""

    kind = ErrorKind.NOT_FOUND


class MappingError(SyncError):
    """Remote payload did not match the expected record shape."""

    kind = ErrorKind.MAPPING


class TokenAcquisitionFailed(SyncError):
    """The identity provider raised or timed out while issuing a token."""

    kind = ErrorKind.TOKEN_ACQUISITION

    def __init__(self, message: str = "Failed to acquire access token", **kwargs) -> None:
        super().__init__(message, **kwargs)
