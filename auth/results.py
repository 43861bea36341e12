"""Normalized result envelope returned by every session engine verb."""

from typing import Any

from pydantic import BaseModel, Field

from auth.exceptions import AuthError, InvalidCodeError


class AuthErrorInfo(BaseModel):
    """Error details in a failed result."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    attempts_remaining: int | None = Field(
        default=None,
        description="Remaining verify attempts (INVALID_CODE only)",
    )


class AuthResult(BaseModel):
    """
    Unified result format for all session engine operations.

    Every verb returns this structure, so UI code never has to catch.
    """

    success: bool
    data: Any | None = None
    error: AuthErrorInfo | None = None


def ok(data: Any = None) -> AuthResult:
    """Create a success result."""
    return AuthResult(success=True, data=data, error=None)


def fail(code: str, message: str, attempts_remaining: int | None = None) -> AuthResult:
    """Create a failure result."""
    return AuthResult(
        success=False,
        data=None,
        error=AuthErrorInfo(
            code=code,
            message=message,
            attempts_remaining=attempts_remaining,
        ),
    )


def from_error(error: AuthError) -> AuthResult:
    """Create a failure result from a typed auth exception."""
    remaining = error.attempts_remaining if isinstance(error, InvalidCodeError) else None
    return fail(error.code, error.message, attempts_remaining=remaining)


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Input
    VALIDATION = "VALIDATION"
    DUPLICATE = "DUPLICATE"

    # Authentication
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Remote authority
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVER_ERROR = "SERVER_ERROR"

    # Phone verification
    SESSION_EXPIRED = "SESSION_EXPIRED"
    TOO_MANY_ATTEMPTS = "TOO_MANY_ATTEMPTS"
    INVALID_CODE = "INVALID_CODE"

    # Storage
    NOT_FOUND = "NOT_FOUND"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
