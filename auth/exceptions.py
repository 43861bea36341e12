"""Typed exceptions for auth failures.

Every exception carries a machine-readable ``code`` (see auth.results.ErrorCodes)
and a user-facing message. The session engine turns them into results; they
never reach the UI layer as raw exceptions.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""

    code = "INTERNAL_ERROR"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(AuthError):
    """Required fields missing or malformed. Detected before any network call."""

    code = "VALIDATION"
    default_message = "Please fill in all required fields."


class DuplicateAccountError(AuthError):
    """Username or email already belongs to an account."""

    code = "DUPLICATE"
    default_message = "A user with this username or email already exists."


class InvalidCredentialsError(AuthError):
    """
    Identifier/secret pair rejected.

    Raised for local misses and for HTTP 401 from the remote authority.
    """

    code = "INVALID_CREDENTIALS"
    default_message = "Invalid username or password."


class RemoteAuthorityError(AuthError):
    """Remote authority could not complete the call. Fallback-eligible."""


class NetworkError(RemoteAuthorityError):
    """Remote authority unreachable or the request timed out."""

    code = "NETWORK_ERROR"
    default_message = "Network error. Please check your connection and try again."


class ServerError(RemoteAuthorityError):
    """Remote authority answered with a failure payload."""

    code = "SERVER_ERROR"
    default_message = "Server error. Please try again later."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SessionExpiredError(AuthError):
    """No live verification record (never issued, consumed, purged or expired)."""

    code = "SESSION_EXPIRED"
    default_message = "Verification session expired. Please request a new code."


class TooManyAttemptsError(AuthError):
    """Verification attempt budget exhausted. Client must request a new code."""

    code = "TOO_MANY_ATTEMPTS"
    default_message = "Too many attempts. Please request a new verification code."


class InvalidCodeError(AuthError):
    """Submitted code does not match. Carries remaining attempts."""

    code = "INVALID_CODE"

    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__(f"Invalid code. {attempts_remaining} attempts remaining.")


class AccountNotFoundError(AuthError):
    """
    No account with the given id.

    Note: In user-facing responses, don't reveal whether an identifier exists.
    Login misses surface as InvalidCredentialsError instead.
    """

    code = "NOT_FOUND"
    default_message = "Account not found."


class NotAuthenticatedError(AuthError):
    """Operation needs an active session and there is none."""

    code = "NOT_AUTHENTICATED"
    default_message = "Please log in to continue."
