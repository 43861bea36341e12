"""Tests for auth/exceptions.py - typed auth failures."""

import pytest

from auth.exceptions import (
    AuthError,
    InvalidInputError,
    DuplicateAccountError,
    InvalidCredentialsError,
    RemoteAuthorityError,
    NetworkError,
    ServerError,
    SessionExpiredError,
    TooManyAttemptsError,
    InvalidCodeError,
    AccountNotFoundError,
    NotAuthenticatedError,
)


class TestErrorCodes:
    """Each exception carries its machine-readable code."""

    @pytest.mark.parametrize(
        "exc_class,code",
        [
            (InvalidInputError, "VALIDATION"),
            (DuplicateAccountError, "DUPLICATE"),
            (InvalidCredentialsError, "INVALID_CREDENTIALS"),
            (NetworkError, "NETWORK_ERROR"),
            (ServerError, "SERVER_ERROR"),
            (SessionExpiredError, "SESSION_EXPIRED"),
            (TooManyAttemptsError, "TOO_MANY_ATTEMPTS"),
            (AccountNotFoundError, "NOT_FOUND"),
            (NotAuthenticatedError, "NOT_AUTHENTICATED"),
        ],
    )
    def test_code(self, exc_class, code):
        assert exc_class().code == code

    def test_all_inherit_from_auth_error(self):
        assert issubclass(InvalidCodeError, AuthError)
        assert issubclass(SessionExpiredError, AuthError)


class TestMessages:
    """User-facing messages."""

    def test_default_message_used_when_none_given(self):
        error = NetworkError()
        assert error.message == NetworkError.default_message
        assert str(error) == error.message

    def test_custom_message_overrides_default(self):
        error = InvalidInputError("Missing required fields: email.")
        assert error.message == "Missing required fields: email."

    def test_invalid_code_reports_remaining_attempts(self):
        error = InvalidCodeError(attempts_remaining=2)
        assert error.attempts_remaining == 2
        assert error.message == "Invalid code. 2 attempts remaining."


class TestRemoteAuthorityErrors:
    """Fallback-eligible remote failures."""

    def test_network_and_server_are_remote_errors(self):
        assert isinstance(NetworkError(), RemoteAuthorityError)
        assert isinstance(ServerError(), RemoteAuthorityError)

    def test_invalid_credentials_is_not_remote_error(self):
        assert not isinstance(InvalidCredentialsError(), RemoteAuthorityError)

    def test_server_error_keeps_status(self):
        error = ServerError("Username taken", status_code=400)
        assert error.status_code == 400
        assert error.message == "Username taken"
