"""
HTTP client for the remote authentication authority.

JSON in, JSON out. Every call is bounded by a timeout and never retried.
Failures are classified into three cases the session engine reports
differently: unreachable, 401, and any other rejection.
"""

import json
import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)


class AuthApiError(Exception):
    """Base class for remote authority failures."""

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message or self.__class__.__name__)


class AuthApiUnreachable(AuthApiError):
    """Connection failed or the request timed out."""


class AuthApiUnauthorized(AuthApiError):
    """Authority answered 401."""


class AuthApiRejected(AuthApiError):
    """Authority answered with any other failure status or a malformed body."""


class AuthEndpoints:
    """Paths relative to the authority's base URL."""

    LOGIN = "/api/auth/login/"
    REGISTER = "/api/auth/register/"
    LOGOUT = "/api/auth/logout/"
    VERIFY_TOKEN = "/api/auth/verify-token/"
    REFRESH_TOKEN = "/api/auth/refresh-token/"
    OAUTH = "/api/auth/{provider}/"
    VERIFY_EMAIL = "/api/auth/verify-email/{token}/"
    SEND_SMS = "/api/auth/send-sms-verification/"
    VERIFY_SMS = "/api/auth/verify-sms-code/"
    RESET_PASSWORD = "/api/auth/reset-password/"
    CHANGE_PASSWORD = "/api/auth/change-password/"
    DELETE_ACCOUNT = "/api/auth/delete-account/"
    PROFILE = "/api/profile/"
    USER_STATS = "/api/users/me/stats/"


def authorization_header(token: str) -> str:
    """JWT-looking tokens use Bearer, legacy tokens use Token."""
    if "." in token and len(token) > 100:
        return f"Bearer {token}"
    return f"Token {token}"


class AuthApiClient:
    """Calls the remote authority on behalf of the session engine."""

    def __init__(self, base_url: str, timeout_seconds: float = 10):
        """
        Initialize with the authority location.

        Args:
            base_url: Scheme and host of the authority (e.g., https://api.example.com)
            timeout_seconds: Bound on every request

        Raises:
            ValueError: If base_url is empty
        """
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._http = requests.Session()
        self._http.headers.update({"Content-Type": "application/json"})

    def _request(
        self,
        method: str,
        path: str,
        token: str | None = None,
        payload: dict | None = None,
    ) -> dict[str, Any]:
        """
        Send one request and return the decoded JSON object.

        Raises:
            AuthApiUnreachable: Connection failure or timeout
            AuthApiUnauthorized: HTTP 401
            AuthApiRejected: Any other non-2xx status or a malformed body
        """
        headers = {}
        if token:
            headers["Authorization"] = authorization_header(token)

        try:
            response = self._http.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.warning(f"Auth authority unreachable ({method} {path}): {e}")
            raise AuthApiUnreachable(f"Connection failed: {e}")

        if response.status_code == 204 or not response.content:
            body: Any = {}
        else:
            try:
                body = response.json()
            except (json.JSONDecodeError, ValueError):
                body = None

        if response.status_code == 401:
            message = _error_message(body)
            logger.info(f"Auth authority rejected credentials ({method} {path})")
            raise AuthApiUnauthorized(message, status_code=401)

        if not 200 <= response.status_code < 300:
            message = _error_message(body)
            logger.error(f"Auth authority error {response.status_code} ({method} {path}): {message}")
            raise AuthApiRejected(message, status_code=response.status_code)

        if not isinstance(body, dict):
            logger.error(f"Auth authority returned invalid JSON ({method} {path})")
            raise AuthApiRejected("Invalid response from server.", status_code=response.status_code)

        return body

    def login(self, username: str, password: str) -> dict[str, Any]:
        """Exchange credentials for {token, user}."""
        return self._request(
            "POST",
            AuthEndpoints.LOGIN,
            payload={"username": username, "password": password},
        )

    def register(self, account: dict[str, Any]) -> dict[str, Any]:
        """Create an account remotely. Returns {token, user}."""
        return self._request("POST", AuthEndpoints.REGISTER, payload=account)

    def logout(self, token: str) -> None:
        """Invalidate token on the authority."""
        self._request("POST", AuthEndpoints.LOGOUT, token=token)

    def verify_token(self, token: str) -> bool:
        """Ask the authority whether token is still valid."""
        body = self._request(
            "POST",
            AuthEndpoints.VERIFY_TOKEN,
            token=token,
            payload={"token": token},
        )
        return bool(body.get("valid"))

    def refresh_token(self, refresh_token: str) -> dict[str, Any]:
        """Trade a refresh token for {access_token, refresh_token}."""
        return self._request(
            "POST",
            AuthEndpoints.REFRESH_TOKEN,
            payload={"refresh_token": refresh_token},
        )

    def exchange_oauth_code(
        self,
        provider: str,
        code: str,
        redirect_uri: str,
    ) -> dict[str, Any]:
        """Trade an OAuth authorization code for {token, user}."""
        return self._request(
            "POST",
            AuthEndpoints.OAUTH.format(provider=provider),
            payload={"code": code, "redirect_uri": redirect_uri},
        )

    def verify_email(self, verification_token: str) -> dict[str, Any]:
        """Confirm an email verification link. Returns {access_token, refresh_token, user}."""
        return self._request(
            "POST",
            AuthEndpoints.VERIFY_EMAIL.format(token=verification_token),
        )

    def send_sms_verification(self, phone: str, token: str | None = None) -> dict[str, Any]:
        """Have the authority text a verification code to phone."""
        return self._request(
            "POST",
            AuthEndpoints.SEND_SMS,
            token=token,
            payload={"phone": phone},
        )

    def verify_sms_code(
        self,
        phone: str,
        code: str,
        token: str | None = None,
    ) -> dict[str, Any]:
        """Confirm a code sent by send_sms_verification."""
        return self._request(
            "POST",
            AuthEndpoints.VERIFY_SMS,
            token=token,
            payload={"phone": phone, "code": code},
        )

    def get_profile(self, token: str) -> dict[str, Any]:
        return self._request("GET", AuthEndpoints.PROFILE, token=token)

    def update_profile(self, token: str, fields: dict[str, Any]) -> dict[str, Any]:
        return self._request("PUT", AuthEndpoints.PROFILE, token=token, payload=fields)

    def get_user_stats(self, token: str) -> dict[str, Any]:
        return self._request("GET", AuthEndpoints.USER_STATS, token=token)

    def reset_password(self, email: str) -> dict[str, Any]:
        return self._request("POST", AuthEndpoints.RESET_PASSWORD, payload={"email": email})

    def change_password(
        self,
        token: str,
        current_password: str,
        new_password: str,
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            AuthEndpoints.CHANGE_PASSWORD,
            token=token,
            payload={"current_password": current_password, "new_password": new_password},
        )

    def delete_account(self, token: str, password: str) -> dict[str, Any]:
        return self._request(
            "DELETE",
            AuthEndpoints.DELETE_ACCOUNT,
            token=token,
            payload={"password": password},
        )

    def close(self) -> None:
        self._http.close()


def _error_message(body: Any) -> str | None:
    """Pull the authority's error/message string out of a failure body."""
    if isinstance(body, dict):
        for field in ("error", "message", "detail"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    return None
