"""Session engine - the one component the UI layer talks to.

Owns the published session, persists it, and decides per flow whether to
trust the local credential store or the remote authority. Every public verb
returns an AuthResult; no exception escapes this module's public surface.

Lifecycle: UNINITIALIZED -> LOADING -> AUTHENTICATED | UNAUTHENTICATED.
"""

import functools
import logging
import re
import secrets
from contextlib import contextmanager
from typing import Any, Callable

from pydantic import ValidationError

from auth.config import AuthConfig
from auth.credential_store import (
    PHONE_EMAIL_DOMAIN,
    PHONE_PROVIDER,
    PHONE_USERNAME_PREFIX,
    CredentialStore,
    check_reserved,
    is_local_token,
    phone_digits,
)
from auth.exceptions import (
    AuthError,
    DuplicateAccountError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidInputError,
    NetworkError,
    NotAuthenticatedError,
    RemoteAuthorityError,
    ServerError,
    SessionExpiredError,
    TooManyAttemptsError,
)
from auth.results import AuthResult, ErrorCodes, fail, from_error, ok
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionStore
from auth.state import SessionPublisher, Subscriber
from auth.strategies import Strategy, run_in_order
from auth.types import Account, AccountInput, AuthStatus, SessionState, UserStats
from auth.verification import VerificationService
from clients.auth_api_client import (
    AuthApiClient,
    AuthApiError,
    AuthApiUnauthorized,
    AuthApiUnreachable,
)
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)

_PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s\-()]{5,19}$")


def _result_boundary(operation: str) -> Callable:
    """Convert anything raised by a public verb into a failure result."""

    def decorator(method: Callable[..., AuthResult]) -> Callable[..., AuthResult]:
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs) -> AuthResult:
            try:
                return method(self, *args, **kwargs)
            except AuthError as e:
                logger.info(f"{operation} failed: {e.code}")
                return from_error(e)
            except Exception:
                logger.exception(f"{operation} failed unexpectedly")
                return fail(
                    ErrorCodes.INTERNAL_ERROR,
                    "Something went wrong. Please try again.",
                )

        return wrapper

    return decorator


def _validate_phone(phone_number: str | None) -> str:
    phone_number = (phone_number or "").strip()
    if not _PHONE_PATTERN.match(phone_number):
        raise InvalidInputError("Please enter a valid phone number.")
    return phone_number


class SessionEngine:
    """Orchestrates login, registration, logout and phone verification.

    Handles:
    - Session restore at startup (with re-validation)
    - Local-first login with remote fallback
    - Remote-first registration with local fallback
    - Phone verification login
    - OAuth code exchange (remote only)
    - Access token refresh and authority-sent SMS codes
    - Profile, stats and account maintenance
    """

    def __init__(
        self,
        config: AuthConfig,
        credential_store: CredentialStore,
        verification_service: VerificationService,
        session_store: SessionStore,
        api_client: AuthApiClient,
        publisher: SessionPublisher,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._credential_store = credential_store
        self._verification = verification_service
        self._session_store = session_store
        self._api = api_client
        self._publisher = publisher
        self._security_logger = security_logger

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current published session."""
        return self._publisher.state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Receive every published SessionState. Returns an unsubscribe function."""
        return self._publisher.subscribe(callback)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _loading(self):
        self._publisher.update(is_loading=True)
        try:
            yield
        finally:
            if self._publisher.state.is_loading:
                self._publisher.update(is_loading=False)

    def _remote(self, call: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a remote authority call, translating client errors to auth errors."""
        try:
            return call(*args, **kwargs)
        except AuthApiUnreachable:
            raise NetworkError()
        except AuthApiUnauthorized:
            raise InvalidCredentialsError()
        except AuthApiError as e:
            raise ServerError(e.message, status_code=e.status_code)

    def _account_from_payload(self, data: Any) -> Account:
        if not isinstance(data, dict):
            raise ServerError("Authentication response is missing the user.")
        try:
            return Account.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed user from authority: {e.error_count()} error(s)")
            raise ServerError("Authentication response contained an invalid user.")

    def _token_from_payload(self, body: dict, *fields: str) -> str:
        for field in fields or ("token",):
            token = body.get(field)
            if isinstance(token, str) and token:
                return token
        raise ServerError("Authentication response is missing the token.")

    def _establish(self, token: str, user: Account, refresh_token: str | None = None) -> None:
        """Persist the session, then publish AUTHENTICATED."""
        self._session_store.save(token, user, refresh_token=refresh_token)
        self._publisher.publish(
            SessionState(
                status=AuthStatus.AUTHENTICATED,
                token=token,
                user=user,
                is_loading=False,
            )
        )

    def _require_session(self) -> SessionState:
        state = self.state
        if not state.is_authenticated or state.user is None or not state.token:
            raise NotAuthenticatedError()
        return state

    def _publish_user(self, user: Account) -> None:
        self._session_store.save_user(user)
        self._publisher.update(user=user)

    def _purge_local_state(self) -> None:
        """Remove persisted session keys and verification records.

        Every step runs even if an earlier one fails.
        """
        failed = self._session_store.purge()
        if failed:
            logger.error(f"Session keys left behind: {', '.join(failed)}")
        try:
            self._verification.purge_all()
        except Exception:
            logger.exception("Failed to purge verification records")

    def _release_verification_id(self, verification_id: str) -> None:
        """Forget the persisted verification id if it still points at verification_id."""
        if self._session_store.get_verification_id() == verification_id:
            self._session_store.clear_verification_id()

    def _audit(self, event: SecurityEvent, **kwargs) -> None:
        try:
            self._security_logger.log(event, **kwargs)
        except Exception:
            logger.exception(f"Failed to record security event {event.value}")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self) -> SessionState:
        """Restore the persisted session, if any, and publish the outcome.

        Local sessions are re-validated against the credential store, remote
        ones against the authority. Anything that does not re-validate is
        cleared.
        """
        self._publisher.publish(SessionState(status=AuthStatus.LOADING, is_loading=True))

        invalidated = True
        try:
            if self._config.seed_demo_accounts:
                self._credential_store.seed_demo_accounts()

            persisted = self._session_store.load()
            if persisted is None:
                invalidated = False
            else:
                token, user = persisted
                if self._revalidate(token, user):
                    self._publisher.publish(
                        SessionState(status=AuthStatus.AUTHENTICATED, token=token, user=user)
                    )
                    self._audit(SecurityEvent.SESSION_RESTORED, account_id=user.id)
                    logger.info(f"Session restored for account {user.id}")
                    return self.state

                self._audit(SecurityEvent.SESSION_INVALIDATED, account_id=user.id)
                logger.info(f"Persisted session for account {user.id} failed re-validation")
        except Exception:
            logger.exception("Session restore failed")

        if invalidated:
            self._purge_local_state()
        else:
            # Leftover halves of a session go; a phone verification started
            # before the restart stays usable
            failed = self._session_store.purge(keep_verification=True)
            if failed:
                logger.error(f"Session keys left behind: {', '.join(failed)}")
        self._publisher.publish(SessionState(status=AuthStatus.UNAUTHENTICATED))
        return self.state

    def _revalidate(self, token: str, user: Account) -> bool:
        if is_local_token(token):
            return self._credential_store.lookup(user.id) is not None
        try:
            return bool(self._remote(self._api.verify_token, token))
        except AuthError as e:
            logger.warning(f"Token re-validation failed: {e.code}")
            return False

    # ------------------------------------------------------------------
    # Login / registration
    # ------------------------------------------------------------------

    def _local_login(self, identifier: str, secret: str) -> tuple[str, Account]:
        account = self._credential_store.authenticate(identifier, secret)
        if account is None:
            raise InvalidCredentialsError()
        return self._credential_store.generate_token(account.id), account

    def _remote_login(self, identifier: str, secret: str) -> tuple[str, Account]:
        body = self._remote(self._api.login, identifier, secret)
        return self._token_from_payload(body), self._account_from_payload(body.get("user"))

    @_result_boundary("login")
    def login(self, identifier: str, secret: str) -> AuthResult:
        """Authenticate with username/email and password.

        The credential store is tried first (offline and demo accounts), the
        remote authority second. Failures never change the session.
        """
        identifier = (identifier or "").strip()
        if not identifier or not secret:
            raise InvalidInputError("Please enter your username and password.")

        with self._loading():
            try:
                outcome = run_in_order(
                    [
                        Strategy(
                            "local",
                            lambda: self._local_login(identifier, secret),
                            fallback_on=(InvalidCredentialsError,),
                        ),
                        Strategy("remote", lambda: self._remote_login(identifier, secret)),
                    ]
                )
            except AuthError as e:
                self._audit(
                    SecurityEvent.LOGIN_FAILED,
                    identifier=identifier,
                    details={"reason": e.code},
                )
                raise

            token, user = outcome.value
            self._establish(token, user)

        self._audit(
            SecurityEvent.LOGIN_SUCCEEDED,
            account_id=user.id,
            identifier=identifier,
            details={"authority": outcome.strategy},
        )
        return ok({"user": user, "authority": outcome.strategy})

    def _remote_register(self, account_input: AccountInput) -> tuple[str, Account]:
        body = self._remote(
            self._api.register,
            account_input.model_dump(exclude_none=True),
        )
        return self._token_from_payload(body), self._account_from_payload(body.get("user"))

    def _local_register(self, account_input: AccountInput) -> tuple[str, Account]:
        account = self._credential_store.register(account_input)
        return self._credential_store.generate_token(account.id), account

    @_result_boundary("register")
    def register(self, account_input: AccountInput | dict[str, Any]) -> AuthResult:
        """Create an account and sign in.

        Missing fields and local duplicates fail before any network call.
        The remote authority is tried first; if it is unreachable or rejects
        the request, the account is created locally.
        """
        if not isinstance(account_input, AccountInput):
            try:
                account_input = AccountInput.model_validate(account_input or {})
            except ValidationError:
                raise InvalidInputError()

        missing = account_input.missing_fields()
        if missing:
            raise InvalidInputError(f"Missing required fields: {', '.join(missing)}.")

        if account_input.provider == PHONE_PROVIDER:
            raise InvalidInputError("Phone accounts are created by verifying the number.")
        check_reserved(account_input.username, account_input.email, account_input.provider)

        if self._credential_store.exists(account_input.username.strip(), account_input.email.strip()):
            raise DuplicateAccountError()

        with self._loading():
            outcome = run_in_order(
                [
                    Strategy(
                        "remote",
                        lambda: self._remote_register(account_input),
                        fallback_on=(RemoteAuthorityError,),
                    ),
                    Strategy("local", lambda: self._local_register(account_input)),
                ]
            )
            token, user = outcome.value
            self._establish(token, user)

        self._audit(
            SecurityEvent.ACCOUNT_CREATED,
            account_id=user.id,
            identifier=account_input.username,
            details={"authority": outcome.strategy},
        )
        return ok({"user": user, "authority": outcome.strategy})

    @_result_boundary("oauth login")
    def login_with_oauth_code(self, provider: str, code: str) -> AuthResult:
        """Exchange an OAuth authorization code with the remote authority.

        No local fallback: there is no offline equivalent of OAuth.
        """
        provider = (provider or "").strip().lower()
        if not provider or not code:
            raise InvalidInputError("Sign-in provider and authorization code are required.")

        with self._loading():
            try:
                body = self._remote(
                    self._api.exchange_oauth_code,
                    provider,
                    code,
                    self._config.oauth_redirect_uri,
                )
                token = self._token_from_payload(body)
                user_data = body.get("user")
                if isinstance(user_data, dict) and "provider" not in user_data:
                    user_data = {**user_data, "provider": provider}
                user = self._account_from_payload(user_data)
            except AuthError as e:
                self._audit(
                    SecurityEvent.LOGIN_FAILED,
                    details={"reason": e.code, "authority": provider},
                )
                raise

            self._establish(token, user)

        self._audit(
            SecurityEvent.LOGIN_SUCCEEDED,
            account_id=user.id,
            details={"authority": provider},
        )
        return ok({"user": user, "authority": provider})

    @_result_boundary("email verification")
    def verify_email(self, verification_token: str) -> AuthResult:
        """Confirm an email verification link and sign in with the issued tokens."""
        if not verification_token:
            raise InvalidInputError("Verification token is required.")

        with self._loading():
            body = self._remote(self._api.verify_email, verification_token)
            token = self._token_from_payload(body, "access_token", "token")
            user = self._account_from_payload(body.get("user"))
            refresh_token = body.get("refresh_token")
            self._establish(
                token,
                user,
                refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            )

        self._audit(
            SecurityEvent.LOGIN_SUCCEEDED,
            account_id=user.id,
            details={"authority": "email"},
        )
        return ok({"user": user, "message": body.get("message")})

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    @_result_boundary("logout")
    def logout(self) -> AuthResult:
        """Sign out.

        The remote call is best-effort; local state is reset no matter
        which step fails.
        """
        state = self.state
        self._publisher.update(is_loading=True)

        try:
            if state.token and not is_local_token(state.token):
                try:
                    self._remote(self._api.logout, state.token)
                except Exception as e:
                    logger.warning(f"Remote logout failed (non-critical): {e}")

            self._purge_local_state()
            self._audit(
                SecurityEvent.LOGOUT,
                account_id=state.user.id if state.user else None,
            )
        finally:
            self._publisher.publish(SessionState(status=AuthStatus.UNAUTHENTICATED))

        logger.info("Logout complete")
        return ok({"message": "Logged out successfully."})

    # ------------------------------------------------------------------
    # Token refresh
    # ------------------------------------------------------------------

    @_result_boundary("refresh token")
    def refresh_auth_token(self) -> AuthResult:
        """Trade the persisted refresh token for a new access token.

        Any failure ends the session: the user is logged out and has to
        sign in again.
        """
        state = self._require_session()

        try:
            refresh_token = self._session_store.get_refresh_token()
            if not refresh_token:
                raise NotAuthenticatedError("No refresh token available.")
            body = self._remote(self._api.refresh_token, refresh_token)
            access_token = self._token_from_payload(body, "access_token", "token")
            new_refresh = body.get("refresh_token")
            if not isinstance(new_refresh, str) or not new_refresh:
                new_refresh = refresh_token
        except AuthError as e:
            logger.warning(f"Token refresh failed, logging out: {e.code}")
            self.logout()
            raise NotAuthenticatedError("Session expired. Please login again.")

        self._establish(access_token, state.user, refresh_token=new_refresh)
        logger.info("Access token refreshed")
        return ok({"token": access_token})

    # ------------------------------------------------------------------
    # Phone verification
    # ------------------------------------------------------------------

    @_result_boundary("send sms verification")
    def send_sms_verification(self, phone_number: str) -> AuthResult:
        """Ask the remote authority to text a code to phone_number.

        Used to confirm the number of an account the authority owns; the
        session does not change.
        """
        phone_number = _validate_phone(phone_number)

        with self._loading():
            body = self._remote(
                self._api.send_sms_verification,
                phone_number,
                token=self.state.token,
            )

        self._audit(
            SecurityEvent.VERIFICATION_SENT,
            identifier=phone_number,
            details={"authority": "remote"},
        )
        return ok({"message": body.get("message") or "Verification code sent."})

    @_result_boundary("verify sms code")
    def verify_sms_code(self, phone_number: str, code: str) -> AuthResult:
        """Confirm a code texted by send_sms_verification."""
        phone_number = _validate_phone(phone_number)
        if not code:
            raise InvalidInputError("Please enter the verification code.")

        with self._loading():
            try:
                body = self._remote(
                    self._api.verify_sms_code,
                    phone_number,
                    code,
                    token=self.state.token,
                )
            except AuthError as e:
                self._audit(
                    SecurityEvent.VERIFICATION_FAILED,
                    identifier=phone_number,
                    details={"reason": e.code, "authority": "remote"},
                )
                raise

        self._audit(
            SecurityEvent.VERIFICATION_SUCCEEDED,
            account_id=self.state.user.id if self.state.user else None,
            identifier=phone_number,
            details={"authority": "remote"},
        )
        return ok({"message": body.get("message") or "Phone number verified successfully!"})

    def _send_result(self, result) -> AuthResult:
        self._session_store.set_verification_id(result.verification_id)
        data = {
            "verification_id": result.verification_id,
            "message": "Verification code sent.",
        }
        if result.debug_code is not None:
            data["debug_code"] = result.debug_code
            data["message"] = f"Development mode: use code {result.debug_code}"
        return ok(data)

    @_result_boundary("send phone verification")
    def send_phone_verification(self, phone_number: str) -> AuthResult:
        """Issue a one-time code for phone_number and remember its verification id."""
        phone_number = _validate_phone(phone_number)

        with self._loading():
            result = self._verification.send_code(phone_number)
            response = self._send_result(result)

        self._audit(SecurityEvent.VERIFICATION_SENT, identifier=phone_number)
        return response

    @_result_boundary("resend verification code")
    def resend_verification_code(self, phone_number: str) -> AuthResult:
        """Replace the outstanding code (or issue a first one)."""
        phone_number = _validate_phone(phone_number)

        with self._loading():
            result = self._verification.resend(
                self._session_store.get_verification_id(),
                phone_number,
            )
            response = self._send_result(result)

        self._audit(
            SecurityEvent.VERIFICATION_SENT,
            identifier=phone_number,
            details={"resend": True},
        )
        return response

    def _phone_account(self, phone_number: str) -> Account:
        """Account derived from the phone number; reused on later logins.

        Raises:
            DuplicateAccountError: If the account's username or email is
                held by an account that was not created for this number.
        """
        existing = self._credential_store.find_by_phone(phone_number)
        if existing is not None:
            return existing

        digits = phone_digits(phone_number)
        return self._credential_store.register(
            AccountInput(
                username=f"{PHONE_USERNAME_PREFIX}{digits}",
                email=f"{digits}{PHONE_EMAIL_DOMAIN}",
                # Never used for password login; phone accounts sign in by code
                password=secrets.token_urlsafe(32),
                first_name="Phone User",
                last_name=digits[-4:],
                phone=phone_number,
                provider=PHONE_PROVIDER,
            )
        )

    @_result_boundary("verify phone code")
    def verify_phone_code(
        self,
        phone_number: str,
        code: str,
        verification_id: str | None = None,
    ) -> AuthResult:
        """Check a code and sign in as the phone number's account."""
        if not code:
            raise InvalidInputError("Please enter the verification code.")

        verification_id = verification_id or self._session_store.get_verification_id()
        if not verification_id:
            raise SessionExpiredError()

        with self._loading():
            try:
                verified_phone = self._verification.verify_code(verification_id, code)
            except (SessionExpiredError, TooManyAttemptsError) as e:
                self._release_verification_id(verification_id)
                event = (
                    SecurityEvent.VERIFICATION_EXHAUSTED
                    if isinstance(e, TooManyAttemptsError)
                    else SecurityEvent.VERIFICATION_FAILED
                )
                self._audit(event, identifier=phone_number, details={"reason": e.code})
                raise
            except InvalidCodeError as e:
                self._audit(
                    SecurityEvent.VERIFICATION_FAILED,
                    identifier=phone_number,
                    details={"reason": e.code, "attempts_remaining": e.attempts_remaining},
                )
                raise

            self._release_verification_id(verification_id)
            if phone_number and phone_number.strip() != verified_phone:
                logger.warning("Verified phone differs from the number supplied by the caller")

            account = self._phone_account(verified_phone)
            token = self._credential_store.generate_token(account.id)
            self._establish(token, account)

        self._audit(
            SecurityEvent.VERIFICATION_SUCCEEDED,
            account_id=account.id,
            identifier=verified_phone,
        )
        return ok({"user": account, "message": "Phone number verified successfully!"})

    # ------------------------------------------------------------------
    # Profile and stats
    # ------------------------------------------------------------------

    @_result_boundary("user stats")
    def get_user_stats(self) -> AuthResult:
        """Usage counters for the signed-in user, under data["stats"].

        Remote sessions ask the authority, local ones read the credential
        store. Always succeeds; any failure yields all-zero stats.
        """
        return ok({"stats": self._load_stats()})

    def _load_stats(self) -> UserStats:
        try:
            state = self.state
            if not state.is_authenticated or state.user is None:
                return UserStats()

            if not is_local_token(state.token):
                body = self._remote(self._api.get_user_stats, state.token)
                return UserStats.model_validate(body)

            account = self._credential_store.lookup(state.user.id)
            return account.stats() if account else UserStats()
        except (AuthError, ValidationError) as e:
            logger.warning(f"User stats unavailable: {e}")
        except Exception:
            logger.exception("User stats lookup failed")
        return UserStats()

    @_result_boundary("update profile")
    def update_profile(self, fields: dict[str, Any]) -> AuthResult:
        """Change profile fields and merge them into the persisted session."""
        state = self._require_session()
        if not fields:
            raise InvalidInputError("Nothing to update.")

        with self._loading():
            if is_local_token(state.token):
                updated = self._credential_store.update(state.user.id, fields)
            else:
                body = self._remote(self._api.update_profile, state.token, fields)
                updated = self._account_from_payload(
                    {**state.user.model_dump(), **fields, **body}
                )
            self._publish_user(updated)

        return ok({"user": updated})

    @_result_boundary("refresh profile")
    def refresh_profile(self) -> AuthResult:
        """Re-read the profile. Failures leave the current profile unchanged."""
        state = self._require_session()

        try:
            if is_local_token(state.token):
                refreshed = self._credential_store.lookup(state.user.id) or state.user
            else:
                body = self._remote(self._api.get_profile, state.token)
                refreshed = self._account_from_payload({**state.user.model_dump(), **body})
        except AuthError as e:
            logger.warning(f"Profile refresh failed, keeping current profile: {e.code}")
            return ok({"user": state.user})

        self._publish_user(refreshed)
        return ok({"user": refreshed})

    @_result_boundary("increment stats")
    def increment_user_stats(self, delta: dict[str, int]) -> AuthResult:
        """Adjust usage counters of a local account (floored at zero)."""
        state = self._require_session()
        if not is_local_token(state.token):
            raise InvalidInputError("Usage counters of this account are kept by the server.")

        updated = self._credential_store.increment_counters(state.user.id, delta)
        self._publish_user(updated)
        return ok({"stats": updated.stats()})

    # ------------------------------------------------------------------
    # Password and account maintenance
    # ------------------------------------------------------------------

    @_result_boundary("reset password")
    def reset_password(self, email: str) -> AuthResult:
        """Ask the remote authority to send password reset instructions."""
        email = (email or "").strip().lower()
        if not email:
            raise InvalidInputError("Please enter your email address.")

        body = self._remote(self._api.reset_password, email)
        self._audit(SecurityEvent.PASSWORD_RESET_REQUESTED, identifier=email)
        return ok({"message": body.get("message") or "Password reset instructions sent."})

    @_result_boundary("change password")
    def change_password(self, current_password: str, new_password: str) -> AuthResult:
        """Replace the signed-in user's password after checking the current one."""
        state = self._require_session()
        if not current_password or not new_password:
            raise InvalidInputError("Please enter your current and new password.")

        with self._loading():
            if is_local_token(state.token):
                account = self._credential_store.authenticate(state.user.username, current_password)
                if account is None:
                    raise InvalidCredentialsError("Current password is incorrect.")
                self._credential_store.set_password(account.id, new_password)
            else:
                self._remote(
                    self._api.change_password,
                    state.token,
                    current_password,
                    new_password,
                )

        self._audit(SecurityEvent.PASSWORD_CHANGED, account_id=state.user.id)
        return ok({"message": "Password changed successfully."})

    @_result_boundary("delete account")
    def delete_account(self, password: str) -> AuthResult:
        """Delete the signed-in account and purge the session."""
        state = self._require_session()
        if not password:
            raise InvalidInputError("Please enter your password.")

        with self._loading():
            if is_local_token(state.token):
                account = self._credential_store.authenticate(state.user.username, password)
                if account is None:
                    raise InvalidCredentialsError("Password is incorrect.")
                self._credential_store.delete(account.id)
            else:
                self._remote(self._api.delete_account, state.token, password)

            try:
                self._purge_local_state()
            finally:
                self._publisher.publish(SessionState(status=AuthStatus.UNAUTHENTICATED))

        self._audit(SecurityEvent.ACCOUNT_DELETED, account_id=state.user.id)
        return ok({"message": "Account deleted successfully."})


def create_session_engine(
    config: AuthConfig,
    valkey: ValkeyClient | None = None,
    api_client: AuthApiClient | None = None,
) -> SessionEngine:
    """Wire a SessionEngine with its collaborators.

    Create one per process; it is the only writer of the published session.
    """
    valkey = valkey or ValkeyClient(config.valkey_url)
    api_client = api_client or AuthApiClient(
        config.api_base_url,
        timeout_seconds=config.request_timeout_seconds,
    )

    return SessionEngine(
        config=config,
        credential_store=CredentialStore(valkey, config),
        verification_service=VerificationService(valkey, config),
        session_store=SessionStore(valkey),
        api_client=api_client,
        publisher=SessionPublisher(),
        security_logger=SecurityLogger(valkey, retention=config.security_event_retention),
    )
