"""Persisted session - survives process restart.

One active token/user pair plus the current verification id, each under
its own key so logout can remove them one by one.
"""

import logging

from pydantic import ValidationError

from clients.valkey_client import ValkeyClient
from auth.types import Account

logger = logging.getLogger(__name__)


class SessionStore:
    """Durable storage for the single active session."""

    TOKEN_KEY = "session:token"
    USER_KEY = "session:user"
    REFRESH_TOKEN_KEY = "session:refresh_token"
    VERIFICATION_ID_KEY = "session:verification_id"

    SESSION_KEYS = (TOKEN_KEY, USER_KEY, REFRESH_TOKEN_KEY, VERIFICATION_ID_KEY)

    def __init__(self, valkey: ValkeyClient):
        self._valkey = valkey

    def save(self, token: str, user: Account, refresh_token: str | None = None) -> None:
        """Persist token and user (and refresh token when the authority issued one)."""
        self._valkey.set(self.TOKEN_KEY, token)
        self._valkey.set_json(self.USER_KEY, user.model_dump(mode="json"))
        if refresh_token:
            self._valkey.set(self.REFRESH_TOKEN_KEY, refresh_token)
        else:
            self._valkey.delete(self.REFRESH_TOKEN_KEY)

    def save_user(self, user: Account) -> None:
        """Replace the persisted user, keeping the token."""
        self._valkey.set_json(self.USER_KEY, user.model_dump(mode="json"))

    def load(self) -> tuple[str, Account] | None:
        """Return the persisted (token, user) pair.

        Returns None if either half is missing or the user record is unreadable.
        """
        token = self._valkey.get(self.TOKEN_KEY)
        if not token:
            return None

        try:
            data = self._valkey.get_json(self.USER_KEY)
        except ValueError as e:
            logger.warning(f"Persisted user is not valid JSON: {e}")
            return None
        if data is None:
            return None

        try:
            user = Account.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Persisted user failed validation: {e.error_count()} error(s)")
            return None

        return token, user

    def get_refresh_token(self) -> str | None:
        return self._valkey.get(self.REFRESH_TOKEN_KEY)

    def get_verification_id(self) -> str | None:
        return self._valkey.get(self.VERIFICATION_ID_KEY)

    def set_verification_id(self, verification_id: str) -> None:
        self._valkey.set(self.VERIFICATION_ID_KEY, verification_id)

    def clear_verification_id(self) -> None:
        self._valkey.delete(self.VERIFICATION_ID_KEY)

    def stored_keys(self) -> list[str]:
        """Session keys currently present in storage."""
        return [key for key in self.SESSION_KEYS if self._valkey.exists(key)]

    def purge(self, keep_verification: bool = False) -> list[str]:
        """Remove every session key individually.

        A failure on one key does not stop the others. With keep_verification
        the id of an in-flight phone verification is left in place.

        Returns:
            Keys that could not be removed.
        """
        failed = []
        for key in self.SESSION_KEYS:
            if keep_verification and key == self.VERIFICATION_ID_KEY:
                continue
            try:
                self._valkey.delete(key)
            except Exception:
                logger.exception(f"Failed to remove session key {key}")
                failed.append(key)
        return failed
