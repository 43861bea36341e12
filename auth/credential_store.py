"""Credential store - durable account records and password checks.

Accounts live in Valkey as JSON records with two unique indexes
(username, lowercased email) claimed with SET NX. Phone accounts also
claim a third index on the digits of their verified number. Secrets are
bcrypt hashes; callers only ever see Account objects with the hash stripped.
"""

import logging
import re
from typing import Any

import bcrypt
from pydantic import ValidationError

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import AccountNotFoundError, DuplicateAccountError, InvalidInputError
from auth.types import COUNTER_FIELDS, Account, AccountInput, StoredAccount
from utils.timezone import epoch_millis, now_utc

logger = logging.getLogger(__name__)

# Tokens minted locally carry this prefix so callers can tell them apart
# from tokens issued by the remote authority.
LOCAL_TOKEN_PREFIX = "ereft_token_"

# Username prefix and email domain of phone accounts; not available to
# any other provider
PHONE_USERNAME_PREFIX = "phone_"
PHONE_EMAIL_DOMAIN = "@phone.local"
PHONE_PROVIDER = "phone"

_BCRYPT_MAX_BYTES = 72

_UPDATABLE_FIELDS = frozenset(
    {
        "username",
        "email",
        "first_name",
        "last_name",
        "phone",
        "profile_picture",
        "is_active",
        "is_staff",
        *COUNTER_FIELDS,
    }
)

_DEMO_ACCOUNTS = (
    {
        "username": "demo",
        "email": "demo@ereft.com",
        "password": "demo123",
        "first_name": "Demo",
        "last_name": "User",
        "counters": {
            "total_listings": 5,
            "active_listings": 3,
            "pending_review": 1,
            "favorites_count": 8,
            "views_total": 124,
            "messages_unread": 2,
            "properties_sold": 2,
            "recent_views": 15,
        },
    },
    {
        "username": "admin",
        "email": "admin@ereft.com",
        "password": "admin123",
        "first_name": "Admin",
        "last_name": "User",
        "is_staff": True,
        "counters": {
            "total_listings": 15,
            "active_listings": 12,
            "pending_review": 3,
            "favorites_count": 3,
            "views_total": 856,
            "messages_unread": 0,
            "properties_sold": 8,
            "recent_views": 45,
        },
    },
)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against its bcrypt hash."""
    encoded = password.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))


def is_local_token(token: str | None) -> bool:
    """True if token was minted by the credential store (not the remote authority)."""
    return bool(token) and token.startswith(LOCAL_TOKEN_PREFIX)


def phone_digits(phone_number: str | None) -> str:
    """Digits of a phone number, the form phone accounts are keyed by."""
    return re.sub(r"\D", "", phone_number or "")


def check_reserved(username: str, email: str, provider: str) -> None:
    """Reject a username or email reserved for phone accounts.

    Raises:
        InvalidInputError: If a non-phone account asks for a phone_ username
            or a phone.local email.
    """
    if provider == PHONE_PROVIDER:
        return
    if username.strip().lower().startswith(PHONE_USERNAME_PREFIX):
        raise InvalidInputError(
            f"Usernames starting with '{PHONE_USERNAME_PREFIX}' are reserved."
        )
    if email.strip().lower().endswith(PHONE_EMAIL_DOMAIN):
        raise InvalidInputError(f"Email addresses ending in '{PHONE_EMAIL_DOMAIN}' are reserved.")


def _check_secret(password: str) -> None:
    if not password:
        raise InvalidInputError("Password is required.")
    if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
        raise InvalidInputError(
            f"Password must be at most {_BCRYPT_MAX_BYTES} bytes long."
        )


class CredentialStore:
    """Durable account records keyed by id, unique on username and email."""

    RECORD_PREFIX = "accounts:record:"
    USERNAME_PREFIX = "accounts:username:"
    EMAIL_PREFIX = "accounts:email:"
    PHONE_PREFIX = "accounts:phone:"
    ID_SEQUENCE_KEY = "accounts:next_id"
    ID_SET_KEY = "accounts:ids"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config

    def _record_key(self, account_id: int | str) -> str:
        return f"{self.RECORD_PREFIX}{account_id}"

    def _username_key(self, username: str) -> str:
        return f"{self.USERNAME_PREFIX}{username}"

    def _email_key(self, email: str) -> str:
        """Email index key (normalized to lowercase)."""
        return f"{self.EMAIL_PREFIX}{email.strip().lower()}"

    def _phone_key(self, digits: str) -> str:
        return f"{self.PHONE_PREFIX}{digits}"

    def _load(self, account_id: int | str) -> StoredAccount | None:
        data = self._valkey.get_json(self._record_key(account_id))
        if data is None:
            return None
        return StoredAccount.model_validate(data)

    def _save(self, account: StoredAccount) -> None:
        self._valkey.set_json(self._record_key(account.id), account.model_dump(mode="json"))

    def _require(self, account_id: int | str) -> StoredAccount:
        account = self._load(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found.")
        return account

    def _candidates(self, identifier: str) -> list[StoredAccount]:
        """Accounts whose username or email equals identifier.

        One username can equal another account's email, so both indexes
        are consulted. The username match comes first.
        """
        if not identifier:
            return []
        candidates = []
        for key in (self._username_key(identifier), self._email_key(identifier)):
            account_id = self._valkey.get(key)
            if account_id is None or any(str(c.id) == account_id for c in candidates):
                continue
            account = self._load(account_id)
            if account is not None:
                candidates.append(account)
        return candidates

    def _find_stored(self, identifier: str) -> StoredAccount | None:
        """Resolve username or email to the stored record."""
        candidates = self._candidates(identifier)
        return candidates[0] if candidates else None

    def _claim_identity(
        self,
        account_id: int,
        username: str,
        email: str,
        digits: str | None = None,
    ) -> None:
        """Claim every unique index or none.

        Raises:
            DuplicateAccountError: If any index is already taken.
        """
        keys = [self._username_key(username), self._email_key(email)]
        if digits:
            keys.append(self._phone_key(digits))

        claimed = []
        for key in keys:
            if not self._valkey.set_if_absent(key, str(account_id)):
                for done in claimed:
                    self._valkey.delete(done)
                raise DuplicateAccountError()
            claimed.append(key)

    def exists(self, username: str, email: str) -> bool:
        """Check if username or email is already taken."""
        return (bool(username) and self._valkey.exists(self._username_key(username))) or (
            bool(email) and self._valkey.exists(self._email_key(email))
        )

    def register(
        self,
        account_input: AccountInput,
        counters: dict[str, int] | None = None,
        is_staff: bool = False,
    ) -> Account:
        """Create a new account.

        Counters start at 0 unless seeded explicitly.

        Phone accounts must carry the phone number and are indexed by its
        digits; only they may use the phone_ username prefix.

        Raises:
            InvalidInputError: If username, email or password is missing, the
                username is reserved, or a phone account has no number.
            DuplicateAccountError: If username, email or phone is taken.
        """
        missing = account_input.missing_fields()
        if missing:
            raise InvalidInputError(f"Missing required fields: {', '.join(missing)}.")
        _check_secret(account_input.password)

        username = account_input.username.strip()
        email = account_input.email.strip().lower()
        check_reserved(username, email, account_input.provider)

        digits = None
        if account_input.provider == PHONE_PROVIDER:
            digits = phone_digits(account_input.phone)
            if not digits:
                raise InvalidInputError("Phone accounts require a phone number.")

        if self.exists(username, email):
            raise DuplicateAccountError()

        account_id = self._valkey.incr(self.ID_SEQUENCE_KEY)
        self._claim_identity(account_id, username, email, digits)

        account = StoredAccount(
            id=account_id,
            username=username,
            email=email,
            first_name=account_input.first_name or username,
            last_name=account_input.last_name or "User",
            phone=account_input.phone,
            provider=account_input.provider,
            is_staff=is_staff,
            created_at=now_utc(),
            password_hash=hash_password(
                account_input.password, self._config.password_hash_rounds
            ),
            **(counters or {}),
        )
        self._save(account)
        self._valkey.add_member(self.ID_SET_KEY, str(account_id))

        logger.info(f"Account {account_id} registered ({account.provider})")
        return account.public()

    def authenticate(self, identifier: str, secret: str) -> Account | None:
        """Match identifier (username or email) and secret.

        Returns the account without its secret, or None on any mismatch.
        No lockout at this layer.
        """
        if not secret:
            return None
        for account in self._candidates(identifier):
            if verify_password(secret, account.password_hash):
                return account.public()
        return None

    def find(self, identifier: str) -> Account | None:
        """Find account by username or email."""
        account = self._find_stored(identifier)
        return account.public() if account else None

    def find_by_phone(self, phone_number: str) -> Account | None:
        """Phone account registered for phone_number, if any.

        Only accounts created through phone verification are returned; a
        password account that merely lists the number is never matched.
        """
        digits = phone_digits(phone_number)
        if not digits:
            return None
        account_id = self._valkey.get(self._phone_key(digits))
        if account_id is None:
            return None
        account = self._load(account_id)
        if account is None or account.provider != PHONE_PROVIDER:
            return None
        return account.public()

    def lookup(self, account_id: int | str) -> Account | None:
        """Find account by id."""
        account = self._load(account_id)
        return account.public() if account else None

    def list_accounts(self) -> list[Account]:
        """All accounts ordered by id."""
        accounts = []
        for account_id in self._valkey.members(self.ID_SET_KEY):
            account = self._load(account_id)
            if account is not None:
                accounts.append(account.public())
        return sorted(accounts, key=lambda a: int(a.id))

    def update(self, account_id: int | str, fields: dict[str, Any]) -> Account:
        """Merge fields into the account.

        Counters are replaced, not accumulated (see increment_counters).
        Username/email changes keep both indexes unique.

        Raises:
            AccountNotFoundError: If no such account.
            InvalidInputError: If a field is unknown, protected or invalid.
            DuplicateAccountError: If the new username or email is taken.
        """
        account = self._require(account_id)

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Cannot update fields: {', '.join(sorted(unknown))}.")

        merged = account.model_dump()
        merged.update(fields)
        if "email" in fields:
            merged["email"] = str(fields["email"]).strip().lower()
        try:
            updated = StoredAccount.model_validate(merged)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid profile data: {e.error_count()} error(s).")

        if not updated.username or not updated.email:
            raise InvalidInputError("Username and email cannot be empty.")
        if updated.username != account.username or updated.email != account.email:
            check_reserved(updated.username, updated.email, account.provider)
        verified_number_changed = phone_digits(updated.phone) != phone_digits(account.phone)
        if account.provider == PHONE_PROVIDER and verified_number_changed:
            raise InvalidInputError("The verified number of a phone account cannot be changed.")

        self._move_index(
            self._username_key(account.username),
            self._username_key(updated.username),
            account.id,
        )
        try:
            self._move_index(
                self._email_key(account.email),
                self._email_key(updated.email),
                account.id,
            )
        except DuplicateAccountError:
            # Undo the username move so the record and indexes stay consistent
            self._move_index(
                self._username_key(updated.username),
                self._username_key(account.username),
                account.id,
            )
            raise

        self._save(updated)
        return updated.public()

    def _move_index(self, old_key: str, new_key: str, account_id: int | str) -> None:
        if old_key == new_key:
            return
        if not self._valkey.set_if_absent(new_key, str(account_id)):
            raise DuplicateAccountError()
        self._valkey.delete(old_key)

    def increment_counters(self, account_id: int | str, delta: dict[str, int]) -> Account:
        """Add each delta (may be negative) to its counter, flooring at 0.

        Raises:
            AccountNotFoundError: If no such account.
            InvalidInputError: If delta names an unknown counter.
        """
        unknown = set(delta) - set(COUNTER_FIELDS)
        if unknown:
            raise InvalidInputError(f"Unknown counters: {', '.join(sorted(unknown))}.")

        account = self._require(account_id)
        changes = {
            name: max(0, getattr(account, name) + int(amount))
            for name, amount in delta.items()
        }
        updated = account.model_copy(update=changes)
        self._save(updated)
        return updated.public()

    def set_password(self, account_id: int | str, secret: str) -> None:
        """Replace the stored secret.

        Raises:
            AccountNotFoundError: If no such account.
            InvalidInputError: If the secret is empty or too long.
        """
        _check_secret(secret)
        account = self._require(account_id)
        updated = account.model_copy(
            update={"password_hash": hash_password(secret, self._config.password_hash_rounds)}
        )
        self._save(updated)

    def delete(self, account_id: int | str) -> bool:
        """Permanently delete account and its indexes.

        Returns:
            True if account was found and deleted, False if not found.
        """
        account = self._load(account_id)
        if account is None:
            return False
        self._valkey.delete(self._username_key(account.username))
        self._valkey.delete(self._email_key(account.email))
        if account.provider == PHONE_PROVIDER and phone_digits(account.phone):
            self._valkey.delete(self._phone_key(phone_digits(account.phone)))
        self._valkey.delete(self._record_key(account.id))
        self._valkey.remove_member(self.ID_SET_KEY, str(account.id))
        logger.info(f"Account {account.id} deleted")
        return True

    def generate_token(self, account_id: int | str) -> str:
        """Mint a local session token scoped to the account id and current time.

        Not a secure bearer credential; only local sessions use it. The prefix
        marks the token as local (see is_local_token).
        """
        return f"{LOCAL_TOKEN_PREFIX}{account_id}_{epoch_millis()}"

    def seed_demo_accounts(self) -> int:
        """Create the demo and admin accounts when the store is empty.

        Returns:
            Number of accounts created.
        """
        if self._valkey.members(self.ID_SET_KEY):
            return 0

        created = 0
        for demo in _DEMO_ACCOUNTS:
            self.register(
                AccountInput(
                    username=demo["username"],
                    email=demo["email"],
                    password=demo["password"],
                    first_name=demo["first_name"],
                    last_name=demo["last_name"],
                ),
                counters=demo["counters"],
                is_staff=demo.get("is_staff", False),
            )
            created += 1

        logger.info(f"Seeded {created} demo accounts")
        return created
