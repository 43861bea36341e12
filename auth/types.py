"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


COUNTER_FIELDS = (
    "total_listings",
    "active_listings",
    "pending_review",
    "favorites_count",
    "views_total",
    "messages_unread",
    "properties_sold",
    "recent_views",
)


class UserStats(BaseModel):
    """Usage counters shown on the profile dashboard. Never negative."""

    total_listings: int = Field(default=0, ge=0)
    active_listings: int = Field(default=0, ge=0)
    pending_review: int = Field(default=0, ge=0)
    favorites_count: int = Field(default=0, ge=0)
    views_total: int = Field(default=0, ge=0)
    messages_unread: int = Field(default=0, ge=0)
    properties_sold: int = Field(default=0, ge=0)
    recent_views: int = Field(default=0, ge=0)

    model_config = {"extra": "ignore"}


class Account(UserStats):
    """
    A user identity as seen by callers.

    Never carries the secret. Remote authorities may send extra profile
    fields; they are kept as-is.
    """

    id: int | str
    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    profile_picture: str | None = None
    provider: str = "local"
    is_active: bool = True
    is_staff: bool = False
    created_at: datetime | None = None

    model_config = {"extra": "allow", "from_attributes": True}

    def stats(self) -> UserStats:
        """Counters of this account as a standalone stats record."""
        return UserStats(**{name: getattr(self, name) for name in COUNTER_FIELDS})


class StoredAccount(Account):
    """Account as persisted by the credential store, including the secret hash."""

    password_hash: str

    model_config = {"extra": "ignore"}

    def public(self) -> Account:
        """Strip the secret."""
        return Account.model_validate(self.model_dump(exclude={"password_hash"}))


class AccountInput(BaseModel):
    """Registration payload."""

    username: str = ""
    email: str = ""
    password: str = ""
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    provider: str = "local"

    def missing_fields(self) -> list[str]:
        """Required fields that are absent or blank."""
        return [
            name
            for name in ("username", "email", "password")
            if not getattr(self, name).strip()
        ]


class VerificationRecord(BaseModel):
    """One outstanding phone-verification challenge."""

    verification_id: str
    phone_number: str
    code: str = Field(..., min_length=6, max_length=6)
    created_at: datetime
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


class AuthStatus(Enum):
    """Lifecycle of the published session."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class SessionState(BaseModel):
    """Snapshot of the published session. Immutable; replaced on every change."""

    status: AuthStatus = AuthStatus.UNINITIALIZED
    token: str | None = None
    user: Account | None = None
    is_loading: bool = False

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED
