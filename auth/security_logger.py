"""Security event logging for auth audit trail.

Every event goes to the ``auth.security`` logger and is appended to a
capped list in Valkey, newest first.
"""

import json
import logging
from enum import Enum
from typing import Any

from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc

logger = logging.getLogger("auth.security")


class SecurityEvent(Enum):
    """Auth security event types."""

    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DELETED = "account_deleted"
    SESSION_RESTORED = "session_restored"
    SESSION_INVALIDATED = "session_invalidated"
    LOGOUT = "logout"
    VERIFICATION_SENT = "verification_sent"
    VERIFICATION_SUCCEEDED = "verification_succeeded"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_EXHAUSTED = "verification_exhausted"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"


class SecurityLogger:
    """Append-only security event logger with a bounded history."""

    EVENTS_KEY = "security_events"

    def __init__(self, valkey: ValkeyClient, retention: int = 500):
        self._valkey = valkey
        self._retention = retention

    def log(
        self,
        event: SecurityEvent,
        account_id: int | str | None = None,
        identifier: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record a security event."""
        record = {
            "event_type": event.value,
            "account_id": str(account_id) if account_id is not None else None,
            "identifier": identifier,
            "details": details,
            "created_at": now_utc().isoformat(),
        }

        level = logging.WARNING if event in (
            SecurityEvent.LOGIN_FAILED,
            SecurityEvent.VERIFICATION_EXHAUSTED,
        ) else logging.INFO
        logger.log(
            level,
            "%s account_id=%s identifier=%s details=%s",
            event.value,
            record["account_id"],
            identifier,
            details,
        )

        self._valkey.push_capped(self.EVENTS_KEY, json.dumps(record), self._retention)

    def get_recent_events(
        self,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Most recent events first, optionally filtered by type."""
        events = [json.loads(raw) for raw in self._valkey.list_range(self.EVENTS_KEY, self._retention)]
        if event_type is not None:
            events = [e for e in events if e["event_type"] == event_type.value]
        return events[:limit]
