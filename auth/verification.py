"""Phone verification - short-lived, attempt-limited one-time codes.

Records live under their own namespace in Valkey with a TTL matching the
code lifetime, plus a set of live ids so every record can be enumerated
and purged without scanning key prefixes. Attempts are counted on a
separate key with atomic INCR; the record itself is written once and
never rewritten.

Per record: ISSUED -> (verify attempt)* -> VERIFIED | EXHAUSTED | EXPIRED.
Every terminal state purges the record.
"""

import logging
import secrets
from dataclasses import dataclass

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import InvalidCodeError, SessionExpiredError, TooManyAttemptsError
from auth.types import VerificationRecord
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_CODE_MIN = 100000
_CODE_MAX = 999999


@dataclass
class SendCodeResult:
    """Result of issuing a code."""

    verification_id: str
    success: bool = True
    # Only populated when config.expose_debug_codes is on
    debug_code: str | None = None


def generate_code() -> str:
    """Random 6-digit code drawn from 100000-999999 inclusive."""
    return str(_CODE_MIN + secrets.randbelow(_CODE_MAX - _CODE_MIN + 1))


class VerificationService:
    """Issues, tracks and checks one-time codes tied to a phone number."""

    RECORD_PREFIX = "verification:record:"
    ATTEMPTS_PREFIX = "verification:attempts:"
    ACTIVE_SET_KEY = "verification:active"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._ttl_seconds = config.verification_ttl_minutes * 60

    def _key(self, verification_id: str) -> str:
        """Generate Valkey key for a verification record."""
        return f"{self.RECORD_PREFIX}{verification_id}"

    def _attempts_key(self, verification_id: str) -> str:
        return f"{self.ATTEMPTS_PREFIX}{verification_id}"

    def _load(self, verification_id: str) -> VerificationRecord | None:
        data = self._valkey.get_json(self._key(verification_id))
        if data is None:
            return None
        attempts = self._valkey.get(self._attempts_key(verification_id))
        data["attempts"] = int(attempts or 0)
        return VerificationRecord.model_validate(data)

    def _count_attempt(self, verification_id: str) -> int | None:
        """Atomically consume one attempt.

        Returns the attempt number, or None if the counter had already
        expired along with its record.
        """
        key = self._attempts_key(verification_id)
        attempts = self._valkey.incr(key)
        if self._valkey.ttl(key) < 0:
            # INCR recreated an expired counter without a TTL, or a
            # concurrent purge already removed it
            self._valkey.delete(key)
            return None
        return attempts

    def _prune_active(self) -> list[str]:
        """Drop ids whose records have expired. Returns the live ids."""
        live = []
        for verification_id in self._valkey.members(self.ACTIVE_SET_KEY):
            if self._valkey.exists(self._key(verification_id)):
                live.append(verification_id)
            else:
                self.purge(verification_id)
        return sorted(live)

    def get_record(self, verification_id: str) -> VerificationRecord | None:
        """Live record for verification_id, or None if purged or expired."""
        return self._load(verification_id)

    def send_code(self, phone_number: str) -> SendCodeResult:
        """Issue a fresh code and verification id for phone_number.

        Always succeeds (no carrier integration). The code is written to the
        DEBUG log and, if configured, returned in the result.
        """
        self._prune_active()

        record = VerificationRecord(
            verification_id=f"vrf_{secrets.token_urlsafe(16)}",
            phone_number=phone_number,
            code=generate_code(),
            created_at=now_utc(),
            attempts=0,
            max_attempts=self._config.verification_max_attempts,
        )

        self._valkey.set(
            self._attempts_key(record.verification_id),
            "0",
            expire_seconds=self._ttl_seconds,
        )
        self._valkey.set_json(
            self._key(record.verification_id),
            record.model_dump(mode="json", exclude={"attempts"}),
            expire_seconds=self._ttl_seconds,
        )
        self._valkey.add_member(self.ACTIVE_SET_KEY, record.verification_id)

        logger.debug(
            "Verification code for %s (%s): %s",
            phone_number,
            record.verification_id,
            record.code,
        )

        return SendCodeResult(
            verification_id=record.verification_id,
            success=True,
            debug_code=record.code if self._config.expose_debug_codes else None,
        )

    def verify_code(self, verification_id: str, submitted_code: str) -> str:
        """Check submitted_code against the record.

        The attempt is counted before the comparison, so an interrupted
        check still consumes it. Concurrent checks each get their own
        attempt number; at most max_attempts codes are ever compared.

        Returns:
            The verified phone number.

        Raises:
            SessionExpiredError: If no live record exists for verification_id.
            TooManyAttemptsError: If the attempt budget is used up. The record
                is purged.
            InvalidCodeError: If the code does not match and attempts remain.
        """
        record = self._load(verification_id) if verification_id else None
        if record is None:
            raise SessionExpiredError()

        attempts = self._count_attempt(verification_id)
        if attempts is None:
            self.purge(verification_id)
            raise SessionExpiredError()

        if attempts > record.max_attempts:
            self.purge(verification_id)
            raise TooManyAttemptsError()

        if submitted_code == record.code:
            # Only the caller that removes the record wins; a concurrent
            # check with the same code sees it gone
            if not self.purge(verification_id):
                raise SessionExpiredError()
            logger.info(f"Verification {verification_id} succeeded")
            return record.phone_number

        checked = record.model_copy(update={"attempts": attempts})
        if checked.exhausted:
            self.purge(verification_id)
            raise TooManyAttemptsError()

        raise InvalidCodeError(attempts_remaining=checked.max_attempts - checked.attempts)

    def resend(self, verification_id: str | None, phone_number: str) -> SendCodeResult:
        """Issue a fresh code for phone_number and invalidate the old id.

        The new code always belongs to phone_number, even if the caller
        changed the number since the previous send.
        """
        result = self.send_code(phone_number)
        if verification_id and self.purge(verification_id):
            logger.info(f"Verification {verification_id} replaced by {result.verification_id}")
        return result

    def purge(self, verification_id: str) -> bool:
        """Delete one record. Returns True if it was still live."""
        existed = self._valkey.delete(self._key(verification_id))
        self._valkey.delete(self._attempts_key(verification_id))
        self._valkey.remove_member(self.ACTIVE_SET_KEY, verification_id)
        return existed

    def active_ids(self) -> list[str]:
        """Ids of records that are still live. Expired ids are removed."""
        return self._prune_active()

    def purge_all(self) -> int:
        """Delete every record, live or expired. Returns count of live ones removed."""
        removed = 0
        for verification_id in self._valkey.members(self.ACTIVE_SET_KEY):
            if self.purge(verification_id):
                removed += 1
        return removed
