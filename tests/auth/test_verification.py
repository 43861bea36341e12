"""Tests for VerificationService - one-time phone codes."""

import threading

import pytest

from auth.config import AuthConfig
from auth.exceptions import InvalidCodeError, SessionExpiredError, TooManyAttemptsError
from auth.verification import VerificationService, generate_code


PHONE = "+251911111111"


@pytest.fixture
def service(valkey, config):
    return VerificationService(valkey, config)


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


class TestGenerateCode:
    def test_six_digits_in_range(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert 100000 <= int(code) <= 999999


class TestSendCode:
    def test_creates_record(self, service):
        result = service.send_code(PHONE)

        record = service.get_record(result.verification_id)
        assert result.success is True
        assert record.phone_number == PHONE
        assert record.attempts == 0
        assert record.max_attempts == 3
        assert len(record.code) == 6

    def test_debug_code_hidden_by_default(self, service):
        assert service.send_code(PHONE).debug_code is None

    def test_debug_code_exposed_when_configured(self, valkey):
        service = VerificationService(valkey, AuthConfig(expose_debug_codes=True))
        result = service.send_code(PHONE)
        assert result.debug_code == service.get_record(result.verification_id).code

    def test_record_expires_with_ttl(self, service, valkey):
        result = service.send_code(PHONE)
        ttl = valkey.ttl(f"{VerificationService.RECORD_PREFIX}{result.verification_id}")
        assert 590 <= ttl <= 600

    def test_ids_unique(self, service):
        assert service.send_code(PHONE).verification_id != service.send_code(PHONE).verification_id


class TestVerifyCode:
    """Attempt accounting and terminal states."""

    def test_correct_code_returns_phone_and_purges(self, service):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code

        assert service.verify_code(result.verification_id, code) == PHONE
        assert service.get_record(result.verification_id) is None

    def test_replay_after_success_is_expired(self, service):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code
        service.verify_code(result.verification_id, code)

        with pytest.raises(SessionExpiredError):
            service.verify_code(result.verification_id, code)

    def test_wrong_code_reports_remaining(self, service):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code

        with pytest.raises(InvalidCodeError) as exc_info:
            service.verify_code(result.verification_id, _wrong(code))

        assert exc_info.value.attempts_remaining == 2
        assert service.get_record(result.verification_id).attempts == 1

    def test_attempt_keeps_ttl(self, service, valkey):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code
        with pytest.raises(InvalidCodeError):
            service.verify_code(result.verification_id, _wrong(code))

        assert valkey.ttl(f"{VerificationService.RECORD_PREFIX}{result.verification_id}") > 0

    def test_three_wrong_codes_exhaust(self, service):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code
        wrong = _wrong(code)

        with pytest.raises(InvalidCodeError) as first:
            service.verify_code(result.verification_id, wrong)
        with pytest.raises(InvalidCodeError) as second:
            service.verify_code(result.verification_id, wrong)
        with pytest.raises(TooManyAttemptsError):
            service.verify_code(result.verification_id, wrong)

        assert first.value.attempts_remaining == 2
        assert second.value.attempts_remaining == 1
        assert service.get_record(result.verification_id) is None

    def test_correct_code_after_exhaustion_rejected(self, service):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code
        for _ in range(2):
            with pytest.raises(InvalidCodeError):
                service.verify_code(result.verification_id, _wrong(code))
        with pytest.raises(TooManyAttemptsError):
            service.verify_code(result.verification_id, _wrong(code))

        with pytest.raises(SessionExpiredError):
            service.verify_code(result.verification_id, code)

    def test_record_at_limit_is_purged(self, service, valkey):
        """A record already at its limit (interrupted check) is exhausted."""
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code
        valkey.set(f"{VerificationService.ATTEMPTS_PREFIX}{result.verification_id}", "3", expire_seconds=600)

        with pytest.raises(TooManyAttemptsError):
            service.verify_code(result.verification_id, code)
        assert service.get_record(result.verification_id) is None

    def test_record_is_never_rewritten(self, service, valkey):
        """Failed attempts leave the stored record untouched."""
        result = service.send_code(PHONE)
        key = f"{VerificationService.RECORD_PREFIX}{result.verification_id}"
        before = valkey.get(key)
        code = service.get_record(result.verification_id).code

        with pytest.raises(InvalidCodeError):
            service.verify_code(result.verification_id, _wrong(code))

        assert valkey.get(key) == before
        assert valkey.get(f"{VerificationService.ATTEMPTS_PREFIX}{result.verification_id}") == "1"

    def test_expired_counter_is_not_recreated(self, service, valkey):
        """A counter that expired between load and increment ends the record."""
        result = service.send_code(PHONE)
        attempts_key = f"{VerificationService.ATTEMPTS_PREFIX}{result.verification_id}"
        code = service.get_record(result.verification_id).code
        valkey.delete(attempts_key)

        with pytest.raises(SessionExpiredError):
            service.verify_code(result.verification_id, code)

        assert not valkey.exists(attempts_key)
        assert service.get_record(result.verification_id) is None

    def test_unknown_id(self, service):
        with pytest.raises(SessionExpiredError):
            service.verify_code("vrf_unknown", "123456")

    def test_empty_id(self, service):
        with pytest.raises(SessionExpiredError):
            service.verify_code("", "123456")

    def test_code_compared_exactly(self, service):
        result = service.send_code(PHONE)
        code = service.get_record(result.verification_id).code
        with pytest.raises(InvalidCodeError):
            service.verify_code(result.verification_id, f" {code}")


class TestResend:
    def test_replaces_outstanding_record(self, service):
        first = service.send_code(PHONE)

        second = service.resend(first.verification_id, PHONE)

        assert second.verification_id != first.verification_id
        assert service.get_record(first.verification_id) is None
        assert service.get_record(second.verification_id).phone_number == PHONE

    def test_uses_callers_number(self, service):
        """A corrected number gets the new code; the old number's code is void."""
        first = service.send_code(PHONE)
        old_code = service.get_record(first.verification_id).code

        second = service.resend(first.verification_id, "+15550001111")

        assert service.get_record(second.verification_id).phone_number == "+15550001111"
        with pytest.raises(SessionExpiredError):
            service.verify_code(first.verification_id, old_code)

    def test_without_record_sends_new_code(self, service):
        result = service.resend(None, PHONE)
        assert service.get_record(result.verification_id).phone_number == PHONE

    def test_stale_id_sends_new_code(self, service):
        result = service.resend("vrf_gone", PHONE)
        assert service.get_record(result.verification_id) is not None


class TestPurge:
    def test_purge_all(self, service):
        ids = {service.send_code(PHONE).verification_id for _ in range(3)}
        assert set(service.active_ids()) == ids

        assert service.purge_all() == 3
        assert service.active_ids() == []
        for verification_id in ids:
            assert service.get_record(verification_id) is None

    def test_active_ids_skip_expired(self, service, valkey):
        result = service.send_code(PHONE)
        valkey.delete(f"{VerificationService.RECORD_PREFIX}{result.verification_id}")
        assert service.active_ids() == []

    def test_expired_ids_are_pruned(self, service, valkey):
        """Expired records do not accumulate in the live-id set."""
        for _ in range(5):
            result = service.send_code(PHONE)
            valkey.delete(f"{VerificationService.RECORD_PREFIX}{result.verification_id}")

        assert service.active_ids() == []
        assert valkey.members(VerificationService.ACTIVE_SET_KEY) == set()

    def test_send_prunes_expired_ids(self, service, valkey):
        stale = service.send_code(PHONE)
        valkey.delete(f"{VerificationService.RECORD_PREFIX}{stale.verification_id}")

        fresh = service.send_code(PHONE)

        assert valkey.members(VerificationService.ACTIVE_SET_KEY) == {fresh.verification_id}


class TestConcurrentAttempts:
    def test_interleaved_checks_never_exceed_budget(self, service):
        """Checks that all load the record before any counts still share one budget."""
        result = service.send_code(PHONE)
        wrong = _wrong(service.get_record(result.verification_id).code)

        checkers = 6
        barrier = threading.Barrier(checkers, timeout=5)
        original_load = service._load

        def load_then_wait(verification_id):
            record = original_load(verification_id)
            barrier.wait()
            return record

        service._load = load_then_wait
        outcomes = []
        lock = threading.Lock()

        def check():
            try:
                service.verify_code(result.verification_id, wrong)
            except Exception as e:
                with lock:
                    outcomes.append(type(e))

        threads = [threading.Thread(target=check) for _ in range(checkers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        service._load = original_load

        assert len(outcomes) == checkers
        # Three attempts: two wrong guesses are answered, the third exhausts
        assert outcomes.count(InvalidCodeError) == 2
        assert set(outcomes) <= {InvalidCodeError, TooManyAttemptsError, SessionExpiredError}
        assert service.get_record(result.verification_id) is None
