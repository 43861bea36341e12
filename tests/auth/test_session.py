"""Tests for SessionStore - persisted session keys."""

from unittest.mock import Mock

import pytest

from auth.session import SessionStore
from auth.types import Account
from clients.valkey_client import ValkeyClient


@pytest.fixture
def session_store(valkey):
    return SessionStore(valkey)


@pytest.fixture
def user():
    return Account(id=1, username="ann", email="ann@test.example.com", total_listings=2)


class TestSaveAndLoad:
    """Persisting the active token/user pair."""

    def test_roundtrip(self, session_store, user):
        session_store.save("ereft_token_1_1700000000000", user)

        token, loaded = session_store.load()

        assert token == "ereft_token_1_1700000000000"
        assert loaded.username == "ann"
        assert loaded.total_listings == 2

    def test_load_empty_returns_none(self, session_store):
        assert session_store.load() is None

    def test_load_without_user_returns_none(self, session_store, valkey):
        valkey.set(SessionStore.TOKEN_KEY, "token")
        assert session_store.load() is None

    def test_load_corrupt_user_returns_none(self, session_store, valkey):
        valkey.set(SessionStore.TOKEN_KEY, "token")
        valkey.set(SessionStore.USER_KEY, "{not json")
        assert session_store.load() is None

    def test_load_invalid_user_returns_none(self, session_store, valkey):
        valkey.set(SessionStore.TOKEN_KEY, "token")
        valkey.set_json(SessionStore.USER_KEY, {"username": "no id"})
        assert session_store.load() is None

    def test_refresh_token_saved_and_cleared(self, session_store, user):
        session_store.save("access", user, refresh_token="refresh")
        assert session_store.get_refresh_token() == "refresh"

        session_store.save("access2", user)
        assert session_store.get_refresh_token() is None

    def test_save_user_keeps_token(self, session_store, user):
        session_store.save("token", user)
        session_store.save_user(user.model_copy(update={"first_name": "Annie"}))

        token, loaded = session_store.load()
        assert token == "token"
        assert loaded.first_name == "Annie"


class TestVerificationId:
    def test_set_get_clear(self, session_store):
        session_store.set_verification_id("vrf_abc")
        assert session_store.get_verification_id() == "vrf_abc"
        session_store.clear_verification_id()
        assert session_store.get_verification_id() is None


class TestPurge:
    """Removing every session key."""

    def test_removes_all_keys(self, session_store, user):
        session_store.save("token", user, refresh_token="refresh")
        session_store.set_verification_id("vrf_abc")

        failed = session_store.purge()

        assert failed == []
        assert session_store.stored_keys() == []

    def test_keep_verification(self, session_store, user):
        session_store.save("token", user, refresh_token="refresh")
        session_store.set_verification_id("vrf_abc")

        assert session_store.purge(keep_verification=True) == []

        assert session_store.stored_keys() == [SessionStore.VERIFICATION_ID_KEY]
        assert session_store.get_verification_id() == "vrf_abc"

    def test_continues_after_failing_key(self, user):
        """One failing delete does not stop the others."""
        valkey = Mock(spec=ValkeyClient)

        def delete(key):
            if key == SessionStore.TOKEN_KEY:
                raise ConnectionError("storage unavailable")
            return True

        valkey.delete.side_effect = delete

        failed = SessionStore(valkey).purge()

        assert failed == [SessionStore.TOKEN_KEY]
        deleted = [c.args[0] for c in valkey.delete.call_args_list]
        assert deleted == list(SessionStore.SESSION_KEYS)
