"""Shared test fixtures for the auth test suite."""

import fakeredis
import pytest

from auth.config import AuthConfig
from clients.valkey_client import ValkeyClient


# =============================================================================
# CONFIG FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Test config with the cheapest bcrypt cost."""
    return AuthConfig(
        api_base_url="https://api.test.example.com",
        password_hash_rounds=4,
        verification_max_attempts=3,
        verification_ttl_minutes=10,
    )


# =============================================================================
# VALKEY FIXTURES
# =============================================================================


@pytest.fixture
def redis_server():
    """In-memory Redis-compatible server, fresh per test."""
    return fakeredis.FakeServer()


@pytest.fixture
def valkey(redis_server):
    """ValkeyClient backed by fakeredis."""
    client = ValkeyClient(
        client=fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    )
    yield client
    client.close()
