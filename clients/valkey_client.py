"""
Valkey (Redis-compatible) client for durable local state.

Simple wrapper around redis-py. Holds accounts, the persisted session,
verification records and the security audit list.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import json
import logging
from typing import Set

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set("key", "value", expire_seconds=300)
        value = client.get("key")  # Returns None if missing
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)
            client: Pre-built redis client (must use decode_responses=True).
                Takes precedence over url.

        Raises:
            ValueError: If neither url nor client is given
            redis.ConnectionError: If connection fails
        """
        if client is None:
            if not url:
                raise ValueError("url is required when no client is given")
            client = redis.from_url(url, decode_responses=True)
        self._client = client
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """
        Get value by key.

        Returns None if key doesn't exist (not an error).
        Raises on connection failure.
        """
        return self._client.get(key)

    def set(
        self,
        key: str,
        value: str,
        expire_seconds: int | None = None,
    ) -> None:
        """
        Set key to value, optionally with expiration.

        Args:
            key: Key to set
            value: Value to store
            expire_seconds: TTL in seconds (None for no expiration)
        """
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, value)
        else:
            self._client.set(key, value)

    def set_if_absent(self, key: str, value: str) -> bool:
        """
        Set key only if it does not exist yet.

        Returns True if the key was claimed, False if it already existed.
        """
        return bool(self._client.set(key, value, nx=True))

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        return self._client.delete(key) > 0

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return self._client.exists(key) > 0

    def ttl(self, key: str) -> int:
        """
        Get remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def expire(self, key: str, seconds: int) -> bool:
        """Set TTL on an existing key. Returns False if key doesn't exist."""
        return bool(self._client.expire(key, seconds))

    def incr(self, key: str) -> int:
        """
        Increment key by 1.

        Creates key with value 1 if it doesn't exist.
        Returns the new value.
        """
        return self._client.incr(key)

    def add_member(self, key: str, member: str) -> None:
        """Add member to the set stored at key."""
        self._client.sadd(key, member)

    def remove_member(self, key: str, member: str) -> None:
        """Remove member from the set stored at key. Missing members are ignored."""
        self._client.srem(key, member)

    def members(self, key: str) -> Set[str]:
        """All members of the set stored at key (empty set if missing)."""
        return set(self._client.smembers(key))

    def push_capped(self, key: str, value: str, max_length: int) -> None:
        """Prepend value to the list at key, keeping only the newest max_length items."""
        self._client.lpush(key, value)
        self._client.ltrim(key, 0, max_length - 1)

    def list_range(self, key: str, count: int) -> list[str]:
        """Return up to count items from the head of the list at key."""
        if count <= 0:
            return []
        return self._client.lrange(key, 0, count - 1)

    def set_json(
        self,
        key: str,
        value: dict | list,
        expire_seconds: int | None = None,
    ) -> None:
        """
        Set key to JSON-serialized value.

        Args:
            key: Key to set
            value: Dict or list to serialize
            expire_seconds: TTL in seconds (None for no expiration)
        """
        json_str = json.dumps(value)
        self.set(key, json_str, expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize JSON value.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
