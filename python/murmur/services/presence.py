"""Presence collaborator.

Answers "is this user online right now?" for conversation views. Presence
is never persisted by the messaging core; it is looked up per request
through an injected PresenceProvider.

Implementations:
- RedisPresence: membership in a Redis set maintained by the realtime tier
- InMemoryPresence: process-local set for local runs and tests

Fail mode: a Redis error reads as "offline" (logged), never as a failed
request.
"""

import threading
from typing import Protocol

import redis

from murmur.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PRESENCE_KEY = "presence:online"


class PresenceProvider(Protocol):
    """Protocol for presence lookups."""

    def is_online(self, user_id: str) -> bool:
        """Return True if the user currently has a live connection."""
        ...


class InMemoryPresence:
    """Thread-safe in-process online set."""

    def __init__(self, online: set[str] | None = None):
        self._online: set[str] = set(online or ())
        self._lock = threading.Lock()

    def mark_online(self, user_id: str) -> None:
        with self._lock:
            self._online.add(user_id)

    def mark_offline(self, user_id: str) -> None:
        with self._lock:
            self._online.discard(user_id)

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._online


class RedisPresence:
    """Presence backed by a Redis set of online user ids.

    Args:
        redis_client: Sync redis.Redis client (decode_responses=True).
        key: Name of the set holding online user ids.
    """

    def __init__(self, redis_client, key: str = DEFAULT_PRESENCE_KEY):
        self._redis = redis_client
        self._key = key

    def is_online(self, user_id: str) -> bool:
        try:
            return bool(self._redis.sismember(self._key, user_id))
        except redis.RedisError as e:
            logger.warning("presence_lookup_failed", error=str(e))
            return False
