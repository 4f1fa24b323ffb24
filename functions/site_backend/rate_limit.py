"""
Login rate limiting with exponential backoff.

Every counted failure doubles the wait before the next attempt, up to
``base_delay * 2 ** (max_attempts - 1)`` seconds. Records are kept in memory
for tests/local runs and in Redis in production so all workers share them.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

from shared import constants

logger = logging.getLogger(__name__)

# TimeoutError is not a subclass of ConnectionError in redis-py.
REDIS_ERRORS = (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError)


@dataclass
class RateLimitRecord:
    attempts: int
    timestamp: float
    delay: float


@dataclass
class RateLimitStatus:
    limited: bool
    remaining_seconds: int


class RateLimitStore(Protocol):
    """Key/value storage for rate limit records."""

    def get(self, key: str) -> Optional[RateLimitRecord]:
        ...

    def set(self, key: str, record: RateLimitRecord, ttl_seconds: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


@dataclass
class InMemoryRateLimitStore:
    """Process-local store for testing/dev."""

    records: dict[str, RateLimitRecord] = field(default_factory=dict)

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self.records.get(key)

    def set(self, key: str, record: RateLimitRecord, ttl_seconds: int) -> None:
        # Expiry is handled by LoginRateLimiter.check for this store.
        self.records[key] = record

    def delete(self, key: str) -> None:
        self.records.pop(key, None)


@dataclass
class RedisRateLimitStore:
    """Redis-backed store, one JSON string per key with a TTL."""

    url: str
    key_prefix: str = "himmelrych:login"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def _reconnect(self, error: Exception) -> None:
        logger.warning("Redis error in rate limiter: %s", error)
        self.client = redis.Redis.from_url(self.url)

    def get(self, key: str) -> Optional[RateLimitRecord]:
        try:
            raw = self.client.get(self._key(key))
        except REDIS_ERRORS as e:
            # Treat as no record so a flaky Redis does not lock everybody out.
            self._reconnect(e)
            return None
        if raw is None:
            return None
        return RateLimitRecord(**json.loads(raw))

    def set(self, key: str, record: RateLimitRecord, ttl_seconds: int) -> None:
        try:
            self.client.set(
                self._key(key), json.dumps(asdict(record)), ex=ttl_seconds
            )
        except REDIS_ERRORS as e:
            self._reconnect(e)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except REDIS_ERRORS as e:
            self._reconnect(e)


class LoginRateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        *,
        base_delay: int = constants.LOGIN_BASE_DELAY_SECONDS,
        max_attempts: int = constants.LOGIN_MAX_ATTEMPTS,
        reset_after: int = constants.LOGIN_RESET_AFTER_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.reset_after = reset_after
        self.clock = clock

    def delay_for(self, attempts: int) -> float:
        exponent = min(max(attempts, 1) - 1, self.max_attempts - 1)
        return float(self.base_delay * 2**exponent)

    def _current(self, key: str) -> Optional[RateLimitRecord]:
        record = self.store.get(key)
        if record and self.clock() - record.timestamp > self.reset_after:
            self.store.delete(key)
            return None
        return record

    def check(self, key: str) -> RateLimitStatus:
        record = self._current(key)
        if not record:
            return RateLimitStatus(limited=False, remaining_seconds=0)
        elapsed = self.clock() - record.timestamp
        remaining = max(0.0, record.delay - elapsed)
        return RateLimitStatus(
            limited=remaining > 0, remaining_seconds=math.ceil(remaining)
        )

    def record_failure(self, key: str) -> RateLimitRecord:
        record = self._current(key)
        attempts = (record.attempts if record else 0) + 1
        updated = RateLimitRecord(
            attempts=attempts,
            timestamp=self.clock(),
            delay=self.delay_for(attempts),
        )
        self.store.set(key, updated, ttl_seconds=self.reset_after)
        logger.info(
            "Login failure %d for %s, next attempt in %.0fs",
            attempts,
            key,
            updated.delay,
        )
        return updated

    def reset(self, key: str) -> None:
        self.store.delete(key)
