"""Revocation list and login-attempt records with an optional Redis backend."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Protocol

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Pruning of stale attempt records kicks in past this many tracked clients.
MAX_TRACKED_CLIENTS = 10_000


@dataclass
class RateLimitRecord:
    count: int
    reset_time: int
    last_attempt: int


# Receives the current record (or None) and returns the record to store
# together with the value handed back to the caller.
AttemptUpdate = Callable[[RateLimitRecord | None], tuple[RateLimitRecord, Any]]


class Store(Protocol):
    def revoke(self, jti: str, ttl_seconds: int) -> None: ...
    def is_revoked(self, jti: str) -> bool: ...
    def get_attempts(self, key: str) -> RateLimitRecord | None: ...
    def update_attempts(self, key: str, update: AttemptUpdate) -> Any: ...
    def clear_attempts(self, key: str) -> None: ...
    def reset(self) -> None: ...


class InMemoryStore:
    """Process-local store; correct only for a single-process deployment."""

    def __init__(self):
        self._lock = Lock()
        self._revoked: dict[str, float] = {}
        self._attempts: dict[str, RateLimitRecord] = {}

    def revoke(self, jti: str, ttl_seconds: int) -> None:
        with self._lock:
            self._revoked[jti] = time.time() + ttl_seconds

    def is_revoked(self, jti: str) -> bool:
        now = time.time()
        with self._lock:
            expired = [k for k, exp in self._revoked.items() if exp <= now]
            for k in expired:
                self._revoked.pop(k, None)
            return jti in self._revoked

    def get_attempts(self, key: str) -> RateLimitRecord | None:
        with self._lock:
            record = self._attempts.get(key)
            if record is None:
                return None
            return RateLimitRecord(record.count, record.reset_time, record.last_attempt)

    def update_attempts(self, key: str, update: AttemptUpdate) -> Any:
        with self._lock:
            record, result = update(self._attempts.get(key))
            self._attempts[key] = record
            if len(self._attempts) > MAX_TRACKED_CLIENTS:
                self._prune_attempts(record.last_attempt)
            return result

    def _prune_attempts(self, now_ms: int) -> None:
        stale = [k for k, rec in self._attempts.items() if rec.reset_time < now_ms]
        for k in stale:
            self._attempts.pop(k, None)

    def clear_attempts(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._revoked.clear()
            self._attempts.clear()


class RedisStore:
    def __init__(self, url: str, prefix: str = "auth"):
        self.prefix = prefix
        self.client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )

    def _revoked_key(self, jti: str) -> str:
        return f"{self.prefix}:revoked:{jti}"

    def _attempts_key(self, key: str) -> str:
        return f"{self.prefix}:attempts:{key}"

    def revoke(self, jti: str, ttl_seconds: int) -> None:
        self.client.setex(self._revoked_key(jti), max(1, ttl_seconds), "1")

    def is_revoked(self, jti: str) -> bool:
        return bool(self.client.exists(self._revoked_key(jti)))

    @staticmethod
    def _decode(data: dict[str, str]) -> RateLimitRecord | None:
        if not data:
            return None
        return RateLimitRecord(
            count=int(data["count"]),
            reset_time=int(data["reset_time"]),
            last_attempt=int(data["last_attempt"]),
        )

    def get_attempts(self, key: str) -> RateLimitRecord | None:
        return self._decode(self.client.hgetall(self._attempts_key(key)))

    def update_attempts(self, key: str, update: AttemptUpdate) -> Any:
        redis_key = self._attempts_key(key)

        def transaction(pipe):
            record, result = update(self._decode(pipe.hgetall(redis_key)))
            pipe.multi()
            pipe.hset(
                redis_key,
                mapping={
                    "count": record.count,
                    "reset_time": record.reset_time,
                    "last_attempt": record.last_attempt,
                },
            )
            pipe.pexpireat(redis_key, record.reset_time)
            return result

        return self.client.transaction(
            transaction, redis_key, value_from_callable=True
        )

    def clear_attempts(self, key: str) -> None:
        self.client.delete(self._attempts_key(key))

    def reset(self) -> None:
        keys = list(self.client.scan_iter(f"{self.prefix}:*"))
        if keys:
            self.client.delete(*keys)


def get_store() -> Store:
    if not settings.redis_url:
        return InMemoryStore()
    try:
        store = RedisStore(settings.redis_url)
        store.client.ping()
        return store
    except redis.RedisError:
        logger.warning(
            "redis unavailable, falling back to in-memory auth store",
            extra={"event": {"redis_url": settings.redis_url.split("@")[-1]}},
        )
        return InMemoryStore()


store: Store = get_store()
