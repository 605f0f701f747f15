"""Per-client-IP attempt limiting with lockout for authentication endpoints."""
import logging
import time
from dataclasses import dataclass
from typing import Callable

from starlette.requests import Request

from app.core.config import Settings, settings
from app.services import token_store
from app.services.token_store import RateLimitRecord, Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_attempts: int
    window_ms: int
    lockout_ms: int


@dataclass(frozen=True)
class RateLimitStatus:
    remaining: int
    reset_time: int
    is_locked: bool


PROFILES = {
    "production": RateLimitConfig(
        max_attempts=5, window_ms=15 * 60 * 1000, lockout_ms=15 * 60 * 1000
    ),
    "development": RateLimitConfig(
        max_attempts=20, window_ms=5 * 60 * 1000, lockout_ms=60 * 1000
    ),
    "test": RateLimitConfig(max_attempts=100, window_ms=60 * 1000, lockout_ms=30 * 1000),
}


def config_for(conf: Settings) -> RateLimitConfig:
    env = conf.env.lower()
    base = PROFILES.get(env, PROFILES["production"])
    max_attempts = conf.auth_rate_limit_max_attempts or base.max_attempts
    window_ms = (
        conf.auth_rate_limit_window_seconds * 1000
        if conf.auth_rate_limit_window_seconds
        else base.window_ms
    )
    lockout_ms = (
        conf.auth_rate_limit_lockout_seconds * 1000
        if conf.auth_rate_limit_lockout_seconds
        else base.lockout_ms
    )
    return RateLimitConfig(max_attempts, window_ms, lockout_ms)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    def __init__(
        self,
        store: Store,
        config: RateLimitConfig,
        clock: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def _fresh(self, now: int) -> RateLimitRecord:
        return RateLimitRecord(
            count=1, reset_time=now + self.config.window_ms, last_attempt=now
        )

    def check(self, ip: str) -> bool:
        """Count one attempt from ``ip`` and report whether it may proceed.

        Exactly ``max_attempts`` attempts pass within a window; the one that
        reaches the limit arms a lockout of ``lockout_ms`` and every further
        attempt is refused until it elapses. The attempt reaching the limit is
        itself allowed; refusing it would let only ``max_attempts - 1`` pass.
        """
        now = self.clock()
        config = self.config

        def update(record: RateLimitRecord | None) -> tuple[RateLimitRecord, bool]:
            if record is None:
                return self._fresh(now), True
            if record.count >= config.max_attempts:
                if now < record.reset_time:
                    return record, False
                return self._fresh(now), True
            if now <= record.reset_time:
                record.count += 1
                record.last_attempt = now
                if record.count >= config.max_attempts:
                    record.reset_time = now + config.lockout_ms
                return record, True
            return self._fresh(now), True

        allowed = self.store.update_attempts(ip, update)
        if not allowed:
            logger.warning(
                "auth rate limit exceeded", extra={"event": {"client_ip": ip}}
            )
        return allowed

    def status(self, ip: str) -> RateLimitStatus:
        record = self.store.get_attempts(ip)
        config = self.config
        if record is None:
            return RateLimitStatus(config.max_attempts, 0, False)
        now = self.clock()
        if record.count >= config.max_attempts and now < record.reset_time:
            return RateLimitStatus(0, record.reset_time, True)
        if now > record.reset_time:
            return RateLimitStatus(config.max_attempts, 0, False)
        return RateLimitStatus(
            remaining=max(0, config.max_attempts - record.count),
            reset_time=record.reset_time,
            is_locked=False,
        )

    def reset(self, ip: str) -> None:
        self.store.clear_attempts(ip)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip
    if request.client:
        return request.client.host
    return "unknown"


auth_limiter = RateLimiter(token_store.store, config_for(settings))
