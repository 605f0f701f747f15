from starlette.requests import Request

from app.services.rate_limit import (
    PROFILES,
    RateLimitConfig,
    RateLimiter,
    config_for,
    get_client_ip,
)
from app.core.config import Settings
from app.services.token_store import InMemoryStore

CONFIG = RateLimitConfig(max_attempts=5, window_ms=15 * 60 * 1000, lockout_ms=15 * 60 * 1000)
IP = "203.0.113.7"


class FakeClock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def _limiter(config=CONFIG):
    clock = FakeClock()
    store = InMemoryStore()
    return RateLimiter(store, config, clock), store, clock


def test_exactly_max_attempts_pass_then_lockout():
    limiter, _, _ = _limiter()
    results = [limiter.check(IP) for _ in range(CONFIG.max_attempts + 1)]
    assert results == [True] * CONFIG.max_attempts + [False]
    status = limiter.status(IP)
    assert status.is_locked
    assert status.remaining == 0


def test_lockout_expires_and_counter_restarts():
    limiter, store, clock = _limiter()
    for _ in range(CONFIG.max_attempts + 1):
        limiter.check(IP)
    clock.advance(CONFIG.lockout_ms - 1)
    assert not limiter.check(IP)
    clock.advance(1)
    assert limiter.check(IP)
    assert store.get_attempts(IP).count == 1
    assert store.get_attempts(IP).reset_time == clock.now + CONFIG.window_ms


def test_lockout_starts_at_the_attempt_reaching_the_limit():
    limiter, store, clock = _limiter()
    for _ in range(CONFIG.max_attempts - 1):
        limiter.check(IP)
    clock.advance(1000)
    assert limiter.check(IP)
    assert store.get_attempts(IP).reset_time == clock.now + CONFIG.lockout_ms


def test_window_expiry_resets_counter():
    limiter, store, clock = _limiter()
    for _ in range(3):
        assert limiter.check(IP)
    clock.advance(CONFIG.window_ms + 1)
    assert limiter.check(IP)
    assert store.get_attempts(IP).count == 1


def test_status_is_read_only():
    limiter, store, clock = _limiter()
    fresh = limiter.status(IP)
    assert (fresh.remaining, fresh.reset_time, fresh.is_locked) == (5, 0, False)
    assert store.get_attempts(IP) is None

    limiter.check(IP)
    limiter.check(IP)
    mid = limiter.status(IP)
    assert mid.remaining == 3
    assert mid.reset_time == clock.now + CONFIG.window_ms
    assert not mid.is_locked
    assert store.get_attempts(IP).count == 2

    clock.advance(CONFIG.window_ms + 1)
    assert limiter.status(IP).remaining == 5


def test_clients_are_tracked_independently():
    limiter, _, _ = _limiter()
    for _ in range(CONFIG.max_attempts + 1):
        limiter.check(IP)
    assert not limiter.check(IP)
    assert limiter.check("198.51.100.1")


def test_reset_clears_record():
    limiter, store, _ = _limiter()
    limiter.check(IP)
    limiter.reset(IP)
    assert store.get_attempts(IP) is None


def test_profiles_follow_environment():
    assert config_for(Settings(env="production", jwt_secret="x", csrf_secret="y")) == PROFILES["production"]
    assert config_for(Settings(env="development")).max_attempts == 20
    assert config_for(Settings(env="test")).lockout_ms == 30_000
    assert config_for(Settings(env="staging")) == PROFILES["production"]
    overridden = config_for(
        Settings(env="development", auth_rate_limit_max_attempts=3, auth_rate_limit_window_seconds=10)
    )
    assert overridden.max_attempts == 3
    assert overridden.window_ms == 10_000
    assert overridden.lockout_ms == PROFILES["development"].lockout_ms


def _request(headers=None, client=("192.0.2.10", 5000)):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": raw,
            "query_string": b"",
            "client": client,
        }
    )


def test_client_ip_resolution_order():
    assert get_client_ip(_request({"X-Forwarded-For": "1.1.1.1, 10.0.0.1", "X-Real-IP": "2.2.2.2"})) == "1.1.1.1"
    assert get_client_ip(_request({"X-Real-IP": "2.2.2.2", "CF-Connecting-IP": "3.3.3.3"})) == "2.2.2.2"
    assert get_client_ip(_request({"CF-Connecting-IP": "3.3.3.3"})) == "3.3.3.3"
    assert get_client_ip(_request()) == "192.0.2.10"
    assert get_client_ip(_request(client=None)) == "unknown"
