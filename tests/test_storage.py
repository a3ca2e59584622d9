"""Tests for the key-value store and the one-time artifact stores."""
from datetime import timedelta

import pytest

from jobportal.config.settings import Settings, StoreSettings
from jobportal.core.exceptions import ConfigurationError
from jobportal.services.codes import (
    CsrfTokenStore,
    MfaChallengeStore,
    OneTimeCodeStore,
    ResetTokenStore,
)
from jobportal.services.rate_limit import FixedWindowRateLimiter
from jobportal.storage.kv import InMemoryKeyValueStore, RedisKeyValueStore, create_kv_store

from .conftest import FakeClock


class Ticker:
    """Monotonic seconds for the in-memory store."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def ticker():
    return Ticker()


@pytest.fixture
def store(ticker):
    return InMemoryKeyValueStore(clock=ticker)


async def test_values_expire_after_ttl(store, ticker):
    """Test per-key expiry."""
    await store.set("k", {"v": 1}, ttl_seconds=10)
    assert await store.get("k") == {"v": 1}

    ticker.now += 10
    assert await store.get("k") is None


async def test_pop_removes_value(store):
    """Test that pop returns a value once."""
    await store.set("k", {"v": 1}, ttl_seconds=10)

    assert await store.pop("k") == {"v": 1}
    assert await store.pop("k") is None
    assert await store.delete("k") is False


async def test_incr_keeps_window_from_first_hit(store, ticker):
    """Test that the counter window starts at the first increment."""
    assert await store.incr("c", 60) == (1, 60)
    ticker.now += 20
    assert await store.incr("c", 60) == (2, 40)

    ticker.now += 40
    assert await store.incr("c", 60) == (1, 60)


async def test_purge_expired(store, ticker):
    await store.set("a", {}, ttl_seconds=1)
    await store.set("b", {}, ttl_seconds=100)
    ticker.now += 5

    assert store.purge_expired() == 1
    assert await store.get("b") == {}


async def test_writes_sweep_keys_that_are_never_read(store, ticker):
    """Test that abandoned CSRF tokens do not pile up in memory."""
    csrf = CsrfTokenStore(store, ttl=timedelta(hours=1), clock=FakeClock())
    for _ in range(1000):
        await csrf.issue("127.0.0.1")
    assert store.size() == 1000

    ticker.now += 10 * 3600
    await csrf.issue("127.0.0.1")

    assert store.size() == 1


async def test_sweep_waits_for_interval(ticker):
    store = InMemoryKeyValueStore(clock=ticker, sweep_interval=60)
    await store.set("a", {}, ttl_seconds=1)
    ticker.now += 5
    await store.incr("c", 60)
    assert store.size() == 2

    ticker.now += 60
    await store.incr("c", 60)
    assert store.size() == 1


def test_memory_backend_uses_configured_sweep_interval():
    kv = create_kv_store(Settings(store=StoreSettings(backend="memory", sweep_interval_seconds=30)))

    assert isinstance(kv, InMemoryKeyValueStore)
    assert kv.sweep_interval == 30


def test_redis_backend_prefixes_keys():
    kv = create_kv_store(Settings(store=StoreSettings(backend="redis", key_prefix="jp")))

    assert isinstance(kv, RedisKeyValueStore)
    assert kv._key("otp:a@example.com") == "jp:otp:a@example.com"


class RecordingPipeline:
    def __init__(self, calls):
        self.calls = calls

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def incr(self, key):
        self.calls.append(("incr", key))

    def expire(self, key, seconds, nx=False):
        self.calls.append(("expire", key, seconds, nx))

    def ttl(self, key):
        self.calls.append(("ttl", key))

    async def execute(self):
        return [3, True, 42]


class RecordingRedis:
    """Stands in for the redis client and records the commands issued."""

    def __init__(self):
        self.calls = []

    async def set(self, key, value, ex=None):
        self.calls.append(("set", key, value, ex))

    async def getdel(self, key):
        self.calls.append(("getdel", key))
        return '{"v": 1}'

    def pipeline(self, transaction=True):
        return RecordingPipeline(self.calls)


async def test_redis_store_commands():
    """Test the Redis commands behind set, pop and incr."""
    kv = create_kv_store(Settings(store=StoreSettings(backend="redis", key_prefix="jp")))
    kv.client = RecordingRedis()

    await kv.set("otp:a", {"v": 1}, ttl_seconds=0)
    assert await kv.pop("otp:a") == {"v": 1}
    assert await kv.incr("rl:1.2.3.4", 60) == (3, 42)

    assert kv.client.calls == [
        ("set", "jp:otp:a", '{"v": 1}', 1),
        ("getdel", "jp:otp:a"),
        ("incr", "jp:rl:1.2.3.4"),
        ("expire", "jp:rl:1.2.3.4", 60, True),
        ("ttl", "jp:rl:1.2.3.4"),
    ]


def test_unknown_backend_is_rejected():
    """Test that a misconfigured backend fails loudly."""
    with pytest.raises(ConfigurationError):
        create_kv_store(Settings(store=StoreSettings(backend="memcached")))


async def test_code_is_single_use():
    """Test that a matching code verifies once."""
    codes = OneTimeCodeStore(InMemoryKeyValueStore(), clock=FakeClock())
    issued = await codes.issue("a@example.com")

    assert len(issued.code) == 6 and issued.code.isdigit()
    assert await codes.verify("a@example.com", issued.code) is True
    assert await codes.verify("a@example.com", issued.code) is False


async def test_new_code_supersedes_previous():
    codes = OneTimeCodeStore(InMemoryKeyValueStore(), clock=FakeClock())
    first = await codes.issue("a@example.com")
    second = await codes.issue("a@example.com")

    if first.code != second.code:
        assert await codes.verify("a@example.com", first.code) is False
    assert await codes.verify("a@example.com", second.code) is True


async def test_code_expires_by_clock():
    """Test that expiry is judged by the injected clock."""
    clock = FakeClock()
    codes = OneTimeCodeStore(InMemoryKeyValueStore(), ttl=timedelta(minutes=10), clock=clock)
    issued = await codes.issue("a@example.com")

    clock.advance(minutes=10)
    assert await codes.verify("a@example.com", issued.code) is False
    assert await codes.peek("a@example.com") is None


async def test_code_discarded_after_max_attempts():
    """Test that repeated mismatches burn the code."""
    codes = OneTimeCodeStore(InMemoryKeyValueStore(), max_attempts=3, clock=FakeClock())
    issued = await codes.issue("a@example.com")
    wrong = "000000"

    assert await codes.verify("a@example.com", wrong) is False
    assert (await codes.peek("a@example.com")).attempts == 1
    assert await codes.verify("a@example.com", wrong) is False
    assert await codes.verify("a@example.com", wrong) is False

    assert await codes.peek("a@example.com") is None
    assert await codes.verify("a@example.com", issued.code) is False


async def test_reset_token_lookup_does_not_consume():
    """Test reset token lookup, expiry and consumption."""
    clock = FakeClock()
    resets = ResetTokenStore(InMemoryKeyValueStore(), clock=clock)
    grant = await resets.issue("user-1", "a@example.com")

    assert len(grant.token) == 64
    assert (await resets.lookup(grant.token)).user_id == "user-1"
    assert (await resets.lookup(grant.token)).email == "a@example.com"

    await resets.consume(grant.token)
    assert await resets.lookup(grant.token) is None

    expiring = await resets.issue("user-1", "a@example.com")
    clock.advance(hours=1)
    assert await resets.lookup(expiring.token) is None


async def test_mfa_challenge_round_trip():
    challenges = MfaChallengeStore(InMemoryKeyValueStore(), clock=FakeClock())
    token = await challenges.issue("user-1")

    assert await challenges.lookup(token) == "user-1"
    await challenges.consume(token)
    assert await challenges.lookup(token) is None
    assert await challenges.lookup("") is None


async def test_csrf_tokens_are_single_use():
    csrf = CsrfTokenStore(InMemoryKeyValueStore(), clock=FakeClock())
    token = await csrf.issue("127.0.0.1")

    assert await csrf.consume(token) is True
    assert await csrf.consume(token) is False
    assert await csrf.consume(None) is False


async def test_rate_limiter_blocks_after_limit(store, ticker):
    """Test the fixed window limiter."""
    limiter = FixedWindowRateLimiter(store, "auth", max_requests=2, window_seconds=60)

    first = await limiter.hit("1.2.3.4")
    assert first.allowed and first.remaining == 1
    assert (await limiter.hit("1.2.3.4")).allowed

    blocked = await limiter.hit("1.2.3.4")
    assert not blocked.allowed
    assert blocked.remaining == 0
    assert blocked.reset_after == 60

    assert (await limiter.hit("5.6.7.8")).allowed

    ticker.now += 60
    assert (await limiter.hit("1.2.3.4")).allowed


async def test_rate_limiter_propagates_store_errors():
    """Test that store failures surface to the caller."""

    class BrokenStore(InMemoryKeyValueStore):
        async def incr(self, key, ttl_seconds):
            raise ConnectionError("store down")

    limiter = FixedWindowRateLimiter(BrokenStore(), "api", max_requests=5)
    with pytest.raises(ConnectionError):
        await limiter.hit("1.2.3.4")
