import uuid
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

import pytest
import redis

from tirestore.core.config import settings
from tirestore.core.login_guard import (
    BLOCK_THRESHOLD,
    InMemoryLoginAttemptStore,
    LoginGuard,
    RedisLoginAttemptStore,
)

IP = "198.51.100.4"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _hammer(guard: LoginGuard, email: str, attempts: int) -> list:
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: guard.record_failure(email, IP), range(attempts)))
    return sorted(result.failed_count for result in results)


def test_parallel_failures_are_all_counted():
    guard = LoginGuard(InMemoryLoginAttemptStore())

    counts = _hammer(guard, "burst@example.com", 12)

    assert counts == list(range(1, 13))
    record = guard.store.get("burst@example.com", IP)
    assert record.failed_attempts == 12
    assert record.is_blocked is True


def test_window_starts_at_first_failure_and_block_restarts_it():
    clock = FakeClock()
    guard = LoginGuard(InMemoryLoginAttemptStore(clock=clock), window_seconds=3600)

    guard.record_failure("slow@example.com", IP)
    clock.now += 1000
    guard.record_failure("slow@example.com", IP)
    assert guard.store.ttl("slow@example.com", IP) == 2600

    for _ in range(BLOCK_THRESHOLD - 2):
        guard.record_failure("slow@example.com", IP)
    assert guard.store.ttl("slow@example.com", IP) == 3600

    clock.now += 3601
    assert guard.store.get("slow@example.com", IP) is None
    guard.check_block("slow@example.com", IP)


def test_redis_failure_count_and_expiry_share_one_transaction():
    with mock.patch.object(redis.Redis, "from_url") as from_url:
        client = from_url.return_value
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [4, 4, 1, True]
        store = RedisLoginAttemptStore(url="redis://unused")

        failed = store.increment_failure("pipe@example.com", IP, "Mozilla/5.0", "Invalid credentials", 3600)

    assert failed == 4
    client.pipeline.assert_called_once_with(transaction=True)
    key = f"tirestore:login_attempts:pipe@example.com:{IP}"
    pipe.hincrby.assert_any_call(key, "failed_attempts", 1)
    pipe.expire.assert_called_once_with(key, 3600, nx=True)
    client.get.assert_not_called()
    client.set.assert_not_called()


def test_redis_block_always_sets_expiry():
    with mock.patch.object(redis.Redis, "from_url") as from_url:
        client = from_url.return_value
        pipe = client.pipeline.return_value
        store = RedisLoginAttemptStore(url="redis://unused")

        store.block("pipe@example.com", IP, "Too many", "login_failed", None, ttl_seconds=3600)

    key = f"tirestore:login_attempts:pipe@example.com:{IP}"
    pipe.hset.assert_called_once()
    pipe.expire.assert_called_once_with(key, 3600)
    pipe.execute.assert_called_once()


@pytest.fixture
def redis_store():
    store = RedisLoginAttemptStore(url=settings.REDIS_URL, key_prefix=f"test:login_attempts:{uuid.uuid4().hex}")
    try:
        store.client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis server not available")
    yield store
    for key in store.client.scan_iter(match=f"{store.key_prefix}:*"):
        store.client.delete(key)


def test_redis_parallel_failures_block_with_ttl(redis_store: RedisLoginAttemptStore):
    guard = LoginGuard(redis_store)

    counts = _hammer(guard, "burst@example.com", 10)

    assert counts == list(range(1, 11))
    record = redis_store.get("burst@example.com", IP)
    assert record.failed_attempts == 10
    assert record.is_blocked is True
    assert 0 < redis_store.ttl("burst@example.com", IP) <= 3600
