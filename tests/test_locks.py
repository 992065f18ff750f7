"""Tests for the named booking locks."""

import threading
from unittest.mock import MagicMock

import pytest
import redis
from redis.exceptions import LockError

from slotkeeper.config import EngineSettings
from slotkeeper.domain.scheduling.locks import (
    DatabaseLockFactory,
    InMemoryLockFactory,
    RedisLockFactory,
    _advisory_key,
    booking_lock_name,
    build_lock_factory,
)


def test_lock_name_per_date():
    assert booking_lock_name("2026-03-02") == "book:2026-03-02"


class TestInMemoryLock:
    def test_mutual_exclusion_per_name(self):
        factory = InMemoryLockFactory()
        first = factory.lock("book:2026-03-02")
        second = factory.lock("book:2026-03-02")

        assert first.acquire(1)
        assert not second.acquire(0.05)
        first.release()
        assert second.acquire(0.05)
        second.release()

    def test_different_names_do_not_block(self):
        factory = InMemoryLockFactory()
        a = factory.lock("book:2026-03-02")
        b = factory.lock("book:2026-03-03")
        assert a.acquire(1)
        assert b.acquire(0.05)
        a.release()
        b.release()

    def test_release_without_acquire_is_harmless(self):
        factory = InMemoryLockFactory()
        lock = factory.lock("book:2026-03-02")
        lock.release()
        assert lock.acquire(0)
        lock.release()

    def test_waiter_gets_lock_after_release(self):
        factory = InMemoryLockFactory()
        holder = factory.lock("book:2026-03-02")
        holder.acquire(1)
        got = []

        def wait():
            waiter = factory.lock("book:2026-03-02")
            got.append(waiter.acquire(2))
            waiter.release()

        t = threading.Thread(target=wait)
        t.start()
        holder.release()
        t.join()
        assert got == [True]

    def test_map_entry_dropped_once_unused(self):
        factory = InMemoryLockFactory()
        for day in ("2026-03-02", "2026-03-03", "2026-03-04"):
            lock = factory.lock(booking_lock_name(day))
            assert lock.acquire(1)
            lock.release()
        assert factory._locks == {}

    def test_entry_kept_while_a_waiter_times_out(self):
        factory = InMemoryLockFactory()
        holder = factory.lock("book:2026-03-02")
        holder.acquire(1)

        assert not factory.lock("book:2026-03-02").acquire(0.05)
        assert "book:2026-03-02" in factory._locks
        holder.release()
        assert factory._locks == {}


class TestRedisLock:
    def test_acquire_and_release(self):
        client = MagicMock()
        client.lock.return_value.acquire.return_value = True
        lock = RedisLockFactory(client, lease_seconds=30).lock("book:2026-03-02")

        assert lock.acquire(5)
        client.lock.assert_called_once_with("lock:book:2026-03-02", timeout=30)
        client.lock.return_value.acquire.assert_called_once_with(blocking=True, blocking_timeout=5)

        lock.release()
        client.lock.return_value.release.assert_called_once()

    def test_timeout_returns_false_and_release_is_noop(self):
        client = MagicMock()
        client.lock.return_value.acquire.return_value = False
        lock = RedisLockFactory(client).lock("book:2026-03-02")

        assert not lock.acquire(1)
        lock.release()
        client.lock.return_value.release.assert_not_called()

    def test_redis_down_returns_false(self):
        client = MagicMock()
        client.lock.return_value.acquire.side_effect = redis.ConnectionError("down")
        assert not RedisLockFactory(client).lock("book:2026-03-02").acquire(1)

    def test_expired_lease_on_release_is_logged(self, caplog):
        client = MagicMock()
        client.lock.return_value.acquire.return_value = True
        client.lock.return_value.release.side_effect = LockError("not owned")
        lock = RedisLockFactory(client).lock("book:2026-03-02")

        lock.acquire(1)
        lock.release()
        assert "expired" in caplog.text


class TestDatabaseLock:
    def test_sqlite_is_rejected(self, engine):
        with pytest.raises(ValueError, match="MySQL or PostgreSQL"):
            DatabaseLockFactory(engine)

    def test_advisory_key_is_stable_signed_64_bit(self):
        key = _advisory_key("book:2026-03-02")
        assert key == _advisory_key("book:2026-03-02")
        assert key != _advisory_key("book:2026-03-03")
        assert -(2**63) <= key < 2**63


class TestBuildLockFactory:
    def test_memory_backend(self):
        assert isinstance(build_lock_factory(EngineSettings(lock_backend="memory")), InMemoryLockFactory)

    def test_redis_backend_uses_given_client(self):
        client = MagicMock()
        factory = build_lock_factory(EngineSettings(lock_backend="redis", lock_timeout=20), redis_client=client)
        assert isinstance(factory, RedisLockFactory)
        assert factory.lease_seconds == 60

    def test_database_backend_needs_supported_dialect(self, engine):
        with pytest.raises(ValueError):
            build_lock_factory(EngineSettings(lock_backend="database"), engine=engine)
