"""
Named mutual-exclusion locks used to serialise booking creation per date.

Three backends share one small interface, ``factory.lock(name)`` returning an
object with ``acquire(timeout) -> bool`` and ``release()``:

- ``RedisLockFactory``: redis-py ``Lock``; shared by every process using the same Redis.
- ``DatabaseLockFactory``: MySQL ``GET_LOCK`` or PostgreSQL advisory locks.
- ``InMemoryLockFactory``: a per-process lock map. Only correct when a single
  server process handles bookings; the atomic insert is then the only
  cross-process guard.
"""

import hashlib
import logging
import time
from threading import Lock
from typing import Optional, Protocol

import redis
from redis.exceptions import LockError
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ...config import EngineSettings

logger = logging.getLogger(__name__)

PG_POLL_INTERVAL = 0.1


class NamedLock(Protocol):
    name: str

    def acquire(self, timeout: float) -> bool:
        ...

    def release(self) -> None:
        ...


class LockFactory(Protocol):
    def lock(self, name: str) -> NamedLock:
        ...


def booking_lock_name(date_str: str) -> str:
    return f"book:{date_str}"


# In-process


class _InMemoryLock:
    def __init__(self, name: str, factory: "InMemoryLockFactory"):
        self.name = name
        self._factory = factory
        self._inner: Optional[Lock] = None

    def acquire(self, timeout: float) -> bool:
        inner = self._factory._checkout(self.name)
        if inner.acquire(timeout=timeout):
            self._inner = inner
            return True
        self._factory._checkin(self.name)
        return False

    def release(self) -> None:
        inner, self._inner = self._inner, None
        if inner is not None:
            inner.release()
            self._factory._checkin(self.name)


class InMemoryLockFactory:
    """Per-process lock map; an entry lives only while someone holds or waits on it."""

    def __init__(self):
        # Format: {name: [Lock, holders_and_waiters]}
        self._locks: dict[str, list] = {}
        self._guard = Lock()

    def _checkout(self, name: str) -> Lock:
        with self._guard:
            entry = self._locks.setdefault(name, [Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, name: str) -> None:
        with self._guard:
            entry = self._locks[name]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[name]

    def lock(self, name: str) -> _InMemoryLock:
        return _InMemoryLock(name, self)


# Redis


class _RedisLock:
    def __init__(self, name: str, client: redis.Redis, lease_seconds: int):
        self.name = name
        self._lock = client.lock(f"lock:{name}", timeout=lease_seconds)
        self._held = False

    def acquire(self, timeout: float) -> bool:
        try:
            self._held = bool(self._lock.acquire(blocking=True, blocking_timeout=timeout))
        except redis.RedisError as e:
            logger.error(f"❌ Redis lock {self.name} unavailable: {e}")
            self._held = False
        return self._held

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self._lock.release()
        except LockError:
            # Lease expired and someone else may hold it now
            logger.warning(f"⚠️ Redis lock {self.name} expired before release")
        except redis.RedisError as e:
            logger.error(f"❌ Failed to release Redis lock {self.name}: {e}")


class RedisLockFactory:
    def __init__(self, client: redis.Redis, lease_seconds: int = 30):
        self.client = client
        self.lease_seconds = lease_seconds

    def lock(self, name: str) -> _RedisLock:
        return _RedisLock(name, self.client, self.lease_seconds)


# Database advisory locks


def _advisory_key(name: str) -> int:
    """Stable signed 64-bit key for ``pg_advisory_lock``."""
    return int.from_bytes(hashlib.sha256(name.encode()).digest()[:8], "big", signed=True)


class _DatabaseLock:
    """Holds a dedicated connection for the lifetime of a session-level lock."""

    def __init__(self, name: str, engine: Engine):
        self.name = name
        self.engine = engine
        self.dialect = engine.dialect.name
        self._conn: Optional[Connection] = None

    def _try_acquire(self, conn: Connection, timeout: float) -> bool:
        if self.dialect == "mysql":
            got = conn.execute(text("SELECT GET_LOCK(:name, :timeout)"), {"name": self.name, "timeout": int(timeout)})
            return got.scalar() == 1

        key = _advisory_key(self.name)
        deadline = time.monotonic() + timeout
        while True:
            if conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar():
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(PG_POLL_INTERVAL)

    def acquire(self, timeout: float) -> bool:
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"❌ Could not open a connection for lock {self.name}: {e.__class__.__name__}")
            return False

        try:
            acquired = self._try_acquire(conn, timeout)
        except SQLAlchemyError as e:
            logger.error(f"❌ Database lock {self.name} failed: {e.__class__.__name__}")
            acquired = False

        if acquired:
            self._conn = conn
        else:
            conn.close()
        return acquired

    def release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            if self.dialect == "mysql":
                conn.execute(text("SELECT RELEASE_LOCK(:name)"), {"name": self.name})
            else:
                conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": _advisory_key(self.name)})
        except SQLAlchemyError as e:
            # Closing the connection ends the session, which drops the lock anyway
            logger.error(f"❌ Failed to release database lock {self.name}: {e.__class__.__name__}")
        finally:
            conn.close()


class DatabaseLockFactory:
    SUPPORTED_DIALECTS = ("mysql", "postgresql")

    def __init__(self, engine: Engine):
        if engine.dialect.name not in self.SUPPORTED_DIALECTS:
            raise ValueError(
                f"Database booking locks need MySQL or PostgreSQL, not {engine.dialect.name}; "
                "use BOOKING_LOCK_BACKEND=redis or memory"
            )
        self.engine = engine

    def lock(self, name: str) -> _DatabaseLock:
        return _DatabaseLock(name, self.engine)


def build_lock_factory(
    settings: EngineSettings,
    engine: Optional[Engine] = None,
    redis_client: Optional[redis.Redis] = None,
) -> LockFactory:
    """Lock backend selected by ``settings.lock_backend``."""
    if settings.lock_backend == "redis":
        if redis_client is None:
            from ...rate_limiter import get_redis_client

            redis_client = get_redis_client()
        logger.info("🔒 Booking locks: Redis")
        return RedisLockFactory(redis_client, lease_seconds=max(30, settings.lock_timeout * 3))

    if settings.lock_backend == "database":
        if engine is None:
            from ...database import engine as default_engine

            engine = default_engine
        logger.info(f"🔒 Booking locks: database ({engine.dialect.name})")
        return DatabaseLockFactory(engine)

    logger.warning("⚠️ Booking locks: in-process only, correct for a single server process")
    return InMemoryLockFactory()
