"""Keyed state shared across stateless request invocations.

Everything that must outlive a single request (verification codes,
rate-limit windows) is written through the narrow :class:`KeyValueStore`
interface. Three backends are provided:

- ``RedisStore``: production default, native TTLs.
- ``SqlStore``: durable alternative on any SQLAlchemy database.
- ``MemoryStore``: per-process and reset on restart. Best-effort only; it
  can make limits stricter than configured when a process is recycled,
  never looser within one process.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from threading import Lock
from typing import Protocol

import redis
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from wiki_contrib.core.errors import ConfigurationError
from wiki_contrib.core.settings import settings
from wiki_contrib.models.store_entry import StoreEntry

Clock = Callable[[], float]

# Minimum spacing between full expiry sweeps triggered from writes.
SWEEP_INTERVAL_SECONDS = 60.0


class KeyValueStore(Protocol):
    """Minimal keyed store with per-entry expiry."""

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store for tests and single-process development."""

    def __init__(
        self, clock: Clock = time.time, *, sweep_interval: float = SWEEP_INTERVAL_SECONDS
    ) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = Lock()
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def get(self, key: str) -> str | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if expiry <= now:
                self._entries.pop(key, None)
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self.delete(key)
            return
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._entries[key] = (value, now + ttl_seconds)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expiry) in self._entries.items() if expiry <= now]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisStore:
    """Redis-backed store relying on native key expiry."""

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> str | None:
        value = self._redis.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self.delete(key)
            return
        self._redis.set(key, value, ex=int(ttl_seconds))

    def delete(self, key: str) -> None:
        self._redis.delete(key)


class SqlStore:
    """SQL-backed store; expired rows are ignored on read and purged from writes."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock = time.time,
        *,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC)

    def get(self, key: str) -> str | None:
        with self._session_factory() as session:
            entry = session.get(StoreEntry, key)
            if entry is None:
                return None
            if _as_utc(entry.expires_at) <= self._now():
                session.delete(entry)
                session.commit()
                return None
            return entry.value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self.delete(key)
            return
        expires_at = self._now() + timedelta(seconds=ttl_seconds)
        with self._session_factory() as session:
            session.merge(StoreEntry(key=key, value=value, expires_at=expires_at))
            session.commit()
        if self._clock() >= self._next_sweep:
            self.purge_expired()

    def delete(self, key: str) -> None:
        with self._session_factory() as session:
            session.execute(delete(StoreEntry).where(StoreEntry.key == key))
            session.commit()

    def purge_expired(self) -> int:
        """Delete every expired row and return how many were removed."""
        self._next_sweep = self._clock() + self._sweep_interval
        with self._session_factory() as session:
            expired = session.scalars(
                select(StoreEntry.key).where(StoreEntry.expires_at <= self._now())
            ).all()
            if expired:
                session.execute(delete(StoreEntry).where(StoreEntry.key.in_(expired)))
                session.commit()
            return len(expired)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


_MEMORY_STORE = MemoryStore()


@lru_cache(maxsize=None)
def _redis_store(url: str) -> RedisStore:
    return RedisStore.from_url(url)


@lru_cache(maxsize=1)
def _sql_store() -> SqlStore:
    from wiki_contrib.db.session import SessionLocal, create_tables

    create_tables()
    return SqlStore(SessionLocal)


def get_store() -> KeyValueStore:
    """Return the store selected by ``STORE_BACKEND``."""
    backend = settings.store_backend.lower()
    if backend == "redis":
        return _redis_store(settings.redis_url)
    if backend == "sql":
        return _sql_store()
    if backend == "memory":
        return _MEMORY_STORE
    raise ConfigurationError(f"Unknown store backend: {settings.store_backend}")
