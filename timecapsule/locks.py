"""
Lock abstraction that keeps delivery sweeps from overlapping.

Supports a process-local fallback for tests/local runs and a Redis-backed
implementation so several scheduler processes share one sweep at a time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class SweepLock(Protocol):
    """Non-blocking mutex guarding sweep entry."""

    def acquire(self) -> bool:
        ...

    def release(self) -> None:
        ...


@dataclass
class InMemorySweepLock:
    """Process-local lock for single-instance deployments and tests."""

    _lock: threading.Lock = field(default_factory=threading.Lock)

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


@dataclass
class RedisSweepLock:
    """Redis-backed lock with a TTL so a crashed holder cannot wedge sweeps."""

    url: str
    key: str = "timecapsule:delivery-sweep"
    ttl_seconds: int = 300

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)
        self._held: Optional[redis.lock.Lock] = None

    def _new_lock(self):
        # Acquired on the timer thread, released on the sweep thread.
        return self.client.lock(
            self.key, timeout=self.ttl_seconds, blocking=False, thread_local=False
        )

    def acquire(self) -> bool:
        lock = self._new_lock()
        try:
            acquired = lock.acquire(blocking=False)
        except redis_exceptions.ConnectionError:
            # Connection resets can happen on managed Redis. Skip this tick and
            # reconnect for the next one.
            logger.warning("Redis unavailable while acquiring sweep lock %s", self.key)
            self.client = redis.Redis.from_url(self.url)
            return False
        if acquired:
            self._held = lock
        return bool(acquired)

    def release(self) -> None:
        lock, self._held = self._held, None
        if lock is None:
            return
        try:
            lock.release()
        except redis_exceptions.LockError:
            logger.warning(
                "Sweep lock %s expired before release; sweep ran longer than %ss",
                self.key,
                self.ttl_seconds,
            )
        except redis_exceptions.ConnectionError:
            logger.warning(
                "Redis unavailable while releasing sweep lock %s; it expires in %ss",
                self.key,
                self.ttl_seconds,
            )
