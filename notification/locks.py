"""
Per-post advisory lock.

One post event is processed by one writer at a time. With Redis configured
the lock is shared by every worker; otherwise it only covers this process.
"""

import contextlib
import logging
import threading
from typing import Dict, Optional

from redis import Redis

from core.config_loader import QueueConfig
from notification.exceptions import PostLockedException

logger = logging.getLogger(__name__)

LOCK_PREFIX = "post_alert:lock:"

# Per-post locks shared by every LocalPostLock in the process
_local_guard = threading.Lock()
_local_locks: Dict[int, threading.Lock] = {}


class RedisPostLock:
    def __init__(self, redis_url: str, timeout_seconds: int = 60):
        self.redis_url = redis_url
        self.timeout_seconds = timeout_seconds
        self._redis: Optional[Redis] = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy init)."""
        if self._redis is None:
            self._redis = Redis.from_url(self.redis_url)
        return self._redis

    @contextlib.contextmanager
    def hold(self, post_id: int):
        lock = self._get_redis().lock(
            f"{LOCK_PREFIX}{post_id}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.timeout_seconds,
        )
        if not lock.acquire():
            raise PostLockedException(f"Post {post_id} is being processed elsewhere")
        try:
            yield
        finally:
            lock.release()


class LocalPostLock:
    def __init__(self, timeout_seconds: int = 60):
        self.timeout_seconds = timeout_seconds

    def _lock_for(self, post_id: int) -> threading.Lock:
        with _local_guard:
            return _local_locks.setdefault(post_id, threading.Lock())

    @contextlib.contextmanager
    def hold(self, post_id: int):
        lock = self._lock_for(post_id)
        if not lock.acquire(timeout=self.timeout_seconds):
            raise PostLockedException(f"Post {post_id} is being processed elsewhere")
        try:
            yield
        finally:
            lock.release()


def build_post_lock(config: QueueConfig):
    if config.use_async_queue and config.redis_url:
        return RedisPostLock(config.redis_url, config.post_lock_timeout_seconds)
    logger.info("No Redis URL configured. Using process-local post locks.")
    return LocalPostLock(config.post_lock_timeout_seconds)


class HeldPostLock:
    """Stands in for a post lock the caller already holds."""

    @contextlib.contextmanager
    def hold(self, post_id: int):
        yield
