"""
Job Wake-up Notifier

Lets idle workers react to new jobs without waiting out the full poll interval.
The job store stays the source of truth: a wake-up only means "poll now",
so a lost or duplicated signal never loses or duplicates a job.

- PollingNotifier: plain sleep, used when no Redis is configured
- RedisNotifier: LPUSH on submission, BLPOP with timeout while idle
"""

import logging
import threading
from typing import Optional, Protocol

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class JobNotifier(Protocol):
    def notify(self) -> None: ...  # pragma: no cover

    def wait(self, timeout: float) -> bool: ...  # pragma: no cover


class PollingNotifier:
    """Idle by sleeping; notify() wakes a waiter in the same process."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def notify(self) -> None:
        self._event.set()

    def wait(self, timeout: float) -> bool:
        woke = self._event.wait(timeout)
        self._event.clear()
        return woke


class RedisNotifier:
    """Cross-process wake-ups through a Redis list."""

    def __init__(self, connection: Redis, key: str = "longform:jobs:wakeup") -> None:
        self._redis = connection
        self._key = key

    @classmethod
    def from_url(cls, redis_url: str, key: str = "longform:jobs:wakeup") -> "RedisNotifier":
        return cls(Redis.from_url(redis_url, decode_responses=True), key)

    def notify(self) -> None:
        try:
            self._redis.lpush(self._key, "1")
            # One pending wake-up is enough
            self._redis.ltrim(self._key, 0, 0)
        except RedisError as e:
            # Workers still find the job on their next poll
            logger.warning(f"Failed to publish wake-up: {e}")

    def wait(self, timeout: float) -> bool:
        # BLPOP takes whole seconds; 0 would block forever
        seconds = max(1, int(round(timeout)))
        try:
            return self._redis.blpop([self._key], timeout=seconds) is not None
        except RedisError as e:
            logger.warning(f"Wake-up wait failed, falling back to sleep: {e}")
            threading.Event().wait(timeout)
            return False


def create_notifier(redis_url: Optional[str], key: str = "longform:jobs:wakeup") -> JobNotifier:
    if redis_url:
        return RedisNotifier.from_url(redis_url, key)
    return PollingNotifier()
