"""Per-event mutual exclusion for ledger mutations."""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager

import redis

from app.services.errors import LockUnavailableError, PersistenceError

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Could not acquire lock, please try again."


class EventLocks(ABC):
    @abstractmethod
    def hold(self, event_id: int) -> AbstractContextManager[None]:
        """Context manager that owns the event until the block exits."""


class RedisEventLocks(EventLocks):
    """
    Redis lock per event, shared by every worker process talking to the same Redis.
    Only one holder can check capacity and write bookings for an event at a time.
    """

    def __init__(self, client: redis.Redis, *, timeout: int = 10, blocking_timeout: int = 5):
        self.client = client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @staticmethod
    def key(event_id: int) -> str:
        return f"event_lock:{event_id}"

    @contextmanager
    def hold(self, event_id: int) -> Iterator[None]:
        lock = self.client.lock(self.key(event_id), timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        try:
            acquired = lock.acquire(blocking=True)
        except redis.exceptions.LockError as e:
            raise LockUnavailableError(BUSY_MESSAGE) from e
        except redis.exceptions.RedisError as e:
            logger.error("Redis unavailable while locking event %s: %s", event_id, e)
            raise PersistenceError("Lock service unavailable") from e

        if not acquired:
            logger.warning("Timed out waiting for lock on event %s", event_id)
            raise LockUnavailableError(BUSY_MESSAGE)

        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockNotOwnedError:
                # the lock expired while we held it; another holder may already be in
                logger.warning("Lock on event %s expired before release", event_id)


class LocalEventLocks(EventLocks):
    """Process-local locks. Only correct when a single process serves the store."""

    def __init__(self, *, blocking_timeout: float = 5):
        self.blocking_timeout = blocking_timeout
        self._guard = threading.Lock()
        # event id -> (lock, number of holders and waiters)
        self._locks: dict[int, tuple[threading.Lock, int]] = {}

    def _checkout(self, event_id: int) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(event_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[event_id] = (lock, users + 1)
            return lock

    def _checkin(self, event_id: int) -> None:
        with self._guard:
            lock, users = self._locks[event_id]
            if users == 1:
                del self._locks[event_id]
            else:
                self._locks[event_id] = (lock, users - 1)

    @contextmanager
    def hold(self, event_id: int) -> Iterator[None]:
        lock = self._checkout(event_id)
        try:
            if not lock.acquire(timeout=self.blocking_timeout):
                logger.warning("Timed out waiting for local lock on event %s", event_id)
                raise LockUnavailableError(BUSY_MESSAGE)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(event_id)


def build_event_locks(settings) -> EventLocks:
    if settings.LOCK_BACKEND == "local":
        return LocalEventLocks(blocking_timeout=settings.LOCK_BLOCKING_TIMEOUT)

    from app.core.redis_config import get_redis_client

    return RedisEventLocks(
        get_redis_client(),
        timeout=settings.LOCK_TIMEOUT,
        blocking_timeout=settings.LOCK_BLOCKING_TIMEOUT,
    )
