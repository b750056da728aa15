"""
Test per-event locks (Redis-backed and process-local).
"""
import threading
import time

import pytest

from app.core.locks import LocalEventLocks, RedisEventLocks
from app.services.errors import LockUnavailableError


class TestRedisEventLocks:
    def test_lock_key_is_per_event(self):
        assert RedisEventLocks.key(7) == "event_lock:7"

    def test_lock_is_held_inside_block(self, fake_redis):
        locks = RedisEventLocks(fake_redis, timeout=10, blocking_timeout=1)

        with locks.hold(1):
            other = fake_redis.lock("event_lock:1", timeout=10)
            assert other.acquire(blocking=False) is False

        assert fake_redis.get("event_lock:1") is None

    def test_different_events_do_not_block(self, fake_redis):
        locks = RedisEventLocks(fake_redis, timeout=10, blocking_timeout=1)

        with locks.hold(1):
            with locks.hold(2):
                assert fake_redis.get("event_lock:2") is not None

    def test_busy_event_times_out(self, fake_redis):
        locks = RedisEventLocks(fake_redis, timeout=10, blocking_timeout=1)
        holder = fake_redis.lock("event_lock:3", timeout=10)
        assert holder.acquire(blocking=False) is True

        try:
            with pytest.raises(LockUnavailableError):
                with locks.hold(3):
                    pass
        finally:
            holder.release()

    def test_lock_released_when_block_raises(self, fake_redis):
        locks = RedisEventLocks(fake_redis, timeout=10, blocking_timeout=1)

        with pytest.raises(RuntimeError):
            with locks.hold(4):
                raise RuntimeError("boom")

        with locks.hold(4):
            pass


class TestLocalEventLocks:
    def test_busy_event_times_out(self):
        locks = LocalEventLocks(blocking_timeout=0.1)
        entered = threading.Event()
        release = threading.Event()

        def hold_it():
            with locks.hold(1):
                entered.set()
                release.wait(2)

        worker = threading.Thread(target=hold_it)
        worker.start()
        entered.wait(2)
        try:
            with pytest.raises(LockUnavailableError):
                with locks.hold(1):
                    pass
            # other events stay available
            with locks.hold(2):
                pass
        finally:
            release.set()
            worker.join()

    def test_serializes_critical_section(self):
        locks = LocalEventLocks()
        inside = []
        overlaps = []

        def work():
            with locks.hold(9):
                inside.append(1)
                if len(inside) > 1:
                    overlaps.append(1)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []

    def test_released_locks_are_forgotten(self):
        locks = LocalEventLocks()

        for event_id in range(1000):
            with locks.hold(event_id):
                assert event_id in locks._locks

        assert locks._locks == {}

    def test_lock_forgotten_after_timeout_and_error(self):
        locks = LocalEventLocks(blocking_timeout=0.1)

        with pytest.raises(RuntimeError):
            with locks.hold(5):
                raise RuntimeError("boom")
        assert locks._locks == {}

        with locks.hold(6):
            with pytest.raises(LockUnavailableError):
                # same thread, non-reentrant lock: the second hold times out
                with locks.hold(6):
                    pass
            assert locks._locks[6][1] == 1
        assert locks._locks == {}
