"""Tests for the cross-process Mutex."""

import logging
import multiprocessing
import os
import random
import time
from pathlib import Path

import pytest

from procsem.errors import IllegalStateError, LockTimeoutError
from procsem.mutex import Mutex

requires_fork = pytest.mark.skipif(
    "fork" not in multiprocessing.get_all_start_methods(), reason="needs fork start method"
)


def _critical_section_worker(lock_path: str, journal: str, rounds: int) -> None:
    """Append enter/exit markers to the journal while holding the lock."""
    lock = Mutex(lock_path, retry_delay_ms=5)
    for _ in range(rounds):
        lock.acquire()
        try:
            with open(journal, "a") as f:
                f.write(f"enter {os.getpid()}\n")
            time.sleep(0.005)
            with open(journal, "a") as f:
                f.write(f"exit {os.getpid()}\n")
        finally:
            lock.release()


class TestAcquireRelease:
    """Tests for the Free/Held state machine."""

    def test_acquire_creates_file(self, lock_path: Path) -> None:
        """Acquiring creates the shared file and returns without waiting."""
        lock = Mutex(lock_path)
        handle, waited = lock.acquire()
        try:
            assert lock_path.exists()
            assert lock.is_held
            assert not handle.closed
            assert waited == 0.0
        finally:
            lock.release()

    def test_acquire_keeps_existing_content(self, lock_path: Path) -> None:
        """The file is opened without truncation."""
        lock_path.write_text("keep me")
        lock = Mutex(lock_path)
        handle, _ = lock.acquire()
        try:
            assert handle.read() == "keep me"
        finally:
            lock.release()

    def test_release_closes_handle(self, lock_path: Path) -> None:
        """Releasing closes the handle and frees the mutex."""
        lock = Mutex(lock_path)
        handle, _ = lock.acquire()
        lock.release()
        assert handle.closed
        assert not lock.is_held

    def test_double_acquire_raises(self, lock_path: Path) -> None:
        """acquire() while held is a programming error."""
        lock = Mutex(lock_path)
        lock.acquire()
        try:
            with pytest.raises(IllegalStateError, match="release"):
                lock.acquire()
        finally:
            lock.release()

    def test_release_without_acquire_raises(self, lock_path: Path) -> None:
        """release() while free is a programming error."""
        with pytest.raises(IllegalStateError, match="acquire"):
            Mutex(lock_path).release()

    def test_reacquire_after_release(self, lock_path: Path) -> None:
        """A released mutex can be acquired again."""
        lock = Mutex(lock_path)
        lock.acquire()
        lock.release()
        lock.acquire()
        assert lock.is_held
        lock.release()

    def test_context_manager(self, lock_path: Path) -> None:
        """The mutex is held inside a with block only."""
        lock = Mutex(lock_path)
        with lock:
            assert lock.is_held
        assert not lock.is_held

    def test_resource_name_defaults_to_path(self, lock_path: Path) -> None:
        assert Mutex(lock_path).resource_name == str(lock_path)
        assert Mutex(lock_path, resource_name="db").resource_name == "db"

    def test_invalid_retry_delay(self, lock_path: Path) -> None:
        with pytest.raises(ValueError):
            Mutex(lock_path, retry_delay_ms=0)


class TestContention:
    """Tests for waiting on a lock held by another handle."""

    def test_waits_until_released(
        self, lock_path: Path, make_sleep, caplog: pytest.LogCaptureFixture
    ) -> None:
        """The waiter retries until the holder releases, notifying once."""
        holder = Mutex(lock_path)
        holder.acquire()

        def release_on_third_sleep(calls: int) -> None:
            if calls == 3:
                holder.release()

        sleep = make_sleep(hook=release_on_third_sleep, real=True)
        waiter = Mutex(lock_path, retry_delay_ms=10, resource_name="db", sleep=sleep)
        with caplog.at_level(logging.INFO, logger="procsem"):
            _, waited = waiter.acquire()
        waiter.release()

        assert len(sleep.durations) == 3
        assert waited > 0
        assert waiter.get_total_waiting_time() == pytest.approx(waited)
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "Waiting to acquire Mutex lock on db…"
        assert messages[1] == f"Mutex lock acquired after {round(waited, 2):.2f}s"
        assert len(messages) == 2

    def test_backoff_within_bounds(self, lock_path: Path, make_sleep) -> None:
        """Each retry sleeps between half and one and a half retry delays."""
        holder = Mutex(lock_path)
        holder.acquire()

        def release_late(calls: int) -> None:
            if calls == 50:
                holder.release()

        sleep = make_sleep(hook=release_late)
        waiter = Mutex(lock_path, retry_delay_ms=40, sleep=sleep, rng=random.Random(7))
        waiter.acquire()
        waiter.release()

        assert len(sleep.durations) == 50
        assert all(0.020 <= d <= 0.060 for d in sleep.durations)

    def test_waiting_time_accumulates(self, lock_path: Path, make_sleep) -> None:
        """Total waiting time sums the waits of every acquisition."""
        holder = Mutex(lock_path)

        def release_holder(calls: int) -> None:
            if holder.is_held:
                holder.release()

        sleep = make_sleep(hook=release_holder, real=True)
        waiter = Mutex(lock_path, retry_delay_ms=10, sleep=sleep)
        waits = []
        for _ in range(2):
            holder.acquire()
            waits.append(waiter.acquire()[1])
            waiter.release()

        assert all(w > 0 for w in waits)
        assert waiter.get_total_waiting_time() == pytest.approx(sum(waits))

    def test_uncontended_acquire_adds_nothing(self, lock_path: Path) -> None:
        """Acquisitions that succeed first time contribute zero wait."""
        lock = Mutex(lock_path)
        for _ in range(3):
            with lock:
                pass
        assert lock.get_total_waiting_time() == 0.0

    def test_timeout(self, lock_path: Path) -> None:
        """With a timeout, acquire gives up and leaves the mutex free."""
        holder = Mutex(lock_path)
        holder.acquire()
        try:
            waiter = Mutex(lock_path, retry_delay_ms=10)
            started = time.monotonic()
            with pytest.raises(LockTimeoutError):
                waiter.acquire(timeout=0.1)
            assert time.monotonic() - started < 1.0
            assert not waiter.is_held
        finally:
            holder.release()
        # The waiter is reusable once the holder is gone
        waiter.acquire(timeout=0.1)
        waiter.release()


class TestIOErrors:
    """Tests for failures other than contention."""

    def test_unopenable_path_raises(self, tmp_path: Path) -> None:
        """A path that cannot be opened fails fast instead of retrying."""
        lock = Mutex(tmp_path)
        with pytest.raises(OSError):
            lock.acquire()
        assert not lock.is_held


@requires_fork
class TestAcrossProcesses:
    """Multi-process properties."""

    def test_mutual_exclusion(self, lock_path: Path, tmp_path: Path) -> None:
        """At most one process is inside the critical section at a time."""
        journal = tmp_path / "journal.txt"
        ctx = multiprocessing.get_context("fork")
        workers = [
            ctx.Process(target=_critical_section_worker, args=(str(lock_path), str(journal), 5))
            for _ in range(4)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)
            assert worker.exitcode == 0

        lines = journal.read_text().splitlines()
        assert len(lines) == 4 * 5 * 2
        for enter, exit_ in zip(lines[::2], lines[1::2], strict=True):
            assert enter.startswith("enter ")
            assert exit_ == enter.replace("enter", "exit")
