"""Cross-process counting semaphore.

The remaining slot count and the holder PIDs live in the same file the
underlying Mutex locks. Every read-modify-write happens between a Mutex
acquire() and release(), so concurrent processes never race on the state.

Lock file content:
    "<last-update(YYYY-MM-DD HH:MM:SS.cc)>|<remaining>|<comma-separated-pids>"
Example:
    "2013-11-21 13:17:25.86|5|12345,12346,12347"

release() does not check that the caller holds a slot: an unmatched
release pushes the remaining count above capacity unless ``strict`` is set.
"""

import logging
import os
import random
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Self, TextIO

from .backoff import Deadline, WaitTimer, sleep_backoff
from .constants import DEFAULT_RETRY_DELAY_MS
from .errors import CapacityExceededError
from .logging import LoggerLike
from .models import PoolState, truncate_to_centiseconds
from .mutex import Mutex
from .process import ProcessChecker, default_process_checker
from .state_io import read_state, truncate_state, write_state

WAITING_MESSAGE = "Waiting to acquire lock on {resource}…"
ACQUIRED_MESSAGE = "Lock acquired after {elapsed_time}s"


class Semaphore:
    """Counting semaphore shared by processes using the same file.

    Constructing an instance reclaims the slots of dead holders (see clean()).

    Args:
        capacity: Number of slots
        path: Shared state file, created on first use if absent
        retry_delay_ms: Nominal delay between attempts in milliseconds
        resource_name: Name used in notifications (defaults to the path)
        logger: Receiver of wait notifications
        process_checker: Process-existence check used by clean()
        strict: Reject a release() that would exceed capacity
        sleep: Sleep function used between attempts
        rng: Random source for the backoff
    """

    def __init__(
        self,
        capacity: int,
        path: Path | str,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        resource_name: str | None = None,
        *,
        logger: LoggerLike | None = None,
        process_checker: ProcessChecker | None = None,
        strict: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.path = Path(path)
        self.retry_delay_ms = retry_delay_ms
        self.resource_name = resource_name or str(path)
        self.strict = strict
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._process_checker = process_checker or default_process_checker()
        self._sleep = sleep
        self._rng = rng
        self._mutex = Mutex(
            self.path,
            retry_delay_ms,
            self.resource_name,
            logger=self._logger,
            sleep=sleep,
            rng=rng,
        )
        self._mutex_waiting_time = 0.0
        self._slot_waiting_time = 0.0
        self.reclaimed_pids = self.clean()

    def clean(self) -> list[int]:
        """Reclaim the slots of holders whose process no longer exists.

        Each dead PID is dropped from the holder list and gives back one
        slot. If no holder remains the file is emptied, which reads back as
        the initial state. Skipped when the platform cannot check processes.

        Returns:
            PIDs whose slots were reclaimed
        """
        if not self._process_checker.available:
            self._logger.debug(
                "Process checks unavailable, skipping cleanup of %s", self.resource_name
            )
            return []

        handle, _ = self._lock()
        try:
            state = read_state(handle, self.capacity)
            alive = [pid for pid in state.pids if self._process_checker.is_alive(pid)]
            dead = [pid for pid in state.pids if pid not in alive]
            if alive:
                self._set_content(handle, state.remaining + len(dead), alive, releasing=True)
            else:
                truncate_state(handle)
        finally:
            self._mutex.release()

        for pid in dead:
            self._logger.debug("Reclaimed slot of dead process %d on %s", pid, self.resource_name)
        return dead

    def read_state(self) -> PoolState:
        """Return a snapshot of the shared state, read under the mutex."""
        handle, _ = self._lock()
        try:
            return read_state(handle, self.capacity)
        finally:
            self._mutex.release()

    def acquire(self, timeout: float | None = None) -> tuple[float, float]:
        """Take one slot, retrying until one is free.

        Args:
            timeout: Maximum seconds for the whole call; None waits forever

        Returns:
            (last_update_ts, waiting_time): the state's last update time as
            read by the successful attempt, and the seconds spent waiting
            for the mutex plus for a free slot

        Raises:
            LockTimeoutError: If ``timeout`` elapses first
        """
        deadline = Deadline(timeout, self.resource_name)
        timer = WaitTimer(self._logger, self.resource_name, WAITING_MESSAGE, ACQUIRED_MESSAGE)
        mutex_waiting_time = 0.0

        while True:
            handle, waited = self._mutex.acquire(deadline.remaining())
            mutex_waiting_time += waited
            self._mutex_waiting_time += waited
            try:
                state = read_state(handle, self.capacity)
                acquired = state.remaining > 0
                if acquired:
                    self._set_content(handle, state.remaining - 1, state.pids, releasing=False)
            finally:
                self._mutex.release()

            if acquired:
                break
            deadline.check()
            timer.retrying()
            sleep_backoff(self.retry_delay_ms, deadline, self._sleep, self._rng)

        slot_waiting_time = timer.finish()
        self._slot_waiting_time += slot_waiting_time
        return state.last_update_ts, mutex_waiting_time + slot_waiting_time

    def release(self) -> float:
        """Give back one slot.

        Returns:
            Seconds spent waiting for the mutex

        Raises:
            CapacityExceededError: If ``strict`` and every slot is already free
        """
        handle, waited = self._lock()
        try:
            state = read_state(handle, self.capacity)
            remaining = state.remaining + 1
            if self.strict and remaining > self.capacity:
                raise CapacityExceededError(
                    f"Release on {self.resource_name} would leave {remaining} free slots "
                    f"(capacity {self.capacity})"
                )
            self._set_content(handle, remaining, state.pids, releasing=True)
        finally:
            self._mutex.release()
        return waited

    def get_total_waiting_time(self) -> float:
        """Total seconds spent waiting, for the mutex and for free slots."""
        return self._mutex_waiting_time + self._slot_waiting_time

    def get_mutex_waiting_time(self) -> float:
        return self._mutex_waiting_time

    def get_slot_waiting_time(self) -> float:
        return self._slot_waiting_time

    def _lock(self) -> tuple[TextIO, float]:
        handle, waited = self._mutex.acquire()
        self._mutex_waiting_time += waited
        return handle, waited

    def _set_content(
        self,
        handle: TextIO,
        remaining: int,
        pids: Iterable[int],
        releasing: bool,
    ) -> PoolState:
        """Write the state, dropping (releasing) or adding our own PID."""
        own_pid = os.getpid()
        if releasing:
            holders = [pid for pid in pids if pid != own_pid]
        else:
            holders = [*pids, own_pid]
        state = PoolState(
            last_update=truncate_to_centiseconds(datetime.now().astimezone()),
            remaining=remaining,
            pids=list(dict.fromkeys(holders)),
        )
        write_state(handle, state)
        return state

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"Semaphore({self.capacity}, {str(self.path)!r})"
