"""Cross-process mutex backed by an advisory file lock.

The lock is taken with a non-blocking call and retried after a randomized
backoff, which lets the mutex notify once when it starts waiting and
measure how long it waited.
"""

import logging
import random
import time
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Self, TextIO

from .backoff import Deadline, WaitTimer, sleep_backoff
from .constants import DEFAULT_RETRY_DELAY_MS
from .errors import IllegalStateError
from .logging import LoggerLike
from .platform_lock import open_shared_file, try_lock, unlock

WAITING_MESSAGE = "Waiting to acquire Mutex lock on {resource}…"
ACQUIRED_MESSAGE = "Mutex lock acquired after {elapsed_time}s"


class Mutex:
    """Exclusive lock on a shared file, usable across unrelated processes.

    One instance holds at most one handle: acquire() while held and
    release() while free both raise IllegalStateError.

    Args:
        path: Shared lock file, created on first acquire if absent
        retry_delay_ms: Nominal delay between lock attempts in milliseconds
        resource_name: Name used in notifications (defaults to the path)
        logger: Receiver of wait notifications (defaults to this module's logger)
        sleep: Sleep function used between attempts
        rng: Random source for the backoff
    """

    def __init__(
        self,
        path: Path | str,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        resource_name: str | None = None,
        *,
        logger: LoggerLike | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if retry_delay_ms < 1:
            raise ValueError(f"retry_delay_ms must be positive, got {retry_delay_ms}")
        self.path = Path(path)
        self.retry_delay_ms = retry_delay_ms
        self.resource_name = resource_name or str(path)
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._sleep = sleep
        self._rng = rng
        self._handle: TextIO | None = None
        self._total_waiting_time = 0.0

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    def acquire(self, timeout: float | None = None) -> tuple[TextIO, float]:
        """Acquire the lock, retrying until it is free.

        Args:
            timeout: Maximum seconds to wait; None waits forever

        Returns:
            (handle, waiting_time): the locked file handle, to be used for
            reads and writes until release(), and the seconds spent waiting
            (0.0 when the first attempt succeeded)

        Raises:
            IllegalStateError: If this instance already holds the lock
            LockTimeoutError: If ``timeout`` elapses first
            OSError: If the file cannot be opened or locked for a reason
                other than contention
        """
        if self._handle is not None:
            raise IllegalStateError("You must call release() before acquiring again")

        deadline = Deadline(timeout, self.resource_name)
        timer = WaitTimer(self._logger, self.resource_name, WAITING_MESSAGE, ACQUIRED_MESSAGE)
        handle = open_shared_file(self.path)
        try:
            while not try_lock(handle):
                deadline.check()
                timer.retrying()
                sleep_backoff(self.retry_delay_ms, deadline, self._sleep, self._rng)
        except BaseException:
            handle.close()
            raise

        self._handle = handle
        waiting_time = timer.finish()
        self._total_waiting_time += waiting_time
        return handle, waiting_time

    def release(self) -> None:
        """Release the lock and close the handle.

        Raises:
            IllegalStateError: If this instance does not hold the lock
        """
        handle, self._handle = self._handle, None
        if handle is None:
            raise IllegalStateError("You must call acquire() before releasing")
        try:
            unlock(handle)
        finally:
            handle.close()

    def get_total_waiting_time(self) -> float:
        """Total seconds this instance has spent waiting for the lock."""
        return self._total_waiting_time

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
        state = "held" if self.is_held else "free"
        return f"Mutex({str(self.path)!r}, {state})"
