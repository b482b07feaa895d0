"""Retry helpers shared by Mutex and Semaphore.

Both primitives poll: they try, and on failure sleep for a randomized
backoff before trying again. The first failure emits a single "waiting"
notification and starts a timer; success emits "acquired after Ts".
"""

import random
import time
from collections.abc import Callable

from .errors import LockTimeoutError
from .logging import LoggerLike, format_elapsed, log_event


def backoff_delay(retry_delay_ms: int, rng: random.Random | None = None) -> float:
    """Draw a sleep duration in seconds from [d/2, d/2 + d] milliseconds.

    Args:
        retry_delay_ms: Nominal delay between retries in milliseconds
        rng: Random source (defaults to the ``random`` module)

    Returns:
        Delay in seconds
    """
    source = rng if rng is not None else random
    low = retry_delay_ms / 2
    return source.uniform(low, low + retry_delay_ms) / 1000


class Deadline:
    """Optional point in time after which waiting must stop.

    A ``None`` timeout never expires.
    """

    def __init__(self, timeout: float | None, resource: str) -> None:
        self.resource = resource
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @property
    def unbounded(self) -> bool:
        return self._expires_at is None

    def remaining(self) -> float | None:
        """Seconds left before expiry, or None when unbounded."""
        if self.unbounded:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self) -> None:
        """Raise LockTimeoutError if the deadline has passed."""
        if not self.unbounded and time.monotonic() >= self._expires_at:
            raise LockTimeoutError(f"Timed out waiting to acquire lock on {self.resource}")


class WaitTimer:
    """Tracks the wait of a single acquisition attempt.

    Args:
        logger: Receiver of the wait notifications
        resource: Name substituted into ``{resource}``
        waiting_message: Template logged on the first retry
        acquired_message: Template logged on success after a wait
    """

    def __init__(
        self,
        logger: LoggerLike,
        resource: str,
        waiting_message: str,
        acquired_message: str,
    ) -> None:
        self._logger = logger
        self._resource = resource
        self._waiting_message = waiting_message
        self._acquired_message = acquired_message
        self._started_at: float | None = None

    @property
    def waiting(self) -> bool:
        return self._started_at is not None

    def retrying(self) -> None:
        """Record a failed attempt. Only the first one notifies."""
        if not self.waiting:
            self._started_at = time.monotonic()
            log_event(self._logger, self._waiting_message, resource=self._resource)

    def elapsed(self) -> float:
        if not self.waiting:
            return 0.0
        return time.monotonic() - self._started_at

    def finish(self) -> float:
        """Return the time waited, logging it if a wait happened."""
        if not self.waiting:
            return 0.0
        waited = self.elapsed()
        log_event(
            self._logger,
            self._acquired_message,
            resource=self._resource,
            elapsed_time=format_elapsed(waited),
        )
        return waited


def sleep_backoff(
    retry_delay_ms: int,
    deadline: Deadline,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> float:
    """Sleep for one randomized backoff, never past the deadline.

    Returns:
        The duration passed to ``sleep``
    """
    delay = backoff_delay(retry_delay_ms, rng)
    remaining = deadline.remaining()
    if remaining is not None:
        delay = min(delay, remaining)
    sleep(delay)
    return delay
