"""procsem: cross-process mutex and counting semaphore built on file locks.

Example:
    >>> from procsem import Semaphore
    >>> with Semaphore(2, "/tmp/gpu.lock", resource_name="gpu"):
    ...     run_job()
"""

__version__ = "0.1.0"

from .errors import (
    CapacityExceededError,
    ConfigError,
    IllegalStateError,
    LockTimeoutError,
    ProcsemError,
    StateFormatError,
)
from .models import PoolState
from .mutex import Mutex
from .process import NullProcessChecker, ProcessChecker, SignalProcessChecker
from .semaphore import Semaphore

__all__ = [
    "CapacityExceededError",
    "ConfigError",
    "IllegalStateError",
    "LockTimeoutError",
    "Mutex",
    "NullProcessChecker",
    "PoolState",
    "ProcessChecker",
    "ProcsemError",
    "Semaphore",
    "SignalProcessChecker",
    "StateFormatError",
    "__version__",
]
