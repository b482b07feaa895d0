"""Exceptions raised by procsem."""


class ProcsemError(Exception):
    """Base exception for procsem errors."""


class IllegalStateError(ProcsemError, RuntimeError):
    """Raised when a mutex is acquired twice or released while not held."""


class LockTimeoutError(ProcsemError, TimeoutError):
    """Raised when an acquire() deadline passes before the lock is obtained."""


class StateFormatError(ProcsemError, ValueError):
    """Raised when the shared state line cannot be decoded."""


class CapacityExceededError(ProcsemError):
    """Raised by a strict semaphore when a release would exceed its capacity."""


class ConfigError(ProcsemError):
    """Raised when configuration cannot be loaded or a resource is unknown."""
