"""Process-existence checks used to reclaim slots of dead holders."""

import os
from typing import Protocol


class ProcessChecker(Protocol):
    """Capability answering "does process PID currently exist?"."""

    @property
    def available(self) -> bool:
        """False when this platform offers no reliable check."""
        ...

    def is_alive(self, pid: int) -> bool: ...


class SignalProcessChecker:
    """POSIX check using signal 0, which checks a PID without delivering anything."""

    available = True

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, but owned by another user
            return True
        return True


class NullProcessChecker:
    """Fallback for platforms without a check: every process is assumed alive."""

    available = False

    def is_alive(self, pid: int) -> bool:
        return True


def default_process_checker() -> ProcessChecker:
    """Return the best checker for the current platform.

    ``os.kill(pid, 0)`` terminates the target on Windows, so it is only
    used on POSIX systems.
    """
    if os.name == "posix":
        return SignalProcessChecker()
    return NullProcessChecker()
