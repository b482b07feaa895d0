"""Non-blocking exclusive advisory locks on an open file.

POSIX uses ``fcntl.flock``; Windows uses ``msvcrt.locking`` on the first
byte of the file. Only genuine contention is reported as ``False``: any
other OSError propagates to the caller.
"""

import errno
import os
from pathlib import Path
from typing import TextIO

if os.name == "nt":
    import msvcrt
else:
    import fcntl

# msvcrt reports a busy region as EACCES, or EDEADLOCK once its internal retries are exhausted
_WINDOWS_CONTENTION_ERRNOS = {errno.EACCES, getattr(errno, "EDEADLOCK", errno.EDEADLK)}


def open_shared_file(path: Path) -> TextIO:
    """Open the shared file read/write, creating it if absent.

    The file is never truncated on open and the position starts at 0.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o666)
    try:
        return open(fd, "r+", encoding="utf-8", newline="")
    except BaseException:
        os.close(fd)
        raise


def try_lock(handle: TextIO) -> bool:
    """Try to take an exclusive lock without blocking.

    Returns:
        True if the lock was taken, False if another process holds it
    """
    if os.name == "nt":
        handle.seek(0)
        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as e:
            if e.errno in _WINDOWS_CONTENTION_ERRNOS:
                return False
            raise
        return True

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


def unlock(handle: TextIO) -> None:
    """Release a lock taken with try_lock()."""
    if os.name == "nt":
        handle.flush()
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
