"""Read and write semaphore state through a locked file handle.

Every function here must be called while the caller holds the Mutex
guarding the handle; nothing is cached between calls.
"""

from typing import TextIO

from .errors import StateFormatError
from .models import PoolState


def read_state(handle: TextIO, capacity: int) -> PoolState:
    """Read the state line from the start of the file.

    Args:
        handle: Locked handle on the shared file
        capacity: Slot count used when the file is empty

    Returns:
        Current state

    Raises:
        StateFormatError: If the file content is malformed
    """
    handle.seek(0)
    try:
        line = handle.readline()
    except UnicodeDecodeError as e:
        raise StateFormatError(f"State file is not valid UTF-8: {e}") from e
    return PoolState.decode(line, capacity)


def write_state(handle: TextIO, state: PoolState) -> None:
    """Overwrite the file in place with the encoded state.

    The file is truncated after the write so no stale bytes remain.
    """
    handle.seek(0)
    handle.write(state.encode())
    handle.flush()
    handle.truncate()


def truncate_state(handle: TextIO) -> None:
    """Empty the file, which reads back as the initial state."""
    handle.seek(0)
    handle.truncate(0)
    handle.flush()
