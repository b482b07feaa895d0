"""Pydantic data models for procsem.

Example:
    >>> from procsem.models import PoolState
    >>> PoolState.decode("2013-11-21 13:17:25.86|5|12345", capacity=5).pids
    [12345]
"""

from .state import (
    EPOCH,
    PoolState,
    format_timestamp,
    parse_timestamp,
    truncate_to_centiseconds,
)

__all__ = [
    "EPOCH",
    "PoolState",
    "format_timestamp",
    "parse_timestamp",
    "truncate_to_centiseconds",
]
