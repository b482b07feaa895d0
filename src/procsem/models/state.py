"""Semaphore state model and its on-disk line encoding.

The shared file holds a single line:

    "<YYYY-MM-DD HH:MM:SS.cc>|<remaining>|<comma-separated-pids>"

e.g. ``"2013-11-21 13:17:25.86|5|12345,12346,12347"``. An empty file stands
for the initial state ``"1970-01-01 00:00:00.00|<capacity>|"``.

Timestamps are local wall-clock time without an offset, so every process
sharing a file must run in the same timezone.
"""

from datetime import UTC, datetime
from typing import Self

from pydantic import BaseModel, Field, ValidationError

from ..constants import PID_SEPARATOR, STATE_DATETIME_FORMAT, STATE_FIELD_SEPARATOR
from ..errors import StateFormatError

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def truncate_to_centiseconds(moment: datetime) -> datetime:
    """Drop sub-centisecond precision, which the line format cannot carry."""
    return moment.replace(microsecond=moment.microsecond // 10_000 * 10_000)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as local wall-clock time with centisecond precision."""
    moment = moment.astimezone()
    return f"{moment.strftime(STATE_DATETIME_FORMAT)}.{moment.microsecond // 10_000:02d}"


def parse_timestamp(text: str) -> datetime:
    """Parse a state timestamp as local wall-clock time.

    Any number of fractional digits is accepted; digits past microseconds
    are ignored.

    Raises:
        StateFormatError: If the text is not a valid timestamp
    """
    main, _, fraction = text.strip().partition(".")
    if fraction and not fraction.isdigit():
        raise StateFormatError(f"Invalid fractional seconds in timestamp: {text!r}")
    try:
        moment = datetime.strptime(main, STATE_DATETIME_FORMAT)
    except ValueError as e:
        raise StateFormatError(f"Invalid timestamp: {text!r}") from e
    microsecond = int((fraction + "000000")[:6])
    try:
        return moment.replace(microsecond=microsecond).astimezone()
    except (OverflowError, OSError) as e:
        raise StateFormatError(f"Timestamp out of range: {text!r}") from e


class PoolState(BaseModel):
    """Semaphore state shared by every process using the same file.

    Attributes:
        last_update: Time of the most recent successful write.
        remaining: Number of free slots.
        pids: Processes currently holding a slot.
    """

    last_update: datetime = Field(default=EPOCH, description="Last successful write")
    remaining: int = Field(ge=0, description="Free slots")
    pids: list[int] = Field(default_factory=list, description="Holder PIDs")

    @classmethod
    def initial(cls, capacity: int) -> Self:
        """State represented by an empty file."""
        return cls(last_update=EPOCH, remaining=capacity, pids=[])

    @property
    def last_update_ts(self) -> float:
        """Last update as seconds since the epoch."""
        return self.last_update.timestamp()

    def encode(self) -> str:
        """Serialize to the single-line file format (no trailing newline)."""
        return STATE_FIELD_SEPARATOR.join(
            [
                format_timestamp(self.last_update),
                str(self.remaining),
                PID_SEPARATOR.join(str(pid) for pid in self.pids),
            ]
        )

    @classmethod
    def decode(cls, line: str, capacity: int) -> Self:
        """Parse a state line.

        Args:
            line: First line of the shared file
            capacity: Slot count used when the line is empty

        Returns:
            Decoded state; the initial state for an empty line

        Raises:
            StateFormatError: If the line is malformed
        """
        line = line.strip()
        if not line:
            return cls.initial(capacity)

        fields = line.split(STATE_FIELD_SEPARATOR)
        if len(fields) != 3:
            raise StateFormatError(f"Expected 3 '|'-separated fields, got {len(fields)}: {line!r}")
        timestamp, remaining, pid_list = fields

        try:
            pids = [int(pid) for pid in pid_list.split(PID_SEPARATOR) if pid.strip()]
            return cls(
                last_update=parse_timestamp(timestamp),
                remaining=int(remaining),
                pids=pids,
            )
        except StateFormatError:
            raise
        except (ValueError, ValidationError) as e:
            raise StateFormatError(f"Invalid state line {line!r}: {e}") from e
