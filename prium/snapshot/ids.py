"""Snapshot identifiers.

A snapshot id names one backup run and is embedded in every key the run
writes. The chain logic assumes ids sort in the order the backups were taken,
so ordering is defined here explicitly instead of leaning on string
comparison:

  - ids in the current format (``2017-07-14_02:40:00``, UTC) and legacy epoch
    second ids (``1500000000``) both parse to a time and order by it
  - ids that parse as neither sort after every timestamp, by their text

For ids sharing one fixed-width format this is exactly string order.
"""

import functools
from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%d_%H:%M:%S"

# Anything shorter is a counter, not epoch seconds.
_MIN_EPOCH_DIGITS = 9


def _parse_time(value):
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        pass
    if value.isdigit() and len(value) >= _MIN_EPOCH_DIGITS:
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    return None


@functools.total_ordering
class SnapshotId:
    """Ordered, hashable snapshot identifier. Compares equal to its text."""

    __slots__ = ("value", "timestamp", "_sort_key")

    def __init__(self, value):
        if isinstance(value, SnapshotId):
            value = value.value
        value = str(value)
        if not value or "/" in value:
            raise ValueError(f"invalid snapshot id: {value!r}")
        self.value = value
        self.timestamp = _parse_time(value)
        if self.timestamp is None:
            self._sort_key = (1, datetime.min, value)
        else:
            self._sort_key = (0, self.timestamp, value)

    @classmethod
    def from_datetime(cls, when):
        """Id for a point in time. Aware datetimes are converted to UTC first."""
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc).replace(tzinfo=None)
        return cls(when.strftime(TIMESTAMP_FORMAT))

    @classmethod
    def now(cls):
        return cls.from_datetime(datetime.now(timezone.utc))

    def _coerce(self, other):
        if isinstance(other, SnapshotId):
            return other
        if isinstance(other, str):
            return SnapshotId(other)
        return None

    def __eq__(self, other):
        if isinstance(other, SnapshotId):
            return self.value == other.value
        if isinstance(other, str):
            return self.value == other
        return NotImplemented

    def __lt__(self, other):
        other = self._coerce(other)
        if other is None:
            return NotImplemented
        return self._sort_key < other._sort_key

    def __hash__(self):
        return hash(self.value)

    def __str__(self):
        return self.value

    def __repr__(self):
        return f"SnapshotId({self.value!r})"
