"""Simulator audit log.

Every lifecycle event (boot, admission, denial, termination, eviction,
policy change) is recorded as a structured entry so the operator can
review what happened with the ``log`` command.

- **LogLevel**: severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry**: one immutable record, numbered in the order it was
  written.
- **Logger**: a bounded ring buffer, like a kernel ``dmesg`` buffer.
  Once it is full the oldest entry makes room for the newest, and the
  logger counts how many were overwritten.

Background tasks finish on their own threads, so the buffer is
guarded by a lock.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from threading import Lock

DEFAULT_CAPACITY = 1000


class LogLevel(IntEnum):
    """Severity levels for log entries.

    Using IntEnum means levels compare with ``<`` / ``>`` naturally,
    which makes minimum-level filtering trivial.
    """

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: What happened.
        source: The component that logged it (``context``, ``lifecycle``,
            ``scheduler``).
        seq: Position in the logger's write order, starting at 1.
            Zero for entries built outside a logger.

    """

    level: LogLevel
    message: str
    source: str
    seq: int = 0

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message``."""
        return f"[{self.level.name}] {self.source}: {self.message}"


class Logger:
    """Bounded, thread-safe audit log with filtering."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Create an empty logger.

        Args:
            capacity: How many entries are kept before the oldest are
                overwritten.

        Raises:
            ValueError: If *capacity* is not positive.

        """
        if capacity <= 0:
            msg = f"Log capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = Lock()
        self._seq = 0
        self._dropped = 0

    @property
    def capacity(self) -> int:
        """Return the maximum number of entries kept."""
        return self._entries.maxlen or 0

    @property
    def entries(self) -> list[LogEntry]:
        """Return the kept entries, oldest first."""
        with self._lock:
            return list(self._entries)

    @property
    def dropped(self) -> int:
        """Return how many entries were overwritten because the buffer was full."""
        with self._lock:
            return self._dropped

    def log(self, level: LogLevel, message: str, *, source: str) -> LogEntry:
        """Append a new entry, evicting the oldest one if the buffer is full.

        Returns:
            The entry as stored, carrying its sequence number.

        """
        with self._lock:
            self._seq += 1
            if len(self._entries) == self._entries.maxlen:
                self._dropped += 1
            entry = LogEntry(level=level, message=message, source=source, seq=self._seq)
            self._entries.append(entry)
        return entry

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Return entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.

        Returns:
            A filtered list of log entries.

        """
        result = self.entries
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result

    def tail(self, count: int) -> list[LogEntry]:
        """Return the *count* most recent entries, oldest first."""
        if count <= 0:
            return []
        return self.entries[-count:]

    def clear(self) -> None:
        """Remove all entries; sequence numbers keep counting."""
        with self._lock:
            self._entries.clear()
