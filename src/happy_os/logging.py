"""Terminal event log — an audit trail of what each user's OS did.

Every subsystem (filesystem, package manager, network, downloads) records
structured entries here so an operator can see what happened, and for
whom, without scraping the text that was sent back to the chat.

- **LogLevel** — severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry** — a single structured record (level, message, source, user).
- **Logger** — an append-only, bounded log with filtering and clearing.

Design choices:
    - **IntEnum for levels** so they compare naturally with ``<``.
    - **Frozen dataclass for entries** — log records should be immutable.
    - **Bounded buffer** — a long-running host must not grow without
      limit, so the oldest entries fall off once ``capacity`` is reached.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum

DEFAULT_LOG_CAPACITY = 1000


class LogLevel(IntEnum):
    """Severity levels for log entries."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The subsystem that generated the event (e.g. "pkg").
        user_id: The user whose terminal triggered the event ("" = system).

    """

    level: LogLevel
    message: str
    source: str
    user_id: str = ""

    def __str__(self) -> str:
        """Format as ``[LEVEL] source(user): message``."""
        who = f"({self.user_id})" if self.user_id else ""
        return f"[{self.level.name}] {self.source}{who}: {self.message}"


class Logger:
    """Append-only log buffer with filtering.

    Entries beyond ``capacity`` evict the oldest ones first.
    """

    def __init__(self, *, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        """Create an empty logger holding at most *capacity* entries."""
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    @property
    def entries(self) -> list[LogEntry]:
        """Return all log entries in chronological order."""
        return list(self._entries)

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        source: str,
        user_id: str = "",
    ) -> None:
        """Append a new entry to the log.

        Args:
            level: Severity of the event.
            message: Human-readable event description.
            source: Subsystem that generated the event.
            user_id: User associated with the event.

        """
        self._entries.append(LogEntry(level=level, message=message, source=source, user_id=user_id))

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
        user_id: str | None = None,
    ) -> list[LogEntry]:
        """Return entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.
            user_id: If set, only return entries for this user.

        Returns:
            A filtered list of log entries.

        """
        result = list(self._entries)
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        if user_id is not None:
            result = [e for e in result if e.user_id == user_id]
        return result

    def clear(self) -> None:
        """Remove all log entries."""
        self._entries.clear()

    def __len__(self) -> int:
        """Return the number of buffered entries."""
        return len(self._entries)
