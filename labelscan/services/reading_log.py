"""
==============================================================================
Reading Log Module
==============================================================================

In-memory, append-only store of committed readings.

The log is the result sink for every capture session and for single-shot
and manual entries. It is shared between request handlers and WebSocket
sessions, so every access goes through a lock.

Storage is process-local; readings do not survive a restart.

==============================================================================
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from labelscan.scanner.session import Reading


# Module logger
logger = logging.getLogger(__name__)


class ReadingLog:
    """
    Thread-safe, append-only list of readings (oldest first).

    Example:
        >>> log = ReadingLog()
        >>> log.append(Reading(timestamp=0, value="ABC123", source_tag="zxingcpp"))
        >>> log.last().value
        'ABC123'
    """

    def __init__(self) -> None:
        self._readings: List[Reading] = []
        self._lock = threading.Lock()

    def append(self, reading: Reading) -> None:
        with self._lock:
            self._readings.append(reading)

    def last(self) -> Optional[Reading]:
        """Most recently appended reading, if any."""
        with self._lock:
            return self._readings[-1] if self._readings else None

    def all(self) -> List[Reading]:
        """Snapshot of every reading, oldest first."""
        with self._lock:
            return list(self._readings)

    def clear(self) -> int:
        """
        Drop the history.

        Returns:
            Number of readings removed
        """
        with self._lock:
            count = len(self._readings)
            self._readings.clear()
        logger.info(f"🗑️ Reading history cleared ({count} removed)")
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_reading_log_instance: Optional[ReadingLog] = None


def get_reading_log() -> Optional[ReadingLog]:
    """Get the global reading log instance."""
    return _reading_log_instance


def init_reading_log() -> ReadingLog:
    """
    Initialize the global reading log instance.

    Returns:
        ReadingLog instance
    """
    global _reading_log_instance
    _reading_log_instance = ReadingLog()
    return _reading_log_instance
