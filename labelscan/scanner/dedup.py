"""
==============================================================================
Deduplicator Module
==============================================================================

Noise rejection and cooldown-based duplicate suppression for readings.
Only the most recently committed reading is consulted, so each check is
constant time; a deliberate re-scan after the cooldown is a new reading.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Any, Optional


# Module logger
logger = logging.getLogger(__name__)


def normalize_text(value: Any) -> str:
    """Coerce a raw decoder value to a trimmed string."""
    return str(value or "").strip()


class Deduplicator:
    """
    Decides whether a decoded value may become a reading.

    Example:
        >>> dedup = Deduplicator(min_length=5, window_ms=1200)
        >>> dedup.is_duplicate("ABC123", "ABC123", last_at=0, now=500)
        True
    """

    def __init__(self, min_length: int = 5, window_ms: float = 1200) -> None:
        self.min_length = min_length
        self.window_ms = window_ms

    def is_acceptable(self, value: str) -> bool:
        """Reject values too short to be anything but noise."""
        return len(value) >= self.min_length

    def is_duplicate(
        self,
        value: str,
        last_value: Optional[str],
        last_at: Optional[float],
        now: float,
    ) -> bool:
        """
        Check a value against the last committed reading.

        Args:
            value: Normalized candidate value
            last_value: Value of the last committed reading (None if none)
            last_at: Commit time of the last reading in ms
            now: Current time in ms

        Returns:
            True iff the value equals the last one and the cooldown has
            not yet elapsed
        """
        if last_value is None or last_at is None:
            return False
        if value != last_value:
            return False
        if now - last_at > self.window_ms:
            return False

        logger.debug(f"Suppressed repeat of {value!r} after {now - last_at:.0f} ms")
        return True
