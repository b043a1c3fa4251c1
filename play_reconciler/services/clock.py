"""Service clock with an adjustable offset.

Responsibilities:
- Provide the single notion of "now" used by activity predicates, the
  reconciler and the sweeper
- Shift time forward (days, hours, minutes) for sweep drills and tests
- Freeze time at a specific timestamp
"""

import threading
import time
from datetime import datetime, timezone
from typing import Optional

from play_reconciler.logging_config import get_logger

logger = get_logger(__name__)

MILLIS_PER_MINUTE = 60 * 1000
MILLIS_PER_HOUR = 60 * MILLIS_PER_MINUTE
MILLIS_PER_DAY = 24 * MILLIS_PER_HOUR


def millis_to_iso(millis: Optional[int]) -> Optional[str]:
    """Convert Unix millis to an ISO 8601 UTC string, None for absent/non-positive values."""
    if not isinstance(millis, int) or isinstance(millis, bool) or millis <= 0:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()


class Clock:
    """Wall clock with an optional offset or frozen instant.

    By default tracks real time. advance() adds an offset; freeze() pins the
    clock to one instant until reset().
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._offset_millis = 0
        self._frozen_millis: Optional[int] = None

    def now_millis(self) -> int:
        """Get the current time as Unix millis."""
        with self._lock:
            if self._frozen_millis is not None:
                return self._frozen_millis
            return int(time.time() * 1000) + self._offset_millis

    def now_iso(self) -> str:
        """Get the current time as an ISO 8601 UTC string."""
        return datetime.fromtimestamp(self.now_millis() / 1000, tz=timezone.utc).isoformat()

    def advance(self, days: int = 0, hours: int = 0, minutes: int = 0) -> dict:
        """Move the clock forward.

        Args:
            days: number of days to advance
            hours: number of hours to advance
            minutes: number of minutes to advance

        Returns:
            Dictionary with old_time_millis, new_time_millis and time_advanced_millis

        Raises:
            ValueError: if any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed.")

        delta = days * MILLIS_PER_DAY + hours * MILLIS_PER_HOUR + minutes * MILLIS_PER_MINUTE

        with self._lock:
            old_time = self.now_millis()
            if self._frozen_millis is not None:
                self._frozen_millis += delta
            else:
                self._offset_millis += delta
            new_time = self.now_millis()

        logger.info(
            "clock_advanced",
            old_time_millis=old_time,
            new_time_millis=new_time,
            days=days,
            hours=hours,
            minutes=minutes,
        )
        return {
            "old_time_millis": old_time,
            "new_time_millis": new_time,
            "time_advanced_millis": delta,
        }

    def freeze(self, timestamp_millis: Optional[int] = None) -> int:
        """Pin the clock to a timestamp (defaults to the current time).

        Returns:
            The frozen timestamp
        """
        with self._lock:
            frozen = self.now_millis() if timestamp_millis is None else timestamp_millis
            self._frozen_millis = frozen
        logger.info("clock_frozen", time_millis=frozen)
        return frozen

    def reset(self) -> None:
        """Return to real time with no offset."""
        with self._lock:
            self._offset_millis = 0
            self._frozen_millis = None
        logger.info("clock_reset")


_clock_instance: Optional[Clock] = None
_clock_lock = threading.Lock()


def get_clock() -> Clock:
    """Get global clock instance (singleton)."""
    global _clock_instance
    if _clock_instance is None:
        with _clock_lock:
            if _clock_instance is None:
                _clock_instance = Clock()
    return _clock_instance


def reset_clock() -> None:
    """Reset the global clock to real time."""
    get_clock().reset()
