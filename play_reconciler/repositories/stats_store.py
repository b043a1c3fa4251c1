"""Subscriber statistics store - a single global stats document."""

import threading
from typing import List, Optional

from play_reconciler.models.affiliate import SubscriberStats


class StatsStore:
    """Holds the global active-subscriber counter and e-mail set."""

    def __init__(self):
        self._stats = SubscriberStats()
        self._lock = threading.RLock()

    def get(self) -> SubscriberStats:
        with self._lock:
            return self._stats.model_copy(deep=True)

    def add(self, email: str, now_iso: str) -> SubscriberStats:
        """Count one more active subscriber and add the e-mail (set semantics)."""
        with self._lock:
            emails = list(self._stats.emails)
            if email not in emails:
                emails.append(email)
            self._stats = self._stats.model_copy(
                update={
                    "active_count": self._stats.active_count + 1,
                    "emails": emails,
                    "updated_at": now_iso,
                }
            )
            return self._stats.model_copy(deep=True)

    def remove(self, email: str, now_iso: str) -> SubscriberStats:
        """Count one fewer active subscriber and remove the e-mail."""
        with self._lock:
            self._stats = self._stats.model_copy(
                update={
                    "active_count": self._stats.active_count - 1,
                    "emails": [e for e in self._stats.emails if e != email],
                    "updated_at": now_iso,
                }
            )
            return self._stats.model_copy(deep=True)

    def replace(self, emails: List[str], now_iso: str) -> SubscriberStats:
        """Overwrite the stats from a full recount."""
        with self._lock:
            self._stats = SubscriberStats(
                active_count=len(emails),
                emails=list(emails),
                updated_at=now_iso,
                last_manual_sync=now_iso,
            )
            return self._stats.model_copy(deep=True)


_store_instance: Optional[StatsStore] = None
_store_lock = threading.Lock()


def get_stats_store() -> StatsStore:
    """Get global stats store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = StatsStore()
    return _store_instance


def reset_stats_store() -> None:
    """Replace the global stats store with an empty one (for testing)."""
    global _store_instance
    with _store_lock:
        _store_instance = StatsStore()
