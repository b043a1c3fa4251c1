"""Subscription store - in-memory storage for per-token subscription records.

Keyed by purchase token. Provider-derived fields are written only through
the reconciler; ``owner_uid`` only through identity resolution.
"""

import threading
from typing import List, Optional

from play_reconciler.models.subscription import SubscriptionRecord
from play_reconciler.repositories.document_store import DocumentStore


class SubscriptionStore(DocumentStore[SubscriptionRecord]):
    """Subscription records keyed by purchase token."""

    collection = "subscriptions"

    def find_active_expired(self, now_millis: int, limit: Optional[int] = None) -> List[SubscriptionRecord]:
        """Get records still flagged active whose expiry has passed.

        Args:
            now_millis: Reference time (Unix millis)
            limit: Maximum number of records to return

        Returns:
            Records with is_active=True and expiry_time_millis <= now_millis
        """
        return self.query(
            lambda s: s.is_active and (s.expiry_time_millis or 0) <= now_millis,
            limit=limit,
        )


_store_instance: Optional[SubscriptionStore] = None
_store_lock = threading.Lock()


def get_subscription_store() -> SubscriptionStore:
    """Get global subscription store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = SubscriptionStore()
    return _store_instance


def reset_subscription_store() -> None:
    """Replace the global subscription store with an empty one (for testing)."""
    global _store_instance
    with _store_lock:
        _store_instance = SubscriptionStore()
