"""User store - per-user subscription projection records, keyed by uid."""

import threading
from typing import List, Optional

from play_reconciler.models.user import SubscriptionStatus, UserRecord
from play_reconciler.repositories.document_store import DocumentStore


class UserStore(DocumentStore[UserRecord]):
    """User records keyed by uid."""

    collection = "users"

    def find_active_expired(self, now_millis: int, limit: Optional[int] = None) -> List[UserRecord]:
        """Get users still marked active whose projected expiry has passed."""
        return self.query(
            lambda u: u.subscription_status == SubscriptionStatus.ACTIVE
            and (u.expiry_time_millis or 0) <= now_millis,
            limit=limit,
        )

    def is_subscriber(self, uid: str) -> bool:
        """Check whether a user is currently marked active."""
        user = self.find(uid)
        return user is not None and user.subscription_status == SubscriptionStatus.ACTIVE


_store_instance: Optional[UserStore] = None
_store_lock = threading.Lock()


def get_user_store() -> UserStore:
    """Get global user store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = UserStore()
    return _store_instance


def reset_user_store() -> None:
    """Replace the global user store with an empty one (for testing)."""
    global _store_instance
    with _store_lock:
        _store_instance = UserStore()
