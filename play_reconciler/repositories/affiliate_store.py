"""Affiliate store - codes, aggregates, subscribers and redemptions.

The four collections share one re-entrant lock so a subscriber update and
its aggregate adjustment can run as a single transaction.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from play_reconciler.models.affiliate import (
    AffiliateAggregate,
    AffiliateCode,
    AffiliateRedemption,
    AffiliateSubscriber,
)
from play_reconciler.repositories.document_store import DocumentNotFoundError, DocumentStore


class AffiliateCodeCollection(DocumentStore[AffiliateCode]):
    collection = "affiliate_codes"


class AffiliateAggregateCollection(DocumentStore[AffiliateAggregate]):
    collection = "affiliates"


class AffiliateSubscriberCollection(DocumentStore[AffiliateSubscriber]):
    """Keyed by (affiliate_id, uid)."""

    collection = "affiliate_subscribers"


class AffiliateRedemptionCollection(DocumentStore[AffiliateRedemption]):
    """Keyed by (affiliate_id, uid)."""

    collection = "affiliate_redemptions"


class AffiliateStore:
    """Affiliate program storage.

    The aggregate counter is only ever adjusted by one unit at a time through
    adjust_active_count(); it is never recomputed from the subscriber set.
    """

    def __init__(self):
        """Initialize all affiliate collections behind one lock."""
        self._lock = threading.RLock()
        self.codes = AffiliateCodeCollection(lock=self._lock)
        self.aggregates = AffiliateAggregateCollection(lock=self._lock)
        self.subscribers = AffiliateSubscriberCollection(lock=self._lock)
        self.redemptions = AffiliateRedemptionCollection(lock=self._lock)

    @contextmanager
    def transaction(self) -> Iterator["AffiliateStore"]:
        """Hold the affiliate lock across a read-then-write sequence."""
        with self._lock:
            yield self

    def find_code(self, code: str) -> Optional[AffiliateCode]:
        return self.codes.find(code)

    def find_subscriber(self, affiliate_id: str, uid: str) -> Optional[AffiliateSubscriber]:
        return self.subscribers.find((affiliate_id, uid))

    def get_subscribers(self, affiliate_id: str) -> List[AffiliateSubscriber]:
        return self.subscribers.query(lambda s: s.affiliate_id == affiliate_id)

    def get_active_count(self, affiliate_id: str) -> int:
        """Get the aggregate counter value for an affiliate.

        Raises:
            DocumentNotFoundError: If the affiliate does not exist
        """
        return self.aggregates.get(affiliate_id).active_subscribers

    def adjust_active_count(self, affiliate_id: str, delta: int) -> int:
        """Atomically add delta (+1 or -1) to an affiliate's counter.

        Returns:
            New counter value

        Raises:
            ValueError: If delta is not +1 or -1
            DocumentNotFoundError: If the affiliate does not exist
        """
        if delta not in (1, -1):
            raise ValueError(f"Counter adjustments must be one unit, got {delta}")
        with self._lock:
            aggregate = self.aggregates.find(affiliate_id)
            if aggregate is None:
                raise DocumentNotFoundError(f"affiliates document not found: {affiliate_id}")
            new_count = aggregate.active_subscribers + delta
            self.aggregates.merge(affiliate_id, {"active_subscribers": new_count})
            return new_count

    def clear(self) -> None:
        """Clear all affiliate collections."""
        with self._lock:
            self.codes.clear()
            self.aggregates.clear()
            self.subscribers.clear()
            self.redemptions.clear()


_store_instance: Optional[AffiliateStore] = None
_store_lock = threading.Lock()


def get_affiliate_store() -> AffiliateStore:
    """Get global affiliate store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = AffiliateStore()
    return _store_instance


def reset_affiliate_store() -> None:
    """Replace the global affiliate store with an empty one (for testing)."""
    global _store_instance
    with _store_lock:
        _store_instance = AffiliateStore()
