"""Push notification storage - device tokens and announcements."""

import threading
from typing import List, Optional

from play_reconciler.models.notifications import Announcement, DeviceToken
from play_reconciler.repositories.document_store import DocumentStore, WriteResult


class DeviceTokenStore(DocumentStore[DeviceToken]):
    """FCM registration tokens keyed by (uid, token)."""

    collection = "device_tokens"

    def register(self, uid: str, token: str, now_iso: str, platform: Optional[str] = None) -> WriteResult:
        """Register (or re-enable) a device token for a user."""
        return self.merge(
            (uid, token),
            {"enabled": True, "platform": platform, "disabled_at": None, "disable_reason": None},
            factory=lambda: DeviceToken(uid=uid, token=token, created_at=now_iso),
        )

    def find_enabled(self, limit: Optional[int] = None) -> List[DeviceToken]:
        """Get enabled tokens across all users."""
        return self.query(lambda t: t.enabled, limit=limit)

    def disable(self, uid: str, token: str, reason: str, now_iso: str) -> WriteResult:
        """Mark a token as no longer eligible for delivery."""
        return self.merge(
            (uid, token),
            {"enabled": False, "disabled_at": now_iso, "disable_reason": reason},
        )


class AnnouncementStore(DocumentStore[Announcement]):
    """Announcements keyed by announcement id."""

    collection = "announcements"


_token_store: Optional[DeviceTokenStore] = None
_announcement_store: Optional[AnnouncementStore] = None
_store_lock = threading.Lock()


def get_device_token_store() -> DeviceTokenStore:
    """Get global device token store instance (singleton)."""
    global _token_store
    if _token_store is None:
        with _store_lock:
            if _token_store is None:
                _token_store = DeviceTokenStore()
    return _token_store


def get_announcement_store() -> AnnouncementStore:
    """Get global announcement store instance (singleton)."""
    global _announcement_store
    if _announcement_store is None:
        with _store_lock:
            if _announcement_store is None:
                _announcement_store = AnnouncementStore()
    return _announcement_store


def reset_notification_stores() -> None:
    """Replace token and announcement stores with empty ones (for testing)."""
    global _token_store, _announcement_store
    with _store_lock:
        _token_store = DeviceTokenStore()
        _announcement_store = AnnouncementStore()
