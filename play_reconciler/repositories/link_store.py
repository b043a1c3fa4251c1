"""Identity link stores - purchase token and account id associations.

Both are written by authenticated clients and read by identity resolution.
Repeated link calls merge; ``created_at`` survives, ``last_client_at`` moves.
"""

import threading
from typing import Optional

from play_reconciler.models.user import AccountLink, PurchaseLink
from play_reconciler.repositories.document_store import DocumentStore, WriteResult


class PurchaseLinkStore(DocumentStore[PurchaseLink]):
    """Purchase token -> user links, keyed by purchase token."""

    collection = "purchase_links"

    def link(
        self,
        purchase_token: str,
        uid: str,
        now_iso: str,
        package_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> WriteResult:
        """Create or refresh the link for a purchase token.

        Args:
            purchase_token: Provider purchase token
            uid: Caller's verified user id
            now_iso: Current time (ISO 8601)
            package_name: Android package name, if reported
            email: User e-mail, if reported

        Returns:
            WriteResult of the merge
        """
        updates = {"uid": uid, "last_client_at": now_iso}
        if package_name is not None:
            updates["package_name"] = package_name
        if email is not None:
            updates["email"] = email
        return self.merge(
            purchase_token,
            updates,
            factory=lambda: PurchaseLink(uid=uid, created_at=now_iso, last_client_at=now_iso),
        )


class AccountLinkStore(DocumentStore[AccountLink]):
    """Obfuscated account id -> user links, keyed by account id."""

    collection = "account_links"

    def link(self, account_id: str, uid: str, now_iso: str) -> WriteResult:
        """Create or refresh the link for an obfuscated account id."""
        return self.merge(
            account_id,
            {"uid": uid, "last_client_at": now_iso},
            factory=lambda: AccountLink(uid=uid, created_at=now_iso, last_client_at=now_iso),
        )


_purchase_links: Optional[PurchaseLinkStore] = None
_account_links: Optional[AccountLinkStore] = None
_store_lock = threading.Lock()


def get_purchase_link_store() -> PurchaseLinkStore:
    """Get global purchase link store instance (singleton)."""
    global _purchase_links
    if _purchase_links is None:
        with _store_lock:
            if _purchase_links is None:
                _purchase_links = PurchaseLinkStore()
    return _purchase_links


def get_account_link_store() -> AccountLinkStore:
    """Get global account link store instance (singleton)."""
    global _account_links
    if _account_links is None:
        with _store_lock:
            if _account_links is None:
                _account_links = AccountLinkStore()
    return _account_links


def reset_link_stores() -> None:
    """Replace both link stores with empty ones (for testing)."""
    global _purchase_links, _account_links
    with _store_lock:
        _purchase_links = PurchaseLinkStore()
        _account_links = AccountLinkStore()
