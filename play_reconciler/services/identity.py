"""Identity resolution - maps purchase tokens to internal users.

Resolution order:
1. SubscriptionRecord.owner_uid
2. PurchaseLink for the token
3. AccountLink for the provider's obfuscated account id

A hit from a link is persisted onto the subscription record so later events
resolve at step 1. Nothing resolving is not an error: the projection is
deferred until a link arrives.
"""

from typing import Optional

from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.repositories.link_store import (
    AccountLinkStore,
    PurchaseLinkStore,
    get_account_link_store,
    get_purchase_link_store,
)
from play_reconciler.repositories.subscription_store import SubscriptionStore, get_subscription_store

logger = get_logger(__name__)


class IdentityResolver:
    """Resolves and assigns the owner of a purchase token."""

    def __init__(
        self,
        subscriptions: Optional[SubscriptionStore] = None,
        purchase_links: Optional[PurchaseLinkStore] = None,
        account_links: Optional[AccountLinkStore] = None,
    ):
        self._subscriptions = subscriptions if subscriptions is not None else get_subscription_store()
        self._purchase_links = purchase_links if purchase_links is not None else get_purchase_link_store()
        self._account_links = account_links if account_links is not None else get_account_link_store()

    def lookup(self, purchase_token: str, account_id: Optional[str] = None) -> Optional[str]:
        """Resolve without persisting.

        Returns:
            uid from the first source that knows the token, None otherwise
        """
        record = self._subscriptions.find(purchase_token)
        if record is not None and record.owner_uid:
            return record.owner_uid

        link = self._purchase_links.find(purchase_token)
        if link is not None and link.uid:
            return link.uid

        if account_id:
            account = self._account_links.find(account_id)
            if account is not None and account.uid:
                return account.uid

        return None

    def resolve_uid(self, purchase_token: str, account_id: Optional[str] = None) -> Optional[str]:
        """Resolve the owner of a purchase token.

        Args:
            purchase_token: Provider purchase token
            account_id: Obfuscated external account id from the provider, if any

        Returns:
            uid if any source resolves, None otherwise
        """
        uid = self.lookup(purchase_token, account_id)
        if uid is None:
            logger.info(
                "identity_unresolved",
                purchase_token=short_token(purchase_token),
                has_account_id=bool(account_id),
            )
            return None

        record = self._subscriptions.find(purchase_token)
        if record is not None and record.owner_uid != uid:
            self._subscriptions.merge(purchase_token, {"owner_uid": uid})
            logger.info(
                "identity_resolved",
                purchase_token=short_token(purchase_token),
                uid=uid,
            )
        return uid

    def assign_owner(self, purchase_token: str, uid: str) -> bool:
        """Set the owner of an existing subscription record.

        Args:
            purchase_token: Provider purchase token
            uid: New owner

        Returns:
            True if the record exists (whether or not the owner changed)
        """
        record = self._subscriptions.find(purchase_token)
        if record is None:
            return False

        if record.owner_uid and record.owner_uid != uid:
            logger.warning(
                "owner_reassigned",
                purchase_token=short_token(purchase_token),
                old_uid=record.owner_uid,
                new_uid=uid,
            )
        self._subscriptions.merge(purchase_token, {"owner_uid": uid})
        return True
