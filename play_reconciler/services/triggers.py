"""Record-change triggers wiring the stores to the services.

Listeners registered here:
- subscriptions: mirror record changes onto the owning user
- purchase_links: backfill the owner and projection when a token is linked
- users: affiliate counter and subscriber stats
- announcements: push fan-out
"""

from typing import Optional

from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.repositories.affiliate_store import get_affiliate_store
from play_reconciler.repositories.document_store import WriteResult
from play_reconciler.repositories.link_store import get_account_link_store, get_purchase_link_store
from play_reconciler.repositories.notification_store import get_announcement_store, get_device_token_store
from play_reconciler.repositories.stats_store import get_stats_store
from play_reconciler.repositories.subscription_store import SubscriptionStore, get_subscription_store
from play_reconciler.repositories.user_store import get_user_store
from play_reconciler.services.affiliate_counter import AffiliateCounter
from play_reconciler.services.identity import IdentityResolver
from play_reconciler.services.notification_fanout import MulticastSender, NotificationFanout
from play_reconciler.services.reconciler import StateReconciler, should_project_to_user
from play_reconciler.services.subscriber_stats import SubscriberStatsTracker

logger = get_logger(__name__)


class SubscriptionMirror:
    """Projects relevant subscription record changes onto the owning user.

    Covers writes that did not come through a reconcile call with a known
    owner, and converges records whose owner was resolved later.
    """

    def __init__(self, reconciler: StateReconciler, subscriptions: SubscriptionStore):
        self._reconciler = reconciler
        self._subscriptions = subscriptions

    def on_subscription_write(self, result: WriteResult) -> None:
        after = result.after
        if after is None or not should_project_to_user(result.before, after):
            return
        # Sweep corrections deactivate their owner themselves
        if result.before is not None and after.last_sweep_at != result.before.last_sweep_at:
            return

        uid = self._reconciler.resolver.resolve_uid(after.purchase_token, after.linked_account_id)
        if uid is None:
            logger.info("mirror_deferred", purchase_token=short_token(after.purchase_token))
            return

        record = self._subscriptions.find(after.purchase_token) or after
        self._reconciler.project_to_user(uid, record)


class LinkBackfill:
    """Assigns the owner and projects as soon as a purchase token is linked."""

    def __init__(self, reconciler: StateReconciler, subscriptions: SubscriptionStore):
        self._reconciler = reconciler
        self._subscriptions = subscriptions

    def on_purchase_link_write(self, result: WriteResult) -> None:
        link = result.after
        if link is None:
            return

        purchase_token = result.key
        if not self._reconciler.resolver.assign_owner(purchase_token, link.uid):
            logger.info("backfill_no_record", purchase_token=short_token(purchase_token), uid=link.uid)
            return

        record = self._subscriptions.get(purchase_token)
        self._reconciler.project_to_user(link.uid, record)
        logger.info("backfill_projected", purchase_token=short_token(purchase_token), uid=link.uid)


def register_triggers(fanout_sender: Optional[MulticastSender] = None) -> None:
    """Register every listener on the global stores.

    Registration is by name, so calling this again replaces the listeners
    rather than duplicating them.

    Args:
        fanout_sender: Multicast sender override for the push fan-out
    """
    subscriptions = get_subscription_store()
    purchase_links = get_purchase_link_store()
    users = get_user_store()

    resolver = IdentityResolver(
        subscriptions=subscriptions,
        purchase_links=purchase_links,
        account_links=get_account_link_store(),
    )
    reconciler = StateReconciler(subscriptions=subscriptions, users=users, resolver=resolver)

    subscriptions.add_listener("mirror", SubscriptionMirror(reconciler, subscriptions).on_subscription_write)
    purchase_links.add_listener("backfill", LinkBackfill(reconciler, subscriptions).on_purchase_link_write)
    users.add_listener("affiliate_counter", AffiliateCounter(get_affiliate_store()).on_user_write)
    users.add_listener("subscriber_stats", SubscriberStatsTracker(get_stats_store(), users).on_user_write)
    get_announcement_store().add_listener(
        "fanout",
        NotificationFanout(get_device_token_store(), users, sender=fanout_sender).on_announcement_write,
    )

    logger.info("triggers_registered")
