"""End-to-end reconciliation flows across RTDN, links, sweeps and counters.

Each test drives the wired global stores the way the running service
does: notifications through RtdnHandler, client calls through the link
stores and services, and time through the frozen clock.
"""

from unittest.mock import MagicMock

import pytest

from play_reconciler.models.subscription import CanonicalSnapshot, SubscriptionState
from play_reconciler.models.user import SubscriptionStatus, UserRecord
from play_reconciler.repositories.affiliate_store import get_affiliate_store
from play_reconciler.repositories.link_store import get_account_link_store, get_purchase_link_store
from play_reconciler.repositories.stats_store import get_stats_store
from play_reconciler.repositories.subscription_store import get_subscription_store
from play_reconciler.repositories.user_store import get_user_store
from play_reconciler.services.affiliate_admin import AffiliateAdmin
from play_reconciler.services.clock import MILLIS_PER_DAY, get_clock, millis_to_iso
from play_reconciler.services.provider_adapter import PlayDeveloperClient, set_provider_client
from play_reconciler.services.sweeper import Sweeper
from play_reconciler.services.triggers import register_triggers
from play_reconciler.services.webhook import RtdnHandler, RtdnOutcome

NOW = 1_704_067_200_000
TOKEN = "token-abcdefghijkl"
PACKAGE = "com.example.app"


def snapshot(state, expiry_millis, account_id=None):
    return CanonicalSnapshot(
        state=state.value,
        start_time_millis=NOW,
        expiry_time_millis=expiry_millis,
        region_code="US",
        account_id=account_id,
    )


def notification(notification_type, token=TOKEN, event_time=NOW):
    return {
        "version": "1.0",
        "packageName": PACKAGE,
        "eventTimeMillis": str(event_time),
        "subscriptionNotification": {
            "version": "1.0",
            "notificationType": notification_type,
            "purchaseToken": token,
            "subscriptionId": "premium.monthly",
        },
    }


@pytest.fixture
def provider():
    provider = MagicMock(spec=PlayDeveloperClient)
    provider.fetch_subscription.return_value = snapshot(SubscriptionState.ACTIVE, NOW + 30 * MILLIS_PER_DAY)
    set_provider_client(provider)
    return provider


@pytest.fixture
def full_system(provider):
    """Wired stores, frozen clock and the services a request would build."""
    get_clock().freeze(NOW)
    register_triggers(fanout_sender=lambda message: None)

    admin = AffiliateAdmin()
    admin.initialize_affiliate("aff-1", "SAVE10", "Ana")

    return {
        "provider": provider,
        "handler": RtdnHandler(),
        "admin": admin,
        "sweeper": Sweeper(),
        "users": get_user_store(),
        "subscriptions": get_subscription_store(),
        "affiliates": get_affiliate_store(),
        "stats": get_stats_store(),
    }


def link_token(uid, email=None, token=TOKEN):
    """Same writes the link endpoint makes."""
    users = get_user_store()
    if email:
        users.merge(uid, {"email": email}, factory=lambda: UserRecord(uid=uid))
    get_purchase_link_store().link(token, uid, get_clock().now_iso(), package_name=PACKAGE, email=email)


class TestOutOfOrderConvergence:
    """Test that a subscription converges onto its user whatever arrives first."""

    def test_rtdn_before_link(self, full_system):
        handler = full_system["handler"]
        users = full_system["users"]

        assert handler.handle(notification(4)) == RtdnOutcome.RECONCILED
        assert full_system["subscriptions"].get(TOKEN).owner_uid is None
        assert users.count() == 0

        link_token("user-1", email="user1@example.com")

        user = users.get("user-1")
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert user.purchase_token == TOKEN
        assert user.provider_state == SubscriptionState.ACTIVE.value
        assert full_system["stats"].get().emails == ["user1@example.com"]

    def test_link_before_rtdn(self, full_system):
        link_token("user-1")

        full_system["handler"].handle(notification(4))

        assert full_system["users"].get("user-1").subscription_status == SubscriptionStatus.ACTIVE
        assert full_system["subscriptions"].get(TOKEN).owner_uid == "user-1"

    def test_account_id_resolves_owner(self, full_system):
        full_system["provider"].fetch_subscription.return_value = snapshot(
            SubscriptionState.ACTIVE, NOW + 30 * MILLIS_PER_DAY, account_id="acct-123456"
        )
        get_account_link_store().link("acct-123456", "user-9", get_clock().now_iso())

        full_system["handler"].handle(notification(4))

        assert full_system["subscriptions"].get(TOKEN).owner_uid == "user-9"
        assert full_system["users"].get("user-9").subscription_status == SubscriptionStatus.ACTIVE

    def test_redelivered_notification_is_idempotent(self, full_system):
        link_token("user-1")
        handler = full_system["handler"]
        handler.handle(notification(4))
        user_before = full_system["users"].get("user-1")

        handler.handle(notification(4))

        assert full_system["users"].get("user-1") == user_before


class TestAffiliateLifecycle:
    """Test the affiliate counter across a whole subscription lifecycle."""

    def test_purchase_cancel_resubscribe(self, full_system):
        provider = full_system["provider"]
        handler = full_system["handler"]
        affiliates = full_system["affiliates"]

        result = full_system["admin"].redeem("user-1", "SAVE10", email="user1@example.com")
        assert result.success
        link_token("user-1")

        handler.handle(notification(4))
        assert affiliates.get_active_count("aff-1") == 1

        provider.fetch_subscription.return_value = snapshot(SubscriptionState.CANCELED, NOW + 30 * MILLIS_PER_DAY)
        handler.handle(notification(3, event_time=NOW + 1000))
        assert affiliates.get_active_count("aff-1") == 0
        assert affiliates.subscribers.get(("aff-1", "user-1")).has_ever_cancelled

        provider.fetch_subscription.return_value = snapshot(SubscriptionState.ACTIVE, NOW + 60 * MILLIS_PER_DAY)
        handler.handle(notification(7, event_time=NOW + 2000))
        assert affiliates.get_active_count("aff-1") == 0

    def test_grace_period_keeps_count(self, full_system):
        provider = full_system["provider"]
        handler = full_system["handler"]
        full_system["admin"].redeem("user-1", "SAVE10")
        link_token("user-1")
        handler.handle(notification(4))

        provider.fetch_subscription.return_value = snapshot(
            SubscriptionState.IN_GRACE_PERIOD, NOW + 30 * MILLIS_PER_DAY
        )
        handler.handle(notification(6, event_time=NOW + 1000))

        assert full_system["affiliates"].get_active_count("aff-1") == 1


class TestExpiryAndSweep:
    """Test that lapsed subscriptions are corrected without notifications."""

    def test_sweep_then_expired_notification(self, full_system):
        provider = full_system["provider"]
        handler = full_system["handler"]
        users = full_system["users"]
        full_system["admin"].redeem("user-1", "SAVE10")
        link_token("user-1", email="user1@example.com")
        handler.handle(notification(4))

        expired_at = NOW + 31 * MILLIS_PER_DAY
        get_clock().freeze(expired_at)
        result = full_system["sweeper"].run_once()

        assert (result.subscriptions_flipped, result.users_flipped) == (1, 1)
        user = users.get("user-1")
        assert user.subscription_status == SubscriptionStatus.INACTIVE
        assert user.updated_at == millis_to_iso(expired_at)
        assert not full_system["subscriptions"].get(TOKEN).is_active
        # Provider state is untouched by the sweep
        assert full_system["affiliates"].get_active_count("aff-1") == 1

        provider.fetch_subscription.return_value = snapshot(SubscriptionState.EXPIRED, NOW + 30 * MILLIS_PER_DAY)
        handler.handle(notification(13, event_time=expired_at))

        assert users.get("user-1").provider_state == SubscriptionState.EXPIRED.value
        assert full_system["affiliates"].get_active_count("aff-1") == 0
        assert full_system["stats"].get().active_count == 0

    def test_renewal_after_sweep_reactivates(self, full_system):
        provider = full_system["provider"]
        handler = full_system["handler"]
        link_token("user-1")
        handler.handle(notification(4))
        get_clock().freeze(NOW + 31 * MILLIS_PER_DAY)
        full_system["sweeper"].run_once()

        provider.fetch_subscription.return_value = snapshot(SubscriptionState.ACTIVE, NOW + 61 * MILLIS_PER_DAY)
        handler.handle(notification(2, event_time=NOW + 31 * MILLIS_PER_DAY))

        user = full_system["users"].get("user-1")
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert user.expiry_time_millis == NOW + 61 * MILLIS_PER_DAY
        assert full_system["subscriptions"].get(TOKEN).is_active
