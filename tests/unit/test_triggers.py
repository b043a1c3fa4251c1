"""Tests for the record-change triggers (mirror and backfill)."""

import pytest

from play_reconciler.models.subscription import CanonicalSnapshot, SubscriptionRecord, SubscriptionState
from play_reconciler.models.user import SubscriptionStatus
from play_reconciler.repositories.affiliate_store import get_affiliate_store
from play_reconciler.repositories.link_store import get_account_link_store, get_purchase_link_store
from play_reconciler.repositories.notification_store import get_announcement_store
from play_reconciler.repositories.subscription_store import get_subscription_store
from play_reconciler.repositories.user_store import get_user_store
from play_reconciler.services.clock import MILLIS_PER_DAY, get_clock
from play_reconciler.services.reconciler import StateReconciler
from play_reconciler.services.triggers import register_triggers

NOW = 1_704_067_200_000
TOKEN = "token-abcdefghijkl"
LINKED_AT = "2024-01-01T00:00:00+00:00"


@pytest.fixture(autouse=True)
def wired():
    """Register the listeners on the (freshly reset) global stores."""
    get_clock().freeze(NOW)
    register_triggers(fanout_sender=lambda message: None)


def active_snapshot(account_id=None):
    return CanonicalSnapshot(
        state=SubscriptionState.ACTIVE.value,
        start_time_millis=NOW,
        expiry_time_millis=NOW + 30 * MILLIS_PER_DAY,
        region_code="US",
        account_id=account_id,
    )


class TestRegistration:
    def test_listeners_registered_once(self):
        register_triggers()
        assert get_subscription_store().listener_names() == ["mirror"]
        assert get_purchase_link_store().listener_names() == ["backfill"]
        assert get_user_store().listener_names() == ["affiliate_counter", "subscriber_stats"]
        assert get_announcement_store().listener_names() == ["fanout"]


class TestSubscriptionMirror:
    """Test projection driven by subscription record writes."""

    def test_owned_record_change_projected(self):
        subscriptions = get_subscription_store()
        subscriptions.put(
            TOKEN,
            SubscriptionRecord(
                purchase_token=TOKEN,
                package_name="com.example.app",
                owner_uid="user-1",
                state=SubscriptionState.ACTIVE.value,
                expiry_time_millis=NOW + MILLIS_PER_DAY,
                is_active=True,
            ),
        )

        user = get_user_store().get("user-1")
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert user.purchase_token == TOKEN

    def test_account_map_resolves_owner(self):
        get_account_link_store().link("acct-123456", "user-7", LINKED_AT)

        StateReconciler().apply_to_subscription("com.example.app", TOKEN, active_snapshot("acct-123456"), source="rtdn")

        assert get_subscription_store().get(TOKEN).owner_uid == "user-7"
        assert get_user_store().get("user-7").subscription_status == SubscriptionStatus.ACTIVE

    def test_unresolved_record_left_deferred(self):
        StateReconciler().apply_to_subscription("com.example.app", TOKEN, active_snapshot(), source="rtdn")
        assert get_user_store().count() == 0

    def test_sweep_write_not_mirrored(self):
        """Test that a sweep flip of an old token leaves the owner to the sweeper."""
        subscriptions = get_subscription_store()
        users = get_user_store()
        StateReconciler().reconcile("com.example.app", TOKEN, active_snapshot(), source="verify", uid="user-1")
        subscriptions.merge(TOKEN, {"owner_uid": "user-1"})
        users.merge("user-1", {"purchase_token": "token-newer"})

        subscriptions.merge(TOKEN, {"is_active": False, "last_sweep_at": LINKED_AT})

        assert users.get("user-1").purchase_token == "token-newer"


class TestLinkBackfill:
    """Test convergence when the link arrives after the subscription."""

    def test_link_after_rtdn_projects(self):
        StateReconciler().reconcile("com.example.app", TOKEN, active_snapshot(), source="rtdn")
        assert get_user_store().count() == 0

        get_purchase_link_store().link(TOKEN, "user-1", LINKED_AT)

        assert get_subscription_store().get(TOKEN).owner_uid == "user-1"
        assert get_user_store().get("user-1").subscription_status == SubscriptionStatus.ACTIVE

    def test_link_without_record_waits(self):
        get_purchase_link_store().link(TOKEN, "user-1", LINKED_AT)
        assert get_user_store().count() == 0

        StateReconciler().reconcile("com.example.app", TOKEN, active_snapshot(), source="rtdn")

        assert get_user_store().get("user-1").subscription_status == SubscriptionStatus.ACTIVE

    def test_affiliate_credited_through_backfill(self):
        """Test that the user listeners see projections made by the backfill."""
        from play_reconciler.services.affiliate_admin import AffiliateAdmin

        admin = AffiliateAdmin()
        admin.initialize_affiliate("aff-1", "SAVE10", "Ana")
        admin.redeem("user-1", "SAVE10")
        StateReconciler().reconcile("com.example.app", TOKEN, active_snapshot(), source="rtdn")

        get_purchase_link_store().link(TOKEN, "user-1", LINKED_AT)

        assert get_affiliate_store().get_active_count("aff-1") == 1
