"""Tests for RTDN webhook ingestion."""

import base64
import json
from unittest.mock import MagicMock

import pytest

from play_reconciler.models.subscription import CanonicalSnapshot, NotificationType, SubscriptionState
from play_reconciler.models.user import SubscriptionStatus
from play_reconciler.repositories.audit_log import AuditLog
from play_reconciler.repositories.link_store import AccountLinkStore, PurchaseLinkStore
from play_reconciler.repositories.subscription_store import SubscriptionStore
from play_reconciler.repositories.user_store import UserStore
from play_reconciler.services.clock import MILLIS_PER_DAY, Clock
from play_reconciler.services.identity import IdentityResolver
from play_reconciler.services.provider_adapter import PlayDeveloperClient, ProviderError
from play_reconciler.services.reconciler import StateReconciler
from play_reconciler.services.webhook import RtdnHandler, RtdnOutcome, decode_message_data

NOW = 1_704_067_200_000
TOKEN = "token-abcdefghijkl"


def notification(**overrides):
    payload = {
        "version": "1.0",
        "packageName": "com.example.app",
        "eventTimeMillis": str(NOW),
        "subscriptionNotification": {
            "version": "1.0",
            "notificationType": NotificationType.SUBSCRIPTION_PURCHASED,
            "purchaseToken": TOKEN,
            "subscriptionId": "premium.monthly",
        },
    }
    payload.update(overrides)
    return payload


def encode(payload):
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


@pytest.fixture
def clock():
    clock = Clock()
    clock.freeze(NOW)
    return clock


@pytest.fixture
def subscriptions():
    return SubscriptionStore()


@pytest.fixture
def users():
    return UserStore()


@pytest.fixture
def purchase_links():
    return PurchaseLinkStore()


@pytest.fixture
def audit():
    return AuditLog()


@pytest.fixture
def provider():
    provider = MagicMock(spec=PlayDeveloperClient)
    provider.fetch_subscription.return_value = CanonicalSnapshot(
        state=SubscriptionState.ACTIVE.value,
        start_time_millis=NOW,
        expiry_time_millis=NOW + 30 * MILLIS_PER_DAY,
        region_code="US",
    )
    return provider


@pytest.fixture
def handler(provider, subscriptions, users, purchase_links, audit, clock):
    resolver = IdentityResolver(subscriptions=subscriptions, purchase_links=purchase_links, account_links=AccountLinkStore())
    reconciler = StateReconciler(subscriptions=subscriptions, users=users, resolver=resolver, clock=clock)
    return RtdnHandler(provider=provider, reconciler=reconciler, audit_log=audit, clock=clock)


class TestDecodeMessageData:
    def test_base64_text(self):
        assert decode_message_data(encode({"a": 1})) == {"a": 1}

    def test_raw_bytes(self):
        assert decode_message_data(b'{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("data", ["***not base64***", encode("x")[:-2] + "!!", b"not json"])
    def test_invalid_raises_value_error(self, data):
        with pytest.raises(ValueError):
            decode_message_data(data)


class TestArchivedNotifications:
    """Test notifications that are archived instead of reconciled."""

    def test_test_notification(self, handler, audit, provider):
        outcome = handler.handle({"version": "1.0", "packageName": "com.example.app", "testNotification": {"version": "1.0"}})
        assert outcome == RtdnOutcome.TEST_NOTIFICATION
        assert len(audit.entries("test_notification")) == 1
        provider.fetch_subscription.assert_not_called()

    def test_empty_test_marker(self, handler, audit, provider):
        outcome = handler.handle({"packageName": "com.example.app", "testNotification": {}})
        assert outcome == RtdnOutcome.TEST_NOTIFICATION
        assert len(audit.entries("test_notification")) == 1
        provider.fetch_subscription.assert_not_called()

    def test_one_time_product(self, handler, audit):
        payload = notification()
        del payload["subscriptionNotification"]
        payload["oneTimeProductNotification"] = {"purchaseToken": TOKEN, "sku": "coins"}

        assert handler.handle(payload) == RtdnOutcome.UNKNOWN_OR_ONE_TIME
        assert audit.entries("unknown_or_one_time")[0].payload == payload

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"subscriptionNotification": {"notificationType": 4, "purchaseToken": TOKEN}},
            notification(subscriptionNotification={"notificationType": 4, "purchaseToken": ""}),
        ],
    )
    def test_malformed(self, handler, audit, payload, subscriptions):
        assert handler.handle(payload) == RtdnOutcome.MALFORMED
        assert len(audit.entries("malformed")) == 1
        assert subscriptions.count() == 0

    def test_undecodable_data(self, handler, audit):
        assert handler.handle_data("%%%") == RtdnOutcome.MALFORMED
        assert audit.entries("malformed")[0].payload == "%%%"


class TestReconciledNotifications:
    """Test the fetch-and-reconcile path."""

    def test_purchase_stored_and_deferred(self, handler, subscriptions, users, provider):
        outcome = handler.handle_data(encode(notification()))

        assert outcome == RtdnOutcome.RECONCILED
        provider.fetch_subscription.assert_called_once_with("com.example.app", TOKEN)
        record = subscriptions.get(TOKEN)
        assert record.is_active
        assert record.notification_type == NotificationType.SUBSCRIPTION_PURCHASED
        assert record.subscription_id == "premium.monthly"
        assert record.source == "rtdn"
        assert record.event_time_millis == NOW
        assert users.count() == 0

    def test_linked_token_projected(self, handler, users, purchase_links):
        purchase_links.link(TOKEN, "user-1", "2024-01-01T00:00:00+00:00")

        handler.handle(notification())

        assert users.get("user-1").subscription_status == SubscriptionStatus.ACTIVE


class TestProviderFailures:
    """Test provider errors during the fetch."""

    def test_transient_failure_reraised(self, handler, provider, audit, subscriptions):
        provider.fetch_subscription.side_effect = ProviderError(503, "unavailable")

        with pytest.raises(ProviderError):
            handler.handle(notification())

        assert len(audit.entries("fetch_error")) == 1
        assert subscriptions.count() == 0

    def test_permanent_failure_acknowledged(self, handler, provider, audit, subscriptions):
        provider.fetch_subscription.side_effect = ProviderError(404, "not found")

        assert handler.handle(notification()) == RtdnOutcome.FETCH_ERROR
        entry = audit.entries("fetch_error")[0]
        assert entry.purchase_token == TOKEN
        assert entry.error == "not found"
        assert subscriptions.count() == 0
