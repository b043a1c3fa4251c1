"""Tests for NotificationFanout - announcement delivery over FCM."""

from unittest.mock import MagicMock

import pytest
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from play_reconciler.models.notifications import Announcement
from play_reconciler.models.settings import PushConfig
from play_reconciler.models.user import SubscriptionStatus, UserRecord
from play_reconciler.repositories.notification_store import AnnouncementStore, DeviceTokenStore
from play_reconciler.repositories.user_store import UserStore
from play_reconciler.services.notification_fanout import (
    INVALID_TOKEN,
    UNREGISTERED,
    NotificationFanout,
    classify_error,
)

NOW = "2024-01-01T00:00:00+00:00"


def send_response(success=True, exception=None):
    return MagicMock(success=success, exception=exception)


def ok_sender():
    """Sender that reports success for every token in the message."""
    sender = MagicMock()
    sender.side_effect = lambda message: MagicMock(responses=[send_response() for _ in message.tokens])
    return sender


@pytest.fixture
def users():
    store = UserStore()
    store.put("active-1", UserRecord(uid="active-1", subscription_status=SubscriptionStatus.ACTIVE))
    store.put("active-2", UserRecord(uid="active-2", subscription_status=SubscriptionStatus.ACTIVE))
    store.put("lapsed", UserRecord(uid="lapsed", subscription_status=SubscriptionStatus.INACTIVE))
    return store


@pytest.fixture
def tokens():
    store = DeviceTokenStore()
    store.register("active-1", "fcm-a1", NOW, "android")
    store.register("active-1", "fcm-a1-tablet", NOW, "android")
    store.register("active-2", "fcm-a2", NOW, "android")
    store.register("lapsed", "fcm-l", NOW, "android")
    return store


def make_fanout(tokens, users, sender, **config):
    return NotificationFanout(tokens=tokens, users=users, push_config=PushConfig(**config), sender=sender)


class TestTargetSelection:
    """Test recipient filtering."""

    def test_broadcast_reaches_active_users_only(self, tokens, users):
        fanout = make_fanout(tokens, users, ok_sender())
        targets = fanout.select_targets(Announcement(announcement_id="a1"))
        assert sorted(t.token for t in targets) == ["fcm-a1", "fcm-a1-tablet", "fcm-a2"]

    def test_sentinel_means_broadcast(self, tokens, users):
        fanout = make_fanout(tokens, users, ok_sender())
        targets = fanout.select_targets(Announcement(announcement_id="a1", recipients=["all"]))
        assert len(targets) == 3

    def test_allow_list(self, tokens, users):
        fanout = make_fanout(tokens, users, ok_sender())
        targets = fanout.select_targets(Announcement(announcement_id="a1", recipients=["active-2", "lapsed"]))
        assert [t.token for t in targets] == ["fcm-a2"]

    def test_disabled_tokens_skipped(self, tokens, users):
        tokens.disable("active-2", "fcm-a2", UNREGISTERED, NOW)
        fanout = make_fanout(tokens, users, ok_sender())
        assert "fcm-a2" not in [t.token for t in fanout.select_targets(Announcement(announcement_id="a1"))]

    def test_max_tokens_caps_enumeration(self, tokens, users):
        fanout = make_fanout(tokens, users, ok_sender(), max_tokens=2)
        assert len(fanout.select_targets(Announcement(announcement_id="a1"))) == 2


class TestSending:
    """Test batching and result aggregation."""

    def test_message_shape(self, tokens, users):
        sender = ok_sender()
        fanout = make_fanout(tokens, users, sender, android_channel_id="news")

        fanout.send_announcement(Announcement(announcement_id="a1", body="Hello"))

        message = sender.call_args[0][0]
        assert message.data == {"type": "announcement", "announcement_id": "a1"}
        assert message.notification.title == "Announcement"
        assert message.notification.body == "Hello"
        assert message.android.priority == "high"
        assert message.android.notification.channel_id == "news"

    def test_batches_of_configured_size(self, tokens, users):
        sender = ok_sender()
        fanout = make_fanout(tokens, users, sender, batch_size=2)

        result = fanout.send_announcement(Announcement(announcement_id="a1", title="Hi"))

        assert sender.call_count == 2
        assert [len(call[0][0].tokens) for call in sender.call_args_list] == [2, 1]
        assert result.targets == 3
        assert result.sent == 3
        assert result.failed == 0

    def test_invalid_tokens_disabled(self, tokens, users):
        responses = {
            "fcm-a1": send_response(False, messaging.UnregisteredError("gone")),
            "fcm-a1-tablet": send_response(False, firebase_exceptions.InvalidArgumentError("bad token")),
            "fcm-a2": send_response(False, firebase_exceptions.UnavailableError("try later")),
        }
        sender = MagicMock(side_effect=lambda m: MagicMock(responses=[responses[t] for t in m.tokens]))
        fanout = make_fanout(tokens, users, sender)

        result = fanout.send_announcement(Announcement(announcement_id="a1"))

        assert result.failed == 3
        assert result.disabled == 2
        assert not tokens.get(("active-1", "fcm-a1")).enabled
        assert tokens.get(("active-1", "fcm-a1")).disable_reason == UNREGISTERED
        assert tokens.get(("active-1", "fcm-a1-tablet")).disable_reason == INVALID_TOKEN
        assert tokens.get(("active-2", "fcm-a2")).enabled
        assert "active-2: UNAVAILABLE" in result.errors

    def test_batch_failure_counted(self, tokens, users):
        sender = MagicMock(side_effect=RuntimeError("fcm down"))
        fanout = make_fanout(tokens, users, sender, batch_size=2)

        result = fanout.send_announcement(Announcement(announcement_id="a1"))

        assert result.failed == 3
        assert result.sent == 0
        assert result.errors == ["batch@0: RuntimeError", "batch@2: RuntimeError"]

    def test_no_targets_sends_nothing(self, tokens, users):
        sender = ok_sender()
        fanout = make_fanout(tokens, users, sender)
        result = fanout.send_announcement(Announcement(announcement_id="a1", recipients=["lapsed"]))
        assert result.targets == 0
        sender.assert_not_called()


class TestAnnouncementTrigger:
    """Test which announcement writes fire a fan-out."""

    @pytest.fixture
    def wired(self, tokens, users):
        sender = ok_sender()
        announcements = AnnouncementStore()
        announcements.add_listener("fanout", make_fanout(tokens, users, sender).on_announcement_write)
        return announcements, sender

    def test_create_sends(self, wired):
        announcements, sender = wired
        announcements.put("a1", Announcement(announcement_id="a1"))
        assert sender.call_count == 1

    def test_edit_does_not_resend(self, wired):
        announcements, sender = wired
        announcements.put("a1", Announcement(announcement_id="a1"))
        announcements.merge("a1", {"body": "edited"})
        assert sender.call_count == 1

    def test_create_deleted_does_not_send(self, wired):
        announcements, sender = wired
        announcements.put("a1", Announcement(announcement_id="a1", is_deleted=True))
        sender.assert_not_called()

    def test_restore_sends(self, wired):
        announcements, sender = wired
        announcements.put("a1", Announcement(announcement_id="a1", is_deleted=True))
        announcements.merge("a1", {"is_deleted": False})
        assert sender.call_count == 1


class TestClassifyError:
    def test_non_firebase_error(self):
        assert classify_error(RuntimeError("x")) == "RuntimeError"

    def test_missing_exception(self):
        assert classify_error(None) == "unknown"
