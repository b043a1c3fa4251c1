"""Tests for the periodic sweep."""

import time

import pytest

from play_reconciler.models.settings import SweepConfig
from play_reconciler.models.subscription import SubscriptionRecord, SubscriptionState
from play_reconciler.models.user import SubscriptionStatus, UserRecord
from play_reconciler.repositories.subscription_store import SubscriptionStore
from play_reconciler.repositories.user_store import UserStore
from play_reconciler.services.clock import Clock
from play_reconciler.services.sweeper import SweepScheduler, Sweeper

NOW = 1_704_067_200_000


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


def make_sweeper(subscriptions, users, clock, **config):
    return Sweeper(subscriptions=subscriptions, users=users, sweep_config=SweepConfig(**config), clock=clock)


def add_subscription(subscriptions, token, expiry, owner=None, is_active=True):
    subscriptions.put(
        token,
        SubscriptionRecord(
            purchase_token=token,
            package_name="com.example.app",
            owner_uid=owner,
            state=SubscriptionState.ACTIVE.value,
            expiry_time_millis=expiry,
            is_active=is_active,
        ),
    )


def add_user(users, uid, expiry, status=SubscriptionStatus.ACTIVE, token=None):
    users.put(uid, UserRecord(uid=uid, subscription_status=status, expiry_time_millis=expiry, purchase_token=token))


class TestSweepPass:
    """Test one sweep pass."""

    def test_flips_expired_record_and_owner(self, subscriptions, users, clock):
        add_subscription(subscriptions, "token-1", expiry=NOW - 1, owner="user-1")
        add_user(users, "user-1", expiry=NOW - 1, token="token-1")

        result = make_sweeper(subscriptions, users, clock).run_once()

        assert result.subscriptions_flipped == 1
        assert result.users_flipped == 1
        assert not result.budget_exhausted
        record = subscriptions.get("token-1")
        assert not record.is_active
        assert record.last_sweep_at == "2024-01-01T00:00:00+00:00"
        assert users.get("user-1").subscription_status == SubscriptionStatus.INACTIVE

    def test_expiry_equal_to_now_is_swept(self, subscriptions, users, clock):
        add_subscription(subscriptions, "token-1", expiry=NOW)
        assert make_sweeper(subscriptions, users, clock).run_once().subscriptions_flipped == 1

    def test_unexpired_left_alone(self, subscriptions, users, clock):
        add_subscription(subscriptions, "token-1", expiry=NOW + 1, owner="user-1")
        add_user(users, "user-1", expiry=NOW + 1)

        result = make_sweeper(subscriptions, users, clock).run_once()

        assert result.subscriptions_flipped == 0
        assert result.users_flipped == 0
        assert users.get("user-1").subscription_status == SubscriptionStatus.ACTIVE

    def test_owner_with_newer_expiry_not_flipped(self, subscriptions, users, clock):
        """Test that an old token expiring does not deactivate a renewed user."""
        add_subscription(subscriptions, "token-old", expiry=NOW - 1, owner="user-1")
        add_user(users, "user-1", expiry=NOW + 1000, token="token-new")

        result = make_sweeper(subscriptions, users, clock).run_once()

        assert result.subscriptions_flipped == 1
        assert result.users_flipped == 0
        assert users.get("user-1").subscription_status == SubscriptionStatus.ACTIVE

    def test_orphan_expired_user_flipped(self, subscriptions, users, clock):
        add_user(users, "user-1", expiry=NOW - 1)
        assert make_sweeper(subscriptions, users, clock).run_once().users_flipped == 1

    def test_user_without_expiry_flipped(self, subscriptions, users, clock):
        add_user(users, "user-1", expiry=None)
        make_sweeper(subscriptions, users, clock).run_once()
        assert users.get("user-1").subscription_status == SubscriptionStatus.INACTIVE


class TestConvergence:
    """Test batch caps and repeated passes."""

    def test_batch_size_caps_pass(self, subscriptions, users, clock):
        for i in range(5):
            add_subscription(subscriptions, f"token-{i}", expiry=NOW - 1)
        sweeper = make_sweeper(subscriptions, users, clock, batch_size=2)

        assert sweeper.run_once().subscriptions_flipped == 2
        assert sweeper.run_once().subscriptions_flipped == 2
        assert sweeper.run_once().subscriptions_flipped == 1
        assert sweeper.run_once().subscriptions_flipped == 0

    def test_second_pass_is_noop(self, subscriptions, users, clock):
        """Test that a converged state does not flap."""
        add_subscription(subscriptions, "token-1", expiry=NOW - 1, owner="user-1")
        add_user(users, "user-1", expiry=NOW - 1)
        sweeper = make_sweeper(subscriptions, users, clock)
        sweeper.run_once()

        writes = []
        subscriptions.add_listener("recorder", writes.append)
        users.add_listener("recorder", writes.append)
        result = sweeper.run_once()

        assert result.subscriptions_flipped == 0
        assert result.users_flipped == 0
        assert writes == []

    def test_zero_budget_stops_immediately(self, subscriptions, users, clock):
        add_subscription(subscriptions, "token-1", expiry=NOW - 1)

        result = make_sweeper(subscriptions, users, clock, time_budget_seconds=0).run_once()

        assert result.budget_exhausted
        assert result.subscriptions_flipped == 0
        assert subscriptions.get("token-1").is_active

    def test_explicit_reference_time(self, subscriptions, users, clock):
        add_subscription(subscriptions, "token-1", expiry=NOW + 1000)
        result = make_sweeper(subscriptions, users, clock).run_once(now_millis=NOW + 1000)
        assert result.subscriptions_flipped == 1


class TestSweepScheduler:
    def test_runs_periodically_and_stops(self, subscriptions, users, clock):
        add_subscription(subscriptions, "token-1", expiry=NOW - 1)
        scheduler = SweepScheduler(make_sweeper(subscriptions, users, clock), interval_seconds=0.01)

        scheduler.start()
        deadline = time.monotonic() + 2
        while subscriptions.get("token-1").is_active and time.monotonic() < deadline:
            time.sleep(0.01)
        scheduler.stop()

        assert not subscriptions.get("token-1").is_active
        assert not scheduler.running
