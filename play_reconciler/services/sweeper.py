"""Periodic sweep - corrects time-based expiry that no event reported.

A subscription whose expiry passes without an RTDN keeps is_active=True
until something rewrites it. The sweeper flips such records and their
owners to inactive, then catches users whose projected expiry has passed.
Each pass is bounded by a batch cap and a wall-clock budget; whatever is
left over is picked up by the next pass.
"""

import threading
import time
from typing import NamedTuple, Optional

from play_reconciler.config import get_config
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.settings import SweepConfig
from play_reconciler.models.user import SubscriptionStatus
from play_reconciler.repositories.subscription_store import SubscriptionStore, get_subscription_store
from play_reconciler.repositories.user_store import UserStore, get_user_store
from play_reconciler.services.clock import Clock, get_clock, millis_to_iso

logger = get_logger(__name__)


class SweepResult(NamedTuple):
    subscriptions_flipped: int
    users_flipped: int
    budget_exhausted: bool


class Sweeper:
    """Flips expired-but-active records to inactive."""

    def __init__(
        self,
        subscriptions: Optional[SubscriptionStore] = None,
        users: Optional[UserStore] = None,
        sweep_config: Optional[SweepConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self._subscriptions = subscriptions if subscriptions is not None else get_subscription_store()
        self._users = users if users is not None else get_user_store()
        self._config = sweep_config if sweep_config is not None else get_config().sweep
        self._clock = clock if clock is not None else get_clock()

    def _deactivate_user(self, uid: str, now_millis: int, now_iso: str) -> int:
        with self._users.transaction():
            user = self._users.find(uid)
            if (
                user is None
                or user.subscription_status != SubscriptionStatus.ACTIVE
                or (user.expiry_time_millis or 0) > now_millis
            ):
                return 0
            self._users.merge(uid, {"subscription_status": SubscriptionStatus.INACTIVE, "updated_at": now_iso})
        logger.info("sweep_user_deactivated", uid=uid)
        return 1

    def _deactivate_subscription(self, purchase_token: str, now_millis: int, now_iso: str) -> bool:
        with self._subscriptions.transaction():
            record = self._subscriptions.find(purchase_token)
            if record is None or not record.is_active or (record.expiry_time_millis or 0) > now_millis:
                return False
            self._subscriptions.merge(purchase_token, {"is_active": False, "last_sweep_at": now_iso})
        logger.info("sweep_subscription_deactivated", purchase_token=short_token(purchase_token))
        return True

    def run_once(self, now_millis: Optional[int] = None) -> SweepResult:
        """Run one sweep pass.

        Args:
            now_millis: Reference time (defaults to the service clock)

        Returns:
            SweepResult with counts and whether the time budget ran out
        """
        if now_millis is None:
            now_millis = self._clock.now_millis()
        now_iso = millis_to_iso(now_millis)
        deadline = time.monotonic() + self._config.time_budget_seconds
        batch_size = self._config.batch_size

        subscriptions_flipped = 0
        users_flipped = 0
        exhausted = False

        for record in self._subscriptions.find_active_expired(now_millis, limit=batch_size):
            if time.monotonic() >= deadline:
                exhausted = True
                break
            # Flip the owner before the record
            if record.owner_uid:
                users_flipped += self._deactivate_user(record.owner_uid, now_millis, now_iso)
            if self._deactivate_subscription(record.purchase_token, now_millis, now_iso):
                subscriptions_flipped += 1

        if not exhausted:
            for user in self._users.find_active_expired(now_millis, limit=batch_size):
                if time.monotonic() >= deadline:
                    exhausted = True
                    break
                users_flipped += self._deactivate_user(user.uid, now_millis, now_iso)

        if exhausted:
            logger.warning("sweep_budget_exhausted", budget_seconds=self._config.time_budget_seconds)

        logger.info(
            "sweep_completed",
            subscriptions_flipped=subscriptions_flipped,
            users_flipped=users_flipped,
            budget_exhausted=exhausted,
        )
        return SweepResult(subscriptions_flipped, users_flipped, exhausted)


class SweepScheduler:
    """Runs Sweeper.run_once on a daemon thread at a fixed interval."""

    def __init__(self, sweeper: Optional[Sweeper] = None, interval_seconds: Optional[float] = None):
        self._sweeper = sweeper if sweeper is not None else Sweeper()
        self._interval = interval_seconds if interval_seconds is not None else get_config().sweep.interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._sweeper.run_once()
            except Exception as e:
                logger.error("sweep_failed", error=str(e), error_type=type(e).__name__, exc_info=True)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="sweep-scheduler", daemon=True)
        self._thread.start()
        logger.info("sweep_scheduler_started", interval_seconds=self._interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("sweep_scheduler_stopped")
