"""Subscriber statistics - global count and e-mails of ACTIVE users."""

from typing import Optional

from play_reconciler.logging_config import get_logger
from play_reconciler.models.affiliate import SubscriberStats
from play_reconciler.models.subscription import SubscriptionState
from play_reconciler.repositories.document_store import WriteResult
from play_reconciler.repositories.stats_store import StatsStore, get_stats_store
from play_reconciler.repositories.user_store import UserStore, get_user_store
from play_reconciler.services.clock import Clock, get_clock

logger = get_logger(__name__)

ACTIVE_STATE = SubscriptionState.ACTIVE.value


class SubscriberStatsTracker:
    """Maintains SubscriberStats from user record transitions."""

    def __init__(
        self,
        stats: Optional[StatsStore] = None,
        users: Optional[UserStore] = None,
        clock: Optional[Clock] = None,
    ):
        self._stats = stats if stats is not None else get_stats_store()
        self._users = users if users is not None else get_user_store()
        self._clock = clock if clock is not None else get_clock()

    def on_user_write(self, result: WriteResult) -> None:
        """User store listener keyed on the ACTIVE provider state."""
        before, after = result.before, result.after
        was_active = before is not None and before.provider_state == ACTIVE_STATE
        now_active = after is not None and after.provider_state == ACTIVE_STATE
        old_email = before.email if before is not None else None
        new_email = after.email if after is not None else None
        now_iso = self._clock.now_iso()

        if not was_active and now_active and new_email:
            self._stats.add(new_email, now_iso)
            logger.info("subscriber_stats_added", uid=result.key)
        elif was_active and not now_active and old_email:
            self._stats.remove(old_email, now_iso)
            logger.info("subscriber_stats_removed", uid=result.key)
        elif was_active and now_active and old_email != new_email:
            if old_email:
                self._stats.remove(old_email, now_iso)
            if new_email:
                self._stats.add(new_email, now_iso)
            logger.info("subscriber_stats_email_swapped", uid=result.key)

    def resync(self) -> SubscriberStats:
        """Recompute the stats from every user with an ACTIVE provider state."""
        emails = [
            user.email
            for user in self._users.query(lambda u: u.provider_state == ACTIVE_STATE)
            if user.email
        ]
        stats = self._stats.replace(emails, self._clock.now_iso())
        logger.info("subscriber_stats_resynced", active_count=stats.active_count)
        return stats

    def current(self) -> SubscriberStats:
        return self._stats.get()
