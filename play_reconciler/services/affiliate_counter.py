"""Affiliate counter - per-affiliate active subscriber bookkeeping.

Reacts to provider state transitions on user records. Each subscriber moves
the aggregate by at most one unit per transition, and a subscriber who has
ever cancelled is never credited again (anti-abuse rule).

The ``counted`` flag on a subscriber records whether it currently holds a
unit of the aggregate, so the aggregate always equals the number of counted
subscribers regardless of duplicate or out-of-order deliveries.
"""

from typing import Optional

from play_reconciler.logging_config import get_logger
from play_reconciler.models.affiliate import AffiliateSubscriber
from play_reconciler.models.subscription import SubscriptionState
from play_reconciler.repositories.affiliate_store import AffiliateStore, get_affiliate_store
from play_reconciler.repositories.document_store import WriteResult
from play_reconciler.services.clock import Clock, get_clock
from play_reconciler.state_logger import log_affiliate_adjustment

logger = get_logger(__name__)

ACTIVE_STATE = SubscriptionState.ACTIVE.value

# Transitions out of ACTIVE into these states deactivate the subscriber
DEACTIVATING_STATES = frozenset(
    {
        SubscriptionState.CANCELED.value,
        SubscriptionState.EXPIRED.value,
        SubscriptionState.ON_HOLD.value,
        SubscriptionState.PAUSED.value,
        SubscriptionState.PENDING.value,
    }
)


class AffiliateCounter:
    """Keeps affiliate aggregates in step with subscriber transitions."""

    def __init__(self, affiliates: Optional[AffiliateStore] = None, clock: Optional[Clock] = None):
        self._affiliates = affiliates if affiliates is not None else get_affiliate_store()
        self._clock = clock if clock is not None else get_clock()

    def on_user_write(self, result: WriteResult) -> int:
        """User store listener.

        Runs only when last_provider_state.state changed. A user record that
        did not exist before counts as a previous state of None.

        Returns:
            Counter delta applied (-1, 0 or +1)
        """
        after = result.after
        if after is None:
            return 0

        before_state = result.before.provider_state if result.before is not None else None
        after_state = after.provider_state
        if before_state == after_state:
            return 0

        if not after.affiliate_code:
            return 0

        return self.apply_transition(after.uid, after.affiliate_code, before_state, after_state, email=after.email)

    def apply_transition(
        self,
        uid: str,
        code: str,
        before_state: Optional[str],
        after_state: Optional[str],
        email: Optional[str] = None,
    ) -> int:
        """Apply one provider state transition for a user with an affiliate code.

        Args:
            uid: User id
            code: Redeemed affiliate code
            before_state: Previous provider state
            after_state: New provider state
            email: User e-mail (stored on first activation)

        Returns:
            Counter delta applied (-1, 0 or +1)
        """
        if after_state == ACTIVE_STATE and before_state != ACTIVE_STATE:
            return self._activate(uid, code, email)
        if before_state == ACTIVE_STATE and after_state in DEACTIVATING_STATES:
            return self._deactivate(uid, code, after_state)
        return 0

    def _resolve_affiliate(self, code: str) -> Optional[str]:
        code_doc = self._affiliates.find_code(code)
        if code_doc is None:
            logger.error("affiliate_code_unknown", code=code)
            return None
        if not self._affiliates.aggregates.exists(code_doc.affiliate_id):
            logger.error("affiliate_not_found", code=code, affiliate_id=code_doc.affiliate_id)
            return None
        return code_doc.affiliate_id

    def _activate(self, uid: str, code: str, email: Optional[str]) -> int:
        now_iso = self._clock.now_iso()
        with self._affiliates.transaction():
            affiliate_id = self._resolve_affiliate(code)
            if affiliate_id is None:
                return 0

            key = (affiliate_id, uid)
            subscriber = self._affiliates.find_subscriber(affiliate_id, uid)

            if subscriber is None:
                self._affiliates.subscribers.put(
                    key,
                    AffiliateSubscriber(
                        affiliate_id=affiliate_id,
                        uid=uid,
                        email=email,
                        is_active=True,
                        has_ever_cancelled=False,
                        counted=True,
                        first_payment_date=now_iso,
                    ),
                )
                count = self._affiliates.adjust_active_count(affiliate_id, 1)
                log_affiliate_adjustment(affiliate_id, uid, 1, count, reason="activated")
                return 1

            if subscriber.has_ever_cancelled:
                self._affiliates.subscribers.merge(key, {"is_active": True})
                logger.info(
                    "affiliate_reactivation_not_credited",
                    affiliate_id=affiliate_id,
                    uid=uid,
                )
                return 0

            if subscriber.counted:
                self._affiliates.subscribers.merge(key, {"is_active": True})
                return 0

            self._affiliates.subscribers.merge(key, {"is_active": True, "counted": True})
            count = self._affiliates.adjust_active_count(affiliate_id, 1)
            log_affiliate_adjustment(affiliate_id, uid, 1, count, reason="reactivated")
            return 1

    def _deactivate(self, uid: str, code: str, after_state: str) -> int:
        now_iso = self._clock.now_iso()
        with self._affiliates.transaction():
            affiliate_id = self._resolve_affiliate(code)
            if affiliate_id is None:
                return 0

            subscriber = self._affiliates.find_subscriber(affiliate_id, uid)
            if subscriber is None or not subscriber.is_active:
                logger.debug("affiliate_deactivation_skipped", affiliate_id=affiliate_id, uid=uid)
                return 0

            self._affiliates.subscribers.merge(
                (affiliate_id, uid),
                {
                    "is_active": False,
                    "has_ever_cancelled": True,
                    "counted": False,
                    "cancelled_at": now_iso,
                },
            )
            if not subscriber.counted:
                return 0

            count = self._affiliates.adjust_active_count(affiliate_id, -1)
            log_affiliate_adjustment(affiliate_id, uid, -1, count, reason=f"deactivated:{after_state}")
            return -1
