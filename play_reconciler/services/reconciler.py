"""State reconciler - applies provider snapshots and projects them onto users.

Every event path (webhook, verification, mirror, backfill) goes through this
module, so the subscription record and the user projection are derived the
same way regardless of which trigger fired.

Responsibilities:
- Sole writer of provider-derived fields on SubscriptionRecord
- Relevance check deciding whether a record change affects the user
- Idempotent user projection (no write when nothing projected changes)
"""

from typing import NamedTuple, Optional

from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.subscription import CanonicalSnapshot, SubscriptionRecord
from play_reconciler.models.user import LastProviderState, SubscriptionStatus, UserRecord
from play_reconciler.repositories.document_store import WriteResult
from play_reconciler.repositories.subscription_store import SubscriptionStore, get_subscription_store
from play_reconciler.repositories.user_store import UserStore, get_user_store
from play_reconciler.services.clock import Clock, get_clock, millis_to_iso
from play_reconciler.services.identity import IdentityResolver
from play_reconciler.state_logger import (
    log_expiry_change,
    log_subscription_state_change,
    log_user_projection,
)
from play_reconciler.utils.activity import is_active, to_millis

logger = get_logger(__name__)

PROJECTED_FIELDS = {
    "subscription_status",
    "expiry_time_millis",
    "start_time_millis",
    "purchase_token",
    "last_provider_state",
}


class ReconcileOutcome(NamedTuple):
    """Result of one reconcile pass."""

    record: SubscriptionRecord
    uid: Optional[str]
    projected: bool

    @property
    def deferred(self) -> bool:
        """True when no owner could be resolved and the user was not touched."""
        return self.uid is None


def should_project_to_user(
    before: Optional[SubscriptionRecord], after: Optional[SubscriptionRecord]
) -> bool:
    """Check whether a record change is relevant to the user projection.

    Relevant when the record is new, or any of is_active, expiry, state,
    notification_type or region_code differ. A missing expiry compares as 0.
    """
    if after is None:
        return False
    if before is None:
        return True
    return (
        before.is_active != after.is_active
        or (before.expiry_time_millis or 0) != (after.expiry_time_millis or 0)
        or before.state != after.state
        or before.notification_type != after.notification_type
        or before.region_code != after.region_code
    )


class StateReconciler:
    """Applies canonical snapshots and projects records onto users."""

    def __init__(
        self,
        subscriptions: Optional[SubscriptionStore] = None,
        users: Optional[UserStore] = None,
        resolver: Optional[IdentityResolver] = None,
        clock: Optional[Clock] = None,
    ):
        self._subscriptions = subscriptions if subscriptions is not None else get_subscription_store()
        self._users = users if users is not None else get_user_store()
        self._resolver = resolver if resolver is not None else IdentityResolver(subscriptions=self._subscriptions)
        self._clock = clock if clock is not None else get_clock()

    @property
    def resolver(self) -> IdentityResolver:
        return self._resolver

    def apply_to_subscription(
        self,
        package_name: str,
        purchase_token: str,
        snapshot: CanonicalSnapshot,
        source: str,
        notification_type: Optional[int] = None,
        subscription_id: Optional[str] = None,
        event_time_millis: Optional[int] = None,
        verified_auth: Optional[bool] = None,
    ) -> WriteResult:
        """Merge a provider snapshot into the subscription record.

        Args:
            package_name: Android package name (used only when creating the record)
            purchase_token: Provider purchase token
            snapshot: Normalized provider response
            source: Pipeline performing the write (rtdn, verify)
            notification_type: RTDN notification type, if event-driven
            subscription_id: Product id from the event, if known
            event_time_millis: Event time from the RTDN payload, if any
            verified_auth: Whether a verification call carried a valid ID token

        Returns:
            WriteResult with before/after records
        """
        now_millis = self._clock.now_millis()
        updates = {
            "state": snapshot.state,
            "start_time_millis": snapshot.start_time_millis,
            "expiry_time_millis": snapshot.expiry_time_millis,
            "region_code": snapshot.region_code,
            "linked_account_id": snapshot.account_id,
            "is_active": is_active(snapshot.expiry_time_millis, now_millis),
            "last_fetch_at": millis_to_iso(now_millis),
            "source": source,
        }
        if notification_type is not None:
            updates["notification_type"] = notification_type
        if subscription_id:
            updates["subscription_id"] = subscription_id
        if verified_auth is not None:
            updates["verified_auth"] = verified_auth

        with self._subscriptions.transaction():
            current = self._subscriptions.find(purchase_token)
            if event_time_millis:
                updates["event_time_millis"] = event_time_millis
                previous = to_millis(current.last_event_at) if current is not None else 0
                updates["last_event_at"] = millis_to_iso(max(previous, event_time_millis))

            result = self._subscriptions.merge(
                purchase_token,
                updates,
                factory=lambda: SubscriptionRecord(purchase_token=purchase_token, package_name=package_name),
            )

        before, after = result.before, result.after
        old_state = before.state if before is not None else None
        if old_state != after.state:
            log_subscription_state_change(
                purchase_token,
                old_state,
                after.state,
                source=source,
                notification_type=notification_type,
                is_active=after.is_active,
            )
        old_expiry = before.expiry_time_millis if before is not None else None
        if old_expiry != after.expiry_time_millis:
            log_expiry_change(purchase_token, old_expiry, after.expiry_time_millis, source=source)
        return result

    def project_to_user(self, uid: str, record: SubscriptionRecord) -> WriteResult:
        """Write the record's subscription view onto a user.

        The status comes from a fresh is_active(expiry) rather than the
        record's cached flag. No write happens if no projected field changes.

        Args:
            uid: Owning user id
            record: Subscription record to project

        Returns:
            WriteResult; ``changed`` is False when the user already matched
        """
        now_millis = self._clock.now_millis()
        active = is_active(record.expiry_time_millis, now_millis)
        projected = {
            "subscription_status": SubscriptionStatus.ACTIVE if active else SubscriptionStatus.INACTIVE,
            "expiry_time_millis": record.expiry_time_millis,
            "start_time_millis": record.start_time_millis,
            "purchase_token": record.purchase_token,
            "last_provider_state": LastProviderState(
                state=record.state,
                notification_type=record.notification_type,
                region_code=record.region_code,
            ),
        }

        with self._users.transaction():
            current = self._users.find(uid)
            if current is not None:
                candidate = current.model_copy(update=projected)
                if candidate.model_dump(include=PROJECTED_FIELDS) == current.model_dump(include=PROJECTED_FIELDS):
                    logger.debug("user_projection_unchanged", uid=uid, purchase_token=short_token(record.purchase_token))
                    return WriteResult(uid, current, current)

            result = self._users.merge(
                uid,
                {**projected, "updated_at": millis_to_iso(now_millis)},
                factory=lambda: UserRecord(uid=uid),
            )

        log_user_projection(
            uid,
            current.subscription_status.value if current is not None else None,
            projected["subscription_status"].value,
            token=record.purchase_token,
            provider_state=record.state,
            expiry=millis_to_iso(record.expiry_time_millis),
        )
        return result

    def reconcile(
        self,
        package_name: str,
        purchase_token: str,
        snapshot: CanonicalSnapshot,
        source: str,
        notification_type: Optional[int] = None,
        subscription_id: Optional[str] = None,
        event_time_millis: Optional[int] = None,
        uid: Optional[str] = None,
        verified_auth: Optional[bool] = None,
        force_projection: bool = False,
    ) -> ReconcileOutcome:
        """Apply a snapshot, resolve the owner and project when relevant.

        Args:
            package_name: Android package name
            purchase_token: Provider purchase token
            snapshot: Normalized provider response
            source: Pipeline performing the write
            notification_type: RTDN notification type, if any
            subscription_id: Product id, if known
            event_time_millis: RTDN event time, if any
            uid: Known owner (skips resolution)
            verified_auth: Whether the caller's ID token was verified
            force_projection: Project even when the record change is not relevant

        Returns:
            ReconcileOutcome
        """
        write = self.apply_to_subscription(
            package_name,
            purchase_token,
            snapshot,
            source,
            notification_type=notification_type,
            subscription_id=subscription_id,
            event_time_millis=event_time_millis,
            verified_auth=verified_auth,
        )
        record = write.after

        if uid is None:
            uid = self._resolver.resolve_uid(purchase_token, snapshot.account_id)
        if uid is None:
            logger.info(
                "user_projection_deferred",
                purchase_token=short_token(purchase_token),
                state=record.state,
            )
            return ReconcileOutcome(record=record, uid=None, projected=False)

        record = self._subscriptions.find(purchase_token) or record
        if not (force_projection or should_project_to_user(write.before, write.after)):
            return ReconcileOutcome(record=record, uid=uid, projected=False)

        self.project_to_user(uid, record)
        return ReconcileOutcome(record=record, uid=uid, projected=True)
