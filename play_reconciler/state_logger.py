"""State change logging for subscriptions, user projections and counters.

Tracks transitions with before/after values for debugging and auditing.
"""

from typing import Any, Optional

from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.services.clock import millis_to_iso

logger = get_logger(__name__)


def log_subscription_state_change(
    token: str,
    old_state: Any,
    new_state: Any,
    source: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a provider state change on a subscription record.

    Args:
        token: Purchase token
        old_state: Previous provider state (None for a new record)
        new_state: New provider state
        source: Pipeline that wrote the change (rtdn, verify, sweep)
        **extra_context: Additional context (notification_type, uid, etc.)
    """
    logger.info(
        "subscription_state_changed",
        purchase_token=short_token(token),
        old_state=str(old_state),
        new_state=str(new_state),
        source=source,
        **extra_context,
    )


def log_expiry_change(
    token: str,
    old_expiry_millis: Optional[int],
    new_expiry_millis: Optional[int],
    **extra_context: Any,
) -> None:
    """Log a subscription expiry change.

    Args:
        token: Purchase token
        old_expiry_millis: Previous expiry (None if unknown)
        new_expiry_millis: New expiry
        **extra_context: Additional context
    """
    extension_days = None
    if old_expiry_millis and new_expiry_millis:
        extension_days = round((new_expiry_millis - old_expiry_millis) / (1000 * 86400), 2)

    logger.info(
        "expiry_changed",
        purchase_token=short_token(token),
        old_expiry=millis_to_iso(old_expiry_millis),
        new_expiry=millis_to_iso(new_expiry_millis),
        extension_days=extension_days,
        **extra_context,
    )


def log_user_projection(
    uid: str,
    old_status: Any,
    new_status: Any,
    token: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a subscription projection written onto a user record.

    Args:
        uid: User id
        old_status: Previous subscription_status (None for a new user record)
        new_status: Projected subscription_status
        token: Purchase token the projection came from
        **extra_context: Additional context (provider_state, expiry, etc.)
    """
    logger.info(
        "user_projection_written",
        uid=uid,
        old_status=str(old_status),
        new_status=str(new_status),
        purchase_token=short_token(token),
        **extra_context,
    )


def log_affiliate_adjustment(
    affiliate_id: str,
    uid: str,
    delta: int,
    active_subscribers: int,
    reason: str,
) -> None:
    """Log an affiliate counter adjustment.

    Args:
        affiliate_id: Affiliate id
        uid: Subscriber user id
        delta: +1 or -1
        active_subscribers: Counter value after the adjustment
        reason: Transition that caused it (activated, reactivated, deactivated)
    """
    logger.info(
        "affiliate_counter_adjusted",
        affiliate_id=affiliate_id,
        uid=uid,
        delta=delta,
        active_subscribers=active_subscribers,
        reason=reason,
    )


def log_token_disabled(uid: str, token: str, reason: str) -> None:
    """Log a device token being disabled after a delivery error."""
    logger.info(
        "device_token_disabled",
        uid=uid,
        device_token=short_token(token),
        reason=reason,
    )
