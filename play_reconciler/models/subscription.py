"""Subscription state and record models.

Includes the provider state vocabulary, RTDN notification types, the
canonical provider snapshot and the per-token subscription record.
"""

from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SubscriptionState(str, Enum):
    """Subscription state values reported by subscriptionsv2.get."""

    UNSPECIFIED = "SUBSCRIPTION_STATE_UNSPECIFIED"
    PENDING = "SUBSCRIPTION_STATE_PENDING"
    ACTIVE = "SUBSCRIPTION_STATE_ACTIVE"
    PAUSED = "SUBSCRIPTION_STATE_PAUSED"
    IN_GRACE_PERIOD = "SUBSCRIPTION_STATE_IN_GRACE_PERIOD"
    ON_HOLD = "SUBSCRIPTION_STATE_ON_HOLD"
    CANCELED = "SUBSCRIPTION_STATE_CANCELED"
    EXPIRED = "SUBSCRIPTION_STATE_EXPIRED"
    PENDING_PURCHASE_CANCELED = "SUBSCRIPTION_STATE_PENDING_PURCHASE_CANCELED"
    REVOKED = "SUBSCRIPTION_STATE_REVOKED"


class NotificationType(IntEnum):
    """RTDN notification types matching Google Play values."""

    SUBSCRIPTION_RECOVERED = 1  # Subscription recovered from account hold
    SUBSCRIPTION_RENEWED = 2  # Subscription renewed
    SUBSCRIPTION_CANCELED = 3  # Subscription voluntarily canceled
    SUBSCRIPTION_PURCHASED = 4  # New subscription purchased
    SUBSCRIPTION_ON_HOLD = 5  # Entered account hold (payment failed)
    SUBSCRIPTION_IN_GRACE_PERIOD = 6  # In grace period (payment failed)
    SUBSCRIPTION_RESTARTED = 7  # Subscription restarted after pause
    SUBSCRIPTION_PRICE_CHANGE_CONFIRMED = 8  # User confirmed price change
    SUBSCRIPTION_DEFERRED = 9  # Subscription renewal deferred
    SUBSCRIPTION_PAUSED = 10  # Subscription paused by user
    SUBSCRIPTION_PAUSE_SCHEDULE_CHANGED = 11  # Pause schedule changed
    SUBSCRIPTION_REVOKED = 12  # Subscription revoked before expiry
    SUBSCRIPTION_EXPIRED = 13  # Subscription expired
    SUBSCRIPTION_PENDING_PURCHASE_CANCELED = 20  # Pending transaction canceled


class CanonicalSnapshot(BaseModel):
    """Normalized provider view of one purchase token."""

    state: Optional[str] = Field(None, description="Provider subscription state, verbatim")
    start_time_millis: Optional[int] = Field(None, description="Earliest line item start (Unix millis)")
    expiry_time_millis: Optional[int] = Field(None, description="Latest line item end (Unix millis)")
    region_code: Optional[str] = Field(None, description="Billing region")
    account_id: Optional[str] = Field(None, description="Obfuscated external account id")
    raw: dict[str, Any] = Field(default_factory=dict, description="Provider response body")


class SubscriptionRecord(BaseModel):
    """Stored state for one purchase token."""

    purchase_token: str = Field(..., description="Provider purchase token (record key)")
    package_name: str = Field(..., description="Android package name")
    subscription_id: Optional[str] = Field(None, description="Product ID from the latest event")
    owner_uid: Optional[str] = Field(None, description="Internal user owning this token")

    # Provider-derived fields, written by the reconciler only
    state: Optional[str] = Field(None, description="Provider subscription state")
    start_time_millis: Optional[int] = Field(None, description="Subscription start (Unix millis)")
    expiry_time_millis: Optional[int] = Field(None, description="Subscription expiry (Unix millis)")
    is_active: bool = Field(default=False, description="expiry_time_millis is in the future at write time")
    region_code: Optional[str] = Field(None, description="Billing region")
    linked_account_id: Optional[str] = Field(None, description="Obfuscated external account id")

    # Latest event metadata
    notification_type: Optional[int] = Field(None, description="Latest RTDN notification type")
    event_time_millis: Optional[int] = Field(None, description="Latest RTDN event time (Unix millis)")

    # Bookkeeping
    last_fetch_at: Optional[str] = Field(None, description="Last provider fetch (ISO 8601)")
    last_event_at: Optional[str] = Field(None, description="Newest event seen (ISO 8601)")
    last_sweep_at: Optional[str] = Field(None, description="Last sweep correction (ISO 8601)")
    source: Optional[str] = Field(None, description="Pipeline that performed the last provider write")
    verified_auth: Optional[bool] = Field(None, description="Verification call carried a valid ID token")

    class Config:
        json_schema_extra = {
            "example": {
                "purchase_token": "opaque-token-abc123...",
                "package_name": "com.example.app",
                "subscription_id": "premium.monthly",
                "owner_uid": "user-123",
                "state": SubscriptionState.ACTIVE.value,
                "start_time_millis": 1700000000000,
                "expiry_time_millis": 1702592000000,
                "is_active": True,
                "region_code": "US",
                "notification_type": NotificationType.SUBSCRIPTION_RENEWED,
            }
        }
