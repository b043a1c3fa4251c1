"""User-side models: identity links and the per-user subscription projection."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SubscriptionStatus(str, Enum):
    """Simplified membership flag exposed to clients."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class PurchaseLink(BaseModel):
    """Client-created association of a purchase token with a user."""

    uid: str = Field(..., description="Internal user identity")
    package_name: Optional[str] = Field(None, description="Android package name reported by the client")
    email: Optional[str] = Field(None, description="E-mail reported by the client")
    created_at: str = Field(..., description="First link time (ISO 8601)")
    last_client_at: str = Field(..., description="Latest client call (ISO 8601)")


class AccountLink(BaseModel):
    """Association of an obfuscated external account id with a user."""

    uid: str = Field(..., description="Internal user identity")
    created_at: str = Field(..., description="First link time (ISO 8601)")
    last_client_at: str = Field(..., description="Latest client call (ISO 8601)")


class LastProviderState(BaseModel):
    """Provider state projected onto the user; source for affiliate and stats tracking."""

    state: Optional[str] = Field(None, description="Provider subscription state")
    notification_type: Optional[int] = Field(None, description="Latest RTDN notification type")
    region_code: Optional[str] = Field(None, description="Billing region")


class UserRecord(BaseModel):
    """Per-user subscription projection."""

    uid: str = Field(..., description="Internal user identity (record key)")
    email: Optional[str] = Field(None, description="User e-mail")
    subscription_status: SubscriptionStatus = Field(
        default=SubscriptionStatus.INACTIVE, description="active iff the projected expiry is in the future"
    )
    expiry_time_millis: Optional[int] = Field(None, description="Projected expiry (Unix millis)")
    start_time_millis: Optional[int] = Field(None, description="Projected start (Unix millis)")
    purchase_token: Optional[str] = Field(None, description="Token the projection was taken from")
    last_provider_state: Optional[LastProviderState] = Field(None, description="Nested provider state")

    affiliate_code: Optional[str] = Field(None, description="Redeemed affiliate code")
    affiliate_code_used_at: Optional[str] = Field(None, description="Redemption time (ISO 8601)")

    updated_at: Optional[str] = Field(None, description="Last projection/sweep write (ISO 8601)")

    @property
    def provider_state(self) -> Optional[str]:
        """Nested provider state, or None when never projected."""
        return self.last_provider_state.state if self.last_provider_state else None

    class Config:
        json_schema_extra = {
            "example": {
                "uid": "user-123",
                "email": "user@example.com",
                "subscription_status": "active",
                "expiry_time_millis": 1702592000000,
                "last_provider_state": {
                    "state": "SUBSCRIPTION_STATE_ACTIVE",
                    "notification_type": 2,
                    "region_code": "US",
                },
            }
        }
