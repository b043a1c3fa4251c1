"""Affiliate program models."""

from typing import Optional

from pydantic import BaseModel, Field


class AffiliateCode(BaseModel):
    """Redeemable code pointing at an affiliate."""

    code: str = Field(..., description="Code string (record key)")
    affiliate_id: str = Field(..., description="Owning affiliate")
    affiliate_name: Optional[str] = Field(None, description="Display name")
    is_active: bool = Field(default=True, description="Whether the code can be redeemed")
    created_at: Optional[str] = Field(None, description="Creation time (ISO 8601)")


class AffiliateAggregate(BaseModel):
    """Per-affiliate active subscriber counter."""

    affiliate_id: str = Field(..., description="Affiliate id (record key)")
    code: Optional[str] = Field(None, description="Primary code")
    name: Optional[str] = Field(None, description="Display name")
    is_active: bool = Field(default=True, description="Whether the affiliate is enabled")
    active_subscribers: int = Field(default=0, description="Adjusted by one unit per subscriber transition")
    created_at: Optional[str] = Field(None, description="Creation time (ISO 8601)")


class AffiliateSubscriber(BaseModel):
    """Per-(affiliate, user) activation state."""

    affiliate_id: str = Field(..., description="Affiliate id")
    uid: str = Field(..., description="Subscribed user")
    email: Optional[str] = Field(None, description="User e-mail at first activation")
    is_active: bool = Field(default=True, description="Subscriber currently active")
    has_ever_cancelled: bool = Field(default=False, description="Set on the first deactivation, never cleared")
    counted: bool = Field(default=True, description="Currently contributes one unit to active_subscribers")
    first_payment_date: Optional[str] = Field(None, description="First activation (ISO 8601)")
    cancelled_at: Optional[str] = Field(None, description="Latest deactivation (ISO 8601)")


class AffiliateRedemption(BaseModel):
    """Record of a user redeeming an affiliate code."""

    affiliate_id: str = Field(..., description="Affiliate id")
    uid: str = Field(..., description="Redeeming user")
    code: str = Field(..., description="Redeemed code")
    email: Optional[str] = Field(None, description="User e-mail at redemption")
    used_at: str = Field(..., description="Redemption time (ISO 8601)")


class SubscriberStats(BaseModel):
    """Global active subscriber totals."""

    active_count: int = Field(default=0, description="Users whose provider state is ACTIVE")
    emails: list[str] = Field(default_factory=list, description="E-mails of those users")
    updated_at: Optional[str] = Field(None, description="Last adjustment (ISO 8601)")
    last_manual_sync: Optional[str] = Field(None, description="Last full resync (ISO 8601)")
