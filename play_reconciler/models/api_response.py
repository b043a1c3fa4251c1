"""API response models for client and admin endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class OkResponse(BaseModel):
    """Minimal success body."""

    ok: bool = Field(default=True, description="Whether the call succeeded")


class VerifyResponse(BaseModel):
    """Normalized subscription returned by the verification endpoint."""

    ok: bool = Field(default=True)
    package_name: str = Field(..., alias="packageName")
    purchase_token: str = Field(..., alias="purchaseToken")
    owner_uid: Optional[str] = Field(None, alias="uid")
    subscription_state: Optional[str] = Field(None, alias="subscriptionState")
    start_time_millis: Optional[int] = Field(None, alias="startTimeMillis")
    expiry_time_millis: Optional[int] = Field(None, alias="expiryTimeMillis")
    is_active: bool = Field(..., alias="isActive")
    region_code: Optional[str] = Field(None, alias="regionCode")
    last_fetch_at: Optional[str] = Field(None, alias="lastFetchAt")
    verified_auth: bool = Field(default=False, alias="verifiedAuth")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "ok": True,
                "packageName": "com.example.app",
                "purchaseToken": "opaque-token-abc123...",
                "uid": "user-123",
                "subscriptionState": "SUBSCRIPTION_STATE_ACTIVE",
                "startTimeMillis": 1700000000000,
                "expiryTimeMillis": 1702592000000,
                "isActive": True,
                "regionCode": "US",
                "verifiedAuth": True,
            }
        }


class RedeemAffiliateCodeResponse(BaseModel):
    """Outcome of an affiliate code redemption."""

    success: bool
    message: str
    affiliate_name: Optional[str] = Field(None, alias="affiliateName")

    class Config:
        populate_by_name = True


class SweepResponse(BaseModel):
    """Outcome of one sweep pass."""

    subscriptions_flipped: int
    users_flipped: int
    budget_exhausted: bool


class StatsResponse(BaseModel):
    """Current subscriber statistics."""

    active_count: int
    emails: list[str]
