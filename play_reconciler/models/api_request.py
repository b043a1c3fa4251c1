"""API request models for client and admin endpoints.

Required fields are declared Optional so missing values produce the
``{ok: false, error}`` body rather than a framework validation error.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class VerifyRequest(BaseModel):
    """Client request to verify a purchase and store it immediately."""

    uid: Optional[str] = Field(None, description="Caller-claimed user id (legacy clients)")
    package_name: Optional[str] = Field(None, alias="packageName", description="Android package name")
    purchase_token: Optional[str] = Field(None, alias="purchaseToken", description="Purchase token")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "uid": "user-123",
                "packageName": "com.example.app",
                "purchaseToken": "opaque-token-abc123...",
            }
        }


class LinkPurchaseTokenRequest(BaseModel):
    """Associate a purchase token with the authenticated user."""

    purchase_token: Optional[str] = Field(None, alias="purchaseToken", description="Purchase token")
    package_name: Optional[str] = Field(None, alias="packageName", description="Android package name")
    email: Optional[str] = Field(None, description="User e-mail")

    class Config:
        populate_by_name = True


class LinkAccountIdRequest(BaseModel):
    """Associate an obfuscated external account id with the authenticated user."""

    account_id: Optional[str] = Field(None, alias="accountId", description="Obfuscated account id")

    class Config:
        populate_by_name = True


class RedeemAffiliateCodeRequest(BaseModel):
    """Redeem an affiliate code for the authenticated user."""

    code: Optional[str] = Field(None, description="Affiliate code")


class InitializeAffiliateRequest(BaseModel):
    """Admin request to create an affiliate and its code."""

    affiliate_id: Optional[str] = Field(None, alias="affiliateId", description="Affiliate id")
    code: Optional[str] = Field(None, description="Code to create")
    name: Optional[str] = Field(None, description="Affiliate display name")

    class Config:
        populate_by_name = True


class AnnouncementRequest(BaseModel):
    """Admin request to publish or update an announcement."""

    title: Optional[str] = Field(None, description="Notification title")
    body: str = Field(default="", description="Notification body")
    is_deleted: bool = Field(default=False, alias="isDeleted", description="Soft-delete flag")
    recipients: Optional[list[str]] = Field(
        None, description="Allowed uids, a single uid, or the broadcast sentinel; omit to broadcast"
    )

    @field_validator("recipients", mode="before")
    @classmethod
    def wrap_single_recipient(cls, v):
        """Accept a bare string as a one-element list."""
        if isinstance(v, str):
            return [v]
        return v

    class Config:
        populate_by_name = True


class RegisterDeviceTokenRequest(BaseModel):
    """Register an FCM registration token for the authenticated user."""

    token: Optional[str] = Field(None, description="FCM registration token")
    platform: Optional[str] = Field(None, description="Device platform, e.g. 'android'")
