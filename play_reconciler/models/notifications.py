"""Push delivery models: device tokens, announcements and fan-out results."""

from typing import Optional

from pydantic import BaseModel, Field


class DeviceToken(BaseModel):
    """FCM registration token registered by a user's device."""

    uid: str = Field(..., description="Owning user")
    token: str = Field(..., description="FCM registration token")
    enabled: bool = Field(default=True, description="Eligible for fan-out")
    platform: Optional[str] = Field(None, description="Device platform")
    created_at: Optional[str] = Field(None, description="Registration time (ISO 8601)")
    disabled_at: Optional[str] = Field(None, description="When the token was disabled (ISO 8601)")
    disable_reason: Optional[str] = Field(None, description="Delivery error that disabled the token")


class Announcement(BaseModel):
    """Announcement that triggers a push to active subscribers."""

    announcement_id: str = Field(..., description="Announcement id (record key)")
    title: Optional[str] = Field(None, description="Notification title")
    body: str = Field(default="", description="Notification body")
    is_deleted: bool = Field(default=False, description="Soft-delete flag")
    recipients: Optional[list[str]] = Field(
        None, description="Allowed uids; None or the broadcast sentinel means everyone"
    )


class FanoutResult(BaseModel):
    """Aggregated outcome of one announcement fan-out."""

    targets: int = Field(default=0, description="Tokens selected for delivery")
    sent: int = Field(default=0, description="Successful deliveries")
    failed: int = Field(default=0, description="Failed deliveries")
    disabled: int = Field(default=0, description="Tokens disabled as invalid")
    errors: list[str] = Field(default_factory=list, description="First delivery errors as 'uid: code'")
