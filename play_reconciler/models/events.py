"""RTDN event models - DeveloperNotification, Pub/Sub push envelope and audit entries.

Maps to the Google Play Real-time Developer Notifications schema.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .subscription import NotificationType


class SubscriptionNotification(BaseModel):
    """Subscription notification payload within DeveloperNotification."""

    version: str = Field(default="1.0", description="Notification version")
    notification_type: int = Field(..., alias="notificationType", description="Type of notification")
    purchase_token: str = Field(..., alias="purchaseToken", min_length=1, description="Purchase token")
    subscription_id: Optional[str] = Field(None, alias="subscriptionId", description="Subscription product ID")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "version": "1.0",
                "notificationType": NotificationType.SUBSCRIPTION_RENEWED,
                "purchaseToken": "opaque-token-abc123...",
                "subscriptionId": "premium.monthly",
            }
        }


class DeveloperNotification(BaseModel):
    """Root RTDN message delivered through Pub/Sub.

    Only the subscription branch is modelled; one-time product and test
    notifications are archived before parsing.
    """

    version: str = Field(default="1.0", description="Notification version")
    package_name: str = Field(..., alias="packageName", min_length=1, description="Android package name")
    event_time_millis: int = Field(default=0, alias="eventTimeMillis", description="Event timestamp (Unix millis)")
    subscription_notification: Optional[SubscriptionNotification] = Field(
        None, alias="subscriptionNotification", description="Subscription event data"
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "version": "1.0",
                "packageName": "com.example.app",
                "eventTimeMillis": "1700000000000",
                "subscriptionNotification": {
                    "version": "1.0",
                    "notificationType": NotificationType.SUBSCRIPTION_RENEWED,
                    "purchaseToken": "opaque-token-abc123...",
                    "subscriptionId": "premium.monthly",
                },
            }
        }


class PubSubMessage(BaseModel):
    """Message body of a Pub/Sub push request."""

    data: str = Field(default="", description="Base64-encoded message payload")
    message_id: Optional[str] = Field(None, alias="messageId", description="Pub/Sub message id")
    attributes: dict[str, str] = Field(default_factory=dict, description="Message attributes")

    class Config:
        populate_by_name = True


class PubSubPushEnvelope(BaseModel):
    """Pub/Sub push request body."""

    message: PubSubMessage
    subscription: Optional[str] = Field(None, description="Push subscription path")


class AuditEntry(BaseModel):
    """Raw event archived for offline inspection."""

    type: str = Field(..., description="Archive reason")
    received_at: str = Field(..., description="Archive time (ISO 8601)")
    package_name: Optional[str] = Field(None, description="Android package name, if known")
    purchase_token: Optional[str] = Field(None, description="Purchase token, if known")
    error: Optional[str] = Field(None, description="Error message for failed fetches")
    payload: Any = Field(default=None, description="Payload exactly as received")
