"""Service configuration models.

Models for config/reconciler.yaml.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    """Google Play Developer API access."""

    default_package_name: str = Field(..., description="Default Android package name")
    service_account_file: Optional[str] = Field(
        None, description="Service account JSON; application default credentials when unset"
    )
    request_timeout_seconds: float = Field(default=10.0, description="HTTP timeout for provider calls")


class PubSubConfig(BaseModel):
    """Pub/Sub configuration for RTDN delivery."""

    project_id: str = Field(..., description="GCP project ID")
    topic: str = Field(..., description="RTDN topic name")
    subscription: str = Field(..., description="Pull subscription consumed by the listener")
    listener_enabled: bool = Field(default=False, description="Start the streaming-pull listener on startup")
    max_messages: int = Field(default=10, description="Flow control: outstanding messages per listener")


class WebhookConfig(BaseModel):
    """Pub/Sub push endpoint settings."""

    verification_token: Optional[str] = Field(
        None, description="Shared token expected as ?token= on push requests"
    )


class SweepConfig(BaseModel):
    """Periodic expiry sweep settings."""

    enabled: bool = Field(default=True, description="Run the sweep scheduler on startup")
    interval_seconds: int = Field(default=300, description="Seconds between sweep passes")
    batch_size: int = Field(default=450, description="Max documents flipped per pass and collection")
    time_budget_seconds: float = Field(default=50.0, description="Wall-clock budget per pass")


class PushConfig(BaseModel):
    """Announcement fan-out settings."""

    batch_size: int = Field(default=500, ge=1, le=500, description="Recipients per multicast call")
    max_tokens: int = Field(default=10000, description="Cap on device tokens enumerated per fan-out")
    android_channel_id: str = Field(default="general", description="Android notification channel")
    default_title: str = Field(default="Announcement", description="Title used when none is set")
    broadcast_sentinel: str = Field(default="all", description="Recipient value meaning everyone")


class AuditConfig(BaseModel):
    """Audit archive settings."""

    max_entries: int = Field(
        default=10000, ge=1, description="Entries kept in memory; the oldest are dropped first"
    )


class SecurityConfig(BaseModel):
    """Authentication policy."""

    strict_identity_check: bool = Field(
        default=False,
        description="Reject verification calls whose body uid differs from the ID token subject",
    )
    firebase_credentials_file: Optional[str] = Field(
        None, description="Firebase Admin service account; application default credentials when unset"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "strict_identity_check": False,
                "firebase_credentials_file": "/secrets/firebase-adminsdk.json",
            }
        }


class ReconcilerConfig(BaseModel):
    """Complete reconciler.yaml configuration."""

    provider: ProviderConfig
    pubsub: PubSubConfig
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
