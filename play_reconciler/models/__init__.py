"""Pydantic models for records, events, API requests and responses."""

# Configuration models
from .settings import (
    ProviderConfig,
    PubSubConfig,
    WebhookConfig,
    SweepConfig,
    PushConfig,
    SecurityConfig,
    ReconcilerConfig,
)

# Subscription models
from .subscription import (
    SubscriptionState,
    NotificationType,
    CanonicalSnapshot,
    SubscriptionRecord,
)

# User and identity models
from .user import (
    SubscriptionStatus,
    PurchaseLink,
    AccountLink,
    LastProviderState,
    UserRecord,
)

# Affiliate models
from .affiliate import (
    AffiliateCode,
    AffiliateAggregate,
    AffiliateSubscriber,
    AffiliateRedemption,
    SubscriberStats,
)

# Push models
from .notifications import (
    DeviceToken,
    Announcement,
    FanoutResult,
)

# Event models (RTDN)
from .events import (
    SubscriptionNotification,
    DeveloperNotification,
    PubSubMessage,
    PubSubPushEnvelope,
    AuditEntry,
)

# API request models
from .api_request import (
    VerifyRequest,
    LinkPurchaseTokenRequest,
    LinkAccountIdRequest,
    RedeemAffiliateCodeRequest,
    InitializeAffiliateRequest,
    AnnouncementRequest,
    RegisterDeviceTokenRequest,
)

# API response models
from .api_response import (
    OkResponse,
    VerifyResponse,
    RedeemAffiliateCodeResponse,
    SweepResponse,
    StatsResponse,
)

__all__ = [
    # Configuration
    "ProviderConfig",
    "PubSubConfig",
    "WebhookConfig",
    "SweepConfig",
    "PushConfig",
    "SecurityConfig",
    "ReconcilerConfig",
    # Subscription
    "SubscriptionState",
    "NotificationType",
    "CanonicalSnapshot",
    "SubscriptionRecord",
    # User
    "SubscriptionStatus",
    "PurchaseLink",
    "AccountLink",
    "LastProviderState",
    "UserRecord",
    # Affiliate
    "AffiliateCode",
    "AffiliateAggregate",
    "AffiliateSubscriber",
    "AffiliateRedemption",
    "SubscriberStats",
    # Push
    "DeviceToken",
    "Announcement",
    "FanoutResult",
    # Events
    "SubscriptionNotification",
    "DeveloperNotification",
    "PubSubMessage",
    "PubSubPushEnvelope",
    "AuditEntry",
    # API requests
    "VerifyRequest",
    "LinkPurchaseTokenRequest",
    "LinkAccountIdRequest",
    "RedeemAffiliateCodeRequest",
    "InitializeAffiliateRequest",
    "AnnouncementRequest",
    "RegisterDeviceTokenRequest",
    # API responses
    "OkResponse",
    "VerifyResponse",
    "RedeemAffiliateCodeResponse",
    "SweepResponse",
    "StatsResponse",
]
