"""FastAPI dependencies for authentication and service access.

Endpoints get their services through these functions so tests can swap
them with app.dependency_overrides.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from play_reconciler.logging_config import bind_context, get_logger
from play_reconciler.services.affiliate_admin import AffiliateAdmin
from play_reconciler.services.auth import AuthenticationError, get_token_verifier
from play_reconciler.services.subscriber_stats import SubscriberStatsTracker
from play_reconciler.services.sweeper import Sweeper
from play_reconciler.services.verification import VerificationService
from play_reconciler.services.webhook import RtdnHandler

logger = get_logger(__name__)

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_optional_claims(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Dict[str, Any]]:
    """Decoded ID token claims, or None when absent or invalid.

    Invalid tokens are logged and treated as unauthenticated; endpoints
    decide whether that is acceptable.
    """
    if creds is None or not creds.credentials:
        return None

    try:
        claims = get_token_verifier().verify(creds.credentials)
    except AuthenticationError as e:
        logger.warning("id_token_rejected", reason=e.reason)
        return None

    bind_context(uid=claims.get("uid"))
    return claims


def require_claims(claims: Optional[Dict[str, Any]] = Depends(get_optional_claims)) -> Dict[str, Any]:
    """Claims of an authenticated caller (401 otherwise)."""
    if claims is None:
        raise HTTPException(status_code=401, detail={"ok": False, "error": "Authentication required"})
    return claims


def require_admin(claims: Dict[str, Any] = Depends(require_claims)) -> Dict[str, Any]:
    """Claims of a caller with the admin custom claim (403 otherwise)."""
    if claims.get("admin") is not True:
        logger.warning("admin_claim_missing", uid=claims.get("uid"))
        raise HTTPException(status_code=403, detail={"ok": False, "error": "Admin privileges required"})
    return claims


def get_verification_service() -> VerificationService:
    return VerificationService()


def get_rtdn_handler() -> RtdnHandler:
    return RtdnHandler()


def get_affiliate_admin() -> AffiliateAdmin:
    return AffiliateAdmin()


def get_sweeper() -> Sweeper:
    return Sweeper()


def get_stats_tracker() -> SubscriberStatsTracker:
    return SubscriberStatsTracker()
