"""Identity link endpoints.

Implements:
- POST /links/purchase-token
- POST /links/account-id
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from play_reconciler.api.dependencies import get_optional_claims
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.api_request import LinkAccountIdRequest, LinkPurchaseTokenRequest
from play_reconciler.models.api_response import OkResponse
from play_reconciler.models.user import UserRecord
from play_reconciler.repositories.link_store import get_account_link_store, get_purchase_link_store
from play_reconciler.repositories.user_store import get_user_store
from play_reconciler.services.clock import get_clock

logger = get_logger(__name__)
router = APIRouter(tags=["Links"], prefix="/links")

MIN_PURCHASE_TOKEN_LENGTH = 10
MIN_ACCOUNT_ID_LENGTH = 6


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


def _remember_email(uid: str, email: Optional[str]) -> None:
    """Store the e-mail on the user record unless one is already set."""
    if not email:
        return
    users = get_user_store()
    with users.transaction():
        user = users.find(uid)
        if user is not None and user.email:
            return
        users.merge(uid, {"email": email}, factory=lambda: UserRecord(uid=uid))


@router.post("/purchase-token", response_model=OkResponse, summary="Link a purchase token to the caller")
def link_purchase_token(
    request: LinkPurchaseTokenRequest,
    claims: Optional[Dict[str, Any]] = Depends(get_optional_claims),
):
    """Associate a purchase token with the authenticated user.

    Linking triggers the backfill, so a subscription that arrived before
    the link is projected right away.
    """
    if claims is None:
        return _error(401, "Authentication required")

    purchase_token = request.purchase_token
    if not purchase_token or len(purchase_token) < MIN_PURCHASE_TOKEN_LENGTH:
        return _error(400, "purchaseToken is required")

    uid = claims["uid"]
    email = request.email or claims.get("email")
    _remember_email(uid, email)
    get_purchase_link_store().link(
        purchase_token,
        uid,
        get_clock().now_iso(),
        package_name=request.package_name,
        email=email,
    )

    logger.info("purchase_token_linked", uid=uid, purchase_token=short_token(purchase_token))
    return OkResponse()


@router.post("/account-id", response_model=OkResponse, summary="Link an obfuscated account id to the caller")
def link_account_id(
    request: LinkAccountIdRequest,
    claims: Optional[Dict[str, Any]] = Depends(get_optional_claims),
):
    """Associate an obfuscated external account id with the authenticated user."""
    if claims is None:
        return _error(401, "Authentication required")

    account_id = request.account_id
    if not account_id or len(account_id) < MIN_ACCOUNT_ID_LENGTH:
        return _error(400, "accountId is required")

    uid = claims["uid"]
    _remember_email(uid, claims.get("email"))
    get_account_link_store().link(account_id, uid, get_clock().now_iso())

    logger.info("account_id_linked", uid=uid)
    return OkResponse()
