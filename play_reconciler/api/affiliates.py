"""Affiliate endpoints.

Implements:
- POST /affiliates/redeem
- POST /affiliates
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from play_reconciler.api.dependencies import get_affiliate_admin, require_admin, require_claims
from play_reconciler.logging_config import get_logger
from play_reconciler.models.affiliate import AffiliateAggregate
from play_reconciler.models.api_request import InitializeAffiliateRequest, RedeemAffiliateCodeRequest
from play_reconciler.models.api_response import RedeemAffiliateCodeResponse
from play_reconciler.services.affiliate_admin import AffiliateAdmin

logger = get_logger(__name__)
router = APIRouter(tags=["Affiliates"], prefix="/affiliates")


@router.post(
    "/redeem",
    response_model=RedeemAffiliateCodeResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    summary="Redeem an affiliate code",
)
def redeem_code(
    request: RedeemAffiliateCodeRequest,
    claims: Dict[str, Any] = Depends(require_claims),
    admin: AffiliateAdmin = Depends(get_affiliate_admin),
):
    """Associate an affiliate code with the caller.

    An unknown code or a second redemption is reported in the body with
    success=false, not as an HTTP error.

    Raises:
        400: Code missing
        401: Not authenticated
    """
    code = (request.code or "").strip()
    if not code:
        return JSONResponse(status_code=400, content={"success": False, "message": "Code is required"})

    result = admin.redeem(claims["uid"], code, email=claims.get("email"))
    return RedeemAffiliateCodeResponse(
        success=result.success,
        message=result.message,
        affiliate_name=result.affiliate_name,
    )


@router.post("", response_model=AffiliateAggregate, status_code=201, summary="Create an affiliate (admin)")
def initialize_affiliate(
    request: InitializeAffiliateRequest,
    claims: Dict[str, Any] = Depends(require_admin),
    admin: AffiliateAdmin = Depends(get_affiliate_admin),
):
    """Create an affiliate and its redeemable code.

    Raises:
        400: affiliateId, code or name missing
        401: Not authenticated
        403: Caller lacks the admin claim
    """
    if not request.affiliate_id or not request.code or not request.name:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "affiliateId, code and name are required"},
        )

    aggregate = admin.initialize_affiliate(request.affiliate_id, request.code, request.name)
    logger.info("affiliate_created_by_admin", affiliate_id=aggregate.affiliate_id, admin_uid=claims.get("uid"))
    return aggregate
