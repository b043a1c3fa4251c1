"""Client purchase verification endpoint.

Implements:
- POST /subscriptions/verify
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from play_reconciler.api.dependencies import get_optional_claims, get_verification_service
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.api_request import VerifyRequest
from play_reconciler.models.api_response import VerifyResponse
from play_reconciler.services.verification import VerificationError, VerificationService

logger = get_logger(__name__)
router = APIRouter(tags=["Subscriptions"], prefix="/subscriptions")


@router.post(
    "/verify",
    response_model=VerifyResponse,
    response_model_by_alias=True,
    summary="Verify a purchase and store it immediately",
)
def verify_subscription(
    request: VerifyRequest,
    claims: Optional[Dict[str, Any]] = Depends(get_optional_claims),
    service: VerificationService = Depends(get_verification_service),
):
    """Fetch the purchase from Google Play and project it onto the user.

    The caller is identified by the bearer ID token when one verifies;
    legacy clients may send only the body uid.

    Raises:
        400: Missing fields
        401: Strict mode without a valid ID token
        403: Strict mode with a uid mismatch
        404: Purchase token not found
        500: Provider failure
    """
    verified_uid = claims.get("uid") if claims else None
    logger.info(
        "verify_request",
        package_name=request.package_name,
        purchase_token=short_token(request.purchase_token),
        authenticated=verified_uid is not None,
    )

    try:
        return service.verify(request, verified_uid=verified_uid)
    except VerificationError as e:
        logger.warning("verify_failed", status_code=e.status_code, error=e.error)
        return JSONResponse(status_code=e.status_code, content={"ok": False, "error": e.error})
