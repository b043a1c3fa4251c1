"""Device registration for push delivery.

Implements:
- POST /devices/token
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from play_reconciler.api.dependencies import require_claims
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.api_request import RegisterDeviceTokenRequest
from play_reconciler.models.api_response import OkResponse
from play_reconciler.repositories.notification_store import get_device_token_store
from play_reconciler.services.clock import get_clock

logger = get_logger(__name__)
router = APIRouter(tags=["Devices"], prefix="/devices")


@router.post("/token", response_model=OkResponse, summary="Register an FCM token for the caller")
def register_device_token(
    request: RegisterDeviceTokenRequest,
    claims: Dict[str, Any] = Depends(require_claims),
):
    """Store (or re-enable) the caller's FCM registration token."""
    if not request.token:
        return JSONResponse(status_code=400, content={"ok": False, "error": "token is required"})

    get_device_token_store().register(claims["uid"], request.token, get_clock().now_iso(), request.platform)
    logger.info("device_token_registered", uid=claims["uid"], token=short_token(request.token))
    return OkResponse()
