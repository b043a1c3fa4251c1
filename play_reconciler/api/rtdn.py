"""Pub/Sub push endpoint for Real-time Developer Notifications.

Implements:
- POST /rtdn/push
"""

import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from play_reconciler.api.dependencies import get_rtdn_handler
from play_reconciler.config import get_config
from play_reconciler.logging_config import bind_context, get_logger
from play_reconciler.models.events import PubSubPushEnvelope
from play_reconciler.services.provider_adapter import ProviderError
from play_reconciler.services.webhook import RtdnHandler

logger = get_logger(__name__)
router = APIRouter(tags=["RTDN"], prefix="/rtdn")


def _token_matches(expected: Optional[str], received: Optional[str]) -> bool:
    if not expected:
        return True
    return received is not None and hmac.compare_digest(expected.encode(), received.encode())


@router.post("/push", status_code=204, summary="Receive an RTDN Pub/Sub push delivery")
async def receive_push(
    request: Request,
    token: Optional[str] = Query(None, description="Shared verification token"),
    handler: RtdnHandler = Depends(get_rtdn_handler),
):
    """Handle one push delivery.

    Returns 204 for anything handled or archived so Pub/Sub stops
    redelivering, and 503 when the provider failed transiently.

    Raises:
        401: Verification token missing or wrong
    """
    if not _token_matches(get_config().webhook.verification_token, token):
        logger.warning("rtdn_push_unauthorized", token_present=token is not None)
        return JSONResponse(status_code=401, content={"ok": False, "error": "Invalid verification token"})

    raw = await request.body()
    try:
        envelope = PubSubPushEnvelope.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        await run_in_threadpool(handler.archive_malformed, raw.decode("utf-8", errors="replace"), str(e))
        return Response(status_code=204)

    bind_context(pubsub_message_id=envelope.message.message_id)
    try:
        outcome = await run_in_threadpool(handler.handle_data, envelope.message.data)
    except ProviderError as e:
        logger.warning("rtdn_push_retry", status=e.status, error=str(e))
        return JSONResponse(status_code=503, content={"ok": False, "error": "Provider temporarily unavailable"})

    logger.info("rtdn_push_handled", outcome=outcome.value)
    return Response(status_code=204)
