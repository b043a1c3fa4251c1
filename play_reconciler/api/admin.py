"""Admin endpoints (admin custom claim required).

Implements:
- PUT /admin/announcements/{announcement_id}
- POST /admin/sweep
- POST /admin/stats/resync
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from play_reconciler.api.dependencies import get_stats_tracker, get_sweeper, require_admin
from play_reconciler.logging_config import get_logger
from play_reconciler.models.api_request import AnnouncementRequest
from play_reconciler.models.api_response import StatsResponse, SweepResponse
from play_reconciler.models.notifications import Announcement
from play_reconciler.repositories.notification_store import get_announcement_store
from play_reconciler.services.subscriber_stats import SubscriberStatsTracker
from play_reconciler.services.sweeper import Sweeper

logger = get_logger(__name__)
router = APIRouter(tags=["Admin"], prefix="/admin")


@router.put(
    "/announcements/{announcement_id}",
    response_model=Announcement,
    summary="Publish or update an announcement",
)
def upsert_announcement(
    request: AnnouncementRequest,
    announcement_id: str = Path(..., min_length=1, description="Announcement id"),
    claims: Dict[str, Any] = Depends(require_admin),
) -> Announcement:
    """Store an announcement.

    Publishing a new announcement, or restoring a deleted one, pushes it
    to active subscribers before the response is returned.
    """
    announcement = Announcement(
        announcement_id=announcement_id,
        title=request.title,
        body=request.body,
        is_deleted=request.is_deleted,
        recipients=request.recipients,
    )
    get_announcement_store().put(announcement_id, announcement)
    logger.info(
        "announcement_stored",
        announcement_id=announcement_id,
        is_deleted=announcement.is_deleted,
        admin_uid=claims.get("uid"),
    )
    return announcement


@router.post("/sweep", response_model=SweepResponse, summary="Run one sweep pass")
def run_sweep(
    claims: Dict[str, Any] = Depends(require_admin),
    sweeper: Sweeper = Depends(get_sweeper),
) -> SweepResponse:
    result = sweeper.run_once()
    return SweepResponse(**result._asdict())


@router.post("/stats/resync", response_model=StatsResponse, summary="Recompute subscriber statistics")
def resync_stats(
    claims: Dict[str, Any] = Depends(require_admin),
    tracker: SubscriberStatsTracker = Depends(get_stats_tracker),
) -> StatsResponse:
    stats = tracker.resync()
    logger.info("stats_resync_requested", admin_uid=claims.get("uid"), active_count=stats.active_count)
    return StatsResponse(active_count=stats.active_count, emails=stats.emails)
