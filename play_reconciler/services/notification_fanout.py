"""Notification fan-out - pushes announcements to active subscribers via FCM.

Responsibilities:
- Select enabled device tokens of active, allow-listed users
- Send multicast messages in fixed-size batches
- Disable tokens FCM reports as unregistered or invalid
"""

from typing import Callable, Dict, List, Optional

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from play_reconciler.config import get_config
from play_reconciler.logging_config import get_logger
from play_reconciler.models.notifications import Announcement, DeviceToken, FanoutResult
from play_reconciler.models.settings import PushConfig
from play_reconciler.repositories.document_store import WriteResult
from play_reconciler.repositories.notification_store import DeviceTokenStore, get_device_token_store
from play_reconciler.repositories.user_store import UserStore, get_user_store
from play_reconciler.services.clock import Clock, get_clock
from play_reconciler.state_logger import log_token_disabled

logger = get_logger(__name__)

UNREGISTERED = "registration-token-not-registered"
INVALID_TOKEN = "invalid-registration-token"
MAX_REPORTED_ERRORS = 10

MulticastSender = Callable[[messaging.MulticastMessage], messaging.BatchResponse]


def _default_sender(message: messaging.MulticastMessage) -> messaging.BatchResponse:
    from play_reconciler.services.auth import get_firebase_app

    return messaging.send_each_for_multicast(message, app=get_firebase_app())


def classify_error(exc: Optional[BaseException]) -> str:
    """Map an FCM per-recipient exception to an error code."""
    if isinstance(exc, messaging.UnregisteredError):
        return UNREGISTERED
    if isinstance(exc, firebase_exceptions.InvalidArgumentError):
        return INVALID_TOKEN
    if isinstance(exc, firebase_exceptions.FirebaseError):
        return str(exc.code)
    return type(exc).__name__ if exc is not None else "unknown"


class NotificationFanout:
    """Delivers announcements to subscribers' devices."""

    def __init__(
        self,
        tokens: Optional[DeviceTokenStore] = None,
        users: Optional[UserStore] = None,
        push_config: Optional[PushConfig] = None,
        sender: Optional[MulticastSender] = None,
        clock: Optional[Clock] = None,
    ):
        self._tokens = tokens if tokens is not None else get_device_token_store()
        self._users = users if users is not None else get_user_store()
        self._config = push_config if push_config is not None else get_config().push
        self._sender = sender if sender is not None else _default_sender
        self._clock = clock if clock is not None else get_clock()

    def on_announcement_write(self, result: WriteResult) -> Optional[FanoutResult]:
        """Announcement store listener.

        Fires when an announcement is created not-deleted, or restored from
        deleted. Edits to a live announcement do not re-send.
        """
        after = result.after
        if after is None or after.is_deleted:
            return None
        if result.before is not None and not result.before.is_deleted:
            return None
        return self.send_announcement(after)

    def select_targets(self, announcement: Announcement) -> List[DeviceToken]:
        """Enabled tokens of allow-listed users whose subscription is active."""
        recipients = announcement.recipients
        allowed = None
        if recipients is not None and self._config.broadcast_sentinel not in recipients:
            allowed = set(recipients)

        active_cache: Dict[str, bool] = {}
        targets = []
        for device in self._tokens.find_enabled(limit=self._config.max_tokens):
            if allowed is not None and device.uid not in allowed:
                continue
            if device.uid not in active_cache:
                active_cache[device.uid] = self._users.is_subscriber(device.uid)
            if active_cache[device.uid]:
                targets.append(device)
        return targets

    def _build_message(self, announcement: Announcement, batch: List[DeviceToken]) -> messaging.MulticastMessage:
        return messaging.MulticastMessage(
            tokens=[device.token for device in batch],
            notification=messaging.Notification(
                title=announcement.title or self._config.default_title,
                body=announcement.body,
            ),
            data={"type": "announcement", "announcement_id": announcement.announcement_id},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    channel_id=self._config.android_channel_id,
                    default_sound=True,
                    default_vibrate_timings=True,
                ),
            ),
        )

    def send_announcement(self, announcement: Announcement) -> FanoutResult:
        """Send one announcement to every eligible device.

        Args:
            announcement: Announcement to deliver

        Returns:
            FanoutResult with aggregated counts and the first errors
        """
        targets = self.select_targets(announcement)
        result = FanoutResult(targets=len(targets))
        errors: List[str] = []

        if not targets:
            logger.info("announcement_no_targets", announcement_id=announcement.announcement_id)
            return result

        batch_size = self._config.batch_size
        for offset in range(0, len(targets), batch_size):
            batch = targets[offset : offset + batch_size]
            try:
                response = self._sender(self._build_message(announcement, batch))
            except Exception as e:
                logger.error(
                    "announcement_batch_failed",
                    announcement_id=announcement.announcement_id,
                    batch_offset=offset,
                    batch_size=len(batch),
                    error=str(e),
                    exc_info=True,
                )
                result.failed += len(batch)
                errors.append(f"batch@{offset}: {type(e).__name__}")
                continue

            for device, send_response in zip(batch, response.responses):
                if send_response.success:
                    result.sent += 1
                    continue
                result.failed += 1
                code = classify_error(send_response.exception)
                errors.append(f"{device.uid}: {code}")
                if code in (UNREGISTERED, INVALID_TOKEN):
                    self._disable(device, code)
                    result.disabled += 1

        result.errors = errors[:MAX_REPORTED_ERRORS]
        logger.info(
            "announcement_fanout_completed",
            announcement_id=announcement.announcement_id,
            targets=result.targets,
            sent=result.sent,
            failed=result.failed,
            disabled=result.disabled,
        )
        return result

    def _disable(self, device: DeviceToken, reason: str) -> None:
        self._tokens.disable(device.uid, device.token, reason, self._clock.now_iso())
        log_token_disabled(device.uid, device.token, reason)
