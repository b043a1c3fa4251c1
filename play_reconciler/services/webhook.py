"""RTDN webhook ingestion.

Turns one Real-time Developer Notification into a reconcile call. Anything
that can never be processed (test pings, one-time products, malformed
payloads) is archived and acknowledged. Provider failures are archived too;
only transient ones propagate so the delivery is retried.
"""

import base64
import binascii
import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.events import DeveloperNotification
from play_reconciler.repositories.audit_log import AuditLog, get_audit_log
from play_reconciler.services.clock import Clock, get_clock
from play_reconciler.services.provider_adapter import PlayDeveloperClient, ProviderError, get_provider_client
from play_reconciler.services.reconciler import StateReconciler

logger = get_logger(__name__)


class RtdnOutcome(str, Enum):
    """How a notification was disposed of."""

    RECONCILED = "reconciled"
    TEST_NOTIFICATION = "test_notification"
    MALFORMED = "malformed"
    UNKNOWN_OR_ONE_TIME = "unknown_or_one_time"
    FETCH_ERROR = "fetch_error"


def decode_message_data(data: Union[str, bytes]) -> Any:
    """Decode a Pub/Sub message body into JSON.

    Push deliveries carry base64 text; streaming pull hands over raw bytes.

    Raises:
        ValueError: If the body is not valid base64/UTF-8/JSON
    """
    if isinstance(data, str):
        try:
            data = base64.b64decode(data, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 message data: {e}") from e
    return json.loads(data.decode("utf-8"))


class RtdnHandler:
    """Processes decoded RTDN payloads."""

    def __init__(
        self,
        provider: Optional[PlayDeveloperClient] = None,
        reconciler: Optional[StateReconciler] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Optional[Clock] = None,
    ):
        self._provider = provider if provider is not None else get_provider_client()
        self._reconciler = reconciler if reconciler is not None else StateReconciler()
        self._audit = audit_log if audit_log is not None else get_audit_log()
        self._clock = clock if clock is not None else get_clock()

    def _archive(self, outcome: RtdnOutcome, payload: Any, **fields: Any) -> RtdnOutcome:
        self._audit.record(outcome.value, self._clock.now_iso(), payload=payload, **fields)
        return outcome

    def archive_malformed(self, payload: Any, error: str) -> RtdnOutcome:
        """Archive a delivery that could not be unwrapped at all."""
        logger.warning("rtdn_malformed", reason="bad_envelope")
        return self._archive(RtdnOutcome.MALFORMED, payload, error=error)

    def handle_data(self, data: Union[str, bytes]) -> RtdnOutcome:
        """Decode and handle a raw Pub/Sub message body."""
        try:
            payload = decode_message_data(data)
        except ValueError as e:
            logger.warning("rtdn_undecodable", error=str(e))
            raw = data if isinstance(data, str) else data.decode("utf-8", errors="replace")
            return self._archive(RtdnOutcome.MALFORMED, raw, error=str(e))
        return self.handle(payload)

    def handle(self, payload: Any) -> RtdnOutcome:
        """Handle one decoded RTDN payload.

        Args:
            payload: DeveloperNotification JSON

        Returns:
            RtdnOutcome

        Raises:
            ProviderError: If the provider fetch failed transiently (retry the delivery)
        """
        if not isinstance(payload, dict):
            logger.warning("rtdn_malformed", reason="not_an_object")
            return self._archive(RtdnOutcome.MALFORMED, payload, error="payload is not an object")

        if payload.get("testNotification") is not None:
            logger.info("rtdn_test_notification", package_name=payload.get("packageName"))
            return self._archive(RtdnOutcome.TEST_NOTIFICATION, payload, package_name=payload.get("packageName"))

        try:
            notification = DeveloperNotification.model_validate(payload)
        except ValidationError as e:
            logger.warning("rtdn_malformed", error_count=e.error_count())
            return self._archive(RtdnOutcome.MALFORMED, payload, error=str(e))

        sub = notification.subscription_notification
        if sub is None:
            logger.info("rtdn_not_subscription", package_name=notification.package_name)
            return self._archive(
                RtdnOutcome.UNKNOWN_OR_ONE_TIME, payload, package_name=notification.package_name
            )

        try:
            snapshot = self._provider.fetch_subscription(notification.package_name, sub.purchase_token)
        except ProviderError as e:
            logger.warning(
                "rtdn_fetch_failed",
                package_name=notification.package_name,
                purchase_token=short_token(sub.purchase_token),
                status=e.status,
                transient=e.transient,
            )
            self._archive(
                RtdnOutcome.FETCH_ERROR,
                payload,
                package_name=notification.package_name,
                purchase_token=sub.purchase_token,
                error=str(e),
            )
            if e.transient:
                raise
            return RtdnOutcome.FETCH_ERROR

        outcome = self._reconciler.reconcile(
            notification.package_name,
            sub.purchase_token,
            snapshot,
            source="rtdn",
            notification_type=sub.notification_type,
            subscription_id=sub.subscription_id,
            event_time_millis=notification.event_time_millis or None,
        )
        logger.info(
            "rtdn_processed",
            package_name=notification.package_name,
            purchase_token=short_token(sub.purchase_token),
            notification_type=sub.notification_type,
            state=snapshot.state,
            uid=outcome.uid,
            deferred=outcome.deferred,
        )
        return RtdnOutcome.RECONCILED
