"""RTDN streaming-pull listener on Google Cloud Pub/Sub.

Alternative to the push endpoint: pulls notifications from the configured
subscription and hands them to RtdnHandler. Messages are acked once handled
(including archived ones) and nacked on transient provider failures so
Pub/Sub redelivers them.
"""

import threading
from typing import Any, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import pubsub_v1

from play_reconciler.config import get_config
from play_reconciler.logging_config import bind_context, clear_context, get_logger
from play_reconciler.services.provider_adapter import ProviderError
from play_reconciler.services.webhook import RtdnHandler

logger = get_logger(__name__)


class RtdnListener:
    """Streaming-pull consumer of RTDN messages."""

    def __init__(
        self,
        handler: Optional[RtdnHandler] = None,
        subscriber: Optional[pubsub_v1.SubscriberClient] = None,
    ):
        """Initialize listener.

        Args:
            handler: Notification handler (defaults to one on the global stores)
            subscriber: Pub/Sub subscriber client (created lazily on start)
        """
        self._handler = handler if handler is not None else RtdnHandler()
        self._subscriber = subscriber
        self._future = None
        self._lock = threading.RLock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._future is not None and not self._future.done()

    def callback(self, message: Any) -> None:
        """Process one received message."""
        bind_context(pubsub_message_id=getattr(message, "message_id", None))
        try:
            outcome = self._handler.handle_data(message.data)
            message.ack()
            logger.info("rtdn_message_acked", outcome=outcome.value)
        except ProviderError as e:
            message.nack()
            logger.warning("rtdn_message_nacked", status=e.status, error=str(e))
        except Exception as e:
            message.nack()
            logger.error(
                "rtdn_message_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            clear_context()

    def start(self) -> None:
        """Start the streaming pull (no-op if already running)."""
        with self._lock:
            if self.running:
                return

            config = get_config().pubsub
            if self._subscriber is None:
                self._subscriber = pubsub_v1.SubscriberClient()
            subscription_path = self._subscriber.subscription_path(config.project_id, config.subscription)
            flow_control = pubsub_v1.types.FlowControl(max_messages=config.max_messages)

            try:
                self._future = self._subscriber.subscribe(
                    subscription_path,
                    callback=self.callback,
                    flow_control=flow_control,
                )
            except GoogleAPIError as e:
                logger.error(
                    "rtdn_listener_start_failed",
                    subscription_path=subscription_path,
                    error=str(e),
                    exc_info=True,
                )
                raise

            logger.info(
                "rtdn_listener_started",
                subscription_path=subscription_path,
                max_messages=config.max_messages,
            )

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Cancel the streaming pull and wait for in-flight callbacks."""
        with self._lock:
            future, self._future = self._future, None
        if future is None:
            return

        future.cancel()
        try:
            future.result(timeout=timeout)
        except Exception as e:
            # result() raises once the future is cancelled
            logger.debug("rtdn_listener_stop_result", error_type=type(e).__name__)
        logger.info("rtdn_listener_stopped")
