"""Provider adapter - Google Play Developer API client.

Fetches one purchase token from ``purchases.subscriptionsv2.get`` and
normalizes the response into a CanonicalSnapshot. Never touches stored state.
"""

import threading
from typing import Any, Optional

import google.auth
import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from play_reconciler.config import get_config
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.subscription import CanonicalSnapshot
from play_reconciler.utils.activity import pick_window

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"


class ProviderError(Exception):
    """Raised when the provider cannot return a subscription.

    Attributes:
        status: HTTP status code, None for network or credential failures
    """

    def __init__(self, status: Optional[int], message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    @property
    def transient(self) -> bool:
        """True when a later retry may succeed."""
        return self.status is None or self.status == 429 or self.status >= 500

    @property
    def not_found(self) -> bool:
        return self.status in (404, 410)


def _dig(data: Any, *path: Any) -> Any:
    for step in path:
        if isinstance(step, int):
            if not isinstance(data, list) or len(data) <= step:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[step] if isinstance(step, int) else data.get(step)
    return data


def extract_account_id(body: dict) -> Optional[str]:
    """Find the obfuscated external account id in a subscriptionsv2 response.

    Locations, first hit wins:
    - lineItems[0].linkedPurchaseToken.obfuscatedExternalAccountId (legacy)
    - lineItems[0].obfuscatedExternalAccountId
    - externalAccountIdentifiers.obfuscatedExternalAccountId
    - obfuscatedExternalAccountId
    """
    candidates = (
        ("lineItems", 0, "linkedPurchaseToken", "obfuscatedExternalAccountId"),
        ("lineItems", 0, "obfuscatedExternalAccountId"),
        ("externalAccountIdentifiers", "obfuscatedExternalAccountId"),
        ("obfuscatedExternalAccountId",),
    )
    for path in candidates:
        value = _dig(body, *path)
        if isinstance(value, str) and value:
            return value
    return None


def to_snapshot(body: dict) -> CanonicalSnapshot:
    """Normalize a subscriptionsv2 response body."""
    start, end = pick_window(body.get("lineItems"))
    state = body.get("subscriptionState")
    region = body.get("regionCode")
    return CanonicalSnapshot(
        state=str(state) if state is not None else None,
        start_time_millis=start,
        expiry_time_millis=end,
        region_code=str(region) if region is not None else None,
        account_id=extract_account_id(body),
        raw=body,
    )


class PlayDeveloperClient:
    """Thin wrapper over the androidpublisher v3 API.

    The discovery service is built lazily on first use. Tests inject a mock
    service through the constructor.
    """

    def __init__(self, service: Any = None, service_account_file: Optional[str] = None):
        """Initialize client.

        Args:
            service: Pre-built androidpublisher service (skips discovery)
            service_account_file: Service account JSON; falls back to config,
                then to application default credentials
        """
        self._service = service
        self._service_account_file = service_account_file
        self._lock = threading.Lock()

    def _credentials(self):
        path = self._service_account_file or get_config().provider.service_account_file
        if path:
            return service_account.Credentials.from_service_account_file(
                path, scopes=[ANDROID_PUBLISHER_SCOPE]
            )
        credentials, _ = google.auth.default(scopes=[ANDROID_PUBLISHER_SCOPE])
        return credentials

    def _get_service(self):
        if self._service is None:
            with self._lock:
                if self._service is None:
                    timeout = get_config().provider.request_timeout_seconds
                    http = google_auth_httplib2.AuthorizedHttp(
                        self._credentials(), http=httplib2.Http(timeout=timeout)
                    )
                    self._service = build("androidpublisher", "v3", http=http, cache_discovery=False)
                    logger.info("play_developer_service_built")
        return self._service

    def fetch_raw(self, package_name: str, purchase_token: str) -> dict:
        """Fetch the raw subscriptionsv2 response.

        Raises:
            ProviderError: On HTTP, network or credential failure
        """
        try:
            service = self._get_service()
            request = service.purchases().subscriptionsv2().get(
                packageName=package_name, token=purchase_token
            )
            body = request.execute()
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            status = int(status) if status is not None else None
            logger.warning(
                "provider_http_error",
                package_name=package_name,
                purchase_token=short_token(purchase_token),
                status=status,
                error=str(e),
            )
            raise ProviderError(status, f"Play Developer API returned {status}: {e}") from e
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
            logger.error(
                "provider_unreachable",
                package_name=package_name,
                purchase_token=short_token(purchase_token),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderError(None, f"Play Developer API unreachable: {e}") from e

        if not isinstance(body, dict):
            raise ProviderError(None, "Play Developer API returned a non-object body")
        return body

    def fetch_subscription(self, package_name: str, purchase_token: str) -> CanonicalSnapshot:
        """Fetch and normalize one purchase token.

        Args:
            package_name: Android package name
            purchase_token: Provider purchase token

        Returns:
            CanonicalSnapshot

        Raises:
            ProviderError: On any provider failure
        """
        snapshot = to_snapshot(self.fetch_raw(package_name, purchase_token))
        logger.debug(
            "provider_snapshot_fetched",
            package_name=package_name,
            purchase_token=short_token(purchase_token),
            state=snapshot.state,
            expiry_time_millis=snapshot.expiry_time_millis,
        )
        return snapshot


_client_instance: Optional[PlayDeveloperClient] = None
_client_lock = threading.Lock()


def get_provider_client() -> PlayDeveloperClient:
    """Get global Play Developer client instance (singleton)."""
    global _client_instance
    if _client_instance is None:
        with _client_lock:
            if _client_instance is None:
                _client_instance = PlayDeveloperClient()
    return _client_instance


def set_provider_client(client: Optional[PlayDeveloperClient]) -> None:
    """Replace the global client (None resets to lazy construction)."""
    global _client_instance
    with _client_lock:
        _client_instance = client
