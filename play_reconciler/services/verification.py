"""Client-triggered purchase verification.

The client calls this right after a purchase so the subscription is stored
and projected without waiting for the RTDN round-trip.
"""

from typing import Optional

from play_reconciler.config import get_config
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.api_request import VerifyRequest
from play_reconciler.models.api_response import VerifyResponse
from play_reconciler.models.settings import SecurityConfig
from play_reconciler.repositories.audit_log import AuditLog, get_audit_log
from play_reconciler.services.clock import Clock, get_clock
from play_reconciler.services.provider_adapter import PlayDeveloperClient, ProviderError, get_provider_client
from play_reconciler.services.reconciler import StateReconciler

logger = get_logger(__name__)


class VerificationError(Exception):
    """Raised when a verification request cannot be completed.

    Attributes:
        status_code: HTTP status to return
        error: Message for the ``{ok: false, error}`` body
    """

    def __init__(self, status_code: int, error: str):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


class VerificationService:
    """Fetches, stores and projects a purchase on the client's behalf."""

    def __init__(
        self,
        provider: Optional[PlayDeveloperClient] = None,
        reconciler: Optional[StateReconciler] = None,
        audit_log: Optional[AuditLog] = None,
        security: Optional[SecurityConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self._provider = provider if provider is not None else get_provider_client()
        self._reconciler = reconciler if reconciler is not None else StateReconciler()
        self._audit = audit_log if audit_log is not None else get_audit_log()
        self._security = security if security is not None else get_config().security
        self._clock = clock if clock is not None else get_clock()

    def verify(self, request: VerifyRequest, verified_uid: Optional[str] = None) -> VerifyResponse:
        """Verify a purchase and store it.

        The effective uid is the verified ID token's uid, falling back to the
        body uid for legacy clients. A mismatch between the two is logged and
        audited; with strict_identity_check it is rejected.

        Args:
            request: Verification body
            verified_uid: uid from a successfully verified ID token, if any

        Returns:
            VerifyResponse with the normalized subscription

        Raises:
            VerificationError: With the HTTP status to return
        """
        strict = self._security.strict_identity_check
        package_name = request.package_name
        purchase_token = request.purchase_token

        if strict and verified_uid is None:
            raise VerificationError(401, "Authentication required")

        if verified_uid and request.uid and verified_uid != request.uid:
            logger.error(
                "identity_mismatch",
                verified_uid=verified_uid,
                body_uid=request.uid,
                package_name=package_name,
                purchase_token=short_token(purchase_token),
            )
            self._audit.record(
                "identity_mismatch",
                self._clock.now_iso(),
                payload={"verified_uid": verified_uid, "body_uid": request.uid},
                package_name=package_name,
                purchase_token=purchase_token,
            )
            if strict:
                raise VerificationError(403, "uid does not match the authenticated user")

        uid = verified_uid or request.uid
        if not uid or not package_name or not purchase_token:
            raise VerificationError(400, "uid, packageName and purchaseToken are required")

        try:
            snapshot = self._provider.fetch_subscription(package_name, purchase_token)
        except ProviderError as e:
            self._audit.record(
                "fetch_error",
                self._clock.now_iso(),
                payload=request.model_dump(by_alias=True),
                package_name=package_name,
                purchase_token=purchase_token,
                error=str(e),
            )
            if e.not_found:
                raise VerificationError(404, "Purchase token not found") from e
            raise VerificationError(500, e.message) from e

        outcome = self._reconciler.reconcile(
            package_name,
            purchase_token,
            snapshot,
            source="verify",
            uid=uid,
            verified_auth=verified_uid is not None,
            force_projection=True,
        )
        self._reconciler.resolver.assign_owner(purchase_token, uid)
        record = outcome.record.model_copy(update={"owner_uid": uid})

        logger.info(
            "purchase_verified",
            uid=uid,
            package_name=package_name,
            purchase_token=short_token(purchase_token),
            state=record.state,
            is_active=record.is_active,
            verified_auth=verified_uid is not None,
        )
        return VerifyResponse(
            package_name=record.package_name,
            purchase_token=record.purchase_token,
            owner_uid=record.owner_uid,
            subscription_state=record.state,
            start_time_millis=record.start_time_millis,
            expiry_time_millis=record.expiry_time_millis,
            is_active=record.is_active,
            region_code=record.region_code,
            last_fetch_at=record.last_fetch_at,
            verified_auth=bool(record.verified_auth),
        )
