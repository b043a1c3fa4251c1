"""Affiliate administration - code redemption and affiliate setup."""

from typing import NamedTuple, Optional

from play_reconciler.logging_config import get_logger
from play_reconciler.models.affiliate import (
    AffiliateAggregate,
    AffiliateCode,
    AffiliateRedemption,
)
from play_reconciler.models.user import UserRecord
from play_reconciler.repositories.affiliate_store import AffiliateStore, get_affiliate_store
from play_reconciler.repositories.user_store import UserStore, get_user_store
from play_reconciler.services.clock import Clock, get_clock

logger = get_logger(__name__)

INVALID_CODE_MESSAGE = "Invalid code"
ALREADY_REDEEMED_MESSAGE = "You already have a code associated"
REDEEMED_MESSAGE = "Code redeemed successfully"
DEFAULT_AFFILIATE_NAME = "Affiliate"


class RedemptionResult(NamedTuple):
    success: bool
    message: str
    affiliate_name: Optional[str] = None


class AffiliateAdmin:
    """Redeems affiliate codes for users and creates affiliates."""

    def __init__(
        self,
        affiliates: Optional[AffiliateStore] = None,
        users: Optional[UserStore] = None,
        clock: Optional[Clock] = None,
    ):
        self._affiliates = affiliates if affiliates is not None else get_affiliate_store()
        self._users = users if users is not None else get_user_store()
        self._clock = clock if clock is not None else get_clock()

    def redeem(self, uid: str, code: str, email: Optional[str] = None) -> RedemptionResult:
        """Associate an affiliate code with a user.

        The code must exist and be active, and the user must not have a code
        already. A user can redeem at most one code, ever.

        Args:
            uid: Redeeming user
            code: Affiliate code
            email: User e-mail from the caller's identity, if known

        Returns:
            RedemptionResult (invalid codes are a result, not an error)
        """
        code_doc = self._affiliates.find_code(code)
        if code_doc is None or not code_doc.is_active:
            logger.info("affiliate_code_rejected", uid=uid, code=code)
            return RedemptionResult(False, INVALID_CODE_MESSAGE)

        now_iso = self._clock.now_iso()
        with self._users.transaction():
            user = self._users.find(uid)
            if user is not None and user.affiliate_code:
                logger.info("affiliate_code_already_set", uid=uid, existing_code=user.affiliate_code)
                return RedemptionResult(False, ALREADY_REDEEMED_MESSAGE)

            updates = {"affiliate_code": code, "affiliate_code_used_at": now_iso}
            if email and (user is None or not user.email):
                updates["email"] = email
            self._users.merge(uid, updates, factory=lambda: UserRecord(uid=uid))

        self._affiliates.redemptions.put(
            (code_doc.affiliate_id, uid),
            AffiliateRedemption(
                affiliate_id=code_doc.affiliate_id,
                uid=uid,
                code=code,
                email=email or (user.email if user is not None else None),
                used_at=now_iso,
            ),
        )

        logger.info("affiliate_code_redeemed", uid=uid, code=code, affiliate_id=code_doc.affiliate_id)
        return RedemptionResult(True, REDEEMED_MESSAGE, code_doc.affiliate_name or DEFAULT_AFFILIATE_NAME)

    def initialize_affiliate(self, affiliate_id: str, code: str, name: str) -> AffiliateAggregate:
        """Create an affiliate and its redeemable code.

        Re-initializing an existing affiliate updates its code and name and
        keeps its counter.

        Returns:
            The stored AffiliateAggregate
        """
        now_iso = self._clock.now_iso()
        with self._affiliates.transaction():
            self._affiliates.codes.put(
                code,
                AffiliateCode(
                    code=code,
                    affiliate_id=affiliate_id,
                    affiliate_name=name,
                    is_active=True,
                    created_at=now_iso,
                ),
            )
            result = self._affiliates.aggregates.merge(
                affiliate_id,
                {"code": code, "name": name, "is_active": True},
                factory=lambda: AffiliateAggregate(
                    affiliate_id=affiliate_id, active_subscribers=0, created_at=now_iso
                ),
            )

        logger.info("affiliate_initialized", affiliate_id=affiliate_id, code=code, name=name)
        return result.after
