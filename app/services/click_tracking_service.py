"""Click attribution tracking"""
from typing import Optional
import logging

from sqlalchemy.orm import Session

from app.models.referral import ReferralClick, ClickStatus
from app.services.counter_cache import bump_counters
from app.services.notification_service import NotificationService, notification_service
from app.services.referral_service import ReferralService
from app.services.reward_settings_service import RewardSettingsService
from app.services.settlement_service import SettlementService
from app.utils.exceptions import ConflictError, NotFoundError
from app.utils.periods import utcnow
from app.utils.validation import validate_ip_address, validate_reward_amount

logger = logging.getLogger(__name__)


class ClickTrackingService:
    """Records inbound referral clicks and moves them through
    PENDING -> QUALIFIED, or to FRAUDULENT.

    Rapid repeat clicks from one address are all recorded; there is no
    dedup window and no expiry, so a click that never qualifies stays
    PENDING indefinitely.
    """

    @staticmethod
    def record_click(
        db: Session,
        code: str,
        ip_address: str,
        user_agent: Optional[str] = None
    ) -> ReferralClick:
        """Create a PENDING click priced at the current click reward"""
        ip_address = validate_ip_address(ip_address)
        referral = ReferralService.resolve_active_code(db, code)
        reward_amount = RewardSettingsService.get_settings(db)["click_reward_amount"]

        click = ReferralClick(
            referral_id=referral.id,
            ip_address=ip_address,
            user_agent=user_agent,
            status=ClickStatus.PENDING,
            reward_amount=reward_amount,
            clicked_at=utcnow()
        )

        try:
            db.add(click)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(click)
        logger.info(f"Recorded click {click.id} for code {referral.code}")
        return click

    @staticmethod
    def qualify_click(
        db: Session,
        click_id: int,
        reward_amount: Optional[float] = None,
        notifier: Optional[NotificationService] = None
    ) -> ReferralClick:
        """PENDING -> QUALIFIED exactly once; repeat calls are no-ops"""
        notifier = notifier or notification_service

        values = {
            ReferralClick.status: ClickStatus.QUALIFIED,
            ReferralClick.qualified_at: utcnow()
        }
        if reward_amount is not None:
            values[ReferralClick.reward_amount] = validate_reward_amount(
                reward_amount, "reward_amount", allow_zero=True
            )

        try:
            transitioned = db.query(ReferralClick).filter(
                ReferralClick.id == click_id,
                ReferralClick.status == ClickStatus.PENDING
            ).update(values, synchronize_session=False) == 1

            if transitioned:
                click = ClickTrackingService._load(db, click_id)
                bump_counters(
                    db, click.referral_id,
                    total_clicks=1,
                    pending_earnings=click.reward_amount
                )
                db.commit()
            else:
                db.rollback()
        except Exception:
            db.rollback()
            raise

        click = ClickTrackingService._load(db, click_id)
        if not click:
            raise NotFoundError("ReferralClick", click_id)

        if transitioned:
            logger.info(f"Click {click.id} qualified for {click.reward_amount}")
            notifier.commission_qualified(
                click.referral.owner_id, "click", click.reward_amount, click.id
            )
            return click

        if click.status == ClickStatus.QUALIFIED:
            logger.info(f"Click {click_id} already qualified, ignoring")
            return click

        raise ConflictError("Fraudulent click cannot be qualified", details={"click_id": click_id})

    @staticmethod
    def flag_fraudulent(db: Session, click_id: int) -> ReferralClick:
        """Mark a click FRAUDULENT unless it is already part of settled history"""
        click = ClickTrackingService._load(db, click_id)
        if not click:
            raise NotFoundError("ReferralClick", click_id)

        if click.status == ClickStatus.FRAUDULENT:
            return click

        previous_status = click.status
        if previous_status == ClickStatus.QUALIFIED and SettlementService.is_settled_for_owner(
            db, click.referral.owner_id, click.qualified_at
        ):
            raise ConflictError(
                "Click is counted in a settled statement and cannot be flagged",
                details={"click_id": click_id}
            )

        reward_amount = click.reward_amount
        referral_id = click.referral_id

        try:
            flagged = db.query(ReferralClick).filter(
                ReferralClick.id == click_id,
                ReferralClick.status == previous_status
            ).update({
                ReferralClick.status: ClickStatus.FRAUDULENT,
                ReferralClick.qualified_at: None
            }, synchronize_session=False) == 1

            if not flagged:
                db.rollback()
                raise ConflictError("Click changed concurrently, retry", details={"click_id": click_id})

            if previous_status == ClickStatus.QUALIFIED:
                bump_counters(db, referral_id, total_clicks=-1, pending_earnings=-reward_amount)
            db.commit()
        except ConflictError:
            raise
        except Exception:
            db.rollback()
            raise

        logger.warning(f"Click {click_id} flagged fraudulent (was {previous_status.value})")
        return ClickTrackingService._load(db, click_id)

    @staticmethod
    def _load(db: Session, click_id: int) -> Optional[ReferralClick]:
        return db.query(ReferralClick)\
            .filter(ReferralClick.id == click_id)\
            .populate_existing()\
            .first()
