"""Vendor referral ledger: signup -> KYC/payment -> first listing"""
from typing import Dict, Any, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.referral import ReferralCode, ReferralUse, RewardStatus, ReferralUseStatus
from app.models.user import User
from app.services.counter_cache import bump_counters
from app.services.notification_service import NotificationService, notification_service
from app.services.referral_service import ReferralService
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError
from app.utils.periods import utcnow
from app.utils.validation import validate_required_id, validate_reward_amount

logger = logging.getLogger(__name__)


class ReferralLedgerService:
    """Tracks one ReferralUse per referred vendor and its reward milestones.

    Every milestone is a guarded transition: the UPDATE only matches rows still
    in the expected state, so retried webhooks cannot credit a reward twice.
    """

    @staticmethod
    def attach_referral(db: Session, vendor_id: int, code: str) -> ReferralUse:
        """Create the vendor's referral use at signup time"""
        validate_required_id(vendor_id, "vendor_id")
        referral = ReferralService.resolve_active_code(db, code)

        if referral.owner_id == vendor_id:
            raise ValidationError("Partners cannot refer themselves", details={"vendor_id": vendor_id})
        if not db.query(User.id).filter(User.id == vendor_id).first():
            raise NotFoundError("User", vendor_id)

        now = utcnow()
        referral_use = ReferralUse(
            referral_id=referral.id,
            vendor_id=vendor_id,
            signup_reward_status=RewardStatus.PENDING,
            listing_reward_status=RewardStatus.PENDING,
            status=ReferralUseStatus.PENDING,
            created_at=now,
            updated_at=now
        )

        try:
            db.add(referral_use)
            db.flush()
            bump_counters(db, referral.id, total_referrals=1)
            db.commit()
        except IntegrityError:
            db.rollback()
            if ReferralLedgerService.get_by_vendor(db, vendor_id):
                raise ConflictError("Vendor already has a referral", details={"vendor_id": vendor_id})
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(referral_use)
        logger.info(f"Vendor {vendor_id} attached to referral code {referral.code}")
        return referral_use

    @staticmethod
    def qualify_signup(
        db: Session,
        referral_use_id: int,
        amount: float,
        notifier: Optional[NotificationService] = None
    ) -> ReferralUse:
        """Credit the signup reward once"""
        amount = validate_reward_amount(amount)
        now = utcnow()

        return ReferralLedgerService._qualify_milestone(
            db,
            referral_use_id,
            kind="signup",
            guards=[ReferralUse.signup_reward_status == RewardStatus.PENDING],
            values={
                ReferralUse.signup_reward_status: RewardStatus.QUALIFIED,
                ReferralUse.signup_reward_amount: amount,
                ReferralUse.commission: ReferralUse.commission + amount,
                ReferralUse.updated_at: now
            },
            amount=amount,
            counter_deltas={"pending_earnings": amount},
            notifier=notifier or notification_service
        )

    @staticmethod
    def qualify_first_listing(
        db: Session,
        referral_use_id: int,
        listing_id,
        amount: float,
        notifier: Optional[NotificationService] = None
    ) -> ReferralUse:
        """Credit the first-listing reward once; later listings are ignored"""
        if listing_id is None or str(listing_id).strip() == "":
            raise ValidationError("listing_id is required")
        amount = validate_reward_amount(amount)
        now = utcnow()

        return ReferralLedgerService._qualify_milestone(
            db,
            referral_use_id,
            kind="listing",
            guards=[
                ReferralUse.listing_reward_status == RewardStatus.PENDING,
                ReferralUse.first_listing_id.is_(None)
            ],
            values={
                ReferralUse.listing_reward_status: RewardStatus.QUALIFIED,
                ReferralUse.listing_reward_amount: amount,
                ReferralUse.first_listing_id: str(listing_id),
                ReferralUse.commission: ReferralUse.commission + amount,
                ReferralUse.updated_at: now
            },
            amount=amount,
            counter_deltas={"successful_referrals": 1, "pending_earnings": amount},
            notifier=notifier or notification_service
        )

    @staticmethod
    def mark_fraud(db: Session, referral_use_id: int, is_fraud: bool) -> ReferralUse:
        """Flip the fraud flag only.

        Commission and updated_at are untouched, so the row stays in the
        settlement window it was earned in; exclusion happens when statements
        are generated.
        """
        try:
            updated = db.query(ReferralUse).filter(
                ReferralUse.id == referral_use_id
            ).update({
                ReferralUse.is_fraud: bool(is_fraud),
                ReferralUse.updated_at: ReferralUse.updated_at
            }, synchronize_session=False)

            if not updated:
                db.rollback()
                raise NotFoundError("ReferralUse", referral_use_id)
            db.commit()
        except NotFoundError:
            raise
        except Exception:
            db.rollback()
            raise

        logger.warning(f"Referral use {referral_use_id} marked {'fraud' if is_fraud else 'legitimate'}")
        return ReferralLedgerService._load(db, referral_use_id)

    @staticmethod
    def cancel_referral(db: Session, vendor_id: int) -> Optional[ReferralUse]:
        """Cancel a still-pending referral use, e.g. when the vendor's KYC is rejected"""
        try:
            cancelled = db.query(ReferralUse).filter(
                ReferralUse.vendor_id == vendor_id,
                ReferralUse.status == ReferralUseStatus.PENDING
            ).update({ReferralUse.status: ReferralUseStatus.CANCELLED}, synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise

        if cancelled:
            logger.info(f"Referral use for vendor {vendor_id} cancelled")
        return ReferralLedgerService.get_by_vendor(db, vendor_id)

    @staticmethod
    def get_by_vendor(db: Session, vendor_id: int) -> Optional[ReferralUse]:
        return db.query(ReferralUse)\
            .filter(ReferralUse.vendor_id == vendor_id)\
            .populate_existing()\
            .first()

    @staticmethod
    def list_referral_uses(
        db: Session,
        is_fraud: Optional[bool] = None,
        status: Optional[ReferralUseStatus] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Dict[str, Any]:
        """Admin review list, newest first"""
        query = db.query(ReferralUse).join(ReferralCode, ReferralUse.referral_id == ReferralCode.id)

        if is_fraud is not None:
            query = query.filter(ReferralUse.is_fraud.is_(is_fraud))
        if status:
            query = query.filter(ReferralUse.status == status)
        if search:
            query = query.filter(ReferralCode.code.ilike(f"%{search.strip()}%"))

        total = query.count()
        referral_uses = query.order_by(ReferralUse.created_at.desc(), ReferralUse.id.desc())\
            .offset(offset)\
            .limit(min(limit, 100))\
            .all()

        return {"total": total, "referral_uses": referral_uses}

    @staticmethod
    def _qualify_milestone(
        db: Session,
        referral_use_id: int,
        kind: str,
        guards,
        values,
        amount: float,
        counter_deltas: Dict[str, float],
        notifier: NotificationService
    ) -> ReferralUse:
        try:
            transitioned = db.query(ReferralUse).filter(
                ReferralUse.id == referral_use_id,
                ReferralUse.status != ReferralUseStatus.CANCELLED,
                *guards
            ).update(values, synchronize_session=False) == 1

            if transitioned:
                referral_use = ReferralLedgerService._load(db, referral_use_id)
                ReferralLedgerService._complete_if_fully_qualified(db, referral_use_id)
                bump_counters(db, referral_use.referral_id, **counter_deltas)
                db.commit()
            else:
                db.rollback()
        except Exception:
            db.rollback()
            raise

        referral_use = ReferralLedgerService._load(db, referral_use_id)
        if not referral_use:
            raise NotFoundError("ReferralUse", referral_use_id)

        if transitioned:
            logger.info(f"Referral use {referral_use_id} {kind} reward qualified: {amount}")
            notifier.commission_qualified(referral_use.referral.owner_id, kind, amount, referral_use.id)
            return referral_use

        milestone_status = (
            referral_use.signup_reward_status if kind == "signup" else referral_use.listing_reward_status
        )
        if milestone_status == RewardStatus.QUALIFIED:
            logger.info(f"Referral use {referral_use_id} {kind} reward already qualified, ignoring")
            return referral_use

        raise ConflictError(
            f"Cannot qualify {kind} reward on a cancelled referral",
            details={"referral_use_id": referral_use_id}
        )

    @staticmethod
    def _complete_if_fully_qualified(db: Session, referral_use_id: int) -> None:
        db.query(ReferralUse).filter(
            ReferralUse.id == referral_use_id,
            ReferralUse.signup_reward_status == RewardStatus.QUALIFIED,
            ReferralUse.listing_reward_status == RewardStatus.QUALIFIED,
            ReferralUse.status == ReferralUseStatus.PENDING
        ).update({ReferralUse.status: ReferralUseStatus.COMPLETED}, synchronize_session=False)

    @staticmethod
    def _load(db: Session, referral_use_id: int) -> Optional[ReferralUse]:
        return db.query(ReferralUse)\
            .filter(ReferralUse.id == referral_use_id)\
            .populate_existing()\
            .first()
