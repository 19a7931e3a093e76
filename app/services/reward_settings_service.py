"""Reward amount settings"""
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from config import settings
from app.models.reward_settings import RewardSettings
from app.utils.validation import validate_reward_amount

logger = logging.getLogger(__name__)


class RewardSettingsService:
    """Read and update the amounts credited per signup, listing and click"""

    FIELDS = (
        "signup_reward_amount",
        "listing_reward_amount",
        "click_reward_amount",
        "minimum_payout_amount",
    )

    @staticmethod
    def defaults() -> Dict[str, float]:
        return {
            "signup_reward_amount": settings.SIGNUP_REWARD_AMOUNT,
            "listing_reward_amount": settings.LISTING_REWARD_AMOUNT,
            "click_reward_amount": settings.CLICK_REWARD_AMOUNT,
            "minimum_payout_amount": settings.MINIMUM_PAYOUT_AMOUNT,
        }

    @staticmethod
    def get_settings(db: Session) -> Dict[str, float]:
        """Current amounts, falling back to configured defaults"""
        row = db.query(RewardSettings).order_by(RewardSettings.id).first()
        if not row:
            return RewardSettingsService.defaults()
        return {field: getattr(row, field) for field in RewardSettingsService.FIELDS}

    @staticmethod
    def update_settings(
        db: Session,
        signup_reward_amount: Optional[float] = None,
        listing_reward_amount: Optional[float] = None,
        click_reward_amount: Optional[float] = None,
        minimum_payout_amount: Optional[float] = None
    ) -> Dict[str, float]:
        """Update any subset of the amounts; omitted fields keep their value"""
        changes = {
            "signup_reward_amount": signup_reward_amount,
            "listing_reward_amount": listing_reward_amount,
            "click_reward_amount": click_reward_amount,
            "minimum_payout_amount": minimum_payout_amount,
        }
        validated = {
            field: validate_reward_amount(value, field, allow_zero=True)
            for field, value in changes.items()
            if value is not None
        }

        try:
            row = db.query(RewardSettings).order_by(RewardSettings.id).first()
            if not row:
                row = RewardSettings(**RewardSettingsService.defaults())
                db.add(row)

            for field, value in validated.items():
                setattr(row, field, value)

            db.commit()
            db.refresh(row)
        except Exception:
            db.rollback()
            raise

        logger.info(f"Reward settings updated: {validated}")
        return {field: getattr(row, field) for field in RewardSettingsService.FIELDS}
