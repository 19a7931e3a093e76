"""Admin-editable reward amounts"""
from sqlalchemy import Column, Integer, Float, DateTime

from database import Base
from app.utils.periods import utcnow


class RewardSettings(Base):
    """Single-row table holding the current reward amounts"""
    __tablename__ = "reward_settings"

    id = Column(Integer, primary_key=True, index=True)
    signup_reward_amount = Column(Float, nullable=False)
    listing_reward_amount = Column(Float, nullable=False)
    click_reward_amount = Column(Float, nullable=False)
    minimum_payout_amount = Column(Float, nullable=False)

    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
