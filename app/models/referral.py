"""Referral attribution models: codes, clicks and vendor referral uses"""
import enum

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, Text, Index
)
from sqlalchemy.orm import relationship

from database import Base
from app.utils.periods import utcnow


class ClickStatus(str, enum.Enum):
    """Referral click lifecycle"""
    PENDING = "pending"
    QUALIFIED = "qualified"
    FRAUDULENT = "fraudulent"


class RewardStatus(str, enum.Enum):
    """Per-milestone reward state on a referral use"""
    PENDING = "pending"
    QUALIFIED = "qualified"


class ReferralUseStatus(str, enum.Enum):
    """Overall referral use status"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReferralCode(Base):
    """A partner's shareable referral code

    The counters are a cache bumped by live events. Settlement never reads
    them; it recomputes from clicks and referral uses.
    """
    __tablename__ = "referral_codes"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, unique=True, index=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Cached counters
    total_referrals = Column(Integer, nullable=False, default=0)
    successful_referrals = Column(Integer, nullable=False, default=0)  # Activated vendors
    total_clicks = Column(Integer, nullable=False, default=0)  # Qualified clicks
    total_earnings = Column(Float, nullable=False, default=0.0)  # Paid out
    pending_earnings = Column(Float, nullable=False, default=0.0)  # Qualified, not yet paid

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="referral_code")
    clicks = relationship("ReferralClick", back_populates="referral", order_by="ReferralClick.id")
    referral_uses = relationship("ReferralUse", back_populates="referral", order_by="ReferralUse.id")

    def __repr__(self):
        return f"<ReferralCode(id={self.id}, code='{self.code}')>"


class ReferralClick(Base):
    """Inbound click on a referral link"""
    __tablename__ = "referral_clicks"

    id = Column(Integer, primary_key=True, index=True)
    referral_id = Column(Integer, ForeignKey('referral_codes.id'), nullable=False, index=True)

    ip_address = Column(String(45), nullable=False)  # IPv6 support
    user_agent = Column(Text, nullable=True)

    status = Column(Enum(ClickStatus), nullable=False, default=ClickStatus.PENDING, index=True)
    reward_amount = Column(Float, nullable=False, default=0.0)

    clicked_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    qualified_at = Column(DateTime, nullable=True, index=True)  # Set iff status is QUALIFIED

    # Relationships
    referral = relationship("ReferralCode", back_populates="clicks")

    __table_args__ = (
        Index('ix_referral_clicks_referral_status', 'referral_id', 'status'),
    )


class ReferralUse(Base):
    """One referred vendor, tracked from signup to first listing"""
    __tablename__ = "referral_uses"

    id = Column(Integer, primary_key=True, index=True)
    referral_id = Column(Integer, ForeignKey('referral_codes.id'), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey('users.id'), nullable=False, unique=True, index=True)

    # Milestone rewards
    signup_reward_status = Column(Enum(RewardStatus), nullable=False, default=RewardStatus.PENDING)
    signup_reward_amount = Column(Float, nullable=False, default=0.0)
    listing_reward_status = Column(Enum(RewardStatus), nullable=False, default=RewardStatus.PENDING)
    listing_reward_amount = Column(Float, nullable=False, default=0.0)
    first_listing_id = Column(String(64), nullable=True)

    # Fraud review
    is_fraud = Column(Boolean, nullable=False, default=False, index=True)

    # Commission
    status = Column(Enum(ReferralUseStatus), nullable=False, default=ReferralUseStatus.PENDING, index=True)
    commission = Column(Float, nullable=False, default=0.0)  # Sum of qualified rewards
    commission_paid = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    referral = relationship("ReferralCode", back_populates="referral_uses")
    vendor = relationship("User", foreign_keys=[vendor_id])
