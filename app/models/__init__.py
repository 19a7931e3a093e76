"""
Database models for the referral settlement engine
"""

from .user import User, UserRole
from .referral import (
    ReferralCode, ReferralClick, ReferralUse,
    ClickStatus, RewardStatus, ReferralUseStatus
)
from .payout import PayoutPeriod, MonthlyStatement, PayoutPeriodStatus, StatementStatus
from .reward_settings import RewardSettings

__all__ = [
    "User",
    "UserRole",
    "ReferralCode",
    "ReferralClick",
    "ReferralUse",
    "ClickStatus",
    "RewardStatus",
    "ReferralUseStatus",
    "PayoutPeriod",
    "MonthlyStatement",
    "PayoutPeriodStatus",
    "StatementStatus",
    "RewardSettings"
]
