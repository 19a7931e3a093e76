"""
Utility functions for the referral settlement backend
"""

from .exceptions import ReferralEngineError, ValidationError, ConflictError, NotFoundError
from .periods import PeriodWindow, month_window, previous_month, current_month_window, utcnow
from .validation import normalize_referral_code, validate_ip_address, validate_reward_amount, mask_name

__all__ = [
    "ReferralEngineError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "PeriodWindow",
    "month_window",
    "previous_month",
    "current_month_window",
    "utcnow",
    "normalize_referral_code",
    "validate_ip_address",
    "validate_reward_amount",
    "mask_name"
]
