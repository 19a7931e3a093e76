"""
Service layer for the referral settlement backend
"""

from .auth_service import AuthService
from .referral_service import ReferralService
from .referral_ledger_service import ReferralLedgerService
from .click_tracking_service import ClickTrackingService
from .settlement_service import SettlementService
from .partner_analytics_service import PartnerAnalyticsService
from .reward_settings_service import RewardSettingsService

__all__ = [
    "AuthService",
    "ReferralService",
    "ReferralLedgerService",
    "ClickTrackingService",
    "SettlementService",
    "PartnerAnalyticsService",
    "RewardSettingsService"
]
