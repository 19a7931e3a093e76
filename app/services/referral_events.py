"""
Intake points for vendor lifecycle events

Signup, payment, listing and KYC collaborators call these. Reward amounts are
read from the current reward settings at the time of the event. Events for a
vendor who was not referred are ignored.
"""

from typing import Optional
import logging

from sqlalchemy.orm import Session

from app.models.referral import ReferralUse
from app.services.referral_ledger_service import ReferralLedgerService
from app.services.reward_settings_service import RewardSettingsService

logger = logging.getLogger(__name__)


def on_vendor_signup_with_code(db: Session, vendor_id: int, code: str) -> ReferralUse:
    """Vendor signed up with a referral code"""
    return ReferralLedgerService.attach_referral(db, vendor_id, code)


def on_vendor_payment_success(db: Session, vendor_id: int) -> Optional[ReferralUse]:
    """Vendor completed KYC payment; qualifies the signup reward"""
    referral_use = ReferralLedgerService.get_by_vendor(db, vendor_id)
    if not referral_use:
        logger.debug(f"Payment from vendor {vendor_id} without referral, nothing to credit")
        return None

    amount = RewardSettingsService.get_settings(db)["signup_reward_amount"]
    return ReferralLedgerService.qualify_signup(db, referral_use.id, amount)


def on_vendor_first_listing(db: Session, vendor_id: int, listing_id) -> Optional[ReferralUse]:
    """Vendor published a listing; only the first one earns a reward"""
    referral_use = ReferralLedgerService.get_by_vendor(db, vendor_id)
    if not referral_use:
        logger.debug(f"Listing from vendor {vendor_id} without referral, nothing to credit")
        return None

    amount = RewardSettingsService.get_settings(db)["listing_reward_amount"]
    return ReferralLedgerService.qualify_first_listing(db, referral_use.id, listing_id, amount)


def on_vendor_kyc_rejected(db: Session, vendor_id: int) -> Optional[ReferralUse]:
    """KYC rejected; a still-pending referral is cancelled"""
    return ReferralLedgerService.cancel_referral(db, vendor_id)
