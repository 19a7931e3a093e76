"""
Referral code, click and referral use Pydantic schemas
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from app.models.referral import ClickStatus, RewardStatus, ReferralUseStatus


class ReferralCodeResponse(BaseModel):
    """Partner's own referral code with cached counters"""
    id: int
    code: str
    is_active: bool
    total_referrals: int
    successful_referrals: int
    total_clicks: int
    total_earnings: float
    pending_earnings: float
    created_at: datetime
    referral_url: Optional[str] = None

    class Config:
        from_attributes = True


class ReferralCodeValidation(BaseModel):
    """Public result of a code check; never names the owner"""
    valid: bool
    code: Optional[str] = None
    original_fee: Optional[float] = None
    discount_amount: Optional[float] = None
    discounted_fee: Optional[float] = None


class ClickCreate(BaseModel):
    """Inbound referral link click"""
    code: str = Field(..., min_length=3, max_length=32)
    user_agent: Optional[str] = Field(None, max_length=1000)


class ClickQualify(BaseModel):
    """Admin qualification; omitted amount keeps the recorded reward"""
    reward_amount: Optional[float] = Field(None, ge=0)


class ClickResponse(BaseModel):
    id: int
    referral_id: int
    status: ClickStatus
    reward_amount: float
    clicked_at: datetime
    qualified_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReferralUseResponse(BaseModel):
    """Referred vendor and its reward milestones"""
    id: int
    referral_id: int
    vendor_id: int
    signup_reward_status: RewardStatus
    signup_reward_amount: float
    listing_reward_status: RewardStatus
    listing_reward_amount: float
    first_listing_id: Optional[str]
    is_fraud: bool
    status: ReferralUseStatus
    commission: float
    commission_paid: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReferralUseList(BaseModel):
    total: int
    referral_uses: List[ReferralUseResponse]


class FraudFlagUpdate(BaseModel):
    is_fraud: bool


class LeaderboardEntry(BaseModel):
    rank: int
    name: str
    successful_referrals: int
    total_clicks: int
    email: Optional[str] = None
    referral_code: Optional[str] = None
    total_earnings: Optional[float] = None


class PartnerOverview(BaseModel):
    """One row of the admin partners screen"""
    user_id: int
    name: str
    email: str
    phone: Optional[str]
    joined_at: datetime
    referral_code_id: int
    referral_code: str
    is_active: bool
    lifetime_referrals: int
    lifetime_activated: int
    lifetime_earnings: float
    pending_earnings: float
    this_month_signups: int
    this_month_activated: int
    this_month_clicks: int
    this_month_earnings: float
    conversion_rate: float
    fraud_count: int
    is_suspicious: bool


class PartnerDashboard(BaseModel):
    referral_code: str
    referral_url: str
    is_active: bool
    reward_rates: Dict[str, float]
    minimum_payout: float
    pending_earnings: float
    total_paid: float
    total_clicks: int
    total_referrals: int
    activated_this_month: int
    recent_activity: List[Dict[str, Any]]


class RewardSettingsResponse(BaseModel):
    signup_reward_amount: float
    listing_reward_amount: float
    click_reward_amount: float
    minimum_payout_amount: float


class RewardSettingsUpdate(BaseModel):
    """Any subset of amounts; omitted fields are unchanged"""
    signup_reward_amount: Optional[float] = Field(None, ge=0)
    listing_reward_amount: Optional[float] = Field(None, ge=0)
    click_reward_amount: Optional[float] = Field(None, ge=0)
    minimum_payout_amount: Optional[float] = Field(None, ge=0)
