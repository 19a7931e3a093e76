"""
Admin partner management API routes
Partner analytics, fraud review, code toggling and reward settings
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from app.models.referral import ReferralUseStatus
from app.schemas.referral import (
    ClickQualify, ClickResponse, FraudFlagUpdate, LeaderboardEntry, PartnerOverview,
    ReferralCodeResponse, ReferralUseList, ReferralUseResponse,
    RewardSettingsResponse, RewardSettingsUpdate
)
from app.services.auth_service import AuthService
from app.services.click_tracking_service import ClickTrackingService
from app.services.partner_analytics_service import PartnerAnalyticsService
from app.services.referral_ledger_service import ReferralLedgerService
from app.services.referral_service import ReferralService
from app.services.reward_settings_service import RewardSettingsService

router = APIRouter(prefix="/api/partners", tags=["partners"])


@router.get("/overview")
async def get_partners_overview(
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """All partners with current month stats and fraud indicators"""
    overview = PartnerAnalyticsService.get_partners_overview(db)
    return {"success": True, "data": [PartnerOverview(**row).model_dump() for row in overview]}


@router.get("/leaderboard")
async def get_admin_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    leaderboard = ReferralService.get_leaderboard(db, limit=limit, mask_names=False)
    return {"success": True, "data": [LeaderboardEntry(**entry).model_dump() for entry in leaderboard]}


@router.get("/referral-uses")
async def list_referral_uses(
    is_fraud: Optional[bool] = None,
    status: Optional[ReferralUseStatus] = None,
    search: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """Referred vendors for fraud review"""
    result = ReferralLedgerService.list_referral_uses(
        db, is_fraud=is_fraud, status=status, search=search, limit=limit, offset=offset
    )
    data = ReferralUseList(
        total=result["total"],
        referral_uses=[ReferralUseResponse.model_validate(use) for use in result["referral_uses"]]
    )
    return {"success": True, "data": data.model_dump()}


@router.patch("/referral-uses/{referral_use_id}/fraud")
async def flag_referral_use(
    referral_use_id: int,
    request: FraudFlagUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    referral_use = ReferralLedgerService.mark_fraud(db, referral_use_id, request.is_fraud)
    return {"success": True, "data": ReferralUseResponse.model_validate(referral_use).model_dump()}


@router.post("/clicks/{click_id}/qualify")
async def qualify_click_with_amount(
    click_id: int,
    request: ClickQualify,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """Qualify a pending click, optionally repricing its reward"""
    click = ClickTrackingService.qualify_click(db, click_id, reward_amount=request.reward_amount)
    return {"success": True, "data": ClickResponse.model_validate(click).model_dump()}


@router.post("/clicks/{click_id}/flag-fraud")
async def flag_click(
    click_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    click = ClickTrackingService.flag_fraudulent(db, click_id)
    return {"success": True, "data": ClickResponse.model_validate(click).model_dump()}


@router.patch("/codes/{code_id}/toggle")
async def toggle_referral_code(
    code_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """Activate or deactivate a partner's code"""
    referral = ReferralService.toggle_active(db, code_id)
    return {"success": True, "data": ReferralCodeResponse.model_validate(referral).model_dump()}


@router.get("/settings")
async def get_reward_settings(
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    settings = RewardSettingsService.get_settings(db)
    return {"success": True, "data": RewardSettingsResponse(**settings).model_dump()}


@router.put("/settings")
async def update_reward_settings(
    request: RewardSettingsUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    settings = RewardSettingsService.update_settings(db, **request.model_dump(exclude_none=True))
    return {"success": True, "data": RewardSettingsResponse(**settings).model_dump()}


@router.get("/{partner_id}/details")
async def get_partner_details(
    partner_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    return {"success": True, "data": PartnerAnalyticsService.get_partner_details(db, partner_id)}
