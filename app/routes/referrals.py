"""Partner-facing referral API routes"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from app.schemas.payout import MonthlyStatementResponse
from app.schemas.referral import (
    ClickCreate, ClickResponse, LeaderboardEntry, PartnerDashboard,
    ReferralCodeResponse, ReferralCodeValidation
)
from app.services.auth_service import AuthService
from app.services.click_tracking_service import ClickTrackingService
from app.services.partner_analytics_service import PartnerAnalyticsService
from app.services.referral_service import ReferralService
from app.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/referrals", tags=["referrals"])


@router.get("/validate/{code}")
async def validate_referral_code(code: str, db: Session = Depends(get_db)):
    """Check a code at vendor signup; public"""
    result = ReferralService.validate_code(db, code)
    return {"success": True, "data": ReferralCodeValidation(**result).model_dump(exclude_none=True)}


@router.get("/my-code")
async def get_my_referral_code(
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_user)
):
    """Current user's referral code, minted on first request"""
    referral = ReferralService.create_or_get_code(db, current_user.id)
    data = ReferralCodeResponse.model_validate(referral)
    data.referral_url = ReferralService.build_referral_url(referral.code)
    return {"success": True, "data": data.model_dump()}


@router.get("/my-stats")
async def get_my_stats(
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_user)
):
    """Live dashboard figures for the current month"""
    stats = PartnerAnalyticsService.get_partner_dashboard(db, current_user.id)
    return {"success": True, "data": PartnerDashboard(**stats).model_dump()}


@router.get("/my-statements")
async def get_my_statements(
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_user)
):
    statements = SettlementService.get_user_statements(db, current_user.id)
    return {
        "success": True,
        "data": [
            MonthlyStatementResponse.model_validate(statement).model_dump(exclude={"user"})
            for statement in statements
        ]
    }


@router.get("/leaderboard")
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db)
):
    """Top partners with masked names"""
    leaderboard = ReferralService.get_leaderboard(db, limit=limit, mask_names=True)
    return {
        "success": True,
        "data": [LeaderboardEntry(**entry).model_dump(exclude_none=True) for entry in leaderboard]
    }


@router.post("/clicks")
async def track_click(
    request: ClickCreate,
    req: Request,
    db: Session = Depends(get_db)
):
    """Record a referral link visit"""
    forwarded_for = req.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = req.client.host if req.client else None

    click = ClickTrackingService.record_click(
        db,
        request.code,
        ip_address,
        user_agent=request.user_agent or req.headers.get("user-agent")
    )
    return {"success": True, "data": {"click_id": click.id}}


@router.post("/clicks/{click_id}/qualify")
async def qualify_click(click_id: int, db: Session = Depends(get_db)):
    """Called once the visitor has engaged long enough to count.

    The click keeps the reward it was priced at when recorded.
    """
    click = ClickTrackingService.qualify_click(db, click_id)
    return {"success": True, "data": ClickResponse.model_validate(click).model_dump()}
