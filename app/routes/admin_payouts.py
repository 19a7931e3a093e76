"""
Admin payout API routes
Period locking, statement approval and payment
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from app.models.payout import PayoutPeriodStatus, StatementStatus
from app.schemas.payout import (
    LockPeriodRequest, MarkPaidRequest, MonthlyStatementResponse,
    PayoutPeriodResponse, SettlementReportResponse
)
from app.services.auth_service import AuthService
from app.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/admin/payouts", tags=["admin-payouts"])


@router.get("/periods")
async def list_payout_periods(
    status: Optional[PayoutPeriodStatus] = None,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    periods = SettlementService.list_periods(db, status=status)
    return {
        "success": True,
        "data": [PayoutPeriodResponse.model_validate(period).model_dump() for period in periods]
    }


@router.post("/lock-month")
async def lock_month(
    request: Optional[LockPeriodRequest] = None,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """Lock a month (default: the previous one) and generate statements"""
    request = request or LockPeriodRequest()
    report = SettlementService.lock_period(db, year=request.year, month=request.month)
    return {
        "success": True,
        "message": "Period locked and statements generated",
        "data": SettlementReportResponse.model_validate(report).model_dump()
    }


@router.post("/periods/{period_id}/regenerate")
async def regenerate_statements(
    period_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """Recompute statements of a locked period"""
    report = SettlementService.regenerate_statements(db, period_id)
    return {"success": True, "data": SettlementReportResponse.model_validate(report).model_dump()}


@router.post("/periods/{period_id}/complete")
async def complete_period(
    period_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    period = SettlementService.complete_period(db, period_id)
    return {"success": True, "data": PayoutPeriodResponse.model_validate(period).model_dump()}


@router.get("/periods/{period_id}/summary")
async def get_period_summary(
    period_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    return {"success": True, "data": SettlementService.get_period_summary(db, period_id)}


@router.get("/statements/{period_id}")
async def list_statements(
    period_id: int,
    status: Optional[StatementStatus] = None,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    """Statements of a period, largest earners first"""
    statements = SettlementService.list_statements(db, period_id, status=status)
    return {
        "success": True,
        "data": [MonthlyStatementResponse.model_validate(statement).model_dump() for statement in statements]
    }


@router.patch("/statements/{statement_id}/approve")
async def approve_statement(
    statement_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    statement = SettlementService.approve_statement(db, statement_id)
    return {"success": True, "data": MonthlyStatementResponse.model_validate(statement).model_dump()}


@router.patch("/statements/{statement_id}/mark-paid")
async def mark_statement_paid(
    statement_id: int,
    request: MarkPaidRequest,
    db: Session = Depends(get_db),
    current_user=Depends(AuthService.get_current_admin_user)
):
    statement = SettlementService.mark_paid(db, statement_id, request.payment_reference)
    return {"success": True, "data": MonthlyStatementResponse.model_validate(statement).model_dump()}
