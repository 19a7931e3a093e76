"""
Payout period and monthly statement Pydantic schemas
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field
from app.models.payout import PayoutPeriodStatus, StatementStatus


class LockPeriodRequest(BaseModel):
    """Both omitted locks the previous month"""
    year: Optional[int] = Field(None, ge=2000, le=9998)
    month: Optional[int] = None


class PayoutPeriodResponse(BaseModel):
    id: int
    month: int
    year: int
    start_date: datetime
    end_date: datetime
    status: PayoutPeriodStatus
    locked_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class StatementUser(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str]

    class Config:
        from_attributes = True


class MonthlyStatementResponse(BaseModel):
    """Per-partner statement for one payout period"""
    id: int
    payout_period_id: int
    user_id: int
    vendors_referred_count: int
    vendors_activated_count: int
    clicks_count: int
    total_earned: float
    status: StatementStatus
    approved_at: Optional[datetime]
    paid_at: Optional[datetime]
    payment_reference: Optional[str]
    created_at: datetime
    updated_at: datetime
    user: Optional[StatementUser] = None

    class Config:
        from_attributes = True


class MarkPaidRequest(BaseModel):
    payment_reference: str = Field(..., max_length=100)


class SettlementFailureResponse(BaseModel):
    scope: str
    identifier: int
    error: str

    class Config:
        from_attributes = True


class SettlementReportResponse(BaseModel):
    """Outcome of locking or regenerating a period"""
    period: PayoutPeriodResponse
    codes_processed: int
    statements_created: int
    statements_updated: int
    statements_unchanged: int
    skipped_paid: int
    failures: List[SettlementFailureResponse]

    class Config:
        from_attributes = True
