"""
Payout period and monthly statement models
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Float, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from database import Base
from app.utils.periods import utcnow


class PayoutPeriodStatus(str, enum.Enum):
    """Payout period lifecycle: OPEN -> LOCKED -> COMPLETED"""
    OPEN = "open"
    LOCKED = "locked"
    COMPLETED = "completed"


class StatementStatus(str, enum.Enum):
    """Statement lifecycle: DRAFT -> APPROVED -> PAID"""
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"


class PayoutPeriod(Base):
    """A calendar month of referral activity"""
    __tablename__ = "payout_periods"

    id = Column(Integer, primary_key=True, index=True)
    month = Column(Integer, nullable=False)  # 1-12
    year = Column(Integer, nullable=False)

    # Window boundaries, naive UTC, both inclusive
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    status = Column(Enum(PayoutPeriodStatus), nullable=False, default=PayoutPeriodStatus.OPEN, index=True)
    locked_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    statements = relationship("MonthlyStatement", back_populates="payout_period", order_by="MonthlyStatement.id")

    __table_args__ = (
        UniqueConstraint('month', 'year', name='uq_payout_periods_month_year'),
    )

    def __repr__(self):
        return f"<PayoutPeriod({self.year}-{self.month:02d}, status={self.status})>"


class MonthlyStatement(Base):
    """Per-partner earnings for one payout period"""
    __tablename__ = "monthly_statements"

    id = Column(Integer, primary_key=True, index=True)
    payout_period_id = Column(Integer, ForeignKey('payout_periods.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Aggregates, the only columns statement generation ever rewrites
    vendors_referred_count = Column(Integer, nullable=False, default=0)
    vendors_activated_count = Column(Integer, nullable=False, default=0)
    clicks_count = Column(Integer, nullable=False, default=0)
    total_earned = Column(Float, nullable=False, default=0.0)

    # Approval and payment
    status = Column(Enum(StatementStatus), nullable=False, default=StatementStatus.DRAFT, index=True)
    approved_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    payment_reference = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    payout_period = relationship("PayoutPeriod", back_populates="statements")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('payout_period_id', 'user_id', name='uq_monthly_statements_period_user'),
    )
