"""
Settlement engine: payout period locking, statement generation and payout state
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from app.models.payout import PayoutPeriod, PayoutPeriodStatus, MonthlyStatement, StatementStatus
from app.models.referral import ReferralCode, ReferralClick, ReferralUse, ClickStatus, RewardStatus
from app.services.commission_aggregator import PartnerTotals, aggregate_referral_activity
from app.services.counter_cache import bump_owner_counters
from app.services.notification_service import NotificationService, notification_service
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError
from app.utils.periods import PeriodWindow, local_year_month, month_window, previous_month, utcnow

logger = logging.getLogger(__name__)

# Columns the aggregator needs; loaded as plain rows so worker threads never
# touch the session.
USE_COLUMNS = (
    ReferralUse.id,
    ReferralUse.is_fraud,
    ReferralUse.updated_at,
    ReferralUse.signup_reward_status,
    ReferralUse.signup_reward_amount,
    ReferralUse.listing_reward_status,
    ReferralUse.listing_reward_amount,
)
CLICK_COLUMNS = (
    ReferralClick.id,
    ReferralClick.status,
    ReferralClick.qualified_at,
    ReferralClick.reward_amount,
)


@dataclass
class SettlementFailure:
    """One referral code or statement that could not be processed"""
    scope: str
    identifier: int
    error: str


@dataclass
class SettlementReport:
    """Outcome of one statement generation run"""
    period: PayoutPeriod
    codes_processed: int = 0
    statements_created: int = 0
    statements_updated: int = 0
    statements_unchanged: int = 0
    skipped_paid: int = 0
    failures: List[SettlementFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def add_failure(self, scope: str, identifier: int, error: Exception) -> None:
        logger.warning(f"Settlement of period {self.period.id}: {scope} {identifier} failed: {error}")
        self.failures.append(SettlementFailure(scope=scope, identifier=identifier, error=str(error)))


class SettlementService:
    """Freezes a month of referral activity into monthly statements"""

    @staticmethod
    def lock_period(db: Session, year: Optional[int] = None, month: Optional[int] = None) -> SettlementReport:
        """Lock a calendar month and generate its statements.

        Exactly one concurrent caller can lock a given month: the period row is
        inserted against the unique (month, year) constraint, and an existing
        OPEN row is claimed with a conditional UPDATE.
        """
        year, month = SettlementService._resolve_year_month(year, month)

        existing = SettlementService._find_period(db, year, month)
        if existing and existing.status != PayoutPeriodStatus.OPEN:
            raise ConflictError(
                "Period already locked or completed",
                details={"year": year, "month": month, "status": existing.status.value}
            )

        window = month_window(year, month)
        now = utcnow()

        try:
            period = PayoutPeriod(
                month=month,
                year=year,
                start_date=window.start,
                end_date=window.end,
                status=PayoutPeriodStatus.LOCKED,
                locked_at=now
            )
            db.add(period)
            db.commit()
        except IntegrityError:
            db.rollback()
            period = SettlementService._claim_open_period(db, year, month, window, now)

        db.refresh(period)
        logger.info(f"Locked payout period {year}-{month:02d} (id={period.id})")

        return SettlementService.generate_statements(db, period)

    @staticmethod
    def generate_statements(db: Session, period: PayoutPeriod) -> SettlementReport:
        """Recompute every partner's statement for the period from raw events.

        Safe to re-run: totals are rebuilt from scratch, only the four
        aggregate columns are written, PAID statements are left alone and
        nothing is ever deleted.
        """
        report = SettlementReport(period=period)
        window = PeriodWindow(start=period.start_date, end=period.end_date)

        batches = SettlementService._load_activity(db, window, report)
        report.codes_processed = len(batches)

        totals_by_owner = SettlementService._reduce(batches, window, report)

        for owner_id in sorted(totals_by_owner):
            totals = totals_by_owner[owner_id]
            if totals.is_empty:
                continue

            try:
                outcome = SettlementService._upsert_statement(db, period.id, owner_id, totals)
            except SQLAlchemyError as e:
                db.rollback()
                report.add_failure("statement", owner_id, e)
                continue

            if outcome == "created":
                report.statements_created += 1
            elif outcome == "updated":
                report.statements_updated += 1
            elif outcome == "unchanged":
                report.statements_unchanged += 1
            else:
                report.skipped_paid += 1

        logger.info(
            f"Statements for period {period.id}: {report.codes_processed} codes, "
            f"{report.statements_created} created, {report.statements_updated} updated, "
            f"{report.skipped_paid} paid skipped, {len(report.failures)} failures"
        )
        return report

    @staticmethod
    def regenerate_statements(db: Session, period_id: int) -> SettlementReport:
        """Re-run generation for a LOCKED period"""
        period = SettlementService.get_period(db, period_id)
        if period.status != PayoutPeriodStatus.LOCKED:
            raise ConflictError(
                "Only locked periods can be regenerated",
                details={"period_id": period_id, "status": period.status.value}
            )
        return SettlementService.generate_statements(db, period)

    @staticmethod
    def approve_statement(db: Session, statement_id: int) -> MonthlyStatement:
        """DRAFT -> APPROVED"""
        try:
            approved = db.query(MonthlyStatement).filter(
                MonthlyStatement.id == statement_id,
                MonthlyStatement.status == StatementStatus.DRAFT
            ).update({
                MonthlyStatement.status: StatementStatus.APPROVED,
                MonthlyStatement.approved_at: utcnow()
            }, synchronize_session=False) == 1
            db.commit()
        except Exception:
            db.rollback()
            raise

        statement = SettlementService._load_statement(db, statement_id)
        if not approved:
            raise ConflictError(
                "Only draft statements can be approved",
                details={"statement_id": statement_id, "status": statement.status.value}
            )

        logger.info(f"Statement {statement_id} approved")
        return statement

    @staticmethod
    def mark_paid(
        db: Session,
        statement_id: int,
        payment_reference: Optional[str],
        notifier: Optional[NotificationService] = None
    ) -> MonthlyStatement:
        """APPROVED -> PAID; DRAFT -> PAID is allowed but logged"""
        notifier = notifier or notification_service

        reference = (payment_reference or "").strip()
        if not reference:
            raise ValidationError("payment_reference is required")
        if len(reference) > 100:
            raise ValidationError("payment_reference is too long", details={"length": len(reference)})

        statement = SettlementService._load_statement(db, statement_id)
        previous_status = statement.status
        if previous_status == StatementStatus.PAID:
            raise ConflictError("Statement is already paid", details={"statement_id": statement_id})

        if previous_status == StatementStatus.DRAFT:
            logger.warning(f"Statement {statement_id} marked paid without approval")

        amount = statement.total_earned
        user_id = statement.user_id
        period = statement.payout_period

        try:
            paid = db.query(MonthlyStatement).filter(
                MonthlyStatement.id == statement_id,
                MonthlyStatement.status == previous_status
            ).update({
                MonthlyStatement.status: StatementStatus.PAID,
                MonthlyStatement.paid_at: utcnow(),
                MonthlyStatement.payment_reference: reference
            }, synchronize_session=False) == 1

            if not paid:
                db.rollback()
                raise ConflictError("Statement changed concurrently", details={"statement_id": statement_id})

            bump_owner_counters(db, user_id, pending_earnings=-amount, total_earnings=amount)
            SettlementService._mark_uses_paid(db, user_id, period.start_date, period.end_date)
            db.commit()
        except ConflictError:
            raise
        except Exception:
            db.rollback()
            raise

        logger.info(f"Statement {statement_id} paid: {amount} ref={reference}")
        notifier.payout_paid(user_id, statement_id, amount, reference)
        return SettlementService._load_statement(db, statement_id)

    @staticmethod
    def complete_period(db: Session, period_id: int) -> PayoutPeriod:
        """LOCKED -> COMPLETED once every statement is paid"""
        period = SettlementService.get_period(db, period_id)
        if period.status != PayoutPeriodStatus.LOCKED:
            raise ConflictError(
                "Only locked periods can be completed",
                details={"period_id": period_id, "status": period.status.value}
            )

        unpaid = db.query(MonthlyStatement).filter(
            MonthlyStatement.payout_period_id == period_id,
            MonthlyStatement.status != StatementStatus.PAID
        ).count()
        if unpaid:
            raise ConflictError(
                "Period has unpaid statements",
                details={"period_id": period_id, "unpaid": unpaid}
            )

        try:
            completed = db.query(PayoutPeriod).filter(
                PayoutPeriod.id == period_id,
                PayoutPeriod.status == PayoutPeriodStatus.LOCKED
            ).update({
                PayoutPeriod.status: PayoutPeriodStatus.COMPLETED,
                PayoutPeriod.completed_at: utcnow()
            }, synchronize_session=False) == 1

            if not completed:
                db.rollback()
                raise ConflictError("Period changed concurrently", details={"period_id": period_id})
            db.commit()
        except ConflictError:
            raise
        except Exception:
            db.rollback()
            raise

        logger.info(f"Payout period {period_id} completed")
        return SettlementService.get_period(db, period_id)

    @staticmethod
    def is_settled_for_owner(db: Session, owner_id: int, moment: Optional[datetime]) -> bool:
        """Whether activity at `moment` is part of a settled payout for the owner"""
        if moment is None:
            return False

        period = db.query(PayoutPeriod).filter(
            PayoutPeriod.start_date <= moment,
            PayoutPeriod.end_date >= moment
        ).first()
        if not period:
            return False
        if period.status == PayoutPeriodStatus.COMPLETED:
            return True

        return db.query(MonthlyStatement.id).filter(
            MonthlyStatement.payout_period_id == period.id,
            MonthlyStatement.user_id == owner_id,
            MonthlyStatement.status == StatementStatus.PAID
        ).first() is not None

    @staticmethod
    def list_periods(db: Session, status: Optional[PayoutPeriodStatus] = None) -> List[PayoutPeriod]:
        query = db.query(PayoutPeriod)
        if status:
            query = query.filter(PayoutPeriod.status == status)
        return query.order_by(PayoutPeriod.year.desc(), PayoutPeriod.month.desc()).all()

    @staticmethod
    def get_period(db: Session, period_id: int) -> PayoutPeriod:
        period = db.query(PayoutPeriod)\
            .filter(PayoutPeriod.id == period_id)\
            .populate_existing()\
            .first()
        if not period:
            raise NotFoundError("PayoutPeriod", period_id)
        return period

    @staticmethod
    def list_statements(
        db: Session,
        period_id: int,
        status: Optional[StatementStatus] = None
    ) -> List[MonthlyStatement]:
        """Statements of one period, largest earners first"""
        SettlementService.get_period(db, period_id)

        query = db.query(MonthlyStatement).filter(MonthlyStatement.payout_period_id == period_id)
        if status:
            query = query.filter(MonthlyStatement.status == status)
        return query.order_by(MonthlyStatement.total_earned.desc(), MonthlyStatement.id).all()

    @staticmethod
    def get_user_statements(db: Session, user_id: int) -> List[MonthlyStatement]:
        return db.query(MonthlyStatement)\
            .join(PayoutPeriod, MonthlyStatement.payout_period_id == PayoutPeriod.id)\
            .filter(MonthlyStatement.user_id == user_id)\
            .order_by(PayoutPeriod.year.desc(), PayoutPeriod.month.desc())\
            .all()

    @staticmethod
    def get_period_summary(db: Session, period_id: int) -> Dict[str, Any]:
        """Totals per statement status for the admin payouts screen"""
        period = SettlementService.get_period(db, period_id)
        summary = {
            "period_id": period.id,
            "status": period.status.value,
            "statements": 0,
            "total_earned": 0.0,
            "by_status": {status.value: 0.0 for status in StatementStatus}
        }
        for statement in period.statements:
            summary["statements"] += 1
            summary["total_earned"] += statement.total_earned
            summary["by_status"][statement.status.value] += statement.total_earned

        summary["total_earned"] = round(summary["total_earned"], 2)
        return summary

    @staticmethod
    def _resolve_year_month(year: Optional[int], month: Optional[int]) -> Tuple[int, int]:
        if year is None and month is None:
            return previous_month()
        if month is None:
            raise ValidationError("month is required when year is given", details={"year": year})
        if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", details={"month": month})
        if year is None:
            year, _ = local_year_month()
        if isinstance(year, bool) or not isinstance(year, int) or not 2000 <= year <= 9998:
            raise ValidationError("year is out of range", details={"year": year})
        return year, month

    @staticmethod
    def _find_period(db: Session, year: int, month: int) -> Optional[PayoutPeriod]:
        return db.query(PayoutPeriod).filter(
            PayoutPeriod.year == year,
            PayoutPeriod.month == month
        ).first()

    @staticmethod
    def _claim_open_period(
        db: Session,
        year: int,
        month: int,
        window: PeriodWindow,
        now: datetime
    ) -> PayoutPeriod:
        try:
            claimed = db.query(PayoutPeriod).filter(
                PayoutPeriod.year == year,
                PayoutPeriod.month == month,
                PayoutPeriod.status == PayoutPeriodStatus.OPEN
            ).update({
                PayoutPeriod.status: PayoutPeriodStatus.LOCKED,
                PayoutPeriod.start_date: window.start,
                PayoutPeriod.end_date: window.end,
                PayoutPeriod.locked_at: now
            }, synchronize_session=False) == 1

            if not claimed:
                db.rollback()
                raise ConflictError(
                    "Period already locked or completed",
                    details={"year": year, "month": month}
                )
            db.commit()
        except ConflictError:
            raise
        except Exception:
            db.rollback()
            raise

        return SettlementService._find_period(db, year, month)

    @staticmethod
    def _load_activity(db: Session, window: PeriodWindow, report: SettlementReport) -> list:
        """Codes with qualifying activity in the window, with their raw rows"""
        use_updated_in_window = and_(
            ReferralUse.updated_at >= window.start,
            ReferralUse.updated_at <= window.end
        )
        # Only a qualified milestone makes a code a candidate; once selected,
        # every in-window use of it counts as referred
        in_window_use = and_(
            use_updated_in_window,
            or_(
                ReferralUse.signup_reward_status == RewardStatus.QUALIFIED,
                ReferralUse.listing_reward_status == RewardStatus.QUALIFIED
            )
        )
        in_window_click = and_(
            ReferralClick.status == ClickStatus.QUALIFIED,
            ReferralClick.qualified_at >= window.start,
            ReferralClick.qualified_at <= window.end
        )

        candidates = db.query(ReferralCode.id, ReferralCode.owner_id)\
            .filter(or_(
                ReferralCode.referral_uses.any(in_window_use),
                ReferralCode.clicks.any(in_window_click)
            ))\
            .order_by(ReferralCode.id)\
            .all()

        batches = []
        for referral_id, owner_id in candidates:
            try:
                uses = db.query(*USE_COLUMNS).filter(
                    ReferralUse.referral_id == referral_id,
                    use_updated_in_window
                ).all()
                clicks = db.query(*CLICK_COLUMNS).filter(
                    ReferralClick.referral_id == referral_id,
                    in_window_click
                ).all()
            except SQLAlchemyError as e:
                db.rollback()
                report.add_failure("referral_code", referral_id, e)
                continue
            batches.append((referral_id, owner_id, uses, clicks))

        return batches

    @staticmethod
    def _reduce(batches: list, window: PeriodWindow, report: SettlementReport) -> Dict[int, PartnerTotals]:
        """Fan the pure reduction out over worker threads, merge per owner"""
        totals_by_owner: Dict[int, PartnerTotals] = {}
        if not batches:
            return totals_by_owner

        max_workers = max(1, min(settings.SETTLEMENT_MAX_WORKERS, len(batches)))
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="settlement") as executor:
            futures = {
                executor.submit(aggregate_referral_activity, uses, clicks, window): (referral_id, owner_id)
                for referral_id, owner_id, uses, clicks in batches
            }

            for future in as_completed(futures):
                referral_id, owner_id = futures[future]
                try:
                    totals = future.result()
                except Exception as e:
                    report.add_failure("referral_code", referral_id, e)
                    continue
                totals_by_owner[owner_id] = totals_by_owner.get(owner_id, PartnerTotals()).merge(totals)

        return totals_by_owner

    @staticmethod
    def _upsert_statement(db: Session, period_id: int, user_id: int, totals: PartnerTotals) -> str:
        """Create a DRAFT or overwrite the aggregates of an unpaid statement.

        Returns one of "created", "updated", "unchanged" or "skipped".
        """
        aggregates = totals.as_dict()

        statement = SettlementService._find_statement(db, period_id, user_id)
        if statement is None:
            db.add(MonthlyStatement(
                payout_period_id=period_id,
                user_id=user_id,
                status=StatementStatus.DRAFT,
                **aggregates
            ))
            try:
                db.commit()
                return "created"
            except IntegrityError:
                db.rollback()
                statement = SettlementService._find_statement(db, period_id, user_id)

        if statement.status == StatementStatus.PAID:
            return "skipped"

        if all(getattr(statement, name) == value for name, value in aggregates.items()):
            return "unchanged"

        updated = db.query(MonthlyStatement).filter(
            MonthlyStatement.id == statement.id,
            MonthlyStatement.status != StatementStatus.PAID
        ).update(
            {getattr(MonthlyStatement, name): value for name, value in aggregates.items()},
            synchronize_session=False
        )
        db.commit()
        return "updated" if updated else "skipped"

    @staticmethod
    def _find_statement(db: Session, period_id: int, user_id: int) -> Optional[MonthlyStatement]:
        return db.query(MonthlyStatement).filter(
            MonthlyStatement.payout_period_id == period_id,
            MonthlyStatement.user_id == user_id
        ).populate_existing().first()

    @staticmethod
    def _mark_uses_paid(db: Session, owner_id: int, start: datetime, end: datetime) -> None:
        """Flag the uses a paid statement settled; does not commit.

        updated_at is written back unchanged so the uses stay in the window
        they were settled in.
        """
        owner_codes = select(ReferralCode.id).where(ReferralCode.owner_id == owner_id)
        db.query(ReferralUse).filter(
            ReferralUse.referral_id.in_(owner_codes),
            ReferralUse.is_fraud.is_(False),
            ReferralUse.updated_at >= start,
            ReferralUse.updated_at <= end,
            or_(
                ReferralUse.signup_reward_status == RewardStatus.QUALIFIED,
                ReferralUse.listing_reward_status == RewardStatus.QUALIFIED
            )
        ).update({
            ReferralUse.commission_paid: True,
            ReferralUse.updated_at: ReferralUse.updated_at
        }, synchronize_session=False)

    @staticmethod
    def _load_statement(db: Session, statement_id: int) -> MonthlyStatement:
        statement = db.query(MonthlyStatement)\
            .filter(MonthlyStatement.id == statement_id)\
            .populate_existing()\
            .first()
        if not statement:
            raise NotFoundError("MonthlyStatement", statement_id)
        return statement
