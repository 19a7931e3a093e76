"""
Settlement and referral notification background tasks
"""

import logging
from typing import Dict, Any
from celery import Celery
from celery.schedules import crontab

from config import settings
from database import SessionLocal
from app.models.user import User
from app.services.settlement_service import SettlementService
from app.utils.exceptions import ConflictError

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "settlement_tasks",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.timezone = settings.REPORTING_TIMEZONE
celery_app.conf.beat_schedule = {
    "lock-previous-month": {
        "task": "app.tasks.settlement_tasks.lock_previous_month_task",
        "schedule": crontab(minute=0, hour=2, day_of_month=1),
    },
}

NOTIFICATION_SUBJECTS = {
    "commission_qualified": "You earned a referral reward",
    "payout_paid": "Your referral payout has been sent",
}


@celery_app.task
def lock_previous_month_task():
    """Lock last month and generate its statements"""

    if not settings.AUTO_LOCK_PREVIOUS_MONTH:
        logger.info("Automatic month lock disabled, skipping")
        return {"skipped": True}

    db = SessionLocal()

    try:
        report = SettlementService.lock_period(db)

        return {
            "period_id": report.period.id,
            "year": report.period.year,
            "month": report.period.month,
            "statements_created": report.statements_created,
            "statements_updated": report.statements_updated,
            "failures": len(report.failures)
        }

    except ConflictError as e:
        # Already locked by an admin or an earlier run
        logger.info(f"Previous month not locked: {e.message}")
        return {"skipped": True, "reason": e.message}

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def send_referral_notification_task(self, user_id: int, notification_type: str, data: Dict[str, Any]):
    """Log a partner notification; delivery is handled outside this service"""

    db = SessionLocal()

    try:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            return {"error": "User not found"}

        subject = NOTIFICATION_SUBJECTS.get(notification_type)
        if not subject:
            logger.warning(f"Unknown notification type {notification_type} for user {user_id}")
            return {"error": "Unknown notification type"}

        amount = data.get("amount", 0)
        logger.info(f"Notify {user.email}: {subject} (NGN {amount:,.2f})")

        return {"success": True, "notification_type": notification_type, "recipient": user.email}

    except Exception as exc:
        logger.error(f"Referral notification to user {user_id} failed: {exc}")
        raise self.retry(exc=exc, countdown=60)

    finally:
        db.close()
