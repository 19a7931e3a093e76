"""Notification dispatch for referral commission and payout events

Notifications are fire-and-forget: a failure here is logged and never undoes
or fails the ledger operation that triggered it.
"""
from typing import Dict, Any, Optional
import logging

from config import settings

logger = logging.getLogger(__name__)


class NotificationService:
    """Queues partner notifications on Celery, or logs them when disabled"""

    COMMISSION_QUALIFIED = "commission_qualified"
    PAYOUT_PAID = "payout_paid"

    def __init__(self, enabled: Optional[bool] = None):
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return settings.NOTIFICATIONS_ENABLED

    def send(self, user_id: int, notification_type: str, data: Dict[str, Any]) -> bool:
        """Dispatch one notification; returns False instead of raising"""
        try:
            if not self.enabled:
                logger.info(f"Notification {notification_type} for user {user_id}: {data}")
                return True

            from app.tasks.settlement_tasks import send_referral_notification_task
            send_referral_notification_task.delay(user_id, notification_type, data)
            return True

        except Exception as e:
            logger.error(f"Failed to send {notification_type} notification to user {user_id}: {e}")
            return False

    def commission_qualified(self, user_id: int, kind: str, amount: float, reference_id: int) -> bool:
        return self.send(
            user_id,
            self.COMMISSION_QUALIFIED,
            {"kind": kind, "amount": amount, "reference_id": reference_id}
        )

    def payout_paid(self, user_id: int, statement_id: int, amount: float, payment_reference: str) -> bool:
        return self.send(
            user_id,
            self.PAYOUT_PAID,
            {
                "statement_id": statement_id,
                "amount": amount,
                "payment_reference": payment_reference
            }
        )


notification_service = NotificationService()
