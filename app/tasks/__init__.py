"""
Background tasks for the referral engine
"""

from .settlement_tasks import (
    celery_app,
    lock_previous_month_task,
    send_referral_notification_task
)

__all__ = [
    "celery_app",
    "lock_previous_month_task",
    "send_referral_notification_task"
]
