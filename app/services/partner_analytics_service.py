"""
Partner read-model

Live views for the admin partners screen and the partner dashboard. Everything
here reads raw event rows and cached counters; nothing writes settlement state.
"""

from datetime import datetime
from typing import Dict, Any, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from config import settings
from app.models.referral import ReferralCode, ReferralClick, ReferralUse, ClickStatus, RewardStatus
from app.models.user import User
from app.services.referral_service import ReferralService
from app.services.reward_settings_service import RewardSettingsService
from app.utils.exceptions import NotFoundError
from app.utils.periods import PeriodWindow, current_month_window
from app.utils.validation import mask_name

logger = logging.getLogger(__name__)


class PartnerAnalyticsService:
    """Current-month partner metrics and fraud indicators"""

    RECENT_ACTIVITY_LIMIT = 20

    @staticmethod
    def get_partners_overview(db: Session, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """All partners with this month's metrics, newest partners first.

        Uses are bucketed by created_at and clicks by clicked_at, unlike
        settlement which buckets by qualification time, so this view can differ
        from the statement a month later eventually produces.
        """
        window = current_month_window(now)

        referrals = db.query(ReferralCode)\
            .join(User, ReferralCode.owner_id == User.id)\
            .options(joinedload(ReferralCode.owner))\
            .order_by(User.created_at.desc(), User.id.desc())\
            .all()

        uses_by_code = PartnerAnalyticsService._uses_in_window(db, window)
        clicks_by_code = PartnerAnalyticsService._clicks_in_window(db, window)

        overview = []
        for referral in referrals:
            metrics = PartnerAnalyticsService._month_metrics(
                uses_by_code.get(referral.id, []),
                clicks_by_code.get(referral.id, [])
            )
            owner = referral.owner
            overview.append({
                "user_id": owner.id,
                "name": owner.name,
                "email": owner.email,
                "phone": owner.phone,
                "joined_at": owner.created_at,
                "referral_code_id": referral.id,
                "referral_code": referral.code,
                "is_active": referral.is_active,
                "lifetime_referrals": referral.total_referrals,
                "lifetime_activated": referral.successful_referrals,
                "lifetime_earnings": referral.total_earnings,
                "pending_earnings": referral.pending_earnings,
                **metrics
            })

        return overview

    @staticmethod
    def get_partner_details(db: Session, owner_id: int) -> Dict[str, Any]:
        """Full referral history of one partner for admin review"""
        referral = db.query(ReferralCode)\
            .options(joinedload(ReferralCode.owner))\
            .filter(ReferralCode.owner_id == owner_id)\
            .first()
        if not referral:
            raise NotFoundError("Partner", owner_id)

        uses = db.query(ReferralUse)\
            .options(joinedload(ReferralUse.vendor))\
            .filter(ReferralUse.referral_id == referral.id)\
            .order_by(ReferralUse.created_at.desc(), ReferralUse.id.desc())\
            .all()

        click_counts = {status.value: 0 for status in ClickStatus}
        rows = db.query(ReferralClick.status, func.count(ReferralClick.id))\
            .filter(ReferralClick.referral_id == referral.id)\
            .group_by(ReferralClick.status)\
            .all()
        for status, count in rows:
            click_counts[status.value] = count

        return {
            "user_id": referral.owner.id,
            "name": referral.owner.name,
            "email": referral.owner.email,
            "phone": referral.owner.phone,
            "referral_code": referral.code,
            "is_active": referral.is_active,
            "total_referrals": referral.total_referrals,
            "successful_referrals": referral.successful_referrals,
            "total_clicks": referral.total_clicks,
            "total_earnings": referral.total_earnings,
            "pending_earnings": referral.pending_earnings,
            "clicks_by_status": click_counts,
            "fraud_count": sum(1 for use in uses if use.is_fraud),
            "referred_vendors": [
                {
                    "referral_use_id": use.id,
                    "vendor_id": use.vendor_id,
                    "vendor_name": use.vendor.name if use.vendor else None,
                    "signup_reward_status": use.signup_reward_status.value,
                    "listing_reward_status": use.listing_reward_status.value,
                    "commission": use.commission,
                    "first_listing_id": use.first_listing_id,
                    "is_fraud": use.is_fraud,
                    "status": use.status.value,
                    "created_at": use.created_at
                }
                for use in uses
            ]
        }

    @staticmethod
    def get_partner_dashboard(db: Session, owner_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """The partner's own live stats with masked recent activity"""
        referral = db.query(ReferralCode).filter(ReferralCode.owner_id == owner_id).first()
        if not referral:
            raise NotFoundError("ReferralCode", owner_id)

        window = current_month_window(now)
        rewards = RewardSettingsService.get_settings(db)

        activated_this_month = db.query(ReferralUse).filter(
            ReferralUse.referral_id == referral.id,
            ReferralUse.listing_reward_status == RewardStatus.QUALIFIED,
            ReferralUse.updated_at >= window.start,
            ReferralUse.updated_at <= window.end
        ).count()

        recent_uses = db.query(ReferralUse)\
            .options(joinedload(ReferralUse.vendor))\
            .filter(ReferralUse.referral_id == referral.id)\
            .order_by(ReferralUse.created_at.desc(), ReferralUse.id.desc())\
            .limit(10)\
            .all()
        recent_clicks = db.query(ReferralClick)\
            .filter(ReferralClick.referral_id == referral.id)\
            .order_by(ReferralClick.clicked_at.desc(), ReferralClick.id.desc())\
            .limit(PartnerAnalyticsService.RECENT_ACTIVITY_LIMIT)\
            .all()

        activity = [
            {
                "type": "signup",
                "vendor_name": mask_name(use.vendor.name if use.vendor else None),
                "signup_status": use.signup_reward_status.value,
                "listing_status": use.listing_reward_status.value,
                "date": use.created_at
            }
            for use in recent_uses
        ] + [
            {
                "type": "click",
                "status": click.status.value,
                "qualified": click.qualified_at is not None,
                "date": click.clicked_at
            }
            for click in recent_clicks
        ]
        activity.sort(key=lambda item: item["date"], reverse=True)

        return {
            "referral_code": referral.code,
            "referral_url": ReferralService.build_referral_url(referral.code),
            "is_active": referral.is_active,
            "reward_rates": {
                "signup": rewards["signup_reward_amount"],
                "listing": rewards["listing_reward_amount"],
                "click": rewards["click_reward_amount"]
            },
            "minimum_payout": rewards["minimum_payout_amount"],
            "pending_earnings": referral.pending_earnings or 0.0,
            "total_paid": referral.total_earnings or 0.0,
            "total_clicks": referral.total_clicks or 0,
            "total_referrals": referral.total_referrals or 0,
            "activated_this_month": activated_this_month,
            "recent_activity": activity[:PartnerAnalyticsService.RECENT_ACTIVITY_LIMIT]
        }

    @staticmethod
    def _uses_in_window(db: Session, window: PeriodWindow) -> Dict[int, list]:
        grouped: Dict[int, list] = {}
        uses = db.query(ReferralUse).filter(
            ReferralUse.created_at >= window.start,
            ReferralUse.created_at <= window.end
        ).all()
        for use in uses:
            grouped.setdefault(use.referral_id, []).append(use)
        return grouped

    @staticmethod
    def _clicks_in_window(db: Session, window: PeriodWindow) -> Dict[int, list]:
        grouped: Dict[int, list] = {}
        clicks = db.query(ReferralClick).filter(
            ReferralClick.clicked_at >= window.start,
            ReferralClick.clicked_at <= window.end
        ).all()
        for click in clicks:
            grouped.setdefault(click.referral_id, []).append(click)
        return grouped

    @staticmethod
    def _month_metrics(uses: list, clicks: list) -> Dict[str, Any]:
        """This month's figures and the static fraud heuristic"""
        signups = len(uses)
        activated = sum(1 for use in uses if use.listing_reward_status == RewardStatus.QUALIFIED)
        qualified_clicks = [click for click in clicks if click.status == ClickStatus.QUALIFIED]

        earnings = 0.0
        for use in uses:
            if use.signup_reward_status == RewardStatus.QUALIFIED:
                earnings += use.signup_reward_amount
            if use.listing_reward_status == RewardStatus.QUALIFIED:
                earnings += use.listing_reward_amount
        earnings += sum(click.reward_amount for click in qualified_clicks)

        fraud_count = sum(1 for use in uses if use.is_fraud)
        conversion_rate = (signups / len(clicks)) * 100 if clicks else 0.0

        return {
            "this_month_signups": signups,
            "this_month_activated": activated,
            "this_month_clicks": len(qualified_clicks),
            "this_month_earnings": round(earnings, 2),
            "conversion_rate": round(conversion_rate, 1),
            "fraud_count": fraud_count,
            "is_suspicious": (
                fraud_count > settings.SUSPICIOUS_FRAUD_COUNT
                or conversion_rate > settings.SUSPICIOUS_CONVERSION_RATE
            )
        }
