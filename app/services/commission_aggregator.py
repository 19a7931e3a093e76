"""
Pure reduction of referral activity into statement totals

No database access happens here. Settlement loads the rows for one referral
code and hands them in, which keeps the reduction safe to run on worker
threads and trivially repeatable for the same inputs.
"""

from dataclasses import dataclass
from typing import Iterable

from app.models.referral import ClickStatus, RewardStatus
from app.utils.periods import PeriodWindow


@dataclass
class PartnerTotals:
    """Aggregate columns of one monthly statement"""
    vendors_referred_count: int = 0
    vendors_activated_count: int = 0
    clicks_count: int = 0
    total_earned: float = 0.0

    def merge(self, other: "PartnerTotals") -> "PartnerTotals":
        return PartnerTotals(
            vendors_referred_count=self.vendors_referred_count + other.vendors_referred_count,
            vendors_activated_count=self.vendors_activated_count + other.vendors_activated_count,
            clicks_count=self.clicks_count + other.clicks_count,
            total_earned=round(self.total_earned + other.total_earned, 2)
        )

    @property
    def is_empty(self) -> bool:
        return self.total_earned <= 0

    def as_dict(self) -> dict:
        return {
            "vendors_referred_count": self.vendors_referred_count,
            "vendors_activated_count": self.vendors_activated_count,
            "clicks_count": self.clicks_count,
            "total_earned": self.total_earned,
        }


def aggregate_referral_activity(uses: Iterable, clicks: Iterable, window: PeriodWindow) -> PartnerTotals:
    """Reduce one code's referral uses and clicks over an inclusive window.

    A use is in the window when its updated_at is, which is when its latest
    reward qualified. Fraud-flagged uses are dropped before anything else is
    looked at. Each in-window use counts once as referred, whatever its
    milestones.
    """
    totals = PartnerTotals()
    earned = 0.0

    for use in uses:
        if use.is_fraud:
            continue
        if not window.contains(use.updated_at):
            continue

        totals.vendors_referred_count += 1
        if use.signup_reward_status == RewardStatus.QUALIFIED:
            earned += use.signup_reward_amount or 0.0
        if use.listing_reward_status == RewardStatus.QUALIFIED:
            earned += use.listing_reward_amount or 0.0
            totals.vendors_activated_count += 1

    for click in clicks:
        if click.status != ClickStatus.QUALIFIED:
            continue
        if not window.contains(click.qualified_at):
            continue
        totals.clicks_count += 1
        earned += click.reward_amount or 0.0

    totals.total_earned = round(earned, 2)
    return totals
