"""
Tests for the pure statement reduction
"""

from datetime import datetime
from types import SimpleNamespace

from app.models.referral import ClickStatus, RewardStatus
from app.services.commission_aggregator import PartnerTotals, aggregate_referral_activity
from app.utils.periods import month_window

MARCH = month_window(2026, 3)
IN_MARCH = datetime(2026, 3, 10, 9, 0)
IN_APRIL = datetime(2026, 4, 2, 9, 0)


def use_row(signup=RewardStatus.QUALIFIED, listing=RewardStatus.QUALIFIED, is_fraud=False,
            updated_at=IN_MARCH, signup_amount=25.0, listing_amount=25.0):
    return SimpleNamespace(
        is_fraud=is_fraud,
        updated_at=updated_at,
        signup_reward_status=signup,
        signup_reward_amount=signup_amount,
        listing_reward_status=listing,
        listing_reward_amount=listing_amount
    )


def click_row(status=ClickStatus.QUALIFIED, qualified_at=IN_MARCH, reward_amount=15.0):
    return SimpleNamespace(status=status, qualified_at=qualified_at, reward_amount=reward_amount)


def test_fully_qualified_use_and_click():
    """Signup, listing and click rewards add up to 65"""
    totals = aggregate_referral_activity([use_row()], [click_row()], MARCH)

    assert totals == PartnerTotals(
        vendors_referred_count=1,
        vendors_activated_count=1,
        clicks_count=1,
        total_earned=65.0
    )


def test_fraud_use_contributes_nothing():
    totals = aggregate_referral_activity([use_row(is_fraud=True)], [click_row()], MARCH)

    assert totals.vendors_referred_count == 0
    assert totals.vendors_activated_count == 0
    assert totals.clicks_count == 1
    assert totals.total_earned == 15.0


def test_signup_only_counts_as_referred_not_activated():
    totals = aggregate_referral_activity([use_row(listing=RewardStatus.PENDING)], [], MARCH)

    assert totals.vendors_referred_count == 1
    assert totals.vendors_activated_count == 0
    assert totals.total_earned == 25.0


def test_use_without_qualified_milestone_still_counts_as_referred():
    pending = use_row(signup=RewardStatus.PENDING, listing=RewardStatus.PENDING)

    totals = aggregate_referral_activity([pending], [click_row()], MARCH)

    assert totals == PartnerTotals(
        vendors_referred_count=1,
        vendors_activated_count=0,
        clicks_count=1,
        total_earned=15.0
    )


def test_rows_outside_window_are_ignored():
    totals = aggregate_referral_activity(
        [use_row(updated_at=IN_APRIL)],
        [click_row(qualified_at=IN_APRIL), click_row(status=ClickStatus.PENDING, qualified_at=None)],
        MARCH
    )

    assert totals == PartnerTotals()
    assert totals.is_empty


def test_fraudulent_click_is_ignored():
    totals = aggregate_referral_activity([], [click_row(status=ClickStatus.FRAUDULENT)], MARCH)

    assert totals.clicks_count == 0
    assert totals.total_earned == 0.0


def test_reduction_is_repeatable():
    uses = [use_row(), use_row(listing=RewardStatus.PENDING)]
    clicks = [click_row(), click_row(reward_amount=10.0)]

    first = aggregate_referral_activity(uses, clicks, MARCH)
    second = aggregate_referral_activity(uses, clicks, MARCH)

    assert first == second
    assert first.total_earned == 100.0


def test_merge_sums_every_field():
    merged = PartnerTotals(1, 1, 2, 80.0).merge(PartnerTotals(2, 0, 1, 65.0))

    assert merged == PartnerTotals(3, 1, 3, 145.0)
    assert merged.as_dict()["total_earned"] == 145.0
