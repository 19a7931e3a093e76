"""
Tests for click attribution tracking
"""

from unittest.mock import Mock

import pytest

from app.models.payout import PayoutPeriodStatus
from app.models.referral import ClickStatus
from app.services.click_tracking_service import ClickTrackingService
from app.services.reward_settings_service import RewardSettingsService
from app.services.settlement_service import SettlementService
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError


def test_record_click_is_pending_at_current_click_reward(db, make_code):
    referral = make_code()
    RewardSettingsService.update_settings(db, click_reward_amount=20.0)

    click = ClickTrackingService.record_click(db, "bob-1234", "102.89.1.10", "Mozilla/5.0")

    assert click.status == ClickStatus.PENDING
    assert click.reward_amount == 20.0
    assert click.qualified_at is None
    assert click.referral_id == referral.id


def test_repeat_clicks_from_same_ip_are_all_recorded(db, make_code):
    make_code()

    first = ClickTrackingService.record_click(db, "BOB-1234", "102.89.1.10")
    second = ClickTrackingService.record_click(db, "BOB-1234", "102.89.1.10")

    assert first.id != second.id


def test_record_click_rejections(db, make_code):
    make_code(code="BOB-1234")
    make_code(code="OFF-1234", is_active=False)

    with pytest.raises(NotFoundError):
        ClickTrackingService.record_click(db, "NOPE-0000", "102.89.1.10")
    with pytest.raises(ValidationError):
        ClickTrackingService.record_click(db, "OFF-1234", "102.89.1.10")
    with pytest.raises(ValidationError):
        ClickTrackingService.record_click(db, "BOB-1234", "")
    with pytest.raises(ValidationError):
        ClickTrackingService.record_click(db, "??", "102.89.1.10")


def test_qualify_click_counts_once(db, make_code, make_click):
    """A repeated qualification never double-increments counters"""
    referral = make_code()
    click = make_click(referral, status=ClickStatus.PENDING)
    notifier = Mock()

    ClickTrackingService.qualify_click(db, click.id, notifier=notifier)
    again = ClickTrackingService.qualify_click(db, click.id, notifier=notifier)

    db.refresh(referral)
    assert again.status == ClickStatus.QUALIFIED
    assert again.qualified_at is not None
    assert referral.total_clicks == 1
    assert referral.pending_earnings == 15.0
    notifier.commission_qualified.assert_called_once_with(referral.owner_id, "click", 15.0, click.id)


def test_qualify_click_with_override_amount(db, make_code, make_click):
    referral = make_code()
    click = make_click(referral, status=ClickStatus.PENDING)

    qualified = ClickTrackingService.qualify_click(db, click.id, reward_amount=5.0, notifier=Mock())

    assert qualified.reward_amount == 5.0


def test_qualify_fraudulent_click_conflicts(db, make_code, make_click):
    referral = make_code()
    click = make_click(referral, status=ClickStatus.FRAUDULENT)

    with pytest.raises(ConflictError):
        ClickTrackingService.qualify_click(db, click.id, notifier=Mock())


def test_qualify_unknown_click(db):
    with pytest.raises(NotFoundError):
        ClickTrackingService.qualify_click(db, 404, notifier=Mock())


def test_flag_qualified_click_reverses_counters(db, make_code, make_click):
    referral = make_code()
    click = make_click(referral, status=ClickStatus.PENDING)
    ClickTrackingService.qualify_click(db, click.id, notifier=Mock())

    flagged = ClickTrackingService.flag_fraudulent(db, click.id)

    db.refresh(referral)
    assert flagged.status == ClickStatus.FRAUDULENT
    assert flagged.qualified_at is None
    assert referral.total_clicks == 0
    assert referral.pending_earnings == 0.0

    # Flagging again is a no-op
    assert ClickTrackingService.flag_fraudulent(db, click.id).status == ClickStatus.FRAUDULENT


def test_flag_pending_click(db, make_code, make_click):
    referral = make_code()
    click = make_click(referral, status=ClickStatus.PENDING)

    flagged = ClickTrackingService.flag_fraudulent(db, click.id)

    db.refresh(referral)
    assert flagged.status == ClickStatus.FRAUDULENT
    assert referral.pending_earnings == 0.0


def test_flag_click_in_completed_period_conflicts(db, make_code, make_click, make_period):
    referral = make_code()
    click = make_click(referral)
    make_period(status=PayoutPeriodStatus.COMPLETED)

    with pytest.raises(ConflictError):
        ClickTrackingService.flag_fraudulent(db, click.id)

    db.refresh(click)
    assert click.status == ClickStatus.QUALIFIED


def test_flag_click_in_paid_statement_conflicts(db, make_code, make_click):
    referral = make_code()
    click = make_click(referral)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = SettlementService.list_statements(db, report.period.id)[0]
    SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())

    with pytest.raises(ConflictError):
        ClickTrackingService.flag_fraudulent(db, click.id)


def test_flag_click_in_unpaid_locked_period_is_allowed(db, make_code, make_click):
    referral = make_code()
    click = make_click(referral)
    SettlementService.lock_period(db, 2026, 3)

    assert ClickTrackingService.flag_fraudulent(db, click.id).status == ClickStatus.FRAUDULENT
