"""
Tests for period locking, statement generation and payout state
"""

from datetime import datetime
from unittest.mock import Mock, patch

import pytest

from app.models.payout import MonthlyStatement, PayoutPeriod, PayoutPeriodStatus, StatementStatus
from app.models.referral import ClickStatus, RewardStatus
from app.services.commission_aggregator import aggregate_referral_activity
from app.services.referral_ledger_service import ReferralLedgerService
from app.services.settlement_service import SettlementService
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError
from app.utils.periods import month_window, previous_month

APRIL_2026 = datetime(2026, 4, 10, 12, 0)


@pytest.fixture
def bob(make_code):
    return make_code(code="BOB-1234")


def only_statement(db, period_id):
    statements = SettlementService.list_statements(db, period_id)
    assert len(statements) == 1
    return statements[0]


def test_bob_full_month_totals_65(db, bob, make_use, make_click):
    make_use(bob)
    make_click(bob)

    report = SettlementService.lock_period(db, 2026, 3)

    statement = only_statement(db, report.period.id)
    assert report.period.status == PayoutPeriodStatus.LOCKED
    assert report.period.start_date == month_window(2026, 3).start
    assert report.statements_created == 1
    assert report.failures == []
    assert statement.user_id == bob.owner_id
    assert statement.vendors_referred_count == 1
    assert statement.vendors_activated_count == 1
    assert statement.clicks_count == 1
    assert statement.total_earned == 65.0
    assert statement.status == StatementStatus.DRAFT


def test_bob_fraud_use_totals_15(db, bob, make_use, make_click):
    make_use(bob, is_fraud=True)
    make_click(bob)

    report = SettlementService.lock_period(db, 2026, 3)

    statement = only_statement(db, report.period.id)
    assert statement.total_earned == 15.0
    assert statement.clicks_count == 1
    assert statement.vendors_referred_count == 0
    assert statement.vendors_activated_count == 0


def test_lock_period_twice_conflicts(db, bob, make_use):
    make_use(bob)
    first = SettlementService.lock_period(db, 2026, 3)
    locked_at = first.period.locked_at

    with pytest.raises(ConflictError):
        SettlementService.lock_period(db, 2026, 3)

    period = SettlementService.get_period(db, first.period.id)
    assert period.status == PayoutPeriodStatus.LOCKED
    assert period.locked_at == locked_at
    assert db.query(PayoutPeriod).count() == 1


def test_concurrent_lock_loses_on_unique_constraint(db, bob, make_use):
    """A caller that missed the existing row still cannot lock it again"""
    make_use(bob)
    first = SettlementService.lock_period(db, 2026, 3)
    locked_at = first.period.locked_at

    with patch.object(SettlementService, "_find_period", return_value=None):
        with pytest.raises(ConflictError):
            SettlementService.lock_period(db, 2026, 3)

    period = SettlementService.get_period(db, first.period.id)
    assert period.status == PayoutPeriodStatus.LOCKED
    assert period.locked_at == locked_at
    assert db.query(PayoutPeriod).count() == 1
    assert db.query(MonthlyStatement).count() == 1


def test_lock_claims_existing_open_period(db, bob, make_use, make_period):
    open_period = make_period(status=PayoutPeriodStatus.OPEN)
    make_use(bob)

    report = SettlementService.lock_period(db, 2026, 3)

    assert report.period.id == open_period.id
    assert report.period.status == PayoutPeriodStatus.LOCKED
    assert report.period.locked_at is not None
    assert report.statements_created == 1


def test_lock_period_argument_validation(db):
    with pytest.raises(ValidationError):
        SettlementService.lock_period(db, year=2026)
    with pytest.raises(ValidationError):
        SettlementService.lock_period(db, 2026, 13)
    with pytest.raises(ValidationError):
        SettlementService.lock_period(db, 2026, 0)


def test_lock_period_defaults_to_previous_month(db):
    report = SettlementService.lock_period(db)

    assert (report.period.year, report.period.month) == previous_month()
    assert report.codes_processed == 0


def test_lock_period_month_only_uses_current_year(db):
    with patch("app.services.settlement_service.local_year_month", return_value=(2026, 5)):
        report = SettlementService.lock_period(db, month=2)

    assert (report.period.year, report.period.month) == (2026, 2)


def test_regeneration_is_stable(db, bob, make_use, make_click):
    make_use(bob)
    make_click(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    before = only_statement(db, report.period.id)
    snapshot = (before.id, before.vendors_referred_count, before.vendors_activated_count,
                before.clicks_count, before.total_earned, before.status)

    again = SettlementService.regenerate_statements(db, report.period.id)

    after = only_statement(db, report.period.id)
    assert again.statements_created == 0
    assert again.statements_unchanged == 1
    assert (after.id, after.vendors_referred_count, after.vendors_activated_count,
            after.clicks_count, after.total_earned, after.status) == snapshot


def test_late_fraud_flag_lowers_totals_without_touching_status(db, bob, make_use, make_click):
    use = make_use(bob)
    make_click(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)
    SettlementService.approve_statement(db, statement.id)

    ReferralLedgerService.mark_fraud(db, use.id, True)
    regenerated = SettlementService.regenerate_statements(db, report.period.id)

    statement = only_statement(db, report.period.id)
    assert regenerated.statements_updated == 1
    assert statement.total_earned == 15.0
    assert statement.status == StatementStatus.APPROVED


def test_paid_statements_are_never_rewritten(db, bob, make_use, make_click):
    use = make_use(bob)
    make_click(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)
    SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())

    ReferralLedgerService.mark_fraud(db, use.id, True)
    regenerated = SettlementService.regenerate_statements(db, report.period.id)

    statement = only_statement(db, report.period.id)
    assert regenerated.skipped_paid == 1
    assert statement.total_earned == 65.0
    assert statement.payment_reference == "TRF-001"


def test_cross_stream_union(db, make_code, make_user, make_use, make_click):
    """Clicks-only and uses-only partners both get statements"""
    clicker = make_code(code="CLICK-0001", owner=make_user(name="Cleo Clicks"))
    referrer = make_code(code="REFER-0001", owner=make_user(name="Remi Refers"))
    make_click(clicker)
    make_click(clicker)
    make_use(referrer, listing=RewardStatus.PENDING)

    report = SettlementService.lock_period(db, 2026, 3)

    by_user = {s.user_id: s for s in SettlementService.list_statements(db, report.period.id)}
    assert by_user[clicker.owner_id].total_earned == 30.0
    assert by_user[clicker.owner_id].clicks_count == 2
    assert by_user[referrer.owner_id].total_earned == 25.0
    assert by_user[referrer.owner_id].vendors_referred_count == 1
    assert by_user[referrer.owner_id].vendors_activated_count == 0

    # Ordered by total_earned descending
    assert [s.total_earned for s in SettlementService.list_statements(db, report.period.id)] == [30.0, 25.0]


def test_pending_use_counts_as_referred_when_code_has_earnings(db, bob, make_use, make_click):
    make_use(bob, signup=RewardStatus.PENDING, listing=RewardStatus.PENDING)
    make_click(bob)

    report = SettlementService.lock_period(db, 2026, 3)

    statement = only_statement(db, report.period.id)
    assert statement.vendors_referred_count == 1
    assert statement.vendors_activated_count == 0
    assert statement.clicks_count == 1
    assert statement.total_earned == 15.0


def test_no_statement_without_earnings(db, bob, make_use, make_click):
    make_use(bob, is_fraud=True)
    make_click(bob, status=ClickStatus.PENDING)
    make_click(bob, qualified_at=APRIL_2026)

    report = SettlementService.lock_period(db, 2026, 3)

    assert report.codes_processed == 1
    assert db.query(MonthlyStatement).count() == 0


def test_zero_total_never_deletes_existing_statement(db, bob, make_use):
    use = make_use(bob)
    report = SettlementService.lock_period(db, 2026, 3)

    ReferralLedgerService.mark_fraud(db, use.id, True)
    SettlementService.regenerate_statements(db, report.period.id)

    statement = only_statement(db, report.period.id)
    assert statement.total_earned == 50.0


def test_activity_in_other_months_is_excluded(db, bob, make_use, make_click, make_user):
    make_use(bob, updated_at=APRIL_2026)
    make_click(bob, clicked_at=APRIL_2026)
    make_use(bob, vendor=make_user(name="Early Vendor"), updated_at=datetime(2026, 2, 28, 23, 30))

    report = SettlementService.lock_period(db, 2026, 3)

    statement = only_statement(db, report.period.id)
    assert statement.total_earned == 50.0
    assert statement.vendors_referred_count == 1


def test_failing_code_does_not_abort_batch(db, make_code, make_user, make_click):
    good = make_code(code="GOOD-0001", owner=make_user(name="Good Partner"))
    bad = make_code(code="BAD-0001", owner=make_user(name="Bad Partner"))
    make_click(good)
    make_click(bad, reward_amount=99.0)

    def flaky(uses, clicks, window):
        if any(click.reward_amount == 99.0 for click in clicks):
            raise RuntimeError("boom")
        return aggregate_referral_activity(uses, clicks, window)

    with patch("app.services.settlement_service.aggregate_referral_activity", side_effect=flaky):
        report = SettlementService.lock_period(db, 2026, 3)

    assert report.codes_processed == 2
    assert report.statements_created == 1
    assert not report.succeeded
    assert [(f.scope, f.identifier) for f in report.failures] == [("referral_code", bad.id)]
    assert only_statement(db, report.period.id).user_id == good.owner_id


def test_approve_only_from_draft(db, bob, make_use):
    make_use(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)

    approved = SettlementService.approve_statement(db, statement.id)

    assert approved.status == StatementStatus.APPROVED
    assert approved.approved_at is not None
    with pytest.raises(ConflictError):
        SettlementService.approve_statement(db, statement.id)
    with pytest.raises(NotFoundError):
        SettlementService.approve_statement(db, 404)


def test_mark_paid_moves_pending_to_paid_earnings(db, bob, make_use, make_click):
    make_use(bob)
    make_click(bob)
    bob.pending_earnings = 65.0
    db.commit()
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)
    SettlementService.approve_statement(db, statement.id)
    notifier = Mock()

    paid = SettlementService.mark_paid(db, statement.id, "  TRF-001 ", notifier=notifier)

    db.refresh(bob)
    assert paid.status == StatementStatus.PAID
    assert paid.paid_at is not None
    assert paid.payment_reference == "TRF-001"
    assert bob.pending_earnings == 0.0
    assert bob.total_earnings == 65.0
    notifier.payout_paid.assert_called_once_with(bob.owner_id, statement.id, 65.0, "TRF-001")


def test_mark_paid_flags_settled_uses(db, bob, make_code, make_use, make_user):
    settled = make_use(bob)
    pending = make_use(bob, signup=RewardStatus.PENDING, listing=RewardStatus.PENDING)
    fraud = make_use(bob, is_fraud=True)
    later = make_use(bob, updated_at=APRIL_2026)
    other = make_use(make_code(code="OLU-0001", owner=make_user(name="Olu Other")))
    report = SettlementService.lock_period(db, 2026, 3)
    statement = [s for s in SettlementService.list_statements(db, report.period.id) if s.user_id == bob.owner_id][0]

    SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())

    for use in (settled, pending, fraud, later, other):
        db.refresh(use)
    assert settled.commission_paid is True
    assert settled.updated_at == datetime(2026, 3, 15, 12, 0)
    assert pending.commission_paid is False
    assert fraud.commission_paid is False
    assert later.commission_paid is False
    assert other.commission_paid is False


def test_mark_paid_twice_conflicts(db, bob, make_use):
    make_use(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)

    # DRAFT -> PAID shortcut is allowed
    SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())

    with pytest.raises(ConflictError):
        SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())
    with pytest.raises(ConflictError):
        SettlementService.approve_statement(db, statement.id)


def test_mark_paid_requires_reference(db, bob, make_use):
    make_use(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)

    with pytest.raises(ValidationError):
        SettlementService.mark_paid(db, statement.id, "   ", notifier=Mock())
    with pytest.raises(NotFoundError):
        SettlementService.mark_paid(db, 404, "TRF-001", notifier=Mock())


def test_complete_period_requires_all_paid(db, bob, make_use):
    make_use(bob)
    report = SettlementService.lock_period(db, 2026, 3)
    statement = only_statement(db, report.period.id)

    with pytest.raises(ConflictError):
        SettlementService.complete_period(db, report.period.id)

    SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())
    completed = SettlementService.complete_period(db, report.period.id)

    assert completed.status == PayoutPeriodStatus.COMPLETED
    assert completed.completed_at is not None
    with pytest.raises(ConflictError):
        SettlementService.complete_period(db, report.period.id)
    with pytest.raises(ConflictError):
        SettlementService.regenerate_statements(db, report.period.id)


def test_regenerate_open_period_conflicts(db, make_period):
    period = make_period(status=PayoutPeriodStatus.OPEN)

    with pytest.raises(ConflictError):
        SettlementService.regenerate_statements(db, period.id)
    with pytest.raises(NotFoundError):
        SettlementService.regenerate_statements(db, 404)


def test_is_settled_for_owner(db, bob, make_use):
    make_use(bob)
    moment = datetime(2026, 3, 20)

    assert SettlementService.is_settled_for_owner(db, bob.owner_id, moment) is False

    report = SettlementService.lock_period(db, 2026, 3)
    assert SettlementService.is_settled_for_owner(db, bob.owner_id, moment) is False

    statement = only_statement(db, report.period.id)
    SettlementService.mark_paid(db, statement.id, "TRF-001", notifier=Mock())
    assert SettlementService.is_settled_for_owner(db, bob.owner_id, moment) is True
    assert SettlementService.is_settled_for_owner(db, bob.owner_id, APRIL_2026) is False
    assert SettlementService.is_settled_for_owner(db, bob.owner_id, None) is False


def test_period_and_user_listings(db, bob, make_use, make_user):
    make_use(bob)
    make_use(bob, vendor=make_user(name="April Vendor"), updated_at=APRIL_2026)
    SettlementService.lock_period(db, 2026, 3)
    SettlementService.lock_period(db, 2026, 4)

    periods = SettlementService.list_periods(db)
    statements = SettlementService.get_user_statements(db, bob.owner_id)

    assert [(p.year, p.month) for p in periods] == [(2026, 4), (2026, 3)]
    assert [s.payout_period_id for s in statements] == [periods[0].id, periods[1].id]
    assert SettlementService.get_period_summary(db, periods[1].id)["total_earned"] == 50.0
