"""
Fast-path counter cache on referral codes

Live events bump these columns with atomic SQL increments inside the caller's
transaction. Nothing in settlement reads them.
"""

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.models.referral import ReferralCode

COUNTER_COLUMNS = {
    "total_referrals": ReferralCode.total_referrals,
    "successful_referrals": ReferralCode.successful_referrals,
    "total_clicks": ReferralCode.total_clicks,
    "total_earnings": ReferralCode.total_earnings,
    "pending_earnings": ReferralCode.pending_earnings,
}


def _floored(column, delta):
    # Counters never go below zero even if events arrive out of order
    if delta >= 0:
        return column + delta
    return case((column + delta < 0, 0), else_=column + delta)


def bump_counters(db: Session, referral_id: int, **deltas) -> None:
    """Apply counter deltas to one referral code; does not commit"""
    values = {}
    for name, delta in deltas.items():
        if name not in COUNTER_COLUMNS:
            raise KeyError(f"Unknown referral counter: {name}")
        if delta:
            values[name] = _floored(COUNTER_COLUMNS[name], delta)

    if not values:
        return

    db.query(ReferralCode)\
        .filter(ReferralCode.id == referral_id)\
        .update(values, synchronize_session=False)


def bump_owner_counters(db: Session, owner_id: int, **deltas) -> None:
    """Same as bump_counters, addressed by the owning user"""
    referral_id = db.query(ReferralCode.id).filter(ReferralCode.owner_id == owner_id).scalar()
    if referral_id is not None:
        bump_counters(db, referral_id, **deltas)
