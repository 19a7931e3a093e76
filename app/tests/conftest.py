"""
PyTest configuration and fixtures
"""

import os
import sys
from datetime import datetime

import pytest

# Tests run against a throwaway in-memory database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")

# Add the parent directory to the path so we can import modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from database import DatabaseManager, SessionLocal, get_db  # noqa: E402
from app.models.payout import PayoutPeriod, PayoutPeriodStatus  # noqa: E402
from app.models.referral import (  # noqa: E402
    ClickStatus, ReferralClick, ReferralCode, ReferralUse, ReferralUseStatus, RewardStatus
)
from app.models.user import User, UserRole  # noqa: E402
from app.utils.periods import month_window  # noqa: E402

MARCH_2026 = datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture
def db():
    """Fresh schema and session per test"""
    DatabaseManager.create_all_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        DatabaseManager.drop_all_tables()


@pytest.fixture
def client(db):
    """FastAPI test client sharing the test session"""
    from fastapi.testclient import TestClient
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Create users with unique emails"""
    counter = {"n": 0}

    def _make_user(name="Bob Stone", role=UserRole.USER, created_at=None):
        counter["n"] += 1
        user = User(
            name=name,
            email=f"user{counter['n']}@listup.test",
            phone="+2348000000000",
            role=role,
            created_at=created_at or datetime(2026, 1, 1)
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_code(db, make_user):
    def _make_code(code="BOB-1234", owner=None, is_active=True):
        owner = owner or make_user()
        referral = ReferralCode(owner_id=owner.id, code=code, is_active=is_active)
        db.add(referral)
        db.commit()
        db.refresh(referral)
        return referral

    return _make_code


@pytest.fixture
def make_use(db, make_user):
    """Referral use with explicit milestone state and timestamps"""
    def _make_use(
        referral,
        vendor=None,
        signup=RewardStatus.QUALIFIED,
        listing=RewardStatus.QUALIFIED,
        signup_amount=25.0,
        listing_amount=25.0,
        is_fraud=False,
        status=None,
        created_at=MARCH_2026,
        updated_at=MARCH_2026
    ):
        vendor = vendor or make_user(name="Vendor Person")
        commission = 0.0
        if signup == RewardStatus.QUALIFIED:
            commission += signup_amount
        if listing == RewardStatus.QUALIFIED:
            commission += listing_amount
        if status is None:
            both = signup == RewardStatus.QUALIFIED and listing == RewardStatus.QUALIFIED
            status = ReferralUseStatus.COMPLETED if both else ReferralUseStatus.PENDING

        use = ReferralUse(
            referral_id=referral.id,
            vendor_id=vendor.id,
            signup_reward_status=signup,
            signup_reward_amount=signup_amount if signup == RewardStatus.QUALIFIED else 0.0,
            listing_reward_status=listing,
            listing_reward_amount=listing_amount if listing == RewardStatus.QUALIFIED else 0.0,
            first_listing_id="listing-1" if listing == RewardStatus.QUALIFIED else None,
            is_fraud=is_fraud,
            status=status,
            commission=commission,
            created_at=created_at,
            updated_at=updated_at
        )
        db.add(use)
        db.commit()
        db.refresh(use)
        return use

    return _make_use


@pytest.fixture
def make_click(db):
    def _make_click(
        referral,
        status=ClickStatus.QUALIFIED,
        reward_amount=15.0,
        clicked_at=MARCH_2026,
        qualified_at=None,
        ip_address="102.89.1.10"
    ):
        if status == ClickStatus.QUALIFIED and qualified_at is None:
            qualified_at = clicked_at
        click = ReferralClick(
            referral_id=referral.id,
            ip_address=ip_address,
            user_agent="pytest",
            status=status,
            reward_amount=reward_amount,
            clicked_at=clicked_at,
            qualified_at=qualified_at
        )
        db.add(click)
        db.commit()
        db.refresh(click)
        return click

    return _make_click


@pytest.fixture
def make_period(db):
    """Payout period row without generating statements"""
    def _make_period(year=2026, month=3, status=PayoutPeriodStatus.OPEN):
        window = month_window(year, month)
        period = PayoutPeriod(
            year=year,
            month=month,
            start_date=window.start,
            end_date=window.end,
            status=status
        )
        db.add(period)
        db.commit()
        db.refresh(period)
        return period

    return _make_period


@pytest.fixture
def admin_headers(make_user):
    admin = make_user(name="Ada Admin", role=UserRole.ADMIN)
    return {"X-Principal-Id": str(admin.id), "X-Principal-Role": "admin"}


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that exercise the HTTP layer"
    )
