"""Referral code registry"""
from typing import Dict, Any, List, Optional
from urllib.parse import quote
import logging
import re
import secrets

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import settings
from app.models.referral import ReferralCode
from app.models.user import User
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError
from app.utils.validation import normalize_referral_code, is_well_formed_code, mask_name

logger = logging.getLogger(__name__)


class ReferralService:
    """Owns referral codes and their cached counters"""

    MAX_CODE_ATTEMPTS = 10

    @staticmethod
    def create_or_get_code(db: Session, owner_id: int) -> ReferralCode:
        """Return the owner's code, minting one on first call"""
        existing = ReferralService._find_by_owner(db, owner_id)
        if existing:
            return existing

        owner = db.query(User).filter(User.id == owner_id).first()
        if not owner:
            raise NotFoundError("User", owner_id)

        for _ in range(ReferralService.MAX_CODE_ATTEMPTS):
            code = ReferralService._generate_referral_code(owner.name)
            if db.query(ReferralCode.id).filter(ReferralCode.code == code).first():
                continue

            referral = ReferralCode(owner_id=owner_id, code=code)
            db.add(referral)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                # Either a concurrent request minted this owner's code first,
                # or the random suffix collided.
                existing = ReferralService._find_by_owner(db, owner_id)
                if existing:
                    return existing
                continue

            db.refresh(referral)
            logger.info(f"Minted referral code {referral.code} for user {owner_id}")
            return referral

        raise ConflictError("Could not mint a unique referral code", details={"owner_id": owner_id})

    @staticmethod
    def validate_code(db: Session, code: Optional[str]) -> Dict[str, Any]:
        """Public check of a referral code; never reveals who owns it"""
        if not is_well_formed_code(code):
            return {"valid": False}

        referral = db.query(ReferralCode).filter(
            ReferralCode.code == normalize_referral_code(code)
        ).first()

        if not referral or not referral.is_active:
            return {"valid": False}

        return {
            "valid": True,
            "code": referral.code,
            "original_fee": settings.REFERRAL_ORIGINAL_FEE,
            "discount_amount": settings.REFERRAL_ORIGINAL_FEE - settings.REFERRAL_DISCOUNTED_FEE,
            "discounted_fee": settings.REFERRAL_DISCOUNTED_FEE
        }

    @staticmethod
    def toggle_active(db: Session, code_id: int) -> ReferralCode:
        """Flip is_active; already-qualified rewards are left alone"""
        referral = db.query(ReferralCode).filter(ReferralCode.id == code_id).first()
        if not referral:
            raise NotFoundError("ReferralCode", code_id)

        referral.is_active = not referral.is_active
        db.commit()
        db.refresh(referral)

        logger.info(
            f"Referral code {referral.code} {'activated' if referral.is_active else 'deactivated'}"
        )
        return referral

    @staticmethod
    def resolve_active_code(db: Session, code: Optional[str]) -> ReferralCode:
        """Look up a code for an inbound event, rejecting inactive ones"""
        normalized = normalize_referral_code(code)
        referral = db.query(ReferralCode).filter(ReferralCode.code == normalized).first()
        if not referral:
            raise NotFoundError("ReferralCode", normalized)
        if not referral.is_active:
            raise ValidationError("Referral code is inactive", details={"code": normalized})
        return referral

    @staticmethod
    def get_code_for_owner(db: Session, owner_id: int) -> ReferralCode:
        referral = ReferralService._find_by_owner(db, owner_id)
        if not referral:
            raise NotFoundError("ReferralCode", owner_id)
        return referral

    @staticmethod
    def build_referral_url(code: str) -> str:
        return f"{settings.FRONTEND_URL.rstrip('/')}/signup?ref={quote(code)}"

    @staticmethod
    def get_leaderboard(db: Session, limit: int = 10, mask_names: bool = True) -> List[Dict[str, Any]]:
        """Top active partners by activated vendors, then qualified clicks"""
        partners = db.query(ReferralCode)\
            .options(joinedload(ReferralCode.owner))\
            .filter(ReferralCode.is_active.is_(True))\
            .order_by(
                ReferralCode.successful_referrals.desc(),
                ReferralCode.total_clicks.desc(),
                ReferralCode.id
            )\
            .limit(limit)\
            .all()

        leaderboard = []
        for rank, referral in enumerate(partners, start=1):
            entry = {
                "rank": rank,
                "name": mask_name(referral.owner.name) if mask_names else referral.owner.name,
                "successful_referrals": referral.successful_referrals,
                "total_clicks": referral.total_clicks
            }
            if not mask_names:
                entry.update({
                    "email": referral.owner.email,
                    "referral_code": referral.code,
                    "total_earnings": referral.total_earnings
                })
            leaderboard.append(entry)

        return leaderboard

    @staticmethod
    def _find_by_owner(db: Session, owner_id: int) -> Optional[ReferralCode]:
        return db.query(ReferralCode).filter(ReferralCode.owner_id == owner_id).first()

    @staticmethod
    def _generate_referral_code(name: Optional[str]) -> str:
        """NAME-HEX, e.g. 'Bob Stone' -> 'BOBSTO-3FA91C'"""
        prefix = re.sub(r"[^A-Z0-9]", "", (name or "").upper())[:6] or "USER"
        return f"{prefix}-{secrets.token_hex(3).upper()}"
