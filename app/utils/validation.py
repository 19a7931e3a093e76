"""
Input validation utilities
"""

import re
from typing import Optional

from app.utils.exceptions import ValidationError

REFERRAL_CODE_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9-]{2,31}$")


def normalize_referral_code(code: Optional[str]) -> str:
    """Upper-case and strip a referral code, raising if it is malformed"""
    if not code or not isinstance(code, str):
        raise ValidationError("Referral code is required")

    normalized = code.strip().upper()
    if not REFERRAL_CODE_PATTERN.match(normalized):
        raise ValidationError("Malformed referral code", details={"code": code})
    return normalized


def is_well_formed_code(code: Optional[str]) -> bool:
    try:
        normalize_referral_code(code)
    except ValidationError:
        return False
    return True


def validate_ip_address(ip_address: Optional[str]) -> str:
    """Client address as reported by the proxy; not parsed, only bounded"""
    candidate = (ip_address or "").strip()
    if not candidate:
        raise ValidationError("IP address is required")
    if len(candidate) > 45:
        raise ValidationError("IP address too long", details={"ip_address": ip_address})
    return candidate


def validate_required_id(value, name: str) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} is required", details={name: value})
    return value


def validate_reward_amount(amount, name: str = "amount", allow_zero: bool = False) -> float:
    """Reward amounts must be finite numbers, positive unless allow_zero"""
    if amount is None or isinstance(amount, bool):
        raise ValidationError(f"{name} is required")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", details={name: amount})

    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError(f"{name} must be finite", details={name: amount})
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} must be positive", details={name: amount})
    return value


def mask_name(name: Optional[str]) -> str:
    """'Ada Lovelace' -> 'Ada L.' for public displays"""
    if not name:
        return "Unknown Partner"
    parts = name.split()
    if len(parts) > 1:
        return f"{parts[0]} {parts[1][0]}."
    return name
