"""
API routes for the referral engine
"""

from . import referrals, admin_payouts, partners
