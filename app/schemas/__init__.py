"""
Pydantic schemas for the referral engine API
"""
