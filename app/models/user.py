"""
User model and related functionality
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.orm import relationship
import enum

from database import Base
from app.utils.periods import utcnow


class UserRole(str, enum.Enum):
    """User role enumeration"""
    USER = "user"          # Vendors and partners
    ADMIN = "admin"        # Payout and fraud administration


class User(Base):
    """User model

    Owned by the identity service; the referral engine only reads the display
    name (for code minting and masking) and the role.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    referral_code = relationship("ReferralCode", back_populates="owner", uselist=False)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
