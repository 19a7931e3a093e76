"""
Principal resolution

Credentials are checked upstream. The gateway forwards the authenticated
principal as X-Principal-Id and X-Principal-Role headers, which are trusted
as-is here.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.models.user import User, UserRole
from database import get_db

logger = logging.getLogger(__name__)


class AuthService:
    """FastAPI dependencies for the current user and current admin"""

    @staticmethod
    def get_current_user(
        x_principal_id: Optional[str] = Header(None),
        db: Session = Depends(get_db)
    ) -> User:
        """Resolve the forwarded principal id to a user"""
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or unknown principal"
        )

        if not x_principal_id:
            raise credentials_exception

        try:
            user_id = int(x_principal_id)
        except ValueError:
            raise credentials_exception

        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise credentials_exception
        return user

    @staticmethod
    def get_current_admin_user(
        x_principal_id: Optional[str] = Header(None),
        x_principal_role: Optional[str] = Header(None),
        db: Session = Depends(get_db)
    ) -> User:
        """Current user, required to hold the admin role.

        The forwarded role wins over the stored one when the gateway sends it.
        """
        current_user = AuthService.get_current_user(x_principal_id, db)

        role = (x_principal_role or current_user.role.value).lower()
        if role != UserRole.ADMIN.value:
            logger.warning(f"User {current_user.id} denied admin access")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin access required"
            )

        return current_user
