"""
Exceptions raised by the referral engine services

Routes never build HTTP errors for these by hand; main.py registers a single
handler that renders ``to_dict()`` with the exception's status code.
"""

from typing import Any, Dict, Optional


class ReferralEngineError(Exception):
    """Base class for all engine errors"""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to response body"""
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message='{self.message}')"


class ValidationError(ReferralEngineError):
    """Malformed input, rejected before any state change"""
    status_code = 422
    error_code = "VALIDATION_ERROR"


class ConflictError(ReferralEngineError):
    """Operation not allowed in the current state; nothing was written"""
    status_code = 409
    error_code = "CONFLICT"


class NotFoundError(ReferralEngineError):
    """Unknown code, period, statement or record id"""
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found",
            details={"resource": resource, "id": identifier}
        )
