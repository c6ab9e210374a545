from fastapi import HTTPException, status
from functools import wraps
from typing import Callable, Optional
from datetime import datetime

class DatabaseError(HTTPException):
    """Custom exception for database errors"""
    def __init__(self, detail: str = "Database operation failed"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

class NotFoundError(HTTPException):
    """Custom exception for not found errors"""
    def __init__(self, resource: str = "Resource"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")

class ForbiddenError(HTTPException):
    """Custom exception for forbidden errors"""
    def __init__(self, detail: str = "Not authorized to access this resource"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class ValidationError(HTTPException):
    """Custom exception for validation errors"""
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# Entitlement errors. `detail` is the client payload and is rendered at the
# top level of the response body (see app.main).

class EntitlementError(HTTPException):
    """Base class for terminal entitlement outcomes"""
    def __init__(self, status_code: int, detail: dict, headers: Optional[dict] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

class UnauthenticatedError(EntitlementError):
    def __init__(self):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            {"error": "unauthenticated", "message": "Sign in to continue"},
            headers={"WWW-Authenticate": "Bearer"},
        )

class FeatureLockedError(EntitlementError):
    """Resource type has a zero allowance on the caller's tier"""
    def __init__(self, tier: str, resource_type: str):
        super().__init__(
            status.HTTP_403_FORBIDDEN,
            {
                "error": "locked",
                "tier": tier,
                "resource_type": resource_type,
                "message": f"{resource_type.capitalize()} diagnostics are not included in the {tier} plan. Upgrade to unlock them.",
            },
        )

class QuotaExceededError(EntitlementError):
    """Allowance used up for the current period"""
    def __init__(self, tier: str, resource_type: str, limit: int, used: int, period_end: Optional[datetime] = None):
        super().__init__(
            status.HTTP_429_TOO_MANY_REQUESTS,
            {
                "error": "limit_reached",
                "tier": tier,
                "resource_type": resource_type,
                "limit": limit,
                "used": used,
                "remaining": 0,
                "period_end": period_end.isoformat() if period_end else None,
                "message": f"You've reached your {resource_type} diagnostic limit for this billing period ({limit} diagnostics).",
            },
        )

class AnalysisFailureError(EntitlementError):
    def __init__(self, diagnostic_id: Optional[str] = None):
        super().__init__(
            status.HTTP_502_BAD_GATEWAY,
            {
                "error": "analysis_failed",
                "diagnostic_id": diagnostic_id,
                "message": "The diagnostic could not be completed. No usage was charged, please try again.",
            },
        )

class ServiceDisabledError(EntitlementError):
    def __init__(self):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            {"error": "service_disabled", "message": "Diagnostics are temporarily unavailable"},
        )

class PaymentProviderError(EntitlementError):
    def __init__(self, message: str = "Payment provider request failed"):
        super().__init__(
            status.HTTP_502_BAD_GATEWAY,
            {"error": "payment_provider_error", "message": message},
        )


# Internal errors, translated by the services before they reach a client

class CommitRaceError(Exception):
    """The conditional usage write found the period allowance already used up"""

class DuplicateDiagnosticError(Exception):
    """A usage event already exists for the diagnostic"""

class AnalysisError(Exception):
    """The external analysis call failed, timed out or returned garbage"""

class PaymentGatewayError(Exception):
    """The payment provider could not be reached or rejected the request"""


def handle_database_errors(func: Callable) -> Callable:
    """Decorator to handle database errors"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except Exception as e:
            raise DatabaseError(f"Database operation failed: {str(e)}")
    return wrapper
