"""Error hierarchy for the donation lifecycle.

Every error carries a stable ``code`` and the HTTP status the API maps it to,
so routers never translate exceptions by hand. Store and service layers raise
these directly; ``foodshare.core.error_handlers`` turns them into the JSON
error envelope.
"""

from enum import Enum


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    BUSINESS_RULE = "business_rule"
    DATABASE = "database"


class FoodShareError(Exception):
    """Base exception for all lifecycle failures."""

    code = "FOODSHARE_ERROR"
    category = ErrorCategory.BUSINESS_RULE
    severity = ErrorSeverity.ERROR
    http_status = 500

    def __init__(self, message: str, *, donation_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.donation_id = donation_id

    def to_response(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
            }
        }


# ---- 400 ----

class ValidationError(FoodShareError):
    """Malformed or missing input fields."""
    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    http_status = 400

    def __init__(self, message: str, field: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field


class VerificationError(FoodShareError):
    """Supplied verification code does not match the reservation."""
    code = "VERIFICATION_FAILED"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING
    http_status = 400


# ---- 403 / 404 ----

class ForbiddenError(FoodShareError):
    """Caller is not a legitimate party to the operation."""
    code = "FORBIDDEN"
    category = ErrorCategory.AUTHORIZATION
    http_status = 403


class NotFoundError(FoodShareError):
    code = "DONATION_NOT_FOUND"
    category = ErrorCategory.RESOURCE_NOT_FOUND
    http_status = 404

    def __init__(self, donation_id: str):
        super().__init__(f"Donation '{donation_id}' not found", donation_id=donation_id)


# ---- 409 ----

class ConflictError(FoodShareError):
    """Conditional write lost: the record no longer has the expected state."""
    code = "CONFLICT"
    category = ErrorCategory.CONFLICT
    http_status = 409


class NotAvailableError(ConflictError):
    """Reservation lost the race, or the donation is missing/expired. Re-fetch, don't retry."""
    code = "NOT_AVAILABLE"


class NotReservedError(ConflictError):
    """Business decision no longer applicable; the reservation changed underneath."""
    code = "NOT_RESERVED"


class InvalidStateError(FoodShareError):
    code = "INVALID_STATE"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 409


class AlreadyConfirmedError(FoodShareError):
    """Duplicate confirmation. Nothing was written."""
    code = "ALREADY_CONFIRMED"
    category = ErrorCategory.CONFLICT
    severity = ErrorSeverity.INFO
    http_status = 409


# ---- 503 ----

class StoreUnavailableError(FoodShareError):
    """Backing store could not be reached. Fatal to the request only."""
    code = "STORE_UNAVAILABLE"
    category = ErrorCategory.DATABASE
    severity = ErrorSeverity.CRITICAL
    http_status = 503
