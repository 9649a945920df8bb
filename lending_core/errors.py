"""
Error Taxonomy

Every failure raised by the lending core is a LendingError subclass carrying a
stable code and enough detail to render a user-facing message. None of them
are retryable by the caller.
"""

from typing import Any, Dict, Optional


class LendingError(Exception):
    """Base class for all lending core failures"""

    code = "lending_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()}
        }


# Input validation errors

class ValidationError(LendingError, ValueError):
    code = "validation_error"


class AmountMismatch(ValidationError):
    code = "amount_mismatch"


class InvalidPrincipal(ValidationError):
    code = "invalid_principal"


class DivisionByZero(ValidationError):
    code = "division_by_zero"


class InvalidCadence(ValidationError):
    code = "invalid_cadence"


class InvalidDate(ValidationError):
    code = "invalid_date"


class InvalidPeriodCount(ValidationError):
    code = "invalid_period_count"


class InvalidStatus(ValidationError):
    code = "invalid_status"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class NegativeDisbursement(ValidationError):
    code = "negative_disbursement"


# Reference errors

class NotFoundError(LendingError):
    code = "not_found"


class LoanNotFound(NotFoundError):
    code = "loan_not_found"


class InstallmentNotFound(NotFoundError):
    code = "installment_not_found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"


class LineNotFound(NotFoundError):
    code = "line_not_found"


# Authorization errors

class AuthorizationError(LendingError):
    code = "authorization_error"


class TenantMismatch(AuthorizationError):
    code = "tenant_mismatch"


class AccessDenied(AuthorizationError):
    code = "access_denied"


# State errors

class StateError(LendingError):
    code = "state_error"


class AlreadyPaid(StateError):
    code = "already_paid"


class OverpaymentUseFullPaid(StateError):
    code = "overpayment_use_full_paid"


class ConcurrentModification(StateError):
    code = "concurrent_modification"
