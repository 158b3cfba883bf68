"""
Payment domain errors.

Every error is recoverable and carries a stable ``code`` plus the HTTP status
the API layer answers with. Services raise them; the exception handler in
``payplan.main`` turns them into ``{"detail": ..., "code": ...}`` responses.
"""

from fastapi import status


class PaymentError(Exception):
    """Base class for payment workflow errors."""

    code = "payment_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidSplit(PaymentError):
    """Split template violates the 100% sum or 1..100 bounds rule."""
    code = "invalid_split"


class AccountIneligible(PaymentError):
    """Installments are disabled or the account is marked suspicious."""
    code = "account_ineligible"
    status_code = status.HTTP_403_FORBIDDEN


class DuplicateReference(PaymentError):
    """Transaction reference already used by another ledger."""
    code = "duplicate_reference"
    status_code = status.HTTP_409_CONFLICT


class NotFound(PaymentError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PurchaseInactive(PaymentError):
    code = "purchase_inactive"


class InvalidServiceDates(PaymentError):
    code = "invalid_service_dates"


class PermissionDenied(PaymentError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class ConcurrentModification(PaymentError):
    """Versioned write lost against a concurrent writer; reload and retry."""
    code = "concurrent_modification"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(PaymentError):
    """Illegal state transition attempted on a ledger or obligation."""
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class AlreadyPaid(InvalidTransition):
    code = "already_paid"


class AlreadyApproved(InvalidTransition):
    code = "already_approved"


class NotSubmitted(InvalidTransition):
    code = "not_submitted"


class InvalidPaymentMode(InvalidTransition):
    """Operation does not apply to the ledger's payment mode."""
    code = "invalid_payment_mode"
    status_code = status.HTTP_400_BAD_REQUEST


class PaymentIncomplete(InvalidTransition):
    code = "payment_incomplete"
    status_code = status.HTTP_400_BAD_REQUEST
