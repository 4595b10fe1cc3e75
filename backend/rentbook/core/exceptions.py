# backend/rentbook/core/exceptions.py
"""
Domain-specific exceptions for the rentbook backend.

Every rejection carries the numeric bounds that were violated in
``details`` so callers can show them verbatim.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested record is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class NotFoundError(NotFoundException):
    """Booking, order or product is absent or belongs to another tenant."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} not found",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class ConflictError(ConflictException):
    """Raised when a booking interval overlaps existing bookings on the same product."""

    def __init__(self, conflicts: List[Dict[str, Any]]):
        super().__init__(
            message=f"Product is already booked for {len(conflicts)} overlapping booking(s)",
            code="BOOKING_CONFLICT",
            details={"conflicts": conflicts},
        )
        self.conflicts = conflicts


class ConcurrencyError(ConflictException):
    """Raised when storage contention persists after the retry budget."""

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            message="The operation could not be completed due to concurrent updates, please retry",
            code="CONCURRENCY_ERROR",
            details={"operation": operation, "attempts": attempts},
        )


class InvalidTransitionError(BusinessRuleException):
    """Raised when a booking or order is in the wrong status for an operation."""

    def __init__(self, action: str, current_status: str, required_status: Iterable[str] | str):
        required = [required_status] if isinstance(required_status, str) else list(required_status)
        super().__init__(
            message=(
                f"Cannot {action}: status is {current_status}, "
                f"must be {' or '.join(required)}"
            ),
            code="INVALID_TRANSITION",
            details={
                "action": action,
                "current_status": current_status,
                "required_status": required,
            },
        )


class AlreadyFullyPaidError(BusinessRuleException):
    """Raised when a payment is posted to a booking with nothing left to pay."""

    def __init__(self, booking_id: str, remaining: Decimal):
        super().__init__(
            message="Booking is already fully paid",
            code="ALREADY_FULLY_PAID",
            details={"booking_id": booking_id, "remaining": _money(remaining)},
        )


class OverpaymentError(BusinessRuleException):
    """Raised when a payment exceeds what is left to pay under the reject policy."""

    def __init__(self, amount: Decimal, max_allowed: Decimal, currency: str = "Rs."):
        super().__init__(
            message=(
                f"Payment amount ({currency}{_money(amount)}) exceeds remaining amount "
                f"({currency}{_money(max_allowed)}). Maximum allowed: {currency}{_money(max_allowed)}."
            ),
            code="OVERPAYMENT",
            details={"amount": _money(amount), "max_allowed": _money(max_allowed)},
        )


class NothingToRefundError(BusinessRuleException):
    """Raised when a refund is requested on a booking with no net payment."""

    def __init__(self, booking_id: str, total_paid: Decimal):
        super().__init__(
            message="No payment has been made to refund",
            code="NOTHING_TO_REFUND",
            details={"booking_id": booking_id, "total_paid": _money(total_paid)},
        )


class RefundExceedsPaidError(BusinessRuleException):
    """Raised when a refund entry is larger than the booking's net payment."""

    def __init__(self, amount: Decimal, max_refund: Decimal, currency: str = "Rs."):
        super().__init__(
            message=(
                f"Refund amount ({currency}{_money(amount)}) exceeds total paid "
                f"({currency}{_money(max_refund)})"
            ),
            code="REFUND_EXCEEDS_PAID",
            details={"amount": _money(amount), "max_refund": _money(max_refund)},
        )


class InvalidRefundAmountError(BusinessRuleException):
    """Raised when a caller-chosen refund falls outside the refundable range."""

    def __init__(self, amount: Decimal, maximum: Decimal, minimum: Decimal = Decimal("0")):
        super().__init__(
            message=(
                f"Refund amount must be between {_money(minimum)} and {_money(maximum)}"
            ),
            code="INVALID_REFUND_AMOUNT",
            details={"amount": _money(amount), "min": _money(minimum), "max": _money(maximum)},
        )


class AllBookingsFullyPaidError(BusinessRuleException):
    """Raised when an order payment finds no underpaid booking."""

    def __init__(self, order_id: str):
        super().__init__(
            message="All bookings in this order are already fully paid",
            code="ALL_BOOKINGS_FULLY_PAID",
            details={"order_id": order_id, "remaining": "0.00"},
        )


class NonCancellableStateError(BusinessRuleException):
    """Raised when an order holds issued or returned bookings."""

    def __init__(self, order_id: str, statuses: List[str]):
        super().__init__(
            message=(
                "Order can only be cancelled when all bookings are BOOKED or CANCELLED. "
                f"Found statuses: {', '.join(statuses)}"
            ),
            code="NON_CANCELLABLE_STATE",
            details={"order_id": order_id, "statuses": statuses},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as query failures
    or constraint violations.
    """
