# backend/rentbook/schemas/booking.py
"""
Booking schemas.

Request models validate shape only (amount signs, ordered interval);
every business rule lives in the services.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..models.booking import BookingStatus
from ..models.booking_payment import PaymentType
from ._strict_base import StrictModel, StrictRequestModel
from .base import Money


def _non_negative(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value < 0:
        raise ValueError("Amount cannot be negative")
    return value


class IntervalRequest(StrictRequestModel):
    """Request base that rejects an interval ending at or before its start."""

    @model_validator(mode="after")
    def _check_interval(self):
        start = getattr(self, "from_datetime", None)
        end = getattr(self, "to_datetime", None)
        if start is not None and end is not None and end <= start:
            raise ValueError("to_datetime must be after from_datetime")
        return self


class ConflictCheckRequest(IntervalRequest):
    product_id: str
    from_datetime: datetime
    to_datetime: datetime
    exclude_booking_id: Optional[str] = None


class ConflictingBooking(StrictModel):
    booking_id: str
    order_id: str
    customer_name: Optional[str] = None
    from_datetime: datetime
    to_datetime: datetime
    status: BookingStatus


class ConflictCheckResponse(StrictModel):
    has_conflicts: bool
    conflicts: List[ConflictingBooking]


class BookingCreate(IntervalRequest):
    product_id: str
    from_datetime: datetime
    to_datetime: datetime
    decided_rent: Money
    advance_amount: Money = Decimal("0.00")
    override_conflicts: bool = False
    additional_items_description: Optional[str] = Field(default=None, max_length=2000)

    check_amounts = field_validator("decided_rent", "advance_amount")(_non_negative)


class BookingUpdate(IntervalRequest):
    product_id: Optional[str] = None
    from_datetime: Optional[datetime] = None
    to_datetime: Optional[datetime] = None
    decided_rent: Optional[Money] = None
    advance_amount: Optional[Money] = None
    additional_items_description: Optional[str] = Field(default=None, max_length=2000)
    override_conflicts: bool = False

    check_amounts = field_validator("decided_rent", "advance_amount")(_non_negative)


class BookingTransitionRequest(StrictRequestModel):
    """Body for issue/return; the payment, when present, must fit exactly."""

    payment_amount: Optional[Money] = None
    note: Optional[str] = Field(default=None, max_length=500)

    check_amounts = field_validator("payment_amount")(_non_negative)


class BookingCancelRequest(StrictRequestModel):
    refund_amount: Optional[Money] = None

    check_amounts = field_validator("refund_amount")(_non_negative)


class PaymentCreate(StrictRequestModel):
    amount: Money
    type: Optional[PaymentType] = None
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("amount")
    @classmethod
    def _positive(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("Amount must be greater than zero")
        return value


class LedgerEntryResponse(StrictModel):
    id: str
    type: PaymentType
    amount: Money
    at: datetime
    note: Optional[str] = None


class BookingResponse(StrictModel):
    id: str
    order_id: str
    product_id: str
    product_title: str
    category_id: Optional[str] = None
    from_datetime: datetime
    to_datetime: datetime
    product_default_rent: Money
    decided_rent: Money
    advance_amount: Money
    remaining_amount: Money
    pending_refund_amount: Money
    status: BookingStatus
    is_conflict_overridden: bool
    additional_items_description: Optional[str] = None
    payments: List[LedgerEntryResponse]


class RefundTransfer(StrictModel):
    booking_id: str
    product_title: str
    amount: Money


class RefundInfo(StrictModel):
    refund_amount: Money
    redistributed: Money
    booking_advance: Money
    pending_refund_amount: Money
    transfers: List[RefundTransfer]


class BookingCancelResponse(StrictModel):
    booking: BookingResponse
    refund_info: RefundInfo
