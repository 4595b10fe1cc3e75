# backend/rentbook/schemas/order.py
"""Order schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from ..models.booking import BookingStatus
from ..models.booking_payment import PaymentType
from ..models.order import OrderStatus
from ._strict_base import StrictModel, StrictRequestModel
from .base import Money
from .booking import BookingCreate, BookingResponse


class OrderCreate(StrictRequestModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: Optional[str] = Field(default=None, max_length=30)
    bookings: List[BookingCreate] = Field(default_factory=list)


class OrderUpdate(StrictRequestModel):
    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    customer_phone: Optional[str] = Field(default=None, max_length=30)


class OrderPaymentRequest(StrictRequestModel):
    amount: Money
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("amount")
    @classmethod
    def _positive(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("Amount must be greater than zero")
        return value


class OrderCancelRequest(StrictRequestModel):
    refund_amount: Optional[Money] = None
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("refund_amount")
    @classmethod
    def _non_negative(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        if value is not None and value < 0:
            raise ValueError("Refund amount cannot be negative")
        return value


class OrderSummaryResponse(StrictModel):
    id: str
    customer_name: str
    customer_phone: Optional[str] = None
    status: OrderStatus
    total_amount: Money
    total_received: Money
    remaining_amount: Money
    created_at: datetime


class OrderResponse(OrderSummaryResponse):
    bookings: List[BookingResponse]


class Distribution(StrictModel):
    booking_id: str
    amount: Money


class OrderPaymentResponse(StrictModel):
    order: OrderResponse
    distributions: List[Distribution]
    total_distributed: Money
    undistributed: Money


class OrderCancelResponse(StrictModel):
    order: OrderResponse
    refund_amount: Money
    total_paid: Money
    refund_distributions: List[Distribution]


class OrderCancelPreview(StrictModel):
    refund_amount: Money
    total_paid: Money


class InvoiceLine(StrictModel):
    booking_id: str
    product_id: str
    product_title: str
    product_code: Optional[str] = None
    from_datetime: datetime
    to_datetime: datetime
    decided_rent: Money
    total_paid: Money
    remaining_amount: Money
    status: BookingStatus
    additional_items_description: Optional[str] = None


class InvoicePayment(StrictModel):
    booking_id: str
    product_title: str
    type: PaymentType
    amount: Money
    at: datetime
    note: Optional[str] = None


class InvoiceResponse(StrictModel):
    order_id: str
    customer_name: str
    customer_phone: Optional[str] = None
    status: OrderStatus
    created_at: datetime
    bookings: List[InvoiceLine]
    total_amount: Money
    total_received: Money
    remaining_amount: Money
    payment_history: List[InvoicePayment]
