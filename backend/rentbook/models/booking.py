# backend/rentbook/models/booking.py
"""
Booking model for the rentbook backend.

A booking reserves one product for one half-open interval
``[from_datetime, to_datetime)`` and always belongs to an order. The
product's default rent is snapshotted at creation; ``decided_rent`` is the
agreed price. ``advance_amount``, ``remaining_amount`` and
``pending_refund_amount`` are caches recomputed from the payment ledger.
"""

from enum import Enum
import logging
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import utcnow
from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    BOOKED = "BOOKED"  # Default - reserved, not yet handed over
    ISSUED = "ISSUED"  # Product handed to the customer
    RETURNED = "RETURNED"  # Product back, terminal
    CANCELLED = "CANCELLED"  # Terminal


class Booking(Base):
    """Single-product, single-interval reservation owned by an order."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    org_id = Column(String(26), nullable=False, index=True)
    order_id = Column(String(26), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(26), ForeignKey("products.id"), nullable=False)
    category_id = Column(String(26), nullable=True)
    # Enumeration order within the order
    sequence = Column(Integer, nullable=False, default=0)

    from_datetime = Column(DateTime(timezone=True), nullable=False)
    to_datetime = Column(DateTime(timezone=True), nullable=False)

    product_default_rent = Column(Numeric(12, 2), nullable=False, default=0)
    decided_rent = Column(Numeric(12, 2), nullable=False)

    # Ledger caches
    advance_amount = Column(Numeric(12, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(12, 2), nullable=False, default=0)
    pending_refund_amount = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String(20), nullable=False, default=BookingStatus.BOOKED.value, index=True)
    is_conflict_overridden = Column(Boolean, nullable=False, default=False)
    additional_items_description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    issued_at = Column(DateTime(timezone=True), nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="bookings")
    product = relationship("Product")
    payments = relationship(
        "BookingPayment",
        back_populates="booking",
        order_by="BookingPayment.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('BOOKED', 'ISSUED', 'RETURNED', 'CANCELLED')",
            name="ck_bookings_status",
        ),
        CheckConstraint("decided_rent >= 0", name="check_rent_non_negative"),
        CheckConstraint("to_datetime > from_datetime", name="check_interval_order"),
        Index("ix_bookings_product_interval", "org_id", "product_id", "from_datetime", "to_datetime"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.BOOKED.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: product={self.product_id}, order={self.order_id}, "
            f"{self.from_datetime}-{self.to_datetime}, status={self.status}>"
        )

    def issue(self) -> None:
        """Mark the product as handed over."""
        self.status = BookingStatus.ISSUED.value
        self.issued_at = utcnow()
        logger.info(f"Booking {self.id} issued")

    def mark_returned(self) -> None:
        """Mark the product as returned."""
        self.status = BookingStatus.RETURNED.value
        self.returned_at = utcnow()
        logger.info(f"Booking {self.id} returned")

    def cancel(self) -> None:
        """Cancel this booking."""
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = utcnow()
        logger.info(f"Booking {self.id} cancelled")

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED.value

    @property
    def product_title(self) -> str:
        return self.product.title if self.product is not None else ""
