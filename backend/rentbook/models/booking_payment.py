"""Append-only payment ledger rows, one per booking money movement."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
import ulid

from ..core.timezone_utils import utcnow
from ..database import Base


class PaymentType(str, Enum):
    """Ledger entry kinds."""

    ADVANCE = "ADVANCE"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    REFUND = "REFUND"


class BookingPayment(Base):
    """A single ledger entry; rows are never updated except the initial advance on edit."""

    __tablename__ = "booking_payments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Position within the booking's ledger
    position = Column(Integer, nullable=False, default=0)

    type = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    note = Column(Text, nullable=True)
    at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="payments")

    __table_args__ = (
        CheckConstraint(
            "type IN ('ADVANCE', 'PAYMENT_RECEIVED', 'REFUND')",
            name="ck_booking_payments_type",
        ),
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<BookingPayment booking={self.booking_id} {self.type} {self.amount}>"
