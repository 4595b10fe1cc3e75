# backend/rentbook/models/order.py
"""
Customer order model.

An order groups the bookings made in one customer transaction. Its money
columns are caches written by the order aggregator after every booking
mutation; they are never read back as the source of truth.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import utcnow
from ..database import Base


class OrderStatus(str, Enum):
    """Derived order statuses."""

    INITIATED = "INITIATED"
    PARTIALLY_DONE = "PARTIALLY_DONE"
    IN_PROGRESS = "IN_PROGRESS"
    FULLY_DONE = "FULLY_DONE"
    CANCELLED = "CANCELLED"  # Terminal


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    org_id = Column(String(26), nullable=False, index=True)

    customer_name = Column(String(200), nullable=False)
    customer_phone = Column(String(30), nullable=True)

    status = Column(String(20), nullable=False, default=OrderStatus.INITIATED.value, index=True)

    # Cached aggregates
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_received = Column(Numeric(12, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    bookings = relationship(
        "Booking",
        back_populates="order",
        order_by="Booking.sequence",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('INITIATED', 'PARTIALLY_DONE', 'IN_PROGRESS', 'FULLY_DONE', 'CANCELLED')",
            name="ck_orders_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Order {self.id}: customer={self.customer_name}, status={self.status}>"

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value

    def cancel(self) -> None:
        """Move the order to its terminal CANCELLED status."""
        self.status = OrderStatus.CANCELLED.value
        self.cancelled_at = utcnow()
