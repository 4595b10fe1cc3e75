# backend/rentbook/repositories/booking_repository.py
"""
Booking Repository for the rentbook backend.

Narrow read interfaces for bookings (``get_booking``,
``get_order_bookings``) plus ledger row creation.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models.booking import Booking
from ..models.booking_payment import BookingPayment, PaymentType
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _with_details(self, query):
        return query.options(
            joinedload(Booking.product),
            joinedload(Booking.order),
            selectinload(Booking.payments),
        )

    def get_booking(self, org_id: str, booking_id: str) -> Optional[Booking]:
        """Fetch a tenant's booking with its product, order and ledger loaded."""
        try:
            return (
                self._with_details(self.db.query(Booking))
                .filter(Booking.id == booking_id, Booking.org_id == org_id)
                .first()
            )
        except SQLAlchemyError as e:
            self._raise_repository_error(f"load booking {booking_id}", e)

    def get_order_bookings(self, order_id: str) -> List[Booking]:
        """All bookings of an order, cancelled included, in enumeration order."""
        try:
            return (
                self._with_details(self.db.query(Booking))
                .filter(Booking.order_id == order_id)
                .order_by(Booking.sequence)
                .all()
            )
        except SQLAlchemyError as e:
            self._raise_repository_error(f"load bookings of order {order_id}", e)

    def next_sequence(self, order_id: str) -> int:
        try:
            current = (
                self.db.query(func.max(Booking.sequence))
                .filter(Booking.order_id == order_id)
                .scalar()
            )
        except SQLAlchemyError as e:
            self._raise_repository_error(f"read booking sequence of order {order_id}", e)
        return 0 if current is None else current + 1

    def list_bookings(
        self,
        org_id: str,
        *,
        status: Optional[str] = None,
        product_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Booking]:
        """
        List a tenant's bookings ordered by start time.

        ``start``/``end`` keep bookings whose interval overlaps the window.
        """
        try:
            query = self._with_details(self.db.query(Booking)).filter(Booking.org_id == org_id)
            if status:
                query = query.filter(Booking.status == status)
            if product_id:
                query = query.filter(Booking.product_id == product_id)
            if start is not None:
                query = query.filter(Booking.to_datetime > start)
            if end is not None:
                query = query.filter(Booking.from_datetime < end)
            return query.order_by(Booking.from_datetime).all()
        except SQLAlchemyError as e:
            self._raise_repository_error("list bookings", e)

    def add_ledger_entry(
        self,
        booking: Booking,
        payment_type: PaymentType,
        amount: Decimal,
        note: Optional[str] = None,
    ) -> BookingPayment:
        """Append a ledger row at the end of the booking's ledger. Does not commit."""
        entry = BookingPayment(
            booking_id=booking.id,
            position=len(booking.payments),
            type=payment_type.value,
            amount=amount,
            note=note,
        )
        booking.payments.append(entry)
        self.flush()
        return entry
