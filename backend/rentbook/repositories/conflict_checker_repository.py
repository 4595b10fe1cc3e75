# backend/rentbook/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for the rentbook backend.

Overlap is evaluated in SQL with half-open semantics so the query only
returns bookings that actually collide with the requested interval.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Booking]):
    """Repository for conflict checking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def get_overlapping_bookings(
        self,
        org_id: str,
        product_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Get non-cancelled bookings of a product overlapping ``[start, end)``.

        Args:
            org_id: Tenant scope
            product_id: The product to check
            start: Interval start (inclusive)
            end: Interval end (exclusive)
            exclude_booking_id: Optional booking ID to exclude from results

        Returns:
            Overlapping bookings with their order loaded, ordered by start
        """
        try:
            query = (
                self.db.query(Booking)
                .options(joinedload(Booking.order))
                .filter(
                    Booking.org_id == org_id,
                    Booking.product_id == product_id,
                    Booking.status != BookingStatus.CANCELLED.value,
                    Booking.from_datetime < end,
                    Booking.to_datetime > start,
                )
            )

            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)

            return cast(List[Booking], query.order_by(Booking.from_datetime).all())

        except SQLAlchemyError as e:
            self._raise_repository_error("get conflict bookings", e)
