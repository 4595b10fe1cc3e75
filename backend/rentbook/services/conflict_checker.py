# backend/rentbook/services/conflict_checker.py
"""
Conflict Checker Service for the rentbook backend.

Detects overlapping, non-cancelled bookings of the same product using
half-open intervals: a booking ending exactly when another starts does
not conflict.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError, ValidationException
from ..core.timezone_utils import as_utc
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)


def validate_interval(start: datetime, end: datetime) -> None:
    if as_utc(end) <= as_utc(start):
        raise ValidationException(
            "Booking end must be after its start",
            code="INVALID_INTERVAL",
            details={"from_datetime": start.isoformat(), "to_datetime": end.isoformat()},
        )


class ConflictChecker(BaseService):
    """Service for booking overlap detection. Has no side effects."""

    def __init__(self, db: Session, repository: Optional[ConflictCheckerRepository] = None):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)

    @BaseService.measure_operation("find_conflicts")
    def find_conflicts(
        self,
        org_id: str,
        product_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Find bookings of a product that overlap ``[start, end)``.

        Args:
            org_id: Tenant scope
            product_id: The product to check
            start: Requested start
            end: Requested end (exclusive)
            exclude_booking_id: Booking being edited, ignored by the check

        Returns:
            List of conflicts with booking details for display
        """
        validate_interval(start, end)
        start, end = as_utc(start), as_utc(end)
        bookings = self.repository.get_overlapping_bookings(
            org_id, product_id, start, end, exclude_booking_id
        )

        conflicts = []
        for booking in bookings:
            booking_start = as_utc(booking.from_datetime)
            booking_end = as_utc(booking.to_datetime)
            if start < booking_end and end > booking_start:
                conflicts.append(
                    {
                        "booking_id": booking.id,
                        "order_id": booking.order_id,
                        "customer_name": booking.order.customer_name if booking.order else None,
                        "from_datetime": booking_start.isoformat(),
                        "to_datetime": booking_end.isoformat(),
                        "status": booking.status,
                    }
                )

        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} booking conflicts for product {product_id} "
                f"between {start.isoformat()}-{end.isoformat()}"
            )

        return conflicts

    def ensure_available(
        self,
        org_id: str,
        product_id: str,
        start: datetime,
        end: datetime,
        *,
        exclude_booking_id: Optional[str] = None,
        override_conflicts: bool = False,
    ) -> bool:
        """
        Gate a booking write on the conflict check.

        Returns:
            True when conflicts were found and overridden, False when the
            interval was free.

        Raises:
            ConflictError: if conflicts exist and no override was requested
        """
        conflicts = self.find_conflicts(org_id, product_id, start, end, exclude_booking_id)
        if not conflicts:
            return False
        if not override_conflicts:
            raise ConflictError(conflicts)
        self.logger.warning(
            f"Overriding {len(conflicts)} conflicts for product {product_id}",
            extra={"product_id": product_id, "conflict_ids": [c["booking_id"] for c in conflicts]},
        )
        return True
