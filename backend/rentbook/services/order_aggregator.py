# backend/rentbook/services/order_aggregator.py
"""
Order Aggregator Service for the rentbook backend.

An order's totals and status are pure functions of its bookings. This
service is the single place they are recomputed; every booking mutation
ends by calling ``recompute_status`` for the owning order.
"""

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import AllBookingsFullyPaidError, ValidationException
from ..core.money import ZERO, to_money
from ..models.booking import Booking, BookingStatus
from ..models.booking_payment import PaymentType
from ..models.order import Order, OrderStatus
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from .base import BaseService
from .payment_ledger import OverpayPolicy, PaymentLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderTotals:
    total_amount: Decimal
    total_received: Decimal
    remaining_amount: Decimal


def derive_order_status(
    current_status: str,
    bookings: Sequence[Booking],
    totals: OrderTotals,
) -> OrderStatus:
    """
    Status derivation, in priority order.

    CANCELLED is sticky. An order whose bookings are all cancelled is
    CANCELLED. An order with no bookings keeps its current status.
    """
    if current_status == OrderStatus.CANCELLED.value:
        return OrderStatus.CANCELLED
    if not bookings:
        return OrderStatus(current_status)

    active = [b for b in bookings if b.is_active]
    if not active:
        return OrderStatus.CANCELLED

    fully_received = totals.total_received >= totals.total_amount
    if fully_received and all(b.status == BookingStatus.RETURNED.value for b in active):
        return OrderStatus.FULLY_DONE
    if fully_received:
        return OrderStatus.IN_PROGRESS
    if totals.total_received > ZERO:
        return OrderStatus.PARTIALLY_DONE
    return OrderStatus.INITIATED


class OrderAggregator(BaseService):
    """Order totals, status and order-level payment distribution."""

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        ledger: Optional[PaymentLedger] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.ledger = ledger or PaymentLedger(db, self.booking_repository, aggregator=self)

    def compute_totals(self, bookings: Sequence[Booking]) -> OrderTotals:
        """Sum rent and ledger-derived net payment over non-cancelled bookings."""
        total_amount = ZERO
        total_received = ZERO
        for booking in bookings:
            if not booking.is_active:
                continue
            total_amount += to_money(booking.decided_rent)
            total_received += self.ledger.compute_balance(booking).total_paid
        return OrderTotals(
            total_amount=total_amount,
            total_received=total_received,
            remaining_amount=total_amount - total_received,
        )

    def recompute_totals(self, order: Order) -> OrderTotals:
        """Recompute and persist the order's cached totals."""
        bookings = self.booking_repository.get_order_bookings(order.id)
        totals = self.compute_totals(bookings)
        self._store_totals(order, totals)
        return totals

    def recompute_status(self, order: Order) -> OrderStatus:
        """Recompute totals and status together and persist both."""
        bookings = self.booking_repository.get_order_bookings(order.id)
        totals = self.compute_totals(bookings)
        self._store_totals(order, totals)

        status = derive_order_status(order.status, bookings, totals)
        if status.value != order.status:
            self.logger.info(
                f"Order {order.id} status {order.status} -> {status.value}",
                extra={"order_id": order.id},
            )
            if status is OrderStatus.CANCELLED:
                order.cancel()
            else:
                order.status = status.value
        self.booking_repository.flush()
        return status

    def _store_totals(self, order: Order, totals: OrderTotals) -> None:
        order.total_amount = totals.total_amount
        order.total_received = totals.total_received
        order.remaining_amount = totals.remaining_amount

    @BaseService.measure_operation("distribute_order_payment")
    def distribute_payment(
        self,
        order: Order,
        amount: Decimal,
        note: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Spread an order-level payment over underpaid active bookings.

        Each underpaid booking is weighted by its decided rent within the
        underpaid subset. Every booking but the last receives
        ``round(amount * weight, 2)``; the last absorbs the remainder. No
        allocation exceeds the booking's own remaining or the amount still
        undistributed. Allocations are posted as ADVANCE entries.

        Returns:
            One ``{"booking_id", "amount"}`` dict per booking that received money

        Raises:
            AllBookingsFullyPaidError: if no active booking has anything left to pay
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationException(
                "Amount must be greater than zero",
                code="INVALID_AMOUNT",
                details={"amount": f"{amount:.2f}"},
            )

        bookings = self.booking_repository.get_order_bookings(order.id)
        underpaid = []
        for booking in bookings:
            if not booking.is_active:
                continue
            need = self.ledger.compute_balance(booking).remaining
            if need > ZERO:
                underpaid.append((booking, need))

        if not underpaid:
            raise AllBookingsFullyPaidError(order.id)

        total_weight = sum((to_money(b.decided_rent) for b, _ in underpaid), ZERO)
        left = amount
        count = len(underpaid)
        distributions: List[Dict[str, Any]] = []

        for index, (booking, need) in enumerate(underpaid):
            if left <= ZERO:
                break
            if index == count - 1:
                share = left
            else:
                share = to_money(amount * to_money(booking.decided_rent) / total_weight)
            share = min(share, need, left)
            if share <= ZERO:
                continue

            self.ledger.append_entry(
                booking,
                PaymentType.ADVANCE,
                share,
                f"{note or 'Order payment'} ({index + 1} of {count})",
                policy=OverpayPolicy.REJECT,
                cascade=False,
            )
            distributions.append({"booking_id": booking.id, "amount": share})
            left -= share

        self.recompute_status(order)
        self.log_operation(
            "distribute_order_payment",
            order_id=order.id,
            amount=str(amount),
            distributed=str(amount - left),
        )
        return distributions
