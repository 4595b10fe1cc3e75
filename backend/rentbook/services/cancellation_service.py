# backend/rentbook/services/cancellation_service.py
"""
Cancellation Service for the rentbook backend.

Two deliberately different money policies:

* Single booking: the cancelled booking's net payment first fills the
  remaining need of its active siblings, in order, one at a time. Only
  what is left over is refundable.
* Whole order: the refund is split across bookings in proportion to
  what each one was paid; the last paying booking absorbs rounding.
"""

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    InvalidRefundAmountError,
    NonCancellableStateError,
    NotFoundError,
)
from ..core.money import ZERO, format_money, to_money
from ..models.booking import Booking, BookingStatus
from ..models.booking_payment import PaymentType
from ..models.order import Order
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.order_repository import OrderRepository
from .base import BaseService
from .booking_guards import require_booking_status, require_open_order
from .order_aggregator import OrderAggregator
from .payment_ledger import OverpayPolicy

logger = logging.getLogger(__name__)

_ORDER_CANCELLABLE = {BookingStatus.BOOKED.value, BookingStatus.CANCELLED.value}


@dataclass
class CancellationPlan:
    """Money movements for cancelling one booking, computed before anything is written."""

    net_paid: Decimal
    transfers: List[Tuple[Booking, Decimal]] = field(default_factory=list)
    refund_amount: Decimal = ZERO

    @property
    def total_transferred(self) -> Decimal:
        return sum((amount for _, amount in self.transfers), ZERO)

    @property
    def max_refund(self) -> Decimal:
        return max(ZERO, self.net_paid - self.total_transferred)

    def as_refund_info(self) -> Dict[str, Any]:
        return {
            "refund_amount": self.refund_amount,
            "redistributed": self.total_transferred,
            "booking_advance": self.net_paid,
            "pending_refund_amount": self.max_refund - self.refund_amount,
            "transfers": [
                {
                    "booking_id": receiver.id,
                    "product_title": receiver.product_title,
                    "amount": amount,
                }
                for receiver, amount in self.transfers
            ],
        }


class CancellationService(BaseService):
    """Booking and order cancellation with money redistribution."""

    def __init__(
        self,
        db: Session,
        aggregator: Optional[OrderAggregator] = None,
        booking_repository: Optional[BookingRepository] = None,
        order_repository: Optional[OrderRepository] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.order_repository = order_repository or RepositoryFactory.create_order_repository(db)
        self.aggregator = aggregator or OrderAggregator(db, self.booking_repository)
        self.ledger = self.aggregator.ledger

    # ------------------------------------------------------------------
    # Single booking
    # ------------------------------------------------------------------

    def plan_booking_cancellation(
        self,
        booking: Booking,
        siblings: Sequence[Booking],
        refund_amount: Optional[Decimal] = None,
    ) -> CancellationPlan:
        """
        Compute transfers and refund for cancelling ``booking``.

        Args:
            booking: Booking being cancelled
            siblings: Other bookings of the same order, in enumeration order
            refund_amount: Explicit refund; defaults to everything left
                after transfers

        Raises:
            InvalidRefundAmountError: explicit refund outside
                ``[0, net_paid - transferred]``
        """
        net_paid = self.ledger.compute_balance(booking).total_paid
        plan = CancellationPlan(net_paid=net_paid)

        funds_left = max(ZERO, net_paid)
        for sibling in siblings:
            if funds_left <= ZERO:
                break
            if sibling.id == booking.id or not sibling.is_active:
                continue
            need = self.ledger.compute_balance(sibling).remaining
            if need <= ZERO:
                continue
            transfer = min(need, funds_left)
            plan.transfers.append((sibling, transfer))
            funds_left -= transfer

        if refund_amount is None:
            plan.refund_amount = plan.max_refund
        else:
            requested = to_money(refund_amount)
            if requested < ZERO or requested > plan.max_refund:
                raise InvalidRefundAmountError(requested, plan.max_refund)
            plan.refund_amount = requested
        return plan

    def _load_booking(self, org_id: str, booking_id: str) -> Booking:
        booking = self.booking_repository.get_booking(org_id, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    @BaseService.measure_operation("preview_cancel_booking")
    def preview_booking_cancellation(self, org_id: str, booking_id: str) -> Dict[str, Any]:
        """Same computation as ``cancel_booking`` without writing anything."""
        booking = self._load_booking(org_id, booking_id)
        require_booking_status(booking, "cancel booking", BookingStatus.BOOKED)
        siblings = self.booking_repository.get_order_bookings(booking.order_id)
        return self.plan_booking_cancellation(booking, siblings).as_refund_info()

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        org_id: str,
        booking_id: str,
        refund_amount: Optional[Decimal] = None,
    ) -> Tuple[Booking, Dict[str, Any]]:
        """
        Cancel a BOOKED booking, redistributing its payment to siblings first.

        Returns:
            Tuple of (cancelled booking, refund info)
        """
        self.log_operation("cancel_booking", booking_id=booking_id, org_id=org_id)

        def _cancel() -> Tuple[Booking, Dict[str, Any]]:
            booking = self._load_booking(org_id, booking_id)
            require_booking_status(booking, "cancel booking", BookingStatus.BOOKED)
            order = self.order_repository.get_order(org_id, booking.order_id, lock=True)
            siblings = self.booking_repository.get_order_bookings(booking.order_id)
            plan = self.plan_booking_cancellation(booking, siblings, refund_amount)
            currency = settings.currency_symbol

            for receiver, amount in plan.transfers:
                self.ledger.append_entry(
                    receiver,
                    PaymentType.ADVANCE,
                    amount,
                    f"Advance redistributed from cancelled booking #{booking.id}",
                    policy=OverpayPolicy.REJECT,
                    cascade=False,
                )
                self.ledger.append_entry(
                    booking,
                    PaymentType.REFUND,
                    amount,
                    f"{format_money(amount, currency)} transferred to {receiver.product_title}",
                    cascade=False,
                )

            if plan.refund_amount > ZERO:
                self.ledger.append_entry(
                    booking,
                    PaymentType.REFUND,
                    plan.refund_amount,
                    "Refund for cancelled booking",
                    cascade=False,
                )

            booking.cancel()
            self.ledger.refresh_cached_balances(booking)
            if order is not None:
                self.aggregator.recompute_status(order)

            self.logger.info(
                f"Cancelled booking {booking.id}: redistributed {plan.total_transferred}, "
                f"refunded {plan.refund_amount}",
                extra={"booking_id": booking.id, "order_id": booking.order_id},
            )
            return booking, plan.as_refund_info()

        return self.run_in_transaction("cancel_booking", _cancel)

    # ------------------------------------------------------------------
    # Whole order
    # ------------------------------------------------------------------

    def _load_cancellable_order(
        self, org_id: str, order_id: str, *, lock: bool = False
    ) -> Tuple[Order, List[Booking]]:
        order = self.order_repository.get_order(org_id, order_id, lock=lock)
        if not order:
            raise NotFoundError("Order", order_id)
        require_open_order(order, "cancel order")

        bookings = self.booking_repository.get_order_bookings(order.id)
        blocking = sorted({b.status for b in bookings if b.status not in _ORDER_CANCELLABLE})
        if blocking:
            raise NonCancellableStateError(order.id, blocking)
        return order, bookings

    def _paid_by_booking(self, bookings: Sequence[Booking]) -> List[Tuple[Booking, Decimal]]:
        return [(b, self.ledger.compute_balance(b).total_paid) for b in bookings]

    def _resolve_order_refund(
        self, total_paid: Decimal, refund_amount: Optional[Decimal]
    ) -> Decimal:
        if refund_amount is None:
            return max(ZERO, total_paid)
        requested = to_money(refund_amount)
        if requested < ZERO or requested > max(ZERO, total_paid):
            raise InvalidRefundAmountError(requested, max(ZERO, total_paid))
        return requested

    @BaseService.measure_operation("preview_cancel_order")
    def preview_order_cancellation(self, org_id: str, order_id: str) -> Dict[str, Decimal]:
        order, bookings = self._load_cancellable_order(org_id, order_id)
        total_paid = sum((paid for _, paid in self._paid_by_booking(bookings)), ZERO)
        return {"refund_amount": max(ZERO, total_paid), "total_paid": total_paid}

    @BaseService.measure_operation("cancel_order")
    def cancel_order(
        self,
        org_id: str,
        order_id: str,
        refund_amount: Optional[Decimal] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Cancel every booking of an order and refund proportionally to what each was paid.

        Returns:
            Dict with ``order``, ``refund_amount``, ``total_paid`` and
            ``refund_distributions`` (one ``{"booking_id", "amount"}`` per refund entry)
        """
        self.log_operation("cancel_order", order_id=order_id, org_id=org_id)

        def _cancel() -> Dict[str, Any]:
            order, bookings = self._load_cancellable_order(org_id, order_id, lock=True)
            paid = self._paid_by_booking(bookings)
            total_paid = sum((amount for _, amount in paid), ZERO)
            refund = self._resolve_order_refund(total_paid, refund_amount)
            currency = settings.currency_symbol

            paying = [(b, amount) for b, amount in paid if amount > ZERO]
            distributions: List[Dict[str, Any]] = []
            left = refund
            for index, (booking, booking_paid) in enumerate(paying):
                if left <= ZERO:
                    break
                if index == len(paying) - 1:
                    share = left
                else:
                    share = to_money(refund * booking_paid / total_paid)
                share = min(share, booking_paid, left)
                if share <= ZERO:
                    continue
                self.ledger.append_entry(
                    booking,
                    PaymentType.REFUND,
                    share,
                    note
                    or (
                        f"Order cancellation refund ({format_money(share, currency)} "
                        f"of {format_money(refund, currency)})"
                    ),
                    cascade=False,
                )
                distributions.append({"booking_id": booking.id, "amount": share})
                left -= share

            for booking in bookings:
                if booking.is_active:
                    booking.cancel()
                self.ledger.refresh_cached_balances(booking)

            order.cancel()
            self.aggregator.recompute_totals(order)
            self.logger.info(
                f"Cancelled order {order.id}: refunded {refund} of {total_paid} "
                f"across {len(distributions)} bookings",
                extra={"order_id": order.id},
            )
            return {
                "order": order,
                "refund_amount": refund,
                "total_paid": total_paid,
                "refund_distributions": distributions,
            }

        return self.run_in_transaction("cancel_order", _cancel)
