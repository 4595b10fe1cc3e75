# backend/rentbook/services/booking_service.py
"""
Booking Service for the rentbook backend.

Owns the booking lifecycle:

    BOOKED -> ISSUED -> RETURNED
    BOOKED -> CANCELLED  (through CancellationService)

Creation and any edit touching the product or interval lock the product
row, re-run the conflict check and write the booking in one transaction,
so two overlapping writes for the same product cannot both commit.
Every mutation ends with the owning order's status being recomputed.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    NotFoundError,
    OverpaymentError,
    RefundExceedsPaidError,
    ValidationException,
)
from ..core.money import ZERO, format_money, to_money
from ..core.timezone_utils import as_utc
from ..models.booking import Booking, BookingStatus
from ..models.booking_payment import PaymentType
from ..models.order import Order
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.order_repository import OrderRepository
from ..repositories.product_repository import ProductRepository
from .base import BaseService
from .booking_guards import require_booking_status, require_open_order
from .cancellation_service import CancellationService
from .conflict_checker import ConflictChecker, validate_interval
from .order_aggregator import OrderAggregator
from .payment_ledger import OverpayPolicy

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "product_id",
    "from_datetime",
    "to_datetime",
    "decided_rent",
    "advance_amount",
    "additional_items_description",
)
# Only the description may be cleared.
_NON_NULLABLE_FIELDS = _EDITABLE_FIELDS[:-1]


def _require_non_negative(field_name: str, value: Decimal) -> Decimal:
    amount = to_money(value)
    if amount < ZERO:
        raise ValidationException(
            f"{field_name} cannot be negative",
            code="INVALID_AMOUNT",
            details={field_name: f"{amount:.2f}"},
        )
    return amount


class BookingService(BaseService):
    """Booking creation, edits, lifecycle transitions and payments."""

    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        aggregator: Optional[OrderAggregator] = None,
        cancellation_service: Optional[CancellationService] = None,
        booking_repository: Optional[BookingRepository] = None,
        order_repository: Optional[OrderRepository] = None,
        product_repository: Optional[ProductRepository] = None,
    ):
        super().__init__(db)
        self.repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.order_repository = order_repository or RepositoryFactory.create_order_repository(db)
        self.product_repository = (
            product_repository or RepositoryFactory.create_product_repository(db)
        )
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.aggregator = aggregator or OrderAggregator(db, self.repository)
        self.ledger = self.aggregator.ledger
        self.cancellation_service = cancellation_service or CancellationService(
            db, self.aggregator, self.repository, self.order_repository
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_booking(self, org_id: str, booking_id: str) -> Booking:
        booking = self.repository.get_booking(org_id, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    @BaseService.measure_operation("get_booking")
    def get_booking(self, org_id: str, booking_id: str) -> Booking:
        return self._load_booking(org_id, booking_id)

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self,
        org_id: str,
        *,
        status: Optional[BookingStatus] = None,
        product_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Booking]:
        return self.repository.list_bookings(
            org_id,
            status=status.value if status else None,
            product_id=product_id,
            start=as_utc(start),
            end=as_utc(end),
        )

    @BaseService.measure_operation("check_conflicts")
    def check_conflicts(
        self,
        org_id: str,
        product_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Pre-check for the UI; the same check runs again inside every write."""
        return self.conflict_checker.find_conflicts(
            org_id, product_id, start, end, exclude_booking_id
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("add_booking_to_order")
    def add_booking_to_order(
        self,
        org_id: str,
        order_id: str,
        product_id: str,
        from_datetime: datetime,
        to_datetime: datetime,
        decided_rent: Decimal,
        advance_amount: Decimal = ZERO,
        override_conflicts: bool = False,
        additional_items_description: Optional[str] = None,
    ) -> Booking:
        """
        Create a booking inside an existing order.

        Raises:
            NotFoundError: order or product missing in this tenant
            InvalidTransitionError: order is cancelled
            ConflictError: interval overlaps and no override was given
            OverpaymentError: advance exceeds the decided rent
        """
        self.log_operation(
            "add_booking_to_order", order_id=order_id, product_id=product_id, org_id=org_id
        )

        def _add() -> Booking:
            order = self.order_repository.get_order(org_id, order_id)
            if not order:
                raise NotFoundError("Order", order_id)
            return self.create_booking_in_order(
                order,
                product_id,
                from_datetime,
                to_datetime,
                decided_rent,
                advance_amount,
                override_conflicts=override_conflicts,
                additional_items_description=additional_items_description,
            )

        return self.run_in_transaction("add_booking_to_order", _add)

    def create_booking_in_order(
        self,
        order: Order,
        product_id: str,
        from_datetime: datetime,
        to_datetime: datetime,
        decided_rent: Decimal,
        advance_amount: Decimal = ZERO,
        *,
        override_conflicts: bool = False,
        additional_items_description: Optional[str] = None,
    ) -> Booking:
        """Create a booking within the caller's transaction."""
        require_open_order(order, "add booking to order")
        validate_interval(from_datetime, to_datetime)
        decided_rent = _require_non_negative("decided_rent", decided_rent)
        advance_amount = _require_non_negative("advance_amount", advance_amount)

        product = self.product_repository.get_product(order.org_id, product_id, lock=True)
        if not product:
            raise NotFoundError("Product", product_id)

        overridden = self.conflict_checker.ensure_available(
            order.org_id,
            product_id,
            from_datetime,
            to_datetime,
            override_conflicts=override_conflicts,
        )

        booking = self.repository.create(
            org_id=order.org_id,
            order=order,
            product=product,
            category_id=product.category_id,
            sequence=self.repository.next_sequence(order.id),
            from_datetime=as_utc(from_datetime),
            to_datetime=as_utc(to_datetime),
            product_default_rent=to_money(product.default_rent),
            decided_rent=decided_rent,
            advance_amount=ZERO,
            remaining_amount=decided_rent,
            is_conflict_overridden=overridden,
            additional_items_description=additional_items_description,
        )

        if advance_amount > ZERO:
            self.ledger.append_entry(
                booking,
                PaymentType.ADVANCE,
                advance_amount,
                f"Advance received {format_money(advance_amount, settings.currency_symbol)}",
                policy=OverpayPolicy.REJECT,
                cascade=False,
            )
        self.ledger.refresh_cached_balances(booking)
        self.aggregator.recompute_status(order)

        self.logger.info(
            f"Created booking {booking.id} for product {product.id} in order {order.id}",
            extra={"booking_id": booking.id, "overridden": overridden},
        )
        return booking

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    @BaseService.measure_operation("update_booking")
    def update_booking(
        self,
        org_id: str,
        booking_id: str,
        changes: Dict[str, Any],
        override_conflicts: bool = False,
    ) -> Booking:
        """
        Apply a partial edit to a BOOKED booking.

        Product or interval changes re-run the conflict check excluding the
        booking itself. An ``advance_amount`` edit rewrites the booking's
        first ADVANCE entry (creating it if absent) instead of appending.
        """
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationException(
                "Unsupported booking fields",
                code="INVALID_FIELDS",
                details={"fields": sorted(unknown)},
            )
        nulled = [
            field for field in _NON_NULLABLE_FIELDS if field in changes and changes[field] is None
        ]
        if nulled:
            raise ValidationException(
                "Booking fields cannot be null",
                code="NULL_FIELDS",
                details={"fields": nulled},
            )
        self.log_operation("update_booking", booking_id=booking_id, fields=sorted(changes))

        def _update() -> Booking:
            booking = self._load_booking(org_id, booking_id)
            require_booking_status(booking, "update booking", BookingStatus.BOOKED)

            self._apply_schedule_change(booking, changes, override_conflicts)

            if "decided_rent" in changes:
                booking.decided_rent = _require_non_negative("decided_rent", changes["decided_rent"])
            if "additional_items_description" in changes:
                booking.additional_items_description = changes["additional_items_description"]
            if "advance_amount" in changes:
                self._reconcile_advance(
                    booking, _require_non_negative("advance_amount", changes["advance_amount"])
                )

            balance = self.ledger.refresh_cached_balances(booking)
            if balance.total_paid < ZERO:
                raise RefundExceedsPaidError(
                    balance.total_refunded,
                    balance.total_advance_received + balance.total_payment_received,
                    settings.currency_symbol,
                )
            if balance.remaining < ZERO:
                if "advance_amount" in changes:
                    advance = to_money(changes["advance_amount"])
                    raise OverpaymentError(
                        advance, advance + balance.remaining, settings.currency_symbol
                    )
                raise OverpaymentError(
                    balance.total_paid, to_money(booking.decided_rent), settings.currency_symbol
                )

            self.repository.flush()
            self.aggregator.recompute_status(booking.order)
            return booking

        return self.run_in_transaction("update_booking", _update)

    def _apply_schedule_change(
        self, booking: Booking, changes: Dict[str, Any], override_conflicts: bool
    ) -> None:
        if not {"product_id", "from_datetime", "to_datetime"} & set(changes):
            return

        product_id = changes.get("product_id") or booking.product_id
        start = as_utc(changes.get("from_datetime") or booking.from_datetime)
        end = as_utc(changes.get("to_datetime") or booking.to_datetime)
        validate_interval(start, end)

        product = self.product_repository.get_product(booking.org_id, product_id, lock=True)
        if not product:
            raise NotFoundError("Product", product_id)

        booking.is_conflict_overridden = self.conflict_checker.ensure_available(
            booking.org_id,
            product_id,
            start,
            end,
            exclude_booking_id=booking.id,
            override_conflicts=override_conflicts,
        )
        if product.id != booking.product_id:
            booking.product_id = product.id
            booking.product = product
            booking.category_id = product.category_id
            booking.product_default_rent = to_money(product.default_rent)
        booking.from_datetime = start
        booking.to_datetime = end

    def _reconcile_advance(self, booking: Booking, amount: Decimal) -> None:
        """Set the booking's single ADVANCE entry to ``amount``."""
        entry = next((p for p in booking.payments if p.type == PaymentType.ADVANCE.value), None)
        if entry is not None:
            entry.amount = amount
        elif amount > ZERO:
            self.repository.add_ledger_entry(
                booking,
                PaymentType.ADVANCE,
                amount,
                f"Advance received {format_money(amount, settings.currency_symbol)}",
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        org_id: str,
        booking_id: str,
        action: str,
        required: BookingStatus,
        payment_amount: Optional[Decimal],
        note: Optional[str],
    ) -> Booking:
        def _run() -> Booking:
            booking = self._load_booking(org_id, booking_id)
            require_booking_status(booking, action, required)

            if payment_amount is not None and to_money(payment_amount) != ZERO:
                self.ledger.append_entry(
                    booking,
                    PaymentType.PAYMENT_RECEIVED,
                    payment_amount,
                    note or f"Payment on {action.split()[0]}",
                    policy=OverpayPolicy.REJECT,
                    cascade=False,
                )

            if required is BookingStatus.BOOKED:
                booking.issue()
            else:
                booking.mark_returned()
            self.ledger.refresh_cached_balances(booking)
            self.aggregator.recompute_status(booking.order)
            return booking

        return self.run_in_transaction(action.replace(" ", "_"), _run)

    @BaseService.measure_operation("issue_booking")
    def issue_booking(
        self,
        org_id: str,
        booking_id: str,
        payment_amount: Optional[Decimal] = None,
        note: Optional[str] = None,
    ) -> Booking:
        """Hand the product over: BOOKED -> ISSUED, optionally taking an exact payment."""
        self.log_operation("issue_booking", booking_id=booking_id, org_id=org_id)
        return self._transition(
            org_id, booking_id, "issue booking", BookingStatus.BOOKED, payment_amount, note
        )

    @BaseService.measure_operation("return_booking")
    def return_booking(
        self,
        org_id: str,
        booking_id: str,
        payment_amount: Optional[Decimal] = None,
        note: Optional[str] = None,
    ) -> Booking:
        """Take the product back: ISSUED -> RETURNED, optionally taking an exact payment."""
        self.log_operation("return_booking", booking_id=booking_id, org_id=org_id)
        return self._transition(
            org_id, booking_id, "return booking", BookingStatus.ISSUED, payment_amount, note
        )

    def cancel_booking(
        self,
        org_id: str,
        booking_id: str,
        refund_amount: Optional[Decimal] = None,
    ) -> Tuple[Booking, Dict[str, Any]]:
        return self.cancellation_service.cancel_booking(org_id, booking_id, refund_amount)

    def preview_cancel_booking(self, org_id: str, booking_id: str) -> Dict[str, Any]:
        return self.cancellation_service.preview_booking_cancellation(org_id, booking_id)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @BaseService.measure_operation("add_payment")
    def add_payment(
        self,
        org_id: str,
        booking_id: str,
        amount: Decimal,
        payment_type: Optional[PaymentType] = None,
        note: Optional[str] = None,
    ) -> Booking:
        """
        Record a payment or refund against one booking.

        Refunds follow the refund rules on any status. Anything else is a
        payment whose type is chosen by status (ADVANCE while BOOKED,
        PAYMENT_RECEIVED afterwards) and is clamped to what is left to pay.
        """
        self.log_operation(
            "add_payment",
            booking_id=booking_id,
            amount=str(amount),
            requested_type=payment_type.value if payment_type else None,
        )

        def _pay() -> Booking:
            booking = self._load_booking(org_id, booking_id)
            if payment_type is PaymentType.REFUND:
                entry_type = PaymentType.REFUND
            else:
                require_booking_status(
                    booking,
                    "add payment",
                    BookingStatus.BOOKED,
                    BookingStatus.ISSUED,
                    BookingStatus.RETURNED,
                )
                entry_type = (
                    PaymentType.ADVANCE
                    if booking.status == BookingStatus.BOOKED.value
                    else PaymentType.PAYMENT_RECEIVED
                )
            self.ledger.append_entry(
                booking, entry_type, amount, note, policy=OverpayPolicy.CLAMP
            )
            return booking

        return self.run_in_transaction("add_payment", _pay)
