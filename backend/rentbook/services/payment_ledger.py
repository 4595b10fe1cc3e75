# backend/rentbook/services/payment_ledger.py
"""
Payment Ledger Service for the rentbook backend.

Each booking owns an append-only list of ADVANCE, PAYMENT_RECEIVED and
REFUND entries. Balances are always derived from that list:

    total_paid    = sum(ADVANCE, PAYMENT_RECEIVED) - sum(REFUND)
    total_advance = max(0, sum(ADVANCE) - sum(REFUND))
    remaining     = decided_rent - total_paid

The booking's ``advance_amount``/``remaining_amount`` columns are caches
rewritten after every append. This service never commits; callers own
the transaction.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
import logging
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AlreadyFullyPaidError,
    NothingToRefundError,
    OverpaymentError,
    RefundExceedsPaidError,
    ValidationException,
)
from ..core.money import ZERO, format_money, to_money
from ..models.booking import Booking, BookingStatus
from ..models.booking_payment import PaymentType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from .base import BaseService

if TYPE_CHECKING:
    from .order_aggregator import OrderAggregator

logger = logging.getLogger(__name__)


class OverpayPolicy(str, Enum):
    """What to do with a payment larger than what is left to pay."""

    CLAMP = "clamp"  # accept up to remaining, note the adjustment
    REJECT = "reject"  # fail with OverpaymentError


@dataclass(frozen=True)
class LedgerBalance:
    total_advance_received: Decimal
    total_payment_received: Decimal
    total_refunded: Decimal
    total_paid: Decimal
    total_advance: Decimal
    remaining: Decimal


class PaymentLedger(BaseService):
    """Per-booking ledger appends and balance derivation."""

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        aggregator: Optional["OrderAggregator"] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.aggregator = aggregator

    @staticmethod
    def compute_balance(booking: Booking) -> LedgerBalance:
        """Derive balances from the ledger alone; calling it twice yields the same result."""
        advances = ZERO
        received = ZERO
        refunds = ZERO
        for entry in booking.payments:
            amount = to_money(entry.amount)
            if entry.type == PaymentType.ADVANCE.value:
                advances += amount
            elif entry.type == PaymentType.PAYMENT_RECEIVED.value:
                received += amount
            elif entry.type == PaymentType.REFUND.value:
                refunds += amount

        total_paid = advances + received - refunds
        return LedgerBalance(
            total_advance_received=advances,
            total_payment_received=received,
            total_refunded=refunds,
            total_paid=total_paid,
            total_advance=max(ZERO, advances - refunds),
            remaining=to_money(booking.decided_rent) - total_paid,
        )

    def refresh_cached_balances(self, booking: Booking) -> LedgerBalance:
        """Rewrite the booking's cached money columns from its ledger."""
        balance = self.compute_balance(booking)
        booking.advance_amount = balance.total_advance
        booking.remaining_amount = balance.remaining
        # Funds still held on a cancelled booking, waiting to be paid out
        if booking.status == BookingStatus.CANCELLED.value:
            booking.pending_refund_amount = max(ZERO, balance.total_paid)
        else:
            booking.pending_refund_amount = ZERO
        return balance

    @BaseService.measure_operation("append_ledger_entry")
    def append_entry(
        self,
        booking: Booking,
        payment_type: PaymentType,
        amount: Decimal,
        note: Optional[str] = None,
        *,
        policy: OverpayPolicy = OverpayPolicy.CLAMP,
        cascade: bool = True,
    ) -> LedgerBalance:
        """
        Append one ledger entry after checking it against the current balance.

        Args:
            booking: Target booking, with its ledger loaded
            payment_type: Entry kind
            amount: Positive amount
            note: Optional free text stored on the entry
            policy: Overpayment handling for ADVANCE/PAYMENT_RECEIVED entries
            cascade: Recompute the owning order afterwards; batch callers
                pass False and recompute once at the end

        Returns:
            The booking's balance after the append

        Raises:
            AlreadyFullyPaidError: payment on a booking with nothing left to pay
            OverpaymentError: payment above remaining under the reject policy
            NothingToRefundError: refund on a booking with no net payment
            RefundExceedsPaidError: refund above the net payment
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationException(
                "Amount must be greater than zero",
                code="INVALID_AMOUNT",
                details={"amount": f"{amount:.2f}"},
            )

        balance = self.compute_balance(booking)
        currency = settings.currency_symbol

        if payment_type is PaymentType.REFUND:
            if balance.total_paid <= ZERO:
                raise NothingToRefundError(booking.id, balance.total_paid)
            if amount > balance.total_paid:
                raise RefundExceedsPaidError(amount, balance.total_paid, currency)
        else:
            if balance.remaining <= ZERO:
                raise AlreadyFullyPaidError(booking.id, balance.remaining)
            if amount > balance.remaining:
                if policy is OverpayPolicy.REJECT:
                    raise OverpaymentError(amount, balance.remaining, currency)
                adjustment = (
                    f"Payment adjusted from {format_money(amount, currency)} to remaining amount"
                )
                note = f"{note} ({adjustment})" if note else adjustment
                self.logger.info(
                    f"Clamped payment on booking {booking.id} from {amount} to {balance.remaining}"
                )
                amount = balance.remaining

        self.booking_repository.add_ledger_entry(booking, payment_type, amount, note)
        prometheus_metrics.record_ledger_entry(payment_type.value)
        updated = self.refresh_cached_balances(booking)
        self.booking_repository.flush()

        self.log_operation(
            "append_ledger_entry",
            booking_id=booking.id,
            entry_type=payment_type.value,
            amount=str(amount),
            remaining=str(updated.remaining),
        )

        if cascade and self.aggregator is not None and booking.order is not None:
            self.aggregator.recompute_status(booking.order)

        return updated
